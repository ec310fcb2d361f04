"""
Création des inscriptions payantes après paiement.

- Une inscription par (étudiant, cours): une inscription existante (gratuite,
  annulée, remboursée...) est mise à niveau sur place, jamais dupliquée.
- Les compteurs du cours (enrollment_count, revenue) ne bougent qu'une fois
  par inscription accordée (stats_applied), y compris lors d'une relance.
"""
import logging
from typing import Any, Dict, List, Optional, Tuple

from academy.catalog import repository as catalog_repository
from academy.errors import PartialSideEffectError
from academy.infra.supabase_client import is_unique_violation
from academy.utils.dates import utcnow_iso
from . import repository

logger = logging.getLogger(__name__)

def _paid_fields(order: Dict[str, Any], amount_paid: float, transaction_id: Optional[str]) -> Dict[str, Any]:
    return {
        "order_id": order["id"],
        "status": "active",
        "access_type": "paid",
        "amount_paid": round(float(amount_paid), 2),
        "payment_status": "completed",
        "payment_method": order.get("payment_method"),
        "transaction_id": transaction_id,
        "has_access": True,
        "purchase_date": order.get("paid_at") or utcnow_iso(),
        "refunded_at": None,
        "refund_reason": None,
        "stats_applied": False,
        "updated_at": utcnow_iso(),
    }

def _already_granted(enrollment: Dict[str, Any], order: Dict[str, Any]) -> bool:
    return (
        enrollment.get("order_id") == order["id"]
        and enrollment.get("access_type") == "paid"
        and bool(enrollment.get("has_access"))
    )

def enroll_paid_course(
    order: Dict[str, Any],
    course_id: str,
    amount_paid: float,
    transaction_id: Optional[str] = None,
) -> Tuple[Dict[str, Any], bool]:
    """
    Crée ou met à niveau l'inscription de l'acheteur au cours.
    Retour: (inscription, changed) où changed=False si déjà accordée par cette commande.
    """
    user_id = order["user_id"]
    fields = _paid_fields(order, amount_paid, transaction_id)

    existing = repository.get_enrollment(course_id, user_id)
    if existing is None:
        row = {
            "student_id": user_id,
            "course_id": course_id,
            "progress": 0,
            "completed_lessons": [],
            "created_at": utcnow_iso(),
            **fields,
        }
        try:
            created = repository.insert_enrollment(row)
            return created or row, True
        except Exception as e:
            if not is_unique_violation(e):
                raise
            existing = repository.get_enrollment(course_id, user_id)
            if existing is None:
                raise

    if _already_granted(existing, order):
        return existing, False
    updated = repository.update_enrollment(existing["id"], fields)
    logger.info("enrollments.upgraded enrollment=%s course=%s", existing["id"], course_id)
    return updated or {**existing, **fields}, True

def course_shares(order: Dict[str, Any]) -> List[Tuple[str, float]]:
    """
    Montant payé par cours: prix de ligne × (total / sous-total), pour répartir
    remise et taxe au prorata.
    """
    subtotal = float(order.get("subtotal") or 0)
    total = float(order.get("total") or 0)
    ratio = (total / subtotal) if subtotal > 0 else 0.0
    shares: List[Tuple[str, float]] = []
    for line in order.get("items") or []:
        if line.get("kind") != "course":
            continue
        shares.append((line["ref_id"], round(float(line.get("amount") or 0) * ratio, 2)))
    return shares

def enroll_order(order: Dict[str, Any], transaction_id: Optional[str] = None) -> List[Dict[str, Any]]:
    """
    Inscrit l'acheteur à chaque cours de la commande.
    - Un échec sur un cours n'empêche pas les suivants
    - Lève PartialSideEffectError si au moins un cours a échoué
    """
    done: List[Dict[str, Any]] = []
    failures: List[Dict[str, Any]] = []
    for course_id, amount in course_shares(order):
        try:
            enrollment, changed = enroll_paid_course(order, course_id, amount, transaction_id)
        except Exception as e:
            logger.exception("enrollments.enroll_order failed order=%s course=%s", order.get("id"), course_id)
            failures.append({"step": "enrollment", "ref": course_id, "error": str(e)})
            continue
        if changed or enrollment.get("stats_applied") is False:
            if catalog_repository.adjust_course_stats(course_id, 1, amount):
                try:
                    enrollment = repository.update_enrollment(enrollment["id"], {"stats_applied": True}) or enrollment
                except Exception:
                    logger.exception("enrollments.stats_applied not saved order=%s course=%s", order.get("id"), course_id)
            else:
                failures.append({"step": "course_stats", "ref": course_id, "error": "adjust_course_stats failed"})
        done.append(enrollment)
    if failures:
        raise PartialSideEffectError(failures, done=done)
    return done

def revoke_order_enrollments(order: Dict[str, Any], reason: Optional[str] = None) -> int:
    """Marque remboursées les inscriptions accordées par la commande (accès retiré)."""
    revoked = 0
    now = utcnow_iso()
    for enrollment in repository.list_order_enrollments(order["id"]):
        try:
            repository.update_enrollment(enrollment["id"], {
                "payment_status": "refunded",
                "status": "refunded",
                "has_access": False,
                "refunded_at": now,
                "refund_reason": reason,
                "updated_at": now,
            })
            revoked += 1
        except Exception:
            logger.exception("enrollments.revoke failed enrollment=%s", enrollment.get("id"))
    return revoked
