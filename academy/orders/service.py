"""
Cas d'usage 'orders': création des commandes en attente et transitions de statut.

Cycle de vie: pending -> completed -> refunded
              pending -> failed (-> completed si le prestataire confirme ensuite)
              pending|failed -> cancelled
Le passage à completed est un UPDATE conditionnel: un seul appelant le gagne.
"""
import logging
from typing import Any, Dict, List, Optional

from academy.config import CURRENCY
from academy.errors import NotFoundError, PermissionDeniedError, ValidationError
from academy.utils.dates import utcnow_iso
from academy.utils.numbering import insert_with_sequential_number
from academy.utils.security import is_admin
from . import repository

logger = logging.getLogger(__name__)

PENDING = "pending"
PROCESSING = "processing"
COMPLETED = "completed"
FAILED = "failed"
CANCELLED = "cancelled"
REFUNDED = "refunded"

COMPLETABLE = (PENDING, PROCESSING, FAILED)
FAILABLE = (PENDING, PROCESSING)
CANCELLABLE = (PENDING, FAILED)

ORDER_PREFIX = "ORD"

def create_pending_order(
    *,
    user_id: str,
    lines: List[Dict[str, Any]],
    totals: Dict[str, float],
    payment_method: str,
    coupon_id: Optional[str] = None,
    billing_address: Optional[Dict[str, Any]] = None,
    is_new_user: bool = False,
    metadata: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Crée la commande en statut pending avec un numéro ORD-<année>-<NNNN> unique.
    - lines: lignes résolues par payments.cart.resolve_lines
    - totals: {subtotal, discount, tax, total} de payments.pricing.compute_totals
    """
    now = utcnow_iso()
    row = {
        "user_id": user_id,
        "course_ids": [ln["ref_id"] for ln in lines if ln["kind"] == "course"],
        "items": lines,
        "subtotal": totals["subtotal"],
        "discount": totals["discount"],
        "tax": totals["tax"],
        "total": totals["total"],
        "currency": CURRENCY,
        "status": PENDING,
        "payment_method": payment_method,
        "coupon_id": coupon_id,
        "billing_address": billing_address,
        "is_new_user": bool(is_new_user),
        "metadata": metadata or {},
        "fulfillment_status": "pending",
        "created_at": now,
        "updated_at": now,
    }
    order = insert_with_sequential_number(
        prefix=ORDER_PREFIX,
        field="order_number",
        count_fn=repository.count_orders,
        insert_fn=repository.insert_order,
        row=row,
    )
    logger.info("orders.created order=%s number=%s total=%s", order.get("id"), order.get("order_number"), order.get("total"))
    return order

def mark_completed(order_id: str, *, paid_at: Optional[str] = None, capture_id: Optional[str] = None) -> Optional[Dict[str, Any]]:
    """Transition vers completed; None si un autre appelant l'a déjà faite."""
    changes: Dict[str, Any] = {
        "status": COMPLETED,
        "paid_at": paid_at or utcnow_iso(),
        "failure_reason": None,
        "updated_at": utcnow_iso(),
    }
    if capture_id:
        changes["capture_id"] = capture_id
    return repository.transition_status(order_id, COMPLETABLE, changes)

def mark_failed(order_id: str, reason: str) -> Optional[Dict[str, Any]]:
    return repository.transition_status(
        order_id,
        FAILABLE,
        {"status": FAILED, "failure_reason": reason, "updated_at": utcnow_iso()},
    )

def mark_refunded(order_id: str, refund: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    return repository.transition_status(
        order_id,
        (COMPLETED,),
        {"status": REFUNDED, "refund": refund, "updated_at": utcnow_iso()},
    )

def cancel_order(order_id: str, reason: Optional[str] = None) -> Dict[str, Any]:
    order = repository.get_order_by_id(order_id)
    if not order:
        raise NotFoundError("Commande introuvable")
    if order.get("status") not in CANCELLABLE:
        raise ValidationError(f"Commande non annulable (statut={order.get('status')})")
    updated = repository.transition_status(
        order_id,
        CANCELLABLE,
        {"status": CANCELLED, "cancellation_reason": reason, "updated_at": utcnow_iso()},
    )
    if not updated:
        raise ValidationError("Commande modifiée entre-temps, réessayez")
    logger.info("orders.cancelled order=%s", order_id)
    return updated

def get_order_for_user(order_id: str, user: Dict[str, Any]) -> Dict[str, Any]:
    """Commande par id, réservée à son propriétaire (ou à un admin)."""
    order = repository.get_order_by_id(order_id)
    if not order:
        raise NotFoundError("Commande introuvable")
    if order.get("user_id") != user.get("id") and not is_admin(user):
        raise PermissionDeniedError("Commande appartenant à un autre utilisateur")
    return order

def resolve_order(
    payment_intent_id: Optional[str],
    fallback_order_id: Optional[str] = None,
    *,
    patch_intent: bool = False,
) -> Optional[Dict[str, Any]]:
    """
    Retrouve la commande par payment_intent_id, puis par l'id transmis en métadonnées.
    - patch_intent: recopie payment_intent_id sur la commande retrouvée par fallback
    """
    order = repository.get_order_by_payment_intent(payment_intent_id) if payment_intent_id else None
    if order or not fallback_order_id:
        return order
    order = repository.get_order_by_id(fallback_order_id)
    if order and patch_intent and payment_intent_id and order.get("payment_intent_id") != payment_intent_id:
        if repository.set_payment_intent(order["id"], payment_intent_id):
            order = {**order, "payment_intent_id": payment_intent_id}
            logger.info("orders.intent_patched order=%s pid=%s", order["id"], payment_intent_id)
    return order
