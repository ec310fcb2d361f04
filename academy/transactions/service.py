"""
Journal des transactions: une ligne « payment » par commande (pending puis
completed/failed) et au plus une ligne « refund ».
"""
import logging
from typing import Any, Dict, Optional

from academy.infra.supabase_client import is_unique_violation
from academy.utils.dates import utcnow_iso
from academy.utils.numbering import make_reference
from . import repository

logger = logging.getLogger(__name__)

PAYMENT = "payment"
REFUND = "refund"

_RESPONSE_KEYS = ("id", "object", "status", "payment_status", "amount_total", "amount", "currency", "payment_intent", "intent")

def summarize_response(payload: Any) -> Dict[str, Any]:
    """Extrait quelques champs utiles d'une réponse prestataire (pas d'objet complet en base)."""
    if not isinstance(payload, dict):
        return {}
    return {k: payload[k] for k in _RESPONSE_KEYS if payload.get(k) is not None}

def _upsert(order: Dict[str, Any], tx_type: str, changes: Dict[str, Any]) -> Dict[str, Any]:
    existing = repository.get_order_transaction(order["id"], tx_type)
    if existing:
        return repository.update_transaction(existing["id"], {**changes, "updated_at": utcnow_iso()}) or existing
    row = {
        "transaction_id": make_reference("txn"),
        "user_id": order.get("user_id"),
        "order_id": order["id"],
        "currency": order.get("currency"),
        "type": tx_type,
        "created_at": utcnow_iso(),
        **changes,
    }
    try:
        return repository.insert_transaction(row) or row
    except Exception as e:
        if not is_unique_violation(e):
            raise
        # Ligne créée entre-temps: on la met à jour
        existing = repository.get_order_transaction(order["id"], tx_type)
        if not existing:
            raise
        return repository.update_transaction(existing["id"], changes) or existing

def record_pending_payment(order: Dict[str, Any], *, gateway: str, gateway_transaction_id: str) -> Dict[str, Any]:
    return _upsert(order, PAYMENT, {
        "amount": order.get("total"),
        "status": "pending",
        "description": f"Paiement commande {order.get('order_number')}",
        "gateway": gateway,
        "gateway_transaction_id": gateway_transaction_id,
    })

def record_payment(
    order: Dict[str, Any],
    *,
    gateway: str,
    gateway_transaction_id: str,
    gateway_response: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    tx = _upsert(order, PAYMENT, {
        "amount": order.get("total"),
        "status": "completed",
        "description": f"Paiement commande {order.get('order_number')}",
        "gateway": gateway,
        "gateway_transaction_id": gateway_transaction_id,
        "gateway_response": summarize_response(gateway_response),
        "failure_reason": None,
        "processed_at": utcnow_iso(),
    })
    logger.info("transactions.payment_recorded order=%s gateway=%s", order.get("id"), gateway)
    return tx

def record_failure(
    order: Dict[str, Any],
    *,
    gateway: str,
    reason: str,
    gateway_transaction_id: Optional[str] = None,
) -> Dict[str, Any]:
    changes: Dict[str, Any] = {
        "amount": order.get("total"),
        "status": "failed",
        "gateway": gateway,
        "failure_reason": reason,
        "processed_at": utcnow_iso(),
    }
    if gateway_transaction_id:
        changes["gateway_transaction_id"] = gateway_transaction_id
    return _upsert(order, PAYMENT, changes)

def record_refund(
    order: Dict[str, Any],
    *,
    gateway: str,
    amount: float,
    refund_id: Optional[str],
    reason: Optional[str] = None,
    gateway_response: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    return _upsert(order, REFUND, {
        "amount": -abs(float(amount)),
        "status": "completed",
        "description": f"Remboursement commande {order.get('order_number')}" + (f": {reason}" if reason else ""),
        "gateway": gateway,
        "gateway_transaction_id": refund_id,
        "gateway_response": summarize_response(gateway_response),
        "processed_at": utcnow_iso(),
    })

def list_user_transactions(user_id: str, limit: int = 50):
    return repository.list_user_transactions(user_id, limit=limit)
