"""
Cas d'usage admin sur les commandes: consultation, remboursement, annulation,
relance des effets post-paiement, suppression.
"""
import logging
from typing import Any, Dict, List, Optional

from academy.errors import NotFoundError, ValidationError
from academy.orders import repository as orders_repository
from academy.orders import service as orders_service
from academy.payments import service as payments_service

logger = logging.getLogger(__name__)

DELETABLE = (orders_service.PENDING, orders_service.FAILED, orders_service.CANCELLED)

def list_orders(status: Optional[str] = None, limit: int = 50, offset: int = 0) -> List[Dict[str, Any]]:
    return orders_repository.list_orders(status=status, limit=limit, offset=offset)

def get_order(order_id: str) -> Dict[str, Any]:
    order = orders_repository.get_order_by_id(order_id)
    if not order:
        raise NotFoundError("Commande introuvable")
    return order

def refund_order(order_id: str, admin: Dict[str, Any], amount: Optional[float] = None, reason: Optional[str] = None) -> Dict[str, Any]:
    return payments_service.refund_order(order_id, actor=admin, amount=amount, reason=reason, enforce_owner=False)

def cancel_order(order_id: str, reason: Optional[str] = None) -> Dict[str, Any]:
    return orders_service.cancel_order(order_id, reason)

def refulfill_order(order_id: str) -> Dict[str, Any]:
    """Rejoue les effets post-paiement (idempotents) d'une commande payée."""
    order = get_order(order_id)
    if order.get("status") != orders_service.COMPLETED:
        raise ValidationError("Seules les commandes payées peuvent être relancées")
    result = payments_service.run_fulfillment(order)
    logger.info("admin.refulfill order=%s status=%s", order_id, result["status"])
    return result

def delete_order(order_id: str) -> bool:
    order = get_order(order_id)
    if order.get("status") not in DELETABLE:
        raise ValidationError("Une commande payée ou remboursée ne peut pas être supprimée")
    if not orders_repository.delete_order(order_id):
        raise ValidationError("Suppression impossible")
    logger.info("admin.order_deleted order=%s", order_id)
    return True
