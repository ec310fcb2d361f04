"""
Accès aux données pour la feature 'orders' (table orders).

Lectures: erreurs loguées, valeurs neutres (None, [], 0).
Transitions de statut: UPDATE conditionnel sur le statut courant; les erreurs
remontent (un échec ne doit pas être confondu avec « déjà traitée »).
"""
import logging
from typing import Any, Dict, Iterable, List, Optional
import academy.infra.supabase_client as supabase_client

logger = logging.getLogger(__name__)

# module academy.orders.repository
def _table():
    return supabase_client.get_service_supabase().table("orders")

def _first(res) -> Optional[Dict[str, Any]]:
    rows = getattr(res, "data", None) or []
    return rows[0] if rows else None

def count_orders() -> int:
    try:
        res = _table().select("id", count="exact").execute()
        return int(res.count or 0)
    except Exception:
        logger.exception("orders.repository.count_orders failed")
        return 0

def insert_order(row: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Insère une commande; les erreurs (dont l'unicité du numéro) remontent."""
    return _first(_table().insert(row).execute())

def get_order_by_id(order_id: str) -> Optional[Dict[str, Any]]:
    if not order_id:
        return None
    try:
        return _first(_table().select("*").eq("id", str(order_id)).limit(1).execute())
    except Exception:
        logger.exception("orders.repository.get_order_by_id failed order_id=%s", order_id)
        return None

def get_order_by_payment_intent(payment_intent_id: str) -> Optional[Dict[str, Any]]:
    if not payment_intent_id:
        return None
    try:
        return _first(
            _table().select("*").eq("payment_intent_id", payment_intent_id).limit(1).execute()
        )
    except Exception:
        logger.exception("orders.repository.get_order_by_payment_intent failed pid=%s", payment_intent_id)
        return None

def set_payment_intent(order_id: str, payment_intent_id: str) -> bool:
    """Enregistre l'identifiant prestataire; True seulement si une ligne a été écrite."""
    try:
        res = _table().update({"payment_intent_id": payment_intent_id}).eq("id", str(order_id)).execute()
        return bool(res.data)
    except Exception:
        logger.exception("orders.repository.set_payment_intent failed order_id=%s", order_id)
        return False

def transition_status(
    order_id: str,
    from_statuses: Iterable[str],
    changes: Dict[str, Any],
) -> Optional[Dict[str, Any]]:
    """
    UPDATE orders SET <changes> WHERE id = :id AND status IN (:from_statuses).
    Retour: la ligne mise à jour, ou None si aucune ligne ne correspondait
    (statut déjà changé par un autre appelant).
    """
    res = (
        _table()
        .update(changes)
        .eq("id", str(order_id))
        .in_("status", list(from_statuses))
        .execute()
    )
    return _first(res)

def update_order(order_id: str, changes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    try:
        return _first(_table().update(changes).eq("id", str(order_id)).execute())
    except Exception:
        logger.exception("orders.repository.update_order failed order_id=%s", order_id)
        return None

def list_orders(
    *,
    user_id: Optional[str] = None,
    status: Optional[str] = None,
    limit: int = 50,
    offset: int = 0,
) -> List[Dict[str, Any]]:
    try:
        q = _table().select("*")
        if user_id:
            q = q.eq("user_id", user_id)
        if status:
            q = q.eq("status", status)
        res = q.order("created_at", desc=True).range(offset, offset + limit - 1).execute()
        return res.data or []
    except Exception:
        logger.exception("orders.repository.list_orders failed user_id=%s status=%s", user_id, status)
        return []

def delete_order(order_id: str) -> bool:
    try:
        res = _table().delete().eq("id", str(order_id)).execute()
        return bool(res.data)
    except Exception:
        logger.exception("orders.repository.delete_order failed order_id=%s", order_id)
        return False
