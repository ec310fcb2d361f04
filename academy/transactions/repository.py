"""
Accès aux données pour la feature 'transactions' (journal des mouvements financiers).
Contrainte: une ligne par (order_id, type).
"""
import logging
from typing import Any, Dict, List, Optional
import academy.infra.supabase_client as supabase_client

logger = logging.getLogger(__name__)

def _table():
    return supabase_client.get_service_supabase().table("transactions")

def _first(res) -> Optional[Dict[str, Any]]:
    rows = getattr(res, "data", None) or []
    return rows[0] if rows else None

def get_order_transaction(order_id: str, tx_type: str) -> Optional[Dict[str, Any]]:
    try:
        return _first(
            _table().select("*").eq("order_id", str(order_id)).eq("type", tx_type).limit(1).execute()
        )
    except Exception:
        logger.exception("transactions.repository.get_order_transaction failed order_id=%s type=%s", order_id, tx_type)
        return None

def insert_transaction(row: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Insertion brute; les erreurs (dont 23505) remontent."""
    return _first(_table().insert(row).execute())

def update_transaction(tx_id: str, changes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    return _first(_table().update(changes).eq("id", str(tx_id)).execute())

def list_user_transactions(user_id: str, limit: int = 50) -> List[Dict[str, Any]]:
    if not user_id:
        return []
    try:
        res = (
            _table()
            .select("*")
            .eq("user_id", user_id)
            .order("created_at", desc=True)
            .limit(limit)
            .execute()
        )
        return res.data or []
    except Exception:
        logger.exception("transactions.repository.list_user_transactions failed user_id=%s", user_id)
        return []
