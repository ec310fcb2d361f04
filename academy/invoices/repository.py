"""
Accès aux données pour la feature 'invoices'. Contrainte: une facture par commande.
"""
import logging
from typing import Any, Dict, List, Optional
import academy.infra.supabase_client as supabase_client

logger = logging.getLogger(__name__)

def _table():
    return supabase_client.get_service_supabase().table("invoices")

def _first(res) -> Optional[Dict[str, Any]]:
    rows = getattr(res, "data", None) or []
    return rows[0] if rows else None

def count_invoices() -> int:
    try:
        res = _table().select("id", count="exact").execute()
        return int(res.count or 0)
    except Exception:
        logger.exception("invoices.repository.count_invoices failed")
        return 0

def insert_invoice(row: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Insertion brute; les erreurs (numéro ou commande déjà facturée) remontent."""
    return _first(_table().insert(row).execute())

def get_invoice_by_order(order_id: str) -> Optional[Dict[str, Any]]:
    try:
        return _first(_table().select("*").eq("order_id", str(order_id)).limit(1).execute())
    except Exception:
        logger.exception("invoices.repository.get_invoice_by_order failed order_id=%s", order_id)
        return None

def get_invoice(invoice_id: str) -> Optional[Dict[str, Any]]:
    try:
        return _first(_table().select("*").eq("id", str(invoice_id)).limit(1).execute())
    except Exception:
        logger.exception("invoices.repository.get_invoice failed invoice_id=%s", invoice_id)
        return None

def list_user_invoices(user_id: str, limit: int = 50) -> List[Dict[str, Any]]:
    if not user_id:
        return []
    try:
        res = (
            _table()
            .select("*")
            .eq("user_id", user_id)
            .order("invoice_date", desc=True)
            .limit(limit)
            .execute()
        )
        return res.data or []
    except Exception:
        logger.exception("invoices.repository.list_user_invoices failed user_id=%s", user_id)
        return []
