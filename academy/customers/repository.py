"""
Profils clients prestataires (table customer_profiles): user -> stripe_customer_id / paypal_payer_id.
"""
import logging
from typing import Any, Dict, Optional
import academy.infra.supabase_client as supabase_client

logger = logging.getLogger(__name__)

def get_profile(user_id: str) -> Optional[Dict[str, Any]]:
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("customer_profiles")
            .select("*")
            .eq("user_id", str(user_id))
            .limit(1)
            .execute()
        )
        rows = res.data or []
        return rows[0] if rows else None
    except Exception:
        logger.exception("customers.repository.get_profile failed user_id=%s", user_id)
        return None

def upsert_profile(row: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    res = (
        supabase_client.get_service_supabase()
        .table("customer_profiles")
        .upsert(row, on_conflict="user_id")
        .execute()
    )
    rows = res.data or []
    return rows[0] if rows else None
