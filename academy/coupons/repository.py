"""
Accès aux données pour la feature 'coupons'.
"""
import logging
from typing import Any, Dict, Optional
import academy.infra.supabase_client as supabase_client

logger = logging.getLogger(__name__)

def get_active_coupon_by_code(code: str) -> Optional[Dict[str, Any]]:
    """Coupon actif par code (stocké en majuscules); None si absent ou erreur."""
    if not code:
        return None
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("coupons")
            .select("*")
            .eq("code", code)
            .eq("is_active", True)
            .limit(1)
            .execute()
        )
        rows = res.data or []
        return rows[0] if rows else None
    except Exception:
        logger.exception("coupons.repository.get_active_coupon_by_code failed code=%s", code)
        return None

def increment_usage(coupon_id: str) -> bool:
    """Incrément atomique de used_count (fonction SQL increment_coupon_usage)."""
    try:
        supabase_client.get_service_supabase().rpc(
            "increment_coupon_usage", {"p_coupon_id": str(coupon_id)}
        ).execute()
        return True
    except Exception:
        logger.exception("coupons.repository.increment_usage failed coupon_id=%s", coupon_id)
        return False
