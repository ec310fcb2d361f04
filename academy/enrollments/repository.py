"""
Accès aux données pour la feature 'enrollments'. Contrainte: unique (student_id, course_id).
"""
import logging
from typing import Any, Dict, List, Optional
import academy.infra.supabase_client as supabase_client

logger = logging.getLogger(__name__)

def _table():
    return supabase_client.get_service_supabase().table("enrollments")

def _first(res) -> Optional[Dict[str, Any]]:
    rows = getattr(res, "data", None) or []
    return rows[0] if rows else None

def get_enrollment(course_id: str, user_id: str) -> Optional[Dict[str, Any]]:
    """Inscription d'un étudiant à un cours. Les erreurs remontent (appelant transactionnel)."""
    return _first(
        _table()
        .select("*")
        .eq("course_id", str(course_id))
        .eq("student_id", str(user_id))
        .limit(1)
        .execute()
    )

def insert_enrollment(row: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    return _first(_table().insert(row).execute())

def update_enrollment(enrollment_id: str, changes: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    return _first(_table().update(changes).eq("id", str(enrollment_id)).execute())

def list_order_enrollments(order_id: str) -> List[Dict[str, Any]]:
    try:
        res = _table().select("*").eq("order_id", str(order_id)).execute()
        return res.data or []
    except Exception:
        logger.exception("enrollments.repository.list_order_enrollments failed order_id=%s", order_id)
        return []
