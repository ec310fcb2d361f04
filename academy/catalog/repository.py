"""
Accès aux données du catalogue (tables courses, products) et compteurs des cours.
"""
import logging
from typing import Any, Dict, Optional
import academy.infra.supabase_client as supabase_client

logger = logging.getLogger(__name__)

# module academy.catalog.repository
def _get_one(table: str, item_id: str) -> Optional[Dict[str, Any]]:
    res = (
        supabase_client.get_service_supabase()
        .table(table)
        .select("*")
        .eq("id", str(item_id))
        .limit(1)
        .execute()
    )
    rows = res.data or []
    return rows[0] if rows else None

def get_course(course_id: str) -> Optional[Dict[str, Any]]:
    """Cours par id; None si introuvable ou en cas d'erreur."""
    if not course_id:
        return None
    try:
        return _get_one("courses", course_id)
    except Exception:
        logger.exception("catalog.repository.get_course failed course_id=%s", course_id)
        return None

def get_product(product_id: str) -> Optional[Dict[str, Any]]:
    if not product_id:
        return None
    try:
        return _get_one("products", product_id)
    except Exception:
        logger.exception("catalog.repository.get_product failed product_id=%s", product_id)
        return None

def adjust_course_stats(course_id: str, enrollments: int, revenue: float) -> bool:
    """
    Ajuste atomiquement enrollment_count et revenue d'un cours (fonction SQL adjust_course_stats).
    - enrollments/revenue peuvent être négatifs (remboursement)
    - Retour: True si succès, False sinon (erreur loguée)
    """
    try:
        supabase_client.get_service_supabase().rpc(
            "adjust_course_stats",
            {"p_course_id": str(course_id), "p_enrollments": int(enrollments), "p_revenue": float(revenue)},
        ).execute()
        return True
    except Exception:
        logger.exception("catalog.repository.adjust_course_stats failed course_id=%s", course_id)
        return False
