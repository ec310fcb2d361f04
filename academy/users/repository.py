"""Couche d’accès aux données (Supabase) pour le domaine Utilisateurs.
Les lectures « catchent » les exceptions et renvoient None; la création laisse
remonter l'erreur d'unicité pour que le service relise l'utilisateur existant.
"""
import logging
from typing import Any, Dict, Optional
import academy.infra.supabase_client as supabase_client

logger = logging.getLogger(__name__)

def _first(res) -> Optional[Dict[str, Any]]:
    rows = getattr(res, "data", None) or []
    return rows[0] if rows else None

def get_user_by_email(email: str) -> Optional[dict]:
    """Récupère un utilisateur par email (normalisé en minuscules); None si introuvable/erreur."""
    if not email:
        return None
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("users")
            .select("*")
            .eq("email", email.strip().lower())
            .limit(1)
            .execute()
        )
        return _first(res)
    except Exception:
        logger.exception("users.repository.get_user_by_email failed")
        return None

def get_user_by_id(user_id: str) -> Optional[dict]:
    if not user_id:
        return None
    try:
        res = (
            supabase_client.get_service_supabase()
            .table("users")
            .select("*")
            .eq("id", user_id)
            .limit(1)
            .execute()
        )
        return _first(res)
    except Exception:
        logger.exception("users.repository.get_user_by_id failed user_id=%s", user_id)
        return None

def insert_user(row: Dict[str, Any]) -> Optional[dict]:
    """Insère un utilisateur (table users). Les erreurs (dont 23505) remontent à l'appelant."""
    res = supabase_client.get_service_supabase().table("users").insert(row).execute()
    return _first(res)

def update_user(user_id: str, changes: Dict[str, Any]) -> Optional[dict]:
    try:
        res = supabase_client.get_service_supabase().table("users").update(changes).eq("id", user_id).execute()
        return _first(res)
    except Exception:
        logger.exception("users.repository.update_user failed user_id=%s", user_id)
        return None
