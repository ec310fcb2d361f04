import logging
from typing import Any, Dict, Optional

from academy.users import repository as users_repository
from .repository import get_user_from_access_token as _repo_get_user_from_token

logger = logging.getLogger(__name__)

ROLES = ("admin", "instructor", "student")

def determine_role(metadata: Optional[Dict[str, Any]], profile: Optional[Dict[str, Any]] = None) -> str:
    """
    Rôle effectif: celui du profil applicatif (table users) prime sur user_metadata.
    Valeur par défaut: student.
    """
    for source in (profile or {}, metadata or {}):
        role_lower = str(source.get("role", "")).lower()
        if role_lower in ROLES:
            return role_lower
    return "student"

def get_user_from_token(access_token: str) -> Dict[str, Any]:
    """Normalise user issu de supabase.auth.get_user(access_token):
    - Retourne {id, email, metadata, role, first_name, last_name, token}
    - Le profil applicatif est lu en best-effort (rôle, noms)
    """
    raw = _repo_get_user_from_token(access_token)
    uid = raw.get("id")
    email = raw.get("email")
    metadata = raw.get("user_metadata") or {}
    profile = users_repository.get_user_by_id(uid) if uid else None
    role = determine_role(metadata, profile)
    return {
        "id": uid,
        "email": email,
        "metadata": metadata,
        "role": role,
        "first_name": (profile or {}).get("first_name") or metadata.get("first_name"),
        "last_name": (profile or {}).get("last_name") or metadata.get("last_name"),
        "token": access_token,
    }
