"""
Provisionnement des comptes invités (checkout sans connexion).
"""
import logging
import secrets
from typing import Any, Dict, Optional, Tuple

import bcrypt

from academy.errors import PersistenceError
from academy.infra.supabase_client import is_unique_violation
from academy.utils.dates import utcnow_iso
from . import repository

logger = logging.getLogger(__name__)

TEMP_PASSWORD_BYTES = 12

def hash_password(password: str) -> str:
    # Hash bcrypt avec salt auto
    salt = bcrypt.gensalt()
    return bcrypt.hashpw(password.encode("utf-8"), salt).decode("utf-8")

def verify_password(password: str, password_hash: str) -> bool:
    try:
        return bcrypt.checkpw(password.encode("utf-8"), (password_hash or "").encode("utf-8"))
    except ValueError:
        return False

def generate_temp_password() -> str:
    return secrets.token_urlsafe(TEMP_PASSWORD_BYTES)

def provision_guest_user(
    email: str,
    first_name: str,
    last_name: str,
    phone: Optional[str] = None,
) -> Tuple[Dict[str, Any], Optional[str]]:
    """
    Retrouve l'utilisateur par email ou crée un compte invité.
    Retour: (user, temp_password) où temp_password vaut None si le compte existait.
    - Nouveau compte: mot de passe aléatoire hashé bcrypt, email_verified=True
    - Course entre deux checkouts invités: la violation d'unicité relit l'existant
    """
    email_norm = (email or "").strip().lower()
    existing = repository.get_user_by_email(email_norm)
    if existing:
        return existing, None

    temp_password = generate_temp_password()
    row = {
        "email": email_norm,
        "first_name": (first_name or "").strip(),
        "last_name": (last_name or "").strip(),
        "phone": phone,
        "password_hash": hash_password(temp_password),
        "role": "student",
        "status": "active",
        "email_verified": True,
        "is_guest": True,
        "created_at": utcnow_iso(),
    }
    try:
        created = repository.insert_user(row)
    except Exception as e:
        if is_unique_violation(e):
            existing = repository.get_user_by_email(email_norm)
            if existing:
                return existing, None
        logger.exception("users.provision_guest_user failed")
        raise PersistenceError("Impossible de créer le compte invité") from e
    if not created:
        raise PersistenceError("Impossible de créer le compte invité")
    logger.info("users.guest_created user_id=%s", created.get("id"))
    return created, temp_password

def reset_temp_password(user_id: str) -> Optional[str]:
    """
    Nouveau mot de passe temporaire pour un compte invité dont les identifiants
    n'ont jamais été envoyés. None si la mise à jour échoue.
    """
    temp_password = generate_temp_password()
    changes = {"password_hash": hash_password(temp_password), "updated_at": utcnow_iso()}
    if not repository.update_user(user_id, changes):
        logger.error("users.reset_temp_password failed user_id=%s", user_id)
        return None
    logger.info("users.temp_password_reset user_id=%s", user_id)
    return temp_password
