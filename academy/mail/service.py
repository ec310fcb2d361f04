"""
Emails liés aux commandes: bienvenue (compte invité créé) ou confirmation d'achat.
"""
import logging
from typing import Any, Dict, Optional

from academy.config import FRONTEND_URL, LOGIN_URL
from . import dispatcher

logger = logging.getLogger(__name__)

WELCOME_TEMPLATE = "welcome_credentials"
PURCHASE_TEMPLATE = "purchase_confirmation"

def _context(order: Dict[str, Any], user: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "first_name": user.get("first_name") or "",
        "email": user.get("email"),
        "order_number": order.get("order_number"),
        "items": order.get("items") or [],
        "subtotal": order.get("subtotal"),
        "discount": order.get("discount"),
        "tax": order.get("tax"),
        "total": order.get("total"),
        "currency": (order.get("currency") or "").upper(),
        "courses_url": f"{FRONTEND_URL}/my-courses",
        "login_url": LOGIN_URL,
    }

def send_welcome_credentials(order: Dict[str, Any], user: Dict[str, Any], temp_password: str) -> bool:
    ctx = {**_context(order, user), "temp_password": temp_password}
    return dispatcher.send_mail(user.get("email"), "Bienvenue ! Vos accès à vos cours", WELCOME_TEMPLATE, ctx)

def send_purchase_confirmation(order: Dict[str, Any], user: Dict[str, Any]) -> bool:
    return dispatcher.send_mail(
        user.get("email"),
        f"Confirmation de votre commande {order.get('order_number')}",
        PURCHASE_TEMPLATE,
        _context(order, user),
    )

def send_order_confirmation(order: Dict[str, Any], user: Optional[Dict[str, Any]]) -> bool:
    """
    Choisit l'email selon la commande: identifiants pour un compte invité créé
    par ce checkout (mot de passe temporaire encore présent), confirmation sinon.
    """
    if not user or not user.get("email"):
        logger.warning("mail.order_confirmation skipped: utilisateur introuvable order=%s", order.get("id"))
        return False
    temp_password = (order.get("metadata") or {}).get("temp_password")
    if order.get("is_new_user") and temp_password:
        return send_welcome_credentials(order, user, temp_password)
    return send_purchase_confirmation(order, user)
