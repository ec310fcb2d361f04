"""
Clients Stripe associés aux utilisateurs et moyens de paiement enregistrés.
Best-effort: un échec Stripe ici ne bloque jamais un checkout.
"""
import logging
from typing import Any, Dict, List, Optional

from academy.payments import stripe_client
from academy.utils.dates import utcnow_iso
from . import repository

logger = logging.getLogger(__name__)

def get_or_create_stripe_customer(user: Dict[str, Any]) -> Optional[str]:
    user_id = user.get("id")
    if not user_id:
        return None
    profile = repository.get_profile(user_id)
    if profile and profile.get("stripe_customer_id"):
        return profile["stripe_customer_id"]
    try:
        name = " ".join(p for p in (user.get("first_name"), user.get("last_name")) if p) or None
        customer = stripe_client.create_customer(email=user.get("email"), name=name, metadata={"user_id": user_id})
        customer_id = customer.get("id")
        repository.upsert_profile({
            "user_id": user_id,
            "stripe_customer_id": customer_id,
            "updated_at": utcnow_iso(),
        })
        logger.info("customers.stripe_created user_id=%s", user_id)
        return customer_id
    except Exception:
        logger.exception("customers.get_or_create_stripe_customer failed user_id=%s", user_id)
        return None

def list_payment_methods(user: Dict[str, Any]) -> List[Dict[str, Any]]:
    """Cartes enregistrées côté Stripe: [{id, brand, last4, exp_month, exp_year}]."""
    profile = repository.get_profile(user.get("id"))
    customer_id = (profile or {}).get("stripe_customer_id")
    if not customer_id:
        return []
    methods = stripe_client.list_payment_methods(customer_id)
    normalized = []
    for pm in methods:
        card = pm.get("card") or {}
        normalized.append({
            "id": pm.get("id"),
            "brand": card.get("brand"),
            "last4": card.get("last4"),
            "exp_month": card.get("exp_month"),
            "exp_year": card.get("exp_year"),
        })
    return normalized
