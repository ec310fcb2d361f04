"""
Métadonnées échangées avec les prestataires (order_id, user_id) et extraction
des identifiants depuis les objets Stripe / ressources PayPal.
"""
from typing import Any, Dict, Optional, Tuple

# module academy.payments.metadata
def make_metadata(order: Dict[str, Any]) -> Dict[str, str]:
    """Métadonnées Stripe/PayPal: jamais de données sensibles (mot de passe, email)."""
    return {
        "order_id": str(order.get("id") or ""),
        "order_number": str(order.get("order_number") or ""),
        "user_id": str(order.get("user_id") or ""),
    }

def order_id_from_stripe_object(obj: Dict[str, Any]) -> Optional[str]:
    """order_id depuis session/payment_intent Stripe (metadata puis client_reference_id)."""
    meta = (obj or {}).get("metadata") or {}
    return meta.get("order_id") or (obj or {}).get("client_reference_id") or None

def event_object(event: Dict[str, Any]) -> Dict[str, Any]:
    return ((event or {}).get("data") or {}).get("object") or {}

def paypal_capture_refs(resource: Dict[str, Any]) -> Tuple[Optional[str], Optional[str], Optional[str]]:
    """
    Depuis une ressource capture PayPal (webhook PAYMENT.CAPTURE.*):
    retourne (paypal_order_id, capture_id, order_id interne via custom_id).
    """
    resource = resource or {}
    related = ((resource.get("supplementary_data") or {}).get("related_ids") or {})
    return related.get("order_id"), resource.get("id"), resource.get("custom_id")
