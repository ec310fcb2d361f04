"""
Adaptateur Stripe: centralise les appels et la configuration Stripe.
"""
import logging
import stripe
from typing import Any, Dict, List, Optional
from fastapi import Request

from academy.config import STRIPE_SECRET_KEY, STRIPE_WEBHOOK_SECRET, CURRENCY
from academy.utils.money import to_cents

logger = logging.getLogger(__name__)

# module academy.payments.stripe_client
def require_stripe():
    """
    Prépare et retourne le module stripe prêt à l’emploi.
    - Configure stripe.api_key via STRIPE_SECRET_KEY si disponible.
    - En absence de clé, les appels Stripe échoueront côté SDK (ex: No API key provided).
    """
    if STRIPE_SECRET_KEY:
        stripe.api_key = STRIPE_SECRET_KEY
    return stripe

def as_dict(obj: Any) -> Dict[str, Any]:
    """StripeObject -> dict récursif (to_dict_recursive selon les versions du SDK)."""
    if obj is None:
        return {}
    if isinstance(obj, dict) and not hasattr(obj, "to_dict_recursive") and not hasattr(obj, "to_dict"):
        return obj
    for attr in ("to_dict_recursive", "to_dict"):
        fn = getattr(obj, attr, None)
        if callable(fn):
            return fn()
    return dict(obj)

def line_items_for(lines: List[Dict[str, Any]], tax: float, currency: str = CURRENCY) -> List[Dict[str, Any]]:
    """
    Lignes Checkout: une ligne par article au prix catalogue + une ligne de taxe.
    La remise est portée par un coupon Stripe (voir create_session).
    """
    items: List[Dict[str, Any]] = []
    for ln in lines:
        items.append({
            "quantity": int(ln["quantity"]),
            "price_data": {
                "currency": currency,
                "unit_amount": to_cents(ln["unit_price"]),
                "product_data": {"name": ln["name"]},
            },
        })
    if tax and tax > 0:
        items.append({
            "quantity": 1,
            "price_data": {
                "currency": currency,
                "unit_amount": to_cents(tax),
                "product_data": {"name": "Taxes"},
            },
        })
    return items

def create_session(
    *,
    line_items: List[Dict[str, Any]],
    success_url: str,
    cancel_url: str,
    metadata: Dict[str, Any],
    discount_amount: float = 0.0,
    customer_id: Optional[str] = None,
    customer_email: Optional[str] = None,
    idempotency_key: Optional[str] = None,
    currency: str = CURRENCY,
) -> Dict[str, Any]:
    """
    Crée une session Stripe Checkout (mode payment).
    - metadata: {"order_id", "user_id"} recopiées sur le PaymentIntent
    - discount_amount > 0: coupon Stripe ponctuel amount_off
    Retour: dict session (ex: {"id": "cs_test_...", "url": "https://..."})
    """
    require_stripe()
    params: Dict[str, Any] = {
        "line_items": line_items,
        "mode": "payment",
        "success_url": success_url,
        "cancel_url": cancel_url,
        "metadata": metadata,
        "payment_intent_data": {"metadata": metadata},
        "payment_method_types": ["card"],
    }
    if customer_id:
        params["customer"] = customer_id
    elif customer_email:
        params["customer_email"] = customer_email
    coupon_id = None
    if discount_amount and discount_amount > 0:
        coupon_params: Dict[str, Any] = {
            "amount_off": to_cents(discount_amount),
            "currency": currency,
            "duration": "once",
            "max_redemptions": 1,
        }
        if idempotency_key:
            coupon_params["idempotency_key"] = f"{idempotency_key}-coupon"
        coupon_id = stripe.Coupon.create(**coupon_params)["id"]
        params["discounts"] = [{"coupon": coupon_id}]
    if idempotency_key:
        params["idempotency_key"] = idempotency_key
    try:
        session = stripe.checkout.Session.create(**params)
    except Exception:
        if coupon_id:
            _delete_coupon(coupon_id)
        raise
    return as_dict(session)

def _delete_coupon(coupon_id: str) -> None:
    # Coupon ponctuel inutilisable sans sa session
    try:
        stripe.Coupon.delete(coupon_id)
    except Exception:
        logger.exception("stripe_client.delete_coupon failed coupon=%s", coupon_id)

def get_session(session_id: str) -> Dict[str, Any]:
    """
    Récupère une session Stripe Checkout par son identifiant.
    Retour: dict session incluant "id", "payment_status", "payment_intent", "metadata", etc.
    """
    require_stripe()
    return as_dict(stripe.checkout.Session.retrieve(session_id))

def create_refund(*, session_id: str, amount: float, reason: Optional[str] = None, idempotency_key: Optional[str] = None) -> Dict[str, Any]:
    """
    Rembourse le PaymentIntent associé à la session Checkout.
    - amount: montant (devise) converti en cents
    """
    require_stripe()
    session = get_session(session_id)
    payment_intent = session.get("payment_intent")
    if isinstance(payment_intent, dict):
        payment_intent = payment_intent.get("id")
    if not payment_intent:
        raise ValueError(f"Session {session_id} sans payment_intent")
    params: Dict[str, Any] = {
        "payment_intent": payment_intent,
        "amount": to_cents(amount),
        "metadata": {"reason": reason or ""},
    }
    if idempotency_key:
        params["idempotency_key"] = idempotency_key
    return as_dict(stripe.Refund.create(**params))

def create_customer(*, email: Optional[str], name: Optional[str] = None, metadata: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    require_stripe()
    return as_dict(stripe.Customer.create(email=email, name=name, metadata=metadata or {}))

def list_payment_methods(customer_id: str) -> List[Dict[str, Any]]:
    require_stripe()
    res = stripe.PaymentMethod.list(customer=customer_id, type="card")
    return [as_dict(pm) for pm in (as_dict(res).get("data") or [])]

async def parse_event(request: Request) -> Dict[str, Any]:
    """
    Parse et valide un événement Stripe signé (webhook).
    - Lit le body brut + en-tête Stripe-Signature
    - Valide la signature via Webhook.construct_event (STRIPE_WEBHOOK_SECRET)
    Retour: l’événement (dict) si la signature est valide; lève sinon.
    """
    require_stripe()
    payload = await request.body()
    sig_header = request.headers.get("stripe-signature") or ""
    event = stripe.Webhook.construct_event(payload, sig_header, STRIPE_WEBHOOK_SECRET or "")
    return as_dict(event)
