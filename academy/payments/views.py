import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException, Request
from starlette.concurrency import run_in_threadpool

from academy.customers import service as customers_service
from academy.invoices import service as invoices_service
from academy.transactions import service as transactions_service
from academy.utils.rate_limit import optional_rate_limit
from academy.utils.security import require_user
from academy.payments import paypal_client
from academy.payments import service as payments_service
from academy.payments import stripe_client
from academy.payments.schemas import (
    CheckoutRequest,
    CheckoutResponse,
    CouponPreviewRequest,
    GuestCheckoutRequest,
    GuestCheckoutResponse,
    GuestVerifyRequest,
    GuestVerifyResponse,
    PaymentStatusResponse,
    RefundRequest,
    WebhookAck,
)

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/v1/payments", tags=["Payments API"])

# module academy.payments.views
@router.post("/checkout", response_model=CheckoutResponse, dependencies=[Depends(optional_rate_limit(times=10, seconds=60))])
def create_checkout(req: CheckoutRequest, user: Dict[str, Any] = Depends(require_user)):
    """
    Crée la commande et la session de paiement (Stripe Checkout ou PayPal) de l’utilisateur connecté.
    - Entrée: {items: [{course_id|product_id, quantity}], payment_method, coupon_code?, billing_address?}
    - Montants recalculés côté serveur (prix catalogue, remise puis taxe)
    - Total nul: commande confirmée immédiatement (free=true), sans prestataire
    - Erreurs: 400 panier/coupon invalide, 502 prestataire, 500 persistance
    """
    return payments_service.start_checkout(
        user,
        items=req.items_payload(),
        payment_method=req.payment_method,
        coupon_code=req.coupon_code,
        billing_address=req.billing_payload(),
    )

@router.get("/verify-session/{session_id}", response_model=PaymentStatusResponse)
def verify_session(session_id: str, user: Dict[str, Any] = Depends(require_user)):
    """Polling après retour Stripe: confirme la commande si la session est payée (idempotent)."""
    return payments_service.verify_stripe_session(session_id, user)

@router.post("/paypal/capture/{paypal_order_id}", response_model=PaymentStatusResponse)
def capture_paypal(paypal_order_id: str, user: Dict[str, Any] = Depends(require_user)):
    """Capture PayPal après approbation de l’acheteur (retour ?token=<paypal_order_id>)."""
    return payments_service.capture_paypal_order(paypal_order_id, user)

@router.post("/guest/checkout", response_model=GuestCheckoutResponse, dependencies=[Depends(optional_rate_limit(times=5, seconds=60))])
def guest_checkout(req: GuestCheckoutRequest):
    """
    Checkout sans connexion: compte créé ou retrouvé par email.
    Les identifiants d’un nouveau compte sont envoyés par email après paiement, jamais dans la réponse.
    """
    return payments_service.start_guest_checkout(
        email=req.email,
        first_name=req.first_name,
        last_name=req.last_name,
        phone=req.phone,
        items=req.items_payload(),
        payment_method=req.payment_method,
        coupon_code=req.coupon_code,
        billing_address=req.billing_payload(),
    )

@router.post("/guest/verify-payment/{session_id}", response_model=GuestVerifyResponse, dependencies=[Depends(optional_rate_limit(times=10, seconds=60))])
def guest_verify_payment(session_id: str, req: GuestVerifyRequest):
    """Vérifie le paiement d’un checkout invité; l’email doit être celui de la commande."""
    return payments_service.verify_guest_payment(session_id, req.email)

@router.post("/refund/{order_id}")
def refund(order_id: str, req: RefundRequest, user: Dict[str, Any] = Depends(require_user)):
    """
    Remboursement par le propriétaire de la commande.
    - Commande payée depuis moins de 30 jours
    - Erreurs: 400 hors délai/statut, 403 autre utilisateur, 404, 502 prestataire
    """
    result = payments_service.refund_order(order_id, actor=user, amount=req.amount, reason=req.reason)
    return {"status": "ok", "order_number": result["order"].get("order_number"), "refund": result["refund"]}

@router.get("/invoices")
def list_invoices(user: Dict[str, Any] = Depends(require_user)):
    return {"invoices": invoices_service.list_user_invoices(user["id"])}

@router.get("/invoices/{invoice_id}")
def get_invoice(invoice_id: str, user: Dict[str, Any] = Depends(require_user)):
    return invoices_service.get_invoice_for_user(invoice_id, user)

@router.get("/transactions")
def list_transactions(user: Dict[str, Any] = Depends(require_user)):
    return {"transactions": transactions_service.list_user_transactions(user["id"])}

@router.get("/methods")
def list_payment_methods(user: Dict[str, Any] = Depends(require_user)):
    """Cartes enregistrées (Stripe) de l’utilisateur."""
    try:
        return {"methods": customers_service.list_payment_methods(user)}
    except Exception:
        logger.exception("payments.views.list_payment_methods failed user_id=%s", user.get("id"))
        raise HTTPException(status_code=502, detail="Moyens de paiement indisponibles")

@router.post("/coupons/validate", dependencies=[Depends(optional_rate_limit(times=20, seconds=60))])
def validate_coupon(req: CouponPreviewRequest):
    """Aperçu d’un code promo sur le panier (aucune utilisation comptabilisée)."""
    return payments_service.preview_coupon(req.code, [it.model_dump() for it in req.items])

@router.post("/webhook/stripe", response_model=WebhookAck, include_in_schema=False)
async def webhook_stripe(request: Request):
    """
    Webhook Stripe: signature vérifiée (Stripe-Signature + STRIPE_WEBHOOK_SECRET) avant tout traitement.
    - 400 si signature/payload invalide (Stripe réessaie)
    - 500 si le traitement échoue (Stripe réessaie); types inconnus acquittés
    """
    try:
        event = await stripe_client.parse_event(request)
    except Exception:
        logger.warning("payments.webhook_stripe invalid signature or payload")
        raise HTTPException(status_code=400, detail="Invalid Stripe webhook payload")
    try:
        result = await run_in_threadpool(payments_service.handle_stripe_event, event)
        logger.info("payments.webhook_stripe type=%s handled=%s", event.get("type"), result.get("handled"))
        return result
    except HTTPException:
        raise
    except Exception:
        logger.exception("payments.webhook_stripe processing failed type=%s", event.get("type"))
        raise HTTPException(status_code=500, detail="Webhook processing failed")

@router.post("/webhook/paypal", response_model=WebhookAck, include_in_schema=False)
async def webhook_paypal(request: Request):
    """Webhook PayPal: signature vérifiée via l’API PayPal (PAYPAL_WEBHOOK_ID)."""
    try:
        event = await request.json()
        verified = await run_in_threadpool(paypal_client.verify_webhook_signature, dict(request.headers), event)
    except Exception:
        logger.exception("payments.webhook_paypal verification failed")
        raise HTTPException(status_code=400, detail="Invalid PayPal webhook payload")
    if not verified:
        raise HTTPException(status_code=400, detail="Invalid PayPal webhook signature")
    try:
        result = await run_in_threadpool(payments_service.handle_paypal_event, event)
        logger.info("payments.webhook_paypal type=%s handled=%s", event.get("event_type"), result.get("handled"))
        return result
    except HTTPException:
        raise
    except Exception:
        logger.exception("payments.webhook_paypal processing failed type=%s", event.get("event_type"))
        raise HTTPException(status_code=500, detail="Webhook processing failed")
