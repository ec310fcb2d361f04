"""
Cas d'usage 'payments': orchestre panier, commandes, prestataires et effets post-paiement.

Tous les déclencheurs de confirmation (webhook Stripe/PayPal, polling
verify-session, capture PayPal, vérification invité) convergent vers
complete_order. Seul l'appelant qui gagne la transition conditionnelle
vers completed exécute les effets: transaction, facture, inscriptions, email.
"""
import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional, Tuple

from fastapi import HTTPException

from academy.config import CHECKOUT_CANCEL_PATH, CHECKOUT_SUCCESS_PATH, FRONTEND_URL, REFUND_WINDOW_DAYS
from academy.catalog import repository as catalog_repository
from academy.coupons import service as coupons_service
from academy.customers import service as customers_service
from academy.enrollments import service as enrollments_service
from academy.errors import (
    NotFoundError,
    PartialSideEffectError,
    PermissionDeniedError,
    PersistenceError,
    ProviderError,
    ValidationError,
)
from academy.invoices import service as invoices_service
from academy.mail import service as mail_service
from academy.orders import repository as orders_repository
from academy.orders import service as orders_service
from academy.transactions import service as transactions_service
from academy.users import repository as users_repository
from academy.users import service as users_service
from academy.utils.dates import parse_iso, utcnow, utcnow_iso
from academy.utils.money import round_money
from academy.utils.numbering import make_reference
from academy.utils.security import is_admin
from . import cart
from . import metadata as meta
from . import paypal_client
from . import pricing
from . import stripe_client

logger = logging.getLogger(__name__)

STRIPE = "stripe"
PAYPAL = "paypal"
FREE = "free"
PROVIDERS = (STRIPE, PAYPAL)

PAID_SESSION_STATUSES = ("paid", "no_payment_required")
PAYPAL_FINAL_FAILURES = ("DECLINED", "VOIDED", "FAILED")

# --- URLs de retour ---

def _front_url(path: str, query: str) -> str:
    sep = "&" if "?" in path else "?"
    return f"{FRONTEND_URL}{path}{sep}{query}"

def _return_urls(provider: str, order: Dict[str, Any], guest: bool) -> Tuple[str, str]:
    extra = "&guest=1" if guest else ""
    number = order.get("order_number")
    if provider == STRIPE:
        # {CHECKOUT_SESSION_ID} est remplacé par Stripe
        success = _front_url(CHECKOUT_SUCCESS_PATH, f"session_id={{CHECKOUT_SESSION_ID}}&order={number}{extra}")
    else:
        # PayPal ajoute token=<id commande PayPal>&PayerID=...
        success = _front_url(CHECKOUT_SUCCESS_PATH, f"provider={provider}&order={number}{extra}")
    cancel = _front_url(CHECKOUT_CANCEL_PATH, f"order={number}{extra}")
    return success, cancel

# --- Checkout ---

def price_cart(items: List[Dict[str, Any]], coupon_code: Optional[str] = None) -> Tuple[List[Dict[str, Any]], Dict[str, float], Optional[str]]:
    """
    Panier -> (lignes résolues, montants, coupon_id).
    Aucune écriture: un panier vide ou un coupon invalide lève ValidationError.
    """
    lines = cart.resolve_lines(cart.normalize_items(items))
    subtotal = cart.subtotal_of(lines)
    discount = 0.0
    coupon_id = None
    if coupon_code:
        validation = coupons_service.validate_coupon(coupon_code, subtotal)
        if not validation.valid:
            raise ValidationError(validation.message or "Code promo invalide")
        discount = validation.discount
        coupon_id = validation.coupon_id
    return lines, pricing.compute_totals(subtotal, discount), coupon_id

def _check_provider(payment_method: str) -> str:
    provider = (payment_method or "").lower()
    if provider not in PROVIDERS:
        raise ValidationError("Moyen de paiement non supporté")
    return provider

def _create_order(
    *,
    user_id: str,
    lines: List[Dict[str, Any]],
    totals: Dict[str, float],
    coupon_id: Optional[str],
    payment_method: str,
    billing_address: Optional[Dict[str, Any]],
    is_new_user: bool = False,
    metadata: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    order = orders_service.create_pending_order(
        user_id=user_id,
        lines=lines,
        totals=totals,
        payment_method=payment_method,
        coupon_id=coupon_id,
        billing_address=billing_address,
        is_new_user=is_new_user,
        metadata=metadata,
    )
    coupons_service.register_usage(coupon_id)
    return order

def _checkout_response(order: Dict[str, Any], provider: str, session_id: str, url: Optional[str], free: bool = False) -> Dict[str, Any]:
    return {
        "provider": provider,
        "session_id": session_id,
        "url": url,
        "order_id": order["id"],
        "order_number": order.get("order_number"),
        "total": order.get("total"),
        "free": free,
    }

def _complete_free_order(order: Dict[str, Any], guest: bool) -> Dict[str, Any]:
    """Total nul: pas de prestataire, confirmation immédiate."""
    payment_id = make_reference(FREE)
    if not orders_repository.update_order(order["id"], {"payment_intent_id": payment_id, "payment_method": FREE}):
        raise PersistenceError("Impossible d'enregistrer la commande gratuite")
    result = complete_order(payment_id, gateway=FREE, gateway_transaction_id=payment_id, fallback_order_id=order["id"])
    success_url, _ = _return_urls(FREE, order, guest)
    logger.info("payments.free_order completed order=%s", order["id"])
    response = _checkout_response(result["order"], FREE, payment_id, success_url, free=True)
    response["status"] = result["order"].get("status")
    return response

def _start_payment(
    order: Dict[str, Any],
    lines: List[Dict[str, Any]],
    totals: Dict[str, float],
    *,
    guest: bool = False,
    customer_id: Optional[str] = None,
    customer_email: Optional[str] = None,
) -> Dict[str, Any]:
    if totals["total"] <= 0:
        return _complete_free_order(order, guest)

    provider = order["payment_method"]
    success_url, cancel_url = _return_urls(provider, order, guest)
    try:
        if provider == STRIPE:
            session = stripe_client.create_session(
                line_items=stripe_client.line_items_for(lines, totals["tax"]),
                success_url=success_url,
                cancel_url=cancel_url,
                metadata=meta.make_metadata(order),
                discount_amount=totals["discount"],
                customer_id=customer_id,
                customer_email=None if customer_id else customer_email,
                idempotency_key=f"checkout-{order['id']}",
            )
            provider_id, url = session.get("id"), session.get("url")
        else:
            created = paypal_client.create_order(
                lines=lines,
                totals=totals,
                order_id=order["id"],
                order_number=order.get("order_number") or "",
                return_url=success_url,
                cancel_url=cancel_url,
            )
            provider_id, url = created.get("id"), created.get("approve_url")
        if not provider_id:
            raise ValueError("identifiant de session absent")
    except Exception as e:
        logger.exception("payments.start_payment failed provider=%s order=%s", provider, order["id"])
        try:
            orders_service.mark_failed(order["id"], f"Création du paiement {provider} impossible")
        except Exception:
            logger.exception("payments.start_payment mark_failed failed order=%s", order["id"])
        raise ProviderError(f"Création du paiement {provider} impossible", provider=provider) from e

    if not orders_repository.set_payment_intent(order["id"], provider_id):
        logger.error("payments.start_payment intent not persisted order=%s pid=%s", order["id"], provider_id)
        raise PersistenceError("Impossible d'enregistrer la session de paiement")
    try:
        transactions_service.record_pending_payment(order, gateway=provider, gateway_transaction_id=provider_id)
    except Exception:
        logger.exception("payments.start_payment pending transaction failed order=%s", order["id"])
    logger.info("payments.checkout_started order=%s provider=%s total=%s", order["id"], provider, totals["total"])
    return _checkout_response(order, provider, provider_id, url)

def start_checkout(
    user: Dict[str, Any],
    *,
    items: List[Dict[str, Any]],
    payment_method: str = STRIPE,
    coupon_code: Optional[str] = None,
    billing_address: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Checkout d'un utilisateur connecté.
    Retour: {provider, session_id, url, order_id, order_number, total, free}
    """
    provider = _check_provider(payment_method)
    lines, totals, coupon_id = price_cart(items, coupon_code)
    order = _create_order(
        user_id=user["id"],
        lines=lines,
        totals=totals,
        coupon_id=coupon_id,
        payment_method=provider,
        billing_address=billing_address,
    )
    customer_id = None
    if provider == STRIPE and totals["total"] > 0:
        customer_id = customers_service.get_or_create_stripe_customer(user)
    return _start_payment(order, lines, totals, customer_id=customer_id, customer_email=user.get("email"))

def start_guest_checkout(
    *,
    email: str,
    first_name: str,
    last_name: str,
    phone: Optional[str] = None,
    items: List[Dict[str, Any]],
    payment_method: str = STRIPE,
    coupon_code: Optional[str] = None,
    billing_address: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    """
    Checkout invité: compte créé (ou retrouvé) par email avant le paiement.
    Le mot de passe temporaire reste côté serveur (metadata de la commande)
    jusqu'à l'envoi de l'email de bienvenue; il n'est jamais renvoyé.
    """
    provider = _check_provider(payment_method)
    lines, totals, coupon_id = price_cart(items, coupon_code)
    user, temp_password = users_service.provision_guest_user(email, first_name, last_name, phone)
    is_new_user = temp_password is not None
    order_meta: Dict[str, Any] = {"guest_checkout": True}
    if is_new_user:
        order_meta["temp_password"] = temp_password
    order = _create_order(
        user_id=user["id"],
        lines=lines,
        totals=totals,
        coupon_id=coupon_id,
        payment_method=provider,
        billing_address=billing_address,
        is_new_user=is_new_user,
        metadata=order_meta,
    )
    result = _start_payment(order, lines, totals, guest=True, customer_email=user.get("email"))
    return {**result, "is_new_user": is_new_user, "user_id": user["id"]}

# --- Confirmation / échec ---

def _summary(order: Dict[str, Any], **extra: Any) -> Dict[str, Any]:
    return {
        "success": order.get("status") == orders_service.COMPLETED,
        "status": order.get("status"),
        "order_id": order.get("id"),
        "order_number": order.get("order_number"),
        "total": order.get("total"),
        **extra,
    }

def run_fulfillment(
    order: Dict[str, Any],
    *,
    gateway: Optional[str] = None,
    gateway_transaction_id: Optional[str] = None,
    gateway_response: Optional[Dict[str, Any]] = None,
    send_email: bool = True,
) -> Dict[str, Any]:
    """
    Effets post-paiement, chacun idempotent: transaction, facture, inscriptions, email.
    Un échec n'annule jamais la commande: il est logué et enregistré
    (fulfillment_status=partial, fulfillment_errors) pour relance admin.
    """
    errors: List[Dict[str, Any]] = []
    gateway = gateway or order.get("payment_method")
    gateway_tx = gateway_transaction_id or order.get("capture_id") or order.get("payment_intent_id")

    tx: Optional[Dict[str, Any]] = None
    try:
        tx = transactions_service.record_payment(
            order, gateway=gateway, gateway_transaction_id=gateway_tx, gateway_response=gateway_response
        )
    except Exception as e:
        logger.exception("payments.fulfillment transaction failed order=%s", order["id"])
        errors.append({"step": "transaction", "ref": order["id"], "error": str(e)})

    try:
        invoices_service.generate_for_order(order)
    except Exception as e:
        logger.exception("payments.fulfillment invoice failed order=%s", order["id"])
        errors.append({"step": "invoice", "ref": order["id"], "error": str(e)})

    try:
        enrollments_service.enroll_order(order, transaction_id=(tx or {}).get("transaction_id"))
    except PartialSideEffectError as e:
        errors.extend(e.failures)
    except Exception as e:
        logger.exception("payments.fulfillment enrollments failed order=%s", order["id"])
        errors.append({"step": "enrollment", "ref": order["id"], "error": str(e)})

    changes: Dict[str, Any] = {"updated_at": utcnow_iso()}
    if send_email and not order.get("confirmation_sent_at"):
        user = users_repository.get_user_by_id(order.get("user_id"))
        order_meta = order.get("metadata") or {}
        mail_order = order
        if order.get("is_new_user") and user and not order_meta.get("temp_password"):
            # Identifiants jamais reçus et mot de passe effacé: on en régénère un
            temp_password = users_service.reset_temp_password(user["id"])
            if temp_password:
                mail_order = {**order, "metadata": {**order_meta, "temp_password": temp_password}}
            else:
                user = None
                errors.append({"step": "email", "ref": order["id"], "error": "temp password reset failed"})
        if user and mail_service.send_order_confirmation(mail_order, user):
            changes["confirmation_sent_at"] = utcnow_iso()
            # Mot de passe en clair conservé tant que l'email de bienvenue n'est pas parti
            if "temp_password" in order_meta:
                changes["metadata"] = {k: v for k, v in order_meta.items() if k != "temp_password"}
        elif user:
            logger.warning("payments.fulfillment confirmation email not sent order=%s", order["id"])

    changes["fulfillment_status"] = "partial" if errors else "fulfilled"
    changes["fulfillment_errors"] = errors or None
    if errors:
        logger.error("payments.fulfillment partial order=%s errors=%s", order["id"], errors)
    updated = orders_repository.update_order(order["id"], changes)
    return {"order": updated or {**order, **changes}, "status": changes["fulfillment_status"], "errors": errors}

def complete_order(
    payment_intent_id: Optional[str],
    *,
    gateway: str,
    gateway_transaction_id: Optional[str] = None,
    fallback_order_id: Optional[str] = None,
    gateway_response: Optional[Dict[str, Any]] = None,
    capture_id: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Confirme le paiement d'une commande (idempotent).
    Retour: {"order", "completed_now", "fulfillment"?}; completed_now=False si
    la commande était déjà confirmée (ou en statut terminal) ou si un autre
    appelant a gagné la transition.
    """
    order = orders_service.resolve_order(payment_intent_id, fallback_order_id, patch_intent=True)
    if not order:
        raise NotFoundError("Commande introuvable")
    status = order.get("status")
    if status == orders_service.COMPLETED:
        logger.info("payments.complete_order already completed order=%s", order["id"])
        return {"order": order, "completed_now": False}
    if status not in orders_service.COMPLETABLE:
        logger.warning("payments.complete_order ignored order=%s status=%s", order["id"], status)
        return {"order": order, "completed_now": False}

    updated = orders_service.mark_completed(order["id"], capture_id=capture_id)
    if not updated:
        logger.info("payments.complete_order lost race order=%s", order["id"])
        return {"order": orders_repository.get_order_by_id(order["id"]) or order, "completed_now": False}

    order = {**order, **updated}
    logger.info("payments.complete_order completed order=%s gateway=%s", order["id"], gateway)
    fulfillment = run_fulfillment(
        order,
        gateway=gateway,
        gateway_transaction_id=gateway_transaction_id or payment_intent_id,
        gateway_response=gateway_response,
    )
    return {"order": fulfillment["order"], "completed_now": True, "fulfillment": fulfillment["status"]}

def fail_order(
    payment_intent_id: Optional[str],
    *,
    gateway: str,
    reason: str,
    fallback_order_id: Optional[str] = None,
    gateway_transaction_id: Optional[str] = None,
) -> Optional[Dict[str, Any]]:
    """Échec signalé par le prestataire: pending -> failed, sans autre effet. Une commande payée reste payée."""
    order = orders_service.resolve_order(payment_intent_id, fallback_order_id)
    if not order:
        logger.warning("payments.fail_order unknown pid=%s fallback=%s", payment_intent_id, fallback_order_id)
        return None
    if order.get("status") not in orders_service.FAILABLE:
        logger.info("payments.fail_order ignored order=%s status=%s", order["id"], order.get("status"))
        return order
    updated = orders_service.mark_failed(order["id"], reason)
    if not updated:
        return orders_repository.get_order_by_id(order["id"]) or order
    try:
        transactions_service.record_failure(
            order, gateway=gateway, reason=reason, gateway_transaction_id=gateway_transaction_id
        )
    except Exception:
        logger.exception("payments.fail_order transaction failed order=%s", order["id"])
    logger.info("payments.fail_order order=%s reason=%s", order["id"], reason)
    return {**order, **updated}

# --- Stripe: polling et webhooks ---

def _payment_intent_of(session: Dict[str, Any]) -> Optional[str]:
    pi = session.get("payment_intent")
    if isinstance(pi, dict):
        return pi.get("id")
    return pi

def _get_stripe_session(session_id: str) -> Dict[str, Any]:
    try:
        return stripe_client.get_session(session_id)
    except Exception as e:
        logger.exception("payments.stripe get_session failed sid=%s", session_id)
        raise ProviderError("Session Stripe introuvable", provider=STRIPE) from e

def _settle_stripe_session(session: Dict[str, Any], order: Dict[str, Any]) -> Dict[str, Any]:
    payment_status = session.get("payment_status")
    if payment_status in PAID_SESSION_STATUSES:
        result = complete_order(
            session.get("id"),
            gateway=STRIPE,
            gateway_transaction_id=_payment_intent_of(session),
            fallback_order_id=order["id"],
            gateway_response=session,
        )
        order = result["order"]
    elif session.get("status") == "expired":
        order = fail_order(session.get("id"), gateway=STRIPE, reason="Session de paiement expirée", fallback_order_id=order["id"]) or order
    return _summary(order, payment_status=payment_status)

def _check_owner(order: Dict[str, Any], user: Dict[str, Any]) -> None:
    if order.get("user_id") != user.get("id") and not is_admin(user):
        raise PermissionDeniedError("Session appartenant à un autre utilisateur")

def verify_stripe_session(session_id: str, user: Dict[str, Any]) -> Dict[str, Any]:
    """
    Polling après redirection Stripe: confirme la commande si la session est payée.
    Sans effet (et sans appel Stripe) si la commande est déjà confirmée.
    """
    order = orders_service.resolve_order(session_id)
    if order:
        _check_owner(order, user)
        if order.get("status") == orders_service.COMPLETED:
            return _summary(order, payment_status="paid")
    session = _get_stripe_session(session_id)
    if not order:
        order = orders_service.resolve_order(session_id, meta.order_id_from_stripe_object(session), patch_intent=True)
        if not order:
            raise NotFoundError("Commande introuvable")
        _check_owner(order, user)
    return _settle_stripe_session(session, order)

def handle_stripe_event(event: Dict[str, Any]) -> Dict[str, Any]:
    """
    Traite un événement Stripe déjà authentifié (signature vérifiée).
    Les types non gérés et les commandes inconnues sont acquittés.
    """
    etype = (event or {}).get("type") or ""
    obj = meta.event_object(event)
    order_id = meta.order_id_from_stripe_object(obj)
    try:
        if etype in ("checkout.session.completed", "checkout.session.async_payment_succeeded"):
            if obj.get("payment_status") in PAID_SESSION_STATUSES:
                complete_order(
                    obj.get("id"),
                    gateway=STRIPE,
                    gateway_transaction_id=_payment_intent_of(obj),
                    fallback_order_id=order_id,
                    gateway_response=obj,
                )
            else:
                logger.info("payments.stripe_webhook awaiting async payment sid=%s", obj.get("id"))
        elif etype == "checkout.session.async_payment_failed":
            fail_order(obj.get("id"), gateway=STRIPE, reason="Paiement asynchrone refusé", fallback_order_id=order_id)
        elif etype == "checkout.session.expired":
            fail_order(obj.get("id"), gateway=STRIPE, reason="Session de paiement expirée", fallback_order_id=order_id)
        elif etype == "payment_intent.succeeded":
            order = orders_repository.get_order_by_id(order_id) if order_id else None
            if order:
                complete_order(
                    order.get("payment_intent_id"),
                    gateway=STRIPE,
                    gateway_transaction_id=obj.get("id"),
                    fallback_order_id=order["id"],
                    gateway_response=obj,
                )
        elif etype == "payment_intent.payment_failed":
            reason = (obj.get("last_payment_error") or {}).get("message") or "Paiement refusé"
            fail_order(None, gateway=STRIPE, reason=reason, fallback_order_id=order_id, gateway_transaction_id=obj.get("id"))
        else:
            logger.info("payments.stripe_webhook ignored type=%s", etype)
            return {"received": True, "handled": False}
    except NotFoundError:
        logger.warning("payments.stripe_webhook unknown order type=%s id=%s", etype, obj.get("id"))
        return {"received": True, "handled": False}
    return {"received": True, "handled": True}

# --- PayPal ---

def _capture_paypal(order: Dict[str, Any], paypal_order_id: str) -> Dict[str, Any]:
    if order.get("status") == orders_service.COMPLETED:
        return _summary(order)
    try:
        capture = paypal_client.capture_order(paypal_order_id)
    except paypal_client.PayPalError as e:
        if e.issue != "ORDER_ALREADY_CAPTURED":
            logger.exception("payments.paypal capture failed order=%s", order["id"])
            raise ProviderError("Capture PayPal impossible", provider=PAYPAL) from e
        try:
            capture = paypal_client.get_order(paypal_order_id)
        except paypal_client.PayPalError as e2:
            raise ProviderError("Commande PayPal introuvable", provider=PAYPAL) from e2

    status = capture.get("status")
    if status == "COMPLETED":
        result = complete_order(
            paypal_order_id,
            gateway=PAYPAL,
            gateway_transaction_id=capture.get("capture_id") or paypal_order_id,
            capture_id=capture.get("capture_id"),
            fallback_order_id=order["id"],
            gateway_response=capture.get("raw"),
        )
        return _summary(result["order"])
    if status in PAYPAL_FINAL_FAILURES:
        fail_order(paypal_order_id, gateway=PAYPAL, reason=f"Capture PayPal refusée (statut={status})", fallback_order_id=order["id"])
    raise ValidationError(f"Paiement PayPal non finalisé (statut={status})")

def capture_paypal_order(paypal_order_id: str, user: Dict[str, Any]) -> Dict[str, Any]:
    """Capture après approbation de l'acheteur (retour PayPal), réservée au propriétaire."""
    order = orders_service.resolve_order(paypal_order_id)
    if not order:
        raise NotFoundError("Commande introuvable")
    _check_owner(order, user)
    return _capture_paypal(order, paypal_order_id)

def handle_paypal_event(event: Dict[str, Any]) -> Dict[str, Any]:
    etype = (event or {}).get("event_type") or ""
    resource = (event or {}).get("resource") or {}
    try:
        if etype == "PAYMENT.CAPTURE.COMPLETED":
            paypal_order_id, capture_id, order_id = meta.paypal_capture_refs(resource)
            complete_order(
                paypal_order_id,
                gateway=PAYPAL,
                gateway_transaction_id=capture_id,
                capture_id=capture_id,
                fallback_order_id=order_id,
                gateway_response=resource,
            )
        elif etype in ("PAYMENT.CAPTURE.DENIED", "PAYMENT.CAPTURE.DECLINED"):
            paypal_order_id, capture_id, order_id = meta.paypal_capture_refs(resource)
            fail_order(
                paypal_order_id,
                gateway=PAYPAL,
                reason="Capture PayPal refusée",
                fallback_order_id=order_id,
                gateway_transaction_id=capture_id,
            )
        elif etype == "CHECKOUT.ORDER.APPROVED":
            # Acheteur parti avant le retour sur le site: capture côté serveur
            units = resource.get("purchase_units") or [{}]
            order = orders_service.resolve_order(resource.get("id"), units[0].get("custom_id"), patch_intent=True)
            if order and order.get("status") == orders_service.PENDING:
                _capture_paypal(order, resource.get("id"))
        else:
            logger.info("payments.paypal_webhook ignored type=%s", etype)
            return {"received": True, "handled": False}
    except NotFoundError:
        logger.warning("payments.paypal_webhook unknown order type=%s id=%s", etype, resource.get("id"))
        return {"received": True, "handled": False}
    return {"received": True, "handled": True}

# --- Invité ---

def verify_guest_payment(session_id: str, email: str) -> Dict[str, Any]:
    """
    Vérification post-redirection d'un checkout invité (Stripe ou PayPal).
    L'email doit correspondre au compte de la commande.
    """
    order = orders_service.resolve_order(session_id)
    session: Optional[Dict[str, Any]] = None
    if not order:
        session = _get_stripe_session(session_id)
        order = orders_service.resolve_order(session_id, meta.order_id_from_stripe_object(session), patch_intent=True)
    if not order:
        raise NotFoundError("Commande introuvable")

    owner = users_repository.get_user_by_id(order.get("user_id"))
    if not owner or (owner.get("email") or "").lower() != (email or "").strip().lower():
        raise PermissionDeniedError("Email ne correspondant pas à la commande")

    if order.get("status") == orders_service.COMPLETED:
        result = _summary(order)
    elif order.get("payment_method") == PAYPAL:
        result = _capture_paypal(order, session_id)
    else:
        session = session or _get_stripe_session(session_id)
        if session.get("payment_status") not in PAID_SESSION_STATUSES:
            raise ValidationError("Paiement non finalisé")
        result = _settle_stripe_session(session, order)

    is_new_user = bool(order.get("is_new_user"))
    message = (
        "Paiement confirmé. Vos identifiants de connexion vous ont été envoyés par email."
        if is_new_user
        else "Paiement confirmé. Vos cours sont disponibles dans votre compte."
    )
    return {**result, "is_new_user": is_new_user, "message": message}

# --- Remboursement ---

def refund_order(
    order_id: str,
    *,
    actor: Dict[str, Any],
    amount: Optional[float] = None,
    reason: Optional[str] = None,
    enforce_owner: bool = True,
    now=None,
) -> Dict[str, Any]:
    """
    Rembourse une commande payée dans la fenêtre de REFUND_WINDOW_DAYS jours.
    Le prestataire est appelé en premier: en cas d'échec, aucun état ne change.
    """
    order = orders_repository.get_order_by_id(order_id)
    if not order:
        raise NotFoundError("Commande introuvable")
    if enforce_owner and order.get("user_id") != actor.get("id"):
        raise PermissionDeniedError("Commande appartenant à un autre utilisateur")
    if order.get("status") != orders_service.COMPLETED:
        raise ValidationError("Seules les commandes payées peuvent être remboursées")

    now = now or utcnow()
    paid_at = parse_iso(order.get("paid_at"))
    if not paid_at or now > paid_at + timedelta(days=REFUND_WINDOW_DAYS):
        raise ValidationError(f"Délai de remboursement de {REFUND_WINDOW_DAYS} jours dépassé")

    total = round_money(order.get("total") or 0)
    if total <= 0:
        raise ValidationError("Commande gratuite: rien à rembourser")
    refund_amount = round_money(total if amount is None else amount)
    if refund_amount <= 0 or refund_amount > total:
        raise ValidationError("Montant de remboursement invalide")

    provider = order.get("payment_method")
    idempotency_key = f"refund-{order['id']}"
    try:
        if provider == STRIPE:
            provider_refund = stripe_client.create_refund(
                session_id=order.get("payment_intent_id"),
                amount=refund_amount,
                reason=reason,
                idempotency_key=idempotency_key,
            )
        elif provider == PAYPAL:
            if not order.get("capture_id"):
                raise ValidationError("Capture PayPal introuvable pour cette commande")
            provider_refund = paypal_client.refund_capture(
                order["capture_id"], refund_amount, note=reason, request_id=idempotency_key
            )
        else:
            raise ValidationError("Moyen de paiement non remboursable")
    except HTTPException:
        raise
    except Exception as e:
        logger.exception("payments.refund provider failed order=%s provider=%s", order["id"], provider)
        raise ProviderError("Remboursement refusé par le prestataire", provider=provider) from e

    refund = {
        "amount": refund_amount,
        "reason": reason,
        "processed_at": utcnow_iso(),
        "processed_by": actor.get("id"),
        "gateway_refund_id": provider_refund.get("id"),
    }
    updated = orders_service.mark_refunded(order["id"], refund)
    if not updated:
        logger.error("payments.refund state changed concurrently order=%s", order["id"])
        raise ValidationError("Commande déjà remboursée")
    logger.info("payments.refund order=%s amount=%s provider=%s", order["id"], refund_amount, provider)

    try:
        transactions_service.record_refund(
            order,
            gateway=provider,
            amount=refund_amount,
            refund_id=provider_refund.get("id"),
            reason=reason,
            gateway_response=provider_refund,
        )
    except Exception:
        logger.exception("payments.refund transaction failed order=%s", order["id"])

    ratio = refund_amount / total
    for course_id, share in enrollments_service.course_shares(order):
        catalog_repository.adjust_course_stats(course_id, -1, -round_money(share * ratio))
    enrollments_service.revoke_order_enrollments(order, reason)

    return {"order": {**order, **updated}, "refund": refund}

# --- Lecture ---

def preview_coupon(code: str, items: List[Dict[str, Any]]) -> Dict[str, Any]:
    """Aperçu d'un code promo sur un panier (aucune mutation)."""
    lines = cart.resolve_lines(cart.normalize_items(items))
    subtotal = cart.subtotal_of(lines)
    validation = coupons_service.validate_coupon(code, subtotal)
    totals = pricing.compute_totals(subtotal, validation.discount if validation.valid else 0.0)
    return {
        "valid": validation.valid,
        "discount": validation.discount if validation.valid else 0.0,
        "message": validation.message,
        "totals": totals,
    }
