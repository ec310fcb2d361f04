"""
Adaptateur PayPal (API REST v2 Orders) via httpx.

- Jeton OAuth2 client_credentials mis en cache (TTLCache, expires_in - 60s)
- Timeouts explicites; toute erreur HTTP/réseau devient PayPalError
- Vérification des webhooks via /v1/notifications/verify-webhook-signature
"""
import logging
from typing import Any, Dict, List, Optional

import httpx

from academy.config import (
    CURRENCY,
    PAYPAL_CLIENT_ID,
    PAYPAL_CLIENT_SECRET,
    PAYPAL_MODE,
    PAYPAL_TIMEOUT_SECONDS,
    PAYPAL_WEBHOOK_ID,
)
from academy.utils.cache import TTLCache
from academy.utils.money import round_money

logger = logging.getLogger(__name__)

SANDBOX_URL = "https://api-m.sandbox.paypal.com"
LIVE_URL = "https://api-m.paypal.com"
TOKEN_MARGIN_SECONDS = 60
TOKEN_CACHE_KEY = "paypal_access_token"

_token_cache = TTLCache(default_ttl=300)
_http_client: Optional[httpx.Client] = None


class PayPalError(Exception):
    def __init__(self, message: str, status_code: Optional[int] = None, payload: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.status_code = status_code
        self.payload = payload or {}

    @property
    def issue(self) -> Optional[str]:
        details = self.payload.get("details") or []
        if details and isinstance(details[0], dict):
            return details[0].get("issue")
        return self.payload.get("name")


def base_url() -> str:
    return LIVE_URL if PAYPAL_MODE == "live" else SANDBOX_URL

def get_http_client() -> httpx.Client:
    global _http_client
    if _http_client is None:
        _http_client = httpx.Client(
            base_url=base_url(),
            timeout=httpx.Timeout(PAYPAL_TIMEOUT_SECONDS, connect=5.0),
        )
    return _http_client

def close() -> None:
    """Ferme le client HTTP et vide le cache de jeton (shutdown / tests)."""
    global _http_client
    if _http_client is not None:
        _http_client.close()
    _http_client = None
    _token_cache.invalidate()

def _format_amount(value: float) -> str:
    return f"{round_money(value):.2f}"

def get_access_token() -> str:
    cached = _token_cache.get(TOKEN_CACHE_KEY)
    if cached:
        return cached
    if not PAYPAL_CLIENT_ID or not PAYPAL_CLIENT_SECRET:
        raise PayPalError("PAYPAL_CLIENT_ID/PAYPAL_CLIENT_SECRET manquants")
    try:
        resp = get_http_client().post(
            "/v1/oauth2/token",
            auth=(PAYPAL_CLIENT_ID, PAYPAL_CLIENT_SECRET),
            data={"grant_type": "client_credentials"},
            headers={"Accept": "application/json"},
        )
    except httpx.HTTPError as e:
        raise PayPalError(f"PayPal token request failed: {e}") from e
    if resp.status_code != 200:
        raise PayPalError(f"PayPal token request failed: {resp.status_code}", resp.status_code)
    data = resp.json()
    token = data.get("access_token")
    if not token:
        raise PayPalError("PayPal token response sans access_token")
    ttl = max(int(data.get("expires_in") or 0) - TOKEN_MARGIN_SECONDS, 0)
    _token_cache.set(TOKEN_CACHE_KEY, token, ttl=ttl)
    return token

def _request(method: str, path: str, *, json: Optional[Dict[str, Any]] = None, request_id: Optional[str] = None) -> Dict[str, Any]:
    headers = {
        "Authorization": f"Bearer {get_access_token()}",
        "Content-Type": "application/json",
    }
    if request_id:
        headers["PayPal-Request-Id"] = request_id
    try:
        resp = get_http_client().request(method, path, json=json, headers=headers)
    except httpx.HTTPError as e:
        raise PayPalError(f"PayPal {method} {path} failed: {e}") from e
    if resp.status_code == 401:
        _token_cache.invalidate(TOKEN_CACHE_KEY)
    if resp.status_code >= 400:
        try:
            payload = resp.json()
        except ValueError:
            payload = {"message": resp.text[:200]}
        raise PayPalError(f"PayPal {method} {path} -> {resp.status_code}", resp.status_code, payload)
    return resp.json() if resp.content else {}

def create_order(
    *,
    lines: List[Dict[str, Any]],
    totals: Dict[str, float],
    order_id: str,
    order_number: str,
    return_url: str,
    cancel_url: str,
    currency: str = CURRENCY,
) -> Dict[str, Any]:
    """
    Crée une commande PayPal (intent CAPTURE) avec le détail item_total/tax_total/discount.
    custom_id porte l'id de la commande interne (repli pour les webhooks).
    Retour: {"id", "status", "approve_url", "raw"}
    """
    cur = currency.upper()
    breakdown: Dict[str, Any] = {
        "item_total": {"currency_code": cur, "value": _format_amount(totals["subtotal"])},
        "tax_total": {"currency_code": cur, "value": _format_amount(totals["tax"])},
    }
    if totals.get("discount"):
        breakdown["discount"] = {"currency_code": cur, "value": _format_amount(totals["discount"])}
    body = {
        "intent": "CAPTURE",
        "purchase_units": [{
            "reference_id": order_number,
            "custom_id": order_id,
            "invoice_id": order_number,
            "amount": {
                "currency_code": cur,
                "value": _format_amount(totals["total"]),
                "breakdown": breakdown,
            },
            "items": [
                {
                    "name": ln["name"][:127],
                    "quantity": str(int(ln["quantity"])),
                    "unit_amount": {"currency_code": cur, "value": _format_amount(ln["unit_price"])},
                    "category": "DIGITAL_GOODS",
                }
                for ln in lines
            ],
        }],
        "application_context": {
            "return_url": return_url,
            "cancel_url": cancel_url,
            "shipping_preference": "NO_SHIPPING",
            "user_action": "PAY_NOW",
        },
    }
    data = _request("POST", "/v2/checkout/orders", json=body, request_id=f"create-{order_id}")
    approve_url = next(
        (link.get("href") for link in data.get("links") or [] if link.get("rel") in ("approve", "payer-action")),
        None,
    )
    return {"id": data.get("id"), "status": data.get("status"), "approve_url": approve_url, "raw": data}

def capture_order(paypal_order_id: str) -> Dict[str, Any]:
    """
    Capture une commande PayPal approuvée.
    Retour: {"status", "capture_id", "raw"}; capture_id = purchase_units[0].payments.captures[0].id
    """
    data = _request("POST", f"/v2/checkout/orders/{paypal_order_id}/capture", json={}, request_id=f"capture-{paypal_order_id}")
    return {"status": data.get("status"), "capture_id": extract_capture_id(data), "raw": data}

def get_order(paypal_order_id: str) -> Dict[str, Any]:
    data = _request("GET", f"/v2/checkout/orders/{paypal_order_id}")
    return {"status": data.get("status"), "capture_id": extract_capture_id(data), "raw": data}

def refund_capture(capture_id: str, amount: float, *, currency: str = CURRENCY, note: Optional[str] = None, request_id: Optional[str] = None) -> Dict[str, Any]:
    body: Dict[str, Any] = {"amount": {"currency_code": currency.upper(), "value": _format_amount(amount)}}
    if note:
        body["note_to_payer"] = note[:255]
    return _request("POST", f"/v2/payments/captures/{capture_id}/refund", json=body, request_id=request_id)

def extract_capture_id(order_data: Dict[str, Any]) -> Optional[str]:
    try:
        captures = order_data["purchase_units"][0]["payments"]["captures"]
        return captures[0]["id"] if captures else None
    except (KeyError, IndexError, TypeError):
        return None

def verify_webhook_signature(headers: Dict[str, str], event: Dict[str, Any]) -> bool:
    """
    Vérifie la signature d'un webhook PayPal via l'API officielle.
    Sans PAYPAL_WEBHOOK_ID configuré: refus.
    """
    if not PAYPAL_WEBHOOK_ID:
        logger.warning("paypal.webhook rejected: PAYPAL_WEBHOOK_ID non configuré")
        return False
    h = {k.lower(): v for k, v in (headers or {}).items()}
    body = {
        "auth_algo": h.get("paypal-auth-algo"),
        "cert_url": h.get("paypal-cert-url"),
        "transmission_id": h.get("paypal-transmission-id"),
        "transmission_sig": h.get("paypal-transmission-sig"),
        "transmission_time": h.get("paypal-transmission-time"),
        "webhook_id": PAYPAL_WEBHOOK_ID,
        "webhook_event": event,
    }
    if not all(body[k] for k in ("auth_algo", "cert_url", "transmission_id", "transmission_sig", "transmission_time")):
        return False
    data = _request("POST", "/v1/notifications/verify-webhook-signature", json=body)
    return data.get("verification_status") == "SUCCESS"
