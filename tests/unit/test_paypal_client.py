import json

import httpx
import pytest

from academy.payments import paypal_client

@pytest.fixture(autouse=True)
def providers():
    """Client PayPal réel, seul le transport HTTP est simulé."""
    return None

@pytest.fixture
def paypal(monkeypatch):
    requests = []
    responses = {}

    def _handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        key = (request.method, request.url.path)
        status, body = responses.get(key, (404, {"name": "RESOURCE_NOT_FOUND"}))
        return httpx.Response(status, json=body)

    monkeypatch.setattr(paypal_client, "PAYPAL_CLIENT_ID", "client-id")
    monkeypatch.setattr(paypal_client, "PAYPAL_CLIENT_SECRET", "secret")
    paypal_client.close()
    monkeypatch.setattr(
        paypal_client,
        "_http_client",
        httpx.Client(base_url=paypal_client.SANDBOX_URL, transport=httpx.MockTransport(_handler)),
    )
    responses[("POST", "/v1/oauth2/token")] = (200, {"access_token": "tok-1", "expires_in": 3600})
    yield requests, responses
    paypal_client.close()

LINES = [{"kind": "course", "ref_id": "c1", "name": "Python avancé", "unit_price": 100.0, "quantity": 1, "amount": 100.0}]
TOTALS = {"subtotal": 100.0, "discount": 20.0, "tax": 6.4, "total": 86.4}

def test_create_order_payload_and_token_cache(paypal):
    requests, responses = paypal
    responses[("POST", "/v2/checkout/orders")] = (201, {
        "id": "PP-1",
        "status": "CREATED",
        "links": [{"rel": "self", "href": "https://x"}, {"rel": "approve", "href": "https://paypal.test/approve"}],
    })
    kwargs = dict(lines=LINES, totals=TOTALS, order_id="order-1", order_number="ORD-2025-0001", return_url="https://r", cancel_url="https://c")
    created = paypal_client.create_order(**kwargs)
    paypal_client.create_order(**kwargs)

    assert created["id"] == "PP-1"
    assert created["approve_url"] == "https://paypal.test/approve"
    token_calls = [r for r in requests if r.url.path == "/v1/oauth2/token"]
    assert len(token_calls) == 1

    body = json.loads(requests[1].content)
    unit = body["purchase_units"][0]
    assert body["intent"] == "CAPTURE"
    assert unit["custom_id"] == "order-1"
    assert unit["amount"]["value"] == "86.40"
    assert unit["amount"]["breakdown"]["discount"]["value"] == "20.00"
    assert unit["amount"]["breakdown"]["tax_total"]["value"] == "6.40"
    assert requests[1].headers["Authorization"] == "Bearer tok-1"
    assert requests[1].headers["PayPal-Request-Id"] == "create-order-1"

def test_capture_extracts_capture_id(paypal):
    _, responses = paypal
    responses[("POST", "/v2/checkout/orders/PP-1/capture")] = (201, {
        "status": "COMPLETED",
        "purchase_units": [{"payments": {"captures": [{"id": "CAP-1"}]}}],
    })
    captured = paypal_client.capture_order("PP-1")
    assert captured["status"] == "COMPLETED"
    assert captured["capture_id"] == "CAP-1"

def test_error_carries_issue(paypal):
    _, responses = paypal
    responses[("POST", "/v2/checkout/orders/PP-1/capture")] = (422, {
        "name": "UNPROCESSABLE_ENTITY",
        "details": [{"issue": "ORDER_ALREADY_CAPTURED"}],
    })
    with pytest.raises(paypal_client.PayPalError) as exc:
        paypal_client.capture_order("PP-1")
    assert exc.value.status_code == 422
    assert exc.value.issue == "ORDER_ALREADY_CAPTURED"

def test_token_failure(paypal):
    _, responses = paypal
    responses[("POST", "/v1/oauth2/token")] = (401, {"error": "invalid_client"})
    with pytest.raises(paypal_client.PayPalError):
        paypal_client.get_access_token()

def test_missing_credentials(monkeypatch):
    paypal_client.close()
    monkeypatch.setattr(paypal_client, "PAYPAL_CLIENT_ID", "")
    with pytest.raises(paypal_client.PayPalError):
        paypal_client.get_access_token()

def test_refund_capture(paypal):
    requests, responses = paypal
    responses[("POST", "/v2/payments/captures/CAP-1/refund")] = (201, {"id": "REF-1", "status": "COMPLETED"})
    refund = paypal_client.refund_capture("CAP-1", 54.0, note="erreur", request_id="refund-order-1")
    assert refund["id"] == "REF-1"
    body = json.loads(requests[-1].content)
    assert body["amount"]["value"] == "54.00"

def test_webhook_signature_requires_webhook_id(monkeypatch):
    monkeypatch.setattr(paypal_client, "PAYPAL_WEBHOOK_ID", "")
    assert paypal_client.verify_webhook_signature({}, {"id": "WH-1"}) is False

def test_webhook_signature_verified_by_api(paypal, monkeypatch):
    _, responses = paypal
    monkeypatch.setattr(paypal_client, "PAYPAL_WEBHOOK_ID", "WH-ID")
    responses[("POST", "/v1/notifications/verify-webhook-signature")] = (200, {"verification_status": "SUCCESS"})
    headers = {
        "PAYPAL-AUTH-ALGO": "SHA256withRSA",
        "PAYPAL-CERT-URL": "https://api.paypal.com/cert",
        "PAYPAL-TRANSMISSION-ID": "t-1",
        "PAYPAL-TRANSMISSION-SIG": "sig",
        "PAYPAL-TRANSMISSION-TIME": "2025-01-01T00:00:00Z",
    }
    assert paypal_client.verify_webhook_signature(headers, {"id": "WH-1"}) is True
    assert paypal_client.verify_webhook_signature({}, {"id": "WH-1"}) is False
