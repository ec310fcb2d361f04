import os

# Avant l'import de l'app: pas de Redis ni de SMTP en tests
os.environ.setdefault("DISABLE_FASTAPI_LIMITER_INIT_FOR_TESTS", "1")

import pytest
from typing import Any, Dict, Generator, List
from fastapi.testclient import TestClient

from academy.app import app as fastapi_app
from academy.utils.security import require_admin, require_user
from tests.fakes import FakeSupabase, ProviderCalls

# Marquage automatique selon le dossier
def pytest_collection_modifyitems(config, items):
    for item in items:
        nodeid = item.nodeid.replace("\\", "/")
        if "/tests/unit/" in nodeid or nodeid.startswith("tests/unit/"):
            item.add_marker(pytest.mark.unit)
        elif "/tests/integration/" in nodeid or nodeid.startswith("tests/integration/"):
            item.add_marker(pytest.mark.integration)

TEST_USER: Dict[str, Any] = {
    "id": "user-1",
    "email": "buyer@example.com",
    "role": "student",
    "first_name": "Ada",
    "last_name": "Lovelace",
    "metadata": {},
    "token": "fake-token",
}

ADMIN_USER: Dict[str, Any] = {
    "id": "admin-1",
    "email": "admin@example.com",
    "role": "admin",
    "metadata": {},
    "token": "fake-admin-token",
}

@pytest.fixture(scope="session")
def app():
    return fastapi_app

@pytest.fixture()
def client(app) -> Generator[TestClient, None, None]:
    with TestClient(app) as c:
        yield c

# Simuler un utilisateur authentifié pour les endpoints protégés
@pytest.fixture(autouse=True)
def _override_require_user(app):
    app.dependency_overrides[require_user] = lambda: dict(TEST_USER)
    try:
        yield
    finally:
        app.dependency_overrides.pop(require_user, None)

@pytest.fixture
def admin_client(app, client):
    app.dependency_overrides[require_admin] = lambda: dict(ADMIN_USER)
    yield client
    app.dependency_overrides.pop(require_admin, None)

@pytest.fixture
def user() -> Dict[str, Any]:
    return dict(TEST_USER)

@pytest.fixture
def admin() -> Dict[str, Any]:
    return dict(ADMIN_USER)

# Base Supabase en mémoire pour tous les tests (aucun accès réseau)
@pytest.fixture(autouse=True)
def db(monkeypatch) -> FakeSupabase:
    fake = FakeSupabase()
    fake.seed("users", {"id": TEST_USER["id"], "email": TEST_USER["email"], "first_name": "Ada", "role": "student"})
    monkeypatch.setattr("academy.infra.supabase_client.get_service_supabase", lambda: fake)
    monkeypatch.setattr("academy.infra.supabase_client.get_supabase", lambda: fake)
    return fake

@pytest.fixture
def catalog(db) -> Dict[str, Dict[str, Any]]:
    """Deux cours et un produit au catalogue."""
    python, sql = db.seed(
        "courses",
        {"title": "Python avancé", "price": 100.0, "enrollment_count": 0, "revenue": 0},
        {"title": "SQL pour tous", "price": 50.0, "enrollment_count": 0, "revenue": 0},
    )
    (ebook,) = db.seed("products", {"name": "Ebook", "price": 20.0})
    return {"python": python, "sql": sql, "ebook": ebook}

# Emails capturés (aucun SMTP)
@pytest.fixture(autouse=True)
def outbox(monkeypatch) -> List[Dict[str, Any]]:
    sent: List[Dict[str, Any]] = []

    def _fake_send_mail(to, subject, template, context):
        sent.append({"to": to, "subject": subject, "template": template, "context": dict(context)})
        return True

    monkeypatch.setattr("academy.mail.dispatcher.send_mail", _fake_send_mail)
    return sent

# Stripe/PayPal simulés: sessions et commandes créées en mémoire
@pytest.fixture(autouse=True)
def providers(monkeypatch) -> ProviderCalls:
    calls = ProviderCalls()
    sessions = calls.sessions

    def _create_session(**kwargs):
        sid = f"cs_test_{len(sessions) + 1}"
        calls.record("stripe.create_session", **kwargs)
        sessions[sid] = {
            "id": sid,
            "url": f"https://checkout.stripe.test/{sid}",
            "payment_status": "unpaid",
            "status": "open",
            "payment_intent": f"pi_{sid}",
            "metadata": kwargs.get("metadata") or {},
        }
        return dict(sessions[sid])

    def _get_session(session_id):
        calls.record("stripe.get_session", session_id=session_id)
        if session_id not in sessions:
            raise RuntimeError("No such checkout.session")
        return dict(sessions[session_id])

    def _create_refund(**kwargs):
        calls.record("stripe.create_refund", **kwargs)
        return {"id": "re_test_1", "status": "succeeded", "amount": kwargs.get("amount")}

    def _create_customer(**kwargs):
        calls.record("stripe.create_customer", **kwargs)
        return {"id": "cus_test_1"}

    def _paypal_create_order(**kwargs):
        calls.record("paypal.create_order", **kwargs)
        return {"id": "PAYPAL-ORDER-1", "status": "CREATED", "approve_url": "https://paypal.test/approve", "raw": {}}

    def _paypal_capture(paypal_order_id):
        calls.record("paypal.capture_order", paypal_order_id=paypal_order_id)
        return {"status": "COMPLETED", "capture_id": "CAPTURE-1", "raw": {"id": paypal_order_id, "status": "COMPLETED"}}

    def _paypal_refund(capture_id, amount, **kwargs):
        calls.record("paypal.refund_capture", capture_id=capture_id, amount=amount, **kwargs)
        return {"id": "PAYPAL-REFUND-1", "status": "COMPLETED"}

    monkeypatch.setattr("academy.payments.stripe_client.create_session", _create_session)
    monkeypatch.setattr("academy.payments.stripe_client.get_session", _get_session)
    monkeypatch.setattr("academy.payments.stripe_client.create_refund", _create_refund)
    monkeypatch.setattr("academy.payments.stripe_client.create_customer", _create_customer)
    monkeypatch.setattr("academy.payments.paypal_client.create_order", _paypal_create_order)
    monkeypatch.setattr("academy.payments.paypal_client.capture_order", _paypal_capture)
    monkeypatch.setattr("academy.payments.paypal_client.refund_capture", _paypal_refund)
    return calls

