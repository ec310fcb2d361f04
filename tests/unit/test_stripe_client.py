import pytest
import stripe

from academy.payments import stripe_client

@pytest.fixture(autouse=True)
def providers():
    """SDK Stripe réel, seules les ressources appelées sont simulées."""
    return None

@pytest.fixture
def sdk(monkeypatch):
    calls = {}

    def _record(name, result):
        def _fn(*args, **kwargs):
            calls.setdefault(name, []).append(kwargs or {"args": args})
            return result
        return _fn

    monkeypatch.setattr(stripe.checkout.Session, "create", _record("session.create", {"id": "cs_1", "url": "https://stripe.test/cs_1"}))
    monkeypatch.setattr(stripe.checkout.Session, "retrieve", _record("session.retrieve", {"id": "cs_1", "payment_intent": {"id": "pi_1"}}))
    monkeypatch.setattr(stripe.Coupon, "create", _record("coupon.create", {"id": "coupon_1"}))
    monkeypatch.setattr(stripe.Refund, "create", _record("refund.create", {"id": "re_1", "status": "succeeded"}))
    return calls

def test_line_items_add_tax_line():
    lines = [
        {"name": "Python avancé", "unit_price": 100.0, "quantity": 1},
        {"name": "Ebook", "unit_price": 19.99, "quantity": 2},
    ]
    items = stripe_client.line_items_for(lines, 6.4)
    assert [i["price_data"]["unit_amount"] for i in items] == [10000, 1999, 640]
    assert items[1]["quantity"] == 2
    assert items[-1]["price_data"]["product_data"]["name"] == "Taxes"
    assert len(stripe_client.line_items_for(lines, 0)) == 2

def test_create_session_with_discount(sdk):
    session = stripe_client.create_session(
        line_items=[],
        success_url="https://front/success",
        cancel_url="https://front/cancel",
        metadata={"order_id": "o1", "user_id": "u1"},
        discount_amount=20.0,
        customer_email="buyer@example.com",
        idempotency_key="checkout-o1",
    )
    assert session["id"] == "cs_1"
    (params,) = sdk["session.create"]
    assert params["mode"] == "payment"
    assert params["discounts"] == [{"coupon": "coupon_1"}]
    assert params["payment_intent_data"] == {"metadata": {"order_id": "o1", "user_id": "u1"}}
    assert params["customer_email"] == "buyer@example.com"
    assert params["idempotency_key"] == "checkout-o1"
    (coupon,) = sdk["coupon.create"]
    assert coupon["amount_off"] == 2000
    assert coupon["duration"] == "once"
    assert coupon["idempotency_key"] == "checkout-o1-coupon"

def test_session_failure_deletes_one_off_coupon(sdk, monkeypatch):
    deleted = []

    def _fail(**kwargs):
        raise RuntimeError("network down")

    monkeypatch.setattr(stripe.checkout.Session, "create", _fail)
    monkeypatch.setattr(stripe.Coupon, "delete", lambda coupon_id, **kw: deleted.append(coupon_id))
    with pytest.raises(RuntimeError):
        stripe_client.create_session(
            line_items=[], success_url="s", cancel_url="c", metadata={}, discount_amount=20.0,
        )
    assert deleted == ["coupon_1"]

def test_create_session_without_discount_prefers_customer(sdk):
    stripe_client.create_session(
        line_items=[], success_url="s", cancel_url="c", metadata={},
        customer_id="cus_1", customer_email="ignored@example.com",
    )
    (params,) = sdk["session.create"]
    assert params["customer"] == "cus_1"
    assert "customer_email" not in params
    assert "discounts" not in params
    assert "coupon.create" not in sdk

def test_create_refund_targets_session_payment_intent(sdk):
    refund = stripe_client.create_refund(session_id="cs_1", amount=54.0, reason="erreur", idempotency_key="refund-o1")
    assert refund["id"] == "re_1"
    (params,) = sdk["refund.create"]
    assert params["payment_intent"] == "pi_1"
    assert params["amount"] == 5400
    assert params["idempotency_key"] == "refund-o1"

def test_as_dict_plain_dict_passthrough():
    assert stripe_client.as_dict({"a": 1}) == {"a": 1}
    assert stripe_client.as_dict(None) == {}
