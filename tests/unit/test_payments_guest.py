import pytest

from academy.admin import service as admin_service
from academy.errors import PermissionDeniedError, ValidationError
from academy.payments import service as payments_service
from academy.users import service as users_service
from tests.fakes import pay_session

def _guest_checkout(catalog, email="guest@example.com", coupon_code=None):
    return payments_service.start_guest_checkout(
        email=email,
        first_name="Grace",
        last_name="Hopper",
        items=[{"course_id": catalog["python"]["id"]}],
        coupon_code=coupon_code,
    )

def test_new_guest_gets_welcome_email_after_payment(db, catalog, providers, outbox):
    result = _guest_checkout(catalog)
    assert result["is_new_user"] is True
    assert "temp_password" not in result
    order = db.one("orders", id=result["order_id"])
    assert order["is_new_user"] is True
    assert order["metadata"]["temp_password"]
    assert outbox == []

    pay_session(providers, result["session_id"])
    verified = payments_service.verify_guest_payment(result["session_id"], "Guest@Example.com")
    assert verified["success"] is True
    assert verified["is_new_user"] is True
    assert "identifiants" in verified["message"]

    (mail,) = outbox
    assert mail["template"] == "welcome_credentials"
    assert mail["to"] == "guest@example.com"
    assert mail["context"]["temp_password"]

    order = db.one("orders", id=result["order_id"])
    assert "temp_password" not in order["metadata"]
    assert order["confirmation_sent_at"]

def test_returning_guest_reuses_account(db, catalog, providers, outbox):
    first = _guest_checkout(catalog)
    second = _guest_checkout(catalog, email="GUEST@example.com")
    assert second["is_new_user"] is False
    assert second["user_id"] == first["user_id"]
    assert len(db.rows("users", email="guest@example.com")) == 1
    assert "temp_password" not in db.one("orders", id=second["order_id"])["metadata"]

    pay_session(providers, second["session_id"])
    payments_service.verify_guest_payment(second["session_id"], "guest@example.com")
    (mail,) = outbox
    assert mail["template"] == "purchase_confirmation"

def test_invalid_cart_creates_no_account(db, catalog):
    with pytest.raises(ValidationError):
        payments_service.start_guest_checkout(email="ghost@example.com", first_name="G", last_name="H", items=[])
    assert db.rows("users", email="ghost@example.com") == []

def test_verify_rejects_other_email(db, catalog, providers):
    result = _guest_checkout(catalog)
    pay_session(providers, result["session_id"])
    with pytest.raises(PermissionDeniedError):
        payments_service.verify_guest_payment(result["session_id"], "intruder@example.com")
    assert db.one("orders", id=result["order_id"])["status"] == "pending"

def test_verify_unpaid_session(db, catalog, providers):
    result = _guest_checkout(catalog)
    with pytest.raises(ValidationError):
        payments_service.verify_guest_payment(result["session_id"], "guest@example.com")

def _paid_guest_order_without_email(db, catalog, providers, monkeypatch):
    from academy.mail import dispatcher

    capture_outbox = dispatcher.send_mail
    monkeypatch.setattr("academy.mail.dispatcher.send_mail", lambda *a, **kw: False)
    result = _guest_checkout(catalog)
    pay_session(providers, result["session_id"])
    payments_service.verify_guest_payment(result["session_id"], "guest@example.com")
    monkeypatch.setattr("academy.mail.dispatcher.send_mail", capture_outbox)
    return result

def test_failed_welcome_email_keeps_password_for_retry(db, catalog, providers, outbox, monkeypatch):
    result = _paid_guest_order_without_email(db, catalog, providers, monkeypatch)
    order = db.one("orders", id=result["order_id"])
    assert order["status"] == "completed"
    assert not order.get("confirmation_sent_at")
    password = order["metadata"]["temp_password"]
    assert outbox == []

    admin_service.refulfill_order(result["order_id"])

    (mail,) = outbox
    assert mail["template"] == "welcome_credentials"
    assert mail["context"]["temp_password"] == password
    user = db.one("users", id=result["user_id"])
    assert users_service.verify_password(password, user["password_hash"])
    order = db.one("orders", id=result["order_id"])
    assert "temp_password" not in order["metadata"]
    assert order["confirmation_sent_at"]

def test_retry_regenerates_password_when_none_is_stored(db, catalog, providers, outbox, monkeypatch):
    result = _paid_guest_order_without_email(db, catalog, providers, monkeypatch)
    old_password = db.one("orders", id=result["order_id"])["metadata"]["temp_password"]
    db.table("orders").update({"metadata": {"guest_checkout": True}}).eq("id", result["order_id"]).execute()

    rerun = admin_service.refulfill_order(result["order_id"])
    assert rerun["status"] == "fulfilled"

    (mail,) = outbox
    assert mail["template"] == "welcome_credentials"
    new_password = mail["context"]["temp_password"]
    assert new_password and new_password != old_password
    user = db.one("users", id=result["user_id"])
    assert users_service.verify_password(new_password, user["password_hash"])
    assert not users_service.verify_password(old_password, user["password_hash"])
    order = db.one("orders", id=result["order_id"])
    assert "temp_password" not in order["metadata"]
    assert order["confirmation_sent_at"]
