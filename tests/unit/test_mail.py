import smtplib

import pytest

from academy import config
from academy.mail import dispatcher
from academy.mail import service as mail_service

ORDER = {
    "id": "o1",
    "order_number": "ORD-2025-0001",
    "items": [{"name": "Python avancé", "quantity": 1, "amount": 100.0}],
    "subtotal": 100.0,
    "discount": 20.0,
    "tax": 6.4,
    "total": 86.4,
    "currency": "usd",
}
USER = {"email": "guest@example.com", "first_name": "Grace"}
REAL_SEND_MAIL = dispatcher.send_mail

def test_render_templates():
    text, html = dispatcher.render("welcome_credentials", {**mail_service._context(ORDER, USER), "temp_password": "s3cret"})
    assert "s3cret" in text and "s3cret" in html
    assert "ORD-2025-0001" in text

def test_build_message_has_text_and_html():
    msg = dispatcher.build_message("a@example.com", "Sujet", "texte", "<p>html</p>")
    assert msg["To"] == "a@example.com"
    assert msg.is_multipart()
    assert {part.get_content_type() for part in msg.iter_parts()} == {"text/plain", "text/html"}

class _FakeSMTP:
    sent = []

    def __init__(self, host, port, timeout=None):
        self.host = host

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def starttls(self, context=None):
        pass

    def login(self, user, password):
        pass

    def send_message(self, msg):
        _FakeSMTP.sent.append(msg)

@pytest.fixture
def real_send_mail():
    # outbox remplace dispatcher.send_mail: version capturée à l'import du module
    return REAL_SEND_MAIL

def test_send_mail_disabled_without_host(real_send_mail, monkeypatch):
    monkeypatch.setattr(config, "SMTP_HOST", "")
    assert real_send_mail("a@example.com", "S", "purchase_confirmation", mail_service._context(ORDER, USER)) is False

def test_send_mail_delivers(real_send_mail, monkeypatch):
    _FakeSMTP.sent.clear()
    monkeypatch.setattr(config, "SMTP_HOST", "smtp.test")
    monkeypatch.setattr(config, "SMTP_PORT", 587)
    monkeypatch.setattr(smtplib, "SMTP", _FakeSMTP)
    assert real_send_mail("a@example.com", "S", "purchase_confirmation", mail_service._context(ORDER, USER)) is True
    assert len(_FakeSMTP.sent) == 1

def test_send_mail_never_raises(real_send_mail, monkeypatch):
    def _refused(*args, **kwargs):
        raise smtplib.SMTPConnectError(421, "busy")

    monkeypatch.setattr(config, "SMTP_HOST", "smtp.test")
    monkeypatch.setattr(config, "SMTP_PORT", 587)
    monkeypatch.setattr(smtplib, "SMTP", _refused)
    assert real_send_mail("a@example.com", "S", "purchase_confirmation", {}) is False

def test_order_confirmation_choice(outbox):
    mail_service.send_order_confirmation({**ORDER, "is_new_user": True, "metadata": {"temp_password": "pw"}}, USER)
    mail_service.send_order_confirmation({**ORDER, "is_new_user": True, "metadata": {}}, USER)
    mail_service.send_order_confirmation(ORDER, USER)
    assert [m["template"] for m in outbox] == ["welcome_credentials", "purchase_confirmation", "purchase_confirmation"]
    assert mail_service.send_order_confirmation(ORDER, None) is False
