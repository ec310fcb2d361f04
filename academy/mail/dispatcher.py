"""
Envoi des emails transactionnels (SMTP + gabarits Jinja2).

send_mail ne lève jamais: un échec est logué et renvoie False, l'appelant
(flux de paiement) continue.
"""
import logging
import smtplib
import ssl
from email.message import EmailMessage
from email.utils import formataddr, formatdate, make_msgid
from typing import Any, Dict, Optional, Tuple

from jinja2 import Environment, FileSystemLoader, select_autoescape

from academy import config

logger = logging.getLogger(__name__)

_env: Optional[Environment] = None

def get_environment() -> Environment:
    global _env
    if _env is None:
        _env = Environment(
            loader=FileSystemLoader(str(config.MAIL_TEMPLATES_DIR)),
            autoescape=select_autoescape(["html"]),
        )
    return _env

def render(template: str, context: Dict[str, Any]) -> Tuple[str, str]:
    """Rend <template>.txt et <template>.html; retour (texte, html)."""
    env = get_environment()
    text = env.get_template(f"{template}.txt").render(**context)
    html = env.get_template(f"{template}.html").render(**context)
    return text, html

def build_message(to: str, subject: str, text_body: str, html_body: str) -> EmailMessage:
    msg = EmailMessage()
    msg["From"] = formataddr((config.SMTP_FROM_NAME, config.SMTP_FROM))
    msg["To"] = to
    msg["Subject"] = subject
    msg["Date"] = formatdate(localtime=False)
    domain = config.SMTP_FROM.split("@")[-1] if "@" in config.SMTP_FROM else None
    msg["Message-ID"] = make_msgid(domain=domain)
    msg.set_content(text_body)
    msg.add_alternative(html_body, subtype="html")
    return msg

def deliver(msg: EmailMessage) -> None:
    """Transmet le message au serveur SMTP configuré (SSL implicite sur 465, STARTTLS sinon)."""
    context = ssl.create_default_context()
    if config.SMTP_PORT == 465:
        with smtplib.SMTP_SSL(config.SMTP_HOST, config.SMTP_PORT, timeout=config.SMTP_TIMEOUT_SECONDS, context=context) as server:
            if config.SMTP_USERNAME:
                server.login(config.SMTP_USERNAME, config.SMTP_PASSWORD)
            server.send_message(msg)
        return
    with smtplib.SMTP(config.SMTP_HOST, config.SMTP_PORT, timeout=config.SMTP_TIMEOUT_SECONDS) as server:
        if config.SMTP_USE_TLS:
            server.starttls(context=context)
        if config.SMTP_USERNAME:
            server.login(config.SMTP_USERNAME, config.SMTP_PASSWORD)
        server.send_message(msg)

def send_mail(to: str, subject: str, template: str, context: Dict[str, Any]) -> bool:
    if not to:
        logger.warning("mail.send skipped: destinataire vide template=%s", template)
        return False
    if not config.SMTP_HOST:
        logger.info("mail.send disabled (SMTP_HOST vide) template=%s", template)
        return False
    try:
        text_body, html_body = render(template, context)
        deliver(build_message(to, subject, text_body, html_body))
        logger.info("mail.sent template=%s", template)
        return True
    except Exception:
        logger.exception("mail.send failed template=%s", template)
        return False
