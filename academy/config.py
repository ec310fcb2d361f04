# academy.config
from pathlib import Path
import os
from dotenv import load_dotenv

# Calculer le chemin du projet puis charger .env de manière explicite
BASE_DIR = Path(__file__).resolve().parent.parent
ENV_PATH = BASE_DIR / ".env"
load_dotenv(dotenv_path=ENV_PATH, override=False)

MAIL_TEMPLATES_DIR = Path(__file__).resolve().parent / "mail" / "templates"

"""
Configuration centrale du backend.

- Charge le fichier .env à la racine du projet (BASE_DIR/.env)
- Normalise et expose les secrets/URLs (Supabase, Stripe, PayPal, SMTP)
- Expose les règles métier (devise, taxe, fenêtre de remboursement)
- Fournit les URLs de redirection du checkout et la config HTTP (CORS/hosts)
"""

def _clean_env(v: str) -> str:
    """
    Nettoie une valeur d'environnement:
    - supprime les espaces et guillemets (simples, doubles) et backticks
    - retourne toujours une chaîne (jamais None)
    """
    return (v or "").strip().strip("'").strip('"').strip("`")

def _env_float(name: str, default: float) -> float:
    try:
        return float(_clean_env(os.getenv(name, "")) or default)
    except ValueError:
        return default

def _env_int(name: str, default: int) -> int:
    try:
        return int(_clean_env(os.getenv(name, "")) or default)
    except ValueError:
        return default

# Supabase: URL et clés (anon/service)
SUPABASE_URL = _clean_env(os.getenv("SUPABASE_URL") or "")
SUPABASE_ANON = _clean_env(os.getenv("SUPABASE_ANON_KEY") or os.getenv("SUPABASE_KEY") or "")
SUPABASE_SERVICE_KEY = _clean_env(os.getenv("SUPABASE_SERVICE_KEY") or "")

if SUPABASE_URL and not SUPABASE_URL.startswith("http"):
    SUPABASE_URL = "https://" + SUPABASE_URL
if SUPABASE_URL.endswith("/"):
    SUPABASE_URL = SUPABASE_URL.rstrip("/")

# Stripe: clé secrète et secret de signature des webhooks
STRIPE_SECRET_KEY = _clean_env(os.getenv("STRIPE_SECRET_KEY") or "")
STRIPE_WEBHOOK_SECRET = _clean_env(os.getenv("STRIPE_WEBHOOK_SECRET") or "")

# PayPal: identifiants REST, mode (sandbox|live) et identifiant du webhook
PAYPAL_CLIENT_ID = _clean_env(os.getenv("PAYPAL_CLIENT_ID") or "")
PAYPAL_CLIENT_SECRET = _clean_env(os.getenv("PAYPAL_CLIENT_SECRET") or "")
PAYPAL_MODE = (_clean_env(os.getenv("PAYPAL_MODE") or "sandbox")).lower()
PAYPAL_WEBHOOK_ID = _clean_env(os.getenv("PAYPAL_WEBHOOK_ID") or "")
PAYPAL_TIMEOUT_SECONDS = _env_float("PAYPAL_TIMEOUT_SECONDS", 15.0)

# SMTP: envoi des emails transactionnels (désactivé si SMTP_HOST est vide)
SMTP_HOST = _clean_env(os.getenv("SMTP_HOST") or "")
SMTP_PORT = _env_int("SMTP_PORT", 587)
SMTP_USERNAME = _clean_env(os.getenv("SMTP_USERNAME") or "")
SMTP_PASSWORD = _clean_env(os.getenv("SMTP_PASSWORD") or "")
SMTP_FROM = _clean_env(os.getenv("SMTP_FROM") or "no-reply@academy.local")
SMTP_FROM_NAME = _clean_env(os.getenv("SMTP_FROM_NAME") or "Academy")
SMTP_USE_TLS = (os.getenv("SMTP_USE_TLS", "true").lower() == "true")
SMTP_TIMEOUT_SECONDS = _env_float("SMTP_TIMEOUT_SECONDS", 10.0)

# Règles métier
CURRENCY = (_clean_env(os.getenv("CURRENCY") or "usd")).lower()
TAX_RATE = _env_float("TAX_RATE", 0.08)
REFUND_WINDOW_DAYS = _env_int("REFUND_WINDOW_DAYS", 30)

# URLs front et pages de succès/annulation du checkout
FRONTEND_URL = _clean_env(os.getenv("FRONTEND_URL") or "http://localhost:3000").rstrip("/")
CHECKOUT_SUCCESS_PATH = os.getenv("CHECKOUT_SUCCESS_PATH", "/checkout/success")
CHECKOUT_CANCEL_PATH = os.getenv("CHECKOUT_CANCEL_PATH", "/checkout/cancel")
LOGIN_URL = _clean_env(os.getenv("LOGIN_URL") or f"{FRONTEND_URL}/login")

# Cookies / CORS / hosts
COOKIE_SECURE = (os.getenv("COOKIE_SECURE", "false").lower() == "true")
CORS_ORIGINS = [o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()]
ALLOWED_HOSTS = [h.strip() for h in os.getenv("ALLOWED_HOSTS", "localhost,127.0.0.1,testserver").split(",") if h.strip()]

LOG_LEVEL = (os.getenv("LOG_LEVEL") or "info").upper()
