# backend/storefront/config.py
from __future__ import annotations
import os
from datetime import timedelta


def _env_bool(name: str, default: str = "false") -> bool:
    return os.environ.get(name, default).strip().lower() in ("1", "true", "yes", "on")


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # Signing key for session tokens; falls back to SECRET_KEY
    APP_SECRET = os.environ.get("APP_SECRET") or SECRET_KEY

    # SQLite DB stored in backend/instance/storefront.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///storefront.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Sessions: stateless signed tokens, carried in an HTTP-only cookie
    SESSION_TOKEN_LIFETIME = timedelta(days=int(os.environ.get("SESSION_TOKEN_LIFETIME_DAYS", "365")))
    AUTH_COOKIE_NAME = "token"
    COOKIE_SECURE = _env_bool("COOKIE_SECURE")

    BCRYPT_ROUNDS = int(os.environ.get("BCRYPT_ROUNDS", "12"))

    # Password reset
    RESET_TOKEN_TTL = timedelta(seconds=int(os.environ.get("RESET_TOKEN_TTL_SECONDS", "3600")))
    # When true, requesting a reset for an unknown email fails visibly (leaks account existence)
    REVEAL_NONEXISTENT_ACCOUNTS = _env_bool("REVEAL_NONEXISTENT_ACCOUNTS")
    FRONTEND_URL = os.environ.get("FRONTEND_URL", "http://localhost:7777").rstrip("/")

    # Outbound mail (SMTP)
    MAIL_SERVER = os.environ.get("MAIL_SERVER", "localhost")
    MAIL_PORT = int(os.environ.get("MAIL_PORT", "25"))
    MAIL_USERNAME = os.environ.get("MAIL_USERNAME") or None
    MAIL_PASSWORD = os.environ.get("MAIL_PASSWORD") or None
    MAIL_USE_TLS = _env_bool("MAIL_USE_TLS")
    MAIL_DEFAULT_SENDER = os.environ.get("MAIL_DEFAULT_SENDER", "no-reply@storefront.local")
    MAIL_TIMEOUT_SECONDS = float(os.environ.get("MAIL_TIMEOUT_SECONDS", "10"))

    # Payments (Stripe)
    STRIPE_SECRET_KEY = os.environ.get("STRIPE_SECRET_KEY", "")
    PAYMENT_CURRENCY = os.environ.get("PAYMENT_CURRENCY", "EUR")
    PAYMENT_TIMEOUT_SECONDS = float(os.environ.get("PAYMENT_TIMEOUT_SECONDS", "10"))
