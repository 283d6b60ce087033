# backend/shopledger/config.py
from __future__ import annotations
import os


def _env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def engine_options_for(uri: str) -> dict:
    # SQLite uses a single-file/static pool; pool sizing only applies to server databases.
    if uri.startswith("sqlite"):
        return {}
    return {
        "pool_size": int(os.environ.get("DB_POOL_SIZE", "10")),
        "pool_pre_ping": True,
    }


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored in backend/instance/shopledger.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///shopledger.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ENGINE_OPTIONS = engine_options_for(SQLALCHEMY_DATABASE_URI)

    # Ledger windows
    SALE_UNDO_WINDOW_HOURS = int(os.environ.get("SALE_UNDO_WINDOW_HOURS", "24"))
    PURCHASE_UNDO_WINDOW_HOURS = int(os.environ.get("PURCHASE_UNDO_WINDOW_HOURS", "24"))
    UNDO_LOG_EXPORT_LIMIT = int(os.environ.get("UNDO_LOG_EXPORT_LIMIT", "10000"))

    # Sri Lankan mobile numbers: 07XXXXXXXX or +947XXXXXXXX
    CUSTOMER_PHONE_PATTERN = os.environ.get("CUSTOMER_PHONE_PATTERN", r"^(07\d{8}|\+947\d{8})$")

    # Outbound mail: "log" (default), "smtp" (Flask-Mail), or "disabled"
    MAIL_BACKEND = os.environ.get("MAIL_BACKEND", "log")

    # Flask-Mail settings, read by mail.init_app
    MAIL_SERVER = os.environ.get("MAIL_SERVER", "smtp.gmail.com")
    MAIL_PORT = int(os.environ.get("MAIL_PORT", "587"))
    MAIL_USE_TLS = _env_bool("MAIL_USE_TLS", True)
    MAIL_USE_SSL = _env_bool("MAIL_USE_SSL", False)
    MAIL_USERNAME = os.environ.get("MAIL_USERNAME")
    MAIL_PASSWORD = os.environ.get("MAIL_PASSWORD")
    MAIL_DEFAULT_SENDER = os.environ.get("MAIL_DEFAULT_SENDER", "Shop Ledger <no-reply@shopledger.local>")
    MAIL_SUPPRESS_SEND = _env_bool("MAIL_SUPPRESS_SEND", False)

    CORS_ALLOWED_ORIGINS = tuple(
        o.strip()
        for o in os.environ.get(
            "CORS_ALLOWED_ORIGINS",
            "http://localhost:5173,http://127.0.0.1:5173",
        ).split(",")
        if o.strip()
    )
