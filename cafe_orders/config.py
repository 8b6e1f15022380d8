import warnings
import os
from dotenv import load_dotenv

load_dotenv()


def _env_bool(name, default=False):
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_number(name, default, cast=int):
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return cast(value.strip())
    except ValueError:
        warnings.warn(
            f"{name}={value!r} is not a valid number. Falling back to {default!r}.",
            RuntimeWarning
        )
        return default


class Config:
    SQLALCHEMY_DATABASE_URI = os.getenv("DATABASE_URL")
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-key")
    SQLALCHEMY_ENGINE_OPTIONS = {
        "pool_pre_ping": True
    }
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

    CAFE_LABELS = {
        "raysdiner": "Rays Diner",
        "lovesgrove": "Loves Grove",
        "cosmiccafe": "Cosmic Cafe",
    }
    CAFE_SLUGS = frozenset(CAFE_LABELS)

    MAX_ORDER_NUMBER = 900
    COUNTER_CAS_ATTEMPTS = 50
    ORDER_INSERT_ATTEMPTS = 20

    # Staff endpoints are open when no token is configured
    STAFF_API_TOKEN = os.getenv("STAFF_API_TOKEN")

    RECEIPTS_ENABLED = _env_bool("RECEIPTS_ENABLED", True)
    RECEIPT_TIMEOUT_SECONDS = _env_number("RECEIPT_TIMEOUT_SECONDS", 6.0, float)
    NOTIFY_RECEIPT_WORKERS = _env_number("NOTIFY_RECEIPT_WORKERS", 4)
    NOTIFY_READY_WORKERS = _env_number("NOTIFY_READY_WORKERS", 4)
    RECEIPTS_DIR = os.getenv("RECEIPTS_DIR", os.path.join(os.getcwd(), "receipts"))
    SMTP_HOST = os.getenv("SMTP_HOST")
    SMTP_PORT = _env_number("SMTP_PORT", None)
    SMTP_USER = os.getenv("SMTP_USER")
    SMTP_PASS = os.getenv("SMTP_PASS")
    SMTP_SECURE = _env_bool("SMTP_SECURE", False)
    SMTP_FROM = os.getenv("SMTP_FROM")

    if not SQLALCHEMY_DATABASE_URI:
        warnings.warn(
            "DATABASE_URL is not set. Falling back to local SQLite (sqlite:///local.db).",
            RuntimeWarning
        )
        SQLALCHEMY_DATABASE_URI = "sqlite:///local.db"
