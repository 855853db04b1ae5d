# eventcare/config.py
import os
from dotenv import load_dotenv

load_dotenv()

def _as_bool(val: str | None, default=False) -> bool:
    if val is None:
        return default
    return str(val).strip().lower() in {"1", "true", "yes", "on"}

def _as_int(val: str | None) -> int | None:
    if val is None or not str(val).strip():
        return None
    return int(val)

class Config:
    # --- Core ---
    SECRET_KEY = os.getenv("SECRET_KEY", "dev-secret-change-me")
    APP_VERSION = os.getenv("APP_VERSION")

    # DB
    SQLALCHEMY_DATABASE_URI = (
        os.getenv("SQLALCHEMY_DATABASE_URI")
        or os.getenv("DATABASE_URL")
        or "sqlite:///eventcare.db"
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # JSON API: forms read request bodies, no browser sessions to protect
    WTF_CSRF_ENABLED = False

    # --- Fees (integer yen, round-half-up) ---
    PLATFORM_FEE_RATE = os.getenv("PLATFORM_FEE_RATE", "0.10")
    INSTANT_PAYMENT_FEE_RATE = os.getenv("INSTANT_PAYMENT_FEE_RATE", "0.03")
    SCHEDULED_PAYMENT_FEE_RATE = os.getenv("SCHEDULED_PAYMENT_FEE_RATE", "0.01")
    PAYMENT_FEE_MINIMUM = _as_int(os.getenv("PAYMENT_FEE_MINIMUM"))  # unset = no clamp
    PAYMENT_FEE_MAXIMUM = _as_int(os.getenv("PAYMENT_FEE_MAXIMUM"))

    # --- Payouts ---
    SCHEDULED_PAYOUT_DAY = int(os.getenv("SCHEDULED_PAYOUT_DAY", "15"))

    # --- Cron (shared bearer secret, sent by the external scheduler) ---
    CRON_SECRET = os.getenv("CRON_SECRET", "")

    # --- Mock payment gateway ---
    PAYMENT_GATEWAY_FAIL = _as_bool(os.getenv("PAYMENT_GATEWAY_FAIL", "0"))

    # --- Mail ---
    MAIL_SERVER = os.getenv("MAIL_SERVER", "smtp.gmail.com")
    MAIL_PORT = int(os.getenv("MAIL_PORT", "587"))
    MAIL_USE_TLS = _as_bool(os.getenv("MAIL_USE_TLS", "1"))
    MAIL_USE_SSL = _as_bool(os.getenv("MAIL_USE_SSL", "0"))  # don't enable together with TLS
    MAIL_USERNAME = os.getenv("MAIL_USERNAME")
    MAIL_PASSWORD = os.getenv("MAIL_PASSWORD")
    MAIL_DEFAULT_SENDER = os.getenv("MAIL_DEFAULT_SENDER", MAIL_USERNAME)
    MAIL_SUPPRESS_SEND = _as_bool(os.getenv("MAIL_SUPPRESS_SEND", "0"))

    # --- Logging ---
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    LOG_DIR = os.getenv("LOG_DIR", "logs")
    LOG_FILENAME = os.getenv("LOG_FILENAME", "eventcare.log")
    LOG_JSON = _as_bool(os.getenv("LOG_JSON", "0"))

    # --- Sentry ---
    SENTRY_DSN = os.getenv("SENTRY_DSN", "")
    SENTRY_TRACES_SAMPLE_RATE = float(os.getenv("SENTRY_TRACES_SAMPLE_RATE", "0.0"))
