"""
Runtime configuration for the storefront API.

Values come from the process environment; a local `.env` file is loaded first
so development setups don't need to export anything.
"""

import os

from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME")

DB_CONNECT_RETRIES = int(os.getenv("DB_CONNECT_RETRIES", "3"))
DB_RETRY_DELAY_SECONDS = float(os.getenv("DB_RETRY_DELAY_SECONDS", "1.0"))
DB_TIMEOUT_MS = int(os.getenv("DB_TIMEOUT_MS", "8000"))

ADMIN_API_TOKEN = (os.getenv("ADMIN_API_TOKEN") or "").strip()

CORS_ORIGINS = [o.strip() for o in (os.getenv("CORS_ORIGINS") or "*").split(",") if o.strip()]

BCRYPT_ROUNDS = int(os.getenv("BCRYPT_ROUNDS", "12"))

RESEND_API_KEY = (os.getenv("RESEND_API_KEY") or "").strip()
MAIL_FROM = os.getenv("MAIL_FROM", "Storefront <no-reply@example.com>")
SITE_URL = (os.getenv("SITE_URL") or "http://localhost:3000").rstrip("/")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
PORT = int(os.getenv("PORT", "8000"))
SEED_ON_STARTUP = _env_bool("SEED_ON_STARTUP", True)
