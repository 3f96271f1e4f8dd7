"""
Credentials and the admin gate.

Passwords are stored as bcrypt hashes. Admin-only routes require
``Authorization: Bearer <ADMIN_API_TOKEN>``.
"""

import logging
import re
import secrets
from datetime import timedelta
from typing import Optional

import bcrypt
import resend
from fastapi import Header, HTTPException

import config
from database import utcnow

logger = logging.getLogger(__name__)

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
RESET_TOKEN_TTL = timedelta(hours=1)

if not config.ADMIN_API_TOKEN:
    logger.warning("ADMIN_API_TOKEN is not set; admin routes are unprotected")


def hash_password(password: str) -> str:
    hashed = bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt(rounds=config.BCRYPT_ROUNDS))
    return hashed.decode("utf-8")


def verify_password(password: str, hashed: Optional[str]) -> bool:
    if not hashed:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), hashed.encode("utf-8"))
    except ValueError:
        return False


def is_valid_email(value: Optional[str]) -> bool:
    return bool(value and EMAIL_RE.match(value))


def reset_password_problem(password: str) -> Optional[str]:
    """First reason ``password`` is too weak for a reset, or None."""
    if len(password) < 8:
        return "Password must be at least 8 characters long"
    if not re.search(r"[A-Z]", password):
        return "Password must contain at least one uppercase letter"
    if not re.search(r"[a-z]", password):
        return "Password must contain at least one lowercase letter"
    if not re.search(r"[0-9]", password):
        return "Password must contain at least one number"
    return None


def new_reset_token():
    return secrets.token_hex(20), utcnow() + RESET_TOKEN_TTL


def public_user(doc: dict) -> dict:
    user = {k: v for k, v in doc.items() if k not in ("password", "reset_password_token", "reset_password_expire")}
    if "_id" in user:
        user["id"] = str(user.pop("_id"))
    return user


def require_admin(authorization: Optional[str] = Header(None)) -> None:
    expected = config.ADMIN_API_TOKEN
    if not expected:
        return
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(status_code=401, detail="Authentication required")
    token = authorization[7:].strip()
    if not secrets.compare_digest(token.encode("utf-8"), expected.encode("utf-8")):
        raise HTTPException(status_code=403, detail="Admin access required")


def send_password_reset_email(email: str, token: str) -> bool:
    link = f"{config.SITE_URL}/reset-password?token={token}"
    if not config.RESEND_API_KEY:
        logger.info("Mail not configured; password reset link for %s: %s", email, link)
        return True

    resend.api_key = config.RESEND_API_KEY
    payload = {
        "from": config.MAIL_FROM,
        "to": [email],
        "subject": "Reset your password",
        "html": f'<p>Use the link below to reset your password. It expires in one hour.</p><p><a href="{link}">{link}</a></p>',
        "text": f"Reset your password within one hour: {link}",
    }
    try:
        response = resend.Emails.send(payload)
    except Exception:
        logger.exception("Password reset mail to %s failed", email)
        return False
    if not isinstance(response, dict) or not response.get("id"):
        logger.error("Password reset mail to %s rejected: %s", email, response)
        return False
    return True
