# -*- coding: utf-8 -*-
"""Authentication provider.

Accounts are email/password. A request is authenticated either through the
Flask-Login session cookie or an ``Authorization: Bearer`` token; both end
up as the same :class:`~carfinance.models.User`, and the rest of the app
only ever looks at the :class:`~carfinance.access.Principal` built from it.
"""

import logging
import time
from typing import Optional, Tuple

from authlib.jose import jwt
from authlib.jose.errors import JoseError
from flask import current_app
from sqlalchemy.exc import IntegrityError
from werkzeug.security import check_password_hash, generate_password_hash

from carfinance.access import ROLE_SALES, ROLE_USER
from carfinance.exceptions import ValidationError
from carfinance.extensions import db, login_manager
from carfinance.models import User

logger = logging.getLogger(__name__)

TOKEN_ALGORITHM = "HS256"
DEFAULT_TOKEN_TTL_HOURS = 24 * 7
MIN_PASSWORD_LENGTH = 6


class DuplicateEmailError(ValidationError):
    default_code = "email_taken"


# ── Passwords ─────────────────────────────────────────────────────────

def hash_password(password: str) -> str:
    return generate_password_hash(password)


def verify_password(password: str, password_hash: str) -> bool:
    if not password or not password_hash:
        return False
    return check_password_hash(password_hash, password)


# ── Tokens ────────────────────────────────────────────────────────────

def _signing_key() -> bytes:
    return current_app.config["SECRET_KEY"].encode("utf-8")


def issue_token(user: User, now: Optional[int] = None) -> str:
    issued_at = int(now if now is not None else time.time())
    ttl_hours = int(current_app.config.get("TOKEN_TTL_HOURS", DEFAULT_TOKEN_TTL_HOURS))
    payload = {
        "sub": str(user.id),
        "email": user.email,
        "role": user.role,
        "iat": issued_at,
        "exp": issued_at + ttl_hours * 3600,
    }
    token = jwt.encode({"alg": TOKEN_ALGORITHM}, payload, _signing_key())
    return token.decode("ascii") if isinstance(token, bytes) else token


def verify_token(token: str) -> Optional[dict]:
    """Return the token claims, or None if the token is invalid or expired."""
    if not token:
        return None
    try:
        claims = jwt.decode(token, _signing_key())
        claims.validate()
    except (JoseError, ValueError) as e:
        logger.info("[AUTH] token rejected: %s", e.__class__.__name__)
        return None
    return dict(claims)


def _bearer_token(header_value: str) -> str:
    parts = (header_value or "").split()
    if len(parts) == 2 and parts[0].lower() == "bearer":
        return parts[1]
    return ""


# ── Flask-Login hooks ─────────────────────────────────────────────────

@login_manager.user_loader
def load_user(user_id):
    """
    Load user by ID from database.
    If DB connection fails, treat as unauthenticated (return None).
    """
    try:
        return db.session.get(User, int(user_id))
    except Exception as e:
        logger.warning("[AUTH] load_user failed: %s", e.__class__.__name__)
        db.session.rollback()
        return None


@login_manager.request_loader
def load_user_from_request(request):
    token = _bearer_token(request.headers.get("Authorization", ""))
    if not token:
        return None
    claims = verify_token(token)
    if not claims:
        return None
    user = load_user(claims.get("sub"))
    # Role is re-read from the DB; the claim is informational only.
    return user


# ── Accounts ──────────────────────────────────────────────────────────

def role_for_new_account(email: str) -> str:
    sales_emails = current_app.config.get("SALES_EMAILS", [])
    return ROLE_SALES if (email or "").strip().lower() in sales_emails else ROLE_USER


def register_user(email: str, password: str, first_name: str, last_name: str, role: Optional[str] = None) -> User:
    email = (email or "").strip().lower()
    if not email or "@" not in email:
        raise ValidationError("A valid email is required", field="email")
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        raise ValidationError(
            f"Password must be at least {MIN_PASSWORD_LENGTH} characters long", field="password"
        )
    if not (first_name or "").strip() or not (last_name or "").strip():
        raise ValidationError("First and last name are required", field="name")
    if User.query.filter_by(email=email).first():
        raise DuplicateEmailError("User with this email already exists", field="email")

    user = User(
        email=email,
        password_hash=hash_password(password),
        first_name=first_name.strip()[:100],
        last_name=last_name.strip()[:100],
        role=role or role_for_new_account(email),
    )
    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError:
        db.session.rollback()
        raise DuplicateEmailError("User with this email already exists", field="email")
    logger.info("[AUTH] registered user_id=%s role=%s", user.id, user.role)
    return user


def authenticate(email: str, password: str) -> Tuple[Optional[User], Optional[str]]:
    """Return (user, None) on success or (None, reason)."""
    user = User.query.filter_by(email=(email or "").strip().lower()).first()
    if user is None or not verify_password(password, user.password_hash):
        return None, "invalid_credentials"
    return user, None
