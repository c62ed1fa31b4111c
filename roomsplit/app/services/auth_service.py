"""
services/auth_service.py — Account registration, login and access tokens.

Responsibilities:
  - Profile registration and credential validation
  - JWT access token creation (HS256)
  - Password hashing (bcrypt) and verification

Layer rules:
  - No imports from routes or schemas
  - No use of flask.request, flask.g, or HTTP status codes beyond AppError
  - current_app.config is read ONLY for JWT_SECRET_KEY, token TTL and
    BCRYPT_LOG_ROUNDS; these must come from validated Flask config.

Token design:
  - Access token: JWT, HS256, sub = profile id (str), 24 h TTL by default.
  - No refresh tokens: an expired token means logging in again.

Password storage:
  - Hashed with bcrypt (cost factor from BCRYPT_LOG_ROUNDS)
  - Raw password is never stored, never logged
"""

from __future__ import annotations

import logging
import secrets
from datetime import datetime, timezone

import bcrypt
import jwt
from flask import current_app
from sqlalchemy import func, select
from sqlalchemy.orm import Session

from roomsplit.app.errors import AppError, ErrorCode
from roomsplit.app.models.profile import Profile
from roomsplit.app.services.profile_service import serialize_profile

logger = logging.getLogger(__name__)


# ── Private helpers ────────────────────────────────────────────────────────

def _create_access_token(profile_id: int) -> str:
    """
    Creates a signed JWT access token.
    Payload: sub (profile id as str), iat, exp, jti.
    """
    now = datetime.now(timezone.utc)
    expiry = now + current_app.config["JWT_ACCESS_TOKEN_EXPIRES"]
    payload = {
        "sub": str(profile_id),
        "iat": now,
        "exp": expiry,
        # Keeps tokens issued within the same second distinct.
        "jti": secrets.token_hex(8),
    }
    return jwt.encode(
        payload,
        current_app.config["JWT_SECRET_KEY"],
        algorithm=current_app.config.get("JWT_ALGORITHM", "HS256"),
    )


def _hash_password(password: str) -> str:
    rounds = current_app.config.get("BCRYPT_LOG_ROUNDS", 12)
    return bcrypt.hashpw(
        password.encode("utf-8"),
        bcrypt.gensalt(rounds=rounds),
    ).decode("utf-8")


# ── Public service functions ───────────────────────────────────────────────

def register_profile(
        name: str,
        email: str,
        password: str,
        session: Session,
        upi_id: str | None = None,
) -> dict:
    """
    Creates a new profile and issues an access token.

    Raises:
      AppError(DUPLICATE_EMAIL, 409) — email already registered

    Returns: {"profile": {...}, "access_token": "..."}
    """
    email = email.strip().lower()

    existing = session.execute(
        select(Profile).where(func.lower(Profile.email) == email)
    ).scalar_one_or_none()
    if existing is not None:
        raise AppError(
            ErrorCode.DUPLICATE_EMAIL,
            f"The email address '{email}' is already registered.",
            409,
            field="email",
        )

    profile = Profile(
        name=name.strip(),
        email=email,
        password_hash=_hash_password(password),
        upi_id=upi_id,
    )
    session.add(profile)
    session.flush()  # populate profile.id for the token

    logger.info("Registered profile %s", profile.id)

    return {
        "profile": serialize_profile(profile, include_email=True),
        "access_token": _create_access_token(profile.id),
    }


def login(email: str, password: str, session: Session) -> dict:
    """
    Validates credentials and issues a new access token.

    Raises:
      AppError(INVALID_CREDENTIALS, 401) — unknown email or wrong password.
      The same error is used for both to avoid account enumeration.
    """
    profile = session.execute(
        select(Profile).where(func.lower(Profile.email) == email.strip().lower())
    ).scalar_one_or_none()

    if profile is None or not bcrypt.checkpw(
            password.encode("utf-8"),
            profile.password_hash.encode("utf-8"),
    ):
        raise AppError(
            ErrorCode.INVALID_CREDENTIALS,
            "The email or password is incorrect.",
            401,
        )

    return {
        "profile": serialize_profile(profile, include_email=True),
        "access_token": _create_access_token(profile.id),
    }
