# Overview: Access-token (JWT) and refresh-token issuance, validation and revocation.

"""
Token management.

Access tokens are short-lived HS256 JWTs carrying the user id, email and role
plus issuer/audience claims. Refresh tokens are opaque random strings; only
their SHA-256 is stored, one row per live session.

SECURITY:
- Refresh tokens: 32 bytes from `secrets`, never stored in plaintext
- Expired refresh tokens are pruned for the user on every login
- Password change revokes every refresh token of the user
"""

from __future__ import annotations

import hashlib
import logging
import secrets
from dataclasses import dataclass
from datetime import timedelta

import jwt
from flask import current_app

from ..errors import UnauthorizedError
from ..extensions import db
from ..models import RefreshToken, User
from ..time_utils import utcnow

logger = logging.getLogger(__name__)

JWT_ALGORITHM = "HS256"


@dataclass
class TokenPair:
    access_token: str
    refresh_token: str
    expires_in: int


def generate_token() -> str:
    """64-character hex string (32 bytes of entropy)."""
    return secrets.token_hex(32)


def hash_token(token: str) -> str:
    return hashlib.sha256(token.encode('utf-8')).hexdigest()


def create_access_token(user: User) -> str:
    now = utcnow()
    minutes = current_app.config["JWT_ACCESS_EXPIRES_MINUTES"]
    payload = {
        "sub": str(user.id),
        "email": user.email,
        "role": user.role,
        "iat": now,
        "exp": now + timedelta(minutes=minutes),
        "iss": current_app.config["JWT_ISSUER"],
        "aud": current_app.config["JWT_AUDIENCE"],
    }
    return jwt.encode(payload, current_app.config["JWT_ACCESS_SECRET"], algorithm=JWT_ALGORITHM)


def decode_access_token(token: str) -> dict:
    """
    Verify signature, expiry, issuer and audience.

    Raises jwt.ExpiredSignatureError / jwt.InvalidTokenError; the central
    error handler turns both into 401.
    """
    return jwt.decode(
        token,
        current_app.config["JWT_ACCESS_SECRET"],
        algorithms=[JWT_ALGORITHM],
        issuer=current_app.config["JWT_ISSUER"],
        audience=current_app.config["JWT_AUDIENCE"],
        options={"require": ["exp", "iat", "sub"]},
    )


def create_refresh_token(user_id: int) -> str:
    """Persist the hash of a new refresh token and return the plaintext."""
    plaintext = generate_token()
    days = current_app.config["REFRESH_TOKEN_EXPIRES_DAYS"]
    db.session.add(RefreshToken(
        user_id=user_id,
        token_hash=hash_token(plaintext),
        expires_at=utcnow() + timedelta(days=days),
    ))
    db.session.commit()
    return plaintext


def issue_tokens(user: User) -> TokenPair:
    return TokenPair(
        access_token=create_access_token(user),
        refresh_token=create_refresh_token(user.id),
        expires_in=current_app.config["JWT_ACCESS_EXPIRES_MINUTES"] * 60,
    )


def user_for_refresh_token(token: str | None) -> User:
    """Resolve a live refresh token to its active user, or raise 401."""
    if not token:
        raise UnauthorizedError("Refresh token required")
    record = (
        db.session.query(RefreshToken)
        .filter(RefreshToken.token_hash == hash_token(token), RefreshToken.expires_at > utcnow())
        .first()
    )
    if record is None:
        raise UnauthorizedError("Invalid or expired refresh token")
    user = record.user
    if user is None or not user.is_active:
        raise UnauthorizedError("User account is inactive")
    return user


def revoke_refresh_token(token: str | None) -> bool:
    if not token:
        return False
    deleted = db.session.query(RefreshToken).filter_by(token_hash=hash_token(token)).delete()
    db.session.commit()
    return bool(deleted)


def revoke_all_user_tokens(user_id: int) -> int:
    deleted = db.session.query(RefreshToken).filter_by(user_id=user_id).delete()
    db.session.commit()
    return deleted


def prune_expired_tokens(user_id: int | None = None) -> int:
    """Delete expired refresh tokens (for one user, or everyone)."""
    query = db.session.query(RefreshToken).filter(RefreshToken.expires_at <= utcnow())
    if user_id is not None:
        query = query.filter(RefreshToken.user_id == user_id)
    deleted = query.delete(synchronize_session=False)
    db.session.commit()
    if deleted:
        logger.info("Pruned %d expired refresh token(s)", deleted)
    return deleted
