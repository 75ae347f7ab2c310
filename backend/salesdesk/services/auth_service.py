# Overview: Service-layer operations for auth; password hashing, users and login.

"""
Authentication Service

Every sale is attributed to the user that recorded it, so every request that
writes must come from a known, active account.

SECURITY NOTES:
- Passwords hashed with bcrypt (cost factor 12)
- Minimum 8 characters required
- Tokens are managed separately (see token_service.py)
"""

from __future__ import annotations

import logging

import bcrypt
from sqlalchemy.exc import IntegrityError

from ..errors import ConflictError, UnauthorizedError, ValidationError, translate_integrity_error
from ..extensions import db
from ..models import User, USER_ROLES
from ..time_utils import utcnow
from ..validation import validate_password
from . import token_service

logger = logging.getLogger(__name__)

BCRYPT_ROUNDS = 12


def hash_password(password: str) -> str:
    """Hash password using bcrypt with cost factor 12."""
    validate_password(password)
    salt = bcrypt.gensalt(rounds=BCRYPT_ROUNDS)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """Timing-safe check; malformed hashes simply fail."""
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def normalize_email(email) -> str:
    if not isinstance(email, str) or "@" not in email.strip():
        raise ValidationError("A valid email is required")
    return email.strip().lower()


def create_user(
    email: str,
    password: str,
    first_name: str,
    last_name: str,
    role: str = "seller",
) -> User:
    email = normalize_email(email)
    if role not in USER_ROLES:
        raise ValidationError(f"role must be one of: {', '.join(USER_ROLES)}")
    first_name = (first_name or "").strip()
    last_name = (last_name or "").strip()
    if not first_name or not last_name:
        raise ValidationError("first_name and last_name are required")

    if db.session.query(User.id).filter_by(email=email).first():
        raise ConflictError("Email already registered")

    user = User(
        email=email,
        password_hash=hash_password(password),
        first_name=first_name,
        last_name=last_name,
        role=role,
        is_active=True,
    )
    db.session.add(user)
    try:
        db.session.commit()
    except IntegrityError as exc:
        db.session.rollback()
        raise translate_integrity_error(exc) from exc

    logger.info("Created %s user %s (%s)", role, user.id, email)
    return user


def authenticate(email: str, password: str) -> User:
    """
    Check credentials and stamp last_login_at.

    The same 401 is raised for unknown email, wrong password and inactive
    account so the response does not reveal which one failed.
    """
    email = (email or "").strip().lower()
    user = db.session.query(User).filter_by(email=email).first()
    if user is None or not user.is_active or not verify_password(password, user.password_hash):
        logger.warning("Failed login for %s", email or "<blank>")
        raise UnauthorizedError("Invalid credentials")

    user.last_login_at = utcnow()
    db.session.commit()
    return user


def login(email: str, password: str) -> tuple[User, token_service.TokenPair]:
    user = authenticate(email, password)
    token_service.prune_expired_tokens(user.id)
    tokens = token_service.issue_tokens(user)
    logger.info("User %s logged in", user.id)
    return user, tokens


def get_active_user(user_id: int) -> User:
    user = db.session.get(User, user_id)
    if user is None or not user.is_active:
        raise UnauthorizedError("User not found or inactive")
    return user


def change_password(user: User, current_password: str, new_password: str) -> None:
    if not verify_password(current_password, user.password_hash):
        raise UnauthorizedError("Current password is incorrect")
    if current_password == new_password:
        raise ValidationError("New password must differ from the current one")
    user.password_hash = hash_password(new_password)
    db.session.commit()
    revoked = token_service.revoke_all_user_tokens(user.id)
    logger.info("Password changed for user %s; %d session(s) revoked", user.id, revoked)


def list_users() -> list[User]:
    return db.session.query(User).order_by(User.id.asc()).all()

