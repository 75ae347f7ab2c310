# Overview: Error taxonomy and the single translation point from exceptions to JSON responses.

"""
Application errors and their HTTP translation.

Services raise the typed errors below; storage-layer failures surface as
SQLAlchemy exceptions. Both are converted to a response in exactly one place
(register_error_handlers), so routes never build error bodies themselves.

Body shape:
    {"success": false, "error": "<message>", "details": {...}?, "traceback": "..."?}
"""

from __future__ import annotations

import traceback

import jwt
from flask import current_app, jsonify, request
from sqlalchemy.exc import IntegrityError, OperationalError, TimeoutError as PoolTimeoutError
from werkzeug.exceptions import HTTPException


class AppError(Exception):
    """Base class for errors that map to a specific HTTP status."""
    status_code = 500
    retryable = False

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ValidationError(AppError):
    """400-level input problem."""
    status_code = 400


class UnauthorizedError(AppError):
    """Missing, invalid or expired credential."""
    status_code = 401


class ForbiddenError(AppError):
    status_code = 403


class NotFoundError(AppError):
    status_code = 404


class ConflictError(AppError):
    """409-level business rule conflict (e.g., duplicate SKU)."""
    status_code = 409


class DatabaseError(AppError):
    status_code = 500


class ServiceUnavailableError(AppError):
    """Infrastructure timeout; the caller may retry."""
    status_code = 503
    retryable = True


# SQLSTATE codes shared by PostgreSQL drivers
UNIQUE_VIOLATION = "23505"
FOREIGN_KEY_VIOLATION = "23503"
NOT_NULL_VIOLATION = "23502"
CHECK_VIOLATION = "23514"


def _sqlstate(exc: IntegrityError) -> str | None:
    orig = getattr(exc, "orig", None)
    return getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)


def translate_integrity_error(exc: IntegrityError) -> AppError:
    """Map a constraint violation to the taxonomy."""
    code = _sqlstate(exc)
    message = str(getattr(exc, "orig", exc)).lower()

    if code == UNIQUE_VIOLATION or "unique constraint" in message or "duplicate key" in message:
        return ConflictError("A record with these values already exists")
    if code == FOREIGN_KEY_VIOLATION or "foreign key constraint" in message:
        return ValidationError("Referenced record does not exist")
    if code == NOT_NULL_VIOLATION or "not null constraint" in message:
        return ValidationError("Missing required fields")
    if code == CHECK_VIOLATION or "check constraint" in message:
        return ValidationError("Values violate data constraints")
    return DatabaseError("Database error")


def translate_exception(exc: Exception) -> AppError:
    """Convert any exception into an AppError (identity for AppError)."""
    if isinstance(exc, AppError):
        return exc
    if isinstance(exc, IntegrityError):
        return translate_integrity_error(exc)
    if isinstance(exc, (OperationalError, PoolTimeoutError)):
        return ServiceUnavailableError("Database temporarily unavailable, please retry")
    if isinstance(exc, jwt.ExpiredSignatureError):
        return UnauthorizedError("Token expired")
    if isinstance(exc, jwt.InvalidTokenError):
        return UnauthorizedError("Invalid token")
    return DatabaseError("Internal server error")


def error_body(error: AppError, exc: Exception | None = None) -> dict:
    body = {"success": False, "error": error.message}
    if error.details:
        body["details"] = error.details
    if error.retryable:
        body["retryable"] = True
    if exc is not None and current_app.config.get("ERROR_INCLUDE_DETAILS"):
        body["traceback"] = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
    return body


def register_error_handlers(app) -> None:
    """Install the central exception -> response translator."""

    @app.errorhandler(HTTPException)
    def handle_http_exception(exc: HTTPException):
        body = {"success": False, "error": exc.description or exc.name}
        return jsonify(body), exc.code or 500

    @app.errorhandler(Exception)
    def handle_exception(exc: Exception):
        error = translate_exception(exc)

        # Roll back whatever the failed request left in the session
        from .extensions import db
        db.session.rollback()

        if error.status_code >= 500:
            current_app.logger.exception(
                "Unhandled error on %s %s", request.method, request.path
            )
        elif not isinstance(exc, AppError):
            current_app.logger.warning(
                "%s on %s %s translated to %s",
                type(exc).__name__, request.method, request.path, error.status_code,
            )

        response = jsonify(error_body(error, exc))
        response.status_code = error.status_code
        if isinstance(error, UnauthorizedError):
            response.delete_cookie(current_app.config.get("REFRESH_COOKIE_NAME", "refreshToken"))
        return response
