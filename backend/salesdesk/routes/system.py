# backend/salesdesk/routes/system.py
"""
System health endpoint.

Reports database connectivity and basic table counts; 503 when the
database cannot be reached.
"""

import time

from flask import Blueprint, current_app
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import Product, RefreshToken, Sale, User
from ..time_utils import to_utc_z, utcnow

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        db.session.execute(text("SELECT 1"))
        details = {
            "users": db.session.query(User).count(),
            "products": db.session.query(Product).count(),
            "sales": db.session.query(Sale).count(),
        }
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round((time.time() - start_time) * 1000, 2),
            "error": "Database error",
        }

    return {
        "status": "healthy",
        "latency_ms": round((time.time() - start_time) * 1000, 2),
        "dialect": db.engine.dialect.name,
        "details": details,
    }


def check_token_store_health() -> dict:
    start_time = time.time()
    try:
        live = db.session.query(RefreshToken).filter(RefreshToken.expires_at > utcnow()).count()
        expired = db.session.query(RefreshToken).filter(RefreshToken.expires_at <= utcnow()).count()
    except SQLAlchemyError:
        db.session.rollback()
        current_app.logger.exception("Token store health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round((time.time() - start_time) * 1000, 2),
            "error": "Token store error",
        }

    return {
        "status": "healthy",
        "latency_ms": round((time.time() - start_time) * 1000, 2),
        "details": {"live_refresh_tokens": live, "expired_pending_cleanup": expired},
    }


@system_bp.get("/health")
def health():
    """
    Health check.

    Returns:
    - 200: all checks healthy
    - 503: one or more checks unhealthy
    """
    start_time = time.time()
    checks = {
        "database": check_database_health(),
        "token_store": check_token_store_health(),
    }
    healthy = all(check["status"] == "healthy" for check in checks.values())

    response = {
        "success": healthy,
        "status": "healthy" if healthy else "unhealthy",
        "environment": current_app.config.get("APP_ENV"),
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": checks,
    }
    return response, 200 if healthy else 503
