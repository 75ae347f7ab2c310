# backend/salesdesk/config.py
from __future__ import annotations
import os


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return int(raw)


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    return float(raw)


DEFAULT_SECRET_KEY = "dev-secret-key-change-me"
DEFAULT_JWT_SECRET = "dev-jwt-secret-change-me"


class Config:
    APP_ENV = os.environ.get("APP_ENV", "development")

    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", DEFAULT_SECRET_KEY)

    # SQLite DB stored in backend/instance/sales_inventory.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///sales_inventory.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Connection acquisition timeout (seconds)
    DB_POOL_TIMEOUT = _env_float("DB_POOL_TIMEOUT", 5.0)
    # PostgreSQL: per-statement statement_timeout.
    # SQLite: busy timeout, i.e. how long a writer waits for the database lock.
    DB_STATEMENT_TIMEOUT = _env_float("DB_STATEMENT_TIMEOUT", 15.0)

    # Access tokens are short-lived JWTs; refresh tokens are opaque and hashed at rest
    JWT_ACCESS_SECRET = os.environ.get("JWT_ACCESS_SECRET", DEFAULT_JWT_SECRET)
    JWT_ACCESS_EXPIRES_MINUTES = _env_int("JWT_ACCESS_EXPIRES_MINUTES", 15)
    JWT_ISSUER = "sales-inventory-system"
    JWT_AUDIENCE = "sales-app-users"
    REFRESH_TOKEN_EXPIRES_DAYS = _env_int("REFRESH_TOKEN_EXPIRES_DAYS", 7)
    REFRESH_COOKIE_NAME = "refreshToken"

    FRONTEND_URL = os.environ.get("FRONTEND_URL", "http://localhost:3000")

    MAX_IMAGE_SIZE = _env_int("MAX_IMAGE_SIZE", 5 * 1024 * 1024)
    # Three images plus multipart overhead
    MAX_CONTENT_LENGTH = MAX_IMAGE_SIZE * 3 + 1024 * 1024
    IMAGE_UPLOAD_TIMEOUT = _env_float("IMAGE_UPLOAD_TIMEOUT", 10.0)
    IMAGE_BASE_URL = os.environ.get(
        "IMAGE_BASE_URL", "https://res.cloudinary.com/sales-system/image/upload"
    )

    LOW_STOCK_THRESHOLD = _env_int("LOW_STOCK_THRESHOLD", 10)
    WARRANTY_EXPIRING_SOON_DAYS = 30

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
    ERROR_INCLUDE_DETAILS = APP_ENV == "development"

    SHUTDOWN_GRACE_SECONDS = _env_float("SHUTDOWN_GRACE_SECONDS", 10.0)


class TestingConfig(Config):
    APP_ENV = "testing"
    TESTING = True
    SECRET_KEY = "test-secret"
    JWT_ACCESS_SECRET = "test-jwt-secret"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    ERROR_INCLUDE_DETAILS = False
    LOG_LEVEL = "WARNING"


def build_engine_options(uri: str, *, pool_timeout: float, statement_timeout: float) -> dict:
    """
    SQLAlchemy engine kwargs carrying the acquisition and statement timeouts.

    On SQLite the statement timeout becomes the driver busy timeout.

    In-memory SQLite runs on a StaticPool which rejects pool sizing arguments.
    """
    if uri.startswith("sqlite"):
        options: dict = {"connect_args": {"timeout": statement_timeout, "check_same_thread": False}}
        if ":memory:" not in uri and "mode=memory" not in uri:
            options["pool_timeout"] = pool_timeout
        return options

    options = {"pool_pre_ping": True, "pool_timeout": pool_timeout}
    if uri.startswith("postgresql"):
        options["connect_args"] = {
            "options": f"-c statement_timeout={int(statement_timeout * 1000)}"
        }
    return options


def validate_config(config) -> None:
    """Refuse to boot in production with development secrets."""
    if config.get("APP_ENV") != "production":
        return
    problems = []
    if config.get("SECRET_KEY") == DEFAULT_SECRET_KEY:
        problems.append("SECRET_KEY")
    if config.get("JWT_ACCESS_SECRET") == DEFAULT_JWT_SECRET:
        problems.append("JWT_ACCESS_SECRET")
    if not os.environ.get("DATABASE_URL"):
        problems.append("DATABASE_URL")
    if problems:
        raise RuntimeError(f"Missing production configuration: {', '.join(problems)}")
