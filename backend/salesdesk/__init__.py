# backend/salesdesk/__init__.py
import logging

from flask import Flask, request

from .config import Config, build_engine_options, validate_config
from .extensions import db, migrate

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def _configure_logging(app: Flask) -> None:
    level = logging.getLevelName(str(app.config.get("LOG_LEVEL", "INFO")).upper())
    if not isinstance(level, int):
        level = logging.INFO
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=level, format=LOG_FORMAT)
    logging.getLogger("salesdesk").setLevel(level)
    app.logger.setLevel(level)


def _allowed_origins(app: Flask) -> set[str]:
    raw = app.config.get("FRONTEND_URL") or ""
    return {origin.strip().rstrip("/") for origin in raw.split(",") if origin.strip()}


def create_app(config_object=Config) -> Flask:
    app = Flask(__name__, instance_relative_config=True)
    app.config.from_object(config_object)
    validate_config(app.config)
    _configure_logging(app)

    app.config.setdefault(
        "SQLALCHEMY_ENGINE_OPTIONS",
        build_engine_options(
            app.config["SQLALCHEMY_DATABASE_URI"],
            pool_timeout=app.config["DB_POOL_TIMEOUT"],
            statement_timeout=app.config["DB_STATEMENT_TIMEOUT"],
        ),
    )

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)

    # Import models so Alembic can discover metadata reliably
    from . import models  # noqa: F401

    from .errors import register_error_handlers
    register_error_handlers(app)

    # Register blueprints
    from .routes.system import system_bp
    from .routes.auth import auth_bp
    from .routes.products import products_bp
    from .routes.customers import customers_bp
    from .routes.sales import sales_bp
    from .routes.warranties import warranties_bp
    from .routes.stats import stats_bp, reports_bp

    app.register_blueprint(system_bp)
    app.register_blueprint(auth_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(customers_bp)
    app.register_blueprint(sales_bp)
    app.register_blueprint(warranties_bp)
    app.register_blueprint(stats_bp)
    app.register_blueprint(reports_bp)

    allowed_origins = _allowed_origins(app)

    @app.after_request
    def add_cors_headers(response):
        origin = request.headers.get("Origin")
        if origin and origin.rstrip("/") in allowed_origins:
            response.headers["Access-Control-Allow-Origin"] = origin
            response.headers["Vary"] = "Origin"
            response.headers["Access-Control-Allow-Credentials"] = "true"
            response.headers["Access-Control-Allow-Headers"] = "Authorization, Content-Type"
            response.headers["Access-Control-Allow-Methods"] = "GET,POST,PUT,DELETE,PATCH,OPTIONS"
        return response

    # Register CLI commands
    from .cli import register_commands
    register_commands(app)

    app.logger.info("App ready (env=%s, db=%s)", app.config.get("APP_ENV"), app.config["SQLALCHEMY_DATABASE_URI"].split(":", 1)[0])
    return app
