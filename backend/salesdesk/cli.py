# Overview: Flask CLI command groups for bootstrap, inspection, maintenance and serving.

# backend/salesdesk/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Idempotent bootstrap: creates tables plus a default admin and seller.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users list
# - python -m flask users create --email a@b.c --first-name Ana --last-name Ruiz --role seller
#
# Maintenance:
# - python -m flask maintenance prune-refresh-tokens
#   Delete expired refresh tokens for every user.
#
# Serving:
# - python -m flask serve --host 0.0.0.0 --port 5000
#   Threaded server that drains in-flight requests on SIGINT/SIGTERM.

import logging
import signal
import threading

import click
from flask import current_app
from flask.cli import with_appcontext
from werkzeug.serving import make_server

from .errors import AppError
from .extensions import db
from .models import User, USER_ROLES
from .services import auth_service, token_service

logger = logging.getLogger(__name__)

DEFAULT_PASSWORD = "Password123!"
DEFAULT_USERS = (
    ("admin@sales.local", "System", "Admin", "admin"),
    ("seller@sales.local", "Default", "Seller", "seller"),
)


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@click.option('--password', default=DEFAULT_PASSWORD, show_default=True, help='Password for seeded users')
@with_appcontext
def init_system(password):
    """
    Create all tables and the default accounts.

    SECURITY: Change the seeded passwords immediately in production!
    """
    click.echo("START Initializing sales system...")
    db.create_all()
    click.echo("PASS Tables ready")

    for email, first_name, last_name, role in DEFAULT_USERS:
        existing = db.session.query(User).filter_by(email=email).first()
        if existing:
            click.echo(f"PASS Using existing {role}: {email} (ID: {existing.id})")
            continue
        user = auth_service.create_user(email, password, first_name, last_name, role)
        click.echo(f"PASS Created {role}: {email} (ID: {user.id})")

    click.echo("DONE System initialized")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    click.echo("PASS Database reset complete. Run 'python -m flask system init' to initialize.")


@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--email', prompt=True, help='Email address')
@click.option('--first-name', prompt=True, help='First name')
@click.option('--last-name', prompt=True, help='Last name')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(list(USER_ROLES)), default='seller', show_default=True, help='Role')
@with_appcontext
def create_user_cli(email, first_name, last_name, password, role):
    """Create a user."""
    try:
        user = auth_service.create_user(email, password, first_name, last_name, role)
    except AppError as e:
        raise click.ClickException(e.message)
    click.echo(f"PASS Created {user.role} {user.email} (ID: {user.id})")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with their role and active status."""
    users = auth_service.list_users()

    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*90)
    click.echo(f"{'ID':<5} {'Email':<35} {'Name':<30} {'Role':<8} {'Active'}")
    click.echo("="*90)

    for user in users:
        name = f"{user.first_name} {user.last_name}"
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.email:<35} {name:<30} {user.role:<8} {active_str}")

    click.echo("="*90 + "\n")


@click.group('maintenance')
def maintenance_group():
    """Housekeeping commands."""


@maintenance_group.command('prune-refresh-tokens')
@with_appcontext
def prune_refresh_tokens():
    """Delete expired refresh tokens."""
    deleted = token_service.prune_expired_tokens()
    click.echo(f"PASS Deleted {deleted} expired refresh token(s)")


@click.command('serve')
@click.option('--host', default='127.0.0.1', show_default=True)
@click.option('--port', default=5000, type=int, show_default=True)
@with_appcontext
def serve(host, port):
    """
    Run a threaded server with graceful shutdown.

    On SIGINT/SIGTERM the listener closes, in-flight requests get up to
    SHUTDOWN_GRACE_SECONDS to finish, then the connection pool is disposed.
    """
    app = current_app._get_current_object()
    grace = app.config.get("SHUTDOWN_GRACE_SECONDS", 10.0)

    server = make_server(host, port, app, threaded=True)
    # Keep request threads joinable so shutdown can drain them
    server.daemon_threads = False
    server.block_on_close = True

    stopping = threading.Event()

    def _request_stop(signum, frame):
        if stopping.is_set():
            return
        stopping.set()
        logger.info("Received signal %s, shutting down", signum)
        # shutdown() blocks until serve_forever returns, so it cannot run on this thread
        threading.Thread(target=server.shutdown, daemon=True).start()

    signal.signal(signal.SIGINT, _request_stop)
    signal.signal(signal.SIGTERM, _request_stop)

    click.echo(f"Serving on http://{host}:{port}")
    try:
        server.serve_forever()
    finally:
        drain = threading.Thread(target=server.server_close, daemon=True)
        drain.start()
        drain.join(timeout=grace)
        if drain.is_alive():
            logger.warning("In-flight requests still running after %.1fs grace period", grace)
        db.engine.dispose()
        click.echo("Server stopped")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(maintenance_group)
    app.cli.add_command(serve)
