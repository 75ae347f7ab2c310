# Overview: Service-layer helpers for row locking, write transactions and retry.

from __future__ import annotations

import logging
import time

from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import ServiceUnavailableError
from ..extensions import db

logger = logging.getLogger(__name__)


def is_sqlite() -> bool:
    return db.engine.dialect.name == "sqlite"


def begin_write() -> None:
    """
    Open the write transaction for a critical section.

    SQLite ignores SELECT ... FOR UPDATE, so the database-wide write lock is
    taken up front with BEGIN IMMEDIATE. Concurrent writers then queue on the
    busy timeout instead of reading stale stock. Other backends rely on
    lock_for_update.
    """
    if not is_sqlite():
        return
    # Drop any implicit transaction the session opened for earlier reads
    db.session.rollback()
    db.session.execute(text("BEGIN IMMEDIATE"))


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks, busy timeouts) and
    StaleDataError. When every attempt fails the caller gets a retryable 503.
    """
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                logger.warning("Giving up after %d attempts: %s", attempts, exc)
                raise ServiceUnavailableError(
                    "Database is busy, please retry",
                    {"attempts": attempts},
                ) from exc
            logger.info("Retrying after %s (attempt %d/%d)", type(exc).__name__, attempt + 1, attempts)
            time.sleep(backoff_base * (2 ** attempt))

