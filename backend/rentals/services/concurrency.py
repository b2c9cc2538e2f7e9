# Overview: Transaction helpers shared by every stock-mutating service.

from __future__ import annotations

import time

from flask import current_app, has_app_context
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for stock-counter reads.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; there the Equipment
    version_id column turns a lost update into StaleDataError instead.
    """
    return query.with_for_update()


def _configured_attempts() -> int:
    if has_app_context():
        return int(current_app.config.get("DB_RETRY_ATTEMPTS", 3))
    return 3


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float = 0.1):
    """
    Execute a unit of work with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, "database is locked") and
    StaleDataError (optimistic locking conflicts on Equipment rows).
    The session is rolled back before every retry, so `func` must re-read
    everything it depends on.
    """
    if attempts is None:
        attempts = _configured_attempts()

    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            if has_app_context():
                current_app.logger.warning(
                    "Retrying transaction after %s (attempt %d/%d)",
                    type(exc).__name__, attempt + 1, attempts,
                )
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc


def atomic(func, *, attempts: int | None = None):
    """
    Run `func` as one transaction: commit on success, roll back on any error.

    Business-rule errors raised inside `func` are re-raised after rollback;
    concurrency failures are retried by run_with_retry.
    """
    def _op():
        try:
            result = func()
            db.session.commit()
            return result
        except Exception:
            db.session.rollback()
            raise

    return run_with_retry(_op, attempts=attempts)
