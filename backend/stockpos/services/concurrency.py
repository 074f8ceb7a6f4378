# Overview: Service-layer operations for concurrency; row locking and retry helpers.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import ConcurrencyConflictError
from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). ConcurrencyConflictError from the stock
    ledger is retried once only: a second lost race is reported to the caller.
    """
    last_exc = None
    conflicts = 0
    for attempt in range(attempts):
        try:
            return func()
        except ConcurrencyConflictError as exc:
            db.session.rollback()
            last_exc = exc
            conflicts += 1
            if conflicts > 1 or attempt >= attempts - 1:
                raise
            current_app.logger.warning("Stock counter conflict, retrying with fresh counters: %s", exc)
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc


def commit_with_retry(*, attempts: int = 3, backoff_base: float = 0.1):
    """Commit current session with retry handling."""
    def _op():
        db.session.commit()
    return run_with_retry(_op, attempts=attempts, backoff_base=backoff_base)
