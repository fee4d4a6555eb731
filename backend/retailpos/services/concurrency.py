# Overview: Service-layer operations for concurrency; row locking and transaction retry.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import TransientConflictError
from ..extensions import db


class ConcurrentInsertError(Exception):
    """Another writer inserted the same uniquely-keyed row first; safe to retry."""


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    Versioned rows (version_id_col) still catch lost updates on SQLite.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks), StaleDataError
    (optimistic locking conflicts) and ConcurrentInsertError (two writers
    racing to create the same stock record). Any other exception, including
    a plain IntegrityError, rolls the session back and propagates, so a
    failed operation never leaves flushed rows behind.
    """
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError, ConcurrentInsertError) as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                current_app.logger.warning("Giving up after %d attempts: %s", attempts, exc)
                raise TransientConflictError("Concurrent update conflict, please retry") from exc
            current_app.logger.info("Retrying after concurrency conflict (attempt %d): %s", attempt + 1, exc)
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise
