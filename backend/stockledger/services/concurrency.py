# Overview: Transaction and retry helpers shared by every mutating service.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import DBAPIError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from ..errors import ConcurrencyConflict, StorageUnavailable


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Execute one unit of work, retrying on concurrency-related failures.

    - OperationalError (deadlocks, lock timeouts) and StaleDataError
      (version_id mismatch on LocationStock/Transfer/Approval) are retried
      with exponential backoff. Exhausted retries raise ConcurrencyConflict.
    - A dropped connection raises StorageUnavailable and is not retried.
    - Any other exception rolls the session back and propagates unchanged.

    func must be idempotent up to its commit: it is re-run from scratch
    after each rollback.
    """
    if attempts is None:
        attempts = current_app.config.get("LOCK_RETRY_ATTEMPTS", 3)
    if backoff_base is None:
        backoff_base = current_app.config.get("LOCK_RETRY_BACKOFF", 0.1)

    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            if isinstance(exc, DBAPIError) and exc.connection_invalidated:
                current_app.logger.error("Database connection lost: %s", exc)
                raise StorageUnavailable("Storage is unavailable") from exc
            if attempt >= attempts - 1:
                current_app.logger.warning(
                    "Concurrency conflict after %s attempts: %s", attempts, exc
                )
                raise ConcurrencyConflict(
                    "The record was modified by another request, please retry",
                    {"attempts": attempts},
                ) from exc
            current_app.logger.info("Retrying after concurrency failure (attempt %s)", attempt + 1)
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise
    raise ConcurrencyConflict("The record was modified by another request, please retry")
