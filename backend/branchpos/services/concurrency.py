# Overview: Row locks and conflict retries shared by the branch and head office services.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db

# Lock waits, deadlocks and version_id mismatches on tables/sales rows
RETRYABLE_ERRORS = (OperationalError, StaleDataError)


def lock_for_update(query):
    """Add SELECT ... FOR UPDATE to a query (a no-op on SQLite, where version_id guards instead)."""
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Run ``func`` (a service's unit of work, ending in a commit) until it
    succeeds or ``attempts`` conflicts have been seen.

    The session is rolled back after every failure. Conflicts sleep with
    exponential backoff and re-run ``func`` from the top, so it has to
    re-read the rows it validates. Domain errors are never retried.
    """
    name = getattr(func, "__qualname__", repr(func))
    for attempt in range(1, attempts + 1):
        try:
            return func()
        except RETRYABLE_ERRORS as exc:
            db.session.rollback()
            if attempt == attempts:
                current_app.logger.error("%s gave up after %s conflicts: %s", name, attempts, exc)
                raise
            current_app.logger.warning("%s hit a write conflict (attempt %s/%s): %s", name, attempt, attempts, exc)
            time.sleep(backoff_base * (2 ** (attempt - 1)))
        except Exception:
            db.session.rollback()
            raise
