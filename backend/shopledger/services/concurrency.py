# Overview: Transaction boundaries, row locking and bounded retry for stock-affecting operations.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


class ConcurrencyConflict(Exception):
    """
    Retryable conflict: another transaction changed the rows this unit of
    work depends on (lost optimistic version, sequence insert race, ...).
    """


RETRYABLE_ERRORS = (OperationalError, StaleDataError, ConcurrencyConflict)


def begin_write_unit() -> None:
    """
    Open the all-or-nothing write unit on the current session.

    SQLite has no row locks, so take the database write lock up front
    (BEGIN IMMEDIATE): conflicting sale/void/stock units then run one after
    another and every read inside the unit sees committed state. Other
    databases get row locks from lock_for_update().
    """
    if db.engine.dialect.name == "sqlite":
        db.session.execute(text("BEGIN IMMEDIATE"))


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    Rows already in the identity map are overwritten with what the locked
    read returns.
    """
    return query.with_for_update().populate_existing()


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Execute a unit of work, retrying it from scratch on concurrency failures.

    Retries on OperationalError (deadlocks, busy database, serialization
    failures), StaleDataError (optimistic version conflicts) and
    ConcurrencyConflict. The session is rolled back before every retry so the
    next attempt re-reads, re-validates and re-commits. Any other exception
    rolls back and propagates immediately.
    """
    if attempts is None:
        attempts = current_app.config.get("SALE_COMMIT_ATTEMPTS", 3)
    if backoff_base is None:
        backoff_base = current_app.config.get("SALE_RETRY_BACKOFF", 0.1)

    for attempt in range(attempts):
        try:
            return func()
        except RETRYABLE_ERRORS as exc:
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            current_app.logger.warning(
                "Retrying unit of work after conflict (attempt %s/%s): %s",
                attempt + 1,
                attempts,
                exc,
            )
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise
