# Overview: Retry and row-locking helpers shared by every write path of the order engine.

from __future__ import annotations

import time

from flask import current_app, has_app_context
from sqlalchemy import text
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical reads.

    NOTE: SQLite ignores SELECT ... FOR UPDATE. Correctness there comes from
    the conditional UPDATE statements, not from this lock.
    """
    return query.with_for_update()


def begin_write() -> None:
    """
    Take the write lock at the start of a unit of work on SQLite.

    A unit that reads before it writes would otherwise hit SQLite's
    SHARED -> RESERVED lock upgrade deadlock under concurrent writers.
    Other backends rely on row locks taken by the UPDATE statements.
    """
    if db.engine.dialect.name == "sqlite":
        db.session.execute(text("BEGIN IMMEDIATE"))


def _retry_settings(attempts: int | None, backoff_base: float | None) -> tuple[int, float]:
    if has_app_context():
        if attempts is None:
            attempts = current_app.config.get("DB_RETRY_ATTEMPTS", 3)
        if backoff_base is None:
            backoff_base = current_app.config.get("DB_RETRY_BACKOFF", 0.1)
    return attempts or 3, 0.1 if backoff_base is None else backoff_base


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Execute a whole unit of work, retrying on concurrency-related failures.

    Retries on OperationalError (deadlocks, "database is locked") and
    StaleDataError. The session is rolled back before every new attempt, so
    func must be safe to re-run from scratch. Exhaustion re-raises the last
    error; the app maps it to a retryable 503.
    """
    attempts, backoff_base = _retry_settings(attempts, backoff_base)
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError):
            db.session.rollback()
            if attempt >= attempts - 1:
                raise
            if has_app_context():
                current_app.logger.warning(
                    "Retrying unit of work after DB conflict (attempt %s/%s)", attempt + 1, attempts
                )
            time.sleep(backoff_base * (2 ** attempt))
