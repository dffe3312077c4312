# Overview: Service-layer helpers for locking, retries and optimistic version checks.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db
from .errors import ConcurrencyConflict


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE, but other DBs will honor it.
    The distribution version_id column covers SQLite.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1, retry_on=(OperationalError,)):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Only the exception types in retry_on are retried; the session is
    rolled back between attempts.
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except retry_on as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            current_app.logger.warning(
                "Retrying after %s (attempt %d/%d)", type(exc).__name__, attempt + 1, attempts
            )
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc


def flush_or_conflict(entity_label: str) -> None:
    """
    Flush pending changes, turning a version mismatch into ConcurrencyConflict.

    StaleDataError means another transaction committed a change to the same
    row after we read it.
    """
    try:
        db.session.flush()
    except StaleDataError as exc:
        db.session.rollback()
        raise ConcurrencyConflict(
            f"{entity_label} was modified by another request; reload and try again"
        ) from exc


def commit_or_conflict(entity_label: str = "Distribution") -> None:
    """Commit current session; a lost optimistic check becomes ConcurrencyConflict."""
    try:
        db.session.commit()
    except StaleDataError as exc:
        db.session.rollback()
        raise ConcurrencyConflict(
            f"{entity_label} was modified by another request; reload and try again"
        ) from exc
