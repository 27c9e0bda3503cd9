# Overview: Row locking, retry and guarded counter updates shared by the services.

from __future__ import annotations

import time

from sqlalchemy import update
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; there the optimistic
    version_id columns and guarded updates carry the serialization.
    """
    return query.with_for_update()


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts). ``func`` must re-read whatever state it
    validates so a retry sees the winner's changes.
    """
    last_exc = None
    for attempt in range(attempts):
        try:
            return func()
        except (OperationalError, StaleDataError) as exc:
            db.session.rollback()
            last_exc = exc
            if attempt >= attempts - 1:
                raise
            time.sleep(backoff_base * (2 ** attempt))
    if last_exc:
        raise last_exc


def guarded_decrement(model, row_id: int, column: str, amount: int, *extra_criteria) -> bool:
    """
    UPDATE model SET column = column - amount WHERE id = row_id AND column >= amount.

    Returns False when no row qualified. The read and the write happen in one
    statement, so two callers can never both take the last unit.
    """
    col = getattr(model, column)
    values = {column: col - amount}
    if hasattr(model, "version_id"):
        values["version_id"] = model.version_id + 1
    stmt = (
        update(model)
        .where(model.id == row_id, col >= amount, *extra_criteria)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    return result.rowcount == 1


def guarded_increment(model, row_id: int, column: str, amount: int) -> bool:
    col = getattr(model, column)
    values = {column: col + amount}
    if hasattr(model, "version_id"):
        values["version_id"] = model.version_id + 1
    stmt = (
        update(model)
        .where(model.id == row_id)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    return result.rowcount == 1
