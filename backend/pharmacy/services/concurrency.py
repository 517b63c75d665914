# Overview: Service-layer operations for concurrency; encapsulates transaction and retry handling.

from __future__ import annotations

import time

from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import ConcurrencyConflict, StorageError
from ..extensions import db


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; begin_write_transaction()
    covers it there by taking the database write lock up front.
    """
    return query.with_for_update()


def begin_write_transaction() -> None:
    """
    On SQLite, open the transaction with BEGIN IMMEDIATE so that reads made
    while validating stock and the writes that follow are serialized against
    other writers. No-op on other dialects and when a transaction is already
    open on the connection.
    """
    if db.engine.dialect.name != "sqlite":
        return
    raw = db.session.connection().connection.dbapi_connection
    if not raw.in_transaction:
        db.session.execute(text("BEGIN IMMEDIATE"))


def run_with_retry(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Execute a DB operation with retry on concurrency-related failures.

    Retries on OperationalError (deadlocks, locks) and StaleDataError
    (optimistic locking conflicts).
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


def run_atomic(func, *, attempts: int = 3, backoff_base: float = 0.1):
    """
    Run func as one unit of work: everything it reads and writes commits
    together or not at all.

    The whole unit is retried on transient lock/version failures. Any other
    exception rolls the session back and propagates; storage failures are
    translated into ConcurrencyConflict (retryable by the caller) or
    StorageError.
    """
    def _op():
        try:
            begin_write_transaction()
            result = func()
            db.session.commit()
            return result
        except Exception:
            db.session.rollback()
            raise

    try:
        return run_with_retry(_op, attempts=attempts, backoff_base=backoff_base)
    except IntegrityError as exc:
        raise ConcurrencyConflict(
            "Conflicting concurrent write, please retry",
            details={"reason": str(exc.orig)},
        ) from exc
    except (OperationalError, StaleDataError) as exc:
        raise ConcurrencyConflict(
            "Could not obtain a consistent write lock, please retry",
            details={"reason": str(getattr(exc, "orig", exc))},
        ) from exc
    except SQLAlchemyError as exc:
        raise StorageError("Storage failure, no changes were saved") from exc
