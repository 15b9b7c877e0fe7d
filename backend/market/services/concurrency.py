# Overview: Transaction and retry helpers shared by the stock, basket and sale services.

from __future__ import annotations

import time

from flask import current_app
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from ..errors import ConcurrencyConflictError, InventoryError
from ..extensions import db


# Substrings of driver messages that mean "somebody else holds the row/table";
# anything else raised as OperationalError is an infrastructure fault.
_LOCK_CONTENTION_MARKERS = (
    "database is locked",
    "deadlock detected",
    "could not serialize access",
    "lock timeout",
    "could not obtain lock",
)

_RACE_UNIQUE_MARKERS = (
    "uq_basket_lines_sale_product",
    "basket_lines.sale_id, basket_lines.product_id",
    "uq_stock_records_product_branch",
    "stock_records.product_id, stock_records.branch_id",
)


def lock_for_update(query):
    """
    Apply row-level locking for critical operations.

    NOTE: SQLite ignores SELECT ... FOR UPDATE; begin_write() covers it there.
    """
    return query.with_for_update()


def begin_write() -> None:
    """
    Open the current transaction as a writer.

    On SQLite this takes the database write lock up front (BEGIN IMMEDIATE) so
    concurrent writers queue on the busy timeout instead of deadlocking when a
    read lock is upgraded. Other dialects rely on row locks.
    """
    if db.engine.dialect.name == "sqlite":
        db.session.execute(text("BEGIN IMMEDIATE"))


def is_concurrency_conflict(exc: Exception) -> bool:
    if isinstance(exc, StaleDataError):
        return True
    message = str(getattr(exc, "orig", exc)).lower()
    if isinstance(exc, OperationalError):
        return any(marker in message for marker in _LOCK_CONTENTION_MARKERS)
    if isinstance(exc, IntegrityError):
        return any(marker in message for marker in _RACE_UNIQUE_MARKERS)
    return False


def run_with_retry(func, *, attempts: int | None = None, backoff_base: float | None = None):
    """
    Execute a unit of work, rolling back on any failure.

    Concurrency conflicts (optimistic version mismatch, lock contention, a lost
    race on the basket-line or stock-record unique key) are retried with
    exponential backoff; once the budget is spent they surface as
    ConcurrencyConflictError. Business outcomes (InventoryError) and other
    storage faults are never retried.
    """
    if attempts is None:
        attempts = current_app.config.get("CONCURRENCY_RETRY_ATTEMPTS", 5)
    if backoff_base is None:
        backoff_base = current_app.config.get("CONCURRENCY_RETRY_BACKOFF", 0.05)

    for attempt in range(attempts):
        try:
            return func()
        except InventoryError:
            db.session.rollback()
            raise
        except (OperationalError, StaleDataError, IntegrityError) as exc:
            db.session.rollback()
            if not is_concurrency_conflict(exc):
                raise
            if attempt >= attempts - 1:
                current_app.logger.warning(
                    "Concurrency retry budget exhausted after %d attempts: %s", attempts, exc
                )
                raise ConcurrencyConflictError(
                    "Concurrent update conflict, retry budget exhausted",
                    details={"attempts": attempts},
                ) from exc
            current_app.logger.info("Concurrency conflict on attempt %d, retrying", attempt + 1)
            time.sleep(backoff_base * (2 ** attempt))
        except Exception:
            db.session.rollback()
            raise
    raise ConcurrencyConflictError("Concurrent update conflict", details={"attempts": attempts})
