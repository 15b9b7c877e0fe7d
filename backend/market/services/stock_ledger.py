# Overview: Service-layer operations for branch stock; the only writer of StockRecord counts.

# backend/market/services/stock_ledger.py
"""
Market Stock Ledger Invariants (authoritative)

Counts:
- StockRecord.quantity is on-hand, StockRecord.reserved_quantity is held by
  in_process basket lines; available = quantity - reserved_quantity.
- One StockRecord per (product_id, branch_id). Records are created and
  recounted by stock administration; the core never inserts them implicitly.

Atomicity:
- reserve/release/commit are single conditional UPDATE statements
  ("... WHERE available >= requested"), succeeding only if exactly one row
  was affected. There is no read-then-write window between the check and the
  decrement, so concurrent reservations can never oversell.
- A failed primitive leaves the record untouched.
- Primitives do not commit unless commit=True; sale and basket operations run
  them inside their own transaction.

Audit:
- Every mutation appends a StockMovement row in the same transaction.
"""

from __future__ import annotations

from flask import current_app
from sqlalchemy import update

from ..errors import InsufficientStockError, InvalidArgumentError, NotFoundError
from ..extensions import db
from ..models import StockMovement, StockRecord
from market.time_utils import utcnow
from . import catalog_service
from .concurrency import begin_write, lock_for_update, run_with_retry


MOVEMENT_RESERVE = "reserve"
MOVEMENT_RELEASE = "release"
MOVEMENT_COMMIT = "commit"
MOVEMENT_ADJUST = "adjust"


def _require_positive(quantity) -> None:
    if not isinstance(quantity, int) or isinstance(quantity, bool):
        raise InvalidArgumentError("quantity must be an integer", details={"quantity": quantity})
    if quantity <= 0:
        raise InvalidArgumentError("quantity must be > 0", details={"quantity": quantity})


def _require_count(quantity) -> None:
    if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity < 0:
        raise InvalidArgumentError("quantity must be a non-negative integer", details={"quantity": quantity})


def find_stock_record(product_id: int, branch_id: int, *, refresh: bool = False) -> StockRecord | None:
    query = db.session.query(StockRecord).filter_by(product_id=product_id, branch_id=branch_id)
    if refresh:
        query = query.populate_existing()
    return query.first()


def get_stock_record(product_id: int, branch_id: int, *, refresh: bool = False) -> StockRecord:
    record = find_stock_record(product_id, branch_id, refresh=refresh)
    if record is None:
        raise NotFoundError(
            "Stock record not found",
            details={"product_id": product_id, "branch_id": branch_id},
        )
    return record


def check_available(product_id: int, branch_id: int) -> int:
    """
    Units that can still be reserved at the branch.

    Read-only. Never negative: a recount below the reserved amount reads as 0
    here; implied_availability() exposes the raw figure.
    """
    return max(implied_availability(product_id, branch_id), 0)


def implied_availability(product_id: int, branch_id: int) -> int:
    """quantity - reserved_quantity, unclamped."""
    record = get_stock_record(product_id, branch_id, refresh=True)
    return record.quantity - record.reserved_quantity


def _append_movement(
    record: StockRecord,
    movement_type: str,
    quantity: int,
    *,
    sale_id: int | None = None,
    basket_line_id: int | None = None,
    note: str | None = None,
) -> StockMovement:
    movement = StockMovement(
        stock_record_id=record.id,
        product_id=record.product_id,
        branch_id=record.branch_id,
        movement_type=movement_type,
        quantity=quantity,
        sale_id=sale_id,
        basket_line_id=basket_line_id,
        note=note,
        occurred_at=utcnow(),
    )
    db.session.add(movement)
    db.session.flush()
    return movement


def _conditional_update(product_id: int, branch_id: int, guard, values: dict) -> bool:
    stmt = (
        update(StockRecord)
        .where(
            StockRecord.product_id == product_id,
            StockRecord.branch_id == branch_id,
            guard,
        )
        .values(version_id=StockRecord.version_id + 1, **values)
        .execution_options(synchronize_session=False)
    )
    result = db.session.execute(stmt)
    return result.rowcount == 1


def _reserve_locked(product_id, branch_id, quantity, *, sale_id=None, basket_line_id=None) -> StockRecord:
    _require_positive(quantity)

    applied = _conditional_update(
        product_id,
        branch_id,
        StockRecord.quantity - StockRecord.reserved_quantity >= quantity,
        {"reserved_quantity": StockRecord.reserved_quantity + quantity},
    )
    record = get_stock_record(product_id, branch_id, refresh=True)
    if not applied:
        available = record.quantity - record.reserved_quantity
        current_app.logger.warning(
            "Reserve rejected: product=%s branch=%s requested=%s available=%s",
            product_id, branch_id, quantity, available,
        )
        raise InsufficientStockError(
            "Insufficient stock",
            details={
                "product_id": product_id,
                "branch_id": branch_id,
                "requested_quantity": quantity,
                "available_quantity": max(available, 0),
            },
        )

    _append_movement(record, MOVEMENT_RESERVE, quantity, sale_id=sale_id, basket_line_id=basket_line_id)
    return record


def _release_locked(product_id, branch_id, quantity, *, sale_id=None, basket_line_id=None) -> StockRecord:
    _require_positive(quantity)

    applied = _conditional_update(
        product_id,
        branch_id,
        StockRecord.reserved_quantity >= quantity,
        {"reserved_quantity": StockRecord.reserved_quantity - quantity},
    )
    record = get_stock_record(product_id, branch_id, refresh=True)
    if not applied:
        raise InvalidArgumentError(
            "Release exceeds reserved quantity",
            details={
                "product_id": product_id,
                "branch_id": branch_id,
                "requested_quantity": quantity,
                "reserved_quantity": record.reserved_quantity,
            },
        )

    _append_movement(record, MOVEMENT_RELEASE, quantity, sale_id=sale_id, basket_line_id=basket_line_id)
    return record


def _commit_locked(product_id, branch_id, quantity, *, sale_id=None, basket_line_id=None) -> StockRecord:
    _require_positive(quantity)

    applied = _conditional_update(
        product_id,
        branch_id,
        (StockRecord.reserved_quantity >= quantity) & (StockRecord.quantity >= quantity),
        {
            "quantity": StockRecord.quantity - quantity,
            "reserved_quantity": StockRecord.reserved_quantity - quantity,
        },
    )
    record = get_stock_record(product_id, branch_id, refresh=True)
    if not applied:
        raise InsufficientStockError(
            "Reserved stock no longer covers the sale",
            details={
                "product_id": product_id,
                "branch_id": branch_id,
                "requested_quantity": quantity,
                "on_hand": record.quantity,
                "reserved_quantity": record.reserved_quantity,
            },
        )

    _append_movement(record, MOVEMENT_COMMIT, quantity, sale_id=sale_id, basket_line_id=basket_line_id)
    return record


def _run(inner, commit: bool):
    if not commit:
        return inner()

    def _op():
        begin_write()
        record = inner()
        db.session.commit()
        return record

    return run_with_retry(_op)


def reserve(
    product_id: int,
    branch_id: int,
    quantity: int,
    *,
    sale_id: int | None = None,
    basket_line_id: int | None = None,
    commit: bool = True,
) -> StockRecord:
    """
    Atomically check and take `quantity` units out of availability.

    Raises:
        InvalidArgumentError: quantity <= 0
        NotFoundError: no stock record for (product, branch)
        InsufficientStockError: fewer than `quantity` units available
    """
    return _run(
        lambda: _reserve_locked(product_id, branch_id, quantity, sale_id=sale_id, basket_line_id=basket_line_id),
        commit,
    )


def release(
    product_id: int,
    branch_id: int,
    quantity: int,
    *,
    sale_id: int | None = None,
    basket_line_id: int | None = None,
    commit: bool = True,
) -> StockRecord:
    """Return `quantity` previously reserved units to availability."""
    return _run(
        lambda: _release_locked(product_id, branch_id, quantity, sale_id=sale_id, basket_line_id=basket_line_id),
        commit,
    )


def commit_reserved(
    product_id: int,
    branch_id: int,
    quantity: int,
    *,
    sale_id: int | None = None,
    basket_line_id: int | None = None,
    commit: bool = True,
) -> StockRecord:
    """Reserved units leave the branch: on-hand and reserved both drop by `quantity`."""
    return _run(
        lambda: _commit_locked(product_id, branch_id, quantity, sale_id=sale_id, basket_line_id=basket_line_id),
        commit,
    )


def create_stock_record(product_id: int, branch_id: int, quantity: int = 0) -> StockRecord:
    """
    Stock administration: start tracking a product at a branch.

    Raises:
        NotFoundError: unknown product or branch
        InvalidArgumentError: negative quantity, record already exists
    """
    _require_count(quantity)

    catalog_service.get_product(product_id)
    catalog_service.get_branch(branch_id)

    def _op():
        begin_write()
        if find_stock_record(product_id, branch_id) is not None:
            raise InvalidArgumentError(
                "Stock record already exists",
                details={"product_id": product_id, "branch_id": branch_id},
            )
        record = StockRecord(product_id=product_id, branch_id=branch_id, quantity=quantity, reserved_quantity=0)
        db.session.add(record)
        db.session.flush()
        if quantity:
            _append_movement(record, MOVEMENT_ADJUST, quantity, note="Initial stock")
        db.session.commit()
        return record

    return run_with_retry(_op)


def _lock_record(product_id: int, branch_id: int) -> StockRecord | None:
    return lock_for_update(
        db.session.query(StockRecord).filter_by(product_id=product_id, branch_id=branch_id)
    ).populate_existing().first()


def _adjust_locked(record: StockRecord, quantity: int, note: str | None) -> None:
    delta = quantity - record.quantity
    record.quantity = quantity
    db.session.flush()
    if delta:
        _append_movement(record, MOVEMENT_ADJUST, delta, note=note or "Stock adjustment")


def _warn_if_below_reserved(record: StockRecord) -> None:
    if record.quantity < record.reserved_quantity:
        current_app.logger.warning(
            "Stock for product=%s branch=%s recounted below reserved (%s < %s)",
            record.product_id, record.branch_id, record.quantity, record.reserved_quantity,
        )


def adjust_stock(product_id: int, branch_id: int, quantity: int, note: str | None = None) -> StockRecord:
    """
    Stock administration: set the on-hand count after a recount or delivery.

    Reservations are left as they are, so a recount below the reserved amount
    makes availability negative until the affected sales are cancelled; sale
    finalize re-validates against exactly this case.
    """
    _require_count(quantity)

    def _op():
        begin_write()
        record = _lock_record(product_id, branch_id)
        if record is None:
            raise NotFoundError(
                "Stock record not found",
                details={"product_id": product_id, "branch_id": branch_id},
            )
        _adjust_locked(record, quantity, note)
        db.session.commit()
        _warn_if_below_reserved(record)
        return record

    return run_with_retry(_op)


def set_stock(
    product_id: int, branch_id: int, quantity: int, note: str | None = None
) -> tuple[StockRecord, bool]:
    """
    Create-or-adjust in one transaction; returns (record, created).

    Two first-time calls for the same pair both succeed: the loser of the
    insert race is retried and adjusts the record the winner created.
    """
    _require_count(quantity)
    catalog_service.get_product(product_id)
    catalog_service.get_branch(branch_id)

    def _op():
        begin_write()
        record = _lock_record(product_id, branch_id)
        created = record is None
        if created:
            record = StockRecord(product_id=product_id, branch_id=branch_id, quantity=quantity, reserved_quantity=0)
            db.session.add(record)
            db.session.flush()
            if quantity:
                _append_movement(record, MOVEMENT_ADJUST, quantity, note=note or "Initial stock")
        else:
            _adjust_locked(record, quantity, note)
        db.session.commit()
        _warn_if_below_reserved(record)
        return record, created

    return run_with_retry(_op)


def list_movements(product_id: int, branch_id: int) -> list[StockMovement]:
    return (
        db.session.query(StockMovement)
        .filter_by(product_id=product_id, branch_id=branch_id)
        .order_by(StockMovement.id.asc())
        .all()
    )
