# Overview: Sale state machine; the only code that changes Sale.status.

"""
Market Sale Lifecycle

STATE MACHINE:
    in_process -> completed   (finalize_sale)
    in_process -> cancelled   (cancel_sale)

    in_process: basket lines may be added, changed and removed
    completed:  terminal; stock committed, total_price_cents frozen
    cancelled:  terminal; every reservation released, lines removed

RULES:
1. completed and cancelled have no outgoing transitions (no refunds here).
2. Basket edits require in_process; anything else is InvalidStateError.
3. Every operation takes the sale row lock first, so finalize/cancel
   serialize against in-flight basket edits on the same sale.
"""

from __future__ import annotations

from flask import current_app

from ..errors import InvalidArgumentError, InvalidStateError, NotFoundError
from ..extensions import db
from ..models import BasketLine, Sale
from market.time_utils import utcnow
from . import catalog_service, sale_accumulator, stock_ledger
from .concurrency import begin_write, lock_for_update, run_with_retry
from .sale_lookup import get_sale


STATUS_IN_PROCESS = "in_process"
STATUS_COMPLETED = "completed"
STATUS_CANCELLED = "cancelled"

VALID_STATUSES = {STATUS_IN_PROCESS, STATUS_COMPLETED, STATUS_CANCELLED}

_TRANSITIONS = {
    (STATUS_IN_PROCESS, STATUS_COMPLETED),
    (STATUS_IN_PROCESS, STATUS_CANCELLED),
}


def validate_status(status: str) -> None:
    if status not in VALID_STATUSES:
        raise InvalidArgumentError(
            f"Invalid status '{status}'. Must be one of: {', '.join(sorted(VALID_STATUSES))}"
        )


def can_transition(from_status: str, to_status: str) -> bool:
    validate_status(from_status)
    validate_status(to_status)
    return (from_status, to_status) in _TRANSITIONS


def require_editable(sale: Sale, action: str = "modify") -> None:
    if sale.status != STATUS_IN_PROCESS:
        raise InvalidStateError(
            f"Cannot {action} a {sale.status} sale",
            details={"sale_id": sale.id, "status": sale.status},
        )


def _transition(sale: Sale, to_status: str) -> None:
    if not can_transition(sale.status, to_status):
        raise InvalidStateError(
            f"Cannot move sale from {sale.status} to {to_status}",
            details={"sale_id": sale.id, "status": sale.status},
        )
    sale.status = to_status


def lock_sale(sale_id: int) -> Sale:
    """Load a live sale under a row lock (populated fresh from the database)."""
    sale = (
        lock_for_update(db.session.query(Sale).filter(Sale.id == sale_id, Sale.deleted_at.is_(None)))
        .populate_existing()
        .first()
    )
    if sale is None:
        raise NotFoundError("Sale not found", details={"sale_id": sale_id})
    return sale


def create_sale(branch_id: int, client_name: str | None = None, cashier_name: str | None = None) -> Sale:
    """Open a new in_process sale at a branch."""
    catalog_service.get_branch(branch_id)

    sale = Sale(
        branch_id=branch_id,
        client_name=client_name,
        cashier_name=cashier_name,
        status=STATUS_IN_PROCESS,
        total_price_cents=0,
    )
    db.session.add(sale)
    db.session.commit()
    return sale


def finalize_sale(sale_id: int) -> Sale:
    """
    in_process -> completed.

    Inside one transaction: re-validate every line against stock, move each
    line's reservation out of on-hand, freeze the total and flip the status.
    Any failure leaves the sale in_process with nothing changed.
    """
    def _op():
        begin_write()
        sale = lock_sale(sale_id)
        require_editable(sale, "finalize")

        lines = (
            db.session.query(BasketLine)
            .filter_by(sale_id=sale.id)
            .order_by(BasketLine.product_id.asc())
            .all()
        )
        if not lines:
            raise InvalidStateError("Cannot finalize a sale with no basket lines", details={"sale_id": sale.id})

        sale_accumulator.validate_for_finalize(sale.id)

        for line in lines:
            stock_ledger.commit_reserved(
                line.product_id,
                sale.branch_id,
                line.quantity,
                sale_id=sale.id,
                basket_line_id=line.id,
                commit=False,
            )

        sale.total_price_cents = sale_accumulator.recompute(sale.id)
        _transition(sale, STATUS_COMPLETED)
        sale.completed_at = utcnow()

        db.session.commit()
        current_app.logger.info("Sale %s completed, total_price_cents=%s", sale_id, sale.total_price_cents)
        return sale

    return run_with_retry(_op)


def _release_and_clear_lines(sale: Sale) -> None:
    lines = (
        db.session.query(BasketLine)
        .filter_by(sale_id=sale.id)
        .order_by(BasketLine.product_id.asc())
        .all()
    )
    for line in lines:
        stock_ledger.release(
            line.product_id,
            sale.branch_id,
            line.quantity,
            sale_id=sale.id,
            basket_line_id=line.id,
            commit=False,
        )
        db.session.delete(line)
    db.session.flush()


def cancel_sale(sale_id: int) -> Sale:
    """in_process -> cancelled: release every reservation, drop the lines."""
    def _op():
        begin_write()
        sale = lock_sale(sale_id)
        require_editable(sale, "cancel")

        _release_and_clear_lines(sale)
        _transition(sale, STATUS_CANCELLED)
        sale.cancelled_at = utcnow()

        db.session.commit()
        current_app.logger.info("Sale %s cancelled", sale_id)
        return sale

    return run_with_retry(_op)


def delete_sale(sale_id: int) -> None:
    """
    Soft delete a sale.

    An in_process sale is cancelled first so its reservations go back to
    stock. Completed sales are kept.
    """
    def _op():
        begin_write()
        sale = lock_sale(sale_id)
        if sale.status == STATUS_COMPLETED:
            raise InvalidStateError("Cannot delete a completed sale", details={"sale_id": sale.id})

        if sale.status == STATUS_IN_PROCESS:
            _release_and_clear_lines(sale)
            _transition(sale, STATUS_CANCELLED)
            sale.cancelled_at = utcnow()

        sale.deleted_at = utcnow()
        db.session.commit()
        current_app.logger.info("Sale %s deleted", sale_id)

    run_with_retry(_op)
