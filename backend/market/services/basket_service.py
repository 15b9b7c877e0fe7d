# Overview: Basket lines of a sale; merges repeat adds and keeps stock reservations in step.

"""
Basket Service

WHY: A sale's lines are keyed by product. Adding a product that is already
in the basket grows the existing line instead of inserting a second one, so
totals and per-product reservations stay unambiguous.

ATOMICITY: each operation is one transaction that takes the sale row lock
first. Stock is reserved through stock_ledger inside that transaction, so an
InsufficientStockError rolls back the line change together with everything
else. The (sale_id, product_id) unique key and BasketLine.version_id catch
any race the lock does not; those are retried by run_with_retry.
"""

from __future__ import annotations

from ..errors import InvalidArgumentError, NotFoundError
from ..extensions import db
from ..models import BasketLine
from . import catalog_service, stock_ledger
from .concurrency import begin_write, lock_for_update, run_with_retry
from .sale_lifecycle import get_sale, lock_sale, require_editable


def _require_quantity(quantity, *, allow_zero: bool = False) -> None:
    if not isinstance(quantity, int) or isinstance(quantity, bool):
        raise InvalidArgumentError("quantity must be an integer", details={"quantity": quantity})
    if quantity < 0 or (quantity == 0 and not allow_zero):
        raise InvalidArgumentError(
            "quantity must be >= 0" if allow_zero else "quantity must be > 0",
            details={"quantity": quantity},
        )


def _lock_line(basket_line_id: int) -> BasketLine:
    line = (
        lock_for_update(db.session.query(BasketLine).filter_by(id=basket_line_id))
        .populate_existing()
        .first()
    )
    if line is None:
        raise NotFoundError("Basket line not found", details={"basket_line_id": basket_line_id})
    return line


def add_or_merge(sale_id: int, product_id: int, quantity: int) -> BasketLine:
    """
    Add `quantity` of a product to a sale, merging into its existing line.

    Raises:
        InvalidArgumentError: quantity <= 0
        NotFoundError: sale, product or the branch stock record is missing
        InvalidStateError: sale is not in_process
        InsufficientStockError: not enough stock; nothing was changed
    """
    _require_quantity(quantity)

    def _op():
        begin_write()
        sale = lock_sale(sale_id)
        require_editable(sale, "add basket lines to")

        unit_price = catalog_service.get_product_unit_price(product_id)

        line = (
            lock_for_update(db.session.query(BasketLine).filter_by(sale_id=sale.id, product_id=product_id))
            .populate_existing()
            .first()
        )

        if line is None:
            line = BasketLine(
                sale_id=sale.id,
                product_id=product_id,
                quantity=quantity,
                unit_price_cents=unit_price,
                price_cents=quantity * unit_price,
            )
            db.session.add(line)
            db.session.flush()
            stock_ledger.reserve(
                product_id, sale.branch_id, quantity,
                sale_id=sale.id, basket_line_id=line.id, commit=False,
            )
        else:
            stock_ledger.reserve(
                product_id, sale.branch_id, quantity,
                sale_id=sale.id, basket_line_id=line.id, commit=False,
            )
            line.quantity = line.quantity + quantity
            line.price_cents = line.price_cents + quantity * unit_price
            line.unit_price_cents = unit_price
            db.session.flush()

        db.session.commit()
        return line

    return run_with_retry(_op)


def update_line(basket_line_id: int, quantity: int) -> BasketLine | None:
    """
    Set a line's quantity.

    Growing the line reserves the difference first; shrinking it releases the
    difference after the line is written. Zero removes the line and returns
    None.

    PRICING: units already on the line keep the price they were added at.
    Growing adds delta * current unit price; shrinking keeps
    price * new_quantity // old_quantity; an unchanged quantity leaves the
    price alone.
    """
    _require_quantity(quantity, allow_zero=True)

    def _op():
        begin_write()
        line = db.session.query(BasketLine).filter_by(id=basket_line_id).first()
        if line is None:
            raise NotFoundError("Basket line not found", details={"basket_line_id": basket_line_id})

        sale = lock_sale(line.sale_id)
        require_editable(sale, "update basket lines of")
        line = _lock_line(basket_line_id)

        if quantity == 0:
            _remove_line(line, sale)
            db.session.commit()
            return None

        delta = quantity - line.quantity
        if delta > 0:
            stock_ledger.reserve(
                line.product_id, sale.branch_id, delta,
                sale_id=sale.id, basket_line_id=line.id, commit=False,
            )
            unit_price = catalog_service.get_product_unit_price(line.product_id)
            line.price_cents = line.price_cents + delta * unit_price
            line.unit_price_cents = unit_price
        elif delta < 0:
            # Released units leave at the line's average unit price, rounded down
            line.price_cents = line.price_cents * quantity // line.quantity
        line.quantity = quantity
        db.session.flush()

        if delta < 0:
            stock_ledger.release(
                line.product_id, sale.branch_id, -delta,
                sale_id=sale.id, basket_line_id=line.id, commit=False,
            )

        db.session.commit()
        return line

    return run_with_retry(_op)


def _remove_line(line: BasketLine, sale) -> None:
    stock_ledger.release(
        line.product_id, sale.branch_id, line.quantity,
        sale_id=sale.id, basket_line_id=line.id, commit=False,
    )
    db.session.delete(line)
    db.session.flush()


def delete_line(basket_line_id: int) -> None:
    """Give the line's whole reservation back to stock, then remove the line."""
    def _op():
        begin_write()
        line = db.session.query(BasketLine).filter_by(id=basket_line_id).first()
        if line is None:
            raise NotFoundError("Basket line not found", details={"basket_line_id": basket_line_id})

        sale = lock_sale(line.sale_id)
        require_editable(sale, "delete basket lines of")
        line = _lock_line(basket_line_id)

        _remove_line(line, sale)
        db.session.commit()

    run_with_retry(_op)


def get_line(basket_line_id: int) -> BasketLine:
    line = db.session.query(BasketLine).filter_by(id=basket_line_id).first()
    if line is None:
        raise NotFoundError("Basket line not found", details={"basket_line_id": basket_line_id})
    return line


def list_lines(sale_id: int) -> list[BasketLine]:
    sale = get_sale(sale_id)
    return (
        db.session.query(BasketLine)
        .filter_by(sale_id=sale.id)
        .order_by(BasketLine.id.asc())
        .all()
    )
