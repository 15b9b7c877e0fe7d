# Overview: Sale totals and the stock re-validation gate in front of finalize.

from __future__ import annotations

from sqlalchemy import func

from ..errors import InsufficientStockError
from ..extensions import db
from ..models import BasketLine
from . import stock_ledger
from .sale_lookup import get_sale


def recompute(sale_id: int) -> int:
    """
    Sum of price_cents over the sale's current basket lines.

    Pure read: reservations were taken when the lines were added, so the
    ledger is not consulted.
    """
    total = (
        db.session.query(func.coalesce(func.sum(BasketLine.price_cents), 0))
        .filter(BasketLine.sale_id == sale_id)
        .scalar()
    )
    return int(total or 0)


def validate_for_finalize(sale_id: int) -> None:
    """
    Re-check every line of the sale against its branch stock record.

    Lines already hold their reservation, so this only fails when stock
    administration recounted a product below what is reserved for it, or the
    reservation backing a line has gone missing. All failing products are
    reported together.

    Raises:
        InsufficientStockError: details["items"] lists each failing product
    """
    sale = get_sale(sale_id)
    lines = (
        db.session.query(BasketLine)
        .filter_by(sale_id=sale.id)
        .order_by(BasketLine.product_id.asc())
        .all()
    )

    insufficient = []
    for line in lines:
        record = stock_ledger.get_stock_record(line.product_id, sale.branch_id, refresh=True)
        implied = record.quantity - record.reserved_quantity
        if implied < 0 or record.reserved_quantity < line.quantity:
            insufficient.append({
                "product_id": line.product_id,
                "requested_quantity": line.quantity,
                "on_hand": record.quantity,
                "reserved_quantity": record.reserved_quantity,
                "implied_availability": implied,
            })

    if insufficient:
        raise InsufficientStockError(
            "Insufficient stock to finalize sale",
            details={"sale_id": sale.id, "items": insufficient},
        )


def get_sale_total(sale_id: int) -> int:
    """Committed total for finished sales, live sum while still in process."""
    sale = get_sale(sale_id)
    if sale.status == "in_process":
        return recompute(sale.id)
    return sale.total_price_cents
