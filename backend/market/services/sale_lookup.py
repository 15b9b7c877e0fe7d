# Overview: Live-sale lookup shared by the lifecycle and accumulator services.

from __future__ import annotations

from ..errors import NotFoundError
from ..extensions import db
from ..models import Sale


def get_sale(sale_id: int) -> Sale:
    """Sale by id; soft-deleted sales are NotFound."""
    sale = db.session.query(Sale).filter(Sale.id == sale_id, Sale.deleted_at.is_(None)).first()
    if sale is None:
        raise NotFoundError("Sale not found", details={"sale_id": sale_id})
    return sale
