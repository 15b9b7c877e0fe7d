"""
Typed outcomes for the inventory-consistency core.

Every rejected mutation raises one of these; the request layer turns them into
a JSON error body with the class's HTTP status. Storage faults are not wrapped
and propagate as plain SQLAlchemy errors.
"""

from __future__ import annotations


class InventoryError(Exception):
    """Base class for business outcomes of stock, basket and sale operations."""
    code = "inventory_error"
    http_status = 400

    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict:
        return {
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class NotFoundError(InventoryError):
    """Referenced product, branch, stock record, sale or basket line is absent."""
    code = "not_found"
    http_status = 404


class InvalidArgumentError(InventoryError, ValueError):
    """Non-positive quantity, negative price and similar input problems."""
    code = "invalid_argument"
    http_status = 400


class InsufficientStockError(InventoryError):
    """Reservation (or finalize re-validation) would drive availability negative."""
    code = "insufficient_stock"
    http_status = 409


class InvalidStateError(InventoryError):
    """Mutation attempted on a sale that is no longer in_process."""
    code = "invalid_state"
    http_status = 409


class ConcurrencyConflictError(InventoryError):
    """Optimistic retry budget exhausted."""
    code = "concurrency_conflict"
    http_status = 409
