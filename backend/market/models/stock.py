from __future__ import annotations

from ..extensions import db
from market.time_utils import to_utc_z


class StockRecord(db.Model):
    """
    Stock of one product at one branch.

    COUNTS:
    - quantity: units physically on hand at the branch
    - reserved_quantity: units held by basket lines of in_process sales
    - available = quantity - reserved_quantity

    Rows are created and recounted by stock administration. Everything else
    mutates them only through market.services.stock_ledger, which uses
    conditional UPDATE statements so a check and its decrement are one step.
    """
    __tablename__ = "stock_records"
    __table_args__ = (
        db.UniqueConstraint("product_id", "branch_id", name="uq_stock_records_product_branch"),
        db.CheckConstraint("quantity >= 0", name="ck_stock_records_quantity_non_negative"),
        db.CheckConstraint("reserved_quantity >= 0", name="ck_stock_records_reserved_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    branch_id = db.Column(db.Integer, db.ForeignKey("branches.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False, default=0)
    reserved_quantity = db.Column(db.Integer, nullable=False, default=0)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    product = db.relationship("Product")
    branch = db.relationship("Branch", backref=db.backref("stock_records", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def available_quantity(self) -> int:
        return self.quantity - self.reserved_quantity

    def __repr__(self) -> str:
        return (
            f"<StockRecord product_id={self.product_id} branch_id={self.branch_id} "
            f"quantity={self.quantity} reserved={self.reserved_quantity}>"
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "branch_id": self.branch_id,
            "quantity": self.quantity,
            "reserved_quantity": self.reserved_quantity,
            "available_quantity": self.available_quantity,
            "version_id": self.version_id,
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class StockMovement(db.Model):
    """
    Append-only log of stock ledger mutations.

    MOVEMENT TYPES:
    - reserve: units moved from available into a basket line
    - release: units returned from a basket line to available
    - commit: reserved units leave the branch on sale finalize
    - adjust: stock administration recount (quantity is the signed delta)

    IMMUTABLE: rows are written in the same transaction as the mutation they
    record and are never updated or deleted.
    """
    __tablename__ = "stock_movements"
    __table_args__ = (
        db.Index("ix_stock_movements_product_branch", "product_id", "branch_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    stock_record_id = db.Column(db.Integer, db.ForeignKey("stock_records.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, nullable=False)
    branch_id = db.Column(db.Integer, nullable=False)

    movement_type = db.Column(db.String(16), nullable=False, index=True)
    quantity = db.Column(db.Integer, nullable=False)

    # Plain ids: lines are deleted on cancel but their movements stay
    sale_id = db.Column(db.Integer, nullable=True, index=True)
    basket_line_id = db.Column(db.Integer, nullable=True)

    note = db.Column(db.String(255), nullable=True)
    occurred_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "stock_record_id": self.stock_record_id,
            "product_id": self.product_id,
            "branch_id": self.branch_id,
            "movement_type": self.movement_type,
            "quantity": self.quantity,
            "sale_id": self.sale_id,
            "basket_line_id": self.basket_line_id,
            "note": self.note,
            "occurred_at": to_utc_z(self.occurred_at),
        }
