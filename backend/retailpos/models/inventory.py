from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from ..validation import decimal_str


MOVEMENT_SALE = "sale"
MOVEMENT_RETURN = "return"
MOVEMENT_RECEIVED = "received"
MOVEMENT_ADJUSTED = "adjusted"
MOVEMENT_BROKEN = "broken"
MOVEMENT_INITIAL = "initial"

MOVEMENT_TYPES = (
    MOVEMENT_SALE,
    MOVEMENT_RETURN,
    MOVEMENT_RECEIVED,
    MOVEMENT_ADJUSTED,
    MOVEMENT_BROKEN,
    MOVEMENT_INITIAL,
)


class StockRecord(db.Model):
    """
    Current quantity of one product at one location.

    INVARIANTS:
    - Unique per (product_id, location_id); a missing row means quantity 0.
    - quantity is never negative.
    - Only changed through stock_ledger_service, always together with an
      InventoryLog row in the same transaction.
    - Rows are never deleted (a record may sit at zero).

    version_id turns a lost update into StaleDataError on databases that
    ignore SELECT ... FOR UPDATE (SQLite).
    """
    __tablename__ = "stock_records"
    __table_args__ = (
        db.UniqueConstraint("product_id", "location_id", name="uq_stock_product_location"),
        db.CheckConstraint("quantity >= 0", name="ck_stock_quantity_non_negative"),
        db.Index("ix_stock_location_quantity", "location_id", "quantity"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)

    quantity = db.Column(db.Numeric(10, 2), nullable=False, default=0)

    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    version_id = db.Column(db.Integer, nullable=False, default=1)

    product = db.relationship("Product", backref=db.backref("stock_records", lazy=True))
    location = db.relationship("Location", backref=db.backref("stock_records", lazy=True))
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "location_id": self.location_id,
            "location_name": self.location.name if self.location else None,
            "quantity": decimal_str(self.quantity),
            "unit_of_measure": self.product.unit_of_measure if self.product else None,
            "updated_at": to_utc_z(self.updated_at),
        }


class InventoryLog(db.Model):
    """
    Append-only stock movement (the ledger's audit trail).

    new_quantity == previous_quantity + change_amount, new_quantity >= 0.
    IMMUTABLE: rows are never updated or deleted.
    """
    __tablename__ = "inventory_logs"
    __table_args__ = (
        db.Index("ix_invlog_product_location_created", "product_id", "location_id", "created_at"),
        db.Index("ix_invlog_type_created", "change_type", "created_at"),
        db.CheckConstraint("new_quantity >= 0", name="ck_invlog_new_quantity_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)

    change_type = db.Column(db.String(16), nullable=False)

    # Signed: positive increases stock, negative decreases
    change_amount = db.Column(db.Numeric(10, 2), nullable=False)
    previous_quantity = db.Column(db.Numeric(10, 2), nullable=False)
    new_quantity = db.Column(db.Numeric(10, 2), nullable=False)

    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    notes = db.Column(db.Text, nullable=True)

    # Source document (set for sale/return movements)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=True, index=True)
    return_id = db.Column(db.Integer, db.ForeignKey("returns.id"), nullable=True, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    product = db.relationship("Product")
    location = db.relationship("Location")
    user = db.relationship("User")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "location_id": self.location_id,
            "change_type": self.change_type,
            "change_amount": decimal_str(self.change_amount),
            "previous_quantity": decimal_str(self.previous_quantity),
            "new_quantity": decimal_str(self.new_quantity),
            "user_id": self.user_id,
            "notes": self.notes,
            "sale_id": self.sale_id,
            "return_id": self.return_id,
            "created_at": to_utc_z(self.created_at),
        }
