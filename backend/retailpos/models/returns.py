from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from ..validation import decimal_str


RETURN_STATUS_PENDING = "PENDING"
RETURN_STATUS_APPROVED = "APPROVED"
RETURN_STATUS_REJECTED = "REJECTED"
RETURN_STATUS_COMPLETED = "COMPLETED"

RETURN_TYPE_REFUND = "REFUND"
RETURN_TYPE_EXCHANGE = "EXCHANGE"
RETURN_TYPES = (RETURN_TYPE_REFUND, RETURN_TYPE_EXCHANGE)

REFUND_METHODS = ("CASH", "BANK_TRANSFER", "STORE_CREDIT")

ITEM_CONDITIONS = ("PERFECT", "GOOD", "DAMAGED")


class Return(db.Model):
    """
    Return or exchange against a prior sale.

    LIFECYCLE:
    - PENDING on creation (stock already restored), or COMPLETED when auto-approved
    - PENDING -> APPROVED -> COMPLETED, or PENDING -> COMPLETED
    - PENDING -> REJECTED reverses the stock restoration
    - REJECTED and COMPLETED are terminal

    Never deleted.
    """
    __tablename__ = "returns"
    __table_args__ = (
        db.Index("ix_returns_sale_status", "sale_id", "status"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    processed_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False)

    return_date = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    return_type = db.Column(db.String(16), nullable=False)
    reason = db.Column(db.Text, nullable=True)
    status = db.Column(db.String(16), nullable=False, default=RETURN_STATUS_PENDING, index=True)

    total_refund_amount = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    refund_method = db.Column(db.String(16), nullable=True)
    notes = db.Column(db.Text, nullable=True)

    # Approval audit trail
    approved_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    approved_at = db.Column(db.DateTime(timezone=True), nullable=True)
    rejected_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    rejected_at = db.Column(db.DateTime(timezone=True), nullable=True)
    rejection_reason = db.Column(db.Text, nullable=True)
    completed_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    sale = db.relationship("Sale", backref=db.backref("returns", lazy=True, order_by="Return.id"))
    processor = db.relationship("User", foreign_keys=[processed_by])
    items = db.relationship("ReturnItem", back_populates="return_doc", order_by="ReturnItem.id", lazy=True)
    __mapper_args__ = {"version_id_col": version_id}

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "sale_id": self.sale_id,
            "processed_by": self.processed_by,
            "return_date": to_utc_z(self.return_date),
            "return_type": self.return_type,
            "reason": self.reason,
            "status": self.status,
            "total_refund_amount": decimal_str(self.total_refund_amount),
            "refund_method": self.refund_method,
            "notes": self.notes,
            "approved_by": self.approved_by,
            "approved_at": to_utc_z(self.approved_at),
            "rejected_by": self.rejected_by,
            "rejected_at": to_utc_z(self.rejected_at),
            "rejection_reason": self.rejection_reason,
            "completed_by": self.completed_by,
            "completed_at": to_utc_z(self.completed_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class ReturnItem(db.Model):
    """One returned line, bounded by the SaleItem's remaining returnable quantity."""
    __tablename__ = "return_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_return_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    return_id = db.Column(db.Integer, db.ForeignKey("returns.id"), nullable=False, index=True)
    sale_item_id = db.Column(db.Integer, db.ForeignKey("sale_items.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False)

    # Where the returned stock goes (may differ from the sale location)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False)

    quantity = db.Column(db.Numeric(10, 2), nullable=False)
    return_reason = db.Column(db.String(255), nullable=True)
    condition = db.Column(db.String(16), nullable=False, default="PERFECT")
    refund_amount = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    exchange_product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=True)

    return_doc = db.relationship("Return", back_populates="items")
    sale_item = db.relationship("SaleItem", backref=db.backref("return_items", lazy=True))
    product = db.relationship("Product", foreign_keys=[product_id])
    exchange_product = db.relationship("Product", foreign_keys=[exchange_product_id])

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "return_id": self.return_id,
            "sale_item_id": self.sale_item_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "location_id": self.location_id,
            "quantity": decimal_str(self.quantity),
            "return_reason": self.return_reason,
            "condition": self.condition,
            "refund_amount": decimal_str(self.refund_amount),
            "exchange_product_id": self.exchange_product_id,
        }
