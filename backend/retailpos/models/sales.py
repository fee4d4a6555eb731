from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from ..validation import decimal_str


SALE_STATUS_COMPLETED = "completed"
SALE_STATUS_PARTIALLY_RETURNED = "partially_returned"

PAYMENT_METHODS = ("cash", "bank_transfer", "pos", "card")

DISCOUNT_AMOUNT = "amount"
DISCOUNT_PERCENTAGE = "percentage"
DISCOUNT_TYPES = (DISCOUNT_AMOUNT, DISCOUNT_PERCENTAGE)

WALK_IN_CUSTOMER = "Walk-in Customer"


class Sale(db.Model):
    """
    Completed sale, created atomically with its items and stock decrements.

    INVARIANTS:
    - subtotal_amount == sum(item.line_total)
    - total_amount == max(0, subtotal_amount - discount_amount)
    - Immutable after creation except `status`, which is recomputed whenever
      a return against the sale is created or rejected.
    """
    __tablename__ = "sales"
    __table_args__ = (
        db.Index("ix_sales_location_created", "location_id", "created_at"),
        db.CheckConstraint("total_amount >= 0", name="ck_sales_total_non_negative"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)

    customer_name = db.Column(db.String(255), nullable=False, default=WALK_IN_CUSTOMER)
    customer_phone = db.Column(db.String(64), nullable=True)

    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False, index=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)

    payment_method = db.Column(db.String(32), nullable=False, default="cash")

    discount_type = db.Column(db.String(16), nullable=True)
    discount_value = db.Column(db.Numeric(10, 2), nullable=False, default=0)
    discount_amount = db.Column(db.Numeric(10, 2), nullable=False, default=0)

    subtotal_amount = db.Column(db.Numeric(10, 2), nullable=False)
    total_amount = db.Column(db.Numeric(10, 2), nullable=False)

    status = db.Column(db.String(24), nullable=False, default=SALE_STATUS_COMPLETED, index=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now(), index=True)

    location = db.relationship("Location", backref=db.backref("sales", lazy=True))
    cashier = db.relationship("User", foreign_keys=[user_id])
    items = db.relationship("SaleItem", back_populates="sale", order_by="SaleItem.id", lazy=True)

    def to_dict(self, include_items: bool = True) -> dict:
        data = {
            "id": self.id,
            "customer_name": self.customer_name,
            "customer_phone": self.customer_phone,
            "location_id": self.location_id,
            "user_id": self.user_id,
            "payment_method": self.payment_method,
            "discount_type": self.discount_type,
            "discount_value": decimal_str(self.discount_value),
            "discount_amount": decimal_str(self.discount_amount),
            "subtotal_amount": decimal_str(self.subtotal_amount),
            "total_amount": decimal_str(self.total_amount),
            "status": self.status,
            "created_at": to_utc_z(self.created_at),
        }
        if include_items:
            data["items"] = [item.to_dict() for item in self.items]
        return data


class SaleItem(db.Model):
    """
    One product line of a sale.

    unit_price is the price at sale time and must not follow later catalog
    changes. Returns are validated against this row.
    """
    __tablename__ = "sale_items"
    __table_args__ = (
        db.CheckConstraint("quantity > 0", name="ck_sale_items_quantity_positive"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    sale_id = db.Column(db.Integer, db.ForeignKey("sales.id"), nullable=False, index=True)
    product_id = db.Column(db.Integer, db.ForeignKey("products.id"), nullable=False, index=True)
    location_id = db.Column(db.Integer, db.ForeignKey("locations.id"), nullable=False)

    quantity = db.Column(db.Numeric(10, 2), nullable=False)
    unit = db.Column(db.String(20), nullable=False)
    unit_price = db.Column(db.Numeric(10, 2), nullable=False)
    line_total = db.Column(db.Numeric(10, 2), nullable=False)

    sale = db.relationship("Sale", back_populates="items")
    product = db.relationship("Product")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "sale_id": self.sale_id,
            "product_id": self.product_id,
            "product_name": self.product.name if self.product else None,
            "location_id": self.location_id,
            "quantity": decimal_str(self.quantity),
            "unit": self.unit,
            "unit_price": decimal_str(self.unit_price),
            "line_total": decimal_str(self.line_total),
        }
