from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z
from ..validation import decimal_str


class ProductType(db.Model):
    """
    Product type: unit of measure plus the custom-attribute schema.

    attribute_schema shape: {"required": ["size", ...], "optional": ["finish", ...]}
    The ledger and sale core treat product attributes as opaque; the schema is
    only checked at the catalog boundary.
    """
    __tablename__ = "product_types"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(100), nullable=False, unique=True)
    unit_of_measure = db.Column(db.String(20), nullable=False)
    attribute_schema = db.Column(db.JSON, nullable=False, default=dict)
    is_active = db.Column(db.Boolean, nullable=False, default=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "unit_of_measure": self.unit_of_measure,
            "attribute_schema": self.attribute_schema or {},
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class Product(db.Model):
    """
    Product master data.

    price is the current catalog price; sales snapshot it onto SaleItem.unit_price
    so later price changes never rewrite history.

    cost_price is optional. Profit reporting falls back to DEFAULT_COST_RATIO
    when it is missing.

    Archiving is a soft delete (deleted_at + is_active=False); rows are never
    removed because sale items and inventory logs reference them.
    """
    __tablename__ = "products"
    __table_args__ = (
        db.Index("ix_products_category", "category"),
        db.Index("ix_products_active", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    product_type_id = db.Column(db.Integer, db.ForeignKey("product_types.id"), nullable=False, index=True)

    price = db.Column(db.Numeric(10, 2), nullable=False)
    cost_price = db.Column(db.Numeric(10, 2), nullable=True)

    category = db.Column(db.String(100), nullable=False, default="General")
    custom_attributes = db.Column(db.JSON, nullable=False, default=dict)
    description = db.Column(db.Text, nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    deleted_at = db.Column(db.DateTime(timezone=True), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )

    product_type = db.relationship("ProductType", backref=db.backref("products", lazy=True))

    @property
    def unit_of_measure(self) -> str:
        return self.product_type.unit_of_measure if self.product_type else "unit"

    @property
    def is_archived(self) -> bool:
        return self.deleted_at is not None

    def __repr__(self) -> str:
        return f"<Product id={self.id} name={self.name!r} price={self.price}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "product_type_id": self.product_type_id,
            "unit_of_measure": self.unit_of_measure,
            "price": decimal_str(self.price),
            "cost_price": decimal_str(self.cost_price),
            "category": self.category,
            "custom_attributes": self.custom_attributes or {},
            "description": self.description,
            "is_active": self.is_active,
            "deleted_at": to_utc_z(self.deleted_at),
            "created_at": to_utc_z(self.created_at),
            "updated_at": to_utc_z(self.updated_at),
        }


class Location(db.Model):
    """Physical stock location (shop floor, warehouse, ...)."""
    __tablename__ = "locations"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(120), nullable=False)
    address = db.Column(db.Text, nullable=False)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def __repr__(self) -> str:
        return f"<Location id={self.id} name={self.name!r}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "address": self.address,
            "created_at": to_utc_z(self.created_at),
        }
