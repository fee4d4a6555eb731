# Overview: Service-layer operations for products, product types and locations.

"""
Catalog and location collaborators for the ledger core.

The stock ledger, sales and returns only ask two questions of the catalog:
"does this location exist?" and "does this product exist and is it active?".
Everything else here (creation, archiving, deletion guards) keeps catalog
lifecycle changes from breaking the stock and sale history.
"""

from __future__ import annotations

from decimal import Decimal

from sqlalchemy import func

from ..errors import CatalogError, InvalidLocationError, InvalidProductError, ValidationError
from ..extensions import db
from ..models import InventoryLog, Location, Product, ProductType, Sale, SaleItem, StockRecord
from ..time_utils import utcnow
from ..validation import non_negative_decimal
from .concurrency import lock_for_update, run_with_retry


# =============================================================================
# LOOKUPS
# =============================================================================

def get_location(location_id: int) -> Location | None:
    return db.session.get(Location, location_id)


def require_location(location_id) -> Location:
    location = db.session.get(Location, location_id) if location_id is not None else None
    if location is None:
        raise InvalidLocationError(location_id)
    return location


def get_product(product_id: int) -> Product | None:
    return db.session.get(Product, product_id)


def require_product(product_id) -> Product:
    product = db.session.get(Product, product_id) if product_id is not None else None
    if product is None:
        raise InvalidProductError(product_id)
    return product


def require_active_product(product_id) -> Product:
    product = require_product(product_id)
    if product.is_archived or not product.is_active:
        raise InvalidProductError(product_id, "is archived or inactive")
    return product


def list_locations() -> list[Location]:
    return db.session.query(Location).order_by(Location.name.asc(), Location.id.asc()).all()


def list_products(
    *,
    category: str | None = None,
    include_archived: bool = False,
    page: int | None = None,
    per_page: int | None = None,
) -> dict:
    """Product listing with optional category filter and pagination."""
    base_query = db.session.query(Product)
    if not include_archived:
        base_query = base_query.filter(Product.deleted_at.is_(None))
    if category:
        base_query = base_query.filter(Product.category == category)
    base_query = base_query.order_by(Product.name.asc(), Product.id.asc())

    if page is None:
        products = base_query.all()
        return {"items": [p.to_dict() for p in products], "count": len(products)}

    per_page = min(per_page or 20, 100)
    page = max(page, 1)

    total = base_query.count()
    total_pages = (total + per_page - 1) // per_page if total > 0 else 1
    products = base_query.offset((page - 1) * per_page).limit(per_page).all()

    return {
        "items": [p.to_dict() for p in products],
        "count": len(products),
        "pagination": {
            "page": page,
            "per_page": per_page,
            "total": total,
            "total_pages": total_pages,
            "has_next": page < total_pages,
            "has_prev": page > 1,
        },
    }


# =============================================================================
# CREATION
# =============================================================================

def validate_custom_attributes(product_type: ProductType, attributes: dict | None) -> dict[str, str]:
    """
    Check product attributes against the product type schema.

    Required keys must be present and non-blank, unknown keys are rejected,
    values are stored as strings.
    """
    attributes = attributes or {}
    if not isinstance(attributes, dict):
        raise ValidationError("custom_attributes must be an object")

    schema = product_type.attribute_schema or {}
    required = list(schema.get("required", []))
    allowed = set(required) | set(schema.get("optional", []))

    unknown = sorted(set(attributes) - allowed)
    if unknown:
        raise ValidationError(
            f"Unknown attributes for product type {product_type.name}: {', '.join(unknown)}",
            details={"unknown": unknown},
        )

    missing = [key for key in required if not str(attributes.get(key) or "").strip()]
    if missing:
        raise ValidationError(
            f"Missing required attributes: {', '.join(missing)}",
            details={"missing": missing},
        )

    return {key: str(value) for key, value in attributes.items() if value is not None}


def create_product_type(
    name: str,
    unit_of_measure: str,
    required: list[str] | None = None,
    optional: list[str] | None = None,
) -> ProductType:
    if not name or not unit_of_measure:
        raise ValidationError("name and unit_of_measure are required")

    existing = db.session.query(ProductType).filter_by(name=name).first()
    if existing:
        raise CatalogError(f"Product type {name!r} already exists")

    product_type = ProductType(
        name=name,
        unit_of_measure=unit_of_measure,
        attribute_schema={"required": list(required or []), "optional": list(optional or [])},
    )
    db.session.add(product_type)
    db.session.commit()
    return product_type


def create_product(
    *,
    name: str,
    product_type_id: int,
    price,
    cost_price=None,
    category: str | None = None,
    custom_attributes: dict | None = None,
    description: str | None = None,
) -> Product:
    if not name or not name.strip():
        raise ValidationError("name is required")

    product_type = db.session.get(ProductType, product_type_id)
    if product_type is None:
        raise ValidationError(f"Product type {product_type_id} not found")

    product = Product(
        name=name.strip(),
        product_type_id=product_type.id,
        price=non_negative_decimal(price, "price"),
        cost_price=non_negative_decimal(cost_price, "cost_price") if cost_price is not None else None,
        category=(category or "General").strip() or "General",
        custom_attributes=validate_custom_attributes(product_type, custom_attributes),
        description=description,
    )
    db.session.add(product)
    db.session.commit()
    return product


def create_location(name: str, address: str) -> Location:
    if not name or not name.strip() or not address or not address.strip():
        raise ValidationError("name and address are required")

    location = Location(name=name.strip(), address=address.strip())
    db.session.add(location)
    db.session.commit()
    return location


# =============================================================================
# ARCHIVE / DELETE GUARDS
# =============================================================================

def _non_zero_stock(*, product_id: int | None = None, location_id: int | None = None) -> Decimal:
    query = db.session.query(func.coalesce(func.sum(StockRecord.quantity), 0)).filter(StockRecord.quantity > 0)
    if product_id is not None:
        query = query.filter(StockRecord.product_id == product_id)
    if location_id is not None:
        query = query.filter(StockRecord.location_id == location_id)
    return Decimal(str(query.scalar() or 0))


def archive_product(product_id: int) -> Product:
    """
    Soft-delete a product.

    Blocked while any location still holds stock of it. Sale history is kept
    intact: sale items keep their price snapshot and the product row stays.
    """
    def _op():
        product = lock_for_update(db.session.query(Product).filter_by(id=product_id)).first()
        if product is None:
            raise InvalidProductError(product_id)
        if product.is_archived:
            return product

        on_hand = _non_zero_stock(product_id=product_id)
        if on_hand > 0:
            raise CatalogError(
                f"Cannot archive product {product_id} while {on_hand} units are in stock",
                details={"product_id": product_id, "quantity": str(on_hand)},
            )

        product.deleted_at = utcnow()
        product.is_active = False
        db.session.commit()
        return product

    return run_with_retry(_op)


def delete_location(location_id: int) -> None:
    """
    Delete a location that was never used.

    Blocked while it holds stock, and also when movements or sales reference
    it (the audit trail must keep resolving).
    """
    def _op():
        location = lock_for_update(db.session.query(Location).filter_by(id=location_id)).first()
        if location is None:
            raise InvalidLocationError(location_id)

        on_hand = _non_zero_stock(location_id=location_id)
        if on_hand > 0:
            raise CatalogError(
                "Cannot delete location that contains products. Please move or remove all products first.",
                details={"location_id": location_id, "quantity": str(on_hand)},
            )

        has_history = (
            db.session.query(InventoryLog.id).filter_by(location_id=location_id).first() is not None
            or db.session.query(Sale.id).filter_by(location_id=location_id).first() is not None
            or db.session.query(SaleItem.id).filter_by(location_id=location_id).first() is not None
        )
        if has_history:
            raise CatalogError(
                "Cannot delete location with stock or sales history",
                details={"location_id": location_id},
            )

        db.session.delete(location)
        db.session.commit()

    run_with_retry(_op)
