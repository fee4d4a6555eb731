# Overview: Service-layer operations for sales; validates a cart and posts it atomically.

"""
Sale transaction.

A cart is validated up front, then the Sale, its SaleItems and one "sale"
stock movement per line are written in a single DB transaction. If any line
runs out of stock the whole sale rolls back and InsufficientStockError
propagates naming the product; nothing is observable before commit.

Totals:
    line_total = quantity * unit_price
    subtotal   = sum(line_total)
    discount   = subtotal * value / 100   (percentage)
               | min(value, subtotal)     (amount)
               | 0                        (no discount)
    total      = max(0, subtotal - discount)
"""

from __future__ import annotations

from decimal import Decimal

from flask import current_app

from ..errors import (
    EmptyCartError,
    InsufficientStockError,
    PriceMismatchError,
    SaleError,
    SaleNotFoundError,
    ValidationError,
)
from ..extensions import db
from ..models import Sale, SaleItem
from ..models.inventory import MOVEMENT_SALE
from ..models.sales import (
    DISCOUNT_AMOUNT,
    DISCOUNT_PERCENTAGE,
    DISCOUNT_TYPES,
    PAYMENT_METHODS,
    SALE_STATUS_COMPLETED,
    WALK_IN_CUSTOMER,
)
from ..time_utils import parse_iso_datetime, parse_range_end, utcnow
from ..validation import ZERO, non_negative_decimal, positive_decimal, quantize, to_int
from .catalog_service import require_active_product, require_location
from .concurrency import run_with_retry
from .stock_ledger_service import _apply_movement_locked, require_actor


def compute_totals(lines, discount_type: str | None = None, discount_value=0) -> dict:
    """
    Pure totals calculation.

    `lines` is an iterable of mappings with "quantity" and "price".
    Returns Decimals: line_totals (list), subtotal, discount_amount, total.
    """
    if discount_type == "":
        discount_type = None
    if discount_type is not None and discount_type not in DISCOUNT_TYPES:
        raise SaleError(
            f"Invalid discount_type. Must be one of: {', '.join(DISCOUNT_TYPES)}",
            details={"discount_type": discount_type},
        )

    value = ZERO if discount_value in (None, "") else non_negative_decimal(discount_value, "discount_value")

    line_totals = [
        quantize(positive_decimal(line.get("quantity"), "quantity") * non_negative_decimal(line.get("price"), "price"))
        for line in lines
    ]
    subtotal = quantize(sum(line_totals, ZERO))

    if discount_type == DISCOUNT_PERCENTAGE:
        discount = quantize(subtotal * value / Decimal(100))
    elif discount_type == DISCOUNT_AMOUNT:
        discount = value
    else:
        discount = ZERO
    discount = min(discount, subtotal)

    total = max(ZERO, subtotal - discount)
    return {
        "line_totals": line_totals,
        "subtotal": subtotal,
        "discount_amount": discount,
        "total": quantize(total),
    }


def _normalize_lines(items) -> list[dict]:
    """Validate cart lines against the catalog; returns [{product, quantity, price}]."""
    enforce_price = current_app.config.get("ENFORCE_CATALOG_PRICE", False)
    lines = []
    for index, item in enumerate(items):
        if not isinstance(item, dict):
            raise ValidationError(f"items[{index}] must be an object")

        product = require_active_product(to_int(item.get("product_id"), f"items[{index}].product_id"))
        quantity = positive_decimal(item.get("quantity"), f"items[{index}].quantity")

        if item.get("price") is None:
            price = quantize(Decimal(str(product.price)))
        else:
            price = non_negative_decimal(item.get("price"), f"items[{index}].price")
            current = quantize(Decimal(str(product.price)))
            if enforce_price and price != current:
                raise PriceMismatchError(product.id, price, current)

        lines.append({"product": product, "quantity": quantity, "price": price})
    return lines


def create_sale(
    location_id: int,
    items,
    actor_id: int,
    customer_name: str | None = None,
    customer_phone: str | None = None,
    payment_method: str = "cash",
    discount_type: str | None = None,
    discount_value=0,
) -> Sale:
    """
    Record a sale and decrement stock for every line, all or nothing.
    """
    require_actor(actor_id, "record sales")

    if not items:
        raise EmptyCartError()

    location = require_location(location_id)

    payment_method = payment_method or "cash"
    if payment_method not in PAYMENT_METHODS:
        raise SaleError(
            f"Invalid payment method. Must be one of: {', '.join(PAYMENT_METHODS)}",
            details={"payment_method": payment_method},
        )

    lines = _normalize_lines(items)
    totals = compute_totals(lines, discount_type, discount_value)

    customer_name = (customer_name or "").strip() or WALK_IN_CUSTOMER
    discount_type = discount_type or None

    def _op():
        now = utcnow()
        sale = Sale(
            customer_name=customer_name,
            customer_phone=(customer_phone or None),
            location_id=location.id,
            user_id=actor_id,
            payment_method=payment_method,
            discount_type=discount_type,
            discount_value=ZERO if discount_value in (None, "") else non_negative_decimal(discount_value, "discount_value"),
            discount_amount=totals["discount_amount"],
            subtotal_amount=totals["subtotal"],
            total_amount=totals["total"],
            status=SALE_STATUS_COMPLETED,
            created_at=now,
        )
        db.session.add(sale)
        db.session.flush()

        for line, line_total in zip(lines, totals["line_totals"]):
            product = line["product"]
            db.session.add(SaleItem(
                sale_id=sale.id,
                product_id=product.id,
                location_id=location.id,
                quantity=line["quantity"],
                unit=product.unit_of_measure,
                unit_price=line["price"],
                line_total=line_total,
            ))
            _apply_movement_locked(
                product_id=product.id,
                location_id=location.id,
                change_type=MOVEMENT_SALE,
                change_amount=-line["quantity"],
                actor_id=actor_id,
                notes=f"Sale #{sale.id}",
                sale_id=sale.id,
                product_name=product.name,
            )

        db.session.commit()
        return sale

    try:
        sale = run_with_retry(_op)
    except InsufficientStockError as e:
        current_app.logger.warning("Sale rejected at location %s: %s", location_id, e)
        raise

    current_app.logger.info(
        "Sale %s recorded at location %s: %d item(s), total %s",
        sale.id, sale.location_id, len(lines), sale.total_amount,
    )
    return sale


def get_sale(sale_id: int) -> Sale:
    sale = db.session.get(Sale, sale_id)
    if sale is None:
        raise SaleNotFoundError(sale_id)
    return sale


def list_sales(
    location_id: int | None = None,
    start: str | None = None,
    end: str | None = None,
    limit: int = 50,
    offset: int = 0,
) -> list[Sale]:
    query = db.session.query(Sale)
    if location_id is not None:
        query = query.filter(Sale.location_id == location_id)

    try:
        start_dt = parse_iso_datetime(start)
        end_dt = parse_range_end(end)
    except ValueError:
        raise ValidationError("start and end must be ISO-8601 dates")
    if start_dt is not None:
        query = query.filter(Sale.created_at >= start_dt)
    if end_dt is not None:
        query = query.filter(Sale.created_at <= end_dt)

    limit = max(1, min(int(limit or 50), 200))
    offset = max(0, int(offset or 0))
    return (
        query.order_by(Sale.created_at.desc(), Sale.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
