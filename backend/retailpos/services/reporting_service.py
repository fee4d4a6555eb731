# Overview: Service-layer operations for reporting; read-only rollups over sales and stock.

from __future__ import annotations

from collections import OrderedDict
from datetime import datetime, time
from decimal import Decimal

from flask import current_app
from sqlalchemy import func, or_

from ..errors import ValidationError
from ..extensions import db
from ..models import InventoryLog, Location, Product, Sale, SaleItem, StockRecord
from ..time_utils import resolve_date_range, to_utc_z, utcnow
from ..validation import ZERO, quantize
from .stock_ledger_service import list_low_stock


TOP_PRODUCTS_ORDERINGS = ("quantity", "revenue")


def _dec(value) -> Decimal:
    return quantize(Decimal(str(value or 0)))


def _range(start: str | None, end: str | None) -> tuple[datetime, datetime]:
    try:
        return resolve_date_range(start, end, default_days=30)
    except ValueError as e:
        raise ValidationError(f"Invalid date range: {e}", details={"start": start, "end": end})


def _scope_sales(query, start_dt: datetime, end_dt: datetime, location_id: int | None):
    query = query.filter(Sale.created_at >= start_dt, Sale.created_at <= end_dt)
    if location_id is not None:
        query = query.filter(Sale.location_id == location_id)
    return query


def daily_sales(start: str | None = None, end: str | None = None, location_id: int | None = None) -> dict:
    """Per-day sale count, revenue, subtotal, discount and average order value."""
    start_dt, end_dt = _range(start, end)

    day = func.date(Sale.created_at)
    query = db.session.query(
        day.label("day"),
        func.count(Sale.id).label("sales_count"),
        func.coalesce(func.sum(Sale.total_amount), 0).label("revenue"),
        func.coalesce(func.sum(Sale.subtotal_amount), 0).label("subtotal"),
        func.coalesce(func.sum(Sale.discount_amount), 0).label("discount"),
    )
    rows = _scope_sales(query, start_dt, end_dt, location_id).group_by(day).order_by(day).all()

    days = []
    for row in rows:
        count = int(row.sales_count or 0)
        revenue = _dec(row.revenue)
        days.append({
            "date": str(row.day),
            "sales_count": count,
            "revenue": str(revenue),
            "subtotal": str(_dec(row.subtotal)),
            "discount": str(_dec(row.discount)),
            "average_order_value": str(quantize(revenue / count)) if count else "0.00",
        })

    total_sales = sum(d["sales_count"] for d in days)
    total_revenue = sum((Decimal(d["revenue"]) for d in days), ZERO)
    daily_revenues = [Decimal(d["revenue"]) for d in days]

    return {
        "start": to_utc_z(start_dt),
        "end": to_utc_z(end_dt),
        "location_id": location_id,
        "days": days,
        "summary": {
            "total_sales": total_sales,
            "total_revenue": str(quantize(total_revenue)),
            "days_with_sales": len(days),
            "average_order_value": str(quantize(total_revenue / total_sales)) if total_sales else "0.00",
            "average_daily_revenue": str(quantize(total_revenue / len(days))) if days else "0.00",
            "max_daily_revenue": str(max(daily_revenues)) if daily_revenues else "0.00",
            "min_daily_revenue": str(min(daily_revenues)) if daily_revenues else "0.00",
        },
    }


def inventory_valuation(location_id: int | None = None) -> dict:
    """On-hand value (quantity x current price) by category and by location."""
    query = (
        db.session.query(StockRecord, Product, Location)
        .join(Product, Product.id == StockRecord.product_id)
        .join(Location, Location.id == StockRecord.location_id)
        .filter(or_(Product.deleted_at.is_(None), StockRecord.quantity > 0))
    )
    if location_id is not None:
        query = query.filter(StockRecord.location_id == location_id)

    categories: dict[str, dict] = {}
    locations: dict[int, dict] = {}
    total_value = ZERO
    total_quantity = ZERO

    for record, product, location in query.all():
        quantity = _dec(record.quantity)
        value = quantize(quantity * _dec(product.price))
        total_value += value
        total_quantity += quantity

        cat = categories.setdefault(product.category, {
            "category": product.category,
            "product_ids": set(),
            "total_quantity": ZERO,
            "total_value": ZERO,
        })
        cat["product_ids"].add(product.id)
        cat["total_quantity"] += quantity
        cat["total_value"] += value

        loc = locations.setdefault(location.id, {
            "location_id": location.id,
            "location_name": location.name,
            "total_quantity": ZERO,
            "total_value": ZERO,
        })
        loc["total_quantity"] += quantity
        loc["total_value"] += value

    category_rows = [
        {
            "category": cat["category"],
            "product_count": len(cat["product_ids"]),
            "total_quantity": str(cat["total_quantity"]),
            "total_value": str(cat["total_value"]),
        }
        for cat in sorted(categories.values(), key=lambda c: c["total_value"], reverse=True)
    ]
    location_rows = [
        {
            "location_id": loc["location_id"],
            "location_name": loc["location_name"],
            "total_quantity": str(loc["total_quantity"]),
            "total_value": str(loc["total_value"]),
        }
        for loc in sorted(locations.values(), key=lambda row: row["location_id"])
    ]

    return {
        "location_id": location_id,
        "categories": category_rows,
        "locations": location_rows,
        "total_quantity": str(quantize(total_quantity)),
        "total_value": str(quantize(total_value)),
    }


def profit_margin(start: str | None = None, end: str | None = None, location_id: int | None = None) -> dict:
    """
    Gross profit over sold lines.

    Cost uses Product.cost_price when set, otherwise revenue * DEFAULT_COST_RATIO.
    """
    start_dt, end_dt = _range(start, end)
    cost_ratio = Decimal(str(current_app.config.get("DEFAULT_COST_RATIO", 0.7)))

    query = (
        db.session.query(SaleItem, Product)
        .join(Sale, Sale.id == SaleItem.sale_id)
        .join(Product, Product.id == SaleItem.product_id)
    )
    rows = _scope_sales(query, start_dt, end_dt, location_id).all()

    categories: dict[str, dict] = OrderedDict()
    for item, product in rows:
        revenue = _dec(item.line_total)
        if product.cost_price is not None:
            cost = quantize(_dec(item.quantity) * _dec(product.cost_price))
        else:
            cost = quantize(revenue * cost_ratio)

        cat = categories.setdefault(product.category, {"revenue": ZERO, "cost": ZERO})
        cat["revenue"] += revenue
        cat["cost"] += cost

    def _margin(revenue: Decimal, cost: Decimal) -> dict:
        profit = revenue - cost
        return {
            "revenue": str(quantize(revenue)),
            "cost": str(quantize(cost)),
            "gross_profit": str(quantize(profit)),
            "margin_percent": str(quantize(profit * 100 / revenue)) if revenue else "0.00",
        }

    total_revenue = sum((c["revenue"] for c in categories.values()), ZERO)
    total_cost = sum((c["cost"] for c in categories.values()), ZERO)

    return {
        "start": to_utc_z(start_dt),
        "end": to_utc_z(end_dt),
        "location_id": location_id,
        "cost_ratio": str(cost_ratio),
        "totals": _margin(total_revenue, total_cost),
        "categories": [
            {"category": name, **_margin(c["revenue"], c["cost"])}
            for name, c in sorted(categories.items(), key=lambda kv: kv[1]["revenue"], reverse=True)
        ],
    }


def top_products(
    start: str | None = None,
    end: str | None = None,
    location_id: int | None = None,
    limit: int = 10,
    by: str = "quantity",
) -> dict:
    if by not in TOP_PRODUCTS_ORDERINGS:
        raise ValidationError(
            f"by must be one of: {', '.join(TOP_PRODUCTS_ORDERINGS)}",
            details={"by": by},
        )
    limit = max(1, min(int(limit or 10), 100))
    start_dt, end_dt = _range(start, end)

    quantity_sold = func.coalesce(func.sum(SaleItem.quantity), 0).label("quantity_sold")
    revenue = func.coalesce(func.sum(SaleItem.line_total), 0).label("revenue")

    query = (
        db.session.query(
            Product.id.label("product_id"),
            Product.name.label("product_name"),
            Product.category.label("category"),
            quantity_sold,
            revenue,
            func.count(func.distinct(Sale.id)).label("sales_count"),
        )
        .join(SaleItem, SaleItem.product_id == Product.id)
        .join(Sale, Sale.id == SaleItem.sale_id)
    )
    query = _scope_sales(query, start_dt, end_dt, location_id)
    order_col = quantity_sold if by == "quantity" else revenue
    rows = (
        query.group_by(Product.id, Product.name, Product.category)
        .order_by(order_col.desc(), Product.id.asc())
        .limit(limit)
        .all()
    )

    return {
        "start": to_utc_z(start_dt),
        "end": to_utc_z(end_dt),
        "location_id": location_id,
        "by": by,
        "products": [
            {
                "product_id": row.product_id,
                "product_name": row.product_name,
                "category": row.category,
                "quantity_sold": str(_dec(row.quantity_sold)),
                "revenue": str(_dec(row.revenue)),
                "sales_count": int(row.sales_count or 0),
            }
            for row in rows
        ],
    }


def dashboard_summary(location_id: int | None = None) -> dict:
    """Headline numbers for the back-office dashboard."""
    sales_query = db.session.query(
        func.count(Sale.id),
        func.coalesce(func.sum(Sale.total_amount), 0),
    )
    if location_id is not None:
        sales_query = sales_query.filter(Sale.location_id == location_id)
    total_sales, total_revenue = sales_query.one()

    today_start = datetime.combine(utcnow().date(), time.min)
    today_count, today_revenue = sales_query.filter(Sale.created_at >= today_start).one()

    valuation = inventory_valuation(location_id)
    low_stock = list_low_stock(location_id=location_id)

    movements = db.session.query(InventoryLog)
    if location_id is not None:
        movements = movements.filter(InventoryLog.location_id == location_id)
    recent = movements.order_by(InventoryLog.created_at.desc(), InventoryLog.id.desc()).limit(10).all()

    return {
        "location_id": location_id,
        "total_sales": int(total_sales or 0),
        "total_revenue": str(_dec(total_revenue)),
        "today_sales": int(today_count or 0),
        "today_revenue": str(_dec(today_revenue)),
        "stock_value": valuation["total_value"],
        "low_stock_count": len(low_stock),
        "low_stock_threshold": str(Decimal(str(current_app.config.get("LOW_STOCK_THRESHOLD", 10)))),
        "recent_movements": [log.to_dict() for log in recent],
    }
