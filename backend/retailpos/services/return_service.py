# Overview: Service-layer operations for returns and exchanges against prior sales.

"""
Return / exchange processing.

DESIGN PRINCIPLES:
- Returns reference the original Sale and its SaleItems; the refund defaults
  to the sale-time unit_price, never the current catalog price.
- Cumulative returned quantity per SaleItem (over non-REJECTED returns) can
  never exceed the quantity sold.
- Returned stock goes back on the shelf when the return is created, in the
  same transaction as the Return and its items.
- Rejecting a return takes that stock back out again ("return" movements
  with negative amounts). If it has been sold since, rejection fails with
  InsufficientStockError and nothing changes.

LIFECYCLE:
    PENDING --approve--> APPROVED --complete--> COMPLETED
    PENDING --complete--> COMPLETED
    PENDING --reject--> REJECTED
    REJECTED and COMPLETED are terminal.
"""

from __future__ import annotations

from decimal import Decimal

from flask import current_app
from sqlalchemy import func

from ..errors import (
    EmptyReturnError,
    InsufficientStockError,
    InvalidReturnTransitionError,
    InvalidSaleItemError,
    OverReturnError,
    ReturnError,
    ReturnNotFoundError,
    SaleNotFoundError,
    ValidationError,
)
from ..extensions import db
from ..models import Return, ReturnItem, Sale, SaleItem
from ..models.inventory import MOVEMENT_RETURN
from ..models.returns import (
    ITEM_CONDITIONS,
    REFUND_METHODS,
    RETURN_STATUS_APPROVED,
    RETURN_STATUS_COMPLETED,
    RETURN_STATUS_PENDING,
    RETURN_STATUS_REJECTED,
    RETURN_TYPE_EXCHANGE,
    RETURN_TYPE_REFUND,
    RETURN_TYPES,
)
from ..models.sales import SALE_STATUS_COMPLETED, SALE_STATUS_PARTIALLY_RETURNED
from ..time_utils import utcnow
from ..validation import ZERO, non_negative_decimal, quantize, to_decimal, to_int
from .catalog_service import require_active_product, require_location
from .concurrency import lock_for_update, run_with_retry
from .stock_ledger_service import _apply_movement_locked, require_actor


RETURN_STATUSES = (
    RETURN_STATUS_PENDING,
    RETURN_STATUS_APPROVED,
    RETURN_STATUS_REJECTED,
    RETURN_STATUS_COMPLETED,
)


# =============================================================================
# HELPERS
# =============================================================================

def already_returned(sale_item_id: int) -> Decimal:
    """Quantity of a sale item covered by returns that were not rejected."""
    total = (
        db.session.query(func.coalesce(func.sum(ReturnItem.quantity), 0))
        .join(Return, Return.id == ReturnItem.return_id)
        .filter(
            ReturnItem.sale_item_id == sale_item_id,
            Return.status != RETURN_STATUS_REJECTED,
        )
        .scalar()
    )
    return quantize(Decimal(str(total or 0)))


def recompute_sale_status(sale: Sale) -> str:
    """
    partially_returned while 0 < returned < sold, completed when nothing is
    returned, unchanged once everything has come back.
    """
    db.session.flush()
    sold = quantize(Decimal(str(
        db.session.query(func.coalesce(func.sum(SaleItem.quantity), 0))
        .filter(SaleItem.sale_id == sale.id)
        .scalar() or 0
    )))
    returned = quantize(Decimal(str(
        db.session.query(func.coalesce(func.sum(ReturnItem.quantity), 0))
        .join(Return, Return.id == ReturnItem.return_id)
        .filter(Return.sale_id == sale.id, Return.status != RETURN_STATUS_REJECTED)
        .scalar() or 0
    )))

    if returned == 0:
        sale.status = SALE_STATUS_COMPLETED
    elif returned < sold:
        sale.status = SALE_STATUS_PARTIALLY_RETURNED
    return sale.status


def _validate_header(return_type: str, refund_method: str | None) -> None:
    if return_type not in RETURN_TYPES:
        raise ReturnError(
            f"Invalid return_type. Must be one of: {', '.join(RETURN_TYPES)}",
            details={"return_type": return_type},
        )
    if return_type == RETURN_TYPE_REFUND:
        if refund_method not in REFUND_METHODS:
            raise ReturnError(
                f"refund_method is required for refunds. Must be one of: {', '.join(REFUND_METHODS)}",
                details={"refund_method": refund_method},
            )
    elif refund_method:
        raise ReturnError("refund_method only applies to REFUND returns", details={"refund_method": refund_method})


def _prepare_lines(sale: Sale, return_type: str, items) -> list[dict]:
    """Validate requested lines against the sale; returns normalized lines."""
    sale_items = {item.id: item for item in sale.items}
    requested: dict[int, Decimal] = {}
    lines = []

    for index, item in enumerate(items or []):
        if not isinstance(item, dict):
            raise ValidationError(f"items[{index}] must be an object")

        quantity = to_decimal(item.get("quantity"), f"items[{index}].quantity")
        if quantity < 0:
            raise ValidationError(f"items[{index}].quantity cannot be negative")
        if quantity == 0:
            continue

        sale_item_id = to_int(item.get("sale_item_id"), f"items[{index}].sale_item_id")
        sale_item = sale_items.get(sale_item_id)
        if sale_item is None:
            raise InvalidSaleItemError(sale_item_id, sale.id)

        sold = quantize(Decimal(str(sale_item.quantity)))
        returned = already_returned(sale_item_id)
        # Duplicate lines for one sale item count together
        pending = requested.get(sale_item_id, ZERO) + quantity
        if returned + pending > sold:
            raise OverReturnError(sale_item_id, sold, returned, quantity)
        requested[sale_item_id] = pending

        condition = item.get("condition") or "PERFECT"
        if condition not in ITEM_CONDITIONS:
            raise ReturnError(
                f"Invalid condition. Must be one of: {', '.join(ITEM_CONDITIONS)}",
                details={"condition": condition},
            )

        location_id = item.get("location_id")
        location = require_location(to_int(location_id, "location_id") if location_id is not None else sale.location_id)

        exchange_product_id = item.get("exchange_product_id")
        if return_type == RETURN_TYPE_EXCHANGE:
            if exchange_product_id is None:
                raise ReturnError(
                    "exchange_product_id is required for exchanges",
                    details={"sale_item_id": sale_item_id},
                )
            exchange_product_id = require_active_product(
                to_int(exchange_product_id, f"items[{index}].exchange_product_id")
            ).id
        elif exchange_product_id is not None:
            raise ReturnError(
                "exchange_product_id only applies to EXCHANGE returns",
                details={"sale_item_id": sale_item_id},
            )

        if item.get("refund_amount") is not None:
            refund_amount = non_negative_decimal(item.get("refund_amount"), f"items[{index}].refund_amount")
        else:
            refund_amount = quantize(Decimal(str(sale_item.unit_price)) * quantity)

        lines.append({
            "sale_item": sale_item,
            "quantity": quantity,
            "location_id": location.id,
            "condition": condition,
            "return_reason": item.get("return_reason") or item.get("reason"),
            "refund_amount": refund_amount,
            "exchange_product_id": exchange_product_id,
        })

    if not lines:
        raise EmptyReturnError()
    return lines


# =============================================================================
# RETURN CREATION
# =============================================================================

def create_return(
    sale_id: int,
    return_type: str,
    items,
    actor_id: int,
    reason: str | None = None,
    refund_method: str | None = None,
    notes: str | None = None,
    auto_approve: bool = False,
) -> Return:
    """
    Create a return against a sale and put the goods back in stock.

    The Return starts PENDING (COMPLETED with auto_approve). Every line adds
    a "return" movement at its destination location, which defaults to the
    sale's location.
    """
    require_actor(actor_id, "process returns")

    def _op():
        sale = lock_for_update(db.session.query(Sale).filter_by(id=sale_id)).first()
        if sale is None:
            raise SaleNotFoundError(sale_id)
        _validate_header(return_type, refund_method)

        lines = _prepare_lines(sale, return_type, items)

        now = utcnow()
        return_doc = Return(
            sale_id=sale.id,
            processed_by=actor_id,
            return_date=now,
            return_type=return_type,
            reason=reason,
            status=RETURN_STATUS_COMPLETED if auto_approve else RETURN_STATUS_PENDING,
            total_refund_amount=quantize(sum((line["refund_amount"] for line in lines), ZERO)),
            refund_method=refund_method if return_type == RETURN_TYPE_REFUND else None,
            notes=notes,
        )
        if auto_approve:
            return_doc.approved_by = actor_id
            return_doc.approved_at = now
            return_doc.completed_by = actor_id
            return_doc.completed_at = now
        db.session.add(return_doc)
        db.session.flush()

        for line in lines:
            sale_item = line["sale_item"]
            db.session.add(ReturnItem(
                return_id=return_doc.id,
                sale_item_id=sale_item.id,
                product_id=sale_item.product_id,
                location_id=line["location_id"],
                quantity=line["quantity"],
                return_reason=line["return_reason"],
                condition=line["condition"],
                refund_amount=line["refund_amount"],
                exchange_product_id=line["exchange_product_id"],
            ))
            _apply_movement_locked(
                product_id=sale_item.product_id,
                location_id=line["location_id"],
                change_type=MOVEMENT_RETURN,
                change_amount=line["quantity"],
                actor_id=actor_id,
                notes=f"Return #{return_doc.id} for sale #{sale.id}",
                sale_id=sale.id,
                return_id=return_doc.id,
                product_name=sale_item.product.name if sale_item.product else None,
            )

        recompute_sale_status(sale)
        db.session.commit()
        return return_doc

    return_doc = run_with_retry(_op)
    current_app.logger.info(
        "Return %s (%s) created for sale %s: refund %s, status %s",
        return_doc.id, return_doc.return_type, return_doc.sale_id,
        return_doc.total_refund_amount, return_doc.status,
    )
    return return_doc


# =============================================================================
# STATE TRANSITIONS
# =============================================================================

def _lock_return(return_id: int) -> Return:
    return_doc = lock_for_update(db.session.query(Return).filter_by(id=return_id)).first()
    if return_doc is None:
        raise ReturnNotFoundError(return_id)
    return return_doc


def approve_return(return_id: int, actor_id: int) -> Return:
    """PENDING -> APPROVED (manager action)."""
    require_actor(actor_id, "process returns")

    def _op():
        return_doc = _lock_return(return_id)
        if return_doc.status != RETURN_STATUS_PENDING:
            raise InvalidReturnTransitionError(return_id, return_doc.status, RETURN_STATUS_APPROVED)

        return_doc.status = RETURN_STATUS_APPROVED
        return_doc.approved_by = actor_id
        return_doc.approved_at = utcnow()
        db.session.commit()
        return return_doc

    return_doc = run_with_retry(_op)
    current_app.logger.info("Return %s approved by user %s", return_id, actor_id)
    return return_doc


def reject_return(return_id: int, actor_id: int, rejection_reason: str | None = None) -> Return:
    """
    PENDING -> REJECTED (manager action).

    Takes the restored stock back out and frees the quantities for future
    returns. Fails with InsufficientStockError when the goods were resold.
    """
    require_actor(actor_id, "process returns")

    def _op():
        return_doc = _lock_return(return_id)
        if return_doc.status != RETURN_STATUS_PENDING:
            raise InvalidReturnTransitionError(return_id, return_doc.status, RETURN_STATUS_REJECTED)

        for item in return_doc.items:
            _apply_movement_locked(
                product_id=item.product_id,
                location_id=item.location_id,
                change_type=MOVEMENT_RETURN,
                change_amount=-quantize(Decimal(str(item.quantity))),
                actor_id=actor_id,
                notes=f"Return #{return_doc.id} rejected",
                sale_id=return_doc.sale_id,
                return_id=return_doc.id,
                product_name=item.product.name if item.product else None,
            )

        return_doc.status = RETURN_STATUS_REJECTED
        return_doc.rejected_by = actor_id
        return_doc.rejected_at = utcnow()
        return_doc.rejection_reason = rejection_reason

        recompute_sale_status(return_doc.sale)
        db.session.commit()
        return return_doc

    try:
        return_doc = run_with_retry(_op)
    except InsufficientStockError as e:
        current_app.logger.warning("Cannot reject return %s: %s", return_id, e)
        raise

    current_app.logger.info("Return %s rejected by user %s", return_id, actor_id)
    return return_doc


def complete_return(return_id: int, actor_id: int) -> Return:
    """PENDING or APPROVED -> COMPLETED; the refund/exchange has been handed over."""
    require_actor(actor_id, "process returns")

    def _op():
        return_doc = _lock_return(return_id)
        if return_doc.status not in (RETURN_STATUS_PENDING, RETURN_STATUS_APPROVED):
            raise InvalidReturnTransitionError(return_id, return_doc.status, RETURN_STATUS_COMPLETED)

        return_doc.status = RETURN_STATUS_COMPLETED
        return_doc.completed_by = actor_id
        return_doc.completed_at = utcnow()
        db.session.commit()
        return return_doc

    return_doc = run_with_retry(_op)
    current_app.logger.info("Return %s completed by user %s", return_id, actor_id)
    return return_doc


# =============================================================================
# QUERIES
# =============================================================================

def get_return(return_id: int) -> Return:
    return_doc = db.session.get(Return, return_id)
    if return_doc is None:
        raise ReturnNotFoundError(return_id)
    return return_doc


def list_returns(status: str | None = None, sale_id: int | None = None, limit: int = 50) -> list[Return]:
    query = db.session.query(Return)
    if status is not None:
        if status not in RETURN_STATUSES:
            raise ValidationError(
                f"Invalid status. Must be one of: {', '.join(RETURN_STATUSES)}",
                details={"status": status},
            )
        query = query.filter(Return.status == status)
    if sale_id is not None:
        query = query.filter(Return.sale_id == sale_id)

    limit = max(1, min(int(limit or 50), 200))
    return query.order_by(Return.return_date.desc(), Return.id.desc()).limit(limit).all()


def get_returnable_items(sale_id: int) -> list[dict]:
    """Per sale item: sold, returned (non-rejected) and remaining quantity."""
    sale = db.session.get(Sale, sale_id)
    if sale is None:
        raise SaleNotFoundError(sale_id)

    result = []
    for item in sale.items:
        sold = quantize(Decimal(str(item.quantity)))
        returned = already_returned(item.id)
        result.append({
            "sale_item_id": item.id,
            "product_id": item.product_id,
            "product_name": item.product.name if item.product else None,
            "unit": item.unit,
            "unit_price": str(quantize(Decimal(str(item.unit_price)))),
            "sold": str(sold),
            "returned": str(returned),
            "remaining": str(sold - returned),
        })
    return result
