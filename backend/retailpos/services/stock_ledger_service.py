# Overview: Service-layer operations for the stock ledger; per-location quantities and movements.

"""
Stock ledger invariants (authoritative)

Model:
- One StockRecord per (product, location) holds the current quantity.
  A missing record means quantity 0; records are created lazily on the
  first movement and never deleted.
- Every quantity change appends exactly one InventoryLog row in the same
  DB transaction:  new_quantity == previous_quantity + change_amount.
- Quantities never go negative. A decrement that would do so raises
  InsufficientStockError and nothing is written.

Writers:
- apply_movement() is the public entry point for manual inventory flows
  (received / adjusted / broken / initial). It validates, retries on lock
  contention and commits.
- _apply_movement_locked() is the same step without commit or retry. Sales
  and returns call it inside their own transaction so the whole document
  either lands or does not.
- "sale" and "return" movements can only come from those two transactions.

Notifications:
- Each movement queues a stock-changed payload (and low-stock when the new
  quantity is under LOW_STOCK_THRESHOLD); signals.py sends them after commit.
"""

from __future__ import annotations

from decimal import Decimal

from flask import current_app
from sqlalchemy import and_, or_
from sqlalchemy.exc import IntegrityError

from ..errors import InsufficientStockError, InvalidMovementError, MissingActorError
from ..extensions import db
from ..models import InventoryLog, Product, StockRecord, User
from ..models.inventory import (
    MOVEMENT_ADJUSTED,
    MOVEMENT_BROKEN,
    MOVEMENT_INITIAL,
    MOVEMENT_RECEIVED,
    MOVEMENT_RETURN,
    MOVEMENT_SALE,
    MOVEMENT_TYPES,
)
from ..signals import queue_stock_event
from ..time_utils import utcnow
from ..validation import ZERO, quantize, to_decimal
from .catalog_service import require_active_product, require_location, require_product
from .concurrency import ConcurrentInsertError, lock_for_update, run_with_retry


# Only the sale/return transactions may write these
DOCUMENT_MOVEMENTS = (MOVEMENT_SALE, MOVEMENT_RETURN)

MANUAL_MOVEMENTS = (MOVEMENT_RECEIVED, MOVEMENT_ADJUSTED, MOVEMENT_BROKEN, MOVEMENT_INITIAL)


def get_quantity(product_id: int, location_id: int) -> Decimal:
    """Current on-hand quantity; 0 when the product was never stocked there."""
    quantity = (
        db.session.query(StockRecord.quantity)
        .filter_by(product_id=product_id, location_id=location_id)
        .scalar()
    )
    if quantity is None:
        return ZERO
    return quantize(Decimal(str(quantity)))


def require_actor(actor_id, action: str = "record stock movements") -> User:
    """Every write is attributed to an existing user; raises MissingActorError otherwise."""
    user = db.session.get(User, actor_id) if actor_id is not None else None
    if user is None:
        raise MissingActorError(f"A valid actor is required to {action}", details={"actor_id": actor_id})
    return user


def _low_stock_threshold() -> Decimal:
    return Decimal(str(current_app.config.get("LOW_STOCK_THRESHOLD", 10)))


def _movement_payload(log: InventoryLog, product_name: str | None) -> dict:
    # Plain values only: ORM attributes expire on commit, and no SQL may run
    # inside the after_commit hook that delivers this.
    return {
        "movement_id": log.id,
        "change_type": log.change_type,
        "product_id": log.product_id,
        "product_name": product_name,
        "location_id": log.location_id,
        "change_amount": str(log.change_amount),
        "previous_quantity": str(log.previous_quantity),
        "new_quantity": str(log.new_quantity),
        "user_id": log.user_id,
        "sale_id": log.sale_id,
        "return_id": log.return_id,
        "is_low_stock": log.new_quantity < _low_stock_threshold(),
    }


def _lock_stock_record(product_id: int, location_id: int) -> StockRecord:
    record = lock_for_update(
        db.session.query(StockRecord).filter_by(product_id=product_id, location_id=location_id)
    ).first()
    if record is None:
        # Lazily created; losing the insert race to another writer is retried
        record = StockRecord(product_id=product_id, location_id=location_id, quantity=ZERO)
        db.session.add(record)
        try:
            db.session.flush()
        except IntegrityError as exc:
            raise ConcurrentInsertError(
                f"Stock record for product {product_id} at location {location_id} created concurrently"
            ) from exc
    return record


def _apply_movement_locked(
    *,
    product_id: int,
    location_id: int,
    change_type: str,
    change_amount: Decimal,
    actor_id: int,
    notes: str | None = None,
    sale_id: int | None = None,
    return_id: int | None = None,
    product_name: str | None = None,
) -> InventoryLog:
    """Core movement logic without validation, retry or commit.

    Caller owns the transaction. Raises InsufficientStockError before writing
    anything when the movement would drive the record negative.
    """
    record = _lock_stock_record(product_id, location_id)

    previous = quantize(Decimal(str(record.quantity or 0)))
    change_amount = quantize(change_amount)
    new_quantity = previous + change_amount

    if new_quantity < 0:
        raise InsufficientStockError(
            product_id,
            location_id,
            available=previous,
            requested=-change_amount,
            product_name=product_name,
        )

    now = utcnow()
    record.quantity = new_quantity
    record.updated_at = now

    log = InventoryLog(
        product_id=product_id,
        location_id=location_id,
        change_type=change_type,
        change_amount=change_amount,
        previous_quantity=previous,
        new_quantity=new_quantity,
        user_id=actor_id,
        notes=notes,
        sale_id=sale_id,
        return_id=return_id,
        created_at=now,
    )
    db.session.add(log)
    db.session.flush()

    queue_stock_event(db.session, _movement_payload(log, product_name))
    return log


def _validate_manual_amount(change_type: str, change_amount: Decimal) -> None:
    if change_amount == 0:
        raise InvalidMovementError("change_amount must not be zero", details={"field": "change_amount"})
    if change_type in (MOVEMENT_RECEIVED, MOVEMENT_INITIAL) and change_amount < 0:
        raise InvalidMovementError(
            f"{change_type} movements must increase stock",
            details={"change_type": change_type},
        )
    if change_type == MOVEMENT_BROKEN and change_amount > 0:
        raise InvalidMovementError(
            "broken movements must decrease stock",
            details={"change_type": change_type},
        )


def apply_movement(
    product_id: int,
    location_id: int,
    change_type: str,
    change_amount,
    actor_id: int | None,
    notes: str | None = None,
) -> InventoryLog:
    """
    Record a manual stock movement and commit it.

    received/initial must be positive, broken negative, adjusted either way.
    sale/return movements are refused here.
    """
    if change_type not in MOVEMENT_TYPES:
        raise InvalidMovementError(
            f"Invalid change_type {change_type!r}. Must be one of: {', '.join(MANUAL_MOVEMENTS)}",
            details={"change_type": change_type},
        )
    if change_type in DOCUMENT_MOVEMENTS:
        raise InvalidMovementError(
            f"{change_type} movements are recorded by sales and returns only",
            details={"change_type": change_type},
        )

    amount = to_decimal(change_amount, "change_amount")
    _validate_manual_amount(change_type, amount)

    require_actor(actor_id)

    def _op():
        # Archived products can still be written down, never restocked
        product = require_product(product_id) if amount < 0 else require_active_product(product_id)
        require_location(location_id)

        log = _apply_movement_locked(
            product_id=product.id,
            location_id=location_id,
            change_type=change_type,
            change_amount=amount,
            actor_id=actor_id,
            notes=notes,
            product_name=product.name,
        )
        db.session.commit()
        return log

    try:
        log = run_with_retry(_op)
    except InsufficientStockError as e:
        current_app.logger.warning("Rejected %s movement: %s", change_type, e)
        raise

    current_app.logger.info(
        "Recorded %s movement %s for product %s at location %s (%s)",
        change_type, log.id, product_id, location_id, amount,
    )
    return log


# =============================================================================
# READS
# =============================================================================

def list_stock(location_id: int | None = None, include_archived: bool = False) -> list[StockRecord]:
    query = db.session.query(StockRecord).join(Product, Product.id == StockRecord.product_id)
    if location_id is not None:
        query = query.filter(StockRecord.location_id == location_id)
    if not include_archived:
        # Archived products stay visible while they still hold stock
        query = query.filter(or_(Product.deleted_at.is_(None), StockRecord.quantity > 0))
    return query.order_by(Product.name.asc(), StockRecord.location_id.asc()).all()


def list_movements(
    product_id: int | None = None,
    location_id: int | None = None,
    limit: int = 50,
) -> list[InventoryLog]:
    query = db.session.query(InventoryLog)
    if product_id is not None:
        query = query.filter(InventoryLog.product_id == product_id)
    if location_id is not None:
        query = query.filter(InventoryLog.location_id == location_id)

    limit = max(1, min(int(limit or 50), 500))
    return (
        query.order_by(InventoryLog.created_at.desc(), InventoryLog.id.desc())
        .limit(limit)
        .all()
    )


def list_low_stock(location_id: int | None = None, threshold=None) -> list[StockRecord]:
    """Stock records strictly under the threshold (config default), lowest first."""
    limit_qty = _low_stock_threshold() if threshold is None else to_decimal(threshold, "threshold")

    query = (
        db.session.query(StockRecord)
        .join(Product, and_(Product.id == StockRecord.product_id, Product.deleted_at.is_(None)))
        .filter(StockRecord.quantity < limit_qty)
    )
    if location_id is not None:
        query = query.filter(StockRecord.location_id == location_id)
    return query.order_by(StockRecord.quantity.asc(), StockRecord.id.asc()).all()
