# Overview: Stock notifications for dashboards and low-stock alerting.

"""
Stock change notifications.

Movements queue a plain-dict payload on the session; the payloads are only
sent once the surrounding transaction commits and are dropped on rollback,
so subscribers never hear about stock changes that did not happen.

Subscribers receive `sender=app` and `movement=<dict>` (see
stock_ledger_service._movement_payload for the keys).
"""

from __future__ import annotations

from blinker import Namespace
from flask import current_app, has_app_context
from sqlalchemy import event
from sqlalchemy.orm import Session


_signals = Namespace()

stock_changed = _signals.signal("stock-changed")
low_stock = _signals.signal("low-stock")

_PENDING_KEY = "retailpos.pending_stock_events"


def queue_stock_event(session, payload: dict) -> None:
    session.info.setdefault(_PENDING_KEY, []).append(payload)


def _sender():
    return current_app._get_current_object() if has_app_context() else None


@event.listens_for(Session, "after_commit")
def _dispatch_after_commit(session):
    pending = session.info.pop(_PENDING_KEY, None)
    if not pending:
        return
    sender = _sender()
    for payload in pending:
        stock_changed.send(sender, movement=payload)
        if payload.get("is_low_stock"):
            low_stock.send(sender, movement=payload)


@event.listens_for(Session, "after_rollback")
def _discard_after_rollback(session):
    session.info.pop(_PENDING_KEY, None)


def _log_stock_changed(sender, movement, **extra):
    if sender is None:
        return
    sender.logger.info(
        "Stock %s: product=%s location=%s %s -> %s",
        movement["change_type"],
        movement["product_id"],
        movement["location_id"],
        movement["previous_quantity"],
        movement["new_quantity"],
    )


def _log_low_stock(sender, movement, **extra):
    if sender is None:
        return
    sender.logger.warning(
        "Low stock: product=%s location=%s quantity=%s",
        movement["product_id"],
        movement["location_id"],
        movement["new_quantity"],
    )


def connect_default_listeners() -> None:
    # weak=False keeps module-level functions connected; connect() is idempotent per receiver
    stock_changed.connect(_log_stock_changed, weak=False)
    low_stock.connect(_log_low_stock, weak=False)
