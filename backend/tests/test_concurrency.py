"""
Retry wrapper tests.

Lock contention (OperationalError, StaleDataError, or losing the race to
create a stock record) is retried with a fresh session; anything else,
constraint violations included, rolls back and propagates.
"""

from decimal import Decimal

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm.exc import StaleDataError

from retailpos.errors import TransientConflictError, ValidationError
from retailpos.models import Location
from retailpos.services.concurrency import ConcurrentInsertError, run_with_retry


def test_retries_then_succeeds(db_session):
    calls = []

    def op():
        calls.append(1)
        if len(calls) < 3:
            raise StaleDataError("version mismatch")
        return "ok"

    assert run_with_retry(op, backoff_base=0) == "ok"
    assert len(calls) == 3


def test_gives_up_with_transient_conflict(db_session):
    def op():
        raise OperationalError("UPDATE stock_records", {}, Exception("database is locked"))

    with pytest.raises(TransientConflictError) as exc:
        run_with_retry(op, attempts=2, backoff_base=0)
    assert exc.value.status_code == 503


def test_other_errors_roll_back_and_propagate(db_session):
    calls = []

    def op():
        calls.append(1)
        db_session.add(Location(name="Pop-up", address="Car park"))
        db_session.flush()
        raise ValidationError("bad input")

    with pytest.raises(ValidationError):
        run_with_retry(op, backoff_base=0)

    assert len(calls) == 1
    assert db_session.query(Location).filter_by(name="Pop-up").count() == 0


def test_stock_record_insert_race_is_retried(db_session):
    calls = []

    def op():
        calls.append(1)
        if len(calls) == 1:
            raise ConcurrentInsertError("stock record created concurrently")
        return "ok"

    assert run_with_retry(op, backoff_base=0) == "ok"
    assert len(calls) == 2


def test_constraint_violation_is_not_retried(db_session):
    calls = []

    def op():
        calls.append(1)
        raise IntegrityError("INSERT INTO sales", {}, Exception("NOT NULL constraint failed: sales.user_id"))

    with pytest.raises(IntegrityError):
        run_with_retry(op, backoff_base=0)
    assert len(calls) == 1


def test_versioned_stock_record_detects_lost_update(db_session, product, location, stock):
    from retailpos.models import StockRecord

    stock(product, location, 5)
    record = db_session.query(StockRecord).filter_by(product_id=product.id, location_id=location.id).one()

    # Another writer bumps the row version behind our back
    db_session.execute(
        StockRecord.__table__.update()
        .where(StockRecord.__table__.c.id == record.id)
        .values(version_id=record.version_id + 1)
    )

    record.quantity = Decimal("4")
    with pytest.raises(StaleDataError):
        db_session.flush()
    db_session.rollback()
