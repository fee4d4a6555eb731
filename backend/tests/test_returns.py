"""
Return / exchange tests.

Verifies:
- Stock is restored at creation and quantities are bounded by what was sold
- Refund amounts come from the sale-time price
- Sale status follows the return history
- The PENDING/APPROVED/REJECTED/COMPLETED state machine
- Rejection takes the restored stock back out (and fails if it was resold)
"""

from decimal import Decimal

import pytest

from retailpos.errors import (
    EmptyReturnError,
    InsufficientStockError,
    InvalidReturnTransitionError,
    InvalidSaleItemError,
    MissingActorError,
    OverReturnError,
    ReturnError,
    ReturnNotFoundError,
    SaleNotFoundError,
)
from retailpos.models import InventoryLog, Return
from retailpos.services import return_service, sales_service, stock_ledger_service


@pytest.fixture
def sale(db_session, product, location, owner, stock):
    """Sale of 20 units (at 450.00) from a stock of 50."""
    stock(product, location, 50)
    return sales_service.create_sale(
        location.id,
        [{"product_id": product.id, "quantity": 20, "price": "450.00"}],
        owner.id,
    )


def _refund(sale, quantity, actor_id, **kwargs):
    return return_service.create_return(
        sale.id,
        "REFUND",
        [{"sale_item_id": sale.items[0].id, "quantity": quantity}],
        actor_id,
        refund_method="CASH",
        **kwargs,
    )


class TestCreateReturn:

    def test_scenario_return_then_over_return(self, db_session, sale, product, location, owner):
        return_doc = _refund(sale, 5, owner.id)

        assert return_doc.status == "PENDING"
        assert stock_ledger_service.get_quantity(product.id, location.id) == Decimal("35")
        assert return_service.already_returned(sale.items[0].id) == Decimal("5")

        with pytest.raises(OverReturnError) as exc:
            _refund(sale, 16, owner.id)
        assert exc.value.sale_item_id == sale.items[0].id
        assert stock_ledger_service.get_quantity(product.id, location.id) == Decimal("35")

    def test_return_movement_recorded(self, db_session, sale, product, location, owner):
        return_doc = _refund(sale, 5, owner.id)

        log = db_session.query(InventoryLog).filter_by(return_id=return_doc.id).one()
        assert log.change_type == "return"
        assert log.change_amount == Decimal("5")
        assert log.previous_quantity == Decimal("30")
        assert log.new_quantity == Decimal("35")

    def test_refund_uses_sale_time_price(self, db_session, sale, owner):
        return_doc = _refund(sale, 2, owner.id)
        assert return_doc.total_refund_amount == Decimal("900.00")
        assert return_doc.items[0].refund_amount == Decimal("900.00")

    def test_refund_override(self, db_session, sale, owner):
        return_doc = return_service.create_return(
            sale.id,
            "REFUND",
            [{"sale_item_id": sale.items[0].id, "quantity": 2, "refund_amount": "700.00", "condition": "DAMAGED"}],
            owner.id,
            refund_method="STORE_CREDIT",
        )
        assert return_doc.total_refund_amount == Decimal("700.00")
        assert return_doc.items[0].condition == "DAMAGED"

    def test_return_to_other_location(self, db_session, sale, product, location, warehouse, owner):
        return_service.create_return(
            sale.id,
            "REFUND",
            [{"sale_item_id": sale.items[0].id, "quantity": 3, "location_id": warehouse.id}],
            owner.id,
            refund_method="CASH",
        )
        assert stock_ledger_service.get_quantity(product.id, warehouse.id) == Decimal("3")
        assert stock_ledger_service.get_quantity(product.id, location.id) == Decimal("30")

    def test_duplicate_lines_counted_together(self, db_session, sale, owner):
        item_id = sale.items[0].id
        with pytest.raises(OverReturnError):
            return_service.create_return(
                sale.id,
                "REFUND",
                [{"sale_item_id": item_id, "quantity": 15}, {"sale_item_id": item_id, "quantity": 6}],
                owner.id,
                refund_method="CASH",
            )
        assert db_session.query(Return).count() == 0

    def test_exchange_requires_replacement_product(self, db_session, sale, other_product, owner):
        with pytest.raises(ReturnError):
            return_service.create_return(
                sale.id, "EXCHANGE", [{"sale_item_id": sale.items[0].id, "quantity": 1}], owner.id
            )

        return_doc = return_service.create_return(
            sale.id,
            "EXCHANGE",
            [{"sale_item_id": sale.items[0].id, "quantity": 1, "exchange_product_id": other_product.id}],
            owner.id,
        )
        assert return_doc.refund_method is None
        assert return_doc.items[0].exchange_product_id == other_product.id

    def test_refund_requires_refund_method(self, db_session, sale, owner):
        with pytest.raises(ReturnError):
            return_service.create_return(
                sale.id, "REFUND", [{"sale_item_id": sale.items[0].id, "quantity": 1}], owner.id
            )

    def test_unknown_sale(self, db_session, owner):
        with pytest.raises(SaleNotFoundError):
            return_service.create_return(999, "REFUND", [{"sale_item_id": 1, "quantity": 1}], owner.id,
                                         refund_method="CASH")

    def test_unknown_sale_reported_before_header_checks(self, db_session, owner):
        with pytest.raises(SaleNotFoundError):
            return_service.create_return(424242, "REFUND", [{"sale_item_id": 1, "quantity": 1}], owner.id)

    def test_missing_refund_method_on_known_sale(self, db_session, sale, owner):
        with pytest.raises(ReturnError):
            return_service.create_return(
                sale.id, "REFUND", [{"sale_item_id": sale.items[0].id, "quantity": 1}], owner.id
            )

    def test_unknown_actor(self, db_session, sale, product, location):
        with pytest.raises(MissingActorError):
            _refund(sale, 1, 99999)
        assert db_session.query(Return).count() == 0
        assert stock_ledger_service.get_quantity(product.id, location.id) == Decimal("30")

    def test_all_zero_lines(self, db_session, sale, owner):
        with pytest.raises(EmptyReturnError):
            _refund(sale, 0, owner.id)

    def test_sale_item_from_other_sale(self, db_session, sale, product, location, owner):
        other = sales_service.create_sale(location.id, [{"product_id": product.id, "quantity": 1}], owner.id)
        with pytest.raises(InvalidSaleItemError):
            return_service.create_return(
                sale.id,
                "REFUND",
                [{"sale_item_id": other.items[0].id, "quantity": 1}],
                owner.id,
                refund_method="CASH",
            )

    def test_invalid_condition(self, db_session, sale, owner):
        with pytest.raises(ReturnError):
            return_service.create_return(
                sale.id,
                "REFUND",
                [{"sale_item_id": sale.items[0].id, "quantity": 1, "condition": "wrong_item"}],
                owner.id,
                refund_method="CASH",
            )


class TestSaleStatus:

    def test_partial_then_full(self, db_session, sale, owner):
        _refund(sale, 5, owner.id)
        assert sales_service.get_sale(sale.id).status == "partially_returned"

        # Fully returned keeps the last status
        _refund(sale, 15, owner.id)
        assert sales_service.get_sale(sale.id).status == "partially_returned"

    def test_rejection_restores_completed(self, db_session, sale, owner, manager):
        return_doc = _refund(sale, 5, owner.id)
        return_service.reject_return(return_doc.id, manager.id, "No receipt")
        assert sales_service.get_sale(sale.id).status == "completed"


class TestStateMachine:

    def test_approve_then_complete(self, db_session, sale, owner, manager):
        return_doc = _refund(sale, 1, owner.id)

        approved = return_service.approve_return(return_doc.id, manager.id)
        assert approved.status == "APPROVED"
        assert approved.approved_by == manager.id

        completed = return_service.complete_return(return_doc.id, manager.id)
        assert completed.status == "COMPLETED"
        assert completed.completed_by == manager.id
        assert completed.completed_at is not None

    def test_complete_directly_from_pending(self, db_session, sale, owner, manager):
        return_doc = _refund(sale, 1, owner.id)
        assert return_service.complete_return(return_doc.id, manager.id).status == "COMPLETED"

    def test_auto_approve(self, db_session, sale, owner):
        return_doc = _refund(sale, 1, owner.id, auto_approve=True)
        assert return_doc.status == "COMPLETED"
        assert return_doc.approved_by == owner.id

    @pytest.mark.parametrize("terminal", ["REJECTED", "COMPLETED"])
    def test_terminal_states(self, db_session, sale, owner, manager, terminal):
        return_doc = _refund(sale, 1, owner.id)
        if terminal == "REJECTED":
            return_service.reject_return(return_doc.id, manager.id)
        else:
            return_service.complete_return(return_doc.id, manager.id)

        with pytest.raises(InvalidReturnTransitionError):
            return_service.approve_return(return_doc.id, manager.id)
        with pytest.raises(InvalidReturnTransitionError):
            return_service.reject_return(return_doc.id, manager.id)
        with pytest.raises(InvalidReturnTransitionError):
            return_service.complete_return(return_doc.id, manager.id)

    def test_approved_cannot_be_rejected(self, db_session, sale, owner, manager):
        return_doc = _refund(sale, 1, owner.id)
        return_service.approve_return(return_doc.id, manager.id)
        with pytest.raises(InvalidReturnTransitionError):
            return_service.reject_return(return_doc.id, manager.id)

    def test_unknown_return(self, db_session, manager):
        with pytest.raises(ReturnNotFoundError):
            return_service.approve_return(4242, manager.id)


class TestRejectionReversal:

    def test_reject_takes_stock_back_out(self, db_session, sale, product, location, owner, manager):
        return_doc = _refund(sale, 5, owner.id)
        assert stock_ledger_service.get_quantity(product.id, location.id) == Decimal("35")

        rejected = return_service.reject_return(return_doc.id, manager.id, "Item used")

        assert rejected.status == "REJECTED"
        assert rejected.rejection_reason == "Item used"
        assert stock_ledger_service.get_quantity(product.id, location.id) == Decimal("30")

        reversal = (
            db_session.query(InventoryLog)
            .filter_by(return_id=return_doc.id)
            .order_by(InventoryLog.id.desc())
            .first()
        )
        assert reversal.change_type == "return"
        assert reversal.change_amount == Decimal("-5")

    def test_rejected_quantity_can_be_returned_again(self, db_session, sale, owner, manager):
        return_doc = _refund(sale, 20, owner.id)
        return_service.reject_return(return_doc.id, manager.id)

        assert return_service.already_returned(sale.items[0].id) == Decimal("0")
        assert _refund(sale, 20, owner.id).status == "PENDING"

    def test_reject_fails_when_goods_were_resold(self, db_session, product, location, owner, manager, stock):
        stock(product, location, 5)
        sale = sales_service.create_sale(location.id, [{"product_id": product.id, "quantity": 5}], owner.id)
        return_doc = _refund(sale, 5, owner.id)

        # The returned units leave again
        sales_service.create_sale(location.id, [{"product_id": product.id, "quantity": 5}], owner.id)

        with pytest.raises(InsufficientStockError):
            return_service.reject_return(return_doc.id, manager.id)

        assert return_service.get_return(return_doc.id).status == "PENDING"
        assert stock_ledger_service.get_quantity(product.id, location.id) == Decimal("0")


class TestQueries:

    def test_returnable_items(self, db_session, sale, owner):
        _refund(sale, 5, owner.id)
        items = return_service.get_returnable_items(sale.id)
        assert items == [{
            "sale_item_id": sale.items[0].id,
            "product_id": sale.items[0].product_id,
            "product_name": "Glazed Floor Tile 60x60",
            "unit": "sqm",
            "unit_price": "450.00",
            "sold": "20.00",
            "returned": "5.00",
            "remaining": "15.00",
        }]

    def test_list_returns_filters(self, db_session, sale, owner, manager):
        first = _refund(sale, 1, owner.id)
        second = _refund(sale, 1, owner.id)
        return_service.approve_return(second.id, manager.id)

        assert [r.id for r in return_service.list_returns(status="PENDING")] == [first.id]
        assert {r.id for r in return_service.list_returns(sale_id=sale.id)} == {first.id, second.id}
