"""
Sale transaction tests.

Verifies:
- Totals: percentage/amount discounts, clamping at zero
- Stock decrements with one "sale" movement per line
- All-or-nothing behaviour when a line is short of stock
- Cart validation (empty cart, unknown location/product, payment method)
"""

from decimal import Decimal

import pytest

from retailpos.errors import (
    EmptyCartError,
    InsufficientStockError,
    InvalidLocationError,
    InvalidProductError,
    MissingActorError,
    PriceMismatchError,
    SaleError,
    SaleNotFoundError,
    ValidationError,
)
from retailpos.models import InventoryLog, Sale, SaleItem
from retailpos.services import catalog_service, sales_service, stock_ledger_service


class TestComputeTotals:

    def test_percentage_discount(self):
        totals = sales_service.compute_totals(
            [{"quantity": 1, "price": "10000"}], "percentage", 15
        )
        assert totals["subtotal"] == Decimal("10000.00")
        assert totals["discount_amount"] == Decimal("1500.00")
        assert totals["total"] == Decimal("8500.00")

    def test_amount_discount_larger_than_subtotal_clamps_to_zero(self):
        totals = sales_service.compute_totals(
            [{"quantity": 2, "price": "5000"}], "amount", 12000
        )
        assert totals["subtotal"] == Decimal("10000.00")
        assert totals["total"] == Decimal("0.00")

    def test_no_discount(self):
        totals = sales_service.compute_totals(
            [{"quantity": 3, "price": "6500"}], None, 0
        )
        assert totals["subtotal"] == Decimal("19500.00")
        assert totals["discount_amount"] == Decimal("0.00")
        assert totals["total"] == Decimal("19500.00")

    def test_fractional_quantity_line_total(self):
        totals = sales_service.compute_totals([{"quantity": "2.5", "price": "100.10"}])
        assert totals["line_totals"] == [Decimal("250.25")]

    def test_negative_discount_rejected(self):
        with pytest.raises(ValidationError):
            sales_service.compute_totals([{"quantity": 1, "price": 10}], "amount", -5)

    def test_unknown_discount_type_rejected(self):
        with pytest.raises(SaleError):
            sales_service.compute_totals([{"quantity": 1, "price": 10}], "coupon", 5)


class TestCreateSale:

    def test_scenario_sale_of_twenty_from_fifty(self, db_session, product, location, owner, stock):
        stock(product, location, 50)

        sale = sales_service.create_sale(
            location.id,
            [{"product_id": product.id, "quantity": 20, "price": "500.00"}],
            owner.id,
        )

        assert stock_ledger_service.get_quantity(product.id, location.id) == Decimal("30")
        log = db_session.query(InventoryLog).filter_by(sale_id=sale.id).one()
        assert log.change_type == "sale"
        assert log.change_amount == Decimal("-20")
        assert log.previous_quantity == Decimal("50")
        assert log.new_quantity == Decimal("30")
        assert log.user_id == owner.id

    def test_sale_snapshot_and_defaults(self, db_session, product, location, owner, stock):
        stock(product, location, 10)

        sale = sales_service.create_sale(
            location.id,
            [{"product_id": product.id, "quantity": "2", "price": "450.00"}],
            owner.id,
            customer_name="   ",
            payment_method="pos",
        )

        assert sale.customer_name == "Walk-in Customer"
        assert sale.payment_method == "pos"
        assert sale.status == "completed"
        assert sale.subtotal_amount == Decimal("900.00")
        assert sale.total_amount == Decimal("900.00")

        item = sale.items[0]
        assert item.unit_price == Decimal("450.00")
        assert item.unit == "sqm"
        assert item.line_total == Decimal("900.00")

    def test_missing_price_uses_catalog_price(self, db_session, product, location, owner, stock):
        stock(product, location, 10)
        sale = sales_service.create_sale(location.id, [{"product_id": product.id, "quantity": 1}], owner.id)
        assert sale.items[0].unit_price == Decimal("500.00")

    def test_discount_persisted(self, db_session, product, location, owner, stock):
        stock(product, location, 40)

        sale = sales_service.create_sale(
            location.id,
            [{"product_id": product.id, "quantity": 20, "price": "500.00"}],
            owner.id,
            discount_type="percentage",
            discount_value="15",
        )
        assert sale.subtotal_amount == Decimal("10000.00")
        assert sale.discount_amount == Decimal("1500.00")
        assert sale.total_amount == Decimal("8500.00")

    def test_insufficient_stock_rolls_back_everything(
        self, db_session, product, other_product, location, owner, stock
    ):
        stock(product, location, 10)
        stock(other_product, location, 1)
        movements_before = db_session.query(InventoryLog).count()

        with pytest.raises(InsufficientStockError) as exc:
            sales_service.create_sale(
                location.id,
                [
                    {"product_id": product.id, "quantity": 4, "price": "500.00"},
                    {"product_id": other_product.id, "quantity": 2, "price": "2000.00"},
                ],
                owner.id,
            )

        assert "Emulsion Paint 20L" in str(exc.value)
        assert db_session.query(Sale).count() == 0
        assert db_session.query(SaleItem).count() == 0
        assert db_session.query(InventoryLog).count() == movements_before
        assert stock_ledger_service.get_quantity(product.id, location.id) == Decimal("10")
        assert stock_ledger_service.get_quantity(other_product.id, location.id) == Decimal("1")

    def test_duplicate_lines_draw_from_same_record(self, db_session, product, location, owner, stock):
        stock(product, location, 5)

        with pytest.raises(InsufficientStockError):
            sales_service.create_sale(
                location.id,
                [
                    {"product_id": product.id, "quantity": 3, "price": "500.00"},
                    {"product_id": product.id, "quantity": 3, "price": "500.00"},
                ],
                owner.id,
            )
        assert stock_ledger_service.get_quantity(product.id, location.id) == Decimal("5")


class TestSaleValidation:

    def test_missing_actor(self, db_session, product, location, stock):
        stock(product, location, 5)
        with pytest.raises(MissingActorError):
            sales_service.create_sale(location.id, [{"product_id": product.id, "quantity": 1}], None)
        assert db_session.query(Sale).count() == 0
        assert stock_ledger_service.get_quantity(product.id, location.id) == Decimal("5")

    def test_unknown_actor(self, db_session, product, location, stock):
        stock(product, location, 5)
        with pytest.raises(MissingActorError):
            sales_service.create_sale(location.id, [{"product_id": product.id, "quantity": 1}], 99999)
        assert db_session.query(Sale).count() == 0
        assert stock_ledger_service.get_quantity(product.id, location.id) == Decimal("5")

    def test_empty_cart(self, db_session, location, owner):
        with pytest.raises(EmptyCartError):
            sales_service.create_sale(location.id, [], owner.id)

    def test_unknown_location(self, db_session, product, owner):
        with pytest.raises(InvalidLocationError):
            sales_service.create_sale(9999, [{"product_id": product.id, "quantity": 1}], owner.id)

    def test_unknown_product(self, db_session, location, owner):
        with pytest.raises(InvalidProductError):
            sales_service.create_sale(location.id, [{"product_id": 9999, "quantity": 1}], owner.id)

    def test_archived_product(self, db_session, product, location, owner):
        catalog_service.archive_product(product.id)
        with pytest.raises(InvalidProductError):
            sales_service.create_sale(location.id, [{"product_id": product.id, "quantity": 1}], owner.id)

    @pytest.mark.parametrize("quantity", [0, -1, "abc"])
    def test_bad_quantity(self, db_session, product, location, owner, quantity):
        with pytest.raises(ValidationError):
            sales_service.create_sale(location.id, [{"product_id": product.id, "quantity": quantity}], owner.id)

    def test_invalid_payment_method(self, db_session, product, location, owner):
        with pytest.raises(SaleError):
            sales_service.create_sale(
                location.id, [{"product_id": product.id, "quantity": 1}], owner.id, payment_method="cheque"
            )

    def test_enforced_catalog_price(self, app, db_session, product, location, owner, stock):
        stock(product, location, 5)
        app.config["ENFORCE_CATALOG_PRICE"] = True
        try:
            with pytest.raises(PriceMismatchError):
                sales_service.create_sale(
                    location.id, [{"product_id": product.id, "quantity": 1, "price": "1.00"}], owner.id
                )
        finally:
            app.config["ENFORCE_CATALOG_PRICE"] = False


class TestSaleQueries:

    def test_get_sale_not_found(self, db_session):
        with pytest.raises(SaleNotFoundError):
            sales_service.get_sale(12345)

    def test_list_sales_newest_first(self, db_session, product, location, warehouse, owner, stock):
        stock(product, location, 10)
        stock(product, warehouse, 10)
        first = sales_service.create_sale(location.id, [{"product_id": product.id, "quantity": 1}], owner.id)
        second = sales_service.create_sale(warehouse.id, [{"product_id": product.id, "quantity": 1}], owner.id)

        assert [s.id for s in sales_service.list_sales()] == [second.id, first.id]
        assert [s.id for s in sales_service.list_sales(location_id=location.id)] == [first.id]

    def test_list_sales_date_only_end_covers_whole_day(self, db_session, product, location, owner, stock):
        stock(product, location, 5)
        sale = sales_service.create_sale(location.id, [{"product_id": product.id, "quantity": 1}], owner.id)
        day = sale.created_at.date().isoformat()

        assert [s.id for s in sales_service.list_sales(start=day, end=day)] == [sale.id]

    def test_list_sales_bad_dates(self, db_session):
        with pytest.raises(ValidationError):
            sales_service.list_sales(end="31/01/2025")
