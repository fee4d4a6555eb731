"""
Catalog and location tests.

Verifies:
- Custom attributes are checked against the product type schema
- Archiving is blocked while stock is on hand
- Locations with stock or history cannot be deleted
"""

from decimal import Decimal

import pytest

from retailpos.errors import CatalogError, InvalidLocationError, ValidationError
from retailpos.models import Location, Product
from retailpos.services import catalog_service, sales_service, stock_ledger_service


class TestProducts:

    def test_defaults(self, db_session, piece_type):
        product = catalog_service.create_product(name="  Grout 5kg ", product_type_id=piece_type.id, price="15")
        assert product.name == "Grout 5kg"
        assert product.category == "General"
        assert product.price == Decimal("15.00")
        assert product.cost_price is None
        assert product.unit_of_measure == "pcs"

    def test_missing_required_attribute(self, db_session, tile_type):
        with pytest.raises(ValidationError) as exc:
            catalog_service.create_product(name="Wall Tile", product_type_id=tile_type.id, price="100")
        assert exc.value.details["missing"] == ["size"]

    def test_unknown_attribute(self, db_session, tile_type):
        with pytest.raises(ValidationError):
            catalog_service.create_product(
                name="Wall Tile",
                product_type_id=tile_type.id,
                price="100",
                custom_attributes={"size": "30x30", "colour": "white"},
            )

    def test_attribute_values_stored_as_strings(self, db_session, tile_type):
        product = catalog_service.create_product(
            name="Wall Tile",
            product_type_id=tile_type.id,
            price="100",
            custom_attributes={"size": 30, "finish": "matte"},
        )
        assert product.custom_attributes == {"size": "30", "finish": "matte"}

    def test_negative_price(self, db_session, piece_type):
        with pytest.raises(ValidationError):
            catalog_service.create_product(name="Grout", product_type_id=piece_type.id, price="-1")

    def test_duplicate_product_type(self, db_session, piece_type):
        with pytest.raises(CatalogError):
            catalog_service.create_product_type("Piece", "pcs")

    def test_list_products_hides_archived(self, db_session, product, other_product):
        catalog_service.archive_product(other_product.id)

        listing = catalog_service.list_products()
        assert [p["id"] for p in listing["items"]] == [product.id]

        listing = catalog_service.list_products(include_archived=True, page=1, per_page=1)
        assert listing["count"] == 1
        assert listing["pagination"]["total"] == 2
        assert listing["pagination"]["has_next"] is True


class TestArchive:

    def test_archive_blocked_while_in_stock(self, db_session, product, location, stock):
        stock(product, location, 2)
        with pytest.raises(CatalogError):
            catalog_service.archive_product(product.id)
        assert db_session.get(Product, product.id).is_archived is False

    def test_archive_after_stock_is_gone(self, db_session, product, location, owner, stock):
        stock(product, location, 2)
        sales_service.create_sale(location.id, [{"product_id": product.id, "quantity": 2}], owner.id)

        archived = catalog_service.archive_product(product.id)
        assert archived.is_archived
        assert archived.is_active is False
        # History still resolves
        assert stock_ledger_service.list_movements(product_id=product.id)


class TestLocations:

    def test_delete_unused_location(self, db_session, warehouse):
        catalog_service.delete_location(warehouse.id)
        assert db_session.get(Location, warehouse.id) is None

    def test_delete_blocked_with_stock(self, db_session, product, warehouse, stock):
        stock(product, warehouse, 1)
        with pytest.raises(CatalogError):
            catalog_service.delete_location(warehouse.id)

    def test_delete_blocked_with_history(self, db_session, product, warehouse, owner, stock):
        stock(product, warehouse, 1)
        stock_ledger_service.apply_movement(product.id, warehouse.id, "broken", "-1", owner.id)

        with pytest.raises(CatalogError):
            catalog_service.delete_location(warehouse.id)

    def test_delete_unknown(self, db_session):
        with pytest.raises(InvalidLocationError):
            catalog_service.delete_location(404)

    def test_create_requires_address(self, db_session):
        with pytest.raises(ValidationError):
            catalog_service.create_location("Annex", "  ")
