"""
HTTP API tests.

Verifies:
- Unauthenticated requests return 401
- Staff are denied manager operations (403)
- Domain errors map to 400/404/409 JSON bodies
- A sale -> return -> reject flow over HTTP
"""

import pytest


# =============================================================================
# AUTHENTICATION
# =============================================================================

class TestUnauthenticatedAccess:

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/inventory"),
            ("POST", "/api/inventory/movements"),
            ("GET", "/api/inventory/movements"),
            ("POST", "/api/sales"),
            ("GET", "/api/sales"),
            ("POST", "/api/returns"),
            ("GET", "/api/reports/dashboard"),
            ("GET", "/api/products"),
            ("GET", "/api/locations"),
            ("GET", "/api/auth/me"),
        ],
    )
    def test_requires_auth(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"

    def test_garbage_token(self, client, db_session):
        resp = client.get("/api/inventory", headers={"Authorization": "Bearer nope"})
        assert resp.status_code == 401


class TestLogin:

    def test_login_me_logout(self, client, staff):
        resp = client.post("/api/auth/login", json={"email": staff.email, "password": "Password123!"})
        assert resp.status_code == 200
        headers = {"Authorization": f"Bearer {resp.json['token']}"}

        me = client.get("/api/auth/me", headers=headers)
        assert me.status_code == 200
        assert me.json["user"]["role"] == "staff"

        assert client.post("/api/auth/logout", headers=headers).status_code == 200
        assert client.get("/api/auth/me", headers=headers).status_code == 401

    def test_bad_credentials(self, client, staff):
        resp = client.post("/api/auth/login", json={"email": staff.email, "password": "Wrong123!"})
        assert resp.status_code == 401

    def test_missing_fields(self, client, db_session):
        assert client.post("/api/auth/login", json={}).status_code == 400


# =============================================================================
# ROLES
# =============================================================================

class TestStaffDenied:

    def test_manual_movement(self, client, staff_headers, product, location):
        resp = client.post("/api/inventory/movements", headers=staff_headers, json={
            "product_id": product.id, "location_id": location.id,
            "change_type": "received", "change_amount": "5",
        })
        assert resp.status_code == 403

    @pytest.mark.parametrize("report", [
        "sales-daily", "inventory-valuation", "profit-margin", "top-products", "dashboard",
    ])
    def test_reports(self, client, staff_headers, report):
        assert client.get(f"/api/reports/{report}", headers=staff_headers).status_code == 403

    def test_create_product(self, client, staff_headers, piece_type):
        resp = client.post("/api/products", headers=staff_headers, json={
            "name": "Grout", "product_type_id": piece_type.id, "price": "10",
        })
        assert resp.status_code == 403


# =============================================================================
# INVENTORY
# =============================================================================

class TestInventoryApi:

    def test_movement_and_quantity(self, client, owner_headers, product, location):
        resp = client.post("/api/inventory/movements", headers=owner_headers, json={
            "product_id": product.id, "location_id": location.id,
            "change_type": "received", "change_amount": "25.5", "notes": "Delivery #42",
        })
        assert resp.status_code == 201
        assert resp.json["movement"]["new_quantity"] == "25.50"

        resp = client.get(f"/api/inventory/{product.id}/{location.id}", headers=owner_headers)
        assert resp.json["quantity"] == "25.50"

    def test_negative_stock_is_409(self, client, owner_headers, product, location):
        resp = client.post("/api/inventory/movements", headers=owner_headers, json={
            "product_id": product.id, "location_id": location.id,
            "change_type": "adjusted", "change_amount": "-1",
        })
        assert resp.status_code == 409
        assert resp.json["details"]["available"] == "0.00"

    def test_invalid_type_is_400(self, client, owner_headers, product, location):
        resp = client.post("/api/inventory/movements", headers=owner_headers, json={
            "product_id": product.id, "location_id": location.id,
            "change_type": "sale", "change_amount": "-1",
        })
        assert resp.status_code == 400


# =============================================================================
# SALES AND RETURNS
# =============================================================================

class TestSaleAndReturnFlow:

    def test_full_flow(self, client, staff_headers, manager_headers, product, location, stock):
        stock(product, location, 50)

        resp = client.post("/api/sales", headers=staff_headers, json={
            "location_id": location.id,
            "items": [{"product_id": product.id, "quantity": "20", "price": "500.00"}],
            "payment_method": "bank_transfer",
        })
        assert resp.status_code == 201
        sale = resp.json["sale"]
        assert sale["total_amount"] == "10000.00"
        sale_item_id = sale["items"][0]["id"]

        resp = client.post("/api/returns", headers=staff_headers, json={
            "sale_id": sale["id"],
            "return_type": "REFUND",
            "refund_method": "CASH",
            "items": [{"sale_item_id": sale_item_id, "quantity": "5"}],
        })
        assert resp.status_code == 201
        return_id = resp.json["return"]["id"]
        assert resp.json["return"]["status"] == "PENDING"

        resp = client.get(f"/api/sales/{sale['id']}/returnable", headers=staff_headers)
        assert resp.json["items"][0]["remaining"] == "15.00"

        # Over-return
        resp = client.post("/api/returns", headers=staff_headers, json={
            "sale_id": sale["id"],
            "return_type": "REFUND",
            "refund_method": "CASH",
            "items": [{"sale_item_id": sale_item_id, "quantity": "16"}],
        })
        assert resp.status_code == 409

        # Staff cannot reject, managers can
        assert client.post(f"/api/returns/{return_id}/reject", headers=staff_headers).status_code == 403
        resp = client.post(f"/api/returns/{return_id}/reject", headers=manager_headers,
                           json={"rejection_reason": "Used"})
        assert resp.status_code == 200
        assert resp.json["return"]["status"] == "REJECTED"

        resp = client.get(f"/api/sales/{sale['id']}", headers=staff_headers)
        assert resp.json["sale"]["status"] == "completed"
        assert resp.json["sale"]["returns"][0]["status"] == "REJECTED"

        resp = client.get(f"/api/inventory/{product.id}/{location.id}", headers=staff_headers)
        assert resp.json["quantity"] == "30.00"

    def test_insufficient_stock_is_409(self, client, staff_headers, product, location):
        resp = client.post("/api/sales", headers=staff_headers, json={
            "location_id": location.id,
            "items": [{"product_id": product.id, "quantity": "1"}],
        })
        assert resp.status_code == 409
        assert "Glazed Floor Tile 60x60" in resp.json["error"]

    def test_empty_cart_is_400(self, client, staff_headers, location):
        resp = client.post("/api/sales", headers=staff_headers, json={"location_id": location.id, "items": []})
        assert resp.status_code == 400

    def test_auto_approve_ignored_for_staff(self, client, staff_headers, product, location, owner, stock):
        stock(product, location, 5)
        sale = client.post("/api/sales", headers=staff_headers, json={
            "location_id": location.id,
            "items": [{"product_id": product.id, "quantity": "1"}],
        }).json["sale"]

        resp = client.post("/api/returns", headers=staff_headers, json={
            "sale_id": sale["id"],
            "return_type": "REFUND",
            "refund_method": "CASH",
            "auto_approve": True,
            "items": [{"sale_item_id": sale["items"][0]["id"], "quantity": "1"}],
        })
        assert resp.json["return"]["status"] == "PENDING"

    @pytest.mark.parametrize("path", ["/api/sales/999", "/api/returns/999", "/api/sales/999/returnable"])
    def test_not_found(self, client, staff_headers, path):
        assert client.get(path, headers=staff_headers).status_code == 404


# =============================================================================
# CATALOG / REPORTS / SYSTEM
# =============================================================================

class TestCatalogApi:

    def test_archive_blocked_with_stock(self, client, owner_headers, product, location, stock):
        stock(product, location, 1)
        resp = client.delete(f"/api/products/{product.id}", headers=owner_headers)
        assert resp.status_code == 409

    def test_location_lifecycle(self, client, owner_headers):
        resp = client.post("/api/locations", headers=owner_headers, json={"name": "Annex", "address": "3 Side St"})
        assert resp.status_code == 201
        location_id = resp.json["location"]["id"]
        assert client.delete(f"/api/locations/{location_id}", headers=owner_headers).status_code == 200


class TestReportsApi:

    def test_dashboard(self, client, manager_headers, product, location, stock):
        stock(product, location, 4)
        resp = client.get("/api/reports/dashboard", headers=manager_headers)
        assert resp.status_code == 200
        assert resp.json["stock_value"] == "2000.00"
        assert resp.json["low_stock_count"] == 1

    def test_bad_dates_are_400(self, client, manager_headers):
        resp = client.get("/api/reports/sales-daily?startDate=2026-03-01&endDate=2026-01-01", headers=manager_headers)
        assert resp.status_code == 400


def test_health(client, db_session):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json["checks"]["database"]["status"] == "healthy"
