"""
HTTP API tests.

Verifies:
- Requests without a valid X-User-Id return 401
- Cashiers are denied admin operations (403)
- Service errors map to their status codes
- Stock only moves through the ledger endpoints
"""

import pytest

from conftest import user_headers


# =============================================================================
# IDENTITY: 401
# =============================================================================


class TestIdentityRequired:

    @pytest.mark.parametrize(
        "method,path",
        [
            ("GET", "/api/products"),
            ("POST", "/api/products"),
            ("GET", "/api/stock/adjustments"),
            ("POST", "/api/stock/adjustments"),
            ("GET", "/api/distributions"),
            ("POST", "/api/distributions"),
            ("GET", "/api/users"),
            ("GET", "/api/reports/stock-summary"),
            ("GET", "/api/sales"),
            ("POST", "/api/sales"),
            ("GET", "/api/reports/sales"),
        ],
    )
    def test_requires_user(self, client, db_session, method, path):
        resp = getattr(client, method.lower())(path)
        assert resp.status_code == 401, f"{method} {path} returned {resp.status_code}"

    def test_inactive_user_refused(self, client, inactive_cashier):
        resp = client.get("/api/products", headers=user_headers(inactive_cashier))
        assert resp.status_code == 401

    def test_health_is_public(self, client, db_session):
        resp = client.get("/health")
        assert resp.status_code == 200


# =============================================================================
# CASHIER DENIED ADMIN OPERATIONS: 403
# =============================================================================


class TestCashierDenied:

    def test_cannot_create_product(self, client, cashier_headers):
        resp = client.post(
            "/api/products",
            json={"sku": "X-1", "name": "Nope"},
            headers=cashier_headers,
        )
        assert resp.status_code == 403

    def test_cannot_record_production(self, client, cashier_headers, product):
        resp = client.post(
            "/api/stock/adjustments",
            json={"product_id": product.id, "adjustment_type": "production", "quantity": 5},
            headers=cashier_headers,
        )
        assert resp.status_code == 403

    def test_cannot_distribute(self, client, cashier_headers, stocked_product, other_cashier):
        resp = client.post(
            "/api/distributions",
            json={"product_id": stocked_product.id, "quantity": 1, "cashier_id": other_cashier.id},
            headers=cashier_headers,
        )
        assert resp.status_code == 403

    def test_cannot_list_users(self, client, cashier_headers):
        assert client.get("/api/users", headers=cashier_headers).status_code == 403

    def test_cannot_read_reports(self, client, cashier_headers):
        assert client.get("/api/reports/stock-summary", headers=cashier_headers).status_code == 403
        assert client.get("/api/reports/sales", headers=cashier_headers).status_code == 403


# =============================================================================
# PRODUCTS
# =============================================================================


class TestProducts:

    def test_create_with_initial_stock(self, client, admin_headers):
        resp = client.post(
            "/api/products",
            json={"sku": "milk-001", "name": "Fresh Milk", "category": "Dairy",
                  "price_cents": 299, "initial_stock": 48},
            headers=admin_headers,
        )
        assert resp.status_code == 201
        body = resp.get_json()
        assert body["sku"] == "MILK-001"
        assert body["storage_stock"] == 48

        history = client.get(f"/api/products/{body['id']}/adjustments", headers=admin_headers)
        assert [a["adjustment_type"] for a in history.get_json()] == ["production"]

    def test_duplicate_sku_conflicts(self, client, admin_headers, product):
        resp = client.post(
            "/api/products",
            json={"sku": product.sku, "name": "Again"},
            headers=admin_headers,
        )
        assert resp.status_code == 409

    def test_buckets_cannot_be_written(self, client, admin_headers, product):
        resp = client.put(
            f"/api/products/{product.id}",
            json={"storage_stock": 500},
            headers=admin_headers,
        )
        assert resp.status_code == 400
        assert "stock ledger" in resp.get_json()["error"]

    def test_update_catalog_fields(self, client, admin_headers, product):
        resp = client.put(
            f"/api/products/{product.id}",
            json={"name": "Sourdough", "price_cents": 500},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        assert resp.get_json()["name"] == "Sourdough"

    def test_missing_required_fields(self, client, admin_headers):
        resp = client.post("/api/products", json={"name": "No SKU"}, headers=admin_headers)
        assert resp.status_code == 400

    def test_list_filters_and_pagination(self, client, admin_headers, stocked_product, product):
        client.post(
            "/api/products",
            json={"sku": "EMPTY-1", "name": "Empty Shelf"},
            headers=admin_headers,
        )

        resp = client.get("/api/products?stock_filter=out", headers=admin_headers)
        assert [p["sku"] for p in resp.get_json()["items"]] == ["EMPTY-1"]

        resp = client.get("/api/products?search=bread", headers=admin_headers)
        assert [p["sku"] for p in resp.get_json()["items"]] == ["BREAD-001"]

        resp = client.get("/api/products?page=1&per_page=1", headers=admin_headers)
        body = resp.get_json()
        assert len(body["items"]) == 1
        assert body["pagination"]["total"] == 2

    def test_stock_and_verify(self, client, admin_headers, stocked_product):
        resp = client.get(f"/api/products/{stocked_product.id}/stock", headers=admin_headers)
        assert resp.get_json() == {"storage": 100, "distribution": 0, "returned": 0, "rejected": 0}

        resp = client.get(f"/api/products/{stocked_product.id}/stock/verify", headers=admin_headers)
        assert resp.get_json()["consistent"] is True

    def test_unknown_product(self, client, admin_headers):
        assert client.get("/api/products/999999/stock", headers=admin_headers).status_code == 404


# =============================================================================
# STOCK ADJUSTMENTS
# =============================================================================


class TestStockAdjustments:

    def test_record_distribution(self, client, admin_headers, stocked_product):
        resp = client.post(
            "/api/stock/adjustments",
            json={"product_id": stocked_product.id, "adjustment_type": "distribution", "quantity": 30},
            headers=admin_headers,
        )
        assert resp.status_code == 201
        body = resp.get_json()
        assert body["adjustment"]["source_location"] == "storage"
        assert body["stock"] == {"storage": 70, "distribution": 30, "returned": 0, "rejected": 0}

    def test_insufficient_stock_is_409(self, client, admin_headers, stocked_product):
        resp = client.post(
            "/api/stock/adjustments",
            json={"product_id": stocked_product.id, "adjustment_type": "distribution", "quantity": 101},
            headers=admin_headers,
        )
        assert resp.status_code == 409
        assert "Insufficient" in resp.get_json()["error"]

    def test_illegal_route_is_409(self, client, admin_headers, stocked_product):
        resp = client.post(
            "/api/stock/adjustments",
            json={
                "product_id": stocked_product.id,
                "adjustment_type": "production",
                "quantity": 1,
                "source_location": "cashier",
                "target_location": "storage",
            },
            headers=admin_headers,
        )
        assert resp.status_code == 409

    @pytest.mark.parametrize("quantity", [0, -1, 2.5, "ten", None])
    def test_bad_quantity_is_400(self, client, admin_headers, stocked_product, quantity):
        resp = client.post(
            "/api/stock/adjustments",
            json={"product_id": stocked_product.id, "adjustment_type": "production", "quantity": quantity},
            headers=admin_headers,
        )
        assert resp.status_code == 400

    def test_missing_type_is_400(self, client, admin_headers, stocked_product):
        resp = client.post(
            "/api/stock/adjustments",
            json={"product_id": stocked_product.id, "quantity": 1},
            headers=admin_headers,
        )
        assert resp.status_code == 400

    def test_cashier_sees_only_own_adjustments(self, client, admin_headers, cashier_headers, stocked_product):
        client.post(
            "/api/stock/adjustments",
            json={"product_id": stocked_product.id, "adjustment_type": "distribution", "quantity": 10},
            headers=admin_headers,
        )
        resp = client.post(
            "/api/stock/adjustments",
            json={"product_id": stocked_product.id, "adjustment_type": "reject", "quantity": 2},
            headers=cashier_headers,
        )
        assert resp.status_code == 201

        mine = client.get("/api/stock/adjustments", headers=cashier_headers).get_json()
        assert [a["adjustment_type"] for a in mine] == ["reject"]

        everything = client.get("/api/stock/adjustments", headers=admin_headers).get_json()
        assert [a["adjustment_type"] for a in everything] == ["reject", "distribution", "production"]

    def test_return_reason_round_trips(self, client, admin_headers, cashier_headers, stocked_product):
        client.post(
            "/api/stock/adjustments",
            json={"product_id": stocked_product.id, "adjustment_type": "distribution", "quantity": 10},
            headers=admin_headers,
        )
        resp = client.post(
            "/api/stock/adjustments",
            json={
                "product_id": stocked_product.id,
                "adjustment_type": "return",
                "quantity": 2,
                "condition": "damaged",
                "reason": "damaged",
                "notes": "Crushed in transit",
            },
            headers=cashier_headers,
        )
        assert resp.status_code == 201
        adjustment_id = resp.get_json()["adjustment"]["id"]

        fetched = client.get(f"/api/stock/adjustments/{adjustment_id}", headers=cashier_headers).get_json()
        assert fetched["reason"] == "damaged"

    def test_unknown_reason_is_400(self, client, admin_headers, stocked_product):
        resp = client.post(
            "/api/stock/adjustments",
            json={
                "product_id": stocked_product.id,
                "adjustment_type": "production",
                "quantity": 1,
                "reason": "damaged",
            },
            headers=admin_headers,
        )
        assert resp.status_code == 400
        assert "reason" in resp.get_json()["error"]

    def test_sale_type_is_400(self, client, admin_headers, stocked_product):
        resp = client.post(
            "/api/stock/adjustments",
            json={"product_id": stocked_product.id, "adjustment_type": "sale", "quantity": 1},
            headers=admin_headers,
        )
        assert resp.status_code == 400

    def test_bad_date_filter(self, client, admin_headers):
        resp = client.get("/api/stock/adjustments?date_from=yesterday", headers=admin_headers)
        assert resp.status_code == 400


# =============================================================================
# DISTRIBUTIONS
# =============================================================================


class TestDistributions:

    def _create(self, client, admin_headers, product, cashier, quantity=30):
        resp = client.post(
            "/api/distributions",
            json={"product_id": product.id, "quantity": quantity, "cashier_id": cashier.id},
            headers=admin_headers,
        )
        assert resp.status_code == 201
        return resp.get_json()

    def test_lifecycle(self, client, admin_headers, cashier_headers, stocked_product, cashier):
        created = self._create(client, admin_headers, stocked_product, cashier)
        assert created["status"] == "pending"
        assert created["adjustment_id"] is not None

        resp = client.post(
            f"/api/distributions/{created['id']}/advance",
            json={"status": "distributed"},
            headers=admin_headers,
        )
        assert resp.status_code == 200

        resp = client.post(
            f"/api/distributions/{created['id']}/advance",
            json={"status": "completed"},
            headers=cashier_headers,
        )
        assert resp.status_code == 200
        assert resp.get_json()["status"] == "completed"

        resp = client.post(
            f"/api/distributions/{created['id']}/advance",
            json={"status": "pending"},
            headers=admin_headers,
        )
        assert resp.status_code == 409

    def test_cancel_restores_storage(self, client, admin_headers, stocked_product, cashier):
        created = self._create(client, admin_headers, stocked_product, cashier, quantity=40)

        resp = client.post(
            f"/api/distributions/{created['id']}/cancel",
            json={"reason": "Counted twice"},
            headers=admin_headers,
        )
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["distribution"]["status"] == "cancelled"
        assert body["distribution"]["reversal_adjustment_id"] is not None
        assert body["stock"] == {"storage": 100, "distribution": 0, "returned": 0, "rejected": 0}

    def test_insufficient_storage(self, client, admin_headers, stocked_product, cashier):
        resp = client.post(
            "/api/distributions",
            json={"product_id": stocked_product.id, "quantity": 500, "cashier_id": cashier.id},
            headers=admin_headers,
        )
        assert resp.status_code == 409

    def test_cashier_sees_only_own(self, client, admin_headers, stocked_product, cashier, other_cashier):
        self._create(client, admin_headers, stocked_product, cashier, quantity=5)
        other = self._create(client, admin_headers, stocked_product, other_cashier, quantity=6)

        listed = client.get("/api/distributions", headers=user_headers(cashier)).get_json()
        assert [d["quantity"] for d in listed] == [5]

        resp = client.get(f"/api/distributions/{other['id']}", headers=user_headers(cashier))
        assert resp.status_code == 404


# =============================================================================
# SALES
# =============================================================================


class TestSales:

    @pytest.fixture
    def held_product(self, client, admin_headers, stocked_product, cashier):
        resp = client.post(
            "/api/distributions",
            json={"product_id": stocked_product.id, "quantity": 30, "cashier_id": cashier.id},
            headers=admin_headers,
        )
        assert resp.status_code == 201
        return stocked_product

    def _sell(self, client, headers, product, quantity, **extra):
        return client.post(
            "/api/sales",
            json={"items": [{"product_id": product.id, "quantity": quantity}], **extra},
            headers=headers,
        )

    def test_cashier_records_sale(self, app, client, cashier_headers, held_product, cashier, monkeypatch):
        monkeypatch.setitem(app.config, "SALES_TAX_BPS", 1000)

        resp = self._sell(client, cashier_headers, held_product, 4, payment_method="transfer")
        assert resp.status_code == 201
        body = resp.get_json()
        assert body["cashier_id"] == cashier.id
        assert body["subtotal_cents"] == 1400
        assert body["tax_cents"] == 140
        assert body["total_cents"] == 1540
        assert body["items"][0]["adjustment_id"] is not None

        stock = client.get(f"/api/products/{held_product.id}/stock", headers=cashier_headers).get_json()
        assert stock["distribution"] == 26

    def test_oversell_is_409(self, client, cashier_headers, held_product):
        resp = self._sell(client, cashier_headers, held_product, 31)
        assert resp.status_code == 409
        assert client.get("/api/sales", headers=cashier_headers).get_json() == []

    def test_missing_items_is_400(self, client, cashier_headers):
        resp = client.post("/api/sales", json={}, headers=cashier_headers)
        assert resp.status_code == 400

    def test_cashier_sees_only_own(self, client, admin_headers, cashier_headers, held_product, other_cashier):
        sale_id = self._sell(client, cashier_headers, held_product, 1).get_json()["id"]

        other = user_headers(other_cashier)
        assert client.get("/api/sales", headers=other).get_json() == []
        assert client.get(f"/api/sales/{sale_id}", headers=other).status_code == 404
        assert client.get(f"/api/sales/{sale_id}", headers=cashier_headers).status_code == 200
        assert len(client.get("/api/sales", headers=admin_headers).get_json()) == 1

    def test_void_is_admin_only(self, client, admin_headers, cashier_headers, held_product):
        sale_id = self._sell(client, cashier_headers, held_product, 3).get_json()["id"]

        resp = client.post(f"/api/sales/{sale_id}/void", json={}, headers=cashier_headers)
        assert resp.status_code == 403

        resp = client.post(f"/api/sales/{sale_id}/void", json={"reason": "Test"}, headers=admin_headers)
        assert resp.status_code == 200
        assert resp.get_json()["status"] == "voided"

        resp = client.post(f"/api/sales/{sale_id}/void", json={}, headers=admin_headers)
        assert resp.status_code == 409

    def test_sales_report(self, client, admin_headers, cashier_headers, held_product, cashier):
        self._sell(client, cashier_headers, held_product, 2)
        self._sell(client, cashier_headers, held_product, 5)

        resp = client.get(f"/api/reports/sales?cashier_id={cashier.id}", headers=admin_headers)
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["revenue_cents"] == 7 * 350
        assert body["transaction_count"] == 2
        assert body["products"] == [{
            "product_id": held_product.id,
            "sku": "BREAD-001",
            "name": "White Bread",
            "units_sold": 7,
            "revenue_cents": 7 * 350,
        }]

        resp = client.get(
            "/api/reports/sales?date_from=2026-10-19&date_to=2026-10-18", headers=admin_headers,
        )
        assert resp.status_code == 400


# =============================================================================
# REPORTS AND USERS
# =============================================================================


def test_stock_summary(client, admin_headers, stocked_product, cashier):
    client.post(
        "/api/distributions",
        json={"product_id": stocked_product.id, "quantity": 30, "cashier_id": cashier.id},
        headers=admin_headers,
    )
    body = client.get("/api/reports/stock-summary", headers=admin_headers).get_json()
    assert body["product_count"] == 1
    assert body["totals"]["storage"] == 70
    assert body["totals"]["distribution"] == 30
    assert body["total_units"] == 100


def test_adjustment_report_nets_reversals(client, admin_headers, stocked_product, cashier):
    created = client.post(
        "/api/distributions",
        json={"product_id": stocked_product.id, "quantity": 30, "cashier_id": cashier.id},
        headers=admin_headers,
    ).get_json()
    client.post(f"/api/distributions/{created['id']}/cancel", json={}, headers=admin_headers)

    body = client.get("/api/reports/adjustments", headers=admin_headers).get_json()
    assert body["by_type"]["production"]["quantity"] == 100
    assert body["by_type"]["distribution"]["quantity"] == 0
    assert body["reversals"] == {"count": 1, "quantity": 30}


def test_create_user_and_deactivate(client, admin_headers):
    resp = client.post(
        "/api/users",
        json={"username": "cashier_c", "email": "c@stockpos.test", "role": "cashier"},
        headers=admin_headers,
    )
    assert resp.status_code == 201
    user_id = resp.get_json()["id"]

    resp = client.patch(f"/api/users/{user_id}", json={"is_active": False}, headers=admin_headers)
    assert resp.status_code == 200

    resp = client.get("/api/products", headers={"X-User-Id": str(user_id)})
    assert resp.status_code == 401
