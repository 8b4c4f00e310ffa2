# Overview: HTTP-level tests for the API blueprints: auth headers, status codes and response bodies.

"""
Route Tests

Covers:
- 401 without an actor header, 403 for role-guarded routes
- error kind -> status code mapping ({message, error[, details]})
- happy paths for stock, invoices, purchase orders and batches
"""

import pytest

from stockroom.models import StockTransaction


class TestAuthentication:
    @pytest.mark.parametrize(
        "method, url",
        [
            ("get", "/api/stock"),
            ("post", "/api/stock/in"),
            ("get", "/api/invoices"),
            ("post", "/api/purchase-orders"),
            ("get", "/api/product-batches"),
            ("get", "/api/products/low-stock"),
        ],
    )
    def test_missing_actor_header(self, client, db_session, method, url):
        response = getattr(client, method)(url, json={})
        assert response.status_code == 401
        assert response.get_json()["message"] == "Authentication required"

    def test_non_integer_actor(self, client, db_session):
        response = client.get("/api/stock", headers={"X-User-Id": "abc"})
        assert response.status_code == 401

    def test_health_needs_no_actor(self, client, db_session):
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.get_json()["checks"]["database"]["status"] == "healthy"


class TestStockRoutes:
    def test_stock_in_records_actor(self, client, db_session, product, actor_headers, stock_of):
        response = client.post(
            "/api/stock/in",
            json={"product_id": product.id, "quantity": 5, "reference_id": "RET-9"},
            headers=actor_headers,
        )

        assert response.status_code == 201
        data = response.get_json()["data"]
        assert data["previous_stock"] == 50
        assert data["new_stock"] == 55
        assert data["transaction"]["transaction_type"] == "In"
        assert data["transaction"]["created_by"] == 7
        assert stock_of(product.id) == 55

    def test_stock_out_insufficient(self, client, db_session, make_product, actor_headers, stock_of):
        p = make_product(stock=5)

        response = client.post(
            "/api/stock/out", json={"product_id": p.id, "quantity": 10}, headers=actor_headers
        )

        assert response.status_code == 400
        body = response.get_json()
        assert body["error"] == "InsufficientStock"
        assert body["message"] == "Insufficient stock. Available: 5, Requested: 10"
        assert body["details"] == {"product_id": p.id, "available": 5, "requested": 10}
        assert stock_of(p.id) == 5

    def test_stock_out_unknown_product(self, client, db_session, actor_headers):
        response = client.post(
            "/api/stock/out", json={"product_id": 999, "quantity": 1}, headers=actor_headers
        )
        assert response.status_code == 404
        assert response.get_json()["error"] == "NotFound"

    @pytest.mark.parametrize(
        "payload, message",
        [
            ({}, "Product ID and quantity are required"),
            ({"product_id": 1}, "Product ID and quantity are required"),
            ({"product_id": 1, "quantity": "5"}, "Product ID and quantity must be valid integers"),
        ],
    )
    def test_stock_in_bad_body(self, client, db_session, actor_headers, payload, message):
        response = client.post("/api/stock/in", json=payload, headers=actor_headers)
        assert response.status_code == 400
        assert response.get_json()["message"] == message

    def test_zero_quantity_is_invalid_argument(self, client, db_session, product, actor_headers):
        response = client.post(
            "/api/stock/in", json={"product_id": product.id, "quantity": 0}, headers=actor_headers
        )
        assert response.status_code == 400
        assert response.get_json()["error"] == "InvalidArgument"

    def test_adjustment(self, client, db_session, make_product, actor_headers):
        p = make_product(stock=10)

        response = client.post(
            "/api/stock/adjustment", json={"product_id": p.id, "new_quantity": 7}, headers=actor_headers
        )

        assert response.status_code == 201
        data = response.get_json()["data"]
        assert data["transaction"]["quantity"] == -3
        assert (data["previous_stock"], data["new_stock"]) == (10, 7)

    def test_history_and_product_ledger(self, client, db_session, product, actor_headers):
        client.post("/api/stock/out", json={"product_id": product.id, "quantity": 2}, headers=actor_headers)

        listing = client.get(f"/api/stock?product_id={product.id}", headers=actor_headers)
        assert [t["transaction_type"] for t in listing.get_json()["data"]] == ["Out", "In"]

        detail = client.get(f"/api/stock/product/{product.id}", headers=actor_headers).get_json()["data"]
        assert detail["product"]["current_stock"] == 48
        assert detail["ledger_balance"] == 48

        bad = client.get("/api/stock?date_from=yesterday", headers=actor_headers)
        assert bad.status_code == 400


class TestProductRoutes:
    def test_patch_stock_leaves_history(self, client, db_session, product, actor_headers):
        response = client.patch(
            f"/api/products/{product.id}/stock",
            json={"quantity": 12, "operation": "set"},
            headers=actor_headers,
        )

        assert response.status_code == 200
        assert response.get_json()["data"]["transaction"]["transaction_type"] == "Adjustment"
        assert db_session.query(StockTransaction).filter_by(product_id=product.id).count() == 2

    def test_patch_stock_subtract_beyond_stock(self, client, db_session, product, actor_headers):
        response = client.patch(
            f"/api/products/{product.id}/stock",
            json={"quantity": 51, "operation": "subtract"},
            headers=actor_headers,
        )
        assert response.status_code == 400
        assert response.get_json()["error"] == "InsufficientStock"

    def test_product_with_derived_fields(self, client, db_session, make_product, actor_headers):
        p = make_product(stock=2, minimum_stock=5, cost_price_cents=300, selling_price_cents=500)

        data = client.get(f"/api/products/{p.id}", headers=actor_headers).get_json()["data"]

        assert data["stock_status"] == "Low Stock"
        assert data["stock_value_cents"] == 600
        assert data["margin_percent"] == 40.0

        low = client.get("/api/products/low-stock", headers=actor_headers).get_json()["data"]
        assert [row["id"] for row in low] == [p.id]

    def test_referenced_product_cannot_be_deleted(self, client, db_session, product, make_product, actor_headers):
        response = client.delete(f"/api/products/{product.id}", headers=actor_headers)
        assert response.status_code == 400
        assert response.get_json()["error"] == "Conflict"

        unused = make_product()
        assert client.delete(f"/api/products/{unused.id}", headers=actor_headers).status_code == 200


class TestInvoiceRoutes:
    def test_create_and_fetch(self, client, db_session, product, actor_headers, stock_of):
        response = client.post(
            "/api/invoices",
            json={
                "customer_name": "Walk-in",
                "items": [{"product_id": product.id, "quantity": 3, "unit_price_cents": 1000}],
            },
            headers=actor_headers,
        )

        assert response.status_code == 201
        invoice = response.get_json()["data"]
        assert invoice["invoice_number"].startswith("INV-")
        assert invoice["total_amount_cents"] == 3000
        assert invoice["items"][0]["quantity"] == 3
        assert stock_of(product.id) == 47

        fetched = client.get(f"/api/invoices/{invoice['id']}", headers=actor_headers)
        assert fetched.get_json()["data"]["invoice_number"] == invoice["invoice_number"]

    def test_insufficient_stock_maps_to_400(self, client, db_session, make_product, actor_headers):
        p = make_product(stock=1)
        response = client.post(
            "/api/invoices",
            json={
                "customer_name": "Walk-in",
                "items": [{"product_id": p.id, "quantity": 2, "unit_price_cents": 100}],
            },
            headers=actor_headers,
        )
        assert response.status_code == 400
        assert response.get_json()["details"]["available"] == 1

    def test_missing_fields(self, client, db_session, actor_headers):
        response = client.post("/api/invoices", json={"customer_name": "X"}, headers=actor_headers)
        assert response.status_code == 400

    def test_payment_status(self, client, db_session, product, actor_headers):
        created = client.post(
            "/api/invoices",
            json={
                "customer_name": "Walk-in",
                "items": [{"product_id": product.id, "quantity": 1, "unit_price_cents": 100}],
            },
            headers=actor_headers,
        ).get_json()["data"]

        response = client.patch(
            f"/api/invoices/{created['id']}/payment", json={"payment_status": "Paid"}, headers=actor_headers
        )
        assert response.status_code == 200
        assert response.get_json()["data"]["payment_status"] == "Paid"

        missing = client.patch("/api/invoices/9999/payment", json={"payment_status": "Paid"}, headers=actor_headers)
        assert missing.status_code == 404


class TestPurchaseOrderRoutes:
    def _create(self, client, headers, supplier, product, status="Confirmed"):
        return client.post(
            "/api/purchase-orders",
            json={
                "supplier_id": supplier.id,
                "order_date": "2026-10-01",
                "status": status,
                "items": [{"product_id": product.id, "quantity": 10, "unit_cost_cents": 400}],
            },
            headers=headers,
        )

    def test_create_then_receive(self, client, db_session, supplier, product, actor_headers, stock_of):
        created = self._create(client, actor_headers, supplier, product)
        assert created.status_code == 201
        po = created.get_json()["data"]
        assert stock_of(product.id) == 50

        item = po["items"][0]
        response = client.post(
            f"/api/purchase-orders/{po['id']}/receipt",
            json={
                "received_date": "2026-10-05",
                "items": [{
                    "purchase_order_item_id": item["id"],
                    "product_id": product.id,
                    "received_quantity": 4,
                    "unit_cost_cents": 400,
                }],
            },
            headers=actor_headers,
        )

        assert response.status_code == 201
        data = response.get_json()["data"]
        assert data["receipt"]["receipt_number"].startswith("GR-")
        assert data["purchase_order"]["status"] == "Partially_Received"
        assert stock_of(product.id) == 54

    def test_receive_draft_is_invalid_state(self, client, db_session, supplier, product, actor_headers):
        po = self._create(client, actor_headers, supplier, product, status="Draft").get_json()["data"]

        response = client.post(
            f"/api/purchase-orders/{po['id']}/receipt",
            json={
                "received_date": "2026-10-05",
                "items": [{
                    "purchase_order_item_id": po["items"][0]["id"],
                    "product_id": product.id,
                    "received_quantity": 1,
                    "unit_cost_cents": 400,
                }],
            },
            headers=actor_headers,
        )

        assert response.status_code == 400
        assert response.get_json()["error"] == "InvalidState"

    def test_update_status_and_delete(self, client, db_session, supplier, product, actor_headers):
        po = self._create(client, actor_headers, supplier, product, status="Draft").get_json()["data"]

        updated = client.put(
            f"/api/purchase-orders/{po['id']}", json={"notes": "Rush"}, headers=actor_headers
        )
        assert updated.get_json()["data"]["notes"] == "Rush"

        bad_field = client.put(
            f"/api/purchase-orders/{po['id']}", json={"status": "Received"}, headers=actor_headers
        )
        assert bad_field.status_code == 400

        sent = client.patch(
            f"/api/purchase-orders/{po['id']}/status", json={"status": "Sent"}, headers=actor_headers
        )
        assert sent.get_json()["data"]["status"] == "Sent"

        refused = client.delete(f"/api/purchase-orders/{po['id']}", headers=actor_headers)
        assert refused.status_code == 400
        assert refused.get_json()["error"] == "InvalidState"

    def test_unknown_purchase_order(self, client, db_session, actor_headers):
        response = client.get("/api/purchase-orders/12345", headers=actor_headers)
        assert response.status_code == 404
        assert response.get_json()["message"] == "Purchase order not found"


class TestBatchRoutes:
    def test_create_and_delete_requires_role(
        self, client, db_session, product, actor_headers, manager_headers, stock_of
    ):
        created = client.post(
            "/api/product-batches",
            json={
                "product_id": product.id,
                "batch_number": "LOT-7",
                "quantity": 20,
                "expiry_date": "2027-02-01",
            },
            headers=actor_headers,
        )
        assert created.status_code == 201
        batch = created.get_json()["data"]
        assert batch["expiry_date"] == "2027-02-01"
        assert stock_of(product.id) == 70

        denied = client.delete(f"/api/product-batches/{batch['id']}", headers=actor_headers)
        assert denied.status_code == 403
        assert stock_of(product.id) == 70

        allowed = client.delete(f"/api/product-batches/{batch['id']}", headers=manager_headers)
        assert allowed.status_code == 200
        assert stock_of(product.id) == 50

    def test_duplicate_batch_is_conflict(self, client, db_session, product, actor_headers):
        payload = {"product_id": product.id, "batch_number": "DUP", "quantity": 1}
        assert client.post("/api/product-batches", json=payload, headers=actor_headers).status_code == 201

        response = client.post("/api/product-batches", json=payload, headers=actor_headers)
        assert response.status_code == 400
        assert response.get_json()["error"] == "Conflict"

    def test_create_validation(self, client, db_session, product, actor_headers):
        missing = client.post(
            "/api/product-batches", json={"product_id": product.id}, headers=actor_headers
        )
        assert missing.status_code == 400
        assert "Missing required fields" in missing.get_json()["message"]

        decimal = client.post(
            "/api/product-batches",
            json={"product_id": product.id, "batch_number": "X", "quantity": 1.5},
            headers=actor_headers,
        )
        assert decimal.status_code == 400

    def test_update_and_quantity_patch(self, client, db_session, product, actor_headers, stock_of):
        batch = client.post(
            "/api/product-batches",
            json={"product_id": product.id, "batch_number": "LOT-8", "quantity": 10},
            headers=actor_headers,
        ).get_json()["data"]

        updated = client.put(
            f"/api/product-batches/{batch['id']}", json={"quantity": 15}, headers=actor_headers
        )
        assert updated.get_json()["data"]["available_quantity"] == 15
        assert stock_of(product.id) == 65

        patched = client.patch(
            f"/api/product-batches/{batch['id']}/quantity",
            json={"available_quantity": 4},
            headers=actor_headers,
        )
        assert patched.get_json()["data"]["available_quantity"] == 4
        assert stock_of(product.id) == 65

        out_of_range = client.patch(
            f"/api/product-batches/{batch['id']}/quantity",
            json={"available_quantity": 16},
            headers=actor_headers,
        )
        assert out_of_range.status_code == 400

    def test_expiring_uses_configured_window(self, client, db_session, product, actor_headers):
        client.post(
            "/api/product-batches",
            json={"product_id": product.id, "batch_number": "OLD", "quantity": 1, "expiry_date": "2020-01-01"},
            headers=actor_headers,
        )

        response = client.get("/api/product-batches/expiring", headers=actor_headers)
        assert [b["batch_number"] for b in response.get_json()["data"]] == ["OLD"]


class TestCliCommands:
    def test_ledger_verify(self, app, db_session, product):
        runner = app.test_cli_runner()

        result = runner.invoke(args=["ledger", "verify"])
        assert result.exit_code == 0
        assert "PASS" in result.output

    def test_ledger_balance(self, app, db_session, product):
        runner = app.test_cli_runner()

        result = runner.invoke(args=["ledger", "balance", str(product.id)])
        assert result.exit_code == 0
        assert "current_stock=50 ledger=50" in result.output
