"""
Tests for the allocation and stock API routes.
"""

from decimal import Decimal

from tests.factories import AllocationRecordFactory

XLSX_MEDIA_TYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


def _batch(batch_number, weight_kg=1000, **overrides):
    data = {
        "batch_number": batch_number,
        "material_id": "FIARGRN01",
        "quality_grade": "Fair",
        "weight_kg": str(weight_kg),
        "age_days": 10,
        "origin_country": "Chile",
        "supplier": "Andes Fruit",
    }
    data.update(overrides)
    return data


def _order(customer_id, sales_document, required_quantity_kg, **overrides):
    data = {
        "customer_id": customer_id,
        "sales_document": sales_document,
        "sales_document_item": "10",
        "required_quantity_kg": str(required_quantity_kg),
        "material_id": "FIARGRN01",
    }
    data.update(overrides)
    return data


def _seed(ledger, *records):
    ledger.begin_transaction()
    for record in records:
        ledger.add_allocation(record)
    ledger.commit_transaction()


class TestRunAllocation:
    """Tests for POST /api/allocations/run."""

    def test_run_commits(self, test_client, ledger):
        response = test_client.post("/api/allocations/run", json={
            "stock": [_batch("B1")],
            "orders": [_order("A", "SO1", 900)],
            "customers": [{"id": "A"}],
        })

        assert response.status_code == 200
        body = response.json()
        assert body["errors"] == []
        assert len(body["committed"]) == 1
        assert Decimal(body["committed"][0]["quantity_kg"]) == Decimal("990")
        assert len(ledger.get_all_allocations()) == 1

    def test_run_rolled_back(self, test_client, ledger):
        response = test_client.post("/api/allocations/run", json={
            "stock": [_batch("B1"), _batch("b-1")],
            "orders": [_order("A", "SO1", 900)],
        })

        assert response.status_code == 200
        body = response.json()
        assert body["rolled_back"] is True
        assert body["errors"] == ["Duplicate batch number B1 in stock"]
        assert ledger.get_all_allocations() == []

    def test_invalid_batch_rejected(self, test_client):
        response = test_client.post("/api/allocations/run", json={
            "stock": [_batch("--")],
            "orders": [],
        })

        assert response.status_code == 422


class TestLedgerQueries:
    """Tests for the query endpoints."""

    def test_queries(self, test_client, ledger):
        _seed(
            ledger,
            AllocationRecordFactory.create(batch_number="X100", customer_id="A", sales_document="SO1"),
            AllocationRecordFactory.create(batch_number="Y200", customer_id="B", sales_document="SO2"),
        )

        assert len(test_client.get("/api/allocations").json()) == 2
        assert len(test_client.get("/api/allocations/batch/x-100").json()) == 1
        assert len(test_client.get("/api/allocations/order/SO2/10").json()) == 1
        assert test_client.get("/api/allocations/customer/A").json()[0]["batch_number"] == "X100"

        summary = test_client.get("/api/allocations/customer/A/summary").json()
        assert summary["allocation_count"] == 1

    def test_order_status(self, test_client, ledger):
        _seed(ledger, AllocationRecordFactory.create(sales_document="SO1", quantity_kg=500))

        response = test_client.get(
            "/api/allocations/status/order/SO1/10",
            params={"required_quantity_kg": "900"},
        )

        assert response.status_code == 200
        assert response.json()["status"] == "partial"

    def test_order_status_requires_quantity(self, test_client):
        response = test_client.get("/api/allocations/status/order/SO1/10")

        assert response.status_code == 422

    def test_batch_status(self, test_client, ledger):
        _seed(ledger, AllocationRecordFactory.create(customer_id="Acme", quantity_kg=1000))

        body = test_client.get("/api/allocations/status/batch/X100").json()

        assert body["status"] == "allocated"
        assert body["customer"] == "Acme"


class TestLedgerEdits:
    """Tests for delete, reset and export."""

    def test_delete_batch(self, test_client, ledger):
        _seed(ledger, AllocationRecordFactory.create(batch_number="X100"))

        response = test_client.delete("/api/allocations/batch/X100")

        assert response.status_code == 200
        assert response.json() == {"removed": 1}
        assert ledger.get_all_allocations() == []

    def test_delete_unknown_batch_404(self, test_client):
        response = test_client.delete("/api/allocations/batch/NOPE")

        assert response.status_code == 404
        assert response.json()["error"]["code"] == "ALLOCATION_NOT_FOUND"

    def test_delete_by_id(self, test_client, ledger):
        _seed(ledger, AllocationRecordFactory.create(batch_number="X100"))
        allocation_id = ledger.get_all_allocations()[0].allocation_id

        response = test_client.delete(f"/api/allocations/{allocation_id}")

        assert response.status_code == 200
        assert response.json() == {"removed": 1}

    def test_reset(self, test_client, ledger):
        _seed(
            ledger,
            AllocationRecordFactory.create(batch_number="X100"),
            AllocationRecordFactory.create(batch_number="Y200"),
        )

        response = test_client.post("/api/allocations/reset", json={"stock": [_batch("X100")]})

        assert response.status_code == 200
        assert response.json() == {"pruned": 1, "remaining": 1}

    def test_export(self, test_client, ledger):
        _seed(ledger, AllocationRecordFactory.create(batch_number="X100"))

        response = test_client.post("/api/allocations/export", json={"stock": [_batch("X100")]})

        assert response.status_code == 200
        assert response.headers["content-type"] == XLSX_MEDIA_TYPE
        assert "attachment" in response.headers["content-disposition"]
        assert len(response.content) > 0


class TestStockRoutes:
    """Tests for the stock endpoints."""

    def test_overview(self, test_client, ledger):
        _seed(ledger, AllocationRecordFactory.create(batch_number="X100", quantity_kg=100))

        response = test_client.post("/api/stock/overview", json={
            "stock": [_batch("X100"), _batch("Y200", material_id="FIARORG01")],
        })

        assert response.status_code == 200
        body = response.json()
        assert body["summary"]["total_batches"] == 2
        assert body["summary"]["organic"]["batch_count"] == 1
        assert [b["batch_number"] for b in body["unallocated"]] == ["Y200"]

    def test_organic_options(self, test_client):
        response = test_client.post("/api/stock/organic-options", json={
            "order": _order("A", "SO1", 500),
            "stock": [_batch("O1", material_id="FIARORG01", supplier="Valle Verde")],
        })

        assert response.status_code == 200
        body = response.json()
        assert body["can_use_organic"] is True
        assert body["recommended_supplier"] == "Valle Verde"


class TestHealth:
    """Tests for the app-level endpoints."""

    def test_health(self, test_client):
        response = test_client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    def test_root(self, test_client):
        body = test_client.get("/").json()

        assert body["endpoints"]["allocations"] == "/api/allocations"
