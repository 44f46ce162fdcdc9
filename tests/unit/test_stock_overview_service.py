"""
Tests for the stock overview.
"""

from decimal import Decimal

import pytest

from services.stock_overview_service import StockOverviewService
from tests.factories import AllocationRecordFactory, StockBatchFactory


@pytest.fixture
def service(ledger):
    return StockOverviewService(ledger)


@pytest.fixture
def stock():
    return [
        StockBatchFactory.create(
            batch_number="C1", weight_kg=1000, quality_grade="Good", age_days=5, supplier="Andes Fruit"
        ),
        StockBatchFactory.create(
            batch_number="C2", weight_kg=500, quality_grade="Poor", age_days=30, supplier="Pacific"
        ),
        StockBatchFactory.create(
            batch_number="O1", weight_kg=800, quality_grade="", age_days=5,
            material_id="FIARORG01", supplier=None,
        ),
    ]


class TestBatchViews:
    """Tests for per-batch allocation views."""

    def test_allocated_and_remaining(self, ledger, service, stock):
        ledger.begin_transaction()
        ledger.add_allocation(AllocationRecordFactory.create(batch_number="C1", customer_id="A", quantity_kg=300))
        ledger.add_allocation(AllocationRecordFactory.create(
            batch_number="C1", customer_id="B", sales_document="SO2", quantity_kg=200
        ))
        ledger.commit_transaction()

        views = {v.batch_number: v for v in service.batch_views(stock)}

        assert views["C1"].allocated_kg == Decimal("500")
        assert views["C1"].remaining_kg == Decimal("500")
        assert views["C1"].customers == ["A", "B"]
        assert views["O1"].is_organic is True
        assert [v.batch_number for v in service.unallocated_batches(stock)] == ["C2", "O1"]


class TestSummarize:
    """Tests for dashboard totals."""

    def test_class_totals(self, ledger, service, stock):
        ledger.begin_transaction()
        ledger.add_allocation(AllocationRecordFactory.create(batch_number="C2", quantity_kg=100))
        ledger.commit_transaction()

        summary = service.summarize(stock)

        assert summary.total_batches == 3
        assert summary.total_kg == Decimal("2300")
        assert summary.conventional.batch_count == 2
        assert summary.conventional.total_kg == Decimal("1500")
        assert summary.conventional.allocated_kg == Decimal("100")
        assert summary.conventional.unallocated_kg == Decimal("1400")
        assert summary.organic.total_kg == Decimal("800")
        assert summary.organic.allocated_kg == Decimal("0")

    def test_breakdown_ordering(self, service, stock):
        summary = service.summarize(stock)

        assert list(summary.by_quality) == ["Poor", "Good", "Unknown"]
        assert list(summary.by_age) == [30, 5]
        assert summary.by_age[5] == Decimal("1800")
        assert list(summary.by_supplier) == ["Andes Fruit", "Unknown", "Pacific"]

    def test_empty_stock(self, service):
        summary = service.summarize([])

        assert summary.total_batches == 0
        assert summary.total_kg == Decimal("0")
        assert summary.by_quality == {}
