"""
Tests for stock prioritization.
"""

from decimal import Decimal

from services.stock_prioritizer import (
    UNKNOWN_QUALITY_RANK,
    quality_rank,
    priority_score,
    prioritize,
)
from tests.factories import StockBatchFactory


def _numbers(batches):
    return [b.batch_number for b in batches]


class TestQualityRank:
    """Tests for quality ranking."""

    def test_known_grades_worst_first(self):
        assert quality_rank("Poor M/C") == 0
        assert quality_rank("Poor") == 1
        assert quality_rank("Fair M/C") == 2
        assert quality_rank("Fair") == 3
        assert quality_rank("Good Q/S") == 4
        assert quality_rank("Good") == 5

    def test_case_and_whitespace_insensitive(self):
        assert quality_rank(" good ") == 5

    def test_unknown_grades_last(self):
        assert quality_rank("Excellent") == UNKNOWN_QUALITY_RANK
        assert quality_rank("") == UNKNOWN_QUALITY_RANK


class TestPriorityScore:
    """Tests for the consumption score."""

    def test_age_bonus_capped(self):
        young = StockBatchFactory.create(quality_grade="Fair", age_days=50)
        ancient = StockBatchFactory.create(quality_grade="Fair", age_days=500)

        assert priority_score(young) == Decimal("38")
        assert priority_score(ancient) == Decimal("43")

    def test_quality_dominates_age(self):
        old_fair = StockBatchFactory.create(quality_grade="Fair", age_days=1000)
        new_poor = StockBatchFactory.create(quality_grade="Poor", age_days=0)

        assert priority_score(new_poor) > priority_score(old_fair)


class TestPrioritize:
    """Tests for batch ordering."""

    def test_production_consumes_poor_quality_first(self):
        batches = [
            StockBatchFactory.create(batch_number="GOOD", quality_grade="Good", age_days=5),
            StockBatchFactory.create(batch_number="POOR", quality_grade="Poor", age_days=5),
            StockBatchFactory.create(batch_number="FAIR20", quality_grade="Fair", age_days=20),
            StockBatchFactory.create(batch_number="FAIR30", quality_grade="Fair", age_days=30),
            StockBatchFactory.create(batch_number="ODD", quality_grade="Mixed", age_days=90),
        ]

        result = prioritize(batches, for_spot_sale=False)

        assert _numbers(result) == ["POOR", "FAIR30", "FAIR20", "GOOD", "ODD"]

    def test_ties_keep_input_order(self):
        batches = [
            StockBatchFactory.create(batch_number="FIRST", quality_grade="Fair", age_days=10),
            StockBatchFactory.create(batch_number="SECOND", quality_grade="Fair", age_days=10),
        ]

        assert _numbers(prioritize(batches)) == ["FIRST", "SECOND"]

    def test_spot_takes_good_grades_oldest_first(self):
        batches = [
            StockBatchFactory.create(batch_number="FAIR", quality_grade="Fair", age_days=1),
            StockBatchFactory.create(batch_number="GOOD5", quality_grade="Good", age_days=5),
            StockBatchFactory.create(batch_number="POOR", quality_grade="Poor", age_days=50),
            StockBatchFactory.create(batch_number="GOODQS20", quality_grade="Good Q/S", age_days=20),
        ]

        result = prioritize(batches, for_spot_sale=True)

        assert _numbers(result) == ["GOODQS20", "GOOD5", "POOR", "FAIR"]

    def test_does_not_mutate_input(self):
        batches = [
            StockBatchFactory.create(batch_number="GOOD", quality_grade="Good"),
            StockBatchFactory.create(batch_number="POOR", quality_grade="Poor"),
        ]

        prioritize(batches)

        assert _numbers(batches) == ["GOOD", "POOR"]
