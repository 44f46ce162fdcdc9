"""
Stock prioritization - the order in which batches are consumed.

Production orders use up the weakest stock first: lowest quality grade,
then oldest. Good fruit stays available for spot sales, which take the
best and oldest stock first.

Quality rank (production order):
    Poor M/C=0, Poor=1, Fair M/C=2, Fair=3, Good Q/S=4, Good=5, unknown=6
"""

from decimal import Decimal
from typing import Sequence

from models.stock import GOOD_GRADES, QUALITY_ORDER, StockBatch

UNKNOWN_QUALITY_RANK = len(QUALITY_ORDER)

# One quality step outweighs the maximum age bonus
QUALITY_WEIGHT = 11
MAX_AGE_BONUS = Decimal("10")

_RANKS = {grade.lower(): rank for rank, grade in enumerate(QUALITY_ORDER)}


def quality_rank(grade: str) -> int:
    """Rank of a quality grade, worst first. Unknown grades sort last."""
    return _RANKS.get((grade or "").strip().lower(), UNKNOWN_QUALITY_RANK)


def is_good_grade(grade: str) -> bool:
    return (grade or "").strip().lower() in {g.lower() for g in GOOD_GRADES}


def priority_score(batch: StockBatch) -> Decimal:
    """
    Consumption score: poorer quality and older stock score higher.

    Quality contributes (6 - rank) * 11 (unknown grades contribute 0);
    age adds min(age_days / 10, 10).
    """
    quality_points = (UNKNOWN_QUALITY_RANK - quality_rank(batch.quality_grade)) * QUALITY_WEIGHT
    age_bonus = min(Decimal(batch.age_days) / Decimal("10"), MAX_AGE_BONUS)
    return Decimal(quality_points) + age_bonus


def prioritize(batches: Sequence[StockBatch], for_spot_sale: bool = False) -> list[StockBatch]:
    """
    Return batches in consumption order. Input order breaks remaining ties.

    Production: quality rank ascending, then age descending.
    Spot: Good / Good Q/S batches oldest first, then the rest by descending
    score.
    """
    indexed = list(enumerate(batches))

    if not for_spot_sale:
        indexed.sort(key=lambda item: (
            quality_rank(item[1].quality_grade),
            -item[1].age_days,
            item[0],
        ))
        return [batch for _, batch in indexed]

    good = [item for item in indexed if is_good_grade(item[1].quality_grade)]
    rest = [item for item in indexed if not is_good_grade(item[1].quality_grade)]

    good.sort(key=lambda item: (-item[1].age_days, item[0]))
    rest.sort(key=lambda item: (-priority_score(item[1]), -item[1].age_days, item[0]))

    return [batch for _, batch in good + rest]
