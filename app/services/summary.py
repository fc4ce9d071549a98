"""Spending summary engine.

Pure functions over the materialized expense list (no I/O, no state kept
between calls):
    - totals (count, amount)
    - per-category totals, keyed in first-occurrence order
    - ranking by total descending; equal totals keep first-occurrence order
    - truncation to the top N categories for the chart (totals still cover
      the whole list)
    - percentages of the grand total, plus the top category

Sums use Decimal so category totals always add up to the grand total.
An empty list yields NO_DATA and no percentage is ever computed for it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Optional, Protocol, Sequence, Tuple

from app.models.constants import CHART_COLORS
from app.services.money import round1, round2, to_decimal

DEFAULT_TOP_N = 8


class SupportsAmount(Protocol):
    category: str
    amount: float


@dataclass(frozen=True)
class Totals:
    count: int
    amount: Decimal


@dataclass(frozen=True)
class CategoryShare:
    rank: int
    category: str
    total: Decimal
    percent: float
    color: str

    @property
    def percent_label(self) -> str:
        return f"{round1(self.percent):.1f}%"


@dataclass(frozen=True)
class SpendingSummary:
    has_data: bool
    total_count: int
    total_amount: Decimal
    category_totals: Dict[str, Decimal] = field(default_factory=dict)
    ranked: Tuple[CategoryShare, ...] = ()
    top_category: Optional[CategoryShare] = None


NO_DATA = SpendingSummary(has_data=False, total_count=0, total_amount=Decimal("0"))


def compute_totals(expenses: Sequence[SupportsAmount]) -> Totals:
    return Totals(
        count=len(expenses),
        amount=sum((to_decimal(e.amount) for e in expenses), Decimal("0")),
    )


def compute_category_totals(expenses: Iterable[SupportsAmount]) -> Dict[str, Decimal]:
    totals: Dict[str, Decimal] = {}
    for e in expenses:
        totals[e.category] = totals.get(e.category, Decimal("0")) + to_decimal(e.amount)
    return totals


def rank_categories(
    category_totals: Dict[str, Decimal], limit: int = DEFAULT_TOP_N
) -> List[Tuple[str, Decimal]]:
    # sorted() is stable with reverse=True, so ties keep first-occurrence order
    ranked = sorted(category_totals.items(), key=lambda kv: kv[1], reverse=True)
    return ranked[:limit]


def percent_of(part: Decimal, whole: Decimal) -> float:
    if whole <= 0:
        raise ValueError("percentage of a non-positive total is undefined")
    return float(part / whole * 100)


def summarize(
    expenses: Sequence[SupportsAmount], top_n: int = DEFAULT_TOP_N
) -> SpendingSummary:
    if not expenses:
        return NO_DATA
    totals = compute_totals(expenses)
    category_totals = compute_category_totals(expenses)
    ranked = tuple(
        CategoryShare(
            rank=i,
            category=category,
            total=total,
            percent=percent_of(total, totals.amount) if totals.amount > 0 else 0.0,
            color=CHART_COLORS[i % len(CHART_COLORS)],
        )
        for i, (category, total) in enumerate(rank_categories(category_totals, top_n))
    )
    return SpendingSummary(
        has_data=True,
        total_count=totals.count,
        total_amount=totals.amount,
        category_totals=category_totals,
        ranked=ranked,
        top_category=ranked[0] if ranked else None,
    )


def chart_payload(summary: SpendingSummary) -> Dict[str, Any]:
    """Labels / values / colours for a pie chart of the ranked categories."""
    return {
        "labels": [s.category for s in summary.ranked],
        "values": [round2(s.total) for s in summary.ranked],
        "colors": [s.color for s in summary.ranked],
        "percents": [round1(s.percent) for s in summary.ranked],
    }
