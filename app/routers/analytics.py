from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel

from app.backend.base import AuthUser
from app.services.client_session import ClientSession
from app.services.money import round1, round2
from app.services.summary import CategoryShare, chart_payload
from .deps import require_session, require_user

router = APIRouter(prefix="/analytics", tags=["analytics"])


class CategoryShareOut(BaseModel):
    rank: int
    category: str
    total: float
    percent: float
    color: str


class ChartData(BaseModel):
    labels: List[str]
    values: List[float]
    colors: List[str]
    percents: List[float]


class SummaryOut(BaseModel):
    has_data: bool
    total_count: int
    total_amount: float
    category_totals: dict[str, float]
    categories: List[CategoryShareOut]
    top_category: Optional[CategoryShareOut] = None
    chart: ChartData


def _share_out(share: CategoryShare) -> CategoryShareOut:
    return CategoryShareOut(
        rank=share.rank,
        category=share.category,
        total=round2(share.total),
        percent=round1(share.percent),
        color=share.color,
    )


@router.get(
    "/summary",
    response_model=SummaryOut,
    summary="Category breakdown of the current expense list",
)
async def summary_endpoint(
    user: AuthUser = Depends(require_user),
    session: ClientSession = Depends(require_session),
):
    """Return totals, top categories (max 8) and chart data.

    Computed from the session's materialized list, so it always agrees with
    `GET /expenses`. With no expenses `has_data` is false and every
    collection is empty.
    """
    summary = session.summary
    return SummaryOut(
        has_data=summary.has_data,
        total_count=summary.total_count,
        total_amount=round2(summary.total_amount),
        category_totals={k: round2(v) for k, v in summary.category_totals.items()},
        categories=[_share_out(s) for s in summary.ranked],
        top_category=_share_out(summary.top_category) if summary.top_category else None,
        chart=ChartData(**chart_payload(summary)),
    )
