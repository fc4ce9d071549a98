from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from datetime import datetime
from typing import List, Optional, Union

from app.backend.base import AuthUser
from app.core.errors import ApiError
from app.models.expense import Expense
from app.services.client_session import ClientSession
from app.services.expense_gateway import CONFIRM_DELETE_PROMPT, MutationOutcome
from app.services.money import format_usd, round2
from app.services.summary import compute_totals
from .deps import require_session, require_user

router = APIRouter(prefix="/expenses", tags=["expenses"])


# Request / Response Models ----------------------------------------
class ExpenseCreateIn(BaseModel):
    """Loosely typed on purpose: the gateway owns validation messages."""

    category: Optional[str] = None
    amount: Optional[Union[float, str]] = None
    note: Optional[str] = None


class ExpenseCreated(BaseModel):
    id: str


class ExpenseOut(BaseModel):
    id: str
    category: str
    amount: float
    amount_display: str
    note: str
    timestamp: Optional[datetime] = None
    created_at: Optional[str] = None
    display_time: str


class ExpenseListOut(BaseModel):
    status: str
    error: Optional[str] = None
    count: int
    total_amount: float
    total_display: str
    expenses: List[ExpenseOut]


class RefreshOut(BaseModel):
    generation: int


# Helpers ----------------------------------------------------------
def _expense_out(expense: Expense) -> ExpenseOut:
    return ExpenseOut(
        id=expense.id,
        category=expense.category,
        amount=expense.amount,
        amount_display=format_usd(expense.amount),
        note=expense.note,
        timestamp=expense.timestamp,
        created_at=expense.created_at,
        display_time=expense.display_time,
    )


# Routes -----------------------------------------------------------
@router.get("", response_model=ExpenseListOut, summary="Materialized expense list")
async def list_expenses_endpoint(
    user: AuthUser = Depends(require_user),
    session: ClientSession = Depends(require_session),
):
    """Return the live list as of the latest snapshot, newest first.

    `status` is `loading` until the first snapshot, `live` afterwards and
    `stale` after a subscription error (the last list is still returned).
    """
    state = session.feed.state
    totals = compute_totals(state.expenses)
    return ExpenseListOut(
        status=state.status.value,
        error=state.error,
        count=totals.count,
        total_amount=round2(totals.amount),
        total_display=format_usd(totals.amount),
        expenses=[_expense_out(e) for e in state.expenses],
    )


@router.post("", response_model=ExpenseCreated, status_code=201, summary="Create an expense")
async def create_expense(
    payload: ExpenseCreateIn,
    user: AuthUser = Depends(require_user),
    session: ClientSession = Depends(require_session),
):
    result = await session.add_expense(user, payload.category, payload.amount, payload.note)
    if result.outcome is MutationOutcome.VALIDATION_ERROR:
        raise ApiError(422, "validation_error", result.message or "")
    if not result.ok:
        raise ApiError.from_backend(result.code, result.message or "")  # type: ignore[arg-type]
    return ExpenseCreated(id=result.expense_id)  # type: ignore[arg-type]


@router.delete("/{expense_id}", status_code=204, summary="Delete an expense")
async def delete_expense(
    expense_id: str,
    confirm: bool = Query(False, description="Explicit user confirmation"),
    user: AuthUser = Depends(require_user),
    session: ClientSession = Depends(require_session),
):
    result = await session.delete_expense(expense_id, lambda _prompt: confirm)
    if result.outcome is MutationOutcome.CANCELLED:
        raise ApiError(409, "confirmation_required", CONFIRM_DELETE_PROMPT)
    if not result.ok:
        raise ApiError.from_backend(result.code, result.message or "")  # type: ignore[arg-type]
    return None


@router.post("/refresh", response_model=RefreshOut, summary="Force the live query to reopen")
async def refresh_expenses(
    user: AuthUser = Depends(require_user),
    session: ClientSession = Depends(require_session),
):
    session.refresh()
    return RefreshOut(generation=session.refresh_generation)
