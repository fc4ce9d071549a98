from pathlib import Path
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Request, Form
from fastapi.responses import HTMLResponse, RedirectResponse
from fastapi.templating import Jinja2Templates

from app.backend.base import BackendError
from app.models.constants import DASHBOARD_TABS, SUGGESTED_CATEGORIES
from app.services.client_session import ClientSession
from app.services.expense_gateway import CONFIRM_DELETE_PROMPT, MutationOutcome
from app.services.money import format_usd, round1
from app.services.summary import compute_totals
from .deps import find_client_session, get_client_session

router = APIRouter(tags=["ui"])

templates = Jinja2Templates(directory=str(Path(__file__).resolve().parent.parent / "templates"))
templates.env.filters["usd"] = format_usd
templates.env.filters["pct"] = lambda v: f"{round1(v):.1f}"


def _redirect(url: str) -> RedirectResponse:
    return RedirectResponse(url, status_code=303)


def _pie_gradient(session: ClientSession) -> str:
    """CSS conic-gradient stops for the ranked categories."""
    stops = []
    total = sum(s.percent for s in session.summary.ranked) or 1.0
    start = 0.0
    for share in session.summary.ranked:
        end = start + share.percent / total * 100
        stops.append(f"{share.color} {start:.2f}% {end:.2f}%")
        start = end
    return ", ".join(stops)


def _dashboard_context(
    request: Request,
    session: ClientSession,
    error: Optional[str] = None,
    form: Optional[Dict[str, Any]] = None,
) -> Dict[str, Any]:
    state = session.feed.state
    totals = compute_totals(state.expenses)
    return {
        "request": request,
        "user": session.user,
        "tab": session.active_tab,
        "tabs": DASHBOARD_TABS,
        "feed": state,
        "expenses": state.expenses,
        "total_count": totals.count,
        "total_amount": totals.amount,
        "summary": session.summary,
        "pie_gradient": _pie_gradient(session),
        "categories": SUGGESTED_CATEGORIES,
        "error": error,
        "form": form or {"category": "", "amount": "", "note": ""},
    }


@router.get("/ui", response_class=HTMLResponse)
async def ui_home(
    request: Request,
    tab: Optional[str] = None,
    session: Optional[ClientSession] = Depends(find_client_session),
):
    if session is None or session.user is None:
        return templates.TemplateResponse(request, "sign_in.html", {"error": None, "email": ""})
    if tab in DASHBOARD_TABS:
        session.select_tab(tab)
    return templates.TemplateResponse(
        request, "dashboard.html", _dashboard_context(request, session)
    )


@router.post("/ui/sign-in", response_class=HTMLResponse)
async def ui_sign_in(
    request: Request,
    email: str = Form(""),
    password: str = Form(""),
    mode: str = Form("sign-in"),
    session: ClientSession = Depends(get_client_session),
):
    try:
        if mode == "sign-up":
            await session.sign_up(email, password)
        else:
            await session.sign_in(email, password)
    except BackendError as e:
        return templates.TemplateResponse(
            request,
            "sign_in.html",
            {"error": e.message, "email": email, "mode": mode},
            status_code=400,
        )
    return _redirect("/ui")


@router.post("/ui/sign-out", response_class=RedirectResponse)
async def ui_sign_out(session: Optional[ClientSession] = Depends(find_client_session)):
    if session is not None:
        await session.sign_out()
    return _redirect("/ui")


@router.post("/ui/expenses/new", response_class=HTMLResponse)
async def ui_expense_submit(
    request: Request,
    category: str = Form(""),
    amount: str = Form(""),
    note: str = Form(""),
    session: Optional[ClientSession] = Depends(find_client_session),
):
    user = session.user if session is not None else None
    if session is None or user is None:
        return _redirect("/ui")
    result = await session.add_expense(user, category, amount, note)
    if result.ok:
        return _redirect("/ui?tab=expenses")
    session.select_tab("expenses")
    ctx = _dashboard_context(
        request,
        session,
        error=result.message,
        form={"category": category, "amount": amount, "note": note},
    )
    status_code = 400 if result.outcome is MutationOutcome.VALIDATION_ERROR else 502
    return templates.TemplateResponse(request, "dashboard.html", ctx, status_code=status_code)


@router.get("/ui/expenses/{expense_id}/delete", response_class=HTMLResponse)
async def ui_expense_delete_confirm(
    request: Request,
    expense_id: str,
    session: Optional[ClientSession] = Depends(find_client_session),
):
    if session is None or session.user is None:
        return _redirect("/ui")
    expense = next((e for e in session.feed.expenses if e.id == expense_id), None)
    return templates.TemplateResponse(
        request,
        "confirm_delete.html",
        {"expense": expense, "expense_id": expense_id, "prompt": CONFIRM_DELETE_PROMPT},
    )


@router.post("/ui/expenses/{expense_id}/delete", response_class=HTMLResponse)
async def ui_expense_delete(
    request: Request,
    expense_id: str,
    confirm: str = Form("no"),
    session: Optional[ClientSession] = Depends(find_client_session),
):
    if session is None or session.user is None:
        return _redirect("/ui")
    result = await session.delete_expense(expense_id, lambda _prompt: confirm == "yes")
    if result.ok or result.outcome is MutationOutcome.CANCELLED:
        return _redirect("/ui?tab=expenses")
    ctx = _dashboard_context(request, session, error=result.message)
    return templates.TemplateResponse(request, "dashboard.html", ctx, status_code=502)

