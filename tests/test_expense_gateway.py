from datetime import datetime, timezone

import pytest

from app.backend.base import SERVER_TIMESTAMP, AuthUser, BackendError, ErrorCode
from app.models.expense import INVALID_AMOUNT_MSG, MISSING_FIELDS_MSG
from app.services.expense_gateway import (
    CONFIRM_DELETE_PROMPT,
    ExpenseGateway,
    MutationOutcome,
)

USER = AuthUser(uid="u1", email="u1@example.com")


@pytest.mark.asyncio
async def test_create_builds_record_from_trimmed_input(fake_backend):
    gateway = ExpenseGateway(fake_backend)
    now = datetime(2026, 10, 18, 7, 49, 0, tzinfo=timezone.utc)
    result = await gateway.create(USER, " Food ", "12.5", "  lunch  ", now=now)

    assert result.ok
    assert result.expense_id == "doc-1"
    collection, record = fake_backend.added[0]
    assert collection == "expenses"
    assert record["userId"] == "u1"
    assert record["category"] == "Food"
    assert record["amount"] == 12.5
    assert record["note"] == "lunch"
    assert record["timestamp"] is SERVER_TIMESTAMP
    assert record["createdAt"] == "2026-10-18T07:49:00.000Z"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "category,amount,message",
    [
        ("", "5", MISSING_FIELDS_MSG),
        ("Food", "", MISSING_FIELDS_MSG),
        ("Food", "abc", INVALID_AMOUNT_MSG),
        ("Food", "-1", INVALID_AMOUNT_MSG),
    ],
)
async def test_invalid_input_never_reaches_backend(fake_backend, category, amount, message):
    gateway = ExpenseGateway(fake_backend)
    result = await gateway.create(USER, category, amount, "")
    assert result.outcome is MutationOutcome.VALIDATION_ERROR
    assert result.message == message
    assert fake_backend.added == []


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "code,message",
    [
        (ErrorCode.PERMISSION_DENIED, "Failed to add expense. Permission denied. Please check security rules."),
        (ErrorCode.UNAVAILABLE, "Failed to add expense. Service temporarily unavailable. Please try again."),
        (ErrorCode.UNAUTHENTICATED, "Failed to add expense. Please sign in again."),
        (ErrorCode.UNKNOWN, "Failed to add expense. Error: boom"),
    ],
)
async def test_create_failure_is_categorized(fake_backend, code, message):
    fake_backend.add_error = BackendError(code, "boom")
    result = await ExpenseGateway(fake_backend).create(USER, "Food", 3, "")
    assert result.outcome is MutationOutcome.BACKEND_ERROR
    assert result.code is code
    assert result.message == message


@pytest.mark.asyncio
async def test_delete_requires_confirmation(fake_backend):
    prompts = []

    def decline(prompt):
        prompts.append(prompt)
        return False

    result = await ExpenseGateway(fake_backend).delete("doc-1", decline)
    assert result.outcome is MutationOutcome.CANCELLED
    assert prompts == [CONFIRM_DELETE_PROMPT]
    assert fake_backend.deleted == []


@pytest.mark.asyncio
async def test_delete_accepts_async_confirmation(fake_backend):
    async def accept(_prompt):
        return True

    result = await ExpenseGateway(fake_backend).delete("doc-7", accept)
    assert result.ok
    assert fake_backend.deleted == [("expenses", "doc-7")]


@pytest.mark.asyncio
async def test_delete_missing_expense(fake_backend):
    fake_backend.delete_error = BackendError(ErrorCode.NOT_FOUND, "gone")
    result = await ExpenseGateway(fake_backend).delete("doc-9", lambda _p: True)
    assert result.outcome is MutationOutcome.BACKEND_ERROR
    assert result.code is ErrorCode.NOT_FOUND
    assert result.message == "Failed to delete expense. The expense no longer exists."


@pytest.mark.asyncio
async def test_delete_other_failure(fake_backend):
    fake_backend.delete_error = BackendError(ErrorCode.UNKNOWN, "x")
    result = await ExpenseGateway(fake_backend).delete("doc-9", lambda _p: True)
    assert result.message == "Failed to delete expense. Please try again."
