"""Expense mutations: create and delete.

Every outcome comes back as a `MutationResult`; validation failures and
backend rejections are never raised to the caller and never retried. The
materialized list is not patched here: it changes only when the feed's next
snapshot arrives, so a failed delete leaves nothing to roll back.
"""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Awaitable, Callable, Dict, Optional, Union

from app.backend.base import SERVER_TIMESTAMP, AuthUser, BackendError, DocumentBackend, ErrorCode
from app.services.expense_validation import ExpenseValidationError, parse_expense_input

logger = logging.getLogger("app.gateway")

CONFIRM_DELETE_PROMPT = "Are you sure you want to delete this expense?"

_CREATE_PREFIX = "Failed to add expense. "
_DELETE_PREFIX = "Failed to delete expense. "

_REASONS: Dict[ErrorCode, str] = {
    ErrorCode.PERMISSION_DENIED: "Permission denied. Please check security rules.",
    ErrorCode.UNAVAILABLE: "Service temporarily unavailable. Please try again.",
    ErrorCode.UNAUTHENTICATED: "Please sign in again.",
}


class MutationOutcome(str, Enum):
    OK = "ok"
    VALIDATION_ERROR = "validation_error"
    BACKEND_ERROR = "backend_error"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class MutationResult:
    outcome: MutationOutcome
    expense_id: Optional[str] = None
    message: Optional[str] = None
    code: Optional[ErrorCode] = None

    @property
    def ok(self) -> bool:
        return self.outcome is MutationOutcome.OK


def describe_create_failure(error: BackendError) -> str:
    reason = _REASONS.get(error.code)
    return _CREATE_PREFIX + (reason or f"Error: {error.message}")


def describe_delete_failure(error: BackendError) -> str:
    if error.code is ErrorCode.NOT_FOUND:
        return _DELETE_PREFIX + "The expense no longer exists."
    return _DELETE_PREFIX + _REASONS.get(error.code, "Please try again.")


Confirm = Callable[[str], Union[bool, Awaitable[bool]]]


class ExpenseGateway:
    def __init__(self, backend: DocumentBackend, collection: str = "expenses"):
        self._backend = backend
        self._collection = collection

    async def create(
        self,
        user: AuthUser,
        category: object,
        amount: object,
        note: object = None,
        now: Optional[datetime] = None,
    ) -> MutationResult:
        try:
            expense = parse_expense_input(category, amount, note)
        except ExpenseValidationError as e:
            return MutationResult(MutationOutcome.VALIDATION_ERROR, message=e.message)

        created_at = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
        record = {
            "userId": user.uid,
            "category": expense.category,
            "amount": expense.amount,
            "note": expense.note,
            "timestamp": SERVER_TIMESTAMP,
            "createdAt": created_at.isoformat(timespec="milliseconds").replace("+00:00", "Z"),
        }
        logger.debug("Attempting to add expense for user %s", user.uid)
        try:
            expense_id = await self._backend.add(self._collection, record)
        except BackendError as e:
            logger.error("Error adding expense: %s (%s)", e.message, e.code.value)
            return MutationResult(
                MutationOutcome.BACKEND_ERROR, message=describe_create_failure(e), code=e.code
            )
        logger.info("Expense added successfully with ID %s", expense_id)
        return MutationResult(MutationOutcome.OK, expense_id=expense_id)

    async def delete(self, expense_id: str, confirm: Confirm) -> MutationResult:
        decision = confirm(CONFIRM_DELETE_PROMPT)
        if inspect.isawaitable(decision):
            decision = await decision
        if not decision:
            return MutationResult(MutationOutcome.CANCELLED, expense_id=expense_id)
        try:
            await self._backend.delete(self._collection, expense_id)
        except BackendError as e:
            logger.error("Error deleting expense %s: %s (%s)", expense_id, e.message, e.code.value)
            return MutationResult(
                MutationOutcome.BACKEND_ERROR,
                expense_id=expense_id,
                message=describe_delete_failure(e),
                code=e.code,
            )
        logger.info("Expense %s deleted", expense_id)
        return MutationResult(MutationOutcome.OK, expense_id=expense_id)
