"""Client-side validation of new-expense input.

Runs before anything is sent to the backend. Field rules live on
`ExpenseIn` (trimmed non-empty category, finite amount > 0, trimmed note);
this module turns pydantic's error list into the single user-facing message
the form shows. A missing field outranks an invalid amount.
"""

from __future__ import annotations

from typing import Any

from pydantic import ValidationError

from app.models.expense import (
    INVALID_AMOUNT_MSG,
    MISSING_FIELDS_MSG,
    REQUIRED_ERROR,
    ExpenseIn,
)


class ExpenseValidationError(ValueError):
    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


def parse_expense_input(category: Any, amount: Any, note: Any = None) -> ExpenseIn:
    """Return the trimmed, parsed input or raise ExpenseValidationError."""
    try:
        return ExpenseIn(category=category, amount=amount, note=note)
    except ValidationError as e:
        kinds = {err["type"] for err in e.errors()}
        if REQUIRED_ERROR in kinds:
            raise ExpenseValidationError(MISSING_FIELDS_MSG) from None
        raise ExpenseValidationError(INVALID_AMOUNT_MSG) from None
