from __future__ import annotations

import math
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic_core import PydanticCustomError

MISSING_FIELDS_MSG = "Please fill in category and amount"
INVALID_AMOUNT_MSG = "Please enter a valid amount"

# Error types raised by ExpenseIn validators (see app.services.expense_validation)
REQUIRED_ERROR = "expense_required"
INVALID_AMOUNT_ERROR = "expense_invalid_amount"


class ExpenseIn(BaseModel):
    """User input for a new expense, trimmed and parsed.

    Amount accepts numbers or numeric strings (form posts); it must be finite
    and strictly positive.
    """

    model_config = ConfigDict(validate_default=True)

    category: Any = None
    amount: Any = None
    note: Any = ""

    @field_validator("category", mode="before")
    @classmethod
    def category_required(cls, v: Any) -> str:
        text = "" if v is None else str(v).strip()
        if not text:
            raise PydanticCustomError(REQUIRED_ERROR, MISSING_FIELDS_MSG)
        return text

    @field_validator("amount", mode="before")
    @classmethod
    def amount_positive_number(cls, v: Any) -> float:
        if v is None or (isinstance(v, str) and not v.strip()):
            raise PydanticCustomError(REQUIRED_ERROR, MISSING_FIELDS_MSG)
        if isinstance(v, bool):
            raise PydanticCustomError(INVALID_AMOUNT_ERROR, INVALID_AMOUNT_MSG)
        try:
            value = float(v.strip() if isinstance(v, str) else v)
        except (TypeError, ValueError):
            raise PydanticCustomError(INVALID_AMOUNT_ERROR, INVALID_AMOUNT_MSG)
        if not math.isfinite(value) or value <= 0:
            raise PydanticCustomError(INVALID_AMOUNT_ERROR, INVALID_AMOUNT_MSG)
        return value

    @field_validator("note", mode="before")
    @classmethod
    def note_trimmed(cls, v: Any) -> str:
        return "" if v is None else str(v).strip()


class Expense(BaseModel):
    """An expense as delivered by a live query snapshot."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    id: str
    user_id: str = Field(alias="userId")
    category: str
    amount: float
    note: str = ""
    timestamp: Optional[datetime] = None
    created_at: Optional[str] = Field(default=None, alias="createdAt")

    @field_validator("note", mode="before")
    @classmethod
    def note_default(cls, v: Any) -> str:
        return v or ""

    @classmethod
    def from_document(cls, doc_id: str, data: Mapping[str, Any]) -> "Expense":
        return cls(id=doc_id, **dict(data))

    @property
    def occurred_at(self) -> Optional[datetime]:
        """Server timestamp, or the client createdAt while the write is pending."""
        if self.timestamp is not None:
            return self.timestamp
        if not self.created_at:
            return None
        try:
            return datetime.fromisoformat(self.created_at.replace("Z", "+00:00"))
        except ValueError:
            return None

    @property
    def display_time(self) -> str:
        when = self.occurred_at
        if when is None:
            return ""
        if when.tzinfo is None:
            when = when.replace(tzinfo=timezone.utc)
        return format_display_time(when.astimezone())


def format_display_time(when: datetime) -> str:
    """Render as e.g. `Oct 18, 2026, 07:49 AM`."""
    return f"{when.strftime('%b')} {when.day}, {when.year}, {when.strftime('%I:%M %p')}"
