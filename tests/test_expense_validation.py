import pytest

from app.models.expense import INVALID_AMOUNT_MSG, MISSING_FIELDS_MSG, Expense, format_display_time
from app.services.expense_validation import ExpenseValidationError, parse_expense_input


def test_valid_input_is_trimmed_and_parsed():
    parsed = parse_expense_input("  Food  ", "12.50", "  lunch ")
    assert parsed.category == "Food"
    assert parsed.amount == 12.5
    assert parsed.note == "lunch"


def test_note_is_optional():
    parsed = parse_expense_input("Travel", 3, None)
    assert parsed.note == ""
    assert parsed.amount == 3.0


@pytest.mark.parametrize(
    "category,amount",
    [("", 5), ("   ", 5), (None, 5), ("Food", None), ("Food", ""), ("Food", "  ")],
)
def test_missing_fields(category, amount):
    with pytest.raises(ExpenseValidationError) as exc:
        parse_expense_input(category, amount, "")
    assert exc.value.message == MISSING_FIELDS_MSG


@pytest.mark.parametrize("amount", ["abc", "0", 0, -1, "-2.5", "nan", "inf", True])
def test_invalid_amount(amount):
    with pytest.raises(ExpenseValidationError) as exc:
        parse_expense_input("Food", amount, "")
    assert exc.value.message == INVALID_AMOUNT_MSG


def test_missing_field_outranks_invalid_amount():
    with pytest.raises(ExpenseValidationError) as exc:
        parse_expense_input("", "abc", "")
    assert exc.value.message == MISSING_FIELDS_MSG


def test_display_time_falls_back_to_created_at():
    pending = Expense.from_document(
        "e1",
        {"userId": "u1", "category": "Food", "amount": 4, "timestamp": None,
         "createdAt": "2026-10-18T07:49:00.000Z"},
    )
    assert pending.timestamp is None
    assert pending.occurred_at is not None
    assert pending.occurred_at.year == 2026
    assert pending.display_time != ""


def test_display_time_empty_without_any_time():
    bare = Expense.from_document("e2", {"userId": "u1", "category": "Food", "amount": 4})
    assert bare.display_time == ""


def test_format_display_time():
    from datetime import datetime

    assert format_display_time(datetime(2026, 10, 18, 7, 49)) == "Oct 18, 2026, 07:49 AM"
    assert format_display_time(datetime(2026, 1, 5, 19, 3)) == "Jan 5, 2026, 07:03 PM"
