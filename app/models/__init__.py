"""Pydantic domain models for the Smart Expense Tracker."""

from .constants import (
    ACTIVITY_EVENTS,
    CHART_COLORS,
    DASHBOARD_TABS,
    SUGGESTED_CATEGORIES,
    TEARDOWN_EVENT,
)  # re-export
from .expense import Expense, ExpenseIn

__all__ = [
    "ACTIVITY_EVENTS",
    "CHART_COLORS",
    "DASHBOARD_TABS",
    "SUGGESTED_CATEGORIES",
    "TEARDOWN_EVENT",
    "Expense",
    "ExpenseIn",
]
