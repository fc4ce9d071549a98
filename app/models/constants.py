"""Domain constants and enumerations for validation.

Categories are suggestions only; any non-empty label is accepted.
"""

from typing import Tuple

SUGGESTED_CATEGORIES: Tuple[str, ...] = (
    "Food & Dining",
    "Transportation",
    "Shopping",
    "Entertainment",
    "Bills & Utilities",
    "Healthcare",
    "Travel",
    "Education",
    "Other",
)

# Interaction kinds that keep a client session alive
ACTIVITY_EVENTS: Tuple[str, ...] = ("pointer-move", "key-press", "scroll", "touch-start")
TEARDOWN_EVENT = "teardown"

# Chart palette, assigned by category rank
CHART_COLORS: Tuple[str, ...] = (
    "#3B82F6",  # blue
    "#10B981",  # green
    "#F59E0B",  # amber
    "#EF4444",  # red
    "#8B5CF6",  # violet
    "#F97316",  # orange
    "#06B6D4",  # cyan
    "#84CC16",  # lime
)

DASHBOARD_TABS: Tuple[str, ...] = ("expenses", "analytics")
