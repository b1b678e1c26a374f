"""Summary queries package."""

from expensy.queries.summary import (
    UNCATEGORIZED,
    compute_summary,
    format_currency,
    format_percentage,
    summarize_by_category,
)

__all__ = [
    "UNCATEGORIZED",
    "compute_summary",
    "format_currency",
    "format_percentage",
    "summarize_by_category",
]
