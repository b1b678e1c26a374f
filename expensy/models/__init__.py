"""
Data Models Package

This package contains all Pydantic models used in Expensy.
All data flowing through the system must conform to these schemas.
"""

from expensy.models.expense import (
    STATE_SCHEMA_VERSION,
    CardAccount,
    CategoryTotal,
    Expense,
    ExtractedRecord,
    ExtractionResult,
    ExtractionStatus,
    ImportOutcome,
    PersistedState,
    SummaryStats,
    new_expense_id,
)
from expensy.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Account models
    "STATE_SCHEMA_VERSION",
    "CardAccount",
    "CategoryTotal",
    "Expense",
    "ExtractedRecord",
    "ExtractionResult",
    "ExtractionStatus",
    "ImportOutcome",
    "PersistedState",
    "SummaryStats",
    "new_expense_id",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
