"""
Audit Models for Expensy

Every change to account data, and every failure on the way there,
is recorded as an audit event. This provides:
1. Traceability of imports and reconciliations
2. Debugging information when an extraction goes wrong
3. A record of recoveries from corrupted local state

DESIGN DECISION: Audit events are emitted, never edited.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field


class AuditEventType(str, Enum):
    """
    Types of events we audit.
    """
    # Extraction
    EXTRACTION_STARTED = "extraction_started"
    EXTRACTION_COMPLETED = "extraction_completed"
    EXTRACTION_MALFORMED = "extraction_malformed"
    EXTRACTION_FAILED = "extraction_failed"
    IMPORT_REJECTED = "import_rejected"

    # Account mutations
    EXPENSES_ADDED = "expenses_added"
    RECEIPT_TOGGLED = "receipt_toggled"
    EXPENSE_DELETED = "expense_deleted"
    EXPENSES_CLEARED = "expenses_cleared"
    ACTIVE_ACCOUNT_CHANGED = "active_account_changed"
    ACTIVE_ACCOUNT_FALLBACK = "active_account_fallback"

    # Persistence
    STATE_LOADED = "state_loaded"
    STATE_SEEDED = "state_seeded"
    STATE_MIGRATED = "state_migrated"
    STATE_CORRUPTED = "state_corrupted"
    STATE_SAVED = "state_saved"
    SAVE_FAILED = "save_failed"

    # System events
    SYSTEM_ERROR = "system_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class AuditEvent(BaseModel):
    """
    A single audit event.
    """

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=datetime.utcnow,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # Context - which account / expense is this about?
    account_id: Optional[str] = None
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'expense', 'account', 'state')"
    )
    entity_id: Optional[str] = None

    # Correlation - ties the events of one import together
    correlation_id: Optional[UUID] = None

    description: str = Field(..., max_length=500)
    details: dict[str, Any] = Field(default_factory=dict)
    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "account_id": self.account_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.expenses_added(account_id, ["a1b2c3", "d4e5f6"], correlation_id)
    """

    @staticmethod
    def extraction_started(
        account_id: str,
        source: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTRACTION_STARTED,
            account_id=account_id,
            entity_type="extraction",
            correlation_id=correlation_id,
            description=f"Extraction started from {source}",
            details={"source": source},
            is_user_action=True,
        )

    @staticmethod
    def extraction_completed(
        account_id: str,
        record_count: int,
        rejected_count: int,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTRACTION_COMPLETED,
            account_id=account_id,
            entity_type="extraction",
            correlation_id=correlation_id,
            description=f"Extraction returned {record_count} records",
            details={
                "record_count": record_count,
                "rejected_count": rejected_count,
            },
        )

    @staticmethod
    def extraction_malformed(
        account_id: str,
        error_message: Optional[str],
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTRACTION_MALFORMED,
            severity=AuditSeverity.WARNING,
            account_id=account_id,
            entity_type="extraction",
            correlation_id=correlation_id,
            description="Extraction response did not match the requested schema",
            error_message=error_message,
        )

    @staticmethod
    def extraction_failed(
        account_id: str,
        error_message: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTRACTION_FAILED,
            severity=AuditSeverity.ERROR,
            account_id=account_id,
            entity_type="extraction",
            correlation_id=correlation_id,
            description="Extraction service call failed",
            error_message=error_message,
        )

    @staticmethod
    def import_rejected(
        account_id: str,
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.IMPORT_REJECTED,
            severity=AuditSeverity.WARNING,
            account_id=account_id,
            entity_type="extraction",
            correlation_id=correlation_id,
            description=f"Import rejected: {reason}",
            details={"reason": reason},
            is_user_action=True,
        )

    @staticmethod
    def expenses_added(
        account_id: str,
        expense_ids: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSES_ADDED,
            account_id=account_id,
            entity_type="account",
            entity_id=account_id,
            correlation_id=correlation_id,
            description=f"{len(expense_ids)} expenses added",
            details={"expense_ids": expense_ids},
        )

    @staticmethod
    def receipt_toggled(
        account_id: str,
        expense_id: str,
        receipt_attached: bool,
    ) -> AuditEvent:
        state = "attached" if receipt_attached else "detached"
        return AuditEvent(
            event_type=AuditEventType.RECEIPT_TOGGLED,
            account_id=account_id,
            entity_type="expense",
            entity_id=expense_id,
            description=f"Receipt {state}",
            details={"receipt_attached": receipt_attached},
            is_user_action=True,
        )

    @staticmethod
    def expense_deleted(account_id: str, expense_id: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSE_DELETED,
            account_id=account_id,
            entity_type="expense",
            entity_id=expense_id,
            description="Expense deleted",
            is_user_action=True,
        )

    @staticmethod
    def expenses_cleared(account_id: str, removed_count: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXPENSES_CLEARED,
            severity=AuditSeverity.WARNING,
            account_id=account_id,
            entity_type="account",
            entity_id=account_id,
            description=f"All expenses cleared ({removed_count} removed)",
            details={"removed_count": removed_count},
            is_user_action=True,
        )

    @staticmethod
    def active_account_changed(account_id: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACTIVE_ACCOUNT_CHANGED,
            severity=AuditSeverity.DEBUG,
            account_id=account_id,
            entity_type="account",
            entity_id=account_id,
            description="Active account changed",
            is_user_action=True,
        )

    @staticmethod
    def active_account_fallback(
        requested_id: Optional[str],
        fallback_id: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ACTIVE_ACCOUNT_FALLBACK,
            severity=AuditSeverity.WARNING,
            account_id=fallback_id,
            entity_type="account",
            entity_id=requested_id,
            description="Active account not found, defaulting to first account",
            details={"requested_id": requested_id, "fallback_id": fallback_id},
        )

    @staticmethod
    def state_loaded(account_count: int, schema_version: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STATE_LOADED,
            entity_type="state",
            description=f"Loaded {account_count} accounts",
            details={"schema_version": schema_version},
        )

    @staticmethod
    def state_seeded(account_count: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STATE_SEEDED,
            entity_type="state",
            description=f"No saved state, seeded {account_count} default accounts",
        )

    @staticmethod
    def state_migrated(
        from_version: int,
        to_version: int,
        dropped_expenses: int = 0,
        backup_location: Optional[str] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STATE_MIGRATED,
            severity=AuditSeverity.WARNING if dropped_expenses else AuditSeverity.INFO,
            entity_type="state",
            description=f"State migrated from v{from_version} to v{to_version}",
            details={
                "from_version": from_version,
                "to_version": to_version,
                "dropped_expenses": dropped_expenses,
                "backup_location": backup_location,
            },
        )

    @staticmethod
    def state_corrupted(
        error_message: str,
        backup_location: Optional[str],
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STATE_CORRUPTED,
            severity=AuditSeverity.ERROR,
            entity_type="state",
            description="Saved state could not be read; started from default accounts",
            error_message=error_message,
            details={"backup_location": backup_location},
        )

    @staticmethod
    def state_saved(account_count: int, expense_count: int) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.STATE_SAVED,
            severity=AuditSeverity.DEBUG,
            entity_type="state",
            description="State saved",
            details={
                "account_count": account_count,
                "expense_count": expense_count,
            },
        )

    @staticmethod
    def save_failed(error_message: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SAVE_FAILED,
            severity=AuditSeverity.ERROR,
            entity_type="state",
            description="Failed to save state",
            error_message=error_message,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
