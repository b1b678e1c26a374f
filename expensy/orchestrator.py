"""
Main Orchestrator for Expensy

This module ties together all the components and defines the
end-to-end import flow:

    statement text / document -> extraction -> validation -> account store

DESIGN DECISION: The orchestrator enforces the boundaries:
- A failed or empty extraction adds nothing to the account
- One import appends all its records in a single store mutation
- Only one import per account can be in flight at a time
- Every step is audited

This is the "glue" that keeps the account data consistent even when
the extraction service misbehaves.
"""

from typing import Awaitable, Callable, Optional
from uuid import UUID

import structlog

from expensy.audit import AuditLogger, configure_logging, create_correlation_id
from expensy.config import Settings, get_settings
from expensy.models.audit import AuditEventBuilder
from expensy.models.expense import (
    ExtractionResult,
    ExtractionStatus,
    ImportOutcome,
)
from expensy.services.extraction import (
    ExtractionError,
    GeminiExtractionGateway,
    UnsupportedDocumentError,
)
from expensy.services.storage import (
    AccountStateStorage,
    InMemoryAccountStorage,
    LocalJsonAccountStorage,
    StorageError,
)
from expensy.store import AccountStore


logger = structlog.get_logger(__name__)


class ImportInProgressError(Exception):
    """An import is already running for this account."""

    def __init__(self, account_id: str):
        self.account_id = account_id
        super().__init__(
            f"An import is already being processed for account {account_id}"
        )


class ExpenseImportFlow:
    """
    Orchestrates statement imports into the account store.

    Flow:
    1. Guard -> refuse if this account already has an import in flight
    2. Extract -> gateway call (the only await in the flow)
    3. Check -> malformed or empty results stop here
    4. Append -> one add_expenses call, saved before it becomes visible

    No retries and no timeout: a failed import is re-triggered by the user.
    """

    def __init__(
        self,
        store: AccountStore,
        gateway: GeminiExtractionGateway,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._store = store
        self._gateway = gateway
        self._audit_logger = audit_logger or AuditLogger()
        self._processing: set[str] = set()

    def is_processing(self, account_id: Optional[str] = None) -> bool:
        """Is an import in flight for this account (default: any account)?"""
        if account_id is None:
            return bool(self._processing)
        return account_id in self._processing

    async def import_text(
        self,
        account_id: str,
        text: str,
        correlation_id: Optional[UUID] = None,
    ) -> ImportOutcome:
        """Import purchases from pasted statement text."""
        return await self._run_import(
            account_id,
            source="text",
            extract=lambda: self._gateway.extract_from_text(text),
            correlation_id=correlation_id,
        )

    async def import_document(
        self,
        account_id: str,
        data: bytes,
        mime_type: str,
        correlation_id: Optional[UUID] = None,
    ) -> ImportOutcome:
        """Import purchases from an uploaded statement image or PDF."""
        return await self._run_import(
            account_id,
            source=mime_type or "document",
            extract=lambda: self._gateway.extract_from_document(data, mime_type),
            correlation_id=correlation_id,
        )

    async def _run_import(
        self,
        account_id: str,
        source: str,
        extract: Callable[[], Awaitable[ExtractionResult]],
        correlation_id: Optional[UUID],
    ) -> ImportOutcome:
        correlation_id = correlation_id or create_correlation_id()
        target_id = self._store.target_account_id(account_id)

        if target_id in self._processing:
            self._audit_logger.log(
                AuditEventBuilder.import_rejected(
                    target_id, "import already in progress", correlation_id
                )
            )
            raise ImportInProgressError(target_id)

        self._processing.add(target_id)
        try:
            self._audit_logger.log(
                AuditEventBuilder.extraction_started(target_id, source, correlation_id)
            )

            try:
                result = await extract()
            except UnsupportedDocumentError as e:
                self._audit_logger.log(
                    AuditEventBuilder.import_rejected(target_id, str(e), correlation_id)
                )
                return self._failure(target_id, str(e), correlation_id)
            except ExtractionError as e:
                self._audit_logger.log(
                    AuditEventBuilder.extraction_failed(target_id, str(e), correlation_id)
                )
                return self._failure(
                    target_id,
                    "Could not process the statement. Please try again.",
                    correlation_id,
                )

            if result.status == ExtractionStatus.MALFORMED:
                self._audit_logger.log(
                    AuditEventBuilder.extraction_malformed(
                        target_id, result.error_message, correlation_id
                    )
                )
                return self._failure(
                    target_id,
                    "The statement could not be read. Please try again.",
                    correlation_id,
                )

            self._audit_logger.log(
                AuditEventBuilder.extraction_completed(
                    target_id,
                    len(result.records),
                    result.rejected_count,
                    correlation_id,
                )
            )

            if not result.has_records:
                return self._failure(
                    target_id,
                    "No purchases were found in the statement.",
                    correlation_id,
                    rejected_count=result.rejected_count,
                )

            try:
                added = self._store.add_expenses(
                    target_id, result.to_expenses(), correlation_id
                )
            except StorageError as e:
                logger.error("import_save_failed", account_id=target_id, error=str(e))
                return self._failure(
                    target_id,
                    "The purchases could not be saved. Nothing was imported.",
                    correlation_id,
                )

            message = f"{len(added)} purchases imported."
            if result.rejected_count:
                message += f" {result.rejected_count} lines were skipped."

            return ImportOutcome(
                success=True,
                account_id=target_id,
                imported_count=len(added),
                rejected_count=result.rejected_count,
                message=message,
                expenses=added,
                correlation_id=correlation_id,
            )
        finally:
            self._processing.discard(target_id)

    @staticmethod
    def _failure(
        account_id: str,
        message: str,
        correlation_id: UUID,
        rejected_count: int = 0,
    ) -> ImportOutcome:
        return ImportOutcome(
            success=False,
            account_id=account_id,
            rejected_count=rejected_count,
            message=message,
            correlation_id=correlation_id,
        )


def create_storage(settings: Settings) -> AccountStateStorage:
    """Local JSON storage, or in-memory if the storage settings are invalid."""
    try:
        return LocalJsonAccountStorage(settings.storage)
    except Exception as e:
        logger.warning("storage_not_configured", error=str(e))
        return InMemoryAccountStorage()


def create_app_components(
    settings: Optional[Settings] = None,
    storage: Optional[AccountStateStorage] = None,
) -> tuple[AccountStore, Optional[ExpenseImportFlow], AuditLogger]:
    """
    Factory function to create all application components.

    Args:
        settings: Settings to use (default: get_settings())
        storage: State slot to use (default: local JSON file)

    Returns:
        (account_store, import_flow_or_None, audit_logger)

    The import flow is None when Gemini is not configured; saved data can
    still be browsed and reconciled.
    """
    settings = settings or get_settings()
    configure_logging(settings.app.log_level)
    audit_logger = AuditLogger()

    storage = storage or create_storage(settings)
    try:
        store = AccountStore.open(storage, audit_logger)
    except StorageError as e:
        logger.warning("storage_unavailable", error=str(e))
        audit_logger.log(AuditEventBuilder.system_error(type(e).__name__, str(e)))
        store = AccountStore.open(InMemoryAccountStorage(), audit_logger)
        store.startup_warning = (
            "Your saved data could not be accessed. Changes in this session will not be kept."
        )

    import_flow = None
    try:
        gateway = GeminiExtractionGateway(settings.gemini, settings.app)
        import_flow = ExpenseImportFlow(store, gateway, audit_logger)
    except Exception as e:
        logger.warning("extraction_not_configured", error=str(e))

    return store, import_flow, audit_logger
