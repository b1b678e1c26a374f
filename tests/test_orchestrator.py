"""Tests for the end-to-end import flow and component wiring."""

import asyncio
from uuid import uuid4

import pytest

from expensy.config import get_settings
from expensy.models.audit import AuditEventType
from expensy.orchestrator import (
    ExpenseImportFlow,
    ImportInProgressError,
    create_app_components,
)
from expensy.services.storage import InMemoryAccountStorage, StorageError

from conftest import FakeModel, records_json


UBER = {"date": "15/05", "description": "Uber *Trip", "amount": 24.9}
IFOOD = {"date": "16/05", "description": "iFood", "amount": 58}
PAYMENT = {"date": "10/05", "description": "Pagamento recebido", "amount": -1200}


@pytest.fixture
def make_flow(store, audit_logger, make_gateway):
    def _make(model: FakeModel) -> ExpenseImportFlow:
        return ExpenseImportFlow(store, make_gateway(model), audit_logger)
    return _make


class TestImportFlow:
    """Tests for ExpenseImportFlow."""

    def test_text_import_appends_and_persists(self, make_flow, store, storage):
        """Test a successful import adds the records to the account and saves them."""
        flow = make_flow(FakeModel(text=records_json(UBER, IFOOD)))

        outcome = asyncio.run(flow.import_text("2", "15/05 UBER 24,90\n16/05 IFOOD 58,00"))

        assert outcome.success is True
        assert outcome.account_id == "2"
        assert outcome.imported_count == 2
        assert outcome.message == "2 purchases imported."
        expenses = store.get_account("2").expenses
        assert [e.description for e in expenses] == ["Uber *Trip", "iFood"]
        assert all(e.receipt_attached is False for e in expenses)
        assert outcome.expenses == expenses
        assert "Uber *Trip" in storage.read_document()
        assert flow.is_processing() is False

    def test_document_import(self, make_flow, store):
        """Test an uploaded image goes through the same flow."""
        flow = make_flow(FakeModel(text=records_json(UBER)))

        outcome = asyncio.run(flow.import_document("1", b"\x89PNG", "image/png"))

        assert outcome.success is True
        assert len(store.get_account("1").expenses) == 1

    def test_imports_append_after_existing_expenses(self, make_flow, store):
        """Test a second import keeps the earlier ones in front."""
        asyncio.run(make_flow(FakeModel(text=records_json(UBER))).import_text("1", "a"))
        asyncio.run(make_flow(FakeModel(text=records_json(IFOOD))).import_text("1", "b"))

        assert [e.description for e in store.get_account("1").expenses] == [
            "Uber *Trip",
            "iFood",
        ]

    def test_skipped_lines_are_reported(self, make_flow, store):
        """Test rejected records are counted in the outcome message."""
        flow = make_flow(FakeModel(text=records_json(PAYMENT, UBER)))

        outcome = asyncio.run(flow.import_text("1", "statement"))

        assert outcome.imported_count == 1
        assert outcome.rejected_count == 1
        assert outcome.message == "1 purchases imported. 1 lines were skipped."
        assert store.summary("1").total_amount > 0

    def test_service_failure_changes_nothing(self, make_flow, store, storage):
        """Test a failed extraction leaves accounts and the saved document untouched."""
        before_accounts = store.accounts
        before_document = storage.read_document()
        flow = make_flow(FakeModel(error=TimeoutError("deadline exceeded")))

        outcome = asyncio.run(flow.import_text("1", "15/05 UBER 24,90"))

        assert outcome.success is False
        assert outcome.message == "Could not process the statement. Please try again."
        assert store.accounts == before_accounts
        assert storage.read_document() == before_document
        assert flow.is_processing("1") is False

    def test_malformed_response_changes_nothing(self, make_flow, store, storage):
        """Test a prose answer from the model imports nothing."""
        writes = storage.write_count
        flow = make_flow(FakeModel(text="Sorry, I can't read that."))

        outcome = asyncio.run(flow.import_text("1", "15/05 UBER 24,90"))

        assert outcome.success is False
        assert outcome.imported_count == 0
        assert store.get_account("1").expenses == []
        assert storage.write_count == writes

    def test_empty_response_reports_nothing_found(self, make_flow, store):
        """Test an empty array is reported as no purchases found."""
        flow = make_flow(FakeModel(text="[]"))

        outcome = asyncio.run(flow.import_text("1", "no purchases here"))

        assert outcome.success is False
        assert outcome.message == "No purchases were found in the statement."
        assert store.get_account("1").expenses == []

    def test_unsupported_document_is_reported(self, make_flow):
        """Test the validation message is passed on to the user."""
        model = FakeModel(text=records_json(UBER))
        flow = make_flow(model)

        outcome = asyncio.run(flow.import_document("1", b"GIF89a", "image/gif"))

        assert outcome.success is False
        assert "image/gif" in outcome.message
        assert model.calls == []

    def test_save_failure_imports_nothing(self, make_flow, store, storage):
        """Test a write failure after extraction leaves the account unchanged."""
        flow = make_flow(FakeModel(text=records_json(UBER, IFOOD)))
        storage.fail_writes = True

        outcome = asyncio.run(flow.import_text("1", "statement"))

        assert outcome.success is False
        assert outcome.message == "The purchases could not be saved. Nothing was imported."
        assert store.get_account("1").expenses == []
        assert flow.is_processing("1") is False

    def test_stale_account_id_imports_into_first_account(self, make_flow, store):
        """Test an unknown target account falls back to the first account."""
        flow = make_flow(FakeModel(text=records_json(UBER)))

        outcome = asyncio.run(flow.import_text("closed-card", "statement"))

        assert outcome.account_id == "1"
        assert len(store.get_account("1").expenses) == 1

    def test_events_share_correlation_id(self, make_flow, audit_logger):
        """Test every event of one import carries the same correlation id."""
        flow = make_flow(FakeModel(text=records_json(UBER)))
        correlation_id = uuid4()

        outcome = asyncio.run(flow.import_text("1", "statement", correlation_id))

        assert outcome.correlation_id == correlation_id
        types = [e.event_type for e in audit_logger.events_for_correlation(correlation_id)]
        assert types == [
            AuditEventType.EXTRACTION_STARTED,
            AuditEventType.EXTRACTION_COMPLETED,
            AuditEventType.EXPENSES_ADDED,
        ]


class TestProcessingGuard:
    """Tests for the one-import-per-account guard."""

    def test_second_import_for_same_account_is_refused(self, store, audit_logger, make_gateway):
        """Test a concurrent import on a busy account raises and changes nothing."""

        async def scenario():
            gate = asyncio.Event()
            flow = ExpenseImportFlow(
                store,
                make_gateway(FakeModel(text=records_json(UBER), gate=gate)),
                audit_logger,
            )

            first = asyncio.create_task(flow.import_text("1", "slow statement"))
            await asyncio.sleep(0)
            assert flow.is_processing("1") is True
            assert flow.is_processing("2") is False

            with pytest.raises(ImportInProgressError):
                await flow.import_text("1", "fast statement")

            other = await flow.import_text("2", "fast statement")

            gate.set()
            outcome = await first
            return flow, outcome, other

        flow, outcome, other = asyncio.run(scenario())

        assert outcome.success is True
        assert other.success is True
        assert len(store.get_account("1").expenses) == 1
        assert len(store.get_account("2").expenses) == 1
        assert flow.is_processing() is False

        rejected = [
            e for e in audit_logger.recent_events()
            if e.event_type == AuditEventType.IMPORT_REJECTED
        ]
        assert len(rejected) == 1

    def test_guard_is_released_after_failure(self, make_flow, store):
        """Test the account can import again after a failed attempt."""
        model = FakeModel(error=ConnectionError("offline"))
        flow = make_flow(model)

        assert asyncio.run(flow.import_text("1", "statement")).success is False

        model.error = None
        model.text = records_json(UBER)
        assert asyncio.run(flow.import_text("1", "statement")).success is True


class TestCreateAppComponents:
    """Tests for the component factory."""

    def test_without_gemini_key_data_is_still_usable(self, monkeypatch, tmp_path):
        """Test a missing API key disables imports but not the store."""
        monkeypatch.chdir(tmp_path)
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        get_settings.cache_clear()

        store, import_flow, audit_logger = create_app_components(
            storage=InMemoryAccountStorage()
        )

        assert import_flow is None
        assert len(store.accounts) == 3
        assert store.toggle_receipt("1", "missing") is False
        assert audit_logger.recent_events()


    def test_unreadable_storage_falls_back_to_memory(self, monkeypatch, tmp_path):
        """Test a storage read failure still gives a working store and a warning."""
        monkeypatch.chdir(tmp_path)
        monkeypatch.delenv("GEMINI_API_KEY", raising=False)
        get_settings.cache_clear()

        class UnreadableStorage(InMemoryAccountStorage):
            def read_document(self):
                raise StorageError("permission denied")

        store, _, audit_logger = create_app_components(storage=UnreadableStorage())

        assert store.startup_warning is not None
        assert len(store.accounts) == 3
        types = [e.event_type for e in audit_logger.recent_events()]
        assert AuditEventType.SYSTEM_ERROR in types
