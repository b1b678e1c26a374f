"""Tests for the state slot: serialization, local file storage and startup recovery."""

import json
from decimal import Decimal

import pytest

from expensy.models.audit import AuditEventType
from expensy.models.expense import PersistedState, STATE_SCHEMA_VERSION
from expensy.services.storage import (
    CorruptStateError,
    InMemoryAccountStorage,
    LocalJsonAccountStorage,
    parse_state_document,
    serialize_state,
)
from expensy.store import AccountStore, load_or_seed, seed_accounts

from conftest import make_account, make_expense


LEGACY_DOCUMENT = json.dumps([
    {
        "id": "1",
        "name": "Nubank Principal",
        "lastFourDigits": "4582",
        "color": "bg-purple-600",
        "expenses": [
            {
                "id": "k3j9x0a1b",
                "date": "12/04",
                "description": "Supermercado",
                "amount": 150,
                "receiptAttached": True,
                "category": "Alimentação",
            }
        ],
    },
    {
        "id": "2",
        "name": "Itaú Personalité",
        "lastFourDigits": "1290",
        "color": "bg-orange-500",
        "expenses": [],
    },
])


LEGACY_WITH_CREDIT = json.dumps([
    {
        "id": "1",
        "name": "Nubank Principal",
        "lastFourDigits": "4582",
        "color": "bg-purple-600",
        "expenses": [
            {"id": "a1", "date": "12/04", "description": "Supermercado", "amount": 150, "receiptAttached": True},
            {"id": "a2", "date": "13/04", "description": "Estorno", "amount": -20, "receiptAttached": False},
        ],
    },
])


class TestStateDocument:
    """Tests for parse_state_document / serialize_state."""

    def test_serialize_uses_envelope_and_camel_case(self):
        """Test the saved document has a version and camelCase fields."""
        state = PersistedState(accounts=[make_account([make_expense()])])
        data = json.loads(serialize_state(state))

        assert data["schema_version"] == STATE_SCHEMA_VERSION
        account = data["accounts"][0]
        assert account["lastFourDigits"] == "4582"
        assert account["expenses"][0]["receiptAttached"] is False

    def test_round_trip_preserves_accounts(self):
        """Test a saved document parses back to equal data."""
        state = PersistedState(accounts=[
            make_account([make_expense(category="Mercado"), make_expense("Bar", "7.30")]),
        ])
        assert parse_state_document(serialize_state(state)) == state

    def test_legacy_array_is_version_zero(self):
        """Test the unversioned array layout is accepted."""
        state = parse_state_document(LEGACY_DOCUMENT)
        assert state.schema_version == 0
        assert len(state.accounts) == 2
        expense = state.accounts[0].expenses[0]
        assert expense.amount == Decimal("150.00")
        assert expense.receipt_attached is True
        assert expense.category == "Alimentação"

    @pytest.mark.parametrize(
        "raw",
        [
            "{not json",
            "",
            '"just a string"',
            "42",
            '{"accounts": []}',
            '{"schema_version": "1", "accounts": []}',
            '{"schema_version": 1, "accounts": [{"id": "1"}]}',
            '{"schema_version": 1, "accounts": [{"id": "1", "name": "Card", "expenses": [{"amount": -5}]}]}',
            '[{"id": "1", "name": "Card", "expenses": ["not an expense"]}]',
        ],
    )
    def test_unreadable_documents_raise(self, raw):
        """Test invalid JSON, layouts and account data are reported as corrupt."""
        with pytest.raises(CorruptStateError):
            parse_state_document(raw)

    def test_newer_schema_version_raises(self):
        """Test a document from a newer version is not silently downgraded."""
        raw = json.dumps({"schema_version": STATE_SCHEMA_VERSION + 1, "accounts": []})
        with pytest.raises(CorruptStateError, match="newer version"):
            parse_state_document(raw)

    def test_duplicate_expense_ids_raise(self):
        """Test the per-account id uniqueness invariant is checked on load."""
        account = make_account([
            make_expense(expense_id="same"),
            make_expense(expense_id="same"),
        ])
        raw = serialize_state(PersistedState(accounts=[account]))
        with pytest.raises(CorruptStateError, match="duplicate expense ids"):
            parse_state_document(raw)

    def test_legacy_credits_are_dropped_one_by_one(self):
        """Test a legacy negative amount drops that expense, not the document."""
        state = parse_state_document(LEGACY_WITH_CREDIT)

        assert state.dropped_expense_count == 1
        assert [e.description for e in state.accounts[0].expenses] == ["Supermercado"]
        assert state.accounts[0].expenses[0].receipt_attached is True

    def test_current_documents_report_no_drops(self):
        """Test a versioned document never has expenses dropped."""
        raw = serialize_state(PersistedState(accounts=[make_account([make_expense()])]))
        assert parse_state_document(raw).dropped_expense_count == 0

    def test_duplicate_account_ids_raise(self):
        """Test two accounts may not share an id."""
        raw = serialize_state(PersistedState(accounts=[make_account(), make_account()]))
        with pytest.raises(CorruptStateError, match="duplicate account ids"):
            parse_state_document(raw)


class TestLocalJsonStorage:
    """Tests for the file-backed slot."""

    def test_empty_slot_loads_none(self, storage_settings):
        """Test a missing file means nothing saved."""
        assert LocalJsonAccountStorage(storage_settings).load() is None

    def test_save_and_load(self, storage_settings):
        """Test the document is written under the state key and read back."""
        storage = LocalJsonAccountStorage(storage_settings)
        state = PersistedState(accounts=seed_accounts())
        storage.save(state)

        assert storage.path.name == "expensy_cards.json"
        assert storage.load() == state

    def test_save_overwrites_whole_document(self, storage_settings):
        """Test each save replaces the file and leaves no temp files."""
        storage = LocalJsonAccountStorage(storage_settings)
        storage.save(PersistedState(accounts=seed_accounts()))
        storage.save(PersistedState(accounts=[make_account()]))

        assert len(storage.load().accounts) == 1
        files = list(storage.path.parent.iterdir())
        assert files == [storage.path]

    def test_preserve_corrupt_document(self, storage_settings):
        """Test an unreadable file is copied aside."""
        storage = LocalJsonAccountStorage(storage_settings)
        storage.path.parent.mkdir(parents=True)
        storage.path.write_text("{broken", encoding="utf-8")

        backup = storage.preserve_corrupt_document("{broken")

        assert backup is not None
        assert "corrupt" in backup
        with open(backup, encoding="utf-8") as f:
            assert f.read() == "{broken"

    def test_invalid_utf8_is_reported_as_corrupt(self, storage_settings):
        """Test undecodable bytes are a corrupt document, not an I/O failure."""
        storage = LocalJsonAccountStorage(storage_settings)
        storage.path.parent.mkdir(parents=True)
        storage.path.write_bytes(b'[{"id": "1", "name": "\xff"}]')

        with pytest.raises(CorruptStateError):
            storage.read_document()


class TestLoadOrSeed:
    """Tests for startup loading."""

    def test_empty_slot_is_seeded_and_saved(self, audit_logger):
        """Test first run seeds the default accounts."""
        storage = InMemoryAccountStorage()
        accounts, warning = load_or_seed(storage, audit_logger)

        assert warning is None
        assert len(accounts) == 3
        assert parse_state_document(storage.read_document()).accounts == accounts

    def test_corrupt_slot_falls_back_to_seed(self, audit_logger):
        """Test corrupted data is kept aside, the seed is used and the user is warned."""
        storage = InMemoryAccountStorage(document="{definitely not json")
        accounts, warning = load_or_seed(storage, audit_logger)

        assert [a.id for a in accounts] == ["1", "2", "3"]
        assert warning is not None
        assert storage.slots["expensy_cards.corrupt"] == "{definitely not json"
        assert parse_state_document(storage.read_document()).accounts == accounts

        types = [e.event_type for e in audit_logger.recent_events()]
        assert AuditEventType.STATE_CORRUPTED in types

    def test_corrupt_file_is_kept_on_disk(self, storage_settings):
        """Test the local file backend keeps a copy of the corrupted file."""
        storage = LocalJsonAccountStorage(storage_settings)
        storage.path.parent.mkdir(parents=True)
        storage.path.write_text("[{]", encoding="utf-8")

        store = AccountStore.open(storage)

        assert store.startup_warning is not None
        backups = list(storage.path.parent.glob("expensy_cards.corrupt-*.json"))
        assert len(backups) == 1
        assert backups[0].read_text(encoding="utf-8") == "[{]"
        assert storage.load() is not None

    def test_legacy_document_is_migrated(self, audit_logger):
        """Test an unversioned document is upgraded and saved back."""
        storage = InMemoryAccountStorage(document=LEGACY_DOCUMENT)
        accounts, warning = load_or_seed(storage, audit_logger)

        assert warning is None
        assert accounts[0].expenses[0].description == "Supermercado"
        saved = json.loads(storage.read_document())
        assert saved["schema_version"] == STATE_SCHEMA_VERSION

        types = [e.event_type for e in audit_logger.recent_events()]
        assert AuditEventType.STATE_MIGRATED in types

    def test_current_document_is_not_rewritten(self, audit_logger):
        """Test loading an up-to-date document does not write."""
        raw = serialize_state(PersistedState(accounts=[make_account([make_expense()])]))
        storage = InMemoryAccountStorage(document=raw)
        load_or_seed(storage, audit_logger)
        assert storage.write_count == 0

    def test_document_without_accounts_is_seeded(self, audit_logger):
        """Test an empty account list is replaced by the seed."""
        storage = InMemoryAccountStorage(document='{"schema_version": 1, "accounts": []}')
        accounts, _ = load_or_seed(storage, audit_logger)
        assert len(accounts) == 3

    def test_legacy_credit_keeps_other_expenses(self, audit_logger):
        """Test one negative legacy line is removed and everything else survives."""
        storage = InMemoryAccountStorage(document=LEGACY_WITH_CREDIT)
        accounts, warning = load_or_seed(storage, audit_logger)

        assert [a.id for a in accounts] == ["1"]
        assert [e.id for e in accounts[0].expenses] == ["a1"]
        assert accounts[0].expenses[0].amount == Decimal("150.00")
        assert warning is not None
        assert "1 saved purchases" in warning
        assert storage.slots["expensy_cards.corrupt"] == LEGACY_WITH_CREDIT

        saved = parse_state_document(storage.read_document())
        assert saved.schema_version == STATE_SCHEMA_VERSION
        assert saved.accounts == accounts

        [migrated] = [
            e for e in audit_logger.recent_events()
            if e.event_type == AuditEventType.STATE_MIGRATED
        ]
        assert migrated.details["dropped_expenses"] == 1

    def test_invalid_utf8_file_is_recovered(self, storage_settings):
        """Test an undecodable file is kept aside and the slot works again."""
        storage = LocalJsonAccountStorage(storage_settings)
        storage.path.parent.mkdir(parents=True)
        original = b'[{"id": "1", "name": "\xff"}]'
        storage.path.write_bytes(original)

        store = AccountStore.open(storage)

        assert store.startup_warning is not None
        backups = list(storage.path.parent.glob("expensy_cards.corrupt-*.json"))
        assert len(backups) == 1
        assert backups[0].read_bytes() == original

        reopened = AccountStore.open(storage)
        assert reopened.startup_warning is None
        assert len(reopened.accounts) == 3
