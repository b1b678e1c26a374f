"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for the state slot.
This allows us to:
1. Keep the state in a local JSON file for normal use
2. Use in-memory storage for testing
3. Keep the account store decoupled from where bytes live

The slot holds ONE document: every account with its expenses.
Every save overwrites it as a whole; there is no partial write.
"""

import json
from abc import ABC, abstractmethod
from typing import Optional

from pydantic import ValidationError

from expensy.models.expense import (
    STATE_SCHEMA_VERSION,
    Expense,
    PersistedState,
)


class AccountStateStorage(ABC):
    """
    Abstract key-value slot holding the persisted account collection.

    Implementations only move text in and out of the slot.
    Parsing, validation and migration are shared here.
    """

    @property
    @abstractmethod
    def key(self) -> str:
        """The well-known key the document is stored under."""
        pass

    @abstractmethod
    def read_document(self) -> Optional[str]:
        """
        Read the raw document.

        Returns:
            The stored text, or None if nothing was ever saved

        Raises:
            CorruptStateError: If the stored bytes are not valid text
            StorageError: If the slot cannot be read
        """
        pass

    @abstractmethod
    def write_document(self, document: str) -> None:
        """
        Replace the stored document.

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    def preserve_corrupt_document(self, document: Optional[str]) -> Optional[str]:
        """
        Keep a copy of an unreadable document before it gets overwritten.

        `document` is None when the stored bytes could not even be decoded.

        Returns:
            Where the copy was put, or None if it could not be kept
        """
        pass

    def load(self) -> Optional[PersistedState]:
        """
        Load and validate the stored state.

        Returns:
            The state, or None if the slot is empty

        Raises:
            CorruptStateError: If the document exists but cannot be used
        """
        raw = self.read_document()
        if raw is None:
            return None
        return parse_state_document(raw)

    def save(self, state: PersistedState) -> None:
        """Serialize and overwrite the stored state."""
        self.write_document(serialize_state(state))


def serialize_state(state: PersistedState) -> str:
    """Render the state document as JSON text (camelCase keys)."""
    return state.model_dump_json(by_alias=True, indent=2)


def parse_state_document(raw: str) -> PersistedState:
    """
    Parse a stored document into the current state layout.

    Accepts:
    - the versioned envelope {"schema_version": 1, "accounts": [...]}
    - the legacy bare array of accounts (schema version 0),
      migrated to the current version in memory
    - legacy expenses that fail validation (e.g. negative amounts) are
      dropped and counted in `dropped_expense_count`

    Raises:
        CorruptStateError: On invalid JSON, an unknown layout,
            a newer schema version, or account data failing validation
    """
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, TypeError) as e:
        raise CorruptStateError(f"State document is not valid JSON: {e}") from e

    dropped = 0
    if isinstance(data, list):
        # Legacy layout: no envelope, no version
        accounts, dropped = _salvage_legacy_accounts(data)
        data = {"schema_version": 0, "accounts": accounts}
    elif not isinstance(data, dict):
        raise CorruptStateError(
            f"Unexpected state document type: {type(data).__name__}"
        )

    version = data.get("schema_version")
    if not isinstance(version, int) or isinstance(version, bool):
        raise CorruptStateError(f"Missing or invalid schema_version: {version!r}")
    if version > STATE_SCHEMA_VERSION:
        raise CorruptStateError(
            f"State was written by a newer version (schema {version}, "
            f"supported up to {STATE_SCHEMA_VERSION})"
        )

    try:
        state = PersistedState.model_validate(data)
    except ValidationError as e:
        raise CorruptStateError(
            f"State document failed validation: {e.error_count()} errors"
        ) from e

    ids = [account.id for account in state.accounts]
    if len(ids) != len(set(ids)):
        raise CorruptStateError("State document has duplicate account ids")

    for account in state.accounts:
        expense_ids = [expense.id for expense in account.expenses]
        if len(expense_ids) != len(set(expense_ids)):
            raise CorruptStateError(
                f"Account {account.id} has duplicate expense ids"
            )

    state._dropped_expenses = dropped
    return state


def _salvage_legacy_accounts(accounts: list) -> tuple[list, int]:
    """
    Drop legacy expenses that no longer validate, one by one.

    Older versions stored credits and refunds as negative amounts.
    Only expense objects are dropped; anything else is left for
    validation to reject.

    Returns:
        (accounts, number_of_dropped_expenses)
    """
    dropped = 0
    salvaged = []
    for account in accounts:
        if not isinstance(account, dict) or not isinstance(account.get("expenses"), list):
            salvaged.append(account)
            continue
        kept = []
        for expense in account["expenses"]:
            if isinstance(expense, dict):
                try:
                    Expense.model_validate(expense)
                except ValidationError:
                    dropped += 1
                    continue
            kept.append(expense)
        salvaged.append({**account, "expenses": kept})
    return salvaged, dropped


def migrate_state(state: PersistedState) -> PersistedState:
    """
    Bring a loaded state up to the current schema version.

    Version 0 -> 1 only adds the envelope, so account data is kept as is.
    """
    if state.schema_version == STATE_SCHEMA_VERSION:
        return state
    return state.model_copy(update={"schema_version": STATE_SCHEMA_VERSION})


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class CorruptStateError(StorageError):
    """The stored document exists but cannot be read back."""
    pass
