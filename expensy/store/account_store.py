"""
Account Store

Holds the authoritative list of card accounts and mediates every change.

DESIGN DECISION: Mutations are pure functions from
(current accounts, arguments) to a new accounts list. Inputs are never
modified in place; the stateful AccountStore persists the new list first
and only then swaps it in, so nothing outside ever sees a change that was
not saved.

ACTIVE ACCOUNT POLICY:
Every mutation targets exactly one account. The target is resolved with
resolve_active_account: if the requested id matches no stored account, the
FIRST account is used. This fallback is deliberate and audited.
"""

from typing import Optional, Sequence
from uuid import UUID

import structlog

from expensy.audit import AuditLogger
from expensy.models.audit import AuditEventBuilder
from expensy.models.expense import (
    CardAccount,
    Expense,
    PersistedState,
    SummaryStats,
    new_expense_id,
)
from expensy.queries.summary import compute_summary
from expensy.services.storage import (
    AccountStateStorage,
    CorruptStateError,
    migrate_state,
    parse_state_document,
)


logger = structlog.get_logger(__name__)


# (id, name, last four digits, display color)
SEED_ACCOUNTS = (
    ("1", "Nubank Principal", "4582", "#9333ea"),
    ("2", "Itaú Personalité", "1290", "#f97316"),
    ("3", "Inter Corporativo", "8831", "#ea580c"),
)


class StoreError(Exception):
    """Base exception for account store errors."""
    pass


class NoAccountsError(StoreError):
    """The store has no accounts to act on."""
    pass


def seed_accounts() -> list[CardAccount]:
    """The default accounts used when nothing has been saved yet."""
    return [
        CardAccount(id=id_, name=name, last_four_digits=digits, color=color)
        for id_, name, digits, color in SEED_ACCOUNTS
    ]


# =============================================================================
# PURE OPERATIONS
# Each returns a new list. When nothing changes, the input list itself is
# returned, so callers can test `result is accounts`.
# =============================================================================

def resolve_active_account(
    accounts: Sequence[CardAccount],
    account_id: Optional[str],
) -> CardAccount:
    """
    Find the account for `account_id`, defaulting to the first account.

    Raises:
        NoAccountsError: If there are no accounts at all
    """
    if not accounts:
        raise NoAccountsError("There are no card accounts")
    for account in accounts:
        if account.id == account_id:
            return account
    return accounts[0]


def _replace_account(
    accounts: list[CardAccount],
    updated: CardAccount,
) -> list[CardAccount]:
    return [updated if account.id == updated.id else account for account in accounts]


def _find_account(accounts: Sequence[CardAccount], account_id: str) -> Optional[CardAccount]:
    for account in accounts:
        if account.id == account_id:
            return account
    return None


def add_expenses(
    accounts: list[CardAccount],
    account_id: str,
    new_expenses: Sequence[Expense],
) -> list[CardAccount]:
    """
    Append expenses to the end of one account, keeping their order.

    Incoming ids that already exist in the account (or repeat within the
    batch) are replaced with fresh ones, so ids stay unique per account.
    Amounts are not checked again here.
    """
    target = _find_account(accounts, account_id)
    if target is None or not new_expenses:
        return accounts

    taken = target.expense_ids
    appended = []
    for expense in new_expenses:
        copy = expense.model_copy(deep=True)
        if copy.id in taken:
            copy.id = new_expense_id()
            while copy.id in taken:
                copy.id = new_expense_id()
        taken.add(copy.id)
        appended.append(copy)

    updated = target.model_copy(update={"expenses": [*target.expenses, *appended]})
    return _replace_account(accounts, updated)


def toggle_receipt(
    accounts: list[CardAccount],
    account_id: str,
    expense_id: str,
) -> list[CardAccount]:
    """Flip receipt_attached on one expense. No-op if it is not there."""
    target = _find_account(accounts, account_id)
    if target is None or target.find_expense(expense_id) is None:
        return accounts

    expenses = [
        expense.model_copy(update={"receipt_attached": not expense.receipt_attached})
        if expense.id == expense_id
        else expense
        for expense in target.expenses
    ]
    return _replace_account(accounts, target.model_copy(update={"expenses": expenses}))


def delete_expense(
    accounts: list[CardAccount],
    account_id: str,
    expense_id: str,
) -> list[CardAccount]:
    """Remove one expense by id. No-op if it is not there."""
    target = _find_account(accounts, account_id)
    if target is None or target.find_expense(expense_id) is None:
        return accounts

    expenses = [expense for expense in target.expenses if expense.id != expense_id]
    return _replace_account(accounts, target.model_copy(update={"expenses": expenses}))


def clear_all(accounts: list[CardAccount], account_id: str) -> list[CardAccount]:
    """
    Empty one account's expenses.

    Asking the user for confirmation is the caller's job.
    """
    target = _find_account(accounts, account_id)
    if target is None or not target.expenses:
        return accounts

    return _replace_account(accounts, target.model_copy(update={"expenses": []}))


# =============================================================================
# STARTUP
# =============================================================================

def load_or_seed(
    storage: AccountStateStorage,
    audit_logger: Optional[AuditLogger] = None,
) -> tuple[list[CardAccount], Optional[str]]:
    """
    Read the saved accounts, or fall back to the seed.

    - Nothing saved -> seed accounts
    - Saved document unreadable -> it is copied aside, seed accounts are
      used, and a warning message is returned for the user
    - Legacy (unversioned) document -> migrated and saved back; expenses
      that no longer validate are dropped; if any were, the original is
      copied aside and a warning message is returned

    Returns:
        (accounts, warning_message_or_None)
    """
    audit = audit_logger or AuditLogger()
    try:
        raw = storage.read_document()
    except CorruptStateError as e:
        return _recover_from_corruption(storage, audit, None, e)

    if raw is None:
        accounts = seed_accounts()
        storage.save(PersistedState(accounts=accounts))
        audit.log(AuditEventBuilder.state_seeded(len(accounts)))
        return accounts, None

    try:
        state = parse_state_document(raw)
    except CorruptStateError as e:
        return _recover_from_corruption(storage, audit, raw, e)

    if not state.accounts:
        accounts = seed_accounts()
        storage.save(PersistedState(accounts=accounts))
        audit.log(AuditEventBuilder.state_seeded(len(accounts)))
        return accounts, None

    warning = None
    migrated = migrate_state(state)
    if migrated is not state:
        dropped = state.dropped_expense_count
        backup = storage.preserve_corrupt_document(raw) if dropped else None
        storage.save(migrated)
        audit.log(
            AuditEventBuilder.state_migrated(
                state.schema_version, migrated.schema_version, dropped, backup
            )
        )
        if dropped:
            warning = (
                f"{dropped} saved purchases with an invalid amount (such as credits "
                f"or refunds) could not be loaded and were removed."
            )
            if backup:
                warning += f" The original data was kept at {backup}."

    audit.log(AuditEventBuilder.state_loaded(len(migrated.accounts), migrated.schema_version))
    return list(migrated.accounts), warning


def _recover_from_corruption(
    storage: AccountStateStorage,
    audit: AuditLogger,
    raw: Optional[str],
    error: CorruptStateError,
) -> tuple[list[CardAccount], str]:
    """Keep the unreadable document aside and start over from the seed."""
    backup = storage.preserve_corrupt_document(raw)
    accounts = seed_accounts()
    audit.log(AuditEventBuilder.state_corrupted(str(error), backup))
    storage.save(PersistedState(accounts=accounts))
    warning = "Your saved data could not be read, so the default cards were loaded."
    if backup:
        warning += f" A copy of the unreadable data was kept at {backup}."
    return accounts, warning


# =============================================================================
# STATEFUL STORE
# =============================================================================

class AccountStore:
    """
    In-memory account collection bound to a state slot.

    Every successful mutation is saved before it becomes visible.
    Reads hand out deep copies, so callers can never alter the store.
    """

    def __init__(
        self,
        storage: AccountStateStorage,
        accounts: list[CardAccount],
        audit_logger: Optional[AuditLogger] = None,
        active_account_id: Optional[str] = None,
        startup_warning: Optional[str] = None,
    ):
        if not accounts:
            raise NoAccountsError("An account store needs at least one account")
        self._storage = storage
        self._accounts = list(accounts)
        self._audit = audit_logger or AuditLogger()
        self._active_account_id = active_account_id or self._accounts[0].id
        self.startup_warning = startup_warning

    @classmethod
    def open(
        cls,
        storage: AccountStateStorage,
        audit_logger: Optional[AuditLogger] = None,
    ) -> "AccountStore":
        """Load saved accounts (or the seed) and build a store."""
        audit = audit_logger or AuditLogger()
        accounts, warning = load_or_seed(storage, audit)
        return cls(storage, accounts, audit_logger=audit, startup_warning=warning)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @property
    def accounts(self) -> list[CardAccount]:
        return [account.model_copy(deep=True) for account in self._accounts]

    @property
    def active_account_id(self) -> str:
        """The id of the account mutations will actually target."""
        return resolve_active_account(self._accounts, self._active_account_id).id

    @property
    def active_account(self) -> CardAccount:
        return resolve_active_account(
            self._accounts, self._active_account_id
        ).model_copy(deep=True)

    def target_account_id(self, account_id: Optional[str]) -> str:
        """The id a mutation for `account_id` would be applied to."""
        return self._resolve(account_id).id

    def get_account(self, account_id: str) -> Optional[CardAccount]:
        account = _find_account(self._accounts, account_id)
        return account.model_copy(deep=True) if account else None

    def summary(self, account_id: Optional[str] = None) -> SummaryStats:
        """Summary of an account (default: the active one)."""
        return compute_summary(self._resolve(account_id or self._active_account_id))

    # ------------------------------------------------------------------
    # Selection
    # ------------------------------------------------------------------

    def set_active_account(self, account_id: str) -> None:
        """Change which account is active. Account data is untouched."""
        self._active_account_id = account_id
        resolved = self._resolve(account_id)
        if resolved.id == account_id:
            self._audit.log(AuditEventBuilder.active_account_changed(account_id))

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def add_expenses(
        self,
        account_id: str,
        new_expenses: Sequence[Expense],
        correlation_id: Optional[UUID] = None,
    ) -> list[Expense]:
        """
        Append expenses to an account.

        Returns the expenses as stored (ids may have been re-issued).
        """
        target_id = self._resolve(account_id).id
        updated = add_expenses(self._accounts, target_id, new_expenses)
        if updated is self._accounts:
            return []

        self._commit(updated)
        added = _find_account(updated, target_id).expenses[-len(new_expenses):]
        self._audit.log(
            AuditEventBuilder.expenses_added(
                target_id, [e.id for e in added], correlation_id
            )
        )
        return [expense.model_copy(deep=True) for expense in added]

    def toggle_receipt(self, account_id: str, expense_id: str) -> bool:
        """Flip the receipt flag. Returns False if the expense was not found."""
        target_id = self._resolve(account_id).id
        updated = toggle_receipt(self._accounts, target_id, expense_id)
        if updated is self._accounts:
            logger.debug("toggle_receipt_not_found", account_id=target_id, expense_id=expense_id)
            return False

        self._commit(updated)
        expense = _find_account(updated, target_id).find_expense(expense_id)
        self._audit.log(
            AuditEventBuilder.receipt_toggled(target_id, expense_id, expense.receipt_attached)
        )
        return True

    def delete_expense(self, account_id: str, expense_id: str) -> bool:
        """Delete one expense. Returns False if it was not found."""
        target_id = self._resolve(account_id).id
        updated = delete_expense(self._accounts, target_id, expense_id)
        if updated is self._accounts:
            logger.debug("delete_expense_not_found", account_id=target_id, expense_id=expense_id)
            return False

        self._commit(updated)
        self._audit.log(AuditEventBuilder.expense_deleted(target_id, expense_id))
        return True

    def clear_all(self, account_id: str) -> int:
        """Remove every expense from an account. Returns how many were removed."""
        target = self._resolve(account_id)
        removed = len(target.expenses)
        updated = clear_all(self._accounts, target.id)
        if updated is self._accounts:
            return 0

        self._commit(updated)
        self._audit.log(AuditEventBuilder.expenses_cleared(target.id, removed))
        return removed

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _resolve(self, account_id: Optional[str]) -> CardAccount:
        account = resolve_active_account(self._accounts, account_id)
        if account.id != account_id:
            self._audit.log(
                AuditEventBuilder.active_account_fallback(account_id, account.id)
            )
        return account

    def _commit(self, accounts: list[CardAccount]) -> None:
        """Save the new collection, then make it current."""
        state = PersistedState(accounts=accounts)
        try:
            self._storage.save(state)
        except Exception as e:
            self._audit.log(AuditEventBuilder.save_failed(str(e)))
            raise
        self._accounts = accounts
        self._audit.log(
            AuditEventBuilder.state_saved(
                len(accounts), sum(len(a.expenses) for a in accounts)
            )
        )
