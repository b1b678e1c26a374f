"""Account store package."""

from expensy.store.account_store import (
    SEED_ACCOUNTS,
    AccountStore,
    NoAccountsError,
    StoreError,
    add_expenses,
    clear_all,
    delete_expense,
    load_or_seed,
    resolve_active_account,
    seed_accounts,
    toggle_receipt,
)

__all__ = [
    "SEED_ACCOUNTS",
    "AccountStore",
    "NoAccountsError",
    "StoreError",
    "add_expenses",
    "clear_all",
    "delete_expense",
    "load_or_seed",
    "resolve_active_account",
    "seed_accounts",
    "toggle_receipt",
]
