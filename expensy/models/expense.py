"""
Core Data Models for Expensy

These models define the strict schemas for all data flowing through the system.
They are designed to:
1. Enforce type safety at runtime
2. Be serializable to the local state document
3. Keep AI output separate from trusted account data

DESIGN DECISION: Python attributes are snake_case, but the persisted JSON
keeps the camelCase field names (lastFourDigits, receiptAttached) so a
state document written by earlier versions still loads.
Both spellings are accepted on input.
"""

from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Optional
from uuid import UUID, uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    PrivateAttr,
    field_validator,
)
from pydantic.alias_generators import to_camel


# Current layout of the persisted state document.
# Version 0 is the legacy bare array of accounts with no envelope.
STATE_SCHEMA_VERSION = 1

TWO_PLACES = Decimal("0.01")


def new_expense_id() -> str:
    """Generate a fresh opaque expense id."""
    return uuid4().hex[:12]


def to_money(value) -> Decimal:
    """
    Convert a numeric value to a two-place Decimal.

    Floats go through str() first so 150.1 stays 150.10
    instead of picking up binary noise.
    """
    if isinstance(value, bool):
        raise ValueError("Boolean is not a valid amount")
    try:
        return Decimal(str(value)).quantize(TWO_PLACES)
    except (InvalidOperation, TypeError, ValueError):
        raise ValueError(f"Invalid amount: {value!r}")


class _CamelModel(BaseModel):
    """Base for models persisted with camelCase keys."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        str_strip_whitespace=True,
    )


# =============================================================================
# ACCOUNT DATA
# =============================================================================

class Expense(_CamelModel):
    """
    A single purchase on a card account.

    The amount is always a positive magnitude. Payments and credits
    never become expenses.
    """

    id: str = Field(
        default_factory=new_expense_id,
        min_length=1,
        description="Opaque id, unique within the owning account"
    )
    date: str = Field(
        default="",
        description="Display date as printed on the statement (not parsed)"
    )
    description: str = Field(
        default="",
        description="Merchant name or statement description"
    )
    amount: Decimal = Field(
        ...,
        ge=0,
        description="Purchase amount, currency-agnostic"
    )
    receipt_attached: bool = Field(
        default=False,
        description="True once a proof of purchase has been matched"
    )
    receipt_url: Optional[str] = Field(
        default=None,
        description="Optional reference to the matched receipt"
    )
    category: Optional[str] = Field(
        default=None,
        description="Suggested category (advisory only)"
    )

    @field_validator("amount", mode="before")
    @classmethod
    def coerce_amount(cls, v):
        return to_money(v)


class CardAccount(_CamelModel):
    """
    A credit-card account and the expenses imported into it.

    Expense order is import order, which is also display order.
    """

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=100)
    last_four_digits: str = Field(
        default="",
        max_length=4,
        description="Last four digits of the card, for display"
    )
    color: str = Field(
        default="",
        description="Display tag, opaque to business logic"
    )
    expenses: list[Expense] = Field(default_factory=list)

    @property
    def expense_ids(self) -> set[str]:
        return {expense.id for expense in self.expenses}

    def find_expense(self, expense_id: str) -> Optional[Expense]:
        for expense in self.expenses:
            if expense.id == expense_id:
                return expense
        return None


class PersistedState(BaseModel):
    """
    The document written to the local state slot.

    One envelope holding every account, overwritten as a whole on every save.
    """

    schema_version: int = Field(
        default=STATE_SCHEMA_VERSION,
        ge=0,
        description="Layout version of this document"
    )
    accounts: list[CardAccount] = Field(default_factory=list)

    # Legacy expenses skipped while loading; never written back
    _dropped_expenses: int = PrivateAttr(default=0)

    @property
    def dropped_expense_count(self) -> int:
        return self._dropped_expenses


# =============================================================================
# DERIVED DATA
# =============================================================================

class SummaryStats(_CamelModel):
    """
    Totals for one account. Derived on demand, never stored.
    """

    total_amount: Decimal = Decimal("0.00")
    reconciled_amount: Decimal = Decimal("0.00")
    pending_amount: Decimal = Decimal("0.00")
    completion_percentage: Decimal = Field(
        default=Decimal("0.00"),
        ge=0,
        le=100,
    )
    expense_count: int = Field(default=0, ge=0)
    reconciled_count: int = Field(default=0, ge=0)

    @property
    def is_fully_reconciled(self) -> bool:
        return self.expense_count > 0 and self.pending_amount == 0


class CategoryTotal(BaseModel):
    """Spend for one category within an account."""

    category: str
    amount: Decimal
    expense_count: int = Field(ge=0)
    share_percentage: Decimal = Field(ge=0, le=100)


# =============================================================================
# EXTRACTION MODELS
# =============================================================================

class ExtractionStatus(str, Enum):
    """Outcome of parsing one extraction response."""
    OK = "ok"                # At least one usable record
    EMPTY = "empty"          # Well-formed response with nothing usable
    MALFORMED = "malformed"  # Response was not the requested JSON shape


class ExtractedRecord(BaseModel):
    """
    One candidate expense as returned by the extraction service.

    CRITICAL: This is PROPOSED data. It only becomes an Expense after
    passing validation here and being handed to the account store.
    """
    model_config = ConfigDict(str_strip_whitespace=True, extra="ignore")

    date: str = Field(..., description="Transaction date as printed")
    description: str = Field(..., min_length=1)
    amount: Decimal = Field(
        ...,
        gt=0,
        description="Purchase amount; payments and credits are rejected"
    )
    category: Optional[str] = None

    @field_validator("amount", mode="before")
    @classmethod
    def coerce_amount(cls, v):
        return to_money(v)

    @field_validator("category")
    @classmethod
    def blank_category_is_none(cls, v: Optional[str]) -> Optional[str]:
        return v or None

    def to_expense(self) -> Expense:
        return Expense(
            date=self.date,
            description=self.description,
            amount=self.amount,
            category=self.category,
            receipt_attached=False,
        )


class ExtractionResult(BaseModel):
    """
    Validated result of one extraction call.

    A malformed response never raises; it is reported here with
    status MALFORMED and no records.
    """

    status: ExtractionStatus
    records: list[ExtractedRecord] = Field(default_factory=list)
    rejected_count: int = Field(
        default=0,
        ge=0,
        description="Records dropped for missing fields or non-positive amounts"
    )
    error_message: Optional[str] = None

    @property
    def has_records(self) -> bool:
        return bool(self.records)

    def to_expenses(self) -> list[Expense]:
        """Fresh Expense objects with new ids and no receipt attached."""
        return [record.to_expense() for record in self.records]


# =============================================================================
# IMPORT OUTCOME
# =============================================================================

class ImportOutcome(BaseModel):
    """
    Result of one statement import, ready to show to the user.

    On failure nothing was added to the account.
    """

    success: bool
    account_id: str
    imported_count: int = Field(default=0, ge=0)
    rejected_count: int = Field(default=0, ge=0)
    message: str
    expenses: list[Expense] = Field(default_factory=list)
    correlation_id: Optional[UUID] = None
