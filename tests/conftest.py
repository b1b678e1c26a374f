"""
Shared fixtures.

No real API calls in tests: the Gemini model is replaced by a fake
object exposing the same async generate_content_async method.
"""

import asyncio
import json
from decimal import Decimal
from typing import Optional

import pytest

from expensy.audit import AuditLogger
from expensy.config import AppSettings, GeminiSettings, StorageSettings
from expensy.models.expense import CardAccount, Expense
from expensy.services.extraction import GeminiExtractionGateway
from expensy.services.storage import InMemoryAccountStorage, StorageError
from expensy.store import AccountStore


class FakeResponse:
    """Mimics a Gemini response: .text may raise like the SDK does."""

    def __init__(self, text: Optional[str] = None, text_error: Optional[Exception] = None):
        self._text = text
        self._text_error = text_error

    @property
    def text(self) -> str:
        if self._text_error is not None:
            raise self._text_error
        return self._text


class FakeModel:
    """Records every call and answers with a canned response or error."""

    def __init__(
        self,
        text: Optional[str] = None,
        error: Optional[Exception] = None,
        text_error: Optional[Exception] = None,
        gate: Optional[asyncio.Event] = None,
    ):
        self.text = text
        self.error = error
        self.text_error = text_error
        self.gate = gate
        self.calls = []

    async def generate_content_async(self, contents):
        self.calls.append(contents)
        # Only prompts mentioning "slow" wait for the gate
        if self.gate is not None and "slow" in str(contents):
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return FakeResponse(self.text, self.text_error)


class FailingStorage(InMemoryAccountStorage):
    """In-memory slot whose writes can be switched to fail."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.fail_writes = False

    def write_document(self, document: str) -> None:
        if self.fail_writes:
            raise StorageError("disk full")
        super().write_document(document)


def records_json(*records: dict) -> str:
    return json.dumps(list(records))


def make_expense(
    description: str = "Supermercado",
    amount: str = "150.00",
    receipt_attached: bool = False,
    expense_id: Optional[str] = None,
    category: Optional[str] = None,
) -> Expense:
    data = dict(
        date="12/04",
        description=description,
        amount=Decimal(amount),
        receipt_attached=receipt_attached,
        category=category,
    )
    if expense_id is not None:
        data["id"] = expense_id
    return Expense(**data)


def make_account(expenses: Optional[list[Expense]] = None, account_id: str = "1") -> CardAccount:
    return CardAccount(
        id=account_id,
        name="Nubank Principal",
        last_four_digits="4582",
        color="#9333ea",
        expenses=expenses or [],
    )


@pytest.fixture
def audit_logger() -> AuditLogger:
    return AuditLogger()


@pytest.fixture
def storage() -> FailingStorage:
    return FailingStorage()


@pytest.fixture
def store(storage, audit_logger) -> AccountStore:
    return AccountStore.open(storage, audit_logger)


@pytest.fixture
def gemini_settings() -> GeminiSettings:
    return GeminiSettings(api_key="test-key")


@pytest.fixture
def app_settings() -> AppSettings:
    return AppSettings(max_upload_size_mb=1)


@pytest.fixture
def storage_settings(tmp_path) -> StorageSettings:
    return StorageSettings(data_dir=tmp_path / "data")


@pytest.fixture
def make_gateway(gemini_settings, app_settings):
    def _make(model: FakeModel) -> GeminiExtractionGateway:
        return GeminiExtractionGateway(gemini_settings, app_settings, model=model)
    return _make
