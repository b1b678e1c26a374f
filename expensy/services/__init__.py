"""Services package."""

from expensy.services.extraction import (
    ExtractionError,
    ExtractionFailedError,
    GeminiExtractionGateway,
    UnsupportedDocumentError,
)
from expensy.services.storage import (
    AccountStateStorage,
    CorruptStateError,
    InMemoryAccountStorage,
    LocalJsonAccountStorage,
    StorageError,
)

__all__ = [
    # Extraction services
    "ExtractionError",
    "ExtractionFailedError",
    "GeminiExtractionGateway",
    "UnsupportedDocumentError",
    # Storage services
    "AccountStateStorage",
    "CorruptStateError",
    "InMemoryAccountStorage",
    "LocalJsonAccountStorage",
    "StorageError",
]
