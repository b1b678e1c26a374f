"""Statement extraction services package."""

from expensy.services.extraction.gemini_service import (
    ExtractionError,
    ExtractionFailedError,
    GeminiExtractionGateway,
    UnsupportedDocumentError,
    parse_extraction_response,
)

__all__ = [
    "ExtractionError",
    "ExtractionFailedError",
    "GeminiExtractionGateway",
    "UnsupportedDocumentError",
    "parse_extraction_response",
]
