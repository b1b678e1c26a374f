"""
Statement Extraction Service using Gemini

DESIGN DECISION: We use Gemini structured output because:
1. One call turns a pasted statement or a photo/PDF into records
2. A response schema is sent with the request, so the model returns JSON
3. No layout-specific parsers to maintain per card issuer

CRITICAL BOUNDARIES:
- The service ONLY proposes records. It never touches account data.
- Every response is validated locally. A response that is not the
  requested JSON shape becomes an empty MALFORMED result, never an exception.
- Non-positive amounts (payments, refunds, credits) are dropped here,
  at the boundary, before anything reaches the account store.
- Transport failures raise ExtractionFailedError. No automatic retries.
"""

import json
from typing import Any, Optional, TypedDict

import google.generativeai as genai
import structlog
from pydantic import ValidationError

from expensy.config import AppSettings, GeminiSettings
from expensy.models.expense import (
    ExtractedRecord,
    ExtractionResult,
    ExtractionStatus,
)


logger = structlog.get_logger(__name__)


TEXT_PROMPT = """Analyze this credit card statement or list of transactions and extract each individual purchase.

Rules:
- Return only purchases. Ignore bill payments, refunds, credits and balance lines.
- "amount" is always a positive number, without currency symbols.
- "date" is the transaction date exactly as printed (e.g. 15/05).
- "category" is a short suggested category (e.g. Food, Transport, Leisure).

Statement text:
{text}"""

DOCUMENT_PROMPT = (
    "Extract every purchase transaction from this credit card statement. "
    "Return a list of objects with date, description and a positive numeric amount. "
    "Ignore bill payments, refunds and credits. "
    "Add a short suggested category for each purchase."
)


class _RequiredRecordFields(TypedDict):
    date: str
    description: str
    amount: float


class StatementRecordSchema(_RequiredRecordFields, total=False):
    """Response schema sent to Gemini for each extracted record."""
    category: str


class ExtractionError(Exception):
    """Base exception for extraction errors."""
    pass


class ExtractionFailedError(ExtractionError):
    """The extraction service could not be reached or refused the request."""
    pass


class UnsupportedDocumentError(ExtractionError):
    """The uploaded document cannot be sent for extraction."""

    def __init__(self, mime_type: str, message: str):
        self.mime_type = mime_type
        super().__init__(message)


def parse_extraction_response(text: Optional[str]) -> ExtractionResult:
    """
    Validate a raw JSON response into an ExtractionResult.

    - Not JSON, not an array, or an element that is not an object -> MALFORMED
    - Objects missing required fields or with amount <= 0 are rejected one by one
    - Nothing left after that -> EMPTY
    """
    if text is None or not text.strip():
        return ExtractionResult(status=ExtractionStatus.EMPTY)

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        logger.warning("extraction_response_not_json", error=str(e))
        return ExtractionResult(
            status=ExtractionStatus.MALFORMED,
            error_message=f"Response is not valid JSON: {e}",
        )

    if not isinstance(data, list):
        logger.warning("extraction_response_not_array", type=type(data).__name__)
        return ExtractionResult(
            status=ExtractionStatus.MALFORMED,
            error_message=f"Expected a JSON array, got {type(data).__name__}",
        )

    records: list[ExtractedRecord] = []
    rejected = 0
    for index, item in enumerate(data):
        if not isinstance(item, dict):
            logger.warning("extraction_item_not_object", index=index)
            return ExtractionResult(
                status=ExtractionStatus.MALFORMED,
                error_message=f"Item {index} is not an object",
            )
        try:
            records.append(ExtractedRecord.model_validate(item))
        except ValidationError as e:
            rejected += 1
            logger.info(
                "extraction_item_rejected",
                index=index,
                errors=[err["loc"] for err in e.errors()],
            )

    status = ExtractionStatus.OK if records else ExtractionStatus.EMPTY
    return ExtractionResult(status=status, records=records, rejected_count=rejected)


class GeminiExtractionGateway:
    """
    Turns statement text or documents into validated candidate records.

    The gateway is built from explicit settings. Pass `model` to use a
    pre-built model object (anything with an async generate_content_async).
    """

    def __init__(
        self,
        settings: GeminiSettings,
        app_settings: Optional[AppSettings] = None,
        model: Optional[Any] = None,
    ):
        self._settings = settings
        self._app_settings = app_settings or AppSettings()
        self._model = model if model is not None else self._build_model()

    def _build_model(self):
        """Configure the Gemini SDK and build the model used for extraction."""
        genai.configure(api_key=self._settings.api_key)
        return genai.GenerativeModel(
            model_name=self._settings.model_name,
            generation_config=genai.GenerationConfig(
                temperature=self._settings.temperature,
                max_output_tokens=self._settings.max_tokens,
                response_mime_type="application/json",
                response_schema=list[StatementRecordSchema],
            ),
        )

    def check_document(self, data: bytes, mime_type: str) -> str:
        """
        Make sure a document can be sent.

        Returns the normalized media type.

        Raises:
            UnsupportedDocumentError: Wrong type, empty, or too large
        """
        normalized = (mime_type or "").strip().lower()
        supported = self._app_settings.supported_types_list
        if normalized not in supported:
            raise UnsupportedDocumentError(
                normalized,
                f"Unsupported document type: {mime_type or 'unknown'}. "
                f"Allowed: {', '.join(supported)}",
            )
        if not data:
            raise UnsupportedDocumentError(normalized, "The uploaded file is empty")
        if len(data) > self._app_settings.max_upload_size_bytes:
            raise UnsupportedDocumentError(
                normalized,
                f"File is larger than {self._app_settings.max_upload_size_mb} MB",
            )
        return normalized

    async def extract_from_text(self, text: str) -> ExtractionResult:
        """
        Extract records from pasted statement text.

        Raises:
            ExtractionFailedError: Empty input or the service call failed
        """
        if not text or not text.strip():
            raise ExtractionFailedError("No statement text to extract from")

        prompt = TEXT_PROMPT.format(text=text.strip())
        return await self._generate(prompt, source="text")

    async def extract_from_document(
        self,
        data: bytes,
        mime_type: str,
    ) -> ExtractionResult:
        """
        Extract records from an uploaded image or PDF.

        Raises:
            UnsupportedDocumentError: Before any network call
            ExtractionFailedError: The service call failed
        """
        normalized = self.check_document(data, mime_type)
        contents = [
            DOCUMENT_PROMPT,
            {"mime_type": normalized, "data": data},
        ]
        return await self._generate(contents, source=normalized)

    async def _generate(self, contents, source: str) -> ExtractionResult:
        try:
            response = await self._model.generate_content_async(contents)
        except Exception as e:
            logger.error("extraction_call_failed", source=source, error=str(e))
            raise ExtractionFailedError(f"Extraction service error: {e}") from e

        try:
            text = response.text
        except ValueError as e:
            # Blocked or empty candidates: the SDK raises on .text
            logger.warning("extraction_response_without_text", source=source, error=str(e))
            return ExtractionResult(
                status=ExtractionStatus.MALFORMED,
                error_message=f"Response has no text: {e}",
            )

        result = parse_extraction_response(text)
        logger.info(
            "extraction_parsed",
            source=source,
            status=result.status.value,
            records=len(result.records),
            rejected=result.rejected_count,
        )
        return result
