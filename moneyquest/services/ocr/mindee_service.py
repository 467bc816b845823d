"""
Receipt OCR using Mindee

DESIGN DECISION: We use Mindee because:
1. Specialized for financial documents (receipts in particular)
2. Returns STRUCTURED data, not just raw text
3. Provides per-field confidence scores

This service handles:
1. Validating file type and size before anything is uploaded
2. Sending the receipt to Mindee's Receipt API
3. Converting the Mindee prediction into our OCRResult model

CRITICAL: The result is a proposal. The caller reviews it and decides
whether to create a transaction (and splits, for multi-item receipts).
"""

from datetime import date, datetime, time, timezone
from decimal import Decimal, InvalidOperation
from typing import Optional

from mindee import Client, PredictResponse
from mindee.product import ReceiptV5
from tenacity import retry, stop_after_attempt, wait_exponential

from moneyquest.config import MindeeSettings, get_settings
from moneyquest.models.integrations import OCRLineItem, OCRResult
from moneyquest.models.records import utc_now
from moneyquest.services.ocr.interface import (
    SUPPORTED_MIME_TYPES,
    ExtractionFailedError,
    OCRError,
    ReceiptOCRInterface,
    UnsupportedFileError,
)


# Mindee receipt categories -> display category
_CATEGORY_NAMES = {
    "food": "Dining",
    "gasoline": "Transportation",
    "parking": "Transportation",
    "transport": "Transportation",
    "toll": "Transportation",
    "accommodation": "Travel",
    "telecom": "Utilities",
    "shopping": "Shopping",
    "miscellaneous": "Other",
}


class MindeeReceiptOCRService(ReceiptOCRInterface):
    """
    OCR service using Mindee for structured receipt extraction.

    IMPORTANT BOUNDARIES:
    1. This service ONLY extracts data - it does NOT create transactions
    2. Unsupported files are rejected before any network call
    3. Confidence scores are preserved for the caller to judge
    """

    def __init__(self, settings: Optional[MindeeSettings] = None):
        self._settings = settings or get_settings().mindee
        self._client: Optional[Client] = None

    def _get_client(self) -> Client:
        """Get or create Mindee client."""
        if self._client is None:
            self._client = Client(api_key=self._settings.api_key)
        return self._client

    def _safe_decimal(self, value) -> Optional[Decimal]:
        """Safely convert a value to Decimal."""
        if value is None:
            return None
        try:
            # Mindee returns float/None
            return Decimal(str(value)).quantize(Decimal("0.01"))
        except (InvalidOperation, TypeError, ValueError):
            return None

    def _safe_datetime(self, value) -> Optional[datetime]:
        """Receipt date as midnight UTC."""
        if value is None:
            return None
        if isinstance(value, datetime):
            return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
        if isinstance(value, date):
            return datetime.combine(value, time.min, tzinfo=timezone.utc)
        if isinstance(value, str):
            for fmt in ["%Y-%m-%d", "%d-%m-%Y", "%d/%m/%Y", "%m/%d/%Y", "%Y/%m/%d"]:
                try:
                    return datetime.strptime(value, fmt).replace(tzinfo=timezone.utc)
                except ValueError:
                    continue
        return None

    def validate_file(self, image_bytes: bytes, mime_type: str) -> None:
        """
        Raises:
            UnsupportedFileError: Wrong type, empty, or over the size limit
        """
        if mime_type not in SUPPORTED_MIME_TYPES:
            raise UnsupportedFileError(
                "Invalid file type. Please upload PNG, JPG, WEBP, or PDF files."
            )
        if not image_bytes:
            raise UnsupportedFileError("Receipt file is empty.")
        if len(image_bytes) > self._settings.max_upload_size_bytes:
            raise UnsupportedFileError(
                f"File too large. Please upload files smaller than "
                f"{self._settings.max_upload_size_mb}MB."
            )

    def _extract_line_items(self, mindee_items) -> list[OCRLineItem]:
        """Extract line items from Mindee response."""
        items = []

        if not mindee_items:
            return items

        for item in mindee_items:
            description = getattr(item, 'description', None) or "Item"
            amount = self._safe_decimal(getattr(item, 'total_amount', None))
            quantity = self._safe_decimal(getattr(item, 'quantity', None))

            if amount is None:
                continue
            items.append(OCRLineItem(
                description=str(description)[:200],
                amount=amount,
                quantity=quantity if quantity is not None and quantity >= 0 else None,
            ))

        return items

    def _guess_category(self, prediction) -> Optional[str]:
        """
        Map Mindee's receipt classification to a display category.

        This is a SUGGESTION only - user must confirm.
        """
        category = getattr(prediction, 'category', None)
        value = getattr(category, 'value', None)
        if not value:
            return None
        return _CATEGORY_NAMES.get(str(value).lower(), "Other")

    def _to_result(self, prediction) -> OCRResult:
        confidences = []
        for field_name in ('supplier_name', 'date', 'total_amount'):
            field = getattr(prediction, field_name, None)
            if field is not None and field.value is not None:
                confidences.append(field.confidence or 0.0)
        overall_confidence = sum(confidences) / len(confidences) if confidences else 0.0

        total_amount = self._safe_decimal(prediction.total_amount.value)
        if total_amount is None:
            raise ExtractionFailedError(
                "Could not find the receipt total. "
                "Please ensure the total is clearly visible in the photo."
            )

        merchant = prediction.supplier_name.value or "Unknown merchant"
        receipt_date = self._safe_datetime(prediction.date.value) or utc_now()
        line_items = self._extract_line_items(getattr(prediction, 'line_items', []))

        # Build raw OCR text for debugging
        raw_text_parts = [f"Merchant: {merchant}", f"Date: {receipt_date.date()}"]
        raw_text_parts.extend(f"{item.description}: {item.amount}" for item in line_items)
        raw_text_parts.append(f"Total: {total_amount}")

        return OCRResult(
            merchant=str(merchant)[:200],
            amount=total_amount,
            date=receipt_date,
            confidence=min(max(overall_confidence, 0.0), 1.0),
            line_items=line_items,
            category=self._guess_category(prediction),
            raw_text="\n".join(raw_text_parts),
        )

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def _parse(self, image_bytes: bytes, filename: str):
        client = self._get_client()
        input_source = client.source_from_bytes(image_bytes, filename)
        result: PredictResponse = client.parse(ReceiptV5, input_source)
        return result.document.inference.prediction

    async def process_receipt(
        self,
        image_bytes: bytes,
        filename: str,
        mime_type: str,
    ) -> OCRResult:
        """
        Extract structured receipt data using Mindee.

        Args:
            image_bytes: Raw file contents
            filename: Original file name (Mindee uses the extension)
            mime_type: Declared content type

        Returns:
            OCRResult with extracted fields and confidence

        Raises:
            UnsupportedFileError: If the file is rejected before upload
            ExtractionFailedError: If extraction completely fails
        """
        self.validate_file(image_bytes, mime_type)

        try:
            prediction = self._parse(image_bytes, filename)
            return self._to_result(prediction)
        except OCRError:
            raise
        except Exception as e:
            raise ExtractionFailedError(f"Failed to extract receipt data: {e}")

    def needs_review(self, result: OCRResult) -> bool:
        """True when confidence is below the configured threshold."""
        return result.confidence < self._settings.min_confidence
