"""OCR services package."""

from moneyquest.services.ocr.interface import (
    SUPPORTED_MIME_TYPES,
    ExtractionFailedError,
    OCRError,
    ReceiptOCRInterface,
    UnsupportedFileError,
)
from moneyquest.services.ocr.mindee_service import MindeeReceiptOCRService

__all__ = [
    "SUPPORTED_MIME_TYPES",
    "ExtractionFailedError",
    "MindeeReceiptOCRService",
    "OCRError",
    "ReceiptOCRInterface",
    "UnsupportedFileError",
]
