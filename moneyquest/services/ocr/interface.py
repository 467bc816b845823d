"""Receipt OCR collaborator contract and errors."""

from abc import ABC, abstractmethod

from moneyquest.models.integrations import OCRResult


SUPPORTED_MIME_TYPES = (
    "image/jpeg",
    "image/jpg",
    "image/png",
    "image/webp",
    "application/pdf",
)


class ReceiptOCRInterface(ABC):
    """
    Turns a receipt image into PROPOSED transaction data.

    Implementations only extract. They never write records.
    """

    @abstractmethod
    async def process_receipt(
        self,
        image_bytes: bytes,
        filename: str,
        mime_type: str,
    ) -> OCRResult:
        """
        Extract merchant, total, date and line items from a receipt.

        Raises:
            UnsupportedFileError: If the file type or size is not accepted
            ExtractionFailedError: If nothing usable could be extracted
        """
        pass


class OCRError(Exception):
    """Base exception for OCR errors."""
    pass


class UnsupportedFileError(OCRError):
    """File type or size is not acceptable."""
    pass


class ExtractionFailedError(OCRError):
    """Failed to extract data from document."""
    pass
