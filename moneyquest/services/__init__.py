"""Services package."""

from moneyquest.services.backup import (
    BackupError,
    BackupIntegrityError,
    BackupService,
    GoogleSheetsBlobStore,
    InMemoryBlobStore,
    PassthroughCipher,
    PayloadCipher,
    RemoteBlobStore,
)
from moneyquest.services.banking import (
    BankConnectionError,
    BankConnectorInterface,
    PlaidBankConnector,
)
from moneyquest.services.ocr import (
    ExtractionFailedError,
    MindeeReceiptOCRService,
    OCRError,
    ReceiptOCRInterface,
    UnsupportedFileError,
)
from moneyquest.services.storage import (
    DuplicateError,
    InMemoryRecordStore,
    NotFoundError,
    RecordStoreInterface,
    StorageError,
)

__all__ = [
    # Backup services
    "BackupError",
    "BackupIntegrityError",
    "BackupService",
    "GoogleSheetsBlobStore",
    "InMemoryBlobStore",
    "PassthroughCipher",
    "PayloadCipher",
    "RemoteBlobStore",
    # Bank services
    "BankConnectionError",
    "BankConnectorInterface",
    "PlaidBankConnector",
    # OCR services
    "ExtractionFailedError",
    "MindeeReceiptOCRService",
    "OCRError",
    "ReceiptOCRInterface",
    "UnsupportedFileError",
    # Storage services
    "DuplicateError",
    "InMemoryRecordStore",
    "NotFoundError",
    "RecordStoreInterface",
    "StorageError",
]
