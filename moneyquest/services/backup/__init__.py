"""
Backup Services Package

Session-boundary snapshot backup and restore with last-writer-wins merge.
Remote storage and payload encryption are injected capabilities.
"""

from moneyquest.services.backup.google_sheets import (
    GoogleSheetsBlobStore,
    GoogleSheetsClient,
    SheetsConnectionError,
)
from moneyquest.services.backup.interface import (
    BackupError,
    BackupIntegrityError,
    PassthroughCipher,
    PayloadCipher,
    RemoteBlobStore,
)
from moneyquest.services.backup.memory import InMemoryBlobStore
from moneyquest.services.backup.service import (
    BackupService,
    compute_checksum,
    merge_datasets,
)

__all__ = [
    # Interfaces
    "PayloadCipher",
    "RemoteBlobStore",
    # Exceptions
    "BackupError",
    "BackupIntegrityError",
    "SheetsConnectionError",
    # Implementations
    "BackupService",
    "GoogleSheetsBlobStore",
    "GoogleSheetsClient",
    "InMemoryBlobStore",
    "PassthroughCipher",
    # Helpers
    "compute_checksum",
    "merge_datasets",
]
