"""
Backup Capabilities

The backup service is handed two small capabilities instead of being
subclassed per backend:

- RemoteBlobStore: where snapshots live (Google Sheets, memory, ...)
- PayloadCipher: what happens to the payload before it leaves the device

Encryption is not implemented. ``PassthroughCipher`` is the default and
returns the payload untouched; a real cipher plugs in at the same seam.
"""

from abc import ABC, abstractmethod
from typing import Any, Optional

from moneyquest.models.integrations import BackupSnapshot


class RemoteBlobStore(ABC):
    """Remote home for backup snapshots, keyed by user."""

    @abstractmethod
    async def put(self, snapshot: BackupSnapshot) -> None:
        """
        Upload a snapshot. The newest upload becomes the latest.

        Raises:
            StorageError: If the upload fails
        """
        pass

    @abstractmethod
    async def get_latest(self, user_id: str) -> Optional[BackupSnapshot]:
        """Most recent snapshot for ``user_id``, or None if there is none."""
        pass


class PayloadCipher(ABC):
    """Symmetric transform applied to the backup payload."""

    @abstractmethod
    def encrypt(self, payload: Any) -> Any:
        pass

    @abstractmethod
    def decrypt(self, payload: Any) -> Any:
        pass


class PassthroughCipher(PayloadCipher):
    """No-op cipher. The payload is stored as plain JSON."""

    def encrypt(self, payload: Any) -> Any:
        return payload

    def decrypt(self, payload: Any) -> Any:
        return payload


class BackupError(Exception):
    """Base exception for backup and restore."""
    pass


class BackupIntegrityError(BackupError):
    """Restored payload does not match its checksum."""

    def __init__(self, expected: str, actual: str):
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Backup checksum mismatch: expected {expected}, got {actual}"
        )
