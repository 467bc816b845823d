"""
Backup/Restore Service

Session-boundary snapshotting of the whole local dataset:

    backup:  checksum(plaintext) -> encrypt -> wrap -> RemoteBlobStore.put
    restore: RemoteBlobStore.get_latest -> decrypt -> verify checksum

CRITICAL: The checksum is always computed over the PLAINTEXT payload in
canonical JSON form (sorted keys, compact separators). Two exports with
the same content produce the same checksum regardless of dict order.

Conflict handling is last-writer-wins per record, keyed by ``updated_at``.
There is no field-level merge and no tombstones: a record deleted locally
but still present remotely comes back on merge.
"""

import hashlib
import json
from datetime import datetime, timezone
from typing import Any, Optional

from moneyquest.models.integrations import BackupSnapshot
from moneyquest.models.records import utc_now
from moneyquest.services.backup.interface import (
    BackupIntegrityError,
    PassthroughCipher,
    PayloadCipher,
    RemoteBlobStore,
)


Dataset = dict[str, list[dict[str, Any]]]

_OLDEST = datetime.min.replace(tzinfo=timezone.utc)


def compute_checksum(data: Any) -> str:
    """SHA-256 hex digest of the canonical JSON form of ``data``."""
    canonical = json.dumps(data, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def _updated_at(record: dict[str, Any]) -> datetime:
    """Parse ``updated_at``. Missing or unparseable sorts as oldest."""
    value = record.get("updated_at")
    if isinstance(value, datetime):
        moment = value
    elif isinstance(value, str):
        text = value[:-1] + "+00:00" if value.endswith("Z") else value
        try:
            moment = datetime.fromisoformat(text)
        except ValueError:
            return _OLDEST
    else:
        return _OLDEST
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


def merge_datasets(local: Dataset, remote: Dataset) -> Dataset:
    """
    Last-writer-wins merge of two exports. Neither input is mutated.

    - Tables only present remotely are adopted as-is
    - Remote records with unknown ids are appended
    - Same id: the remote record replaces the local one only if its
      ``updated_at`` is strictly later; ties keep local
    """
    merged: Dataset = {table: [dict(r) for r in records] for table, records in local.items()}

    for table, remote_records in remote.items():
        if table not in merged:
            merged[table] = [dict(r) for r in remote_records]
            continue

        rows = merged[table]
        position = {record.get("id"): index for index, record in enumerate(rows)}
        for remote_record in remote_records:
            index = position.get(remote_record.get("id"))
            if index is None:
                position[remote_record.get("id")] = len(rows)
                rows.append(dict(remote_record))
            elif _updated_at(remote_record) > _updated_at(rows[index]):
                rows[index] = dict(remote_record)

    return merged


class BackupService:
    """
    Snapshot upload and download for one user.

    The blob store and cipher are injected; nothing here knows which
    backend is in use.
    """

    def __init__(
        self,
        user_id: str,
        blob_store: RemoteBlobStore,
        cipher: Optional[PayloadCipher] = None,
        version: str = "1.0",
    ):
        self.user_id = user_id
        self._blob_store = blob_store
        self._cipher = cipher or PassthroughCipher()
        self._version = version

    async def backup(self, data: Dataset) -> BackupSnapshot:
        """
        Checksum, encrypt, wrap and upload ``data``.

        Raises:
            BackupError: If the blob store rejects the upload
        """
        snapshot = BackupSnapshot(
            version=self._version,
            timestamp=utc_now(),
            user_id=self.user_id,
            data=self._cipher.encrypt(data),
            checksum=compute_checksum(data),
        )
        await self._blob_store.put(snapshot)
        return snapshot

    async def restore(self) -> Optional[Dataset]:
        """
        Fetch and verify the latest snapshot.

        Returns:
            The decrypted dataset, or None if no backup exists

        Raises:
            BackupIntegrityError: If the payload doesn't match its checksum
        """
        snapshot = await self._blob_store.get_latest(self.user_id)
        if snapshot is None:
            return None

        data = self._cipher.decrypt(snapshot.data)
        actual = compute_checksum(data)
        if actual != snapshot.checksum:
            raise BackupIntegrityError(expected=snapshot.checksum, actual=actual)
        return data

    async def has_backup(self) -> bool:
        return await self._blob_store.get_latest(self.user_id) is not None

    def merge_with_backup(self, local: Dataset, remote: Dataset) -> Dataset:
        return merge_datasets(local, remote)
