"""
Tests for backup, restore and last-writer-wins merge.

The Google Sheets blob store is exercised with a mocked client;
nothing here talks to Google.
"""

import copy
import pytest
from datetime import datetime, timezone
from typing import Any, Optional
from unittest.mock import MagicMock

from moneyquest.models.integrations import BackupSnapshot
from moneyquest.services.backup import (
    BackupIntegrityError,
    BackupService,
    GoogleSheetsBlobStore,
    InMemoryBlobStore,
    PayloadCipher,
    compute_checksum,
    merge_datasets,
)
from moneyquest.services.backup.google_sheets import BACKUP_COLUMNS, MAX_CELL_CHARACTERS
from moneyquest.services.storage import StorageError

from tests.factories import USER_ID


class WrappingCipher(PayloadCipher):
    """Stand-in cipher that visibly changes the payload."""

    def encrypt(self, payload: Any) -> Any:
        return {"sealed": copy.deepcopy(payload)}

    def decrypt(self, payload: Any) -> Any:
        return payload["sealed"]


def record(record_id: str, updated_at: Optional[str] = None, **fields) -> dict:
    result = {"id": record_id, **fields}
    if updated_at is not None:
        result["updated_at"] = updated_at
    return result


DATASET = {
    "accounts": [record("a1", "2024-03-01T10:00:00+00:00", name="Checking", balance="100.00")],
    "transactions": [],
}


class TestChecksum:
    """Tests for compute_checksum."""

    def test_key_order_irrelevant(self):
        """Same content, different dict order, same checksum."""
        assert compute_checksum({"a": 1, "b": [1, 2]}) == compute_checksum({"b": [1, 2], "a": 1})

    def test_content_sensitive(self):
        """Any change in content changes the checksum."""
        assert compute_checksum({"a": 1}) != compute_checksum({"a": 2})

    def test_sha256_hex(self):
        """Checksums are 64 hex characters."""
        checksum = compute_checksum(DATASET)

        assert len(checksum) == 64
        int(checksum, 16)


class TestBackupService:
    """Tests for backup/restore through an in-memory blob store."""

    @pytest.mark.asyncio
    async def test_backup_then_restore(self):
        """A restored dataset equals what was backed up."""
        blob_store = InMemoryBlobStore()
        service = BackupService(USER_ID, blob_store, version="1.0")

        snapshot = await service.backup(DATASET)
        restored = await service.restore()

        assert restored == DATASET
        assert snapshot.user_id == USER_ID
        assert snapshot.version == "1.0"
        assert snapshot.checksum == compute_checksum(DATASET)

    @pytest.mark.asyncio
    async def test_restore_without_backup(self):
        """No snapshot yet means None, not an error."""
        service = BackupService(USER_ID, InMemoryBlobStore())

        assert await service.restore() is None
        assert not await service.has_backup()

    @pytest.mark.asyncio
    async def test_latest_snapshot_wins(self):
        """Restore returns the most recent upload."""
        service = BackupService(USER_ID, InMemoryBlobStore())
        await service.backup({"accounts": []})
        await service.backup(DATASET)

        assert await service.restore() == DATASET
        assert await service.has_backup()

    @pytest.mark.asyncio
    async def test_snapshots_are_per_user(self):
        """One user's backup is invisible to another."""
        blob_store = InMemoryBlobStore()
        await BackupService(USER_ID, blob_store).backup(DATASET)

        assert await BackupService("user-2", blob_store).restore() is None

    @pytest.mark.asyncio
    async def test_tampered_payload_rejected(self):
        """A payload that doesn't match its checksum fails loudly."""
        blob_store = InMemoryBlobStore()
        await blob_store.put(BackupSnapshot(
            version="1.0",
            user_id=USER_ID,
            data=DATASET,
            checksum=compute_checksum({"accounts": []}),
        ))

        with pytest.raises(BackupIntegrityError) as exc_info:
            await BackupService(USER_ID, blob_store).restore()

        assert exc_info.value.actual == compute_checksum(DATASET)

    @pytest.mark.asyncio
    async def test_cipher_applied_and_checksum_over_plaintext(self):
        """Stored data is the cipher output; the checksum covers the plaintext."""
        blob_store = InMemoryBlobStore()
        service = BackupService(USER_ID, blob_store, cipher=WrappingCipher())

        await service.backup(DATASET)
        [stored] = blob_store.history(USER_ID)

        assert stored.data == {"sealed": DATASET}
        assert stored.checksum == compute_checksum(DATASET)
        assert await service.restore() == DATASET


class TestMerge:
    """Tests for last-writer-wins merge."""

    def test_remote_newer_wins(self):
        """A strictly newer remote record replaces the local one."""
        local = {"accounts": [record("a1", "2024-03-01T10:00:00+00:00", name="Local")]}
        remote = {"accounts": [record("a1", "2024-03-02T10:00:00+00:00", name="Remote")]}

        assert merge_datasets(local, remote)["accounts"][0]["name"] == "Remote"

    def test_local_newer_kept(self):
        """An older remote record is ignored."""
        local = {"accounts": [record("a1", "2024-03-05T10:00:00+00:00", name="Local")]}
        remote = {"accounts": [record("a1", "2024-03-02T10:00:00+00:00", name="Remote")]}

        assert merge_datasets(local, remote)["accounts"][0]["name"] == "Local"

    def test_tie_keeps_local(self):
        """Equal timestamps keep the local record."""
        stamp = "2024-03-01T10:00:00+00:00"
        local = {"accounts": [record("a1", stamp, name="Local")]}
        remote = {"accounts": [record("a1", stamp, name="Remote")]}

        assert merge_datasets(local, remote)["accounts"][0]["name"] == "Local"

    def test_mixed_timestamp_formats(self):
        """Z-suffixed and offset timestamps compare as instants."""
        local = {"accounts": [record("a1", "2024-03-01T10:00:00+00:00", name="Local")]}
        remote = {"accounts": [record("a1", "2024-03-01T10:00:01Z", name="Remote")]}

        assert merge_datasets(local, remote)["accounts"][0]["name"] == "Remote"

    def test_missing_updated_at_is_oldest(self):
        """A record without updated_at loses to any stamped record."""
        local = {"accounts": [record("a1", name="Local")]}
        remote = {"accounts": [record("a1", "2020-01-01T00:00:00+00:00", name="Remote")]}

        assert merge_datasets(local, remote)["accounts"][0]["name"] == "Remote"
        assert merge_datasets(remote, local)["accounts"][0]["name"] == "Remote"

    def test_remote_only_records_appended(self):
        """Records only the remote has are added after local ones."""
        local = {"accounts": [record("a1", name="Local")]}
        remote = {"accounts": [record("a2", name="Remote")]}

        merged = merge_datasets(local, remote)

        assert [r["id"] for r in merged["accounts"]] == ["a1", "a2"]

    def test_remote_only_tables_adopted(self):
        """A table missing locally comes over whole."""
        local = {"accounts": []}
        remote = {"budgets": [record("b1", name="Food")]}

        assert merge_datasets(local, remote)["budgets"] == [record("b1", name="Food")]

    def test_local_only_records_kept(self):
        """No tombstones: nothing local is ever dropped."""
        local = {"accounts": [record("a1", name="Local")]}

        assert merge_datasets(local, {"accounts": []}) == local

    def test_inputs_not_mutated(self):
        """merge_datasets never changes its arguments."""
        local = {"accounts": [record("a1", "2024-03-01T10:00:00+00:00", name="Local")]}
        remote = {
            "accounts": [record("a1", "2024-03-02T10:00:00+00:00", name="Remote"), record("a2")],
            "budgets": [record("b1")],
        }
        local_before = copy.deepcopy(local)
        remote_before = copy.deepcopy(remote)

        merge_datasets(local, remote)

        assert local == local_before
        assert remote == remote_before

    def test_idempotent(self):
        """Merging the same remote twice changes nothing further."""
        local = {"accounts": [record("a1", "2024-03-01T10:00:00+00:00", name="Local")]}
        remote = {"accounts": [record("a1", "2024-03-02T10:00:00+00:00"), record("a2")]}

        once = merge_datasets(local, remote)

        assert merge_datasets(once, remote) == once


def fake_sheets_client(rows: Optional[list[list]] = None) -> MagicMock:
    sheet = MagicMock()
    sheet.get_all_values.return_value = [BACKUP_COLUMNS] + (rows or [])
    client = MagicMock()
    client.get_backups_sheet.return_value = sheet
    return client


class TestGoogleSheetsBlobStore:
    """Tests for the Sheets-backed blob store (mocked client)."""

    @pytest.mark.asyncio
    async def test_put_appends_row(self):
        """One snapshot is one row, payload JSON in the last cell."""
        client = fake_sheets_client()
        blob_store = GoogleSheetsBlobStore(client=client)
        snapshot = BackupSnapshot(
            version="1.0",
            timestamp=datetime(2024, 3, 15, tzinfo=timezone.utc),
            user_id=USER_ID,
            data=DATASET,
            checksum=compute_checksum(DATASET),
        )

        await blob_store.put(snapshot)

        sheet = client.get_backups_sheet.return_value
        row = sheet.append_row.call_args[0][0]
        assert row[0] == USER_ID
        assert row[2] == "1.0"
        assert row[3] == snapshot.checksum
        assert len(row) == len(BACKUP_COLUMNS)

    @pytest.mark.asyncio
    async def test_oversized_payload_rejected(self):
        """A payload that can't fit in one cell never reaches the sheet."""
        client = fake_sheets_client()
        blob_store = GoogleSheetsBlobStore(client=client)
        huge = {"accounts": [{"id": "a1", "notes": "x" * MAX_CELL_CHARACTERS}]}

        with pytest.raises(StorageError, match="at most"):
            await blob_store.put(BackupSnapshot(
                version="1.0", user_id=USER_ID, data=huge, checksum=compute_checksum(huge),
            ))

        client.get_backups_sheet.return_value.append_row.assert_not_called()

    @pytest.mark.asyncio
    async def test_round_trip_through_rows(self):
        """A written row reads back as the same snapshot."""
        writer = fake_sheets_client()
        service = BackupService(USER_ID, GoogleSheetsBlobStore(client=writer))
        await service.backup(DATASET)
        row = writer.get_backups_sheet.return_value.append_row.call_args[0][0]

        reader = BackupService(USER_ID, GoogleSheetsBlobStore(client=fake_sheets_client([row])))

        assert await reader.restore() == DATASET

    @pytest.mark.asyncio
    async def test_latest_row_for_user(self):
        """The last row carrying the user id is the latest snapshot."""
        rows = [
            [USER_ID, "2024-03-01T00:00:00+00:00", "1.0", "old", "{}"],
            ["user-2", "2024-03-02T00:00:00+00:00", "1.0", "theirs", "{}"],
            [USER_ID, "2024-03-03T00:00:00+00:00", "1.0", "new", "{}"],
        ]
        blob_store = GoogleSheetsBlobStore(client=fake_sheets_client(rows))

        latest = await blob_store.get_latest(USER_ID)

        assert latest.checksum == "new"
        assert await blob_store.get_latest("user-3") is None

    @pytest.mark.asyncio
    async def test_corrupt_row_raises(self):
        """Unparseable payload JSON is a storage error, not silent data loss."""
        rows = [[USER_ID, "2024-03-01T00:00:00+00:00", "1.0", "abc", "{not json"]]
        blob_store = GoogleSheetsBlobStore(client=fake_sheets_client(rows))

        with pytest.raises(StorageError, match="Corrupt backup row"):
            await blob_store.get_latest(USER_ID)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
