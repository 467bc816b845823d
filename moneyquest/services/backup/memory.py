"""In-process blob store. Used by tests and for offline development."""

from typing import Optional

from moneyquest.models.integrations import BackupSnapshot
from moneyquest.services.backup.interface import RemoteBlobStore


class InMemoryBlobStore(RemoteBlobStore):
    """Keeps every uploaded snapshot per user; the last one is the latest."""

    def __init__(self):
        self._snapshots: dict[str, list[BackupSnapshot]] = {}

    async def put(self, snapshot: BackupSnapshot) -> None:
        self._snapshots.setdefault(snapshot.user_id, []).append(
            snapshot.model_copy(deep=True)
        )

    async def get_latest(self, user_id: str) -> Optional[BackupSnapshot]:
        history = self._snapshots.get(user_id)
        if not history:
            return None
        return history[-1].model_copy(deep=True)

    def history(self, user_id: str) -> list[BackupSnapshot]:
        return [snapshot.model_copy(deep=True) for snapshot in self._snapshots.get(user_id, [])]
