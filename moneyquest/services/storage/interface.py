"""
Abstract Record Store Interface

DESIGN DECISION: The engine never talks to a concrete database.
It consumes this keyed-table contract, which allows us to:
1. Run on a browser-resident store, SQLite, or anything else table-shaped
2. Use the in-memory store for tests and local development
3. Keep business rules (splits, soft delete, net worth) out of storage

The interface is intentionally small - we're not building an ORM.
Records cross this boundary as JSON-compatible dicts. The typed,
per-entity view lives one layer up in ``repositories.py``.
"""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Optional

from moneyquest.models.analytics import BudgetStatus, CategoryTotal


# Logical table names
ACCOUNTS = "accounts"
CATEGORIES = "categories"
TRANSACTIONS = "transactions"
TRANSACTION_SPLITS = "transaction_splits"
BUDGETS = "budgets"
PORTFOLIOS = "portfolios"
INVESTMENTS = "investments"
NET_WORTH_SNAPSHOTS = "net_worth_snapshots"
USER_RELATIONSHIPS = "user_relationships"

ALL_TABLES = (
    ACCOUNTS,
    CATEGORIES,
    TRANSACTIONS,
    TRANSACTION_SPLITS,
    BUDGETS,
    PORTFOLIOS,
    INVESTMENTS,
    NET_WORTH_SNAPSHOTS,
    USER_RELATIONSHIPS,
)

# Reserved filter keys: inclusive range bounds on a record's ``date`` field.
# Not startDate/endDate, which would shadow columns like Budget.start_date.
DATE_FROM = "date_from"
DATE_TO = "date_to"


class RecordStoreInterface(ABC):
    """
    Abstract interface for the local record store.

    Any storage implementation must implement these methods.
    """

    @abstractmethod
    async def insert(self, table: str, record: dict[str, Any]) -> dict[str, Any]:
        """
        Persist a record.

        Args:
            table: Logical table name
            record: JSON-compatible record. An ``id`` is generated if absent.

        Returns:
            The stored record

        Raises:
            DuplicateError: If a record with the same id already exists
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def query(
        self,
        table: str,
        filter: Optional[dict[str, Any]] = None,
    ) -> list[dict[str, Any]]:
        """
        Return every record matching the filter.

        Args:
            table: Logical table name
            filter: Equality map over fields. The reserved keys
                    ``date_from`` / ``date_to`` are inclusive bounds
                    against the record's ``date`` field.

        Returns:
            Matching records (empty list if none)
        """
        pass

    @abstractmethod
    async def update(
        self,
        table: str,
        record_id: str,
        partial: dict[str, Any],
    ) -> dict[str, Any]:
        """
        Merge ``partial`` onto an existing record.

        Returns:
            The updated record

        Raises:
            NotFoundError: If no record has this id
        """
        pass

    @abstractmethod
    async def delete(self, table: str, record_id: str) -> None:
        """Remove a record. Deleting an absent id is a no-op."""
        pass

    @abstractmethod
    async def count(self, table: str, filter: Optional[dict[str, Any]] = None) -> int:
        """Number of records matching the filter (dependent-record checks)."""
        pass

    @abstractmethod
    async def get_category_spending(
        self,
        user_id: str,
        start: datetime,
        end: datetime,
    ) -> list[CategoryTotal]:
        """
        Spending per category for one user over an inclusive date range.
        """
        pass

    @abstractmethod
    async def get_budget_progress(self, user_id: str) -> list[BudgetStatus]:
        """
        Progress of every active budget in its current period.
        """
        pass

    @abstractmethod
    async def export_all(self) -> dict[str, list[dict[str, Any]]]:
        """
        Full dataset as a table -> records map. Used only by backup.
        """
        pass

    @abstractmethod
    async def import_data(self, snapshot: dict[str, list[dict[str, Any]]]) -> None:
        """
        Replace the full dataset with ``snapshot``. Used only by restore.
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""

    def __init__(self, table: str, record_id: str):
        self.table = table
        self.record_id = record_id
        super().__init__(f"{table} record not found: {record_id}")


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass
