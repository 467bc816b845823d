"""
Typed repositories over the Record Store.

One repository per entity binds a table name to its Pydantic model, so the
engine works with ``Account`` / ``Transaction`` objects instead of raw dicts
and table strings. Everything read back from the store is re-validated.
"""

from typing import Any, Generic, Optional, TypeVar

from pydantic import BaseModel

from moneyquest.models.records import (
    Account,
    Budget,
    Category,
    Investment,
    NetWorthSnapshot,
    Portfolio,
    Transaction,
    TransactionSplit,
    UserRelationship,
)
from moneyquest.services.storage.interface import (
    ACCOUNTS,
    BUDGETS,
    CATEGORIES,
    INVESTMENTS,
    NET_WORTH_SNAPSHOTS,
    PORTFOLIOS,
    TRANSACTION_SPLITS,
    TRANSACTIONS,
    USER_RELATIONSHIPS,
    NotFoundError,
    RecordStoreInterface,
)


ModelT = TypeVar("ModelT", bound=BaseModel)


class RecordRepository(Generic[ModelT]):
    """Generic CRUD for one table."""

    table: str
    model: type[ModelT]

    def __init__(self, store: RecordStoreInterface):
        self.store = store

    def _parse(self, record: dict[str, Any]) -> ModelT:
        return self.model.model_validate(record)

    async def insert(self, item: ModelT) -> ModelT:
        stored = await self.store.insert(self.table, item.model_dump(mode="json"))
        return self._parse(stored)

    async def find(self, record_id: str) -> Optional[ModelT]:
        records = await self.store.query(self.table, {"id": record_id})
        return self._parse(records[0]) if records else None

    async def get(self, record_id: str) -> ModelT:
        item = await self.find(record_id)
        if item is None:
            raise NotFoundError(self.table, record_id)
        return item

    async def list(self, filter: Optional[dict[str, Any]] = None) -> list[ModelT]:
        records = await self.store.query(self.table, filter)
        return [self._parse(record) for record in records]

    async def update(self, record_id: str, changes: dict[str, Any]) -> ModelT:
        stored = await self.store.update(self.table, record_id, changes)
        return self._parse(stored)

    async def delete(self, record_id: str) -> None:
        await self.store.delete(self.table, record_id)

    async def count(self, filter: Optional[dict[str, Any]] = None) -> int:
        return await self.store.count(self.table, filter)


class AccountRepository(RecordRepository[Account]):
    table = ACCOUNTS
    model = Account

    async def list_for_user(self, user_id: str, include_inactive: bool = False) -> list[Account]:
        filter: dict[str, Any] = {"user_id": user_id}
        if not include_inactive:
            filter["is_active"] = True
        return await self.list(filter)

    async def count_active_for_user(self, user_id: str) -> int:
        return await self.count({"user_id": user_id, "is_active": True})


class CategoryRepository(RecordRepository[Category]):
    table = CATEGORIES
    model = Category

    async def list_for_user(self, user_id: str) -> list[Category]:
        return await self.list({"user_id": user_id})


class TransactionRepository(RecordRepository[Transaction]):
    table = TRANSACTIONS
    model = Transaction

    async def count_for_account(self, account_id: str) -> int:
        return await self.count({"account_id": account_id})


class SplitRepository(RecordRepository[TransactionSplit]):
    table = TRANSACTION_SPLITS
    model = TransactionSplit

    async def list_for_transaction(self, transaction_id: str) -> list[TransactionSplit]:
        return await self.list({"transaction_id": transaction_id})


class BudgetRepository(RecordRepository[Budget]):
    table = BUDGETS
    model = Budget

    async def list_for_user(self, user_id: str) -> list[Budget]:
        return await self.list({"user_id": user_id})


class PortfolioRepository(RecordRepository[Portfolio]):
    table = PORTFOLIOS
    model = Portfolio

    async def list_active_for_user(self, user_id: str) -> list[Portfolio]:
        return await self.list({"user_id": user_id, "is_active": True})


class InvestmentRepository(RecordRepository[Investment]):
    table = INVESTMENTS
    model = Investment

    async def list_for_portfolio(self, portfolio_id: str) -> list[Investment]:
        return await self.list({"portfolio_id": portfolio_id})

    async def list_for_user(self, user_id: str) -> list[Investment]:
        return await self.list({"user_id": user_id})


class NetWorthRepository(RecordRepository[NetWorthSnapshot]):
    """Append-only: snapshots are inserted and read, never updated."""
    table = NET_WORTH_SNAPSHOTS
    model = NetWorthSnapshot

    async def history_for_user(self, user_id: str) -> list[NetWorthSnapshot]:
        snapshots = await self.list({"user_id": user_id})
        return sorted(snapshots, key=lambda snapshot: snapshot.date)


class RelationshipRepository(RecordRepository[UserRelationship]):
    table = USER_RELATIONSHIPS
    model = UserRelationship

    async def list_for_user(self, user_id: str) -> list[UserRelationship]:
        return await self.list({"user_id": user_id})
