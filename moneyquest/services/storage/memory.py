"""
In-Memory Record Store

Reference implementation of RecordStoreInterface. Used by the test suite
and for local development; a real deployment swaps in a persistent
table store behind the same interface.

TRADEOFFS:
- Everything lives in process memory (lost on exit unless backed up)
- Queries are linear scans (fine for one person's finances)
- Values are normalized to JSON-compatible types on the way in, so
  ``export_all()`` is always serializable and a restored snapshot looks
  exactly like locally written data
"""

import copy
from calendar import monthrange
from collections import defaultdict
from datetime import date, datetime, time, timedelta, timezone
from decimal import Decimal
from typing import Any, Callable, Iterator, Optional

from pydantic_core import to_jsonable_python

from moneyquest.models.analytics import BudgetStatus, CategoryTotal
from moneyquest.models.records import BudgetPeriod, CategoryType, new_id, utc_now
from moneyquest.services.storage.interface import (
    ACCOUNTS,
    ALL_TABLES,
    BUDGETS,
    CATEGORIES,
    DATE_FROM,
    DATE_TO,
    TRANSACTION_SPLITS,
    TRANSACTIONS,
    DuplicateError,
    NotFoundError,
    RecordStoreInterface,
    StorageError,
)


_HUNDRED = Decimal("100")
_CENT = Decimal("0.01")

# Categories of these types never count as spending
_NON_SPENDING_TYPES = {CategoryType.INCOME.value, CategoryType.TRANSFER.value}


def _money(value: Any) -> Decimal:
    return Decimal(str(value))


def _as_datetime(value: Any) -> Optional[datetime]:
    """Parse a stored or filter value into an aware datetime."""
    if value is None:
        return None
    if isinstance(value, datetime):
        moment = value
    elif isinstance(value, date):
        moment = datetime.combine(value, time.min)
    elif isinstance(value, str):
        text = value[:-1] + "+00:00" if value.endswith("Z") else value
        try:
            moment = datetime.fromisoformat(text)
        except ValueError:
            return None
    else:
        return None
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment


def _is_calendar_date(value: Any) -> bool:
    return isinstance(value, date) and not isinstance(value, datetime)


def _in_date_range(value: Any, date_from: Any, date_to: Any) -> bool:
    """Inclusive range check. A plain ``date`` bound covers the whole day."""
    moment = _as_datetime(value)
    if moment is None:
        return False
    if date_from is not None:
        if _is_calendar_date(date_from):
            if moment.date() < date_from:
                return False
        elif moment < _as_datetime(date_from):
            return False
    if date_to is not None:
        if _is_calendar_date(date_to):
            if moment.date() > date_to:
                return False
        elif moment > _as_datetime(date_to):
            return False
    return True


def _add_months(base: date, months: int) -> date:
    total_month = (base.month - 1) + months
    year = base.year + total_month // 12
    month = (total_month % 12) + 1
    day = min(base.day, monthrange(year, month)[1])
    return base.replace(year=year, month=month, day=day)


def _advance(start: date, period: BudgetPeriod, steps: int) -> date:
    if period == BudgetPeriod.WEEKLY:
        return start + timedelta(weeks=steps)
    if period == BudgetPeriod.YEARLY:
        return _add_months(start, 12 * steps)
    return _add_months(start, steps)


def period_window(start: date, period: BudgetPeriod, today: date) -> tuple[date, date]:
    """
    The budget period that contains ``today``, as inclusive dates.

    Periods are always stepped from the original start date so that
    month-end anchors (e.g. the 31st) don't drift.
    """
    steps = 0
    window_start = start
    next_start = _advance(start, period, 1)
    while next_start <= today:
        steps += 1
        window_start = next_start
        next_start = _advance(start, period, steps + 1)
    return window_start, next_start - timedelta(days=1)


class InMemoryRecordStore(RecordStoreInterface):
    """
    Dict-of-dicts record store: ``{table: {id: record}}``.

    Records are deep-copied in both directions so callers can never
    mutate stored state by accident.
    """

    def __init__(self, today: Optional[Callable[[], date]] = None):
        """
        Args:
            today: Clock for budget periods. Defaults to the current UTC date.
        """
        self._tables: dict[str, dict[str, dict[str, Any]]] = {
            table: {} for table in ALL_TABLES
        }
        self._today = today or (lambda: utc_now().date())

    def _table(self, table: str) -> dict[str, dict[str, Any]]:
        return self._tables.setdefault(table, {})

    @staticmethod
    def _normalize(record: dict[str, Any]) -> dict[str, Any]:
        return copy.deepcopy(to_jsonable_python(record))

    @staticmethod
    def _matches(record: dict[str, Any], filter: dict[str, Any]) -> bool:
        date_from = filter.get(DATE_FROM)
        date_to = filter.get(DATE_TO)
        if date_from is not None or date_to is not None:
            if not _in_date_range(record.get("date"), date_from, date_to):
                return False

        for key, expected in filter.items():
            if key in (DATE_FROM, DATE_TO):
                continue
            if record.get(key) != to_jsonable_python(expected):
                return False
        return True

    # =========================================================================
    # CRUD
    # =========================================================================

    async def insert(self, table: str, record: dict[str, Any]) -> dict[str, Any]:
        stored = self._normalize(record)
        if not stored.get("id"):
            stored["id"] = new_id()

        rows = self._table(table)
        if stored["id"] in rows:
            raise DuplicateError(f"{table} record already exists: {stored['id']}")

        rows[stored["id"]] = stored
        return copy.deepcopy(stored)

    async def query(
        self,
        table: str,
        filter: Optional[dict[str, Any]] = None,
    ) -> list[dict[str, Any]]:
        filter = filter or {}
        return [
            copy.deepcopy(record)
            for record in self._table(table).values()
            if self._matches(record, filter)
        ]

    async def update(
        self,
        table: str,
        record_id: str,
        partial: dict[str, Any],
    ) -> dict[str, Any]:
        rows = self._table(table)
        if record_id not in rows:
            raise NotFoundError(table, record_id)

        changes = self._normalize(partial)
        changes.pop("id", None)
        rows[record_id] = {**rows[record_id], **changes}
        return copy.deepcopy(rows[record_id])

    async def delete(self, table: str, record_id: str) -> None:
        self._table(table).pop(record_id, None)

    async def count(self, table: str, filter: Optional[dict[str, Any]] = None) -> int:
        filter = filter or {}
        return sum(1 for record in self._table(table).values() if self._matches(record, filter))

    # =========================================================================
    # Aggregations
    # =========================================================================

    def _user_transactions(
        self,
        user_id: str,
        date_from: Any,
        date_to: Any,
    ) -> list[dict[str, Any]]:
        account_ids = {
            account["id"]
            for account in self._table(ACCOUNTS).values()
            if account.get("user_id") == user_id
        }
        return [
            tx for tx in self._table(TRANSACTIONS).values()
            if tx.get("account_id") in account_ids
            and _in_date_range(tx.get("date"), date_from, date_to)
        ]

    def _attributed_amounts(
        self,
        transactions: list[dict[str, Any]],
    ) -> Iterator[tuple[str, str, Decimal]]:
        """
        Yield (transaction_id, category_id, absolute_amount).

        Split parents are attributed per split; everything else to its own
        category. Uncategorized transactions are skipped.
        """
        splits_by_parent: dict[str, list[dict[str, Any]]] = defaultdict(list)
        for split in self._table(TRANSACTION_SPLITS).values():
            splits_by_parent[split.get("transaction_id")].append(split)

        for tx in transactions:
            if tx.get("is_parent") and splits_by_parent.get(tx["id"]):
                for split in splits_by_parent[tx["id"]]:
                    yield tx["id"], split["category_id"], abs(_money(split["amount"]))
            elif tx.get("category_id"):
                yield tx["id"], tx["category_id"], abs(_money(tx["original_amount"]))

    async def get_category_spending(
        self,
        user_id: str,
        start: datetime,
        end: datetime,
    ) -> list[CategoryTotal]:
        categories = {
            category["id"]: category
            for category in self._table(CATEGORIES).values()
            if category.get("user_id") == user_id
        }

        totals: dict[str, Decimal] = defaultdict(Decimal)
        tx_ids: dict[str, set[str]] = defaultdict(set)
        transactions = self._user_transactions(user_id, start, end)
        for tx_id, category_id, amount in self._attributed_amounts(transactions):
            category = categories.get(category_id)
            if category and category.get("type") in _NON_SPENDING_TYPES:
                continue
            totals[category_id] += amount
            tx_ids[category_id].add(tx_id)

        grand_total = sum(totals.values(), Decimal("0"))
        results = [
            CategoryTotal(
                category_id=category_id,
                category_name=categories.get(category_id, {}).get("name", "Uncategorized"),
                total_amount=total,
                percentage=(
                    (total / grand_total * _HUNDRED).quantize(_CENT)
                    if grand_total else Decimal("0")
                ),
                transaction_count=len(tx_ids[category_id]),
            )
            for category_id, total in totals.items()
        ]
        results.sort(key=lambda item: item.total_amount, reverse=True)
        return results

    async def get_budget_progress(self, user_id: str) -> list[BudgetStatus]:
        today = self._today()
        categories = {
            category["id"]: category
            for category in self._table(CATEGORIES).values()
            if category.get("user_id") == user_id
        }

        statuses = []
        for budget in self._table(BUDGETS).values():
            if budget.get("user_id") != user_id or not budget.get("is_active", True):
                continue

            period = BudgetPeriod(budget.get("period", BudgetPeriod.MONTHLY.value))
            window_start, window_end = period_window(
                date.fromisoformat(budget["start_date"]),
                period,
                today,
            )
            transactions = self._user_transactions(user_id, window_start, window_end)
            spent = sum(
                (
                    amount
                    for _, category_id, amount in self._attributed_amounts(transactions)
                    if category_id == budget["category_id"]
                ),
                Decimal("0"),
            )
            limit = _money(budget["amount"])

            statuses.append(BudgetStatus(
                budget_id=budget["id"],
                category_id=budget["category_id"],
                category_name=categories.get(budget["category_id"], {}).get("name", "Uncategorized"),
                budget_amount=limit,
                spent_amount=spent,
                remaining_amount=limit - spent,
                percentage_used=(spent / limit * _HUNDRED).quantize(_CENT),
                is_over_budget=spent > limit,
                period=period,
                period_start=window_start,
                period_end=window_end,
            ))
        return statuses

    # =========================================================================
    # Export / import
    # =========================================================================

    async def export_all(self) -> dict[str, list[dict[str, Any]]]:
        return {
            table: [copy.deepcopy(record) for record in rows.values()]
            for table, rows in self._tables.items()
        }

    async def import_data(self, snapshot: dict[str, list[dict[str, Any]]]) -> None:
        if not isinstance(snapshot, dict):
            raise StorageError("Snapshot must be a mapping of table name to records")

        tables: dict[str, dict[str, dict[str, Any]]] = {table: {} for table in ALL_TABLES}
        for table, records in snapshot.items():
            if not isinstance(records, list):
                raise StorageError(f"Snapshot table '{table}' is not a list of records")
            rows = tables.setdefault(table, {})
            for record in records:
                stored = self._normalize(record)
                if not stored.get("id"):
                    stored["id"] = new_id()
                rows[stored["id"]] = stored

        # Swap only after the whole snapshot parsed
        self._tables = tables
