"""
Local-First Data Engine for MoneyQuest

This module ties together all the components and is the single entry
point for every domain operation:
1. Record CRUD (accounts, categories, transactions, budgets, portfolios)
2. Transaction splitting
3. Budget, spending, net-worth and portfolio analytics
4. Feature-gated actions (receipt OCR, bank connections, family sharing)
5. Session-boundary backup, restore and sync

DESIGN DECISION: The engine enforces the boundaries:
- Validation happens before any write
- Paid features ask the Subscription Manager first
- Every mutation marks the session dirty and is audited
- Backups happen only at session boundaries, never per mutation

The only state the engine keeps between calls is the dirty flag.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional, TypeVar, Union

import structlog
from pydantic import ValidationError

from moneyquest.audit import AuditLogger
from moneyquest.config import EngineSettings, get_settings
from moneyquest.models.analytics import (
    AssetAllocation,
    AssetClass,
    BudgetStatus,
    CategoryTotal,
    PortfolioPerformance,
    PortfolioValueSummary,
)
from moneyquest.models.integrations import BankConnectionStatus, BankInstitution, OCRResult
from moneyquest.models.records import (
    Account,
    Budget,
    Category,
    CreateTransactionRequest,
    DeleteOutcome,
    Investment,
    NetWorthSnapshot,
    Portfolio,
    PortfolioWithInvestments,
    RecordModel,
    SplitItem,
    Transaction,
    TransactionSplit,
    TransactionWithSplits,
    UpdateTransactionRequest,
    UserRelationship,
    utc_now,
)
from moneyquest.services.backup import (
    BackupService,
    GoogleSheetsBlobStore,
    InMemoryBlobStore,
    RemoteBlobStore,
)
from moneyquest.services.banking import BankConnectorInterface
from moneyquest.services.ocr import ReceiptOCRInterface
from moneyquest.services.storage import (
    AccountRepository,
    BudgetRepository,
    CategoryRepository,
    InMemoryRecordStore,
    InvestmentRepository,
    NetWorthRepository,
    PortfolioRepository,
    RecordRepository,
    RecordStoreInterface,
    RelationshipRepository,
    SplitRepository,
    TransactionRepository,
)
from moneyquest.subscription import SubscriptionManager, SubscriptionStatus


logger = structlog.get_logger("moneyquest.engine")

ModelT = TypeVar("ModelT", bound=RecordModel)

# Fields a caller can never set directly on create or update
_SYSTEM_FIELDS = ("id", "created_at", "updated_at")

_HUNDRED = Decimal("100")
_PERCENT_PLACES = Decimal("0.0001")


# =============================================================================
# Errors
# =============================================================================

class DataEngineError(Exception):
    """Base exception for data engine operations."""
    pass


class InvalidSplitError(DataEngineError):
    """Split request violates the split invariant. Nothing was written."""

    def __init__(self, transaction_id: str, reason: str):
        self.transaction_id = transaction_id
        self.reason = reason
        super().__init__(f"Invalid split for transaction {transaction_id}: {reason}")


class SplitWriteError(DataEngineError):
    """
    A split write failed part-way.

    ``orphaned_split_ids`` lists splits that could not be removed again.
    Empty means the store is back to its pre-split state.
    """

    def __init__(
        self,
        transaction_id: str,
        message: str,
        orphaned_split_ids: Optional[list[str]] = None,
    ):
        self.transaction_id = transaction_id
        self.orphaned_split_ids = orphaned_split_ids or []
        super().__init__(message)


class UpgradeRequiredError(DataEngineError):
    """A subscription gate denied the requested feature."""

    def __init__(self, message: str, feature: str):
        self.message = message
        self.feature = feature
        super().__init__(message)


class RestoreError(DataEngineError):
    """Restoring or syncing from the remote backup failed."""
    pass


# =============================================================================
# Helpers
# =============================================================================

def categorize_asset_type(symbol: str) -> AssetClass:
    """Bucket a ticker symbol into an asset class by simple heuristics."""
    upper_symbol = symbol.upper()

    if any(marker in upper_symbol for marker in ("BTC", "ETH", "CRYPTO")):
        return AssetClass.CRYPTOCURRENCY
    if any(marker in upper_symbol for marker in ("BND", "BOND", "TLT")):
        return AssetClass.BONDS
    if any(marker in upper_symbol for marker in ("VTI", "VXUS", "ETF")):
        return AssetClass.ETF
    if len(upper_symbol) <= 4:
        return AssetClass.STOCKS
    return AssetClass.OTHER


def _gain_loss_percent(gain_loss: Decimal, cost_basis: Decimal) -> Decimal:
    if cost_basis <= 0:
        return Decimal("0")
    return gain_loss / cost_basis * _HUNDRED


def _user_fields(data: dict[str, Any]) -> dict[str, Any]:
    return {key: value for key, value in data.items() if key not in _SYSTEM_FIELDS}


class LocalDataEngine:
    """
    Orchestrates every domain operation over the local Record Store.

    Collaborators (backup, OCR, bank connector) are optional; an action
    that needs a missing collaborator raises DataEngineError after its
    subscription gate has passed.
    """

    def __init__(
        self,
        store: RecordStoreInterface,
        subscription: Optional[SubscriptionManager] = None,
        backup_service: Optional[BackupService] = None,
        ocr_service: Optional[ReceiptOCRInterface] = None,
        bank_connector: Optional[BankConnectorInterface] = None,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[EngineSettings] = None,
        user_id: Optional[str] = None,
    ):
        self._store = store
        self._subscription = subscription or SubscriptionManager()
        self._backup = backup_service
        self._ocr = ocr_service
        self._bank = bank_connector
        self._audit = audit_logger or AuditLogger()
        self._settings = settings or get_settings().engine
        self.user_id = user_id or (backup_service.user_id if backup_service else None)

        self._accounts = AccountRepository(store)
        self._categories = CategoryRepository(store)
        self._transactions = TransactionRepository(store)
        self._splits = SplitRepository(store)
        self._budgets = BudgetRepository(store)
        self._portfolios = PortfolioRepository(store)
        self._investments = InvestmentRepository(store)
        self._net_worth = NetWorthRepository(store)
        self._relationships = RelationshipRepository(store)

        self._has_unsynced_changes = False

    # =========================================================================
    # State
    # =========================================================================

    @property
    def subscription(self) -> SubscriptionManager:
        return self._subscription

    @property
    def audit_logger(self) -> AuditLogger:
        return self._audit

    def has_unsaved_changes(self) -> bool:
        return self._has_unsynced_changes

    def get_subscription_tier(self) -> str:
        return self._subscription.get_tier()

    def update_subscription(self, subscription: SubscriptionStatus) -> None:
        self._subscription.update_subscription(subscription)

    def _mark_dirty(self) -> None:
        self._has_unsynced_changes = True

    # =========================================================================
    # Generic create / update
    # =========================================================================

    async def _create(self, repo: RecordRepository[ModelT], data: dict[str, Any]) -> ModelT:
        """Validate, stamp, persist, audit. Caller-supplied ids and stamps are ignored."""
        item = repo.model.model_validate(_user_fields(data))
        stored = await repo.insert(item)
        self._mark_dirty()
        self._audit.log_record_created(repo.table, stored.id)
        return stored

    async def _update(
        self,
        repo: RecordRepository[ModelT],
        record_id: str,
        changes: dict[str, Any],
    ) -> ModelT:
        """Merge ``changes`` onto the current record, re-validate, restamp."""
        current = await repo.get(record_id)
        changes = _user_fields(changes)
        merged = repo.model.model_validate({
            **current.model_dump(),
            **changes,
            "updated_at": utc_now(),
        })
        stored = await repo.update(record_id, merged.model_dump(mode="json"))
        self._mark_dirty()
        self._audit.log_record_updated(repo.table, record_id, sorted(changes))
        return stored

    # =========================================================================
    # Transactions
    # =========================================================================

    async def add_transaction(
        self,
        request: Union[CreateTransactionRequest, dict[str, Any]],
    ) -> Transaction:
        """
        Record a new transaction.

        The owning account's balance is NOT touched; balances are
        tracked independently of transactions.
        """
        if not isinstance(request, CreateTransactionRequest):
            request = CreateTransactionRequest.model_validate(request)

        transaction = Transaction(**request.model_dump(), is_parent=False)
        stored = await self._transactions.insert(transaction)
        self._mark_dirty()
        self._audit.log_record_created(self._transactions.table, stored.id)
        return stored

    async def _attach_splits(self, transactions: list[Transaction]) -> list[TransactionWithSplits]:
        splits_by_parent: dict[str, list[TransactionSplit]] = {}
        if any(tx.is_parent for tx in transactions):
            for split in await self._splits.list():
                splits_by_parent.setdefault(split.transaction_id, []).append(split)

        return [
            TransactionWithSplits(**tx.model_dump(), splits=splits_by_parent.get(tx.id, []))
            for tx in transactions
        ]

    async def get_transactions(
        self,
        filter: Optional[dict[str, Any]] = None,
    ) -> list[TransactionWithSplits]:
        """
        Transactions matching ``filter``, each with its splits attached.

        ``date_from`` / ``date_to`` in the filter are inclusive date bounds.
        """
        transactions = await self._transactions.list(filter)
        return await self._attach_splits(transactions)

    async def get_transaction(self, transaction_id: str) -> TransactionWithSplits:
        transaction = await self._transactions.get(transaction_id)
        splits = (
            await self._splits.list_for_transaction(transaction_id)
            if transaction.is_parent else []
        )
        return TransactionWithSplits(**transaction.model_dump(), splits=splits)

    async def update_transaction(
        self,
        transaction_id: str,
        update: Union[UpdateTransactionRequest, dict[str, Any]],
    ) -> Transaction:
        """
        Merge the provided fields onto the transaction.

        The amount of a split parent is fixed; its splits must keep
        summing to it.

        Raises:
            NotFoundError: If the transaction doesn't exist
            InvalidSplitError: If the amount of a split transaction changes
        """
        if not isinstance(update, UpdateTransactionRequest):
            update = UpdateTransactionRequest.model_validate(update)
        changes = update.changes()

        current = await self._transactions.get(transaction_id)
        new_amount = changes.get("original_amount")
        if current.is_parent and new_amount is not None and new_amount != current.original_amount:
            reason = "cannot change the amount of a split transaction"
            self._audit.log_split_rejected(transaction_id, reason)
            raise InvalidSplitError(transaction_id, reason)

        return await self._update(self._transactions, transaction_id, changes)

    async def delete_transaction(self, transaction_id: str) -> None:
        """
        Remove a transaction.

        Splits of a split parent are left in place. Whether they should
        cascade is an open product decision.
        """
        await self._transactions.delete(transaction_id)
        self._mark_dirty()
        self._audit.log_record_deleted(self._transactions.table, transaction_id)

    def _split_violation(self, parent: Transaction, items: list[SplitItem]) -> Optional[str]:
        """First reason the split request is invalid, or None."""
        if len(items) < 2:
            return "a split needs at least 2 parts"
        if parent.is_parent:
            return "transaction is already split"
        if parent.original_amount == 0:
            return "cannot split a zero-amount transaction"

        parent_is_negative = parent.original_amount < 0
        for item in items:
            if (item.amount < 0) != parent_is_negative:
                return "every split must have the same sign as the transaction"

        total = sum((item.amount for item in items), Decimal("0"))
        if abs(total - parent.original_amount) > self._settings.split_tolerance:
            return (
                f"splits sum to {total} but the transaction amount is "
                f"{parent.original_amount}"
            )
        return None

    async def split_transaction(
        self,
        transaction_id: str,
        splits: list[Union[SplitItem, dict[str, Any]]],
    ) -> TransactionWithSplits:
        """
        Allocate a transaction across categories.

        All validation happens before the first write. If a write fails
        part-way, the splits already written are deleted again and
        SplitWriteError is raised; the parent is never flagged.

        Raises:
            NotFoundError: If the transaction doesn't exist
            InvalidSplitError: If the splits violate the split rules
            SplitWriteError: If persisting failed part-way
        """
        try:
            items = [
                item if isinstance(item, SplitItem) else SplitItem.model_validate(item)
                for item in splits
            ]
        except ValidationError as e:
            reason = "; ".join(error["msg"] for error in e.errors())
            self._audit.log_split_rejected(transaction_id, reason)
            raise InvalidSplitError(transaction_id, reason) from e

        parent = await self._transactions.get(transaction_id)

        reason = self._split_violation(parent, items)
        if reason:
            self._audit.log_split_rejected(transaction_id, reason)
            raise InvalidSplitError(transaction_id, reason)

        written: list[TransactionSplit] = []
        try:
            for item in items:
                split = TransactionSplit(
                    transaction_id=parent.id,
                    amount=item.amount,
                    category_id=item.category_id,
                    description=item.description,
                    percentage=(item.amount / parent.original_amount * _HUNDRED).quantize(
                        _PERCENT_PLACES
                    ),
                )
                written.append(await self._splits.insert(split))

            flagged = await self._transactions.update(
                parent.id,
                {"is_parent": True, "updated_at": utc_now()},
            )
        except Exception as e:
            raise await self._undo_split_writes(parent.id, written, e) from e

        self._mark_dirty()
        self._audit.log_transaction_split(parent.id, len(written))
        return TransactionWithSplits(**flagged.model_dump(), splits=written)

    async def _undo_split_writes(
        self,
        transaction_id: str,
        written: list[TransactionSplit],
        error: Exception,
    ) -> SplitWriteError:
        """Delete the splits written so far. Returns the error to raise."""
        orphaned = []
        for split in written:
            try:
                await self._splits.delete(split.id)
            except Exception:
                orphaned.append(split.id)

        if orphaned:
            # Store is now inconsistent; needs manual reconciliation
            self._mark_dirty()
            self._audit.log_split_integrity_failure(transaction_id, orphaned, str(error))
            return SplitWriteError(
                transaction_id,
                f"Split of {transaction_id} failed and {len(orphaned)} split(s) "
                f"could not be removed: {error}",
                orphaned_split_ids=orphaned,
            )

        self._audit.log_split_rolled_back(
            transaction_id,
            [split.id for split in written],
            str(error),
        )
        return SplitWriteError(
            transaction_id,
            f"Split of {transaction_id} failed and was rolled back: {error}",
        )

    # =========================================================================
    # Accounts
    # =========================================================================

    async def create_account(self, data: dict[str, Any]) -> Account:
        """
        Raises:
            UpgradeRequiredError: If the user is at their tier's account limit
        """
        user_id = data.get("user_id")
        if user_id:
            active = await self._accounts.count_active_for_user(user_id)
            if active >= self._subscription.get_account_limit():
                self._deny("account_limit")
        return await self._create(self._accounts, data)

    async def get_accounts(self, user_id: str, include_inactive: bool = False) -> list[Account]:
        return await self._accounts.list_for_user(user_id, include_inactive=include_inactive)

    async def get_account(self, account_id: str) -> Account:
        return await self._accounts.get(account_id)

    async def update_account(self, account_id: str, changes: dict[str, Any]) -> Account:
        return await self._update(self._accounts, account_id, changes)

    async def delete_account(self, account_id: str) -> DeleteOutcome:
        """
        Hard delete when no transaction references the account,
        otherwise deactivate it so its history stays intact.

        Raises:
            NotFoundError: If the account doesn't exist
        """
        await self._accounts.get(account_id)
        transaction_count = await self._transactions.count_for_account(account_id)

        if transaction_count == 0:
            await self._accounts.delete(account_id)
            self._mark_dirty()
            self._audit.log_record_deleted(self._accounts.table, account_id)
            return DeleteOutcome.DELETED

        await self._accounts.update(account_id, {"is_active": False, "updated_at": utc_now()})
        self._mark_dirty()
        self._audit.log_record_deleted(
            self._accounts.table,
            account_id,
            soft=True,
            reason=f"{transaction_count} transaction(s) reference this account",
        )
        return DeleteOutcome.DEACTIVATED

    # =========================================================================
    # Categories
    # =========================================================================

    async def create_category(self, data: dict[str, Any]) -> Category:
        return await self._create(self._categories, data)

    async def get_categories(self, user_id: str) -> list[Category]:
        return await self._categories.list_for_user(user_id)

    async def update_category(self, category_id: str, changes: dict[str, Any]) -> Category:
        return await self._update(self._categories, category_id, changes)

    # =========================================================================
    # Budgets
    # =========================================================================

    async def create_budget(self, data: dict[str, Any]) -> Budget:
        return await self._create(self._budgets, data)

    async def get_budgets(self, user_id: str) -> list[Budget]:
        return await self._budgets.list_for_user(user_id)

    async def update_budget(self, budget_id: str, changes: dict[str, Any]) -> Budget:
        return await self._update(self._budgets, budget_id, changes)

    async def delete_budget(self, budget_id: str) -> None:
        await self._budgets.delete(budget_id)
        self._mark_dirty()
        self._audit.log_record_deleted(self._budgets.table, budget_id)

    # =========================================================================
    # Portfolios and investments
    # =========================================================================

    async def create_portfolio(self, user_id: str, data: dict[str, Any]) -> Portfolio:
        return await self._create(self._portfolios, {**data, "user_id": user_id})

    async def get_portfolios(self, user_id: str) -> list[Portfolio]:
        """Active portfolios only."""
        return await self._portfolios.list_active_for_user(user_id)

    async def update_portfolio(self, portfolio_id: str, changes: dict[str, Any]) -> Portfolio:
        return await self._update(self._portfolios, portfolio_id, changes)

    async def delete_portfolio(self, portfolio_id: str) -> None:
        """Portfolios are only ever deactivated."""
        await self._portfolios.update(portfolio_id, {"is_active": False, "updated_at": utc_now()})
        self._mark_dirty()
        self._audit.log_record_deleted(self._portfolios.table, portfolio_id, soft=True)

    async def create_investment(self, portfolio_id: str, data: dict[str, Any]) -> Investment:
        """
        Add a holding to a portfolio. The owner is taken from the portfolio.

        Raises:
            NotFoundError: If the portfolio doesn't exist
        """
        portfolio = await self._portfolios.get(portfolio_id)
        return await self._create(
            self._investments,
            {**data, "portfolio_id": portfolio.id, "user_id": portfolio.user_id},
        )

    async def get_investments(self, portfolio_id: Optional[str] = None) -> list[Investment]:
        if portfolio_id is None:
            return await self._investments.list()
        return await self._investments.list_for_portfolio(portfolio_id)

    async def update_investment(self, investment_id: str, changes: dict[str, Any]) -> Investment:
        return await self._update(self._investments, investment_id, changes)

    async def delete_investment(self, investment_id: str) -> None:
        await self._investments.delete(investment_id)
        self._mark_dirty()
        self._audit.log_record_deleted(self._investments.table, investment_id)

    async def get_portfolio_with_investments(
        self,
        portfolio_id: str,
    ) -> Optional[PortfolioWithInvestments]:
        portfolio = await self._portfolios.find(portfolio_id)
        if portfolio is None:
            return None
        investments = await self._investments.list_for_portfolio(portfolio_id)
        return PortfolioWithInvestments(**portfolio.model_dump(), investments=investments)

    async def get_all_portfolios_with_investments(
        self,
        user_id: str,
    ) -> list[PortfolioWithInvestments]:
        return [
            PortfolioWithInvestments(
                **portfolio.model_dump(),
                investments=await self._investments.list_for_portfolio(portfolio.id),
            )
            for portfolio in await self.get_portfolios(user_id)
        ]

    # =========================================================================
    # Analytics
    # =========================================================================

    async def calculate_category_spending(
        self,
        user_id: str,
        start: datetime,
        end: datetime,
    ) -> list[CategoryTotal]:
        return await self._store.get_category_spending(user_id, start, end)

    async def get_budget_progress(self, user_id: str) -> list[BudgetStatus]:
        return await self._store.get_budget_progress(user_id)

    async def generate_net_worth_snapshot(self, user_id: str) -> NetWorthSnapshot:
        """
        Compute and persist the user's net worth right now.

        Assets: every non-credit account balance plus the market value of
        every holding. Liabilities: absolute credit balances.
        """
        accounts = await self._accounts.list_for_user(user_id, include_inactive=True)
        investments = await self._investments.list_for_user(user_id)

        account_assets = sum(
            (account.balance for account in accounts if not account.is_liability),
            Decimal("0"),
        )
        investment_value = sum(
            (investment.market_value for investment in investments),
            Decimal("0"),
        )
        total_liabilities = sum(
            (abs(account.balance) for account in accounts if account.is_liability),
            Decimal("0"),
        )
        total_assets = account_assets + investment_value

        snapshot = NetWorthSnapshot(
            user_id=user_id,
            total_assets=total_assets,
            total_liabilities=total_liabilities,
            net_worth=total_assets - total_liabilities,
        )
        stored = await self._net_worth.insert(snapshot)
        self._mark_dirty()
        self._audit.log_net_worth_snapshot(user_id, stored.id, str(stored.net_worth))
        return stored

    async def get_net_worth_history(self, user_id: str) -> list[NetWorthSnapshot]:
        """Snapshots oldest first."""
        return await self._net_worth.history_for_user(user_id)

    # =========================================================================
    # Portfolio analytics
    # =========================================================================

    async def calculate_portfolio_performance(self, portfolio_id: str) -> PortfolioPerformance:
        investments = await self._investments.list_for_portfolio(portfolio_id)

        current_value = sum((inv.market_value for inv in investments), Decimal("0"))
        cost_basis = sum((inv.total_cost for inv in investments), Decimal("0"))
        gain_loss = current_value - cost_basis

        return PortfolioPerformance(
            portfolio_id=portfolio_id,
            total_current_value=current_value,
            total_cost_basis=cost_basis,
            gain_loss=gain_loss,
            gain_loss_percent=_gain_loss_percent(gain_loss, cost_basis),
            investment_count=len(investments),
        )

    async def calculate_total_portfolio_value(self, user_id: str) -> PortfolioValueSummary:
        portfolios = await self.get_all_portfolios_with_investments(user_id)
        investments = [inv for portfolio in portfolios for inv in portfolio.investments]

        total_value = sum((inv.market_value for inv in investments), Decimal("0"))
        cost_basis = sum((inv.total_cost for inv in investments), Decimal("0"))
        gain_loss = total_value - cost_basis

        return PortfolioValueSummary(
            user_id=user_id,
            total_value=total_value,
            total_cost_basis=cost_basis,
            gain_loss=gain_loss,
            gain_loss_percent=_gain_loss_percent(gain_loss, cost_basis),
            portfolio_count=len(portfolios),
            total_investments=len(investments),
        )

    async def get_asset_allocation(self, user_id: str) -> list[AssetAllocation]:
        portfolios = await self.get_all_portfolios_with_investments(user_id)

        buckets: dict[AssetClass, Decimal] = {}
        for portfolio in portfolios:
            for investment in portfolio.investments:
                asset_class = categorize_asset_type(investment.symbol)
                buckets[asset_class] = buckets.get(asset_class, Decimal("0")) + investment.market_value

        total_value = sum(buckets.values(), Decimal("0"))
        return [
            AssetAllocation(
                type=asset_class,
                value=value,
                percentage=value / total_value * _HUNDRED if total_value > 0 else Decimal("0"),
            )
            for asset_class, value in buckets.items()
        ]

    # =========================================================================
    # Feature-gated actions
    # =========================================================================

    def _deny(self, feature: str) -> None:
        message = self._subscription.get_upgrade_message(feature)
        self._audit.log_feature_gate_denied(feature, self._subscription.get_tier())
        raise UpgradeRequiredError(message, feature)

    async def process_receipt_ocr(
        self,
        image_bytes: bytes,
        filename: str,
        mime_type: str,
    ) -> OCRResult:
        """
        Extract PROPOSED transaction data from a receipt (Plus & Premium).

        Nothing is persisted; the caller reviews the result.
        """
        if not self._subscription.can_use_ocr():
            self._deny("ocr")
        if self._ocr is None:
            raise DataEngineError("No OCR service is configured")

        try:
            return await self._ocr.process_receipt(image_bytes, filename, mime_type)
        except Exception as e:
            self._audit.log_external_service_error("ocr", str(e))
            raise

    async def connect_bank_account(
        self,
        public_token: str,
        institution: BankInstitution,
    ) -> BankConnectionStatus:
        """Link a bank through the aggregator (Premium only)."""
        if not self._subscription.can_connect_banks():
            self._deny("bank_connections")
        if self._bank is None:
            raise DataEngineError("No bank connector is configured")

        try:
            return await self._bank.connect(public_token, institution)
        except Exception as e:
            self._audit.log_external_service_error("bank_connector", str(e))
            raise

    async def add_family_member(self, email: str) -> UserRelationship:
        """Invite someone to share this user's data (Plus & Premium)."""
        if not self._subscription.can_use_multi_user():
            self._deny("multi_user")

        return await self._create(self._relationships, {
            "user_id": self.user_id,
            "related_user_email": email,
            "relationship_type": "family",
            "status": "pending",
        })

    # =========================================================================
    # Session lifecycle
    # =========================================================================

    @staticmethod
    def _record_counts(data: dict[str, list]) -> dict[str, int]:
        return {table: len(records) for table, records in data.items()}

    async def end_session(self) -> None:
        """
        Back up the dataset if anything changed this session.

        Backup failures are logged and swallowed so shutdown is never
        blocked; the dirty flag stays set and the next session retries.
        """
        if not self._has_unsynced_changes:
            return
        if self._backup is None:
            logger.warning("backup_skipped", reason="no backup service configured")
            return

        try:
            data = await self._store.export_all()
            snapshot = await self._backup.backup(data)
        except Exception as e:
            self._audit.log_backup_failed(str(e))
            return

        self._has_unsynced_changes = False
        self._audit.log_backup_completed(snapshot.checksum, self._record_counts(data))
        self._audit.new_session()

    async def restore_from_backup(self) -> bool:
        """
        Replace the local dataset with the latest remote snapshot.

        Returns:
            True if a snapshot was restored, False if none exists

        Raises:
            RestoreError: On any failure (the local state is then unknown)
        """
        if self._backup is None:
            raise RestoreError("No backup service is configured")

        try:
            data = await self._backup.restore()
            if data is None:
                self._audit.log_restore_empty()
                return False
            await self._store.import_data(data)
        except Exception as e:
            self._audit.log_restore_failed(str(e))
            raise RestoreError(f"Failed to restore data from backup: {e}") from e

        self._has_unsynced_changes = False
        self._audit.log_restore_completed(self._record_counts(data))
        return True

    async def sync_with_backup(self) -> dict[str, int]:
        """
        Merge the latest remote snapshot into the local dataset
        (last-writer-wins per record) instead of replacing it.

        Returns:
            Record counts per table after the merge

        Raises:
            RestoreError: On any failure
        """
        if self._backup is None:
            raise RestoreError("No backup service is configured")

        try:
            local = await self._store.export_all()
            remote = await self._backup.restore()
            if remote is None:
                self._audit.log_restore_empty()
                return self._record_counts(local)
            merged = self._backup.merge_with_backup(local, remote)
            await self._store.import_data(merged)
        except Exception as e:
            self._audit.log_restore_failed(str(e))
            raise RestoreError(f"Failed to sync with backup: {e}") from e

        # Local-only changes still need to reach the remote copy
        if merged != remote:
            self._mark_dirty()
        else:
            self._has_unsynced_changes = False
        counts = self._record_counts(merged)
        self._audit.log_sync_merged(counts)
        return counts


# =============================================================================
# Factory
# =============================================================================

def create_local_engine(
    user_id: str,
    subscription: Optional[SubscriptionStatus] = None,
    store: Optional[RecordStoreInterface] = None,
    use_remote_backup: bool = True,
    ocr_service: Optional[ReceiptOCRInterface] = None,
    bank_connector: Optional[BankConnectorInterface] = None,
) -> LocalDataEngine:
    """
    Factory function to wire an engine with its default components.

    Args:
        user_id: Owner of the local dataset
        subscription: Current subscription, free tier if omitted
        store: Record Store, in-memory if omitted
        use_remote_backup: Back up to Google Sheets. Falls back to an
                           in-memory blob store when Sheets isn't configured.
    """
    settings = get_settings().engine
    blob_store: RemoteBlobStore

    if use_remote_backup:
        try:
            blob_store = GoogleSheetsBlobStore()
        except Exception as e:
            # Sheets not configured - continue with a local-only blob store
            logger.warning("remote_backup_unavailable", error=str(e))
            blob_store = InMemoryBlobStore()
    else:
        blob_store = InMemoryBlobStore()

    return LocalDataEngine(
        store=store or InMemoryRecordStore(),
        subscription=SubscriptionManager(subscription),
        backup_service=BackupService(user_id, blob_store, version=settings.backup_version),
        ocr_service=ocr_service,
        bank_connector=bank_connector,
        settings=settings,
        user_id=user_id,
    )
