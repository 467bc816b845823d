"""
Storage Services Package

Provides the abstract Record Store contract, typed per-entity repositories,
and an in-memory reference implementation. Designed to be swappable.
"""

from moneyquest.services.storage.interface import (
    ACCOUNTS,
    ALL_TABLES,
    BUDGETS,
    CATEGORIES,
    DATE_FROM,
    DATE_TO,
    INVESTMENTS,
    NET_WORTH_SNAPSHOTS,
    PORTFOLIOS,
    TRANSACTION_SPLITS,
    TRANSACTIONS,
    USER_RELATIONSHIPS,
    DuplicateError,
    NotFoundError,
    RecordStoreInterface,
    StorageError,
)
from moneyquest.services.storage.memory import InMemoryRecordStore, period_window
from moneyquest.services.storage.repositories import (
    AccountRepository,
    BudgetRepository,
    CategoryRepository,
    InvestmentRepository,
    NetWorthRepository,
    PortfolioRepository,
    RecordRepository,
    RelationshipRepository,
    SplitRepository,
    TransactionRepository,
)

__all__ = [
    # Interface
    "RecordStoreInterface",
    # Tables and filter keys
    "ACCOUNTS",
    "ALL_TABLES",
    "BUDGETS",
    "CATEGORIES",
    "DATE_FROM",
    "DATE_TO",
    "INVESTMENTS",
    "NET_WORTH_SNAPSHOTS",
    "PORTFOLIOS",
    "TRANSACTION_SPLITS",
    "TRANSACTIONS",
    "USER_RELATIONSHIPS",
    # Exceptions
    "DuplicateError",
    "NotFoundError",
    "StorageError",
    # Implementations
    "InMemoryRecordStore",
    "period_window",
    # Repositories
    "AccountRepository",
    "BudgetRepository",
    "CategoryRepository",
    "InvestmentRepository",
    "NetWorthRepository",
    "PortfolioRepository",
    "RecordRepository",
    "RelationshipRepository",
    "SplitRepository",
    "TransactionRepository",
]
