"""
Data Models Package

All Pydantic models used by the MoneyQuest data engine.
Every record that enters the Record Store must conform to these schemas.
"""

from moneyquest.models.records import (
    Account,
    AccountType,
    Budget,
    BudgetPeriod,
    Category,
    CategoryType,
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
    new_id,
    utc_now,
)
from moneyquest.models.analytics import (
    AssetAllocation,
    AssetClass,
    BudgetStatus,
    CategoryTotal,
    PortfolioPerformance,
    PortfolioValueSummary,
)
from moneyquest.models.integrations import (
    BackupSnapshot,
    BankAccount,
    BankConnectionStatus,
    BankInstitution,
    OCRLineItem,
    OCRResult,
)
from moneyquest.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Records
    "Account",
    "AccountType",
    "Budget",
    "BudgetPeriod",
    "Category",
    "CategoryType",
    "CreateTransactionRequest",
    "DeleteOutcome",
    "Investment",
    "NetWorthSnapshot",
    "Portfolio",
    "PortfolioWithInvestments",
    "RecordModel",
    "SplitItem",
    "Transaction",
    "TransactionSplit",
    "TransactionWithSplits",
    "UpdateTransactionRequest",
    "UserRelationship",
    "new_id",
    "utc_now",
    # Analytics
    "AssetAllocation",
    "AssetClass",
    "BudgetStatus",
    "CategoryTotal",
    "PortfolioPerformance",
    "PortfolioValueSummary",
    # Collaborators
    "BackupSnapshot",
    "BankAccount",
    "BankConnectionStatus",
    "BankInstitution",
    "OCRLineItem",
    "OCRResult",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
