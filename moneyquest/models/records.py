"""
Core Record Models for the MoneyQuest Data Engine

These models define the strict schemas for every record the engine owns.
They are designed to:
1. Enforce type safety at runtime (money is always Decimal)
2. Provide clear validation error messages before anything is persisted
3. Round-trip through the Record Store as plain JSON-compatible dicts
4. Carry the created_at / updated_at stamps that last-writer-wins merge relies on

DESIGN DECISION: The Record Store holds ``model_dump(mode="json")`` output,
not model instances. Anything the store hands back is re-validated through
these models, which is also what coerces ISO strings and decimal strings
from a restored backup back into real types.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Any, Optional
from uuid import uuid4

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationInfo,
    field_validator,
    model_validator,
)


def utc_now() -> datetime:
    """Timezone-aware current time. Every stamp in the engine uses this."""
    return datetime.now(timezone.utc)


def new_id() -> str:
    return uuid4().hex


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class AccountType(str, Enum):
    """
    Supported account types.

    Only CREDIT is a liability; every other type counts towards assets.
    """
    CHECKING = "checking"
    SAVINGS = "savings"
    CREDIT = "credit"
    INVESTMENT = "investment"
    CASH = "cash"
    OTHER = "other"


class CategoryType(str, Enum):
    INCOME = "income"
    EXPENSE = "expense"
    TRANSFER = "transfer"


class BudgetPeriod(str, Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


class DeleteOutcome(str, Enum):
    """What a delete call actually did."""
    DELETED = "deleted"          # Row removed from the store
    DEACTIVATED = "deactivated"  # Row kept with is_active = False


# =============================================================================
# BASE RECORD
# =============================================================================

class RecordModel(BaseModel):
    """
    Base for every mutable record.

    New records get ``created_at == updated_at``. Callers that restamp on
    mutation must set ``updated_at`` themselves.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: str = Field(
        default_factory=new_id,
        min_length=1,
        description="Unique record ID"
    )
    created_at: datetime = Field(
        description="When the record was created (UTC)"
    )
    updated_at: datetime = Field(
        description="Last modification time (UTC), drives last-writer-wins"
    )

    @model_validator(mode="before")
    @classmethod
    def stamp_timestamps(cls, data: Any) -> Any:
        """Give fresh records a single shared creation instant."""
        if isinstance(data, dict):
            if data.get("created_at") is None:
                now = utc_now()
                data = {**data, "created_at": now}
                if data.get("updated_at") is None:
                    data["updated_at"] = now
            elif data.get("updated_at") is None:
                data = {**data, "updated_at": data["created_at"]}
        return data

    def to_record(self) -> dict:
        """Convert to the JSON-compatible dict the Record Store holds."""
        return self.model_dump(mode="json")


# =============================================================================
# ACCOUNTS, CATEGORIES, BUDGETS
# =============================================================================

class Account(RecordModel):
    """
    A money container owned by one user.

    The balance is tracked independently of transactions: adding a
    transaction never mutates it.
    """
    user_id: str = Field(..., min_length=1)
    name: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Display name"
    )
    type: AccountType = Field(
        default=AccountType.CHECKING,
        description="Account type"
    )
    balance: Decimal = Field(
        default=Decimal("0"),
        decimal_places=2,
        description="Signed balance"
    )
    is_active: bool = True
    description: Optional[str] = Field(default=None, max_length=500)

    @field_validator('type', mode='before')
    @classmethod
    def normalize_credit_card(cls, v: Any) -> Any:
        """Older clients wrote 'credit_card' for credit accounts."""
        if isinstance(v, str) and v.lower() == "credit_card":
            return AccountType.CREDIT
        return v

    @property
    def is_liability(self) -> bool:
        return self.type == AccountType.CREDIT


class Category(RecordModel):
    user_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=100)
    type: CategoryType = CategoryType.EXPENSE
    color: str = Field(
        default="#9CA3AF",
        pattern="^#[0-9A-Fa-f]{6}$",
        description="Hex display color"
    )
    is_default: bool = False


class Budget(RecordModel):
    """A spending limit for one category over a repeating period."""
    user_id: str = Field(..., min_length=1)
    category_id: str = Field(..., min_length=1)
    amount: Decimal = Field(
        ...,
        gt=0,
        decimal_places=2,
        description="Spending limit per period"
    )
    period: BudgetPeriod = BudgetPeriod.MONTHLY
    start_date: date = Field(
        default_factory=lambda: utc_now().date(),
        description="First day of the first period"
    )
    is_active: bool = True


# =============================================================================
# TRANSACTIONS AND SPLITS
# =============================================================================

class Transaction(RecordModel):
    """
    A single money movement on an account.

    INVARIANT: ``is_parent`` is True exactly when one or more
    TransactionSplit records point at this transaction. Only
    ``split_transaction`` may flip it.
    """
    account_id: str = Field(..., min_length=1)
    original_amount: Decimal = Field(
        ...,
        decimal_places=2,
        description="Signed amount (negative = money out)"
    )
    description: str = Field(..., min_length=1, max_length=500)
    date: datetime = Field(..., description="When the transaction happened")
    category_id: Optional[str] = None
    is_parent: bool = False


class TransactionSplit(RecordModel):
    """
    A sub-allocation of a parent transaction to one category.

    ``percentage`` is cached at write time as amount / parent amount x 100.
    """
    transaction_id: str = Field(..., min_length=1)
    amount: Decimal = Field(..., description="Signed share of the parent amount")
    category_id: str = Field(..., min_length=1)
    percentage: Decimal
    description: Optional[str] = Field(default=None, max_length=500)


class TransactionWithSplits(Transaction):
    splits: list[TransactionSplit] = Field(default_factory=list)


# =============================================================================
# PORTFOLIOS AND INVESTMENTS
# =============================================================================

class Portfolio(RecordModel):
    user_id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    is_active: bool = True


class Investment(RecordModel):
    """
    One holding inside a portfolio.

    ``cost_basis`` is per unit, like ``current_price``. Market value and
    gain/loss are always derived, never stored.
    """
    portfolio_id: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1)
    symbol: str = Field(..., min_length=1, max_length=20)
    name: Optional[str] = Field(default=None, max_length=200)
    quantity: Decimal = Field(..., ge=0)
    cost_basis: Decimal = Field(default=Decimal("0"), ge=0)
    current_price: Decimal = Field(default=Decimal("0"), ge=0)

    @field_validator('symbol')
    @classmethod
    def upper_symbol(cls, v: str) -> str:
        return v.upper()

    @property
    def market_value(self) -> Decimal:
        return self.quantity * self.current_price

    @property
    def total_cost(self) -> Decimal:
        return self.quantity * self.cost_basis


class PortfolioWithInvestments(Portfolio):
    investments: list[Investment] = Field(default_factory=list)


# =============================================================================
# APPEND-ONLY AND RELATIONSHIP RECORDS
# =============================================================================

class NetWorthSnapshot(BaseModel):
    """
    Point-in-time net worth. Append-only: never updated after insert.
    """
    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_id)
    user_id: str
    total_assets: Decimal
    total_liabilities: Decimal
    net_worth: Decimal
    date: datetime = Field(default_factory=utc_now)
    created_at: datetime = Field(default_factory=utc_now)

    @model_validator(mode='after')
    def validate_net_worth(self) -> 'NetWorthSnapshot':
        if self.net_worth != self.total_assets - self.total_liabilities:
            raise ValueError("Net worth must equal total assets minus total liabilities")
        return self

    def to_record(self) -> dict:
        return self.model_dump(mode="json")


class UserRelationship(RecordModel):
    """A pending invitation for another person to share this user's data."""
    user_id: Optional[str] = None
    related_user_email: str = Field(..., min_length=3, max_length=254)
    relationship_type: str = "family"
    status: str = Field(
        default="pending",
        pattern="^(pending|accepted|declined)$"
    )

    @field_validator('related_user_email')
    @classmethod
    def validate_email(cls, v: str) -> str:
        local, _, domain = v.partition("@")
        if not local or "." not in domain:
            raise ValueError(f"Not a valid email address: {v}")
        return v.lower()


# =============================================================================
# REQUEST MODELS - validated before any persistence side effect
# =============================================================================

class CreateTransactionRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    account_id: str = Field(..., min_length=1)
    original_amount: Decimal = Field(..., decimal_places=2)
    description: str = Field(..., min_length=1, max_length=500)
    date: datetime
    category_id: Optional[str] = None

    @field_validator('original_amount')
    @classmethod
    def reject_zero_amount(cls, v: Decimal) -> Decimal:
        if v == 0:
            raise ValueError("Transaction amount cannot be zero")
        return v


class UpdateTransactionRequest(BaseModel):
    """
    Partial update. Fields the caller leaves out keep their current value;
    ``category_id=None`` un-categorizes the transaction.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    account_id: Optional[str] = Field(default=None, min_length=1)
    original_amount: Optional[Decimal] = Field(default=None, decimal_places=2)
    description: Optional[str] = Field(default=None, min_length=1, max_length=500)
    date: Optional[datetime] = None
    category_id: Optional[str] = None

    @field_validator('account_id', 'original_amount', 'description', 'date')
    @classmethod
    def reject_cleared_required_field(cls, v: Any, info: ValidationInfo) -> Any:
        if v is None:
            raise ValueError(f"{info.field_name} cannot be cleared")
        return v

    @field_validator('original_amount')
    @classmethod
    def reject_zero_amount(cls, v: Decimal) -> Decimal:
        if v == 0:
            raise ValueError("Transaction amount cannot be zero")
        return v

    def changes(self) -> dict:
        """Only the fields the caller actually provided, including explicit None."""
        return self.model_dump(exclude_unset=True)


class SplitItem(BaseModel):
    """One requested split line."""
    model_config = ConfigDict(str_strip_whitespace=True)

    amount: Decimal
    category_id: str = Field(..., min_length=1)
    description: Optional[str] = Field(default=None, max_length=500)

    @field_validator('amount')
    @classmethod
    def reject_zero_amount(cls, v: Decimal) -> Decimal:
        if v == 0:
            raise ValueError("Split amount cannot be zero")
        return v
