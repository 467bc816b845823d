"""
Analytics Result Models

Everything here is derived data: computed on request from the records,
never persisted (the one exception, NetWorthSnapshot, lives with the
records because it is stored append-only).
"""

from datetime import date
from decimal import Decimal
from enum import Enum

from pydantic import BaseModel, Field

from moneyquest.models.records import BudgetPeriod


class AssetClass(str, Enum):
    """Buckets used by asset allocation."""
    CRYPTOCURRENCY = "Cryptocurrency"
    BONDS = "Bonds"
    ETF = "ETF"
    STOCKS = "Stocks"
    OTHER = "Other"


class CategoryTotal(BaseModel):
    """Spending attributed to one category over a date range."""

    category_id: str
    category_name: str
    total_amount: Decimal = Field(
        ...,
        ge=0,
        description="Sum of absolute amounts attributed to the category"
    )
    percentage: Decimal = Field(
        ...,
        ge=0,
        le=100,
        description="Share of the grand total across all categories"
    )
    transaction_count: int = Field(ge=0)


class BudgetStatus(BaseModel):
    """Progress of one active budget in its current period."""

    budget_id: str
    category_id: str
    category_name: str
    budget_amount: Decimal
    spent_amount: Decimal
    remaining_amount: Decimal
    percentage_used: Decimal
    is_over_budget: bool
    period: BudgetPeriod
    period_start: date
    period_end: date


class PortfolioPerformance(BaseModel):
    portfolio_id: str
    total_current_value: Decimal
    total_cost_basis: Decimal
    gain_loss: Decimal
    gain_loss_percent: Decimal
    investment_count: int = Field(ge=0)


class PortfolioValueSummary(BaseModel):
    """Totals across every active portfolio a user owns."""

    user_id: str
    total_value: Decimal
    total_cost_basis: Decimal
    gain_loss: Decimal
    gain_loss_percent: Decimal
    portfolio_count: int = Field(ge=0)
    total_investments: int = Field(ge=0)


class AssetAllocation(BaseModel):
    type: AssetClass
    value: Decimal
    percentage: Decimal
