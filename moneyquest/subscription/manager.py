"""
Subscription Manager - Feature gating and resource limits

Handles the 3-tier freemium model:
- Free: single user, manual transactions, manual investment tracking
- Plus ($2.99/month): multi-user, receipt OCR, priority support
- Premium ($9.99/month): bank connections, automation, QuickBooks export

DESIGN DECISION: This module is pure. No I/O, no clock access except
where a caller omits ``now`` for expiry math. Every gate is
"tier membership AND is_active()", so a lapsed paid subscription loses
every paid gate immediately. There is no grace period.
"""

import math
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from moneyquest.models.records import utc_now


class SubscriptionTier(str, Enum):
    FREE = "free"
    PLUS = "plus"
    PREMIUM = "premium"


class SubscriptionState(str, Enum):
    ACTIVE = "active"
    CANCELED = "canceled"
    PAST_DUE = "past_due"
    TRIALING = "trialing"


class SubscriptionStatus(BaseModel):
    """
    A user's subscription as reported by the billing provider.

    ``tier`` is kept as a plain string so that a tier this build does not
    know about still loads; it simply gets free-tier limits and no paid gates.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    tier: str = Field(default=SubscriptionTier.FREE.value)
    status: SubscriptionState = SubscriptionState.ACTIVE
    expires_at: Optional[datetime] = None
    stripe_subscription_id: Optional[str] = None

    @field_validator('tier', mode='before')
    @classmethod
    def normalize_tier(cls, v) -> str:
        if isinstance(v, SubscriptionTier):
            return v.value
        return str(v).lower()


class FeatureLimits(BaseModel):
    max_accounts: int
    max_users: int
    max_bank_connections: int
    monthly_ocr_scans: int
    can_use_ocr: bool
    can_use_multi_user: bool
    can_connect_banks: bool
    can_use_automation: bool
    can_export_to_quickbooks: bool
    can_use_priority_support: bool


# Limits per tier: (accounts, users, bank connections, OCR scans per month)
_TIER_LIMITS: dict[str, tuple[int, int, int, int]] = {
    SubscriptionTier.FREE.value: (3, 1, 0, 0),
    SubscriptionTier.PLUS.value: (5, 10, 0, 100),
    SubscriptionTier.PREMIUM.value: (10, 10, 10, 500),
}

_MONTHLY_REVENUE = {
    SubscriptionTier.FREE.value: Decimal("0"),
    SubscriptionTier.PLUS.value: Decimal("2.99"),
    SubscriptionTier.PREMIUM.value: Decimal("9.99"),
}

# OCR processing for Plus; bank aggregation fees and integrations for Premium
_ESTIMATED_COSTS = {
    SubscriptionTier.FREE.value: Decimal("0"),
    SubscriptionTier.PLUS.value: Decimal("0.30"),
    SubscriptionTier.PREMIUM.value: Decimal("1.45"),
}

_PAID_TIERS = frozenset({SubscriptionTier.PLUS.value, SubscriptionTier.PREMIUM.value})

_UPGRADE_MESSAGES = {
    "multi_user": "Add family members and collaborate on budgets with Plus ($2.99/month)",
    "ocr": "Snap photos of receipts and auto-import transactions with Plus ($2.99/month)",
    "bank_connections": (
        "Connect your bank accounts for automatic transaction sync "
        "with Premium ($9.99/month)"
    ),
    "automation": (
        "Set up rules and automation to categorize transactions "
        "with Premium ($9.99/month)"
    ),
    "quickbooks": "Export to QuickBooks and TurboTax with Premium ($9.99/month)",
}


class SubscriptionManager:
    """
    Capability and limit evaluator for one subscription.
    """

    def __init__(self, subscription: Optional[SubscriptionStatus] = None):
        self._subscription = subscription or create_free_subscription()

    # =========================================================================
    # Status
    # =========================================================================

    def get_tier(self) -> str:
        return self._subscription.tier

    def is_active(self) -> bool:
        """Free is always active; paid tiers only while active or trialing."""
        if self._subscription.tier == SubscriptionTier.FREE.value:
            return True
        return self._subscription.status in (
            SubscriptionState.ACTIVE,
            SubscriptionState.TRIALING,
        )

    def is_trialing(self) -> bool:
        return self._subscription.status == SubscriptionState.TRIALING

    def is_past_due(self) -> bool:
        return self._subscription.status == SubscriptionState.PAST_DUE

    def update_subscription(self, subscription: SubscriptionStatus) -> None:
        self._subscription = subscription

    def get_subscription_status(self) -> SubscriptionStatus:
        return self._subscription.model_copy()

    def days_until_expiry(self, now: Optional[datetime] = None) -> Optional[int]:
        """
        Whole days until expiry, rounded up. None when nothing expires.

        A subscription that already expired yields zero or a negative number.
        """
        expires_at = self._subscription.expires_at
        if expires_at is None:
            return None
        now = now or utc_now()
        seconds = (expires_at - now).total_seconds()
        return math.ceil(seconds / 86400)

    # =========================================================================
    # Feature gates
    # =========================================================================

    def _has_paid_tier(self) -> bool:
        return self._subscription.tier in _PAID_TIERS and self.is_active()

    def _has_premium(self) -> bool:
        return self._subscription.tier == SubscriptionTier.PREMIUM.value and self.is_active()

    def can_use_multi_user(self) -> bool:
        """Multi-user collaboration (Plus & Premium)."""
        return self._has_paid_tier()

    def can_use_ocr(self) -> bool:
        """Receipt OCR (Plus & Premium)."""
        return self._has_paid_tier()

    def can_use_priority_support(self) -> bool:
        return self._has_paid_tier()

    def can_connect_banks(self) -> bool:
        """Automatic bank connections (Premium only)."""
        return self._has_premium()

    def can_use_automation(self) -> bool:
        return self._has_premium()

    def can_export_to_quickbooks(self) -> bool:
        return self._has_premium()

    def can_auto_connect_investments(self) -> bool:
        return self._has_premium()

    def can_track_investments_manually(self) -> bool:
        return True

    # =========================================================================
    # Resource limits
    # =========================================================================

    def _limits(self) -> tuple[int, int, int, int]:
        return _TIER_LIMITS.get(
            self._subscription.tier,
            _TIER_LIMITS[SubscriptionTier.FREE.value],
        )

    def get_account_limit(self) -> int:
        return self._limits()[0]

    def get_user_limit(self) -> int:
        return self._limits()[1]

    def get_bank_connection_limit(self) -> int:
        return self._limits()[2]

    def get_ocr_limit(self) -> int:
        """OCR scans per month."""
        return self._limits()[3]

    def get_feature_limits(self) -> FeatureLimits:
        return FeatureLimits(
            max_accounts=self.get_account_limit(),
            max_users=self.get_user_limit(),
            max_bank_connections=self.get_bank_connection_limit(),
            monthly_ocr_scans=self.get_ocr_limit(),
            can_use_ocr=self.can_use_ocr(),
            can_use_multi_user=self.can_use_multi_user(),
            can_connect_banks=self.can_connect_banks(),
            can_use_automation=self.can_use_automation(),
            can_export_to_quickbooks=self.can_export_to_quickbooks(),
            can_use_priority_support=self.can_use_priority_support(),
        )

    # =========================================================================
    # Upgrade prompts
    # =========================================================================

    def get_upgrade_message(self, feature: str) -> str:
        """Human-readable prompt shown when a gate denies ``feature``."""
        if feature == "account_limit":
            target = (
                "Plus ($2.99/month)"
                if self._subscription.tier == SubscriptionTier.FREE.value
                else "Premium ($9.99/month)"
            )
            return (
                f"You've reached the {self.get_account_limit()} account limit. "
                f"Upgrade to {target} for more accounts"
            )
        return _UPGRADE_MESSAGES.get(feature, "Upgrade to unlock more features!")

    # =========================================================================
    # Unit economics
    # =========================================================================

    def get_monthly_revenue(self) -> Decimal:
        return _MONTHLY_REVENUE.get(self._subscription.tier, Decimal("0"))

    def get_estimated_costs(self) -> Decimal:
        return _ESTIMATED_COSTS.get(self._subscription.tier, Decimal("0"))

    def get_gross_margin(self) -> Decimal:
        """Gross margin in percent; zero for non-paying tiers."""
        revenue = self.get_monthly_revenue()
        if revenue == 0:
            return Decimal("0")
        return (revenue - self.get_estimated_costs()) / revenue * 100


# =============================================================================
# Helper Functions
# =============================================================================

def create_free_subscription() -> SubscriptionStatus:
    return SubscriptionStatus(
        tier=SubscriptionTier.FREE,
        status=SubscriptionState.ACTIVE,
    )


def create_plus_subscription(
    stripe_subscription_id: str,
    expires_at: datetime,
) -> SubscriptionStatus:
    return SubscriptionStatus(
        tier=SubscriptionTier.PLUS,
        status=SubscriptionState.ACTIVE,
        expires_at=expires_at,
        stripe_subscription_id=stripe_subscription_id,
    )


def create_premium_subscription(
    stripe_subscription_id: str,
    expires_at: datetime,
) -> SubscriptionStatus:
    return SubscriptionStatus(
        tier=SubscriptionTier.PREMIUM,
        status=SubscriptionState.ACTIVE,
        expires_at=expires_at,
        stripe_subscription_id=stripe_subscription_id,
    )
