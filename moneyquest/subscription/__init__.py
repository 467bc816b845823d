"""Subscription tiers, feature gates and limits."""

from moneyquest.subscription.manager import (
    FeatureLimits,
    SubscriptionManager,
    SubscriptionState,
    SubscriptionStatus,
    SubscriptionTier,
    create_free_subscription,
    create_plus_subscription,
    create_premium_subscription,
)

__all__ = [
    "FeatureLimits",
    "SubscriptionManager",
    "SubscriptionState",
    "SubscriptionStatus",
    "SubscriptionTier",
    "create_free_subscription",
    "create_plus_subscription",
    "create_premium_subscription",
]
