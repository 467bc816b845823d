"""
MoneyQuest - Local-First Data Engine

The data-management core of a personal-finance tracker. All records
live on the client device; a snapshot is synced to remote storage only
at session boundaries.

DESIGN PRINCIPLES:
1. Local data is the source of truth
2. Validate before any write
3. Paid features are gated, never silently degraded
4. Every mutation must be auditable
5. Storage and backup targets are swappable
"""

from moneyquest.engine import (
    DataEngineError,
    InvalidSplitError,
    LocalDataEngine,
    RestoreError,
    SplitWriteError,
    UpgradeRequiredError,
    categorize_asset_type,
    create_local_engine,
)

__version__ = "1.0.0"
__author__ = "MoneyQuest Team"

__all__ = [
    "DataEngineError",
    "InvalidSplitError",
    "LocalDataEngine",
    "RestoreError",
    "SplitWriteError",
    "UpgradeRequiredError",
    "categorize_asset_type",
    "create_local_engine",
]
