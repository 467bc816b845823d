"""
Collaborator Payload Models

Shapes returned by the external collaborators the engine calls after a
feature gate passes: receipt OCR and bank aggregation. Also the backup
snapshot envelope that travels to remote storage.

CRITICAL: OCR output is PROPOSED data. It is handed back to the caller
for review; the engine never turns it into transactions on its own.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

from moneyquest.models.records import utc_now


# =============================================================================
# RECEIPT OCR
# =============================================================================

class OCRLineItem(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    description: str = Field(..., min_length=1, max_length=200)
    amount: Decimal
    quantity: Optional[Decimal] = Field(default=None, ge=0)


class OCRResult(BaseModel):
    """What the OCR provider thinks the receipt says."""
    model_config = ConfigDict(str_strip_whitespace=True)

    merchant: str = Field(..., min_length=1, max_length=200)
    amount: Decimal = Field(..., description="Receipt total")
    date: datetime
    confidence: float = Field(
        ...,
        ge=0.0,
        le=1.0,
        description="Overall confidence in extraction (0-1)"
    )
    line_items: list[OCRLineItem] = Field(default_factory=list)
    category: Optional[str] = None
    raw_text: Optional[str] = Field(
        default=None,
        description="Raw text from OCR for debugging"
    )

    @property
    def has_splits(self) -> bool:
        """More than one line item means the receipt is a split candidate."""
        return len(self.line_items) > 1


# =============================================================================
# BANK AGGREGATION
# =============================================================================

class BankInstitution(BaseModel):
    institution_id: str
    name: str
    country_codes: list[str] = Field(default_factory=lambda: ["US"])


class BankAccount(BaseModel):
    account_id: str
    name: str
    type: str
    subtype: Optional[str] = None
    current_balance: Optional[Decimal] = None
    available_balance: Optional[Decimal] = None
    mask: Optional[str] = Field(default=None, description="Last 4 digits")


class BankConnectionStatus(BaseModel):
    """Connection state keyed by the aggregator's item id."""

    item_id: str
    institution_name: str
    accounts: list[BankAccount] = Field(default_factory=list)
    last_successful_update: datetime = Field(default_factory=utc_now)
    status: str = Field(
        default="healthy",
        pattern="^(healthy|degraded|down)$"
    )
    error_message: Optional[str] = None


# =============================================================================
# BACKUP SNAPSHOT
# =============================================================================

class BackupSnapshot(BaseModel):
    """
    Envelope shipped to remote storage.

    ``data`` is the (possibly encrypted) table -> records map. ``checksum``
    is always computed over the plaintext payload.
    """

    version: str
    timestamp: datetime = Field(default_factory=utc_now)
    user_id: str
    data: Any
    checksum: str = Field(..., min_length=1)

    def to_wire(self) -> dict:
        return self.model_dump(mode="json")
