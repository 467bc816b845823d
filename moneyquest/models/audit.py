"""
Audit Models for the MoneyQuest Data Engine

Every mutating engine call, every denied feature gate and every session
boundary produces an AuditEvent. This provides:
1. Traceability of what changed locally before a backup
2. Debugging information when a backup or restore fails
3. A clear record of data-integrity events that need manual reconciliation

DESIGN DECISION: Audit events are append-only structured log lines.
They are never written into the Record Store, so they never end up in
a backup snapshot.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from moneyquest.models.records import utc_now


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Record lifecycle
    RECORD_CREATED = "record_created"
    RECORD_UPDATED = "record_updated"
    RECORD_DELETED = "record_deleted"
    RECORD_DEACTIVATED = "record_deactivated"

    # Transaction splitting
    TRANSACTION_SPLIT = "transaction_split"
    SPLIT_REJECTED = "split_rejected"
    SPLIT_ROLLED_BACK = "split_rolled_back"
    SPLIT_INTEGRITY_FAILURE = "split_integrity_failure"

    # Analytics
    NET_WORTH_SNAPSHOT = "net_worth_snapshot"

    # Subscription gates
    FEATURE_GATE_DENIED = "feature_gate_denied"

    # Session lifecycle
    BACKUP_COMPLETED = "backup_completed"
    BACKUP_FAILED = "backup_failed"
    RESTORE_COMPLETED = "restore_completed"
    RESTORE_EMPTY = "restore_empty"
    RESTORE_FAILED = "restore_failed"
    SYNC_MERGED = "sync_merged"

    # Collaborators
    EXTERNAL_SERVICE_ERROR = "external_service_error"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"
    CRITICAL = "critical"


class AuditEvent(BaseModel):
    """
    A single audit event.

    This is the core unit of our audit trail.
    """

    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=utc_now,
        description="When the event occurred (UTC)"
    )

    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Context - what record is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Table of the record (e.g., 'transactions', 'accounts')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the record this event relates to"
    )

    # Correlation - one engine session
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate every event of one engine session"
    )

    description: str = Field(
        ...,
        max_length=500,
        description="Human-readable description of what happened"
    )
    details: dict[str, Any] = Field(
        default_factory=dict,
        description="Additional event-specific data"
    )

    error_code: Optional[str] = None
    error_message: Optional[str] = None

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.record_created("accounts", account.id, session_id)
        event = AuditEventBuilder.backup_failed("timeout", session_id)
    """

    @staticmethod
    def record_created(
        table: str,
        record_id: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECORD_CREATED,
            entity_type=table,
            entity_id=record_id,
            correlation_id=correlation_id,
            description=f"Created {table} record",
        )

    @staticmethod
    def record_updated(
        table: str,
        record_id: str,
        fields: list[str],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RECORD_UPDATED,
            entity_type=table,
            entity_id=record_id,
            correlation_id=correlation_id,
            description=f"Updated {table} record",
            details={"fields": sorted(fields)},
        )

    @staticmethod
    def record_deleted(
        table: str,
        record_id: str,
        soft: bool,
        correlation_id: Optional[UUID] = None,
        reason: Optional[str] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=(
                AuditEventType.RECORD_DEACTIVATED if soft
                else AuditEventType.RECORD_DELETED
            ),
            entity_type=table,
            entity_id=record_id,
            correlation_id=correlation_id,
            description=(
                f"Deactivated {table} record" if soft
                else f"Deleted {table} record"
            ),
            details={"reason": reason} if reason else {},
        )

    @staticmethod
    def transaction_split(
        transaction_id: str,
        split_count: int,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSACTION_SPLIT,
            entity_type="transactions",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description=f"Transaction split into {split_count} parts",
            details={"split_count": split_count},
        )

    @staticmethod
    def split_rejected(
        transaction_id: str,
        reason: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SPLIT_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type="transactions",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description="Split request rejected before any write",
            details={"reason": reason},
        )

    @staticmethod
    def split_rolled_back(
        transaction_id: str,
        removed_split_ids: list[str],
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SPLIT_ROLLED_BACK,
            severity=AuditSeverity.ERROR,
            entity_type="transactions",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description="Split write failed; written splits were removed",
            details={"removed_split_ids": removed_split_ids},
            error_message=error_message,
        )

    @staticmethod
    def split_integrity_failure(
        transaction_id: str,
        orphaned_split_ids: list[str],
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SPLIT_INTEGRITY_FAILURE,
            severity=AuditSeverity.CRITICAL,
            entity_type="transactions",
            entity_id=transaction_id,
            correlation_id=correlation_id,
            description="Split left partially written; manual reconciliation required",
            details={"orphaned_split_ids": orphaned_split_ids},
            error_code="SPLIT_PARTIAL_WRITE",
            error_message=error_message,
        )

    @staticmethod
    def net_worth_snapshot(
        user_id: str,
        snapshot_id: str,
        net_worth: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.NET_WORTH_SNAPSHOT,
            entity_type="net_worth_snapshots",
            entity_id=snapshot_id,
            correlation_id=correlation_id,
            description=f"Net worth snapshot recorded: {net_worth}",
            details={"user_id": user_id, "net_worth": net_worth},
        )

    @staticmethod
    def feature_gate_denied(
        feature: str,
        tier: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.FEATURE_GATE_DENIED,
            severity=AuditSeverity.WARNING,
            correlation_id=correlation_id,
            description=f"Feature '{feature}' denied on tier '{tier}'",
            details={"feature": feature, "tier": tier},
            error_code="UPGRADE_REQUIRED",
        )

    @staticmethod
    def backup_completed(
        checksum: str,
        record_counts: dict[str, int],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BACKUP_COMPLETED,
            correlation_id=correlation_id,
            description="Session backup uploaded",
            details={"checksum": checksum, "record_counts": record_counts},
        )

    @staticmethod
    def backup_failed(
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.BACKUP_FAILED,
            severity=AuditSeverity.ERROR,
            correlation_id=correlation_id,
            description="Session backup failed; local changes remain unsynced",
            error_message=error_message,
        )

    @staticmethod
    def restore_completed(
        record_counts: dict[str, int],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RESTORE_COMPLETED,
            correlation_id=correlation_id,
            description="Local data replaced from remote backup",
            details={"record_counts": record_counts},
        )

    @staticmethod
    def restore_empty(correlation_id: Optional[UUID] = None) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RESTORE_EMPTY,
            correlation_id=correlation_id,
            description="No remote backup found; local data left untouched",
        )

    @staticmethod
    def restore_failed(
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.RESTORE_FAILED,
            severity=AuditSeverity.ERROR,
            correlation_id=correlation_id,
            description="Restore from remote backup failed",
            error_message=error_message,
        )

    @staticmethod
    def sync_merged(
        record_counts: dict[str, int],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYNC_MERGED,
            correlation_id=correlation_id,
            description="Remote backup merged into local data (last writer wins)",
            details={"record_counts": record_counts},
        )

    @staticmethod
    def external_service_error(
        service: str,
        error_message: str,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.EXTERNAL_SERVICE_ERROR,
            severity=AuditSeverity.ERROR,
            description=f"External service error: {service}",
            error_message=error_message,
            details={
                "service": service,
            },
            correlation_id=correlation_id,
        )
