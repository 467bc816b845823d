"""
Audit Logger

DESIGN DECISION: Every mutating engine call is logged.
This provides:
1. Traceability of unsynced local changes
2. Debugging capability when a session backup fails silently
3. A loud, structured signal for data-integrity events

The audit logger:
- Never raises (a logging failure must not break the engine call)
- Tags every event with the current engine session ID
- Keeps a bounded buffer of recent events for inspection
"""

from collections import deque
from typing import Optional
from uuid import UUID, uuid4

import structlog

from moneyquest.models.audit import AuditEvent, AuditEventBuilder, AuditSeverity


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service for one engine instance.
    """

    def __init__(
        self,
        correlation_id: Optional[UUID] = None,
        buffer_size: int = 500,
    ):
        """
        Initialize audit logger.

        Args:
            correlation_id: Session ID to stamp on events.
                            A fresh one is generated if omitted.
            buffer_size: How many recent events to keep in memory.
        """
        self._correlation_id = correlation_id or create_correlation_id()
        self._recent: deque[AuditEvent] = deque(maxlen=buffer_size)
        self._logger = structlog.get_logger("moneyquest.audit")

    @property
    def correlation_id(self) -> UUID:
        return self._correlation_id

    @property
    def recent_events(self) -> list[AuditEvent]:
        """Recent events, oldest first."""
        return list(self._recent)

    def new_session(self) -> UUID:
        """Start a new correlation scope (called after a session ends)."""
        self._correlation_id = create_correlation_id()
        return self._correlation_id

    def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Returns False if the structured logger itself failed.
        """
        self._recent.append(event)
        log_dict = event.to_log_dict()

        try:
            if event.severity in (AuditSeverity.ERROR, AuditSeverity.CRITICAL):
                self._logger.error("audit_event", **log_dict)
            elif event.severity == AuditSeverity.WARNING:
                self._logger.warning("audit_event", **log_dict)
            elif event.severity == AuditSeverity.DEBUG:
                self._logger.debug("audit_event", **log_dict)
            else:
                self._logger.info("audit_event", **log_dict)
        except Exception:
            return False
        return True

    # =========================================================================
    # Record lifecycle
    # =========================================================================

    def log_record_created(self, table: str, record_id: str) -> None:
        self.log(AuditEventBuilder.record_created(
            table=table,
            record_id=record_id,
            correlation_id=self._correlation_id,
        ))

    def log_record_updated(self, table: str, record_id: str, fields: list[str]) -> None:
        self.log(AuditEventBuilder.record_updated(
            table=table,
            record_id=record_id,
            fields=fields,
            correlation_id=self._correlation_id,
        ))

    def log_record_deleted(
        self,
        table: str,
        record_id: str,
        soft: bool = False,
        reason: Optional[str] = None,
    ) -> None:
        self.log(AuditEventBuilder.record_deleted(
            table=table,
            record_id=record_id,
            soft=soft,
            reason=reason,
            correlation_id=self._correlation_id,
        ))

    # =========================================================================
    # Splitting
    # =========================================================================

    def log_transaction_split(self, transaction_id: str, split_count: int) -> None:
        self.log(AuditEventBuilder.transaction_split(
            transaction_id=transaction_id,
            split_count=split_count,
            correlation_id=self._correlation_id,
        ))

    def log_split_rejected(self, transaction_id: str, reason: str) -> None:
        self.log(AuditEventBuilder.split_rejected(
            transaction_id=transaction_id,
            reason=reason,
            correlation_id=self._correlation_id,
        ))

    def log_split_rolled_back(
        self,
        transaction_id: str,
        removed_split_ids: list[str],
        error_message: str,
    ) -> None:
        self.log(AuditEventBuilder.split_rolled_back(
            transaction_id=transaction_id,
            removed_split_ids=removed_split_ids,
            error_message=error_message,
            correlation_id=self._correlation_id,
        ))

    def log_split_integrity_failure(
        self,
        transaction_id: str,
        orphaned_split_ids: list[str],
        error_message: str,
    ) -> None:
        self.log(AuditEventBuilder.split_integrity_failure(
            transaction_id=transaction_id,
            orphaned_split_ids=orphaned_split_ids,
            error_message=error_message,
            correlation_id=self._correlation_id,
        ))

    # =========================================================================
    # Analytics, gates, session
    # =========================================================================

    def log_net_worth_snapshot(self, user_id: str, snapshot_id: str, net_worth: str) -> None:
        self.log(AuditEventBuilder.net_worth_snapshot(
            user_id=user_id,
            snapshot_id=snapshot_id,
            net_worth=net_worth,
            correlation_id=self._correlation_id,
        ))

    def log_feature_gate_denied(self, feature: str, tier: str) -> None:
        self.log(AuditEventBuilder.feature_gate_denied(
            feature=feature,
            tier=tier,
            correlation_id=self._correlation_id,
        ))

    def log_backup_completed(self, checksum: str, record_counts: dict[str, int]) -> None:
        self.log(AuditEventBuilder.backup_completed(
            checksum=checksum,
            record_counts=record_counts,
            correlation_id=self._correlation_id,
        ))

    def log_backup_failed(self, error_message: str) -> None:
        self.log(AuditEventBuilder.backup_failed(
            error_message=error_message,
            correlation_id=self._correlation_id,
        ))

    def log_restore_completed(self, record_counts: dict[str, int]) -> None:
        self.log(AuditEventBuilder.restore_completed(
            record_counts=record_counts,
            correlation_id=self._correlation_id,
        ))

    def log_restore_empty(self) -> None:
        self.log(AuditEventBuilder.restore_empty(correlation_id=self._correlation_id))

    def log_restore_failed(self, error_message: str) -> None:
        self.log(AuditEventBuilder.restore_failed(
            error_message=error_message,
            correlation_id=self._correlation_id,
        ))

    def log_sync_merged(self, record_counts: dict[str, int]) -> None:
        self.log(AuditEventBuilder.sync_merged(
            record_counts=record_counts,
            correlation_id=self._correlation_id,
        ))

    def log_external_service_error(self, service: str, error_message: str) -> None:
        self.log(AuditEventBuilder.external_service_error(
            service=service,
            error_message=error_message,
            correlation_id=self._correlation_id,
        ))


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    The engine uses one per session: everything between two
    end_session() calls shares it.
    """
    return uuid4()
