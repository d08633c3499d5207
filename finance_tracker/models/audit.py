"""
Audit Models for the Finance Tracker

Every mutation that touches money is logged for audit purposes.
This provides:
1. Complete traceability of balance and debt changes
2. Debugging information when a multi-write operation fails halfway
3. The raw material for manual reconciliation

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, Field

from finance_tracker.models.finance import utc_now


class AuditEventType(str, Enum):
    """
    Types of events we audit.
    """
    # Allocation ledger
    ALLOCATION_RECORDED = "allocation_recorded"
    ALLOCATION_REVISED = "allocation_revised"
    ALLOCATION_RETRACTED = "allocation_retracted"
    TARGET_ADJUSTED = "target_adjusted"
    TARGET_UNRESOLVED = "target_unresolved"

    # Transfers
    TRANSFER_RECORDED = "transfer_recorded"
    TRANSFER_DELETED = "transfer_deleted"

    # Entity stores
    ENTITY_CREATED = "entity_created"
    ENTITY_UPDATED = "entity_updated"
    ENTITY_DELETED = "entity_deleted"

    # Reports
    REPORT_CREATED = "report_created"
    REPORT_DELETED = "report_deleted"

    # Validation
    VALIDATION_FAILED = "validation_failed"

    # Failures
    PARTIAL_WRITE = "partial_write"
    JOURNAL_REPLAYED = "journal_replayed"
    JOURNAL_DISCARDED = "journal_discarded"
    SYSTEM_ERROR = "system_error"
    STORAGE_ERROR = "storage_error"


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

    # Identity
    event_id: UUID = Field(
        default_factory=uuid4,
        description="Unique event identifier"
    )
    timestamp: datetime = Field(
        default_factory=utc_now,
        description="When the event occurred (UTC)"
    )

    # Event classification
    event_type: AuditEventType = Field(
        ...,
        description="Type of event"
    )
    severity: AuditSeverity = Field(
        default=AuditSeverity.INFO,
        description="Event severity"
    )

    # Owner of the data this event is about
    user_id: Optional[str] = None

    # Context - what entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'expense', 'account', 'debt')"
    )
    entity_id: Optional[str] = Field(
        default=None,
        description="ID of the entity this event relates to"
    )

    # Correlation - for tracking related events
    correlation_id: Optional[UUID] = Field(
        default=None,
        description="ID to correlate related events (e.g., all writes of one ledger operation)"
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

    # Error information (if applicable)
    error_code: Optional[str] = None
    error_message: Optional[str] = None

    is_user_action: bool = Field(
        default=False,
        description="Was this triggered by a user action?"
    )

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.event_id),
            "timestamp": self.timestamp.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "user_id": self.user_id,
            "entity_type": self.entity_type,
            "entity_id": self.entity_id,
            "correlation_id": str(self.correlation_id) if self.correlation_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
            "error_message": self.error_message,
            "is_user_action": self.is_user_action,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.allocation_recorded(user_id, expense_id, ...)
        event = AuditEventBuilder.partial_write(user_id, operation, ...)
    """

    @staticmethod
    def allocation_recorded(
        user_id: str,
        expense_id: str,
        name: str,
        amount: str,
        category: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ALLOCATION_RECORDED,
            user_id=user_id,
            entity_type="expense",
            entity_id=expense_id,
            correlation_id=correlation_id,
            description=f"Allocation recorded: {name} - {amount} ({category})",
            details={
                "name": name,
                "amount": amount,
                "category": category,
            },
            is_user_action=True,
        )

    @staticmethod
    def allocation_revised(
        user_id: str,
        expense_id: str,
        old_amount: str,
        new_amount: str,
        old_category: str,
        new_category: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ALLOCATION_REVISED,
            user_id=user_id,
            entity_type="expense",
            entity_id=expense_id,
            correlation_id=correlation_id,
            description=f"Allocation revised: {old_amount} -> {new_amount}",
            details={
                "old_amount": old_amount,
                "new_amount": new_amount,
                "old_category": old_category,
                "new_category": new_category,
            },
            is_user_action=True,
        )

    @staticmethod
    def allocation_retracted(
        user_id: str,
        expense_id: str,
        amount: str,
        category: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.ALLOCATION_RETRACTED,
            user_id=user_id,
            entity_type="expense",
            entity_id=expense_id,
            correlation_id=correlation_id,
            description=f"Allocation retracted: {amount} ({category})",
            details={
                "amount": amount,
                "category": category,
            },
            is_user_action=True,
        )

    @staticmethod
    def target_adjusted(
        user_id: str,
        entity_type: str,
        entity_id: str,
        field: str,
        before: str,
        after: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TARGET_ADJUSTED,
            user_id=user_id,
            entity_type=entity_type,
            entity_id=entity_id,
            correlation_id=correlation_id,
            description=f"{entity_type.capitalize()} {field} changed: {before} -> {after}",
            details={
                "field": field,
                "before": before,
                "after": after,
            },
        )

    @staticmethod
    def target_unresolved(
        user_id: str,
        category: str,
        reason: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TARGET_UNRESOLVED,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"Allocation target not found: {category}",
            details={
                "category": category,
                "reason": reason,
            },
        )

    @staticmethod
    def transfer_recorded(
        user_id: str,
        transfer_id: str,
        from_account: str,
        to_account: str,
        amount: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSFER_RECORDED,
            user_id=user_id,
            entity_type="transfer",
            entity_id=transfer_id,
            correlation_id=correlation_id,
            description=f"Transfer of {amount} recorded",
            details={
                "from_account": from_account,
                "to_account": to_account,
                "amount": amount,
            },
            is_user_action=True,
        )

    @staticmethod
    def transfer_deleted(
        user_id: str,
        transfer_id: str,
        amount: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.TRANSFER_DELETED,
            user_id=user_id,
            entity_type="transfer",
            entity_id=transfer_id,
            correlation_id=correlation_id,
            description=f"Transfer of {amount} deleted",
            details={"amount": amount},
            is_user_action=True,
        )

    @staticmethod
    def entity_changed(
        user_id: str,
        action: str,
        entity_type: str,
        entity_id: str,
        fields: Optional[dict] = None,
    ) -> AuditEvent:
        event_type = {
            "created": AuditEventType.ENTITY_CREATED,
            "updated": AuditEventType.ENTITY_UPDATED,
            "deleted": AuditEventType.ENTITY_DELETED,
        }[action]
        return AuditEvent(
            event_type=event_type,
            user_id=user_id,
            entity_type=entity_type,
            entity_id=entity_id,
            description=f"{entity_type.capitalize()} {action}",
            details={"fields": sorted(fields or {})},
            is_user_action=True,
        )

    @staticmethod
    def report_created(
        user_id: str,
        report_id: str,
        month: str,
        report_type: str,
        net_worth: str,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REPORT_CREATED,
            user_id=user_id,
            entity_type="report",
            entity_id=report_id,
            description=f"{report_type.capitalize()} report created for {month}",
            details={
                "month": month,
                "type": report_type,
                "net_worth": net_worth,
            },
            is_user_action=True,
        )

    @staticmethod
    def report_deleted(user_id: str, report_id: str) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.REPORT_DELETED,
            user_id=user_id,
            entity_type="report",
            entity_id=report_id,
            description="Report deleted",
            is_user_action=True,
        )

    @staticmethod
    def validation_failed(
        user_id: str,
        subject: str,
        issues: list[dict],
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.VALIDATION_FAILED,
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            correlation_id=correlation_id,
            description=f"{subject.capitalize()} validation failed with {len(issues)} issues",
            details={
                "subject": subject,
                "issues": issues,
            },
        )

    @staticmethod
    def partial_write(
        user_id: str,
        operation: str,
        journal_id: Optional[str],
        completed_steps: list[str],
        failed_step: str,
        error_message: str,
        correlation_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.PARTIAL_WRITE,
            severity=AuditSeverity.ERROR,
            user_id=user_id,
            entity_type="journal",
            entity_id=journal_id,
            correlation_id=correlation_id,
            description=f"{operation} stopped at: {failed_step}",
            error_message=error_message,
            details={
                "operation": operation,
                "completed_steps": completed_steps,
                "failed_step": failed_step,
            },
        )

    @staticmethod
    def journal_resolved(
        user_id: str,
        journal_id: str,
        replayed: bool,
        correlation_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=(
                AuditEventType.JOURNAL_REPLAYED
                if replayed
                else AuditEventType.JOURNAL_DISCARDED
            ),
            severity=AuditSeverity.WARNING,
            user_id=user_id,
            entity_type="journal",
            entity_id=journal_id,
            correlation_id=correlation_id,
            description=(
                "Pending writes replayed" if replayed else "Pending writes discarded"
            ),
            is_user_action=True,
        )

    @staticmethod
    def system_error(
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
        user_id: Optional[str] = None,
    ) -> AuditEvent:
        return AuditEvent(
            event_type=AuditEventType.SYSTEM_ERROR,
            severity=AuditSeverity.ERROR,
            user_id=user_id,
            description=f"System error: {error_type}",
            error_message=error_message,
            details=details or {},
            correlation_id=correlation_id,
        )
