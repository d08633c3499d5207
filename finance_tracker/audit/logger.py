"""
Audit Logger

DESIGN DECISION: Every mutation that touches money is logged.
This provides:
1. Complete traceability of balance and debt changes
2. Debugging capability when a multi-write operation stops halfway
3. User can see history of their ledger

The audit logger:
- Is async so ledger operations await it in their own flow
- Gracefully handles failures (a failed audit write never fails the ledger)
- Supports correlation IDs to trace all writes of one operation
"""

from typing import Optional
from uuid import UUID, uuid4

import structlog

from finance_tracker.models.audit import AuditEvent, AuditEventBuilder
from finance_tracker.services.storage import AuditStorageInterface


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
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. The auditLog collection (for persistence and user visibility)
    """

    def __init__(
        self,
        storage: Optional[AuditStorageInterface] = None,
        user_id: Optional[str] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Storage backend for persistence.
                    If None, only logs locally.
            user_id: Owner stamped on every event this logger writes.
        """
        self._storage = storage
        self._user_id = user_id
        self._logger = structlog.get_logger()

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        if event.user_id is None and self._user_id is not None:
            event = event.model_copy(update={"user_id": self._user_id})

        # Always log locally
        log_dict = event.to_log_dict()

        if event.severity.value in ("error", "critical"):
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        # Persist to storage if available
        if self._storage:
            try:
                return await self._storage.append_event(event)
            except Exception as e:
                # Log failure but don't raise
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.event_id),
                )
                return False

        return True

    async def log_allocation_recorded(
        self,
        expense_id: str,
        name: str,
        amount: str,
        category: str,
        correlation_id: UUID,
    ) -> None:
        """Log a new ledger entry."""
        event = AuditEventBuilder.allocation_recorded(
            user_id=self._user_id,
            expense_id=expense_id,
            name=name,
            amount=amount,
            category=category,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_allocation_revised(
        self,
        expense_id: str,
        old_amount: str,
        new_amount: str,
        old_category: str,
        new_category: str,
        correlation_id: UUID,
    ) -> None:
        """Log an edited ledger entry."""
        event = AuditEventBuilder.allocation_revised(
            user_id=self._user_id,
            expense_id=expense_id,
            old_amount=old_amount,
            new_amount=new_amount,
            old_category=old_category,
            new_category=new_category,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_allocation_retracted(
        self,
        expense_id: str,
        amount: str,
        category: str,
        correlation_id: UUID,
    ) -> None:
        """Log a deleted ledger entry."""
        event = AuditEventBuilder.allocation_retracted(
            user_id=self._user_id,
            expense_id=expense_id,
            amount=amount,
            category=category,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_target_adjusted(
        self,
        entity_type: str,
        entity_id: str,
        field: str,
        before: str,
        after: str,
        correlation_id: UUID,
    ) -> None:
        """Log a balance or debt amount change caused by the ledger."""
        event = AuditEventBuilder.target_adjusted(
            user_id=self._user_id,
            entity_type=entity_type,
            entity_id=entity_id,
            field=field,
            before=before,
            after=after,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_target_unresolved(
        self,
        category: str,
        reason: str,
        correlation_id: UUID,
    ) -> None:
        """Log a mirrored category whose account or debt could not be found."""
        event = AuditEventBuilder.target_unresolved(
            user_id=self._user_id,
            category=category,
            reason=reason,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_partial_write(
        self,
        operation: str,
        journal_id: Optional[str],
        completed_steps: list[str],
        failed_step: str,
        error_message: str,
        correlation_id: UUID,
    ) -> None:
        """Log a multi-write operation that stopped halfway."""
        event = AuditEventBuilder.partial_write(
            user_id=self._user_id,
            operation=operation,
            journal_id=journal_id,
            completed_steps=completed_steps,
            failed_step=failed_step,
            error_message=error_message,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_journal_resolved(
        self,
        journal_id: str,
        replayed: bool,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log a pending journal record being replayed or discarded."""
        event = AuditEventBuilder.journal_resolved(
            user_id=self._user_id,
            journal_id=journal_id,
            replayed=replayed,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_transfer_recorded(
        self,
        transfer_id: str,
        from_account: str,
        to_account: str,
        amount: str,
        correlation_id: UUID,
    ) -> None:
        """Log a transfer between accounts."""
        event = AuditEventBuilder.transfer_recorded(
            user_id=self._user_id,
            transfer_id=transfer_id,
            from_account=from_account,
            to_account=to_account,
            amount=amount,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_transfer_deleted(
        self,
        transfer_id: str,
        amount: str,
        correlation_id: UUID,
    ) -> None:
        """Log a reversed transfer."""
        event = AuditEventBuilder.transfer_deleted(
            user_id=self._user_id,
            transfer_id=transfer_id,
            amount=amount,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_entity_changed(
        self,
        action: str,
        entity_type: str,
        entity_id: str,
        fields: Optional[dict] = None,
    ) -> None:
        """Log a direct create, update or delete through an entity store."""
        event = AuditEventBuilder.entity_changed(
            user_id=self._user_id,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            fields=fields,
        )
        await self.log(event)

    async def log_report_created(
        self,
        report_id: str,
        month: str,
        report_type: str,
        net_worth: str,
    ) -> None:
        """Log a saved report snapshot."""
        event = AuditEventBuilder.report_created(
            user_id=self._user_id,
            report_id=report_id,
            month=month,
            report_type=report_type,
            net_worth=net_worth,
        )
        await self.log(event)

    async def log_report_deleted(self, report_id: str) -> None:
        event = AuditEventBuilder.report_deleted(
            user_id=self._user_id,
            report_id=report_id,
        )
        await self.log(event)

    async def log_validation_failed(
        self,
        subject: str,
        issues: list[dict],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log validation failure."""
        event = AuditEventBuilder.validation_failed(
            user_id=self._user_id,
            subject=subject,
            issues=issues,
            correlation_id=correlation_id,
        )
        await self.log(event)

    async def log_error(
        self,
        error_type: str,
        error_message: str,
        details: Optional[dict] = None,
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """Log an error."""
        event = AuditEventBuilder.system_error(
            error_type=error_type,
            error_message=error_message,
            details=details,
            correlation_id=correlation_id,
            user_id=self._user_id,
        )
        await self.log(event)


def create_correlation_id() -> UUID:
    """
    Create a new correlation ID for tracking related events.

    Use this at the start of a new user action (e.g., recording an expense).
    Pass it through all subsequent writes.
    """
    return uuid4()
