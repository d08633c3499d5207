"""
Ledger Exceptions

Every failing balance-touching mutation raises one of these (or a
StorageError from the store) so callers can tell what went wrong.
"""

from typing import Optional

from finance_tracker.models.finance import ValidationResult


class LedgerError(Exception):
    """Base exception for ledger, store and report operations."""
    pass


class MissingUserError(LedgerError):
    """An operation was attempted without a user id."""

    def __init__(self, message: str = "A user id is required before any operation"):
        super().__init__(message)


class ValidationFailedError(LedgerError):
    """Input was rejected before anything was written."""

    def __init__(self, result: ValidationResult):
        self.result = result
        messages = "; ".join(result.error_messages) or "validation failed"
        super().__init__(f"Invalid {result.subject}: {messages}")


class EntryNotFoundError(LedgerError):
    """The referenced document does not exist for this user."""

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type.capitalize()} not found: {entity_id}")


class PartialWriteError(LedgerError):
    """
    A multi-write operation stopped after some writes succeeded.

    The successful writes stay in place. The pending remainder is kept in
    the ledger journal under adjustment_id for replay or discard.
    """

    def __init__(
        self,
        operation: str,
        completed_steps: list[str],
        failed_step: str,
        adjustment_id: Optional[str],
        cause: Exception,
    ):
        self.operation = operation
        self.completed_steps = completed_steps
        self.failed_step = failed_step
        self.adjustment_id = adjustment_id
        self.cause = cause
        super().__init__(
            f"{operation} stopped at '{failed_step}' after "
            f"{len(completed_steps)} completed write(s): {cause}"
        )
