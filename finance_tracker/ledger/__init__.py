"""
Ledger Package

Balance-touching mutations: the allocation ledger, transfers and the
journal that makes their multi-document writes recoverable.
"""

from finance_tracker.ledger.errors import (
    EntryNotFoundError,
    LedgerError,
    MissingUserError,
    PartialWriteError,
    ValidationFailedError,
)
from finance_tracker.ledger.targets import (
    ACCOUNT_PREFIX,
    DEBT_PREFIX,
    category_options,
    format_category,
    parse_category,
    resolve_target,
)
from finance_tracker.ledger.journal import LedgerJournal
from finance_tracker.ledger.allocation_ledger import AllocationLedger
from finance_tracker.ledger.transfers import TransferService

__all__ = [
    "ACCOUNT_PREFIX",
    "DEBT_PREFIX",
    "AllocationLedger",
    "EntryNotFoundError",
    "LedgerError",
    "LedgerJournal",
    "MissingUserError",
    "PartialWriteError",
    "TransferService",
    "ValidationFailedError",
    "category_options",
    "format_category",
    "parse_category",
    "resolve_target",
]
