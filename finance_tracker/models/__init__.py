"""
Data Models Package

This package contains all Pydantic models used by the finance tracker.
All data flowing through the system must conform to these schemas.
"""

from finance_tracker.models.finance import (
    Account,
    AccountDeposit,
    AllocationDraft,
    AllocationTarget,
    BudgetAllocation,
    Category,
    CategoryTotal,
    Collection,
    DashboardSummary,
    Debt,
    DebtPayment,
    DebtStatus,
    Expense,
    FinanceSnapshot,
    FinancialReport,
    JournalRecord,
    LedgerResult,
    MonthlyBucket,
    NetWorthSummary,
    PlainCategory,
    PlannedWrite,
    ReportAccountLine,
    ReportDebtLine,
    ReportMetadata,
    ReportTotals,
    ReportType,
    TargetAdjustment,
    Transfer,
    TransferDraft,
    TrendPoint,
    ValidationIssue,
    ValidationResult,
)
from finance_tracker.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)

__all__ = [
    # Finance models
    "Account",
    "AccountDeposit",
    "AllocationDraft",
    "AllocationTarget",
    "BudgetAllocation",
    "Category",
    "CategoryTotal",
    "Collection",
    "DashboardSummary",
    "Debt",
    "DebtPayment",
    "DebtStatus",
    "Expense",
    "FinanceSnapshot",
    "FinancialReport",
    "JournalRecord",
    "LedgerResult",
    "MonthlyBucket",
    "NetWorthSummary",
    "PlainCategory",
    "PlannedWrite",
    "ReportAccountLine",
    "ReportDebtLine",
    "ReportMetadata",
    "ReportTotals",
    "ReportType",
    "TargetAdjustment",
    "Transfer",
    "TransferDraft",
    "TrendPoint",
    "ValidationIssue",
    "ValidationResult",
    # Audit models
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
