"""
Core Data Models for the Finance Tracker

These models define the schemas for every document the tracker persists:
expenses (allocation entries), accounts, debts, categories, transfers,
budget allocations and financial reports.

They are designed to:
1. Enforce type safety at runtime
2. Provide clear validation error messages
3. Round-trip through the document store as JSON-mode dicts
4. Keep derived values out of stored state (totals are computed, not kept)

DESIGN DECISION: Money is always Decimal. Documents are stored with
model_dump(mode="json"), so amounts travel as strings and dates as ISO
strings; model_validate() turns them back into typed values.
"""

from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Annotated, Literal, Optional, Union
from uuid import UUID

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    field_serializer,
    field_validator,
    model_validator,
)


def utc_now() -> datetime:
    """Timezone-aware current time in UTC."""
    return datetime.now(timezone.utc)


# Field name "date" shadows the type inside model bodies.
CalendarDate = date

MONTH_PATTERN = r"^\d{4}-(0[1-9]|1[0-2])$"


# =============================================================================
# ENUMS - Finite set of valid values
# =============================================================================

class Collection(str, Enum):
    """
    Per-user document collections.

    Values are the collection names used by the backing store.
    """
    EXPENSES = "expenses"
    ACCOUNTS = "accounts"
    DEBTS = "debts"
    CATEGORIES = "categories"
    TRANSFERS = "transfers"
    BUDGET_ALLOCATIONS = "budgetAllocations"
    FINANCIAL_REPORTS = "financialReports"
    LEDGER_JOURNAL = "ledgerJournal"
    AUDIT_LOG = "auditLog"


class DebtStatus(str, Enum):
    """
    Debt/loan status.

    Only the ledger moves a debt to PAID_OFF (payment reached zero) and back
    to ACTIVE (a payment was retracted). OVERDUE is user-set; the overdue
    badge in the UI is computed at read time from due_date.
    """
    ACTIVE = "Active"
    PAID_OFF = "Paid Off"
    OVERDUE = "Overdue"


class ReportType(str, Enum):
    """Kinds of financial report snapshots."""
    MONTHLY = "monthly"
    QUARTERLY = "quarterly"
    ANNUAL = "annual"
    CUSTOM = "custom"


# =============================================================================
# ALLOCATION TARGETS - tagged variant replacing "Account: X" / "Debt: Y"
# =============================================================================

class PlainCategory(BaseModel):
    """An ordinary expense category. No side effects."""
    kind: Literal["category"] = "category"
    name: str

    @property
    def entity_id(self) -> Optional[str]:
        return None


class AccountDeposit(BaseModel):
    """
    Allocation into an account.

    account_id is None when the named account could not be resolved at the
    time the entry was recorded; such entries never touched a balance.
    """
    kind: Literal["account"] = "account"
    account_name: str
    account_id: Optional[str] = None

    @property
    def entity_id(self) -> Optional[str]:
        return self.account_id


class DebtPayment(BaseModel):
    """Payment toward a debt. debt_id is None when unresolved."""
    kind: Literal["debt"] = "debt"
    debt_name: str
    debt_id: Optional[str] = None

    @property
    def entity_id(self) -> Optional[str]:
        return self.debt_id


AllocationTarget = Annotated[
    Union[PlainCategory, AccountDeposit, DebtPayment],
    Field(discriminator="kind"),
]


# =============================================================================
# LEDGER ENTRIES
# =============================================================================

class AllocationDraft(BaseModel):
    """
    Form input for an expense/allocation, before validation.

    All fields are loose on purpose: the validator reports what is wrong
    instead of pydantic raising on the first problem.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = None
    amount: Optional[Decimal] = None
    category: Optional[str] = None
    date: Optional[CalendarDate] = None
    description: Optional[str] = None


class Expense(BaseModel):
    """
    A recorded expense or mirrored allocation.

    applied_amount is what was actually added to the linked account or taken
    off the linked debt. It differs from amount only when a debt payment was
    clamped at zero, or is zero when the target never resolved.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: Optional[str] = None
    name: str = Field(
        ...,
        min_length=1,
        max_length=200,
        description="What the money went to"
    )
    amount: Decimal = Field(
        ...,
        gt=0,
        description="Amount, always positive"
    )
    category: str = Field(
        ...,
        min_length=1,
        description="Category label as shown to the user"
    )
    target: AllocationTarget = Field(
        ...,
        description="Resolved allocation target"
    )
    applied_amount: Decimal = Field(
        default=Decimal("0"),
        ge=0,
    )
    date: CalendarDate = Field(default_factory=date.today)
    description: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: Optional[datetime] = None

    @property
    def is_mirrored(self) -> bool:
        return self.target.kind != "category"


# =============================================================================
# ENTITIES
# =============================================================================

class Account(BaseModel):
    """
    A money account (checking, savings, credit card, ...).

    balance may be negative (credit cards). It is only moved by mirrored
    allocations and transfers, or by the user editing it directly.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: Optional[str] = None
    name: str = Field(..., min_length=1, max_length=100)
    type: str = Field(default="Checking", max_length=50)
    balance: Decimal = Field(default=Decimal("0"))
    description: Optional[str] = Field(default=None, max_length=500)
    color: str = Field(default="#3b82f6")
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: Optional[datetime] = None


class Debt(BaseModel):
    """
    A debt the user owes (is_debt=True) or a loan owed to the user.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: Optional[str] = None
    name: str = Field(..., min_length=1, max_length=100)
    type: str = Field(default="Personal Loan", max_length=50)
    amount: Decimal = Field(default=Decimal("0"), ge=0)
    person: Optional[str] = Field(default=None, max_length=100)
    is_debt: bool = True
    status: DebtStatus = DebtStatus.ACTIVE
    due_date: Optional[date] = None
    description: Optional[str] = Field(default=None, max_length=500)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: Optional[datetime] = None


class Category(BaseModel):
    """A user-defined expense category."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: Optional[str] = None
    name: str = Field(..., min_length=1, max_length=100)
    color: str
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: Optional[datetime] = None


class TransferDraft(BaseModel):
    """Transfer form input, before validation."""
    model_config = ConfigDict(str_strip_whitespace=True)

    from_account: Optional[str] = None
    to_account: Optional[str] = None
    amount: Optional[Decimal] = None
    date: Optional[CalendarDate] = None
    description: Optional[str] = None


class Transfer(BaseModel):
    """A balance move between two distinct accounts (by account id)."""
    model_config = ConfigDict(str_strip_whitespace=True)

    id: Optional[str] = None
    from_account: str = Field(..., min_length=1)
    to_account: str = Field(..., min_length=1)
    amount: Decimal = Field(..., gt=0)
    date: CalendarDate = Field(default_factory=date.today)
    description: Optional[str] = Field(default=None, max_length=500)
    created_at: datetime = Field(default_factory=utc_now)

    @model_validator(mode='after')
    def validate_accounts(self) -> 'Transfer':
        if self.from_account == self.to_account:
            raise ValueError("Cannot transfer to the same account")
        return self


class BudgetAllocation(BaseModel):
    """
    A monthly budget goal for one account.

    Planning only: it never touches Account.balance.
    """
    model_config = ConfigDict(str_strip_whitespace=True)

    id: Optional[str] = None
    account_id: str = Field(..., min_length=1)
    amount: Decimal = Field(..., gt=0)
    month: str = Field(..., pattern=MONTH_PATTERN, description="YYYY-MM")
    description: Optional[str] = Field(default=None, max_length=500)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: Optional[datetime] = None


# =============================================================================
# REPORTS - immutable snapshots
# =============================================================================

class ReportAccountLine(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = ""
    name: str = ""
    type: str = ""
    balance: Decimal = Decimal("0")


class ReportDebtLine(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str = ""
    name: str = ""
    type: str = ""
    amount: Decimal = Decimal("0")
    is_debt: bool = True
    status: DebtStatus = DebtStatus.ACTIVE


class ReportTotals(BaseModel):
    model_config = ConfigDict(frozen=True)

    total_assets: Decimal = Decimal("0")
    total_debts: Decimal = Decimal("0")
    total_loans: Decimal = Decimal("0")
    net_worth: Decimal = Decimal("0")
    monthly_expenses: Decimal = Decimal("0")


class ReportMetadata(BaseModel):
    """Counts at snapshot time, for audit/debugging."""
    model_config = ConfigDict(frozen=True)

    account_count: int = Field(default=0, ge=0)
    debt_count: int = Field(default=0, ge=0)
    expense_count: int = Field(default=0, ge=0)
    category_count: int = Field(default=0, ge=0)


class FinancialReport(BaseModel):
    """
    A point-in-time copy of the user's financial state.

    CRITICAL: Reports are never mutated after creation. They are copies,
    not live references, so deleting one never cascades anywhere.
    """
    model_config = ConfigDict(frozen=True)

    id: Optional[str] = None
    month: str = Field(..., pattern=MONTH_PATTERN)
    type: ReportType = ReportType.MONTHLY
    name: str = Field(..., min_length=1, max_length=200)
    accounts: tuple[ReportAccountLine, ...] = ()
    debts: tuple[ReportDebtLine, ...] = ()
    expenses_by_category: dict[str, Decimal] = Field(default_factory=dict)
    totals: ReportTotals = Field(default_factory=ReportTotals)
    metadata: ReportMetadata = Field(default_factory=ReportMetadata)
    created_at: datetime = Field(default_factory=utc_now)

    @field_validator('expenses_by_category')
    @classmethod
    def read_only_totals(cls, v: dict[str, Decimal]) -> MappingProxyType:
        return MappingProxyType(dict(v))

    @field_serializer('expenses_by_category')
    def plain_totals(self, v: MappingProxyType) -> dict[str, Decimal]:
        return dict(v)


# =============================================================================
# DERIVED VALUES - produced by the aggregate calculator, never stored
# =============================================================================

class CategoryTotal(BaseModel):
    category: str
    amount: Decimal
    count: int = 0
    color: Optional[str] = None


class MonthlyBucket(BaseModel):
    """One month of a trailing expense rollup."""
    month: str = Field(..., pattern=MONTH_PATTERN)
    label: str
    total: Decimal = Decimal("0")
    count: int = 0


class NetWorthSummary(BaseModel):
    total_assets: Decimal = Decimal("0")
    total_debts: Decimal = Decimal("0")
    total_loans: Decimal = Decimal("0")
    net_worth: Decimal = Decimal("0")


class TrendPoint(BaseModel):
    """One report in a historical trend series."""
    month: str
    name: str
    total_assets: Decimal
    total_debts: Decimal
    total_loans: Decimal
    net_worth: Decimal
    monthly_expenses: Decimal


class FinanceSnapshot(BaseModel):
    """
    The in-memory copy of a user's collections.

    Each list is replaced wholesale whenever the store pushes a new result
    set for that collection.
    """
    expenses: list[Expense] = Field(default_factory=list)
    accounts: list[Account] = Field(default_factory=list)
    debts: list[Debt] = Field(default_factory=list)
    categories: list[Category] = Field(default_factory=list)
    transfers: list[Transfer] = Field(default_factory=list)
    budget_allocations: list[BudgetAllocation] = Field(default_factory=list)


class DashboardSummary(BaseModel):
    """Everything the dashboard renders, recomputed from a snapshot."""
    month: str
    net_worth: NetWorthSummary
    remaining_balance: Optional[Decimal] = None
    current_month_total: Decimal = Decimal("0")
    expenses_by_category: list[CategoryTotal] = Field(default_factory=list)
    monthly_rollup: list[MonthlyBucket] = Field(default_factory=list)
    overdue_debt_ids: list[str] = Field(default_factory=list)
    budget_by_account: dict[str, Decimal] = Field(default_factory=dict)


# =============================================================================
# VALIDATION MODELS
# =============================================================================

class ValidationIssue(BaseModel):
    """A single validation issue found."""

    field: str = Field(
        ...,
        description="Field with the issue"
    )
    issue_type: str = Field(
        ...,
        description="Type of issue (e.g., 'missing', 'invalid_value', 'unresolved_target')"
    )
    message: str = Field(
        ...,
        description="Human-readable description of the issue"
    )
    severity: str = Field(
        ...,
        pattern="^(error|warning|info)$",
        description="Issue severity"
    )
    suggested_fix: Optional[str] = Field(
        default=None,
        description="Suggested fix if available"
    )


class ValidationResult(BaseModel):
    """
    Result of the two-stage validation.

    Stage 1: Schema validation (required fields, value ranges)
    Stage 2: Semantic validation (references, suspicious values)
    """

    subject: str = Field(
        ...,
        description="What was validated (e.g., 'allocation', 'transfer')"
    )
    validated_at: datetime = Field(default_factory=utc_now)

    schema_valid: bool
    semantic_valid: bool
    is_valid: bool

    issues: list[ValidationIssue] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        """Check if there are any error-level issues."""
        return any(issue.severity == "error" for issue in self.issues)

    @property
    def error_count(self) -> int:
        """Count error-level issues."""
        return sum(1 for issue in self.issues if issue.severity == "error")

    @property
    def error_messages(self) -> list[str]:
        return [issue.message for issue in self.issues if issue.severity == "error"]


# =============================================================================
# LEDGER RESULTS
# =============================================================================

class TargetAdjustment(BaseModel):
    """A change the ledger made to a linked account or debt."""
    entity_type: Literal["account", "debt"]
    entity_id: str
    field: str
    before: Decimal
    after: Decimal
    status_before: Optional[DebtStatus] = None
    status_after: Optional[DebtStatus] = None

    @property
    def delta(self) -> Decimal:
        return self.after - self.before


class LedgerResult(BaseModel):
    """
    Outcome of a ledger or transfer operation.

    Resolution problems (a named account or debt that no longer exists) are
    reported in warnings; they never raise.
    """
    expense: Optional[Expense] = None
    transfer: Optional[Transfer] = None
    adjustments: list[TargetAdjustment] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    correlation_id: Optional[UUID] = None

    @property
    def has_warnings(self) -> bool:
        return bool(self.warnings)


# =============================================================================
# JOURNAL - compensating-action log for multi-write operations
# =============================================================================

class PlannedWrite(BaseModel):
    """
    One document write in a multi-write operation.

    update fields are absolute values, so re-issuing a write is safe.
    """
    action: Literal["insert", "update", "delete"]
    collection: Collection
    document_id: str
    fields: dict = Field(default_factory=dict)
    description: str = ""


class JournalRecord(BaseModel):
    """A multi-write operation that has not been confirmed complete."""
    id: Optional[str] = None
    operation: str
    subject_id: str
    writes: list[PlannedWrite]
    completed_steps: int = Field(default=0, ge=0)
    failed_step: Optional[int] = None
    error_message: Optional[str] = None
    correlation_id: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)

    @field_validator('completed_steps')
    @classmethod
    def within_plan(cls, v: int, info) -> int:
        writes = info.data.get("writes") or []
        if v > len(writes):
            raise ValueError("completed_steps cannot exceed the number of writes")
        return v

    @property
    def remaining_writes(self) -> list[PlannedWrite]:
        return self.writes[self.completed_steps:]
