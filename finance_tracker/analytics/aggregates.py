"""
Aggregate Calculator

Pure functions computing derived values (category totals, remaining
balance, net worth, monthly rollups, report trends) from an explicitly
passed snapshot.

DESIGN DECISION: Nothing here is stored or memoized. Every dashboard value
is recomputed from the current collections, so derived totals can never
drift from the source documents.

Entries may be Expense models or raw store documents (dicts). Raw documents
are what realtime pushes deliver, and their dates may be native dates, ISO
strings, or wrapper objects that convert lazily (to_datetime/to_date).
"""

from collections.abc import Iterable, Mapping
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional

from finance_tracker.models.finance import (
    Account,
    BudgetAllocation,
    Category,
    CategoryTotal,
    DashboardSummary,
    Debt,
    DebtStatus,
    FinanceSnapshot,
    FinancialReport,
    MonthlyBucket,
    NetWorthSummary,
    TrendPoint,
)

ZERO = Decimal("0")

MONTH_LABELS = (
    "Jan", "Feb", "Mar", "Apr", "May", "Jun",
    "Jul", "Aug", "Sep", "Oct", "Nov", "Dec",
)


# =============================================================================
# FIELD ACCESS & NORMALIZATION
# =============================================================================

def _field(item: Any, name: str, default: Any = None) -> Any:
    if isinstance(item, Mapping):
        return item.get(name, default)
    return getattr(item, name, default)


def to_decimal(value: Any) -> Decimal:
    """Coerce a stored amount to Decimal; unusable values count as zero."""
    if value is None or isinstance(value, bool):
        return ZERO
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return ZERO


def to_calendar_date(value: Any) -> Optional[date]:
    """
    Normalize a stored date to a calendar date.

    Accepts date/datetime, ISO strings (with or without time, 'Z' suffix
    allowed) and wrapper objects exposing to_datetime(), to_date() or
    to_pydatetime(). Returns None when the value cannot be interpreted.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return datetime.fromisoformat(text).date()
        except ValueError:
            pass
        try:
            return date.fromisoformat(text[:10])
        except ValueError:
            return None
    for converter in ("to_datetime", "to_date", "to_pydatetime"):
        convert = getattr(value, converter, None)
        if callable(convert):
            return to_calendar_date(convert())
    return None


def month_key(value: Any) -> Optional[str]:
    """Calendar month key ("YYYY-MM") for any supported date representation."""
    day = to_calendar_date(value)
    if day is None:
        return None
    return f"{day.year:04d}-{day.month:02d}"


def shift_month(year: int, month: int, delta: int) -> tuple[int, int]:
    """Move (year, month) by delta months."""
    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1


def trailing_month_keys(months_back: int, today: date) -> list[str]:
    """The last months_back month keys ending with today's month, oldest first."""
    keys = []
    for offset in range(months_back - 1, -1, -1):
        year, month = shift_month(today.year, today.month, -offset)
        keys.append(f"{year:04d}-{month:02d}")
    return keys


def month_label(key: str) -> str:
    """Short chart label, e.g. '2024-03' -> 'Mar 24'."""
    year, month = key.split("-")
    return f"{MONTH_LABELS[int(month) - 1]} {year[2:]}"


# =============================================================================
# LEDGER AGGREGATES
# =============================================================================

def total_amount(entries: Iterable[Any]) -> Decimal:
    return sum((to_decimal(_field(e, "amount")) for e in entries), ZERO)


def remaining_balance(total_budget: Any, entries: Iterable[Any]) -> Decimal:
    """totalBudget minus the sum of all entry amounts."""
    return to_decimal(total_budget) - total_amount(entries)


def category_total(entries: Iterable[Any], category_name: str) -> Decimal:
    """Sum of amounts for entries whose category equals category_name."""
    return total_amount(
        e for e in entries if _field(e, "category") == category_name
    )


def expenses_in_month(entries: Iterable[Any], month: str) -> list[Any]:
    """Entries whose date falls in the given YYYY-MM month."""
    return [e for e in entries if month_key(_field(e, "date")) == month]


def expenses_by_category(
    entries: Iterable[Any],
    uncategorized_label: str = "Uncategorized",
    colors: Optional[Mapping[str, str]] = None,
) -> list[CategoryTotal]:
    """
    Totals per category, largest first.

    Ties are broken by category name so output is deterministic.
    """
    totals: dict[str, Decimal] = {}
    counts: dict[str, int] = {}
    for entry in entries:
        category = _field(entry, "category") or uncategorized_label
        totals[category] = totals.get(category, ZERO) + to_decimal(_field(entry, "amount"))
        counts[category] = counts.get(category, 0) + 1

    rows = [
        CategoryTotal(
            category=name,
            amount=amount,
            count=counts[name],
            color=(colors or {}).get(name),
        )
        for name, amount in totals.items()
    ]
    rows.sort(key=lambda row: (-row.amount, row.category))
    return rows


def monthly_rollup(
    entries: Iterable[Any],
    months_back: int = 6,
    today: Optional[date] = None,
) -> list[MonthlyBucket]:
    """
    Bucket entries by calendar month over a trailing window.

    Returns exactly months_back buckets, oldest first, ending with the
    current month. Months with no entries are zero-filled; entries outside
    the window or with unreadable dates are ignored.
    """
    if months_back < 1:
        raise ValueError("months_back must be at least 1")
    today = today or date.today()
    keys = trailing_month_keys(months_back, today)
    totals = {key: ZERO for key in keys}
    counts = {key: 0 for key in keys}

    for entry in entries:
        key = month_key(_field(entry, "date"))
        if key in totals:
            totals[key] += to_decimal(_field(entry, "amount"))
            counts[key] += 1

    return [
        MonthlyBucket(
            month=key,
            label=month_label(key),
            total=totals[key],
            count=counts[key],
        )
        for key in keys
    ]


# =============================================================================
# BALANCE SHEET AGGREGATES
# =============================================================================

def total_assets(accounts: Iterable[Any]) -> Decimal:
    return sum((to_decimal(_field(a, "balance")) for a in accounts), ZERO)


def total_debts(debts: Iterable[Any]) -> Decimal:
    """What the user owes."""
    return sum(
        (to_decimal(_field(d, "amount")) for d in debts if _field(d, "is_debt") is True),
        ZERO,
    )


def total_loans(debts: Iterable[Any]) -> Decimal:
    """What others owe the user."""
    return sum(
        (to_decimal(_field(d, "amount")) for d in debts if _field(d, "is_debt") is False),
        ZERO,
    )


def net_worth(accounts: Iterable[Any], debts: Iterable[Any]) -> Decimal:
    """Account balances minus debts owed plus loans owed to the user."""
    debts = list(debts)
    return total_assets(accounts) - total_debts(debts) + total_loans(debts)


def net_worth_summary(accounts: Iterable[Any], debts: Iterable[Any]) -> NetWorthSummary:
    accounts = list(accounts)
    debts = list(debts)
    assets = total_assets(accounts)
    owed = total_debts(debts)
    loans = total_loans(debts)
    return NetWorthSummary(
        total_assets=assets,
        total_debts=owed,
        total_loans=loans,
        net_worth=assets - owed + loans,
    )


def account_distribution(accounts: Iterable[Account]) -> list[tuple[str, Decimal]]:
    """(name, balance) pairs for the account pie chart, ordered by name."""
    return sorted(
        ((a.name, a.balance) for a in accounts),
        key=lambda pair: pair[0],
    )


def is_overdue(debt: Debt, today: Optional[date] = None) -> bool:
    """
    Display-only overdue check.

    Never written back: a debt's stored status is not changed by due dates.
    """
    if debt.due_date is None or debt.status == DebtStatus.PAID_OFF:
        return False
    return debt.due_date < (today or date.today())


# =============================================================================
# CATEGORIES & BUDGETS
# =============================================================================

def fallback_color(index: int) -> str:
    return f"hsl({(index * 60) % 360}, 70%, 60%)"


def category_colors(
    categories: Iterable[Category],
    extra_names: Iterable[str] = (),
) -> dict[str, str]:
    """
    Colour per category name.

    Stored categories keep their colour; names seen only on entries (such as
    the reserved Account:/Debt: pseudo-categories) get a positional colour.
    """
    colors = {c.name: c.color for c in categories}
    for index, name in enumerate(sorted(set(extra_names) - set(colors))):
        colors[name] = fallback_color(index)
    return colors


def budget_by_account(
    allocations: Iterable[BudgetAllocation],
    month: Optional[str] = None,
) -> dict[str, Decimal]:
    """Budgeted amount per account id, optionally for one month."""
    totals: dict[str, Decimal] = {}
    for allocation in allocations:
        if month and allocation.month != month:
            continue
        totals[allocation.account_id] = totals.get(allocation.account_id, ZERO) + allocation.amount
    return dict(sorted(totals.items()))


def group_allocations_by_month(
    allocations: Iterable[BudgetAllocation],
) -> list[tuple[str, list[BudgetAllocation]]]:
    """Budget allocations grouped by month, newest month first."""
    groups: dict[str, list[BudgetAllocation]] = {}
    for allocation in allocations:
        groups.setdefault(allocation.month, []).append(allocation)
    return [
        (month, sorted(groups[month], key=lambda a: (a.account_id, a.id or "")))
        for month in sorted(groups, reverse=True)
    ]


# =============================================================================
# REPORTS & DASHBOARD
# =============================================================================

def report_trend(reports: Iterable[FinancialReport]) -> list[TrendPoint]:
    """Trend series for charts, oldest report first."""
    ordered = sorted(reports, key=lambda r: (r.month, r.created_at, r.name))
    return [
        TrendPoint(
            month=report.month,
            name=report.name,
            total_assets=report.totals.total_assets,
            total_debts=report.totals.total_debts,
            total_loans=report.totals.total_loans,
            net_worth=report.totals.net_worth,
            monthly_expenses=report.totals.monthly_expenses,
        )
        for report in ordered
    ]


def build_dashboard(
    snapshot: FinanceSnapshot,
    today: Optional[date] = None,
    total_budget: Optional[Any] = None,
    months_back: int = 6,
    uncategorized_label: str = "Uncategorized",
) -> DashboardSummary:
    """Recompute every dashboard value from a snapshot."""
    today = today or date.today()
    current_month = month_key(today)
    this_month = expenses_in_month(snapshot.expenses, current_month)
    colors = category_colors(
        snapshot.categories,
        extra_names=(e.category for e in snapshot.expenses),
    )

    return DashboardSummary(
        month=current_month,
        net_worth=net_worth_summary(snapshot.accounts, snapshot.debts),
        remaining_balance=(
            remaining_balance(total_budget, snapshot.expenses)
            if total_budget is not None
            else None
        ),
        current_month_total=total_amount(this_month),
        expenses_by_category=expenses_by_category(
            this_month, uncategorized_label, colors
        ),
        monthly_rollup=monthly_rollup(snapshot.expenses, months_back, today),
        overdue_debt_ids=sorted(
            d.id for d in snapshot.debts if d.id and is_overdue(d, today)
        ),
        budget_by_account=budget_by_account(
            snapshot.budget_allocations, current_month
        ),
    )
