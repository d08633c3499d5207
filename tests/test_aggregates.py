"""Tests for the aggregate calculator."""

import itertools
from datetime import date, datetime, timezone
from decimal import Decimal

import pytest

from finance_tracker.analytics import aggregates
from finance_tracker.models.finance import (
    Account,
    BudgetAllocation,
    Category,
    Debt,
    DebtStatus,
    Expense,
    FinanceSnapshot,
    FinancialReport,
    PlainCategory,
    ReportTotals,
)


def expense(name, amount, category, day):
    return Expense(
        name=name,
        amount=Decimal(amount),
        category=category,
        target=PlainCategory(name=category),
        date=day,
    )


class LazyTimestamp:
    """Stand-in for a store timestamp that converts on demand."""

    def __init__(self, value: datetime):
        self._value = value

    def to_datetime(self) -> datetime:
        return self._value


class TestLedgerAggregates:
    """Tests for totals over expense entries."""

    def test_remaining_balance(self):
        """Test remaining balance is the budget minus all amounts."""
        entries = [{"amount": 200}, {"amount": 150}]
        assert aggregates.remaining_balance(1000, entries) == Decimal("650")

    def test_category_total(self):
        """Test category total only sums the named category."""
        entries = [
            {"category": "Food", "amount": 50},
            {"category": "Food", "amount": 30},
            {"category": "Bills", "amount": 10},
        ]
        assert aggregates.category_total(entries, "Food") == Decimal("80")
        assert aggregates.category_total(entries, "Travel") == Decimal("0")

    def test_totals_accept_models_and_documents(self):
        """Test models and raw documents give the same totals."""
        models = [expense("Lunch", "12.50", "Food", date(2024, 3, 1))]
        documents = [m.model_dump(mode="json") for m in models]
        assert aggregates.total_amount(models) == aggregates.total_amount(documents)

    def test_expenses_by_category_sorted(self):
        """Test categories sort by amount descending, then by name."""
        entries = [
            {"category": "Bills", "amount": 40},
            {"category": "Food", "amount": 25},
            {"category": "Fun", "amount": 40},
            {"category": None, "amount": 5},
            {"category": "Food", "amount": 15},
        ]
        rows = aggregates.expenses_by_category(entries)
        assert [r.category for r in rows] == ["Bills", "Food", "Fun", "Uncategorized"]
        assert rows[1].amount == Decimal("40")
        assert rows[1].count == 2

    def test_expenses_in_month(self):
        """Test month filtering with mixed date types."""
        entries = [
            {"date": "2024-03-31", "amount": 1},
            {"date": date(2024, 4, 1), "amount": 2},
            {"date": "2024-03-01T23:00:00Z", "amount": 3},
        ]
        selected = aggregates.expenses_in_month(entries, "2024-03")
        assert [e["amount"] for e in selected] == [1, 3]


class TestMonthlyRollup:
    """Tests for the trailing monthly rollup."""

    def test_rollup_zero_fills_window(self):
        """Test three active months in a six-month window."""
        today = date(2024, 6, 15)
        entries = [
            {"date": date(2024, 1, 10), "amount": 100},
            {"date": "2024-03-05", "amount": 50},
            {"date": "2024-03-20T08:30:00Z", "amount": 25},
            {"date": LazyTimestamp(datetime(2024, 6, 1, tzinfo=timezone.utc)), "amount": 10},
            {"date": date(2023, 12, 31), "amount": 999},  # outside window
            {"date": "not a date", "amount": 7},
        ]
        buckets = aggregates.monthly_rollup(entries, months_back=6, today=today)

        assert [b.month for b in buckets] == [
            "2024-01", "2024-02", "2024-03", "2024-04", "2024-05", "2024-06",
        ]
        assert [b.total for b in buckets] == [
            Decimal("100"), Decimal("0"), Decimal("75"),
            Decimal("0"), Decimal("0"), Decimal("10"),
        ]
        assert sum(1 for b in buckets if b.total == 0) == 3
        assert buckets[2].count == 2
        assert buckets[0].label == "Jan 24"

    def test_rollup_crosses_year_boundary(self):
        """Test the window wraps into the previous year."""
        buckets = aggregates.monthly_rollup([], months_back=3, today=date(2024, 2, 1))
        assert [b.month for b in buckets] == ["2023-12", "2024-01", "2024-02"]

    def test_rollup_rejects_empty_window(self):
        """Test months_back must be positive."""
        with pytest.raises(ValueError):
            aggregates.monthly_rollup([], months_back=0)


class TestBalanceSheet:
    """Tests for net worth and debt aggregates."""

    def test_net_worth(self):
        """Test net worth subtracts debts and adds loans."""
        accounts = [{"balance": 1000}, {"balance": "-200"}]
        debts = [
            {"amount": 300, "is_debt": True},
            {"amount": 50, "is_debt": False},
        ]
        assert aggregates.net_worth(accounts, debts) == Decimal("550")

    def test_net_worth_order_invariant(self):
        """Test net worth does not depend on input order."""
        accounts = [{"balance": b} for b in ("10.10", "20.20", "-5.05")]
        debts = [
            {"amount": "3.33", "is_debt": True},
            {"amount": "1.11", "is_debt": False},
            {"amount": "2.22", "is_debt": True},
        ]
        results = {
            aggregates.net_worth(a, d)
            for a in itertools.permutations(accounts)
            for d in itertools.permutations(debts)
        }
        assert results == {Decimal("20.81")}

    def test_net_worth_summary(self):
        """Test the summary agrees with net_worth."""
        accounts = [Account(name="Checking", balance=Decimal("500"))]
        debts = [
            Debt(name="Car Loan", amount=Decimal("200")),
            Debt(name="Loan to Sam", amount=Decimal("75"), is_debt=False),
        ]
        summary = aggregates.net_worth_summary(accounts, debts)
        assert summary.total_debts == Decimal("200")
        assert summary.total_loans == Decimal("75")
        assert summary.net_worth == aggregates.net_worth(accounts, debts)

    def test_is_overdue(self):
        """Test overdue is display-only and ignores paid-off debts."""
        today = date(2024, 3, 15)
        late = Debt(name="Late", amount=Decimal("10"), due_date=date(2024, 3, 1))
        paid = late.model_copy(update={"status": DebtStatus.PAID_OFF})
        future = late.model_copy(update={"due_date": date(2024, 4, 1)})
        assert aggregates.is_overdue(late, today) is True
        assert aggregates.is_overdue(paid, today) is False
        assert aggregates.is_overdue(future, today) is False
        assert late.status == DebtStatus.ACTIVE

    def test_account_distribution(self):
        """Test distribution pairs are ordered by account name."""
        accounts = [
            Account(name="Savings", balance=Decimal("2")),
            Account(name="Checking", balance=Decimal("1")),
        ]
        assert aggregates.account_distribution(accounts) == [
            ("Checking", Decimal("1")),
            ("Savings", Decimal("2")),
        ]


class TestCategoriesAndBudgets:
    """Tests for colours and budget groupings."""

    def test_category_colors_is_deterministic(self):
        """Test stored colours win and extra names get stable colours."""
        categories = [Category(name="Food", color="#ff0000")]
        extra = ["Debt: Car Loan", "Food", "Account: Checking"]
        first = aggregates.category_colors(categories, extra)
        second = aggregates.category_colors(categories, reversed(extra))
        assert first == second
        assert first["Food"] == "#ff0000"
        assert first["Account: Checking"] == aggregates.fallback_color(0)

    def test_budget_grouping(self):
        """Test budget allocations grouped by month, newest first."""
        allocations = [
            BudgetAllocation(id="b1", account_id="a1", amount=Decimal("100"), month="2024-02"),
            BudgetAllocation(id="b2", account_id="a2", amount=Decimal("50"), month="2024-03"),
            BudgetAllocation(id="b3", account_id="a1", amount=Decimal("25"), month="2024-03"),
        ]
        groups = aggregates.group_allocations_by_month(allocations)
        assert [month for month, _ in groups] == ["2024-03", "2024-02"]
        assert [a.id for a in groups[0][1]] == ["b3", "b2"]
        assert aggregates.budget_by_account(allocations) == {
            "a1": Decimal("125"),
            "a2": Decimal("50"),
        }
        assert aggregates.budget_by_account(allocations, "2024-02") == {"a1": Decimal("100")}


class TestReportsAndDashboard:
    """Tests for report trends and the dashboard summary."""

    def test_report_trend_oldest_first(self):
        """Test trend points are ordered by month ascending."""
        reports = [
            FinancialReport(month="2024-03", name="March", totals=ReportTotals(net_worth=Decimal("3"))),
            FinancialReport(month="2024-01", name="January", totals=ReportTotals(net_worth=Decimal("1"))),
        ]
        trend = aggregates.report_trend(reports)
        assert [p.month for p in trend] == ["2024-01", "2024-03"]
        assert trend[-1].net_worth == Decimal("3")

    def test_build_dashboard(self):
        """Test the dashboard is computed from the snapshot alone."""
        today = date(2024, 3, 20)
        snapshot = FinanceSnapshot(
            expenses=[
                expense("Lunch", "20", "Food", date(2024, 3, 2)),
                expense("Power", "60", "Bills", date(2024, 3, 5)),
                expense("Old", "500", "Food", date(2024, 1, 5)),
            ],
            accounts=[Account(name="Checking", balance=Decimal("1000"))],
            debts=[Debt(id="d1", name="Card", amount=Decimal("100"), due_date=date(2024, 3, 1))],
            budget_allocations=[
                BudgetAllocation(account_id="a1", amount=Decimal("300"), month="2024-03"),
            ],
        )
        summary = aggregates.build_dashboard(snapshot, today=today, total_budget=1000)

        assert summary.month == "2024-03"
        assert summary.current_month_total == Decimal("80")
        assert [r.category for r in summary.expenses_by_category] == ["Bills", "Food"]
        assert summary.remaining_balance == Decimal("420")
        assert summary.net_worth.net_worth == Decimal("900")
        assert summary.overdue_debt_ids == ["d1"]
        assert summary.budget_by_account == {"a1": Decimal("300")}
        assert len(summary.monthly_rollup) == 6
