"""Tests for the report snapshotter."""

from datetime import date
from decimal import Decimal

import pytest

from finance_tracker.ledger import EntryNotFoundError
from finance_tracker.models.finance import ReportType
from finance_tracker.reports import default_report_name


TODAY = date(2024, 3, 15)


async def seed(tracker):
    checking = await tracker.accounts.add({"name": "Checking", "balance": "1000"})
    loan = await tracker.debts.add({"name": "Car Loan", "amount": "400"})
    await tracker.debts.add({"name": "Loan to Sam", "amount": "50", "is_debt": False})
    await tracker.categories.add({"name": "Food"})
    await tracker.ledger.record_allocation(
        {"name": "Lunch", "amount": "20", "category": "Food", "date": date(2024, 3, 2)}
    )
    await tracker.ledger.record_allocation(
        {"name": "Dinner", "amount": "35", "category": "Food", "date": date(2024, 3, 9)}
    )
    await tracker.ledger.record_allocation(
        {"name": "February", "amount": "999", "category": "Food", "date": date(2024, 2, 28)}
    )
    return checking, loan


class TestCreateSnapshot:
    """Tests for creating reports."""

    def test_default_report_name(self):
        """Test the dated default name."""
        assert default_report_name(ReportType.MONTHLY, TODAY) == "Monthly Report - 03/15/2024"
        assert default_report_name(ReportType.ANNUAL, TODAY) == "Annual Report - 03/15/2024"

    @pytest.mark.asyncio
    async def test_snapshot_contents(self, tracker):
        """Test totals, lines and metadata of a monthly report."""
        await seed(tracker)

        report = await tracker.reports.create_snapshot(today=TODAY)

        assert report.id
        assert report.month == "2024-03"
        assert report.type == ReportType.MONTHLY
        assert report.name == "Monthly Report - 03/15/2024"
        assert report.totals.total_assets == Decimal("1000")
        assert report.totals.total_debts == Decimal("400")
        assert report.totals.total_loans == Decimal("50")
        assert report.totals.net_worth == Decimal("650")
        assert report.totals.monthly_expenses == Decimal("55")
        assert report.expenses_by_category == {"Food": Decimal("55")}
        assert report.metadata.expense_count == 2
        assert report.metadata.account_count == 1
        assert report.metadata.debt_count == 2
        assert report.metadata.category_count == 1
        assert [line.name for line in report.accounts] == ["Checking"]

    @pytest.mark.asyncio
    async def test_snapshot_is_frozen_in_time(self, tracker):
        """Test later edits and deletions never change a saved report."""
        checking, loan = await seed(tracker)
        report = await tracker.reports.create_snapshot(today=TODAY)

        await tracker.accounts.update(checking.id, {"balance": "5"})
        await tracker.debts.delete(loan.id)
        for expense in await tracker.ledger.list_expenses():
            await tracker.ledger.retract_allocation(expense.id)

        loaded = await tracker.reports.load_report(report.id)
        assert loaded.model_dump() == report.model_dump()
        assert loaded.accounts[0].balance == Decimal("1000")
        assert loaded.totals.net_worth == Decimal("650")

    @pytest.mark.asyncio
    async def test_custom_report_needs_name(self, tracker):
        """Test a custom report without a name is rejected."""
        with pytest.raises(ValueError):
            await tracker.reports.create_snapshot(report_type="custom", today=TODAY)
        report = await tracker.reports.create_snapshot(
            report_type="custom", name="  Tax prep  ", today=TODAY,
        )
        assert report.name == "Tax prep"

    @pytest.mark.asyncio
    async def test_empty_snapshot(self, tracker):
        """Test a report with no data has zero totals."""
        report = await tracker.reports.create_snapshot(report_type=ReportType.QUARTERLY, today=TODAY)
        assert report.totals.net_worth == Decimal("0")
        assert report.expenses_by_category == {}
        assert report.name.startswith("Quarterly Report")


class TestListReports:
    """Tests for report queries."""

    @pytest.mark.asyncio
    async def test_list_latest_and_trend(self, tracker):
        """Test ordering, the latest report and the trend series."""
        await tracker.accounts.add({"name": "Checking", "balance": "100"})
        january = await tracker.reports.create_snapshot(today=date(2024, 1, 31))
        march = await tracker.reports.create_snapshot(today=date(2024, 3, 31))
        february = await tracker.reports.create_snapshot(
            report_type="annual", today=date(2024, 2, 29),
        )

        reports = await tracker.reports.list_reports()
        assert [r.id for r in reports] == [march.id, february.id, january.id]
        assert (await tracker.reports.get_latest_report()).id == march.id

        monthly = await tracker.reports.list_reports(report_type="monthly")
        assert [r.id for r in monthly] == [march.id, january.id]

        ranged = await tracker.reports.list_reports(start_month="2024-02", end_month="2024-02")
        assert [r.id for r in ranged] == [february.id]

        trend = await tracker.reports.trend()
        assert [p.month for p in trend] == ["2024-01", "2024-02", "2024-03"]

    @pytest.mark.asyncio
    async def test_no_reports(self, tracker):
        """Test the latest report of an empty list is None."""
        assert await tracker.reports.get_latest_report() is None
        assert await tracker.reports.trend() == []


class TestDeleteReport:
    """Tests for deleting reports."""

    @pytest.mark.asyncio
    async def test_delete_report(self, tracker):
        """Test a deleted report can no longer be loaded."""
        report = await tracker.reports.create_snapshot(today=TODAY)

        assert await tracker.reports.delete_report(report.id) is True
        assert await tracker.reports.delete_report(report.id) is False
        with pytest.raises(EntryNotFoundError):
            await tracker.reports.load_report(report.id)
