"""
Report Snapshotter

Materializes immutable, point-in-time financial reports.

A report copies the account and debt lines it summarizes instead of
referencing them, so later edits (or deletions) of accounts, debts and
expenses never change a saved report. Reports are created and deleted,
never updated.
"""

from datetime import date
from typing import Optional

import structlog

from finance_tracker.analytics import aggregates
from finance_tracker.audit import AuditLogger
from finance_tracker.config import AppSettings, get_settings
from finance_tracker.ledger.errors import EntryNotFoundError, MissingUserError
from finance_tracker.models.finance import (
    Account,
    Category,
    Collection,
    Debt,
    Expense,
    FinancialReport,
    ReportAccountLine,
    ReportDebtLine,
    ReportMetadata,
    ReportTotals,
    ReportType,
    TrendPoint,
)
from finance_tracker.services.storage import DocumentStoreInterface, QueryFilter


logger = structlog.get_logger(__name__)


def default_report_name(report_type: ReportType, today: date) -> str:
    """e.g. 'Monthly Report - 03/15/2024'."""
    return f"{report_type.value.capitalize()} Report - {today:%m/%d/%Y}"


class ReportSnapshotter:
    """Creates, lists and deletes one user's financial reports."""

    def __init__(
        self,
        store: DocumentStoreInterface,
        user_id: str,
        audit: Optional[AuditLogger] = None,
        settings: Optional[AppSettings] = None,
    ):
        if not user_id:
            raise MissingUserError()
        self._store = store
        self._user_id = user_id
        self._audit = audit or AuditLogger(user_id=user_id)
        self._settings = settings or get_settings().app

    async def _load(self, collection: Collection, model, filters=None) -> list:
        documents = await self._store.list_documents(
            self._user_id, collection, filters=filters, order_by="created_at",
        )
        return [model.model_validate(d) for d in documents]

    async def _month_expenses(self, month: str) -> list[Expense]:
        year, number = (int(part) for part in month.split("-"))
        next_year, next_number = aggregates.shift_month(year, number, 1)
        return await self._load(Collection.EXPENSES, Expense, filters=[
            QueryFilter("date", ">=", f"{month}-01"),
            QueryFilter("date", "<", f"{next_year:04d}-{next_number:02d}-01"),
        ])

    def build_report(
        self,
        report_type: ReportType,
        name: str,
        month: str,
        accounts: list[Account],
        debts: list[Debt],
        categories: list[Category],
        month_expenses: list[Expense],
    ) -> FinancialReport:
        """Assemble a report from already-loaded collections. Pure."""
        summary = aggregates.net_worth_summary(accounts, debts)
        by_category = aggregates.expenses_by_category(
            month_expenses, self._settings.uncategorized_label,
        )
        return FinancialReport(
            month=month,
            type=report_type,
            name=name,
            accounts=tuple(
                ReportAccountLine(id=a.id or "", name=a.name, type=a.type, balance=a.balance)
                for a in accounts
            ),
            debts=tuple(
                ReportDebtLine(
                    id=d.id or "",
                    name=d.name,
                    type=d.type,
                    amount=d.amount,
                    is_debt=d.is_debt,
                    status=d.status,
                )
                for d in debts
            ),
            expenses_by_category={row.category: row.amount for row in by_category},
            totals=ReportTotals(
                total_assets=summary.total_assets,
                total_debts=summary.total_debts,
                total_loans=summary.total_loans,
                net_worth=summary.net_worth,
                monthly_expenses=aggregates.total_amount(month_expenses),
            ),
            metadata=ReportMetadata(
                account_count=len(accounts),
                debt_count=len(debts),
                expense_count=len(month_expenses),
                category_count=len(categories),
            ),
        )

    async def create_snapshot(
        self,
        report_type: ReportType | str | None = None,
        name: Optional[str] = None,
        today: Optional[date] = None,
    ) -> FinancialReport:
        """
        Snapshot the current accounts, debts and this month's expenses.

        Args:
            report_type: monthly, quarterly, annual or custom
            name: Report name; a dated default is used when omitted
            today: Reference date for the report month

        Raises:
            ValueError: A custom report without a name
        """
        report_type = ReportType(report_type or self._settings.default_report_type)
        today = today or date.today()
        if report_type == ReportType.CUSTOM and not (name and name.strip()):
            raise ValueError("A custom report needs a name")
        name = (name or "").strip() or default_report_name(report_type, today)
        month = aggregates.month_key(today)

        report = self.build_report(
            report_type=report_type,
            name=name,
            month=month,
            accounts=await self._load(Collection.ACCOUNTS, Account),
            debts=await self._load(Collection.DEBTS, Debt),
            categories=await self._load(Collection.CATEGORIES, Category),
            month_expenses=await self._month_expenses(month),
        )
        report_id = await self._store.insert(
            self._user_id,
            Collection.FINANCIAL_REPORTS,
            report.model_dump(mode="json", exclude={"id"}),
        )
        report = report.model_copy(update={"id": report_id})

        await self._audit.log_report_created(
            report_id=report_id,
            month=month,
            report_type=report_type.value,
            net_worth=str(report.totals.net_worth),
        )
        logger.debug("report_created", report_id=report_id, month=month)
        return report

    async def list_reports(
        self,
        start_month: Optional[str] = None,
        end_month: Optional[str] = None,
        report_type: ReportType | str | None = None,
    ) -> list[FinancialReport]:
        """Reports in an optional month range, newest month first."""
        filters = []
        if start_month:
            filters.append(QueryFilter("month", ">=", start_month))
        if end_month:
            filters.append(QueryFilter("month", "<=", end_month))
        if report_type:
            filters.append(QueryFilter("type", "==", ReportType(report_type).value))
        documents = await self._store.list_documents(
            self._user_id, Collection.FINANCIAL_REPORTS, filters=filters,
        )
        reports = [FinancialReport.model_validate(d) for d in documents]
        reports.sort(key=lambda r: (r.month, r.created_at), reverse=True)
        return reports

    async def get_latest_report(self) -> Optional[FinancialReport]:
        reports = await self.list_reports()
        return reports[0] if reports else None

    async def load_report(self, report_id: str) -> FinancialReport:
        document = await self._store.get(self._user_id, Collection.FINANCIAL_REPORTS, report_id)
        if document is None:
            raise EntryNotFoundError("financial report", report_id)
        return FinancialReport.model_validate(document)

    async def delete_report(self, report_id: str) -> bool:
        """Remove a report. Nothing else is touched."""
        deleted = await self._store.delete(self._user_id, Collection.FINANCIAL_REPORTS, report_id)
        if deleted:
            await self._audit.log_report_deleted(report_id)
        return deleted

    async def trend(
        self,
        start_month: Optional[str] = None,
        end_month: Optional[str] = None,
        report_type: ReportType | str | None = None,
    ) -> list[TrendPoint]:
        """Oldest-first series of report totals for charts."""
        return aggregates.report_trend(
            await self.list_reports(start_month, end_month, report_type)
        )
