"""
Main Orchestrator for the Finance Tracker

This module ties together all the components for one signed-in user:
1. Mutations (ledger, transfers, entity stores, reports)
2. Live views (subscriptions -> snapshot -> recomputed aggregates)

DESIGN DECISION: The orchestrator enforces the boundaries:
- No operation runs without a user id
- Anything that keeps two documents consistent goes through the ledger
- Every mutation is audited

Data flow:
    user action -> ledger/store mutation -> persisted change
    -> push to subscribed LiveView -> recompute aggregates -> listeners
"""

from collections.abc import Callable
from datetime import date
from typing import Any, Optional

import structlog

from finance_tracker.analytics import aggregates
from finance_tracker.audit import AuditLogger
from finance_tracker.config import AppSettings, get_settings
from finance_tracker.ledger import (
    AllocationLedger,
    LedgerJournal,
    MissingUserError,
    TransferService,
    category_options,
)
from finance_tracker.models.finance import (
    Collection,
    DashboardSummary,
    Expense,
    FinanceSnapshot,
    LedgerResult,
    Transfer,
)
from finance_tracker.reports import ReportSnapshotter
from finance_tracker.services.storage import (
    DocumentAuditStorage,
    DocumentStoreInterface,
    GoogleSheetsClient,
    GoogleSheetsDocumentStore,
    InMemoryDocumentStore,
    Subscription,
)
from finance_tracker.stores import (
    AccountStore,
    BudgetAllocationStore,
    CategoryStore,
    DebtStore,
)
from finance_tracker.stores.base import parse_documents
from finance_tracker.validation import EntryValidator


logger = structlog.get_logger(__name__)


class FinanceTracker:
    """
    Everything one user can do, wired to one document store.

    Components share a single audit logger and journal so one user action
    has one correlation id across all of its events.
    """

    def __init__(
        self,
        store: DocumentStoreInterface,
        user_id: str,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[AppSettings] = None,
    ):
        if not user_id:
            raise MissingUserError()
        self._store = store
        self._user_id = user_id
        self._settings = settings or get_settings().app
        self._audit = audit_logger or AuditLogger(
            DocumentAuditStorage(store, user_id), user_id=user_id,
        )
        validator = EntryValidator(self._settings)
        journal = LedgerJournal(store, user_id, self._audit)

        self.accounts = AccountStore(store, user_id, self._audit)
        self.debts = DebtStore(store, user_id, self._audit)
        self.categories = CategoryStore(store, user_id, self._audit, validator)
        self.budgets = BudgetAllocationStore(store, user_id, self._audit, validator)
        self.ledger = AllocationLedger(store, user_id, validator, self._audit, journal)
        self.transfers = TransferService(store, user_id, validator, self._audit, journal)
        self.reports = ReportSnapshotter(store, user_id, self._audit, self._settings)

    @property
    def user_id(self) -> str:
        return self._user_id

    @property
    def store(self) -> DocumentStoreInterface:
        return self._store

    @property
    def settings(self) -> AppSettings:
        return self._settings

    async def category_options(self) -> list[str]:
        """User categories plus one Account:/Debt: pseudo-category per entity."""
        return category_options(
            await self.categories.list_all(),
            await self.accounts.list_all(),
            await self.debts.list_all(),
        )

    async def delete_category(
        self,
        category_id: str,
        cascade: bool = True,
    ) -> list[LedgerResult]:
        """
        Delete a category, retracting its entries first when cascade is set.

        Entries are retracted through the ledger, one at a time, so a
        failure stops the cascade with the category still in place.
        """
        category = await self.categories.require(category_id)
        results = []
        if cascade:
            results = await self.ledger.retract_category(category.name)
        await self.categories.delete(category_id)
        return results

    async def snapshot(self) -> FinanceSnapshot:
        """Read every collection once."""
        return FinanceSnapshot(
            expenses=await self.ledger.list_expenses(),
            accounts=await self.accounts.list_all(),
            debts=await self.debts.list_all(),
            categories=await self.categories.list_all(),
            transfers=await self.transfers.list_transfers(),
            budget_allocations=await self.budgets.list_all(),
        )

    async def dashboard(
        self,
        total_budget: Optional[Any] = None,
        today: Optional[date] = None,
    ) -> DashboardSummary:
        return aggregates.build_dashboard(
            await self.snapshot(),
            today=today,
            total_budget=total_budget,
            months_back=self._settings.rollup_months,
            uncategorized_label=self._settings.uncategorized_label,
        )

    def live_view(
        self,
        total_budget: Optional[Any] = None,
        today: Optional[Callable[[], date]] = None,
    ) -> "LiveView":
        return LiveView(self, total_budget=total_budget, today=today)


# Collection -> (snapshot field, model)
LIVE_COLLECTIONS = {
    Collection.EXPENSES: ("expenses", Expense),
    Collection.ACCOUNTS: ("accounts", AccountStore.model),
    Collection.DEBTS: ("debts", DebtStore.model),
    Collection.CATEGORIES: ("categories", CategoryStore.model),
    Collection.TRANSFERS: ("transfers", Transfer),
    Collection.BUDGET_ALLOCATIONS: ("budget_allocations", BudgetAllocationStore.model),
}


class LiveView:
    """
    Observer of a user's collections.

    Every push replaces one collection of the local snapshot wholesale
    (last write wins), then the dashboard is recomputed from scratch and
    handed to the listeners.
    """

    def __init__(
        self,
        tracker: FinanceTracker,
        total_budget: Optional[Any] = None,
        today: Optional[Callable[[], date]] = None,
    ):
        self._tracker = tracker
        self._total_budget = total_budget
        self._today = today or date.today
        self._snapshot = FinanceSnapshot()
        self._subscriptions: list[Subscription] = []
        self._listeners: list[Callable[[DashboardSummary], None]] = []
        self._starting = False
        self.summary: Optional[DashboardSummary] = None

    @property
    def snapshot(self) -> FinanceSnapshot:
        return self._snapshot

    @property
    def active(self) -> bool:
        return bool(self._subscriptions)

    def add_listener(self, listener: Callable[[DashboardSummary], None]) -> None:
        self._listeners.append(listener)

    def start(self) -> None:
        """Subscribe to every collection; listeners get one summary once all are loaded."""
        if self._subscriptions:
            return
        self._starting = True
        try:
            for collection in LIVE_COLLECTIONS:
                self._subscriptions.append(
                    self._tracker.store.subscribe(
                        self._tracker.user_id,
                        collection,
                        lambda documents, c=collection: self.collection_replaced(c, documents),
                    )
                )
        finally:
            self._starting = False
        self._recompute()

    def stop(self) -> None:
        for subscription in self._subscriptions:
            subscription.unsubscribe()
        self._subscriptions = []

    def set_total_budget(self, total_budget: Optional[Any]) -> None:
        self._total_budget = total_budget
        self._recompute()

    def collection_replaced(self, collection: Collection, documents: list[dict]) -> None:
        field, model = LIVE_COLLECTIONS[collection]
        setattr(self._snapshot, field, parse_documents(model, documents, collection))
        if not self._starting:
            self._recompute()

    def _recompute(self) -> None:
        settings = self._tracker.settings
        self.summary = aggregates.build_dashboard(
            self._snapshot,
            today=self._today(),
            total_budget=self._total_budget,
            months_back=settings.rollup_months,
            uncategorized_label=settings.uncategorized_label,
        )
        for listener in list(self._listeners):
            try:
                listener(self.summary)
            except Exception as e:
                logger.error("live_view_listener_failed", error=str(e))


def create_tracker(
    user_id: str,
    backend: Optional[str] = None,
) -> FinanceTracker:
    """
    Factory function to create a tracker for one user.

    Args:
        user_id: Stable id of the signed-in user
        backend: "memory" or "google_sheets"; defaults to STORAGE_BACKEND.
                 If Google Sheets cannot be configured, falls back to memory.

    Returns:
        FinanceTracker bound to the chosen store
    """
    if not user_id:
        raise MissingUserError()
    backend = backend or get_settings().storage.backend

    store: DocumentStoreInterface
    if backend == "google_sheets":
        try:
            store = GoogleSheetsDocumentStore(GoogleSheetsClient())
        except Exception as e:
            # Storage not configured - continue in memory
            logger.warning("storage_not_configured", backend=backend, error=str(e))
            store = InMemoryDocumentStore()
    else:
        store = InMemoryDocumentStore()

    return FinanceTracker(store, user_id)
