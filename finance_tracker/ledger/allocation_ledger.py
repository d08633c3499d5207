"""
Allocation Ledger

Records, revises and retracts expense entries. An entry whose category is
"Account: <name>" or "Debt: <name>" is a mirrored allocation: it moves the
linked account balance up, or the linked debt amount down (clamped at 0),
and the inverse happens when the entry is edited or deleted.

CRITICAL INVARIANTS:
1. recordAllocation followed by retractAllocation leaves the linked
   balance or debt exactly where it was
2. A debt amount is never negative
3. A debt reaching 0 through a payment is "Paid Off"; retracting that
   payment makes it "Active" again
4. A missing account or debt is a warning; the entry is still recorded

Each operation issues its writes back-to-back through the LedgerJournal.
Nothing is rolled back: a failure after the first write raises
PartialWriteError and leaves a journal record for reconciliation.
"""

from collections.abc import Mapping
from datetime import date
from decimal import Decimal
from typing import Any, Optional, Union
from uuid import UUID, uuid4

import structlog

from finance_tracker.audit import AuditLogger, create_correlation_id
from finance_tracker.ledger.errors import (
    EntryNotFoundError,
    MissingUserError,
    ValidationFailedError,
)
from finance_tracker.ledger.journal import LedgerJournal
from finance_tracker.ledger.targets import (
    parse_category,
    resolve_target,
    same_target,
    unresolved_reason,
)
from finance_tracker.models.finance import (
    Account,
    AccountDeposit,
    AllocationDraft,
    AllocationTarget,
    Collection,
    Debt,
    DebtPayment,
    DebtStatus,
    Expense,
    JournalRecord,
    LedgerResult,
    PlannedWrite,
    TargetAdjustment,
    utc_now,
)
from finance_tracker.services.storage import DocumentStoreInterface, QueryFilter
from finance_tracker.validation import EntryValidator


logger = structlog.get_logger(__name__)

ZERO = Decimal("0")

DraftInput = Union[AllocationDraft, Mapping[str, Any]]


def _as_draft(data: DraftInput) -> AllocationDraft:
    if isinstance(data, AllocationDraft):
        return data
    return AllocationDraft.model_validate(dict(data))


class _Plan:
    """Writes and side effects collected for one ledger operation."""

    def __init__(self):
        self.writes: list[PlannedWrite] = []
        self.adjustments: list[TargetAdjustment] = []
        self.warnings: list[str] = []

    def set_balance(self, account: Account, after: Decimal) -> None:
        self.writes.append(PlannedWrite(
            action="update",
            collection=Collection.ACCOUNTS,
            document_id=account.id,
            fields={"balance": str(after), "updated_at": utc_now().isoformat()},
            description=f"set balance of account '{account.name}' to {after}",
        ))
        self.adjustments.append(TargetAdjustment(
            entity_type="account",
            entity_id=account.id,
            field="balance",
            before=account.balance,
            after=after,
        ))

    def set_debt(self, debt: Debt, after: Decimal, status: DebtStatus) -> None:
        self.writes.append(PlannedWrite(
            action="update",
            collection=Collection.DEBTS,
            document_id=debt.id,
            fields={
                "amount": str(after),
                "status": status.value,
                "updated_at": utc_now().isoformat(),
            },
            description=f"set amount of debt '{debt.name}' to {after}",
        ))
        self.adjustments.append(TargetAdjustment(
            entity_type="debt",
            entity_id=debt.id,
            field="amount",
            before=debt.amount,
            after=after,
            status_before=debt.status,
            status_after=status,
        ))


def paid_down(debt_amount: Decimal, payment: Decimal) -> tuple[Decimal, Decimal]:
    """(remaining amount, amount actually applied) after a clamped payment."""
    remaining = max(ZERO, debt_amount - payment)
    return remaining, debt_amount - remaining


class AllocationLedger:
    """
    The expense ledger of one user.

    All reads go to the store at call time, so the balances a mutation
    starts from are the latest persisted ones.
    """

    def __init__(
        self,
        store: DocumentStoreInterface,
        user_id: str,
        validator: Optional[EntryValidator] = None,
        audit: Optional[AuditLogger] = None,
        journal: Optional[LedgerJournal] = None,
    ):
        if not user_id:
            raise MissingUserError()
        self._store = store
        self._user_id = user_id
        self._validator = validator or EntryValidator()
        self._audit = audit or AuditLogger(user_id=user_id)
        self._journal = journal or LedgerJournal(store, user_id, self._audit)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def get(self, expense_id: str) -> Optional[Expense]:
        document = await self._store.get(self._user_id, Collection.EXPENSES, expense_id)
        return Expense.model_validate(document) if document else None

    async def require(self, expense_id: str) -> Expense:
        expense = await self.get(expense_id)
        if expense is None:
            raise EntryNotFoundError("expense", expense_id)
        return expense

    async def list_expenses(
        self,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        category: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[Expense]:
        """Entries in an optional date range and category, newest first."""
        filters = []
        if start_date:
            filters.append(QueryFilter("date", ">=", start_date.isoformat()))
        if end_date:
            filters.append(QueryFilter("date", "<=", end_date.isoformat()))
        if category:
            filters.append(QueryFilter("category", "==", category))
        documents = await self._store.list_documents(
            self._user_id,
            Collection.EXPENSES,
            filters=filters,
            order_by="date",
            descending=True,
            limit=limit,
        )
        return [Expense.model_validate(d) for d in documents]

    async def _account(self, account_id: Optional[str]) -> Optional[Account]:
        if not account_id:
            return None
        document = await self._store.get(self._user_id, Collection.ACCOUNTS, account_id)
        return Account.model_validate(document) if document else None

    async def _debt(self, debt_id: Optional[str]) -> Optional[Debt]:
        if not debt_id:
            return None
        document = await self._store.get(self._user_id, Collection.DEBTS, debt_id)
        return Debt.model_validate(document) if document else None

    async def resolve(self, category: str) -> AllocationTarget:
        """Resolve a category label against the current accounts and debts."""
        target = parse_category(category)
        if isinstance(target, AccountDeposit):
            documents = await self._store.list_documents(
                self._user_id, Collection.ACCOUNTS, order_by="created_at",
            )
            return resolve_target(category, [Account.model_validate(d) for d in documents], ())
        if isinstance(target, DebtPayment):
            documents = await self._store.list_documents(
                self._user_id, Collection.DEBTS, order_by="created_at",
            )
            return resolve_target(category, (), [Debt.model_validate(d) for d in documents])
        return target

    # ------------------------------------------------------------------
    # Effects on linked accounts and debts
    # ------------------------------------------------------------------

    async def _apply_effect(
        self,
        target: AllocationTarget,
        amount: Decimal,
        plan: _Plan,
    ) -> Decimal:
        """Plan the full effect of an entry on its target; returns the applied amount."""
        if isinstance(target, AccountDeposit):
            account = await self._account(target.account_id)
            if account is None:
                plan.warnings.append(unresolved_reason(target.model_copy(update={"account_id": None})))
                return ZERO
            plan.set_balance(account, account.balance + amount)
            return amount

        if isinstance(target, DebtPayment):
            debt = await self._debt(target.debt_id)
            if debt is None:
                plan.warnings.append(unresolved_reason(target.model_copy(update={"debt_id": None})))
                return ZERO
            remaining, applied = paid_down(debt.amount, amount)
            status = DebtStatus.PAID_OFF if remaining == ZERO else debt.status
            plan.set_debt(debt, remaining, status)
            return applied

        return ZERO

    async def _reverse_effect(self, expense: Expense, plan: _Plan) -> None:
        """Plan undoing what an entry applied to its target."""
        target = expense.target
        if not expense.is_mirrored or target.entity_id is None:
            return
        if expense.applied_amount == ZERO:
            return

        if isinstance(target, AccountDeposit):
            account = await self._account(target.account_id)
            if account is None:
                plan.warnings.append(
                    f"Account '{target.account_name}' no longer exists; nothing to reverse"
                )
                return
            plan.set_balance(account, account.balance - expense.applied_amount)
        else:
            debt = await self._debt(target.debt_id)
            if debt is None:
                plan.warnings.append(
                    f"Debt '{target.debt_name}' no longer exists; nothing to reverse"
                )
                return
            restored = debt.amount + expense.applied_amount
            status = DebtStatus.ACTIVE if restored > ZERO else debt.status
            plan.set_debt(debt, restored, status)

    async def _adjust_effect(
        self,
        expense: Expense,
        new_amount: Decimal,
        plan: _Plan,
    ) -> Decimal:
        """Same target: one write moving it by the difference. Returns the new applied amount."""
        target = expense.target
        if isinstance(target, AccountDeposit):
            account = await self._account(target.account_id)
            if account is None:
                return await self._apply_effect(target, new_amount, plan)
            plan.set_balance(account, account.balance - expense.applied_amount + new_amount)
            return new_amount

        debt = await self._debt(target.debt_id)
        if debt is None:
            return await self._apply_effect(target, new_amount, plan)
        remaining, applied = paid_down(debt.amount + expense.applied_amount, new_amount)
        if remaining == ZERO:
            status = DebtStatus.PAID_OFF
        elif debt.status == DebtStatus.PAID_OFF:
            status = DebtStatus.ACTIVE
        else:
            status = debt.status
        plan.set_debt(debt, remaining, status)
        return applied

    async def _audit_effects(
        self,
        plan: _Plan,
        category: str,
        correlation_id: UUID,
    ) -> None:
        for adjustment in plan.adjustments:
            await self._audit.log_target_adjusted(
                entity_type=adjustment.entity_type,
                entity_id=adjustment.entity_id,
                field=adjustment.field,
                before=str(adjustment.before),
                after=str(adjustment.after),
                correlation_id=correlation_id,
            )
        for warning in plan.warnings:
            await self._audit.log_target_unresolved(
                category=category,
                reason=warning,
                correlation_id=correlation_id,
            )

    async def _validate(
        self,
        draft: AllocationDraft,
        target: AllocationTarget,
        correlation_id: UUID,
    ) -> None:
        linked_debt = None
        if isinstance(target, DebtPayment):
            linked_debt = await self._debt(target.debt_id)
        result = self._validator.validate_allocation(draft, target, linked_debt)
        if not result.is_valid:
            await self._audit.log_validation_failed(
                subject=result.subject,
                issues=[i.model_dump() for i in result.issues],
                correlation_id=correlation_id,
            )
            raise ValidationFailedError(result)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    async def record_allocation(self, data: DraftInput) -> LedgerResult:
        """
        Record an expense or mirrored allocation.

        Writes: the entry, then the linked account or debt.

        Raises:
            ValidationFailedError: Input rejected, nothing written
            StorageError: The entry could not be written
            PartialWriteError: The entry was written, the linked update was not
        """
        correlation_id = create_correlation_id()
        draft = _as_draft(data)
        target = await self.resolve(draft.category or "")
        await self._validate(draft, target, correlation_id)

        plan = _Plan()
        applied = await self._apply_effect(target, draft.amount, plan)

        expense = Expense(
            id=uuid4().hex,
            name=draft.name,
            amount=draft.amount,
            category=draft.category,
            target=target,
            applied_amount=applied,
            date=draft.date or date.today(),
            description=draft.description,
        )
        writes = [PlannedWrite(
            action="insert",
            collection=Collection.EXPENSES,
            document_id=expense.id,
            fields=expense.model_dump(mode="json", exclude={"id"}),
            description=f"insert expense '{expense.name}'",
        )] + plan.writes

        await self._journal.run("record_allocation", expense.id, writes, correlation_id)

        await self._audit.log_allocation_recorded(
            expense_id=expense.id,
            name=expense.name,
            amount=str(expense.amount),
            category=expense.category,
            correlation_id=correlation_id,
        )
        await self._audit_effects(plan, expense.category, correlation_id)
        logger.debug(
            "allocation_recorded",
            expense_id=expense.id,
            adjustments=len(plan.adjustments),
        )

        return LedgerResult(
            expense=expense,
            adjustments=plan.adjustments,
            warnings=plan.warnings,
            correlation_id=correlation_id,
        )

    async def revise_allocation(self, expense_id: str, changes: DraftInput) -> LedgerResult:
        """
        Edit an entry as a whole.

        Same target: the target moves by (new amount - old amount).
        Changed target: the old target is reversed in full and the new one
        receives the full new amount.

        Writes: the entry, then the linked account(s) or debt(s).
        """
        correlation_id = create_correlation_id()
        original = await self.require(expense_id)
        update = _as_draft(changes)

        draft = AllocationDraft(
            name=update.name if update.name is not None else original.name,
            amount=update.amount if update.amount is not None else original.amount,
            category=update.category if update.category is not None else original.category,
            date=update.date or original.date,
            description=(
                update.description if update.description is not None else original.description
            ),
        )

        if draft.category == original.category and original.target.entity_id is not None:
            # Keep the stable id, unless the linked document is gone.
            target = original.target
            if isinstance(target, AccountDeposit) and await self._account(target.account_id) is None:
                target = await self.resolve(draft.category)
            elif isinstance(target, DebtPayment) and await self._debt(target.debt_id) is None:
                target = await self.resolve(draft.category)
        else:
            target = await self.resolve(draft.category or "")
        await self._validate(draft, target, correlation_id)

        plan = _Plan()
        if original.is_mirrored and same_target(original.target, target):
            applied = await self._adjust_effect(original, draft.amount, plan)
        else:
            await self._reverse_effect(original, plan)
            applied = await self._apply_effect(target, draft.amount, plan)

        revised = original.model_copy(update={
            "name": draft.name,
            "amount": draft.amount,
            "category": draft.category,
            "target": target,
            "applied_amount": applied,
            "date": draft.date,
            "description": draft.description,
            "updated_at": utc_now(),
        })
        writes = [PlannedWrite(
            action="update",
            collection=Collection.EXPENSES,
            document_id=expense_id,
            fields=revised.model_dump(mode="json", exclude={"id", "created_at"}),
            description=f"update expense '{revised.name}'",
        )] + plan.writes

        await self._journal.run("revise_allocation", expense_id, writes, correlation_id)

        await self._audit.log_allocation_revised(
            expense_id=expense_id,
            old_amount=str(original.amount),
            new_amount=str(revised.amount),
            old_category=original.category,
            new_category=revised.category,
            correlation_id=correlation_id,
        )
        await self._audit_effects(plan, revised.category, correlation_id)

        return LedgerResult(
            expense=revised,
            adjustments=plan.adjustments,
            warnings=plan.warnings,
            correlation_id=correlation_id,
        )

    async def retract_allocation(self, expense_id: str) -> LedgerResult:
        """
        Delete an entry and undo its effect on the linked account or debt.

        Writes: the linked account or debt, then the entry removal.
        """
        correlation_id = create_correlation_id()
        expense = await self.require(expense_id)

        plan = _Plan()
        await self._reverse_effect(expense, plan)
        writes = plan.writes + [PlannedWrite(
            action="delete",
            collection=Collection.EXPENSES,
            document_id=expense_id,
            description=f"delete expense '{expense.name}'",
        )]

        await self._journal.run("retract_allocation", expense_id, writes, correlation_id)

        await self._audit.log_allocation_retracted(
            expense_id=expense_id,
            amount=str(expense.amount),
            category=expense.category,
            correlation_id=correlation_id,
        )
        await self._audit_effects(plan, expense.category, correlation_id)

        return LedgerResult(
            expense=expense,
            adjustments=plan.adjustments,
            warnings=plan.warnings,
            correlation_id=correlation_id,
        )

    async def retract_category(self, category: str) -> list[LedgerResult]:
        """Retract every entry filed under a category label."""
        results = []
        for expense in await self.list_expenses(category=category):
            results.append(await self.retract_allocation(expense.id))
        return results

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    async def pending_adjustments(self) -> list[JournalRecord]:
        return await self._journal.pending()

    async def replay_adjustment(self, journal_id: str) -> JournalRecord:
        return await self._journal.replay(journal_id)

    async def discard_adjustment(self, journal_id: str) -> None:
        await self._journal.discard(journal_id)
