"""
Tests for the allocation ledger.

Every test runs the ledger against the in-memory store and reads balances
back from the store, never from the returned objects alone.
"""

from datetime import date
from decimal import Decimal

import pytest

from finance_tracker.ledger import (
    AllocationLedger,
    EntryNotFoundError,
    MissingUserError,
    PartialWriteError,
    ValidationFailedError,
)
from finance_tracker.models.finance import (
    AccountDeposit,
    Collection,
    DebtPayment,
    DebtStatus,
    PlainCategory,
)
from finance_tracker.models.audit import AuditEventType
from finance_tracker.services.storage import DocumentAuditStorage, StorageError


async def add_account(tracker, name="Checking", balance="500"):
    return await tracker.accounts.add({"name": name, "balance": balance})


async def add_debt(tracker, name="Car Loan", amount="1000"):
    return await tracker.debts.add({"name": name, "amount": amount})


async def balance_of(tracker, account_id):
    return (await tracker.accounts.require(account_id)).balance


class TestRecordAllocation:
    """Tests for recording entries."""

    @pytest.mark.asyncio
    async def test_plain_expense_has_no_side_effects(self, tracker):
        """Test a plain category records the entry only."""
        account = await add_account(tracker)
        result = await tracker.ledger.record_allocation(
            {"name": "Groceries", "amount": "40", "category": "Food"}
        )
        assert isinstance(result.expense.target, PlainCategory)
        assert result.adjustments == []
        assert result.warnings == []
        assert await balance_of(tracker, account.id) == Decimal("500")
        assert await tracker.ledger.get(result.expense.id) is not None

    @pytest.mark.asyncio
    async def test_account_deposit_round_trip(self, tracker):
        """Test Checking 500 -> deposit 100 -> 600 -> retract -> 500."""
        account = await add_account(tracker)
        result = await tracker.ledger.record_allocation(
            {"name": "Savings", "amount": "100", "category": "Account: Checking"}
        )
        assert isinstance(result.expense.target, AccountDeposit)
        assert result.expense.target.account_id == account.id
        assert await balance_of(tracker, account.id) == Decimal("600")

        await tracker.ledger.retract_allocation(result.expense.id)
        assert await balance_of(tracker, account.id) == Decimal("500")
        assert await tracker.ledger.get(result.expense.id) is None

    @pytest.mark.asyncio
    async def test_many_record_retract_pairs_leave_balance(self, tracker):
        """Test any sequence of record/retract pairs nets to zero."""
        account = await add_account(tracker, balance="123.45")
        ids = []
        for amount in ("10", "0.55", "99.99", "1000"):
            result = await tracker.ledger.record_allocation(
                {"name": "Deposit", "amount": amount, "category": "Account: Checking"}
            )
            ids.append(result.expense.id)
        for expense_id in reversed(ids):
            await tracker.ledger.retract_allocation(expense_id)
        assert await balance_of(tracker, account.id) == Decimal("123.45")

    @pytest.mark.asyncio
    async def test_debt_paid_off_and_restored(self, tracker):
        """Test Car Loan 1000 -> pay 1000 -> Paid Off -> retract -> Active."""
        debt = await add_debt(tracker)
        result = await tracker.ledger.record_allocation(
            {"name": "Payoff", "amount": "1000", "category": "Debt: Car Loan"}
        )
        paid = await tracker.debts.require(debt.id)
        assert paid.amount == Decimal("0")
        assert paid.status == DebtStatus.PAID_OFF

        await tracker.ledger.retract_allocation(result.expense.id)
        restored = await tracker.debts.require(debt.id)
        assert restored.amount == Decimal("1000")
        assert restored.status == DebtStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_debt_payment_clamped_at_zero(self, tracker):
        """Test payments never push a debt below zero."""
        debt = await add_debt(tracker, amount="300")
        await tracker.ledger.record_allocation(
            {"name": "Payment 1", "amount": "100", "category": "Debt: Car Loan"}
        )
        result = await tracker.ledger.record_allocation(
            {"name": "Payment 2", "amount": "250", "category": "Debt: Car Loan"}
        )
        current = await tracker.debts.require(debt.id)
        assert current.amount == Decimal("0")
        assert current.status == DebtStatus.PAID_OFF
        assert result.expense.applied_amount == Decimal("200")

        await tracker.ledger.retract_allocation(result.expense.id)
        assert (await tracker.debts.require(debt.id)).amount == Decimal("200")

    @pytest.mark.asyncio
    async def test_unresolved_target_is_a_warning(self, tracker):
        """Test a missing account records the entry without changes."""
        account = await add_account(tracker)
        result = await tracker.ledger.record_allocation(
            {"name": "Deposit", "amount": "100", "category": "Account: Ghost"}
        )
        assert result.has_warnings
        assert "Ghost" in result.warnings[0]
        assert result.expense.target.account_id is None
        assert result.expense.applied_amount == Decimal("0")
        assert await tracker.ledger.get(result.expense.id) is not None
        assert await balance_of(tracker, account.id) == Decimal("500")

    @pytest.mark.asyncio
    async def test_validation_rejects_before_write(self, tracker, store, user_id):
        """Test invalid input writes nothing."""
        with pytest.raises(ValidationFailedError) as exc_info:
            await tracker.ledger.record_allocation(
                {"name": "", "amount": "0", "category": "Food"}
            )
        fields = {issue.field for issue in exc_info.value.result.issues}
        assert {"name", "amount"} <= fields
        assert await store.list_documents(user_id, Collection.EXPENSES) == []

    def test_user_id_required(self, store):
        """Test the ledger refuses to run without a user."""
        with pytest.raises(MissingUserError):
            AllocationLedger(store, "")


class TestReviseAllocation:
    """Tests for editing entries."""

    @pytest.mark.asyncio
    async def test_plain_entry_amount_and_name(self, tracker):
        """Test editing an ordinary expense touches only the entry."""
        account = await add_account(tracker)
        result = await tracker.ledger.record_allocation(
            {"name": "Groceries", "amount": "40", "category": "Food"}
        )

        revised = await tracker.ledger.revise_allocation(result.expense.id, {"amount": "55"})
        assert revised.expense.amount == Decimal("55")
        assert revised.adjustments == []

        renamed = await tracker.ledger.revise_allocation(result.expense.id, {"name": "Market"})
        assert renamed.expense.name == "Market"

        stored = await tracker.ledger.require(result.expense.id)
        assert stored.name == "Market"
        assert stored.amount == Decimal("55")
        assert stored.category == "Food"
        assert isinstance(stored.target, PlainCategory)
        assert await balance_of(tracker, account.id) == Decimal("500")

    @pytest.mark.asyncio
    async def test_same_target_applies_difference(self, tracker):
        """Test revising the amount moves the balance by new - old."""
        account = await add_account(tracker)
        result = await tracker.ledger.record_allocation(
            {"name": "Deposit", "amount": "100", "category": "Account: Checking"}
        )
        before = await balance_of(tracker, account.id)

        revised = await tracker.ledger.revise_allocation(result.expense.id, {"amount": "150"})

        assert await balance_of(tracker, account.id) - before == Decimal("50")
        assert revised.expense.amount == Decimal("150")
        assert len(revised.adjustments) == 1
        stored = await tracker.ledger.require(result.expense.id)
        assert stored.amount == Decimal("150")
        assert stored.applied_amount == Decimal("150")

    @pytest.mark.asyncio
    async def test_target_change_reverses_old_and_applies_new(self, tracker):
        """Test moving an entry from one account to another."""
        checking = await add_account(tracker)
        savings = await add_account(tracker, name="Savings", balance="0")
        result = await tracker.ledger.record_allocation(
            {"name": "Deposit", "amount": "100", "category": "Account: Checking"}
        )

        revised = await tracker.ledger.revise_allocation(
            result.expense.id, {"category": "Account: Savings", "amount": "80"}
        )

        assert await balance_of(tracker, checking.id) == Decimal("500")
        assert await balance_of(tracker, savings.id) == Decimal("80")
        assert revised.expense.target.account_id == savings.id

    @pytest.mark.asyncio
    async def test_account_to_debt_change(self, tracker):
        """Test moving an entry from an account to a debt."""
        account = await add_account(tracker)
        debt = await add_debt(tracker)
        result = await tracker.ledger.record_allocation(
            {"name": "Transfer", "amount": "100", "category": "Account: Checking"}
        )

        revised = await tracker.ledger.revise_allocation(
            result.expense.id, {"category": "Debt: Car Loan"}
        )

        assert await balance_of(tracker, account.id) == Decimal("500")
        assert (await tracker.debts.require(debt.id)).amount == Decimal("900")
        assert isinstance(revised.expense.target, DebtPayment)

    @pytest.mark.asyncio
    async def test_mirrored_to_plain_reverses(self, tracker):
        """Test moving an entry to a plain category undoes its effect."""
        account = await add_account(tracker)
        result = await tracker.ledger.record_allocation(
            {"name": "Deposit", "amount": "100", "category": "Account: Checking"}
        )
        await tracker.ledger.revise_allocation(result.expense.id, {"category": "Food"})

        assert await balance_of(tracker, account.id) == Decimal("500")
        stored = await tracker.ledger.require(result.expense.id)
        assert stored.applied_amount == Decimal("0")

    @pytest.mark.asyncio
    async def test_debt_revise_reactivates(self, tracker):
        """Test lowering a payoff payment makes the debt Active again."""
        debt = await add_debt(tracker)
        result = await tracker.ledger.record_allocation(
            {"name": "Payoff", "amount": "1000", "category": "Debt: Car Loan"}
        )
        await tracker.ledger.revise_allocation(result.expense.id, {"amount": "400"})

        current = await tracker.debts.require(debt.id)
        assert current.amount == Decimal("600")
        assert current.status == DebtStatus.ACTIVE

    @pytest.mark.asyncio
    async def test_unresolved_entry_resolves_on_revise(self, tracker):
        """Test an entry recorded before its account existed resolves later."""
        result = await tracker.ledger.record_allocation(
            {"name": "Deposit", "amount": "100", "category": "Account: Later"}
        )
        account = await add_account(tracker, name="Later", balance="0")

        await tracker.ledger.revise_allocation(result.expense.id, {"amount": "120"})

        assert await balance_of(tracker, account.id) == Decimal("120")

    @pytest.mark.asyncio
    async def test_revise_unknown_entry(self, tracker):
        """Test revising a missing entry raises."""
        with pytest.raises(EntryNotFoundError):
            await tracker.ledger.revise_allocation("missing", {"amount": "1"})


class TestRetractAllocation:
    """Tests for deleting entries."""

    @pytest.mark.asyncio
    async def test_retract_unknown_entry(self, tracker):
        """Test retracting a missing entry raises."""
        with pytest.raises(EntryNotFoundError):
            await tracker.ledger.retract_allocation("missing")

    @pytest.mark.asyncio
    async def test_retract_after_account_deleted(self, tracker):
        """Test a deleted target is a warning, and the entry still goes."""
        account = await add_account(tracker)
        result = await tracker.ledger.record_allocation(
            {"name": "Deposit", "amount": "100", "category": "Account: Checking"}
        )
        await tracker.accounts.delete(account.id)

        retracted = await tracker.ledger.retract_allocation(result.expense.id)

        assert retracted.has_warnings
        assert await tracker.ledger.get(result.expense.id) is None

    @pytest.mark.asyncio
    async def test_retract_category(self, tracker):
        """Test every entry of a category is retracted."""
        await tracker.ledger.record_allocation({"name": "A", "amount": "1", "category": "Food"})
        await tracker.ledger.record_allocation({"name": "B", "amount": "2", "category": "Food"})
        await tracker.ledger.record_allocation({"name": "C", "amount": "3", "category": "Bills"})

        results = await tracker.ledger.retract_category("Food")

        assert len(results) == 2
        remaining = await tracker.ledger.list_expenses()
        assert [e.name for e in remaining] == ["C"]


class TestListExpenses:
    """Tests for expense queries."""

    @pytest.mark.asyncio
    async def test_filters_and_order(self, tracker):
        """Test date and category filters, newest first."""
        for name, day, category in (
            ("Jan", date(2024, 1, 15), "Food"),
            ("Feb", date(2024, 2, 15), "Food"),
            ("Mar", date(2024, 3, 15), "Food"),
            ("Bill", date(2024, 2, 20), "Bills"),
        ):
            await tracker.ledger.record_allocation(
                {"name": name, "amount": "10", "category": category, "date": day}
            )

        everything = await tracker.ledger.list_expenses()
        assert [e.name for e in everything] == ["Mar", "Bill", "Feb", "Jan"]

        food_feb_on = await tracker.ledger.list_expenses(
            start_date=date(2024, 2, 1), category="Food",
        )
        assert [e.name for e in food_feb_on] == ["Mar", "Feb"]

        until_feb = await tracker.ledger.list_expenses(end_date=date(2024, 2, 29))
        assert [e.name for e in until_feb] == ["Bill", "Feb", "Jan"]


class TestPartialWrites:
    """Tests for the journal when the second write fails."""

    @pytest.mark.asyncio
    async def test_linked_update_failure_is_surfaced(self, tracker, store):
        """Test the entry stays, the error carries the journal id."""
        account = await add_account(tracker)
        store.inject_failure("update", Collection.ACCOUNTS)

        with pytest.raises(PartialWriteError) as exc_info:
            await tracker.ledger.record_allocation(
                {"name": "Deposit", "amount": "100", "category": "Account: Checking"}
            )

        error = exc_info.value
        assert len(error.completed_steps) == 1
        assert "Checking" in error.failed_step
        assert isinstance(error.cause, StorageError)
        assert await balance_of(tracker, account.id) == Decimal("500")
        assert len(await tracker.ledger.list_expenses()) == 1

        pending = await tracker.ledger.pending_adjustments()
        assert [p.id for p in pending] == [error.adjustment_id]
        assert pending[0].completed_steps == 1
        assert pending[0].failed_step == 1

    @pytest.mark.asyncio
    async def test_replay_completes_the_plan(self, tracker, store):
        """Test replay applies the missing balance write once."""
        account = await add_account(tracker)
        store.inject_failure("update", Collection.ACCOUNTS)
        with pytest.raises(PartialWriteError) as exc_info:
            await tracker.ledger.record_allocation(
                {"name": "Deposit", "amount": "100", "category": "Account: Checking"}
            )

        await tracker.ledger.replay_adjustment(exc_info.value.adjustment_id)

        assert await balance_of(tracker, account.id) == Decimal("600")
        assert await tracker.ledger.pending_adjustments() == []

    @pytest.mark.asyncio
    async def test_retract_partial_then_replay(self, tracker, store):
        """Test a failed entry delete after the reversal is replayable."""
        account = await add_account(tracker)
        result = await tracker.ledger.record_allocation(
            {"name": "Deposit", "amount": "100", "category": "Account: Checking"}
        )
        store.inject_failure("delete", Collection.EXPENSES)

        with pytest.raises(PartialWriteError) as exc_info:
            await tracker.ledger.retract_allocation(result.expense.id)
        assert await balance_of(tracker, account.id) == Decimal("500")
        assert await tracker.ledger.get(result.expense.id) is not None

        await tracker.ledger.replay_adjustment(exc_info.value.adjustment_id)
        assert await tracker.ledger.get(result.expense.id) is None
        assert await balance_of(tracker, account.id) == Decimal("500")

    @pytest.mark.asyncio
    async def test_discard_forgets_the_plan(self, tracker, store):
        """Test discard removes the journal record without writing."""
        account = await add_account(tracker)
        store.inject_failure("update", Collection.ACCOUNTS)
        with pytest.raises(PartialWriteError) as exc_info:
            await tracker.ledger.record_allocation(
                {"name": "Deposit", "amount": "100", "category": "Account: Checking"}
            )

        await tracker.ledger.discard_adjustment(exc_info.value.adjustment_id)

        assert await tracker.ledger.pending_adjustments() == []
        assert await balance_of(tracker, account.id) == Decimal("500")

    @pytest.mark.asyncio
    async def test_first_write_failure_leaves_nothing(self, tracker, store):
        """Test a failed entry insert raises the storage error as is."""
        account = await add_account(tracker)
        store.inject_failure("insert", Collection.EXPENSES)

        with pytest.raises(StorageError) as exc_info:
            await tracker.ledger.record_allocation(
                {"name": "Deposit", "amount": "100", "category": "Account: Checking"}
            )

        assert not isinstance(exc_info.value, PartialWriteError)
        assert await tracker.ledger.pending_adjustments() == []
        assert await balance_of(tracker, account.id) == Decimal("500")


class TestLedgerAudit:
    """Tests for audit events written by the ledger."""

    @pytest.mark.asyncio
    async def test_one_correlation_id_per_operation(self, tracker, store, user_id):
        """Test the entry and its balance change share a correlation id."""
        await add_account(tracker)
        result = await tracker.ledger.record_allocation(
            {"name": "Deposit", "amount": "100", "category": "Account: Checking"}
        )

        audit = DocumentAuditStorage(store, user_id)
        events = await audit.get_events_by_correlation_id(str(result.correlation_id))

        types = {e.event_type for e in events}
        assert AuditEventType.ALLOCATION_RECORDED in types
        assert AuditEventType.TARGET_ADJUSTED in types
