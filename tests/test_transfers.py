"""Tests for transfers between accounts."""

from datetime import date
from decimal import Decimal

import pytest

from finance_tracker.ledger import (
    EntryNotFoundError,
    PartialWriteError,
    ValidationFailedError,
)
from finance_tracker.models.finance import Collection


@pytest.fixture
def accounts(tracker):
    async def seed():
        checking = await tracker.accounts.add({"name": "Checking", "balance": "500"})
        savings = await tracker.accounts.add({"name": "Savings", "balance": "100"})
        return checking, savings
    return seed


async def balances(tracker, *accounts):
    return [(await tracker.accounts.require(a.id)).balance for a in accounts]


class TestRecordTransfer:
    """Tests for recording transfers."""

    @pytest.mark.asyncio
    async def test_transfer_moves_balances(self, tracker, accounts):
        """Test the source is debited and the destination credited."""
        checking, savings = await accounts()
        result = await tracker.transfers.record_transfer({
            "from_account": checking.id,
            "to_account": savings.id,
            "amount": "75.50",
            "date": date(2024, 3, 1),
        })

        assert await balances(tracker, checking, savings) == [Decimal("424.50"), Decimal("175.50")]
        assert len(result.adjustments) == 2
        stored = await tracker.transfers.get(result.transfer.id)
        assert stored.amount == Decimal("75.50")

    @pytest.mark.asyncio
    async def test_overdraft_is_a_warning(self, tracker, accounts):
        """Test moving more than the balance is allowed with a warning."""
        checking, savings = await accounts()
        result = await tracker.transfers.record_transfer({
            "from_account": savings.id,
            "to_account": checking.id,
            "amount": "150",
        })
        assert result.has_warnings
        assert await balances(tracker, savings) == [Decimal("-50")]

    @pytest.mark.asyncio
    async def test_same_account_rejected(self, tracker, accounts):
        """Test a transfer needs two different accounts."""
        checking, _ = await accounts()
        with pytest.raises(ValidationFailedError) as exc_info:
            await tracker.transfers.record_transfer({
                "from_account": checking.id,
                "to_account": checking.id,
                "amount": "10",
            })
        assert "Cannot transfer to the same account" in exc_info.value.result.error_messages
        assert await tracker.transfers.list_transfers() == []

    @pytest.mark.asyncio
    async def test_unknown_account_rejected(self, tracker, accounts):
        """Test both accounts must exist."""
        checking, _ = await accounts()
        with pytest.raises(ValidationFailedError):
            await tracker.transfers.record_transfer({
                "from_account": checking.id,
                "to_account": "missing",
                "amount": "10",
            })
        assert await balances(tracker, checking) == [Decimal("500")]

    @pytest.mark.asyncio
    async def test_partial_write_on_debit(self, tracker, store, accounts):
        """Test a failed balance write leaves a replayable journal record."""
        checking, savings = await accounts()
        store.inject_failure("update", Collection.ACCOUNTS)

        with pytest.raises(PartialWriteError) as exc_info:
            await tracker.transfers.record_transfer({
                "from_account": checking.id,
                "to_account": savings.id,
                "amount": "10",
            })
        # The injected failure hits the first update, which is the debit
        assert exc_info.value.completed_steps == ["insert transfer of 10"]
        assert await balances(tracker, checking, savings) == [Decimal("500"), Decimal("100")]

        await tracker.ledger.replay_adjustment(exc_info.value.adjustment_id)
        assert await balances(tracker, checking, savings) == [Decimal("490"), Decimal("110")]


class TestDeleteTransfer:
    """Tests for deleting transfers."""

    @pytest.mark.asyncio
    async def test_delete_restores_balances(self, tracker, accounts):
        """Test record then delete leaves both balances unchanged."""
        checking, savings = await accounts()
        result = await tracker.transfers.record_transfer({
            "from_account": checking.id,
            "to_account": savings.id,
            "amount": "200",
        })

        await tracker.transfers.delete_transfer(result.transfer.id)

        assert await balances(tracker, checking, savings) == [Decimal("500"), Decimal("100")]
        assert await tracker.transfers.get(result.transfer.id) is None

    @pytest.mark.asyncio
    async def test_delete_with_missing_account(self, tracker, accounts):
        """Test a deleted account is skipped with a warning."""
        checking, savings = await accounts()
        result = await tracker.transfers.record_transfer({
            "from_account": checking.id,
            "to_account": savings.id,
            "amount": "200",
        })
        await tracker.accounts.delete(savings.id)

        deleted = await tracker.transfers.delete_transfer(result.transfer.id)

        assert len(deleted.warnings) == 1
        assert await balances(tracker, checking) == [Decimal("500")]

    @pytest.mark.asyncio
    async def test_delete_unknown_transfer(self, tracker):
        """Test deleting a missing transfer raises."""
        with pytest.raises(EntryNotFoundError):
            await tracker.transfers.delete_transfer("missing")


class TestListTransfers:
    """Tests for transfer queries."""

    @pytest.mark.asyncio
    async def test_filters(self, tracker, accounts):
        """Test account and date filters, newest first."""
        checking, savings = await accounts()
        for day, source, destination in (
            (date(2024, 1, 10), checking, savings),
            (date(2024, 2, 10), savings, checking),
            (date(2024, 3, 10), checking, savings),
        ):
            await tracker.transfers.record_transfer({
                "from_account": source.id,
                "to_account": destination.id,
                "amount": "1",
                "date": day,
            })

        from_checking = await tracker.transfers.list_transfers(from_account=checking.id)
        assert [t.date for t in from_checking] == [date(2024, 3, 10), date(2024, 1, 10)]

        into_checking = await tracker.transfers.list_transfers(to_account=checking.id)
        assert [t.date for t in into_checking] == [date(2024, 2, 10)]

        since_feb = await tracker.transfers.list_transfers(start_date=date(2024, 2, 1))
        assert len(since_feb) == 2
