"""
Transfers

A transfer moves an amount from one account to another. Recording it
debits the source and credits the destination; deleting it does the
reverse. Like mirrored allocations, the three writes run back-to-back
through the ledger journal.
"""

from collections.abc import Mapping
from datetime import date
from decimal import Decimal
from typing import Any, Optional, Union
from uuid import uuid4

from finance_tracker.audit import AuditLogger, create_correlation_id
from finance_tracker.ledger.errors import (
    EntryNotFoundError,
    MissingUserError,
    ValidationFailedError,
)
from finance_tracker.ledger.journal import LedgerJournal
from finance_tracker.models.finance import (
    Account,
    Collection,
    LedgerResult,
    PlannedWrite,
    TargetAdjustment,
    Transfer,
    TransferDraft,
    utc_now,
)
from finance_tracker.services.storage import DocumentStoreInterface, QueryFilter
from finance_tracker.validation import EntryValidator


TransferInput = Union[TransferDraft, Mapping[str, Any]]


def _move(account: Account, delta: Decimal) -> tuple[PlannedWrite, TargetAdjustment]:
    after = account.balance + delta
    write = PlannedWrite(
        action="update",
        collection=Collection.ACCOUNTS,
        document_id=account.id,
        fields={"balance": str(after), "updated_at": utc_now().isoformat()},
        description=f"set balance of account '{account.name}' to {after}",
    )
    adjustment = TargetAdjustment(
        entity_type="account",
        entity_id=account.id,
        field="balance",
        before=account.balance,
        after=after,
    )
    return write, adjustment


class TransferService:
    """Records, deletes and lists one user's transfers."""

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

    async def _accounts(self) -> dict[str, Account]:
        documents = await self._store.list_documents(self._user_id, Collection.ACCOUNTS)
        return {d["id"]: Account.model_validate(d) for d in documents}

    async def get(self, transfer_id: str) -> Optional[Transfer]:
        document = await self._store.get(self._user_id, Collection.TRANSFERS, transfer_id)
        return Transfer.model_validate(document) if document else None

    async def list_transfers(
        self,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        from_account: Optional[str] = None,
        to_account: Optional[str] = None,
    ) -> list[Transfer]:
        """Transfers matching the filters, newest first."""
        filters = []
        if start_date:
            filters.append(QueryFilter("date", ">=", start_date.isoformat()))
        if end_date:
            filters.append(QueryFilter("date", "<=", end_date.isoformat()))
        if from_account:
            filters.append(QueryFilter("from_account", "==", from_account))
        if to_account:
            filters.append(QueryFilter("to_account", "==", to_account))
        documents = await self._store.list_documents(
            self._user_id,
            Collection.TRANSFERS,
            filters=filters,
            order_by="date",
            descending=True,
        )
        return [Transfer.model_validate(d) for d in documents]

    async def record_transfer(self, data: TransferInput) -> LedgerResult:
        """
        Move money between two existing accounts.

        Writes: the transfer, the source balance, the destination balance.

        Raises:
            ValidationFailedError: Unknown or identical accounts, amount <= 0
            PartialWriteError: Some but not all of the writes succeeded
        """
        correlation_id = create_correlation_id()
        draft = data if isinstance(data, TransferDraft) else TransferDraft.model_validate(dict(data))
        accounts = await self._accounts()

        result = self._validator.validate_transfer(draft, accounts.values())
        if not result.is_valid:
            await self._audit.log_validation_failed(
                subject=result.subject,
                issues=[i.model_dump() for i in result.issues],
                correlation_id=correlation_id,
            )
            raise ValidationFailedError(result)

        transfer = Transfer(
            id=uuid4().hex,
            from_account=draft.from_account,
            to_account=draft.to_account,
            amount=draft.amount,
            date=draft.date or date.today(),
            description=draft.description,
        )
        debit, debit_adjustment = _move(accounts[transfer.from_account], -transfer.amount)
        credit, credit_adjustment = _move(accounts[transfer.to_account], transfer.amount)
        writes = [
            PlannedWrite(
                action="insert",
                collection=Collection.TRANSFERS,
                document_id=transfer.id,
                fields=transfer.model_dump(mode="json", exclude={"id"}),
                description=f"insert transfer of {transfer.amount}",
            ),
            debit,
            credit,
        ]

        await self._journal.run("record_transfer", transfer.id, writes, correlation_id)

        await self._audit.log_transfer_recorded(
            transfer_id=transfer.id,
            from_account=transfer.from_account,
            to_account=transfer.to_account,
            amount=str(transfer.amount),
            correlation_id=correlation_id,
        )
        return LedgerResult(
            transfer=transfer,
            adjustments=[debit_adjustment, credit_adjustment],
            warnings=result.warnings,
            correlation_id=correlation_id,
        )

    async def delete_transfer(self, transfer_id: str) -> LedgerResult:
        """
        Remove a transfer and move its amount back.

        An account deleted since the transfer is skipped with a warning.
        """
        correlation_id = create_correlation_id()
        transfer = await self.get(transfer_id)
        if transfer is None:
            raise EntryNotFoundError("transfer", transfer_id)
        accounts = await self._accounts()

        writes = []
        adjustments = []
        warnings = []
        legs = (
            (transfer.from_account, transfer.amount),
            (transfer.to_account, -transfer.amount),
        )
        for account_id, delta in legs:
            account = accounts.get(account_id)
            if account is None:
                warnings.append(f"Account {account_id} no longer exists; its balance was not restored")
                continue
            write, adjustment = _move(account, delta)
            writes.append(write)
            adjustments.append(adjustment)
        writes.append(PlannedWrite(
            action="delete",
            collection=Collection.TRANSFERS,
            document_id=transfer_id,
            description=f"delete transfer of {transfer.amount}",
        ))

        await self._journal.run("delete_transfer", transfer_id, writes, correlation_id)

        await self._audit.log_transfer_deleted(
            transfer_id=transfer_id,
            amount=str(transfer.amount),
            correlation_id=correlation_id,
        )
        return LedgerResult(
            transfer=transfer,
            adjustments=adjustments,
            warnings=warnings,
            correlation_id=correlation_id,
        )
