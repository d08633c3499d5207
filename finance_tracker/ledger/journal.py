"""
Ledger Journal

The store only guarantees single-document writes, but recording a mirrored
allocation touches two documents (the entry and the linked account or
debt). The journal makes that gap recoverable:

1. Before the first write, the full plan is saved as a JournalRecord.
2. Writes run back-to-back, in plan order.
3. On success the record is removed.
4. On failure the record keeps how far it got, and PartialWriteError is
   raised. The writes that succeeded stay in place (no rollback).

Planned updates carry absolute field values (the balance to set, not the
delta to add), so replaying the remainder of a plan is idempotent.
Reconciliation is a user action: replay() or discard().
"""

from typing import Optional
from uuid import UUID

import structlog

from finance_tracker.audit import AuditLogger
from finance_tracker.ledger.errors import EntryNotFoundError, PartialWriteError
from finance_tracker.models.finance import Collection, JournalRecord, PlannedWrite
from finance_tracker.services.storage import (
    DocumentStoreInterface,
    DuplicateError,
    NotFoundError,
)


logger = structlog.get_logger(__name__)


def describe(write: PlannedWrite) -> str:
    return write.description or f"{write.action} {write.collection.value}/{write.document_id}"


class LedgerJournal:
    """Runs multi-write plans and keeps the unfinished ones."""

    def __init__(
        self,
        store: DocumentStoreInterface,
        user_id: str,
        audit: Optional[AuditLogger] = None,
    ):
        self._store = store
        self._user_id = user_id
        self._audit = audit or AuditLogger(user_id=user_id)

    async def _apply(self, write: PlannedWrite, replaying: bool = False) -> None:
        """Issue one planned write. Replays tolerate work already done."""
        if write.action == "insert":
            try:
                await self._store.insert(
                    self._user_id, write.collection, write.fields,
                    document_id=write.document_id,
                )
            except DuplicateError:
                if not replaying:
                    raise
                await self._store.update(
                    self._user_id, write.collection, write.document_id, write.fields,
                )
        elif write.action == "update":
            await self._store.update(
                self._user_id, write.collection, write.document_id, write.fields,
            )
        else:
            await self._store.delete(self._user_id, write.collection, write.document_id)

    async def _save(self, record: JournalRecord) -> None:
        await self._store.update(
            self._user_id,
            Collection.LEDGER_JOURNAL,
            record.id,
            record.model_dump(mode="json", exclude={"id"}),
        )

    async def _close(self, record: JournalRecord) -> None:
        # The writes are done; a leftover record only shows up as pending.
        try:
            await self._store.delete(self._user_id, Collection.LEDGER_JOURNAL, record.id)
        except Exception as e:
            logger.warning("journal_close_failed", journal_id=record.id, error=str(e))

    async def _execute(
        self,
        record: JournalRecord,
        correlation_id: Optional[UUID],
        replaying: bool = False,
    ) -> None:
        start = record.completed_steps
        for index in range(start, len(record.writes)):
            write = record.writes[index]
            try:
                await self._apply(write, replaying=replaying)
            except Exception as e:
                await self._fail(record, index, e, correlation_id, replaying)
            record.completed_steps = index + 1
        await self._close(record)

    async def _fail(
        self,
        record: JournalRecord,
        index: int,
        error: Exception,
        correlation_id: Optional[UUID],
        replaying: bool = False,
    ) -> None:
        completed = [describe(w) for w in record.writes[:index]]
        failed = describe(record.writes[index])

        if index == 0 and not replaying:
            # Nothing was written: drop the plan and surface the write error.
            await self._close(record)
            raise error

        record.failed_step = index
        record.error_message = str(error)
        try:
            await self._save(record)
        except Exception as save_error:
            logger.error(
                "journal_progress_not_saved",
                journal_id=record.id,
                error=str(save_error),
            )

        await self._audit.log_partial_write(
            operation=record.operation,
            journal_id=record.id,
            completed_steps=completed,
            failed_step=failed,
            error_message=str(error),
            correlation_id=correlation_id,
        )
        raise PartialWriteError(
            operation=record.operation,
            completed_steps=completed,
            failed_step=failed,
            adjustment_id=record.id,
            cause=error,
        ) from error

    async def run(
        self,
        operation: str,
        subject_id: str,
        writes: list[PlannedWrite],
        correlation_id: Optional[UUID] = None,
    ) -> None:
        """
        Execute a write plan.

        A single write needs no journal and its failure propagates as is.

        Raises:
            StorageError: If the journal or the first write could not be saved
            PartialWriteError: If a later write failed
        """
        if not writes:
            return
        if len(writes) == 1:
            await self._apply(writes[0])
            return

        record = JournalRecord(
            operation=operation,
            subject_id=subject_id,
            writes=writes,
            correlation_id=str(correlation_id) if correlation_id else None,
        )
        record.id = await self._store.insert(
            self._user_id,
            Collection.LEDGER_JOURNAL,
            record.model_dump(mode="json", exclude={"id"}),
        )
        await self._execute(record, correlation_id)

    async def pending(self) -> list[JournalRecord]:
        """Plans that stopped halfway, oldest first."""
        documents = await self._store.list_documents(
            self._user_id,
            Collection.LEDGER_JOURNAL,
            order_by="created_at",
        )
        return [JournalRecord.model_validate(d) for d in documents]

    async def get(self, journal_id: str) -> JournalRecord:
        document = await self._store.get(self._user_id, Collection.LEDGER_JOURNAL, journal_id)
        if document is None:
            raise EntryNotFoundError("journal record", journal_id)
        return JournalRecord.model_validate(document)

    async def replay(self, journal_id: str) -> JournalRecord:
        """
        Re-issue the writes a plan did not complete.

        Updates of documents deleted since are skipped.
        """
        record = await self.get(journal_id)
        correlation_id = UUID(record.correlation_id) if record.correlation_id else None

        remaining = []
        for write in record.remaining_writes:
            if write.action == "update":
                existing = await self._store.get(
                    self._user_id, write.collection, write.document_id,
                )
                if existing is None:
                    logger.warning(
                        "journal_write_skipped",
                        journal_id=journal_id,
                        step=describe(write),
                    )
                    continue
            remaining.append(write)

        record.writes = record.writes[:record.completed_steps] + remaining
        record.failed_step = None
        record.error_message = None
        await self._execute(record, correlation_id, replaying=True)

        await self._audit.log_journal_resolved(
            journal_id=journal_id,
            replayed=True,
            correlation_id=correlation_id,
        )
        return record

    async def discard(self, journal_id: str) -> None:
        """Forget a plan; the user reconciled it by hand."""
        record = await self.get(journal_id)
        deleted = await self._store.delete(self._user_id, Collection.LEDGER_JOURNAL, journal_id)
        if not deleted:
            raise NotFoundError(f"Journal record not found: {journal_id}")
        await self._audit.log_journal_resolved(
            journal_id=journal_id,
            replayed=False,
            correlation_id=UUID(record.correlation_id) if record.correlation_id else None,
        )
