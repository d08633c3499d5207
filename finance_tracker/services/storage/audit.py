"""
Audit Log Storage

Persists audit events into the user's auditLog collection of whichever
document store backs the tracker. Append-only: nothing here updates or
deletes an event.
"""

from typing import Optional

from finance_tracker.models.audit import AuditEvent
from finance_tracker.models.finance import Collection
from finance_tracker.services.storage.interface import (
    AuditStorageInterface,
    DocumentStoreInterface,
    QueryFilter,
    StorageError,
)


class DocumentAuditStorage(AuditStorageInterface):
    """Audit storage over a per-user document store."""

    def __init__(self, store: DocumentStoreInterface, user_id: str):
        if not user_id:
            raise StorageError("A user id is required for audit storage")
        self._store = store
        self._user_id = user_id

    async def append_event(self, event: AuditEvent) -> bool:
        document = event.model_dump(mode="json")
        document.pop("event_id", None)
        await self._store.insert(
            self._user_id,
            Collection.AUDIT_LOG,
            document,
            document_id=str(event.event_id),
        )
        return True

    async def _query(
        self,
        filters: Optional[list[QueryFilter]] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[AuditEvent]:
        documents = await self._store.list_documents(
            self._user_id,
            Collection.AUDIT_LOG,
            filters=filters,
            order_by="timestamp",
            descending=descending,
            limit=limit,
        )
        return [self._document_to_event(d) for d in documents]

    @staticmethod
    def _document_to_event(document: dict) -> AuditEvent:
        data = dict(document)
        data["event_id"] = data.pop("id")
        return AuditEvent.model_validate(data)

    async def get_events_by_correlation_id(
        self,
        correlation_id: str,
    ) -> list[AuditEvent]:
        return await self._query([QueryFilter("correlation_id", "==", str(correlation_id))])

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        return await self._query([
            QueryFilter("entity_type", "==", entity_type),
            QueryFilter("entity_id", "==", entity_id),
        ])

    async def get_recent_events(self, limit: int = 100) -> list[AuditEvent]:
        return await self._query(descending=True, limit=limit)
