"""
In-Memory Document Store

Implements the document store contract in process memory. Used for tests,
for local development, and as the default backend when no hosted store is
configured.

Documents are deep-copied on the way in and out so callers can never mutate
stored state by accident, mirroring the copy semantics of a real backend.
"""

import copy
from typing import Optional
from uuid import uuid4

import structlog

from finance_tracker.models.finance import Collection
from finance_tracker.services.storage.interface import (
    Document,
    DocumentStoreInterface,
    DuplicateError,
    NotFoundError,
    QueryFilter,
    StorageError,
    Subscription,
    SubscriptionCallback,
    SubscriptionHub,
    apply_query,
    collection_name,
)


logger = structlog.get_logger(__name__)


class InMemoryDocumentStore(DocumentStoreInterface):
    """
    Dict-backed implementation of the document store.

    Failures can be injected per (action, collection) to exercise the
    partial-write handling of multi-write operations.
    """

    def __init__(self, hub: Optional[SubscriptionHub] = None):
        self._data: dict[tuple[str, str], dict[str, Document]] = {}
        self._hub = hub or SubscriptionHub()
        self._failures: dict[tuple[str, str], int] = {}

    def inject_failure(
        self,
        action: str,
        collection: Collection | str,
        times: int = 1,
    ) -> None:
        """Make the next `times` calls of action on collection raise StorageError."""
        key = (action, collection_name(collection))
        self._failures[key] = self._failures.get(key, 0) + times

    def _maybe_fail(self, action: str, collection: str) -> None:
        key = (action, collection)
        remaining = self._failures.get(key, 0)
        if remaining > 0:
            self._failures[key] = remaining - 1
            raise StorageError(f"Injected failure: {action} on {collection}")

    def _bucket(self, user_id: str, collection: str) -> dict[str, Document]:
        if not user_id:
            raise StorageError("A user id is required for every storage operation")
        return self._data.setdefault((user_id, collection), {})

    def _publish(self, user_id: str, collection: str) -> None:
        if self._hub.has_subscribers(user_id, collection):
            documents = [copy.deepcopy(d) for d in self._bucket(user_id, collection).values()]
            self._hub.publish(user_id, collection, apply_query(documents))

    async def insert(
        self,
        user_id: str,
        collection: Collection | str,
        document: Document,
        document_id: Optional[str] = None,
    ) -> str:
        name = collection_name(collection)
        bucket = self._bucket(user_id, name)
        self._maybe_fail("insert", name)

        doc_id = document_id or uuid4().hex
        if doc_id in bucket:
            raise DuplicateError(f"Document already exists: {name}/{doc_id}")

        stored = copy.deepcopy(document)
        stored["id"] = doc_id
        bucket[doc_id] = stored
        self._publish(user_id, name)
        return doc_id

    async def get(
        self,
        user_id: str,
        collection: Collection | str,
        document_id: str,
    ) -> Optional[Document]:
        name = collection_name(collection)
        bucket = self._bucket(user_id, name)
        self._maybe_fail("get", name)
        document = bucket.get(document_id)
        return copy.deepcopy(document) if document is not None else None

    async def update(
        self,
        user_id: str,
        collection: Collection | str,
        document_id: str,
        fields: Document,
    ) -> None:
        name = collection_name(collection)
        bucket = self._bucket(user_id, name)
        self._maybe_fail("update", name)

        if document_id not in bucket:
            raise NotFoundError(f"Document not found: {name}/{document_id}")

        merged = dict(bucket[document_id])
        merged.update(copy.deepcopy(fields))
        merged["id"] = document_id
        bucket[document_id] = merged
        self._publish(user_id, name)

    async def delete(
        self,
        user_id: str,
        collection: Collection | str,
        document_id: str,
    ) -> bool:
        name = collection_name(collection)
        bucket = self._bucket(user_id, name)
        self._maybe_fail("delete", name)

        if bucket.pop(document_id, None) is None:
            return False
        self._publish(user_id, name)
        return True

    async def list_documents(
        self,
        user_id: str,
        collection: Collection | str,
        filters: Optional[list[QueryFilter]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[Document]:
        name = collection_name(collection)
        bucket = self._bucket(user_id, name)
        self._maybe_fail("list", name)
        documents = [copy.deepcopy(d) for d in bucket.values()]
        return apply_query(documents, filters, order_by, descending, limit)

    def subscribe(
        self,
        user_id: str,
        collection: Collection | str,
        callback: SubscriptionCallback,
    ) -> Subscription:
        name = collection_name(collection)
        bucket = self._bucket(user_id, name)
        subscription = self._hub.add(user_id, name, callback)
        logger.debug("collection_subscribed", collection=name)
        callback(apply_query([copy.deepcopy(d) for d in bucket.values()]))
        return subscription
