"""
Abstract Storage Interface

DESIGN DECISION: We define an abstract interface for storage operations.
This allows us to:
1. Swap Google Sheets for a hosted document database later
2. Use in-memory storage for testing
3. Keep business logic decoupled from storage implementation

The contract is a per-user document store: every collection belongs to one
user id, documents are JSON-compatible dicts, and the store generates ids.
Only single-document writes are atomic. Nothing here spans collections.

Subscriptions deliver the FULL current result set of a collection on every
change. Consumers replace their copy wholesale; there is no diffing.
"""

from abc import ABC, abstractmethod
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Optional

import structlog

from finance_tracker.models.audit import AuditEvent
from finance_tracker.models.finance import Collection


logger = structlog.get_logger(__name__)

Document = dict[str, Any]
SubscriptionCallback = Callable[[list[Document]], None]

FILTER_OPERATORS = ("==", "!=", "<", "<=", ">", ">=")


@dataclass(frozen=True)
class QueryFilter:
    """
    A single field filter.

    Values are compared as stored: dates and months are ISO strings, so
    range filters on them compare lexicographically.
    """
    field: str
    op: str
    value: Any

    def __post_init__(self):
        if self.op not in FILTER_OPERATORS:
            raise ValueError(f"Unsupported filter operator: {self.op}")

    def matches(self, document: Document) -> bool:
        current = document.get(self.field)
        if self.op == "==":
            return current == self.value
        if self.op == "!=":
            return current != self.value
        if current is None:
            return False
        try:
            if self.op == "<":
                return current < self.value
            if self.op == "<=":
                return current <= self.value
            if self.op == ">":
                return current > self.value
            return current >= self.value
        except TypeError:
            return False


def _sort_key(value: Any) -> tuple:
    # Missing values sort first; mixed types fall back to string order.
    if value is None:
        return (0, "")
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return (1, value)
    return (2, str(value))


def apply_query(
    documents: list[Document],
    filters: Optional[list[QueryFilter]] = None,
    order_by: Optional[str] = None,
    descending: bool = False,
    limit: Optional[int] = None,
) -> list[Document]:
    """
    Filter, order and limit documents in Python.

    Ordering is stable: documents with equal sort values keep id order.
    """
    result = [d for d in documents if all(f.matches(d) for f in filters or [])]
    result.sort(key=lambda d: str(d.get("id", "")))
    if order_by:
        result.sort(key=lambda d: _sort_key(d.get(order_by)), reverse=descending)
    if limit is not None:
        result = result[:limit]
    return result


class Subscription:
    """Handle returned by subscribe(); call unsubscribe() to stop updates."""

    def __init__(self, hub: "SubscriptionHub", key: tuple[str, str], callback: SubscriptionCallback):
        self._hub = hub
        self._key = key
        self._callback = callback
        self.active = True

    def unsubscribe(self) -> None:
        if self.active:
            self._hub.remove(self._key, self._callback)
            self.active = False


class SubscriptionHub:
    """
    Fan-out of collection result sets to registered callbacks.

    A failing callback is logged and skipped so one broken view cannot stop
    the others from receiving the update.
    """

    def __init__(self):
        self._callbacks: dict[tuple[str, str], list[SubscriptionCallback]] = {}

    def add(self, user_id: str, collection: str, callback: SubscriptionCallback) -> Subscription:
        key = (user_id, collection)
        self._callbacks.setdefault(key, []).append(callback)
        return Subscription(self, key, callback)

    def remove(self, key: tuple[str, str], callback: SubscriptionCallback) -> None:
        callbacks = self._callbacks.get(key, [])
        if callback in callbacks:
            callbacks.remove(callback)

    def has_subscribers(self, user_id: str, collection: str) -> bool:
        return bool(self._callbacks.get((user_id, collection)))

    def publish(self, user_id: str, collection: str, documents: list[Document]) -> None:
        for callback in list(self._callbacks.get((user_id, collection), [])):
            try:
                callback([dict(d) for d in documents])
            except Exception as e:
                logger.error(
                    "subscriber_callback_failed",
                    collection=collection,
                    error=str(e),
                )


def collection_name(collection: Collection | str) -> str:
    return collection.value if isinstance(collection, Collection) else collection


class DocumentStoreInterface(ABC):
    """
    Abstract interface for a per-user document store.

    Any storage implementation (Google Sheets, Firestore, in-memory, ...)
    must implement these methods. user_id is required on every call.
    """

    @abstractmethod
    async def insert(
        self,
        user_id: str,
        collection: Collection | str,
        document: Document,
        document_id: Optional[str] = None,
    ) -> str:
        """
        Insert a document.

        Args:
            user_id: Owner of the collection
            collection: Collection name
            document: JSON-compatible document body
            document_id: Explicit id; generated when None

        Returns:
            The document id

        Raises:
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def get(
        self,
        user_id: str,
        collection: Collection | str,
        document_id: str,
    ) -> Optional[Document]:
        """
        Retrieve a document by id.

        Returns:
            The document (with its "id" key) if found, None otherwise
        """
        pass

    @abstractmethod
    async def update(
        self,
        user_id: str,
        collection: Collection | str,
        document_id: str,
        fields: Document,
    ) -> None:
        """
        Merge fields into an existing document.

        Raises:
            NotFoundError: If the document doesn't exist
            StorageError: If the write fails
        """
        pass

    @abstractmethod
    async def delete(
        self,
        user_id: str,
        collection: Collection | str,
        document_id: str,
    ) -> bool:
        """
        Delete a document.

        Returns:
            True if a document was deleted, False if it did not exist
        """
        pass

    @abstractmethod
    async def list_documents(
        self,
        user_id: str,
        collection: Collection | str,
        filters: Optional[list[QueryFilter]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[Document]:
        """
        List documents with optional filters and ordering.

        Returns:
            Matching documents
        """
        pass

    @abstractmethod
    def subscribe(
        self,
        user_id: str,
        collection: Collection | str,
        callback: SubscriptionCallback,
    ) -> Subscription:
        """
        Register for live updates of a whole collection.

        The callback receives the full current result set immediately and
        again after every change to the collection.
        """
        pass


class AuditStorageInterface(ABC):
    """
    Abstract interface for audit log storage.

    Audit logs are append-only - we never delete or modify them.
    """

    @abstractmethod
    async def append_event(self, event: AuditEvent) -> bool:
        """
        Append an audit event to the log.

        Returns:
            True if logged successfully
        """
        pass

    @abstractmethod
    async def get_events_by_correlation_id(
        self,
        correlation_id: str,
    ) -> list[AuditEvent]:
        """
        Get all events for a correlation ID (e.g., one ledger operation).

        Returns:
            List of related events in chronological order
        """
        pass

    @abstractmethod
    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        """
        Get all events for a specific entity.

        Args:
            entity_type: Type of entity (e.g., 'expense', 'account')
            entity_id: The entity's ID

        Returns:
            List of events in chronological order
        """
        pass

    @abstractmethod
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        """
        Get the most recent audit events.

        Returns:
            List of recent events (newest first)
        """
        pass


class StorageError(Exception):
    """Base exception for storage operations."""
    pass


class NotFoundError(StorageError):
    """Entity not found in storage."""
    pass


class DuplicateError(StorageError):
    """Attempted to insert a duplicate entity."""
    pass


class ConnectionError(StorageError):
    """Could not connect to storage backend."""
    pass
