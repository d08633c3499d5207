"""
Storage Services Package

Provides the per-user document store interface and its implementations.
In-memory is the default backend; Google Sheets is the hosted one.
"""

from finance_tracker.services.storage.interface import (
    AuditStorageInterface,
    ConnectionError,
    Document,
    DocumentStoreInterface,
    DuplicateError,
    NotFoundError,
    QueryFilter,
    StorageError,
    Subscription,
    SubscriptionHub,
)
from finance_tracker.services.storage.memory import InMemoryDocumentStore
from finance_tracker.services.storage.audit import DocumentAuditStorage
from finance_tracker.services.storage.google_sheets import (
    GoogleSheetsClient,
    GoogleSheetsDocumentStore,
)

__all__ = [
    # Interfaces
    "AuditStorageInterface",
    "Document",
    "DocumentStoreInterface",
    "QueryFilter",
    "Subscription",
    "SubscriptionHub",
    # Exceptions
    "ConnectionError",
    "DuplicateError",
    "NotFoundError",
    "StorageError",
    # Implementations
    "DocumentAuditStorage",
    "GoogleSheetsClient",
    "GoogleSheetsDocumentStore",
    "InMemoryDocumentStore",
]
