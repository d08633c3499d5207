"""
Services Package

External service integrations:
- storage: per-user document stores (in-memory, Google Sheets)
"""

from finance_tracker.services.storage import (
    DocumentStoreInterface,
    GoogleSheetsDocumentStore,
    InMemoryDocumentStore,
)

__all__ = [
    "DocumentStoreInterface",
    "GoogleSheetsDocumentStore",
    "InMemoryDocumentStore",
]
