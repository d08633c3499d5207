"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets can back the tracker because:
1. Users can view their data directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)

Each collection is one worksheet. A row holds one document:
[id, user_id, updated_at, document_json]. Per-user isolation is the
user_id column; every read filters on it.

TRADEOFFS:
- Not suitable for high-volume data (we're fine for personal use)
- No transactions, and a row write is the only atomic unit
- Limited query capabilities (we filter in Python)
- No server push: subscribers are notified after writes made through
  this store, and on explicit refresh()
"""

import json
from typing import Optional
from uuid import uuid4

import gspread
import structlog
from google.oauth2.service_account import Credentials
from gspread.utils import rowcol_to_a1
from tenacity import (
    retry,
    retry_if_not_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from finance_tracker.config import GoogleSheetsSettings, get_settings
from finance_tracker.models.finance import Collection, utc_now
from finance_tracker.services.storage.interface import (
    ConnectionError,
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

DOCUMENT_COLUMNS = [
    "id",
    "user_id",
    "updated_at",
    "document_json",
]

DOCUMENT_COLUMN = DOCUMENT_COLUMNS.index("document_json") + 1
UPDATED_AT_COLUMN = DOCUMENT_COLUMNS.index("updated_at") + 1

# Missing and duplicate documents are answers, not transient failures.
_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=1, min=2, max=10),
    retry=retry_if_not_exception_type((NotFoundError, DuplicateError)),
    reraise=True,
)


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self, settings: Optional[GoogleSheetsSettings] = None):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = settings or get_settings().google_sheets
        self._worksheets: dict[str, gspread.Worksheet] = {}

    @_retry
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def get_worksheet(self, collection: str) -> gspread.Worksheet:
        """Get or create the worksheet holding a collection."""
        if collection in self._worksheets:
            return self._worksheets[collection]

        spreadsheet = self.get_spreadsheet()
        title = f"{self._settings.worksheet_prefix}{collection}"
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            # Create the sheet with headers
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=self._settings.worksheet_rows,
                cols=len(DOCUMENT_COLUMNS),
            )
            sheet.append_row(DOCUMENT_COLUMNS)
        self._worksheets[collection] = sheet
        return sheet


class GoogleSheetsDocumentStore(DocumentStoreInterface):
    """
    Google Sheets implementation of the document store.

    Documents are JSON-serialized into a single cell.
    """

    def __init__(
        self,
        client: Optional[GoogleSheetsClient] = None,
        hub: Optional[SubscriptionHub] = None,
    ):
        self._client = client or GoogleSheetsClient()
        self._hub = hub or SubscriptionHub()

    @staticmethod
    def _row_to_document(row: list) -> Optional[Document]:
        """Convert a spreadsheet row to a document. None for malformed rows."""
        def safe_get(index: int, default: str = "") -> str:
            try:
                return row[index] if row[index] else default
            except IndexError:
                return default

        doc_id = safe_get(0)
        if not doc_id:
            return None
        try:
            document = json.loads(safe_get(3, "{}"))
        except json.JSONDecodeError:
            logger.warning("malformed_document_row", document_id=doc_id)
            return None
        if not isinstance(document, dict):
            return None
        document["id"] = doc_id
        return document

    def _user_rows(self, sheet, user_id: str) -> list[tuple[int, list]]:
        """(sheet row number, row) pairs for one user, header excluded."""
        all_rows = sheet.get_all_values()
        return [
            (idx, row)
            for idx, row in enumerate(all_rows[1:], start=2)  # Row 1 is header
            if len(row) > 1 and row[1] == user_id
        ]

    def _find_row(self, sheet, user_id: str, document_id: str) -> Optional[tuple[int, list]]:
        for idx, row in self._user_rows(sheet, user_id):
            if row and row[0] == document_id:
                return idx, row
        return None

    async def _publish(self, user_id: str, name: str) -> None:
        if self._hub.has_subscribers(user_id, name):
            self._hub.publish(user_id, name, await self.list_documents(user_id, name))

    async def insert(
        self,
        user_id: str,
        collection: Collection | str,
        document: Document,
        document_id: Optional[str] = None,
    ) -> str:
        """
        Append a document row.

        The id is fixed before the first attempt, so a retry after an
        append that landed finds its own row and stops there.
        """
        name = collection_name(collection)
        doc_id = document_id or uuid4().hex
        try:
            sheet = self._client.get_worksheet(name)
            if document_id and self._find_row(sheet, user_id, doc_id):
                raise DuplicateError(f"Document already exists: {name}/{doc_id}")
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to insert into {name}: {e}")

        body = {k: v for k, v in document.items() if k != "id"}
        await self._append_row(user_id, name, doc_id, body)
        await self._publish(user_id, name)
        return doc_id

    @_retry
    async def _append_row(self, user_id: str, name: str, doc_id: str, body: Document) -> None:
        try:
            sheet = self._client.get_worksheet(name)
            if self._find_row(sheet, user_id, doc_id):
                logger.info("insert_already_applied", collection=name, document_id=doc_id)
                return
            sheet.append_row(
                [doc_id, user_id, utc_now().isoformat(), json.dumps(body)],
                value_input_option="RAW",
            )
        except Exception as e:
            raise StorageError(f"Failed to insert into {name}: {e}")

    async def get(
        self,
        user_id: str,
        collection: Collection | str,
        document_id: str,
    ) -> Optional[Document]:
        """Retrieve a document by its ID."""
        name = collection_name(collection)
        try:
            sheet = self._client.get_worksheet(name)
            found = self._find_row(sheet, user_id, document_id)
        except Exception as e:
            raise StorageError(f"Failed to get {name}/{document_id}: {e}")
        if found is None:
            return None
        return self._row_to_document(found[1])

    async def update(
        self,
        user_id: str,
        collection: Collection | str,
        document_id: str,
        fields: Document,
    ) -> None:
        """Merge fields into the stored document (single range write)."""
        name = collection_name(collection)
        await self._write_fields(user_id, name, document_id, fields)
        await self._publish(user_id, name)

    @_retry
    async def _write_fields(self, user_id: str, name: str, document_id: str, fields: Document) -> None:
        # The merge is recomputed from the row on every attempt, so a retry
        # after a landed write rewrites the same values.
        try:
            sheet = self._client.get_worksheet(name)
            found = self._find_row(sheet, user_id, document_id)
            if found is None:
                raise NotFoundError(f"Document not found: {name}/{document_id}")

            idx, row = found
            document = self._row_to_document(row) or {}
            document.update(fields)
            document.pop("id", None)
            # updated_at and document_json are adjacent columns.
            sheet.update(
                range_name=(
                    f"{rowcol_to_a1(idx, UPDATED_AT_COLUMN)}:{rowcol_to_a1(idx, DOCUMENT_COLUMN)}"
                ),
                values=[[utc_now().isoformat(), json.dumps(document)]],
                value_input_option="RAW",
            )
        except StorageError:
            raise
        except Exception as e:
            raise StorageError(f"Failed to update {name}/{document_id}: {e}")

    async def delete(
        self,
        user_id: str,
        collection: Collection | str,
        document_id: str,
    ) -> bool:
        """Delete a document row."""
        name = collection_name(collection)
        try:
            sheet = self._client.get_worksheet(name)
            found = self._find_row(sheet, user_id, document_id)
            if found is None:
                return False
            sheet.delete_rows(found[0])
        except Exception as e:
            raise StorageError(f"Failed to delete {name}/{document_id}: {e}")
        await self._publish(user_id, name)
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
        """List one user's documents with optional filters."""
        name = collection_name(collection)
        try:
            sheet = self._client.get_worksheet(name)
            rows = self._user_rows(sheet, user_id)
        except Exception as e:
            raise StorageError(f"Failed to list {name}: {e}")

        documents = []
        for _, row in rows:
            document = self._row_to_document(row)
            if document is not None:
                documents.append(document)
        return apply_query(documents, filters, order_by, descending, limit)

    def subscribe(
        self,
        user_id: str,
        collection: Collection | str,
        callback: SubscriptionCallback,
    ) -> Subscription:
        """
        Register a subscriber.

        Sheets has no push channel, so the initial result set is delivered
        on the next refresh() rather than immediately.
        """
        return self._hub.add(user_id, collection_name(collection), callback)

    async def refresh(self, user_id: str, collection: Collection | str) -> None:
        """Re-read a collection and push it to its subscribers."""
        name = collection_name(collection)
        self._hub.publish(user_id, name, await self.list_documents(user_id, name))
