"""
Entity Store Base

Plain CRUD over one per-user collection, typed with a pydantic model.
Stores never touch other collections: anything that must keep two
documents consistent goes through the ledger instead.
"""

from collections.abc import Callable, Mapping
from typing import Any, Generic, Optional, TypeVar

import structlog
from pydantic import BaseModel, ValidationError

from finance_tracker.audit import AuditLogger
from finance_tracker.ledger.errors import EntryNotFoundError, MissingUserError
from finance_tracker.models.finance import Collection, utc_now
from finance_tracker.services.storage import (
    Document,
    DocumentStoreInterface,
    QueryFilter,
    Subscription,
)


logger = structlog.get_logger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


def parse_documents(
    model: type[ModelT],
    documents: list[Document],
    collection: Collection,
) -> list[ModelT]:
    """Typed entities from a pushed result set; malformed documents are skipped."""
    entities = []
    for document in documents:
        try:
            entities.append(model.model_validate(document))
        except ValidationError as e:
            logger.warning(
                "malformed_document_skipped",
                collection=collection.value,
                document_id=document.get("id"),
                error=str(e),
            )
    return entities


class EntityStore(Generic[ModelT]):
    """
    Typed CRUD for one collection of one user.

    Subclasses set collection, model and entity_type.
    """

    collection: Collection
    model: type[ModelT]
    entity_type: str
    default_order: Optional[str] = "created_at"
    # Fields the user may not change through update()
    immutable_fields: frozenset[str] = frozenset({"id", "created_at"})

    def __init__(
        self,
        store: DocumentStoreInterface,
        user_id: str,
        audit: Optional[AuditLogger] = None,
    ):
        if not user_id:
            raise MissingUserError()
        self._store = store
        self._user_id = user_id
        self._audit = audit or AuditLogger(user_id=user_id)

    @property
    def user_id(self) -> str:
        return self._user_id

    def _to_model(self, document: Document) -> ModelT:
        return self.model.model_validate(document)

    def _to_document(self, entity: ModelT) -> Document:
        return entity.model_dump(mode="json", exclude={"id"})

    async def add(self, data: ModelT | Mapping[str, Any]) -> ModelT:
        """Validate and insert a new entity; returns it with its id."""
        entity = data if isinstance(data, BaseModel) else self.model.model_validate(dict(data))
        entity_id = await self._store.insert(
            self._user_id, self.collection, self._to_document(entity),
        )
        entity = entity.model_copy(update={"id": entity_id})
        await self._audit.log_entity_changed("created", self.entity_type, entity_id)
        return entity

    async def get(self, entity_id: str) -> Optional[ModelT]:
        document = await self._store.get(self._user_id, self.collection, entity_id)
        return self._to_model(document) if document else None

    async def require(self, entity_id: str) -> ModelT:
        entity = await self.get(entity_id)
        if entity is None:
            raise EntryNotFoundError(self.entity_type, entity_id)
        return entity

    async def update(self, entity_id: str, fields: Mapping[str, Any]) -> ModelT:
        """
        Merge fields into an entity.

        The merged entity is validated before anything is written, and only
        the given fields (plus updated_at) are sent to the store.
        """
        current = await self.require(entity_id)
        changes = {k: v for k, v in fields.items() if k not in self.immutable_fields}
        merged = current.model_dump()
        merged.update(changes)
        if "updated_at" in self.model.model_fields:
            merged["updated_at"] = utc_now()
        entity = self.model.model_validate(merged)

        document = entity.model_dump(mode="json")
        written = {k: document[k] for k in changes if k in document}
        if "updated_at" in document:
            written["updated_at"] = document["updated_at"]
        await self._store.update(self._user_id, self.collection, entity_id, written)
        await self._audit.log_entity_changed(
            "updated", self.entity_type, entity_id, fields=changes,
        )
        return entity

    async def delete(self, entity_id: str) -> bool:
        deleted = await self._store.delete(self._user_id, self.collection, entity_id)
        if deleted:
            await self._audit.log_entity_changed("deleted", self.entity_type, entity_id)
        return deleted

    async def list_all(
        self,
        filters: Optional[list[QueryFilter]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
    ) -> list[ModelT]:
        documents = await self._store.list_documents(
            self._user_id,
            self.collection,
            filters=filters,
            order_by=order_by or self.default_order,
            descending=descending,
        )
        return [self._to_model(d) for d in documents]

    def subscribe(self, callback: Callable[[list[ModelT]], None]) -> Subscription:
        """Receive the full typed collection now and after every change."""
        return self._store.subscribe(
            self._user_id,
            self.collection,
            lambda documents: callback(
                parse_documents(self.model, documents, self.collection)
            ),
        )
