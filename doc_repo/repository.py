"""Typed repository over a single collection path.

Not meant to be instantiated directly: use ``RepoFactory.create`` so every
repository shares the same database handle.

Live operations (``get``, ``get_snapshot``, ``fetch``, ``fetch_snapshots``) are
async generators backed by MongoDB change streams, which need a replica set.
They run until the consumer stops iterating; close them explicitly so the
change stream is released right away::

    async with aclosing(repo.fetch({"sorts": [{"fieldName": "rank"}]})) as stream:
        async for items in stream:
            ...
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Generic, Iterable, List, Mapping, Optional, Type, Union

from bson import ObjectId
from loguru import logger
from motor.motor_asyncio import AsyncIOMotorCollection, AsyncIOMotorDatabase
from pydantic import BaseModel

from .errors import DocumentNotFoundError
from .models import DocumentEntity, EntityT, FetchOptions
from .query import Query, apply_options
from .snapshots import (
    OPERATION_CHANGE_TYPES,
    ChangeType,
    DocumentAction,
    DocumentChange,
    DocumentSnapshot,
    combine_changes,
    diff_snapshots,
    filter_changes,
)

OptionsLike = Union[FetchOptions, Mapping[str, Any], None]


def _document_pipeline(document_id: str) -> List[Dict[str, Any]]:
    return [{"$match": {"documentKey._id": document_id}}]


def _coerce_options(options: OptionsLike) -> FetchOptions:
    if options is None:
        return FetchOptions()
    if isinstance(options, FetchOptions):
        return options
    return FetchOptions.model_validate(options)


class DocumentRepo(Generic[EntityT]):
    def __init__(
        self,
        db: AsyncIOMotorDatabase,
        collection_path: str,
        entity_type: Type[EntityT] = DocumentEntity,
    ):
        self.db = db
        self.collection_path = collection_path
        self.entity_type = entity_type

    def _collection(self) -> AsyncIOMotorCollection:
        return self.db[self.collection_path]

    def _to_entity(self, document: Optional[Mapping[str, Any]]) -> Optional[EntityT]:
        if document is None:
            return None
        data = dict(document)
        data["id"] = str(data.pop("_id"))
        return self.entity_type.model_validate(data)

    def _query(self, options: OptionsLike) -> Query:
        ref = Query(self._collection())
        query = apply_options(_coerce_options(options), ref)
        return query or ref

    # ---------------------------------------------------------
    # One-shot operations
    # ---------------------------------------------------------
    async def add(self, item: Union[EntityT, Mapping[str, Any]], id: Optional[str] = None) -> EntityT:
        """
        Add a document to the collection.

        Without ``id`` a new identifier is generated; with ``id`` the document at
        that identifier is created or overwritten.
        """

        if isinstance(item, BaseModel):
            data = item.model_dump(exclude={"id"})
        else:
            data = {key: value for key, value in item.items() if key != "id"}

        collection = self._collection()
        if not id:
            document_id = str(ObjectId())
            await collection.insert_one({"_id": document_id, **data})
        else:
            document_id = id
            await collection.replace_one({"_id": document_id}, data, upsert=True)
        logger.debug(f"Added document {document_id} to {self.collection_path}")

        if isinstance(item, BaseModel):
            return item.model_copy(update={"id": document_id})
        return self.entity_type.model_validate({**data, "id": document_id})

    async def delete(self, id: str) -> None:
        """Delete a document. Deleting a missing document is a no-op."""

        await self._collection().delete_one({"_id": id})
        logger.debug(f"Deleted document {id} from {self.collection_path}")

    async def exists(self, id: str) -> bool:
        """Whether a document with the given id exists."""

        document = await self._collection().find_one({"_id": id}, projection={"_id": 1})
        return document is not None

    async def update(self, item: Union[EntityT, Mapping[str, Any]]) -> None:
        """
        Merge the given fields into an existing document.

        Pydantic items contribute only the fields that were explicitly set.
        """

        if isinstance(item, BaseModel):
            fields = item.model_dump(exclude_unset=True)
        else:
            fields = dict(item)
        document_id = fields.pop("id", None)
        if not document_id:
            raise ValueError("update requires an item carrying an id")

        result = await self._collection().update_one({"_id": document_id}, {"$set": fields})
        if result.matched_count == 0:
            raise DocumentNotFoundError(self.collection_path, document_id)
        logger.debug(f"Updated document {document_id} in {self.collection_path}: {sorted(fields)}")

    # ---------------------------------------------------------
    # Live operations
    # ---------------------------------------------------------
    @asynccontextmanager
    async def _watching(self, description: str, pipeline: Optional[List[Dict[str, Any]]] = None, **kwargs: Any):
        logger.debug(f"Watching {description} in {self.collection_path}")
        try:
            async with self._collection().watch(pipeline, **kwargs) as stream:
                yield stream
        finally:
            logger.debug(f"Stopped watching {description} in {self.collection_path}")

    async def get(self, id: str) -> AsyncIterator[Optional[EntityT]]:
        """Current value of one document, then a new value on every change (``None`` when absent)."""

        collection = self._collection()
        async with self._watching(f"document {id}", _document_pipeline(id), full_document="updateLookup") as stream:
            yield self._to_entity(await collection.find_one({"_id": id}))
            async for change in stream:
                if change["operationType"] not in OPERATION_CHANGE_TYPES:
                    continue
                yield self._to_entity(change.get("fullDocument"))

    async def get_snapshot(self, id: str) -> AsyncIterator[DocumentAction]:
        """Change envelopes for one document."""

        collection = self._collection()
        async with self._watching(f"document {id}", _document_pipeline(id), full_document="updateLookup") as stream:
            document = await collection.find_one({"_id": id})
            if document is None:
                yield DocumentAction("removed", DocumentSnapshot(id=id))
            else:
                yield DocumentAction("added", DocumentSnapshot.from_document(document))
            async for change in stream:
                change_type = OPERATION_CHANGE_TYPES.get(change["operationType"])
                if change_type is None:
                    continue
                full_document = change.get("fullDocument")
                if full_document is None:
                    snapshot = DocumentSnapshot(id=id)
                else:
                    snapshot = DocumentSnapshot.from_document(full_document)
                yield DocumentAction(change_type, snapshot)

    async def fetch(self, options: OptionsLike = None) -> AsyncIterator[List[EntityT]]:
        """
        Matching documents, emitted initially and again whenever the result set changes.

        IMPORTANT: filter and sort combinations are not validated; the store's
        query limitations and index requirements are the caller's concern.
        """

        query = self._query(options)
        async with self._watching(f"query {query.to_filter()}") as stream:
            previous = await query.get()
            yield [self._to_entity(document) for document in previous]
            async for _ in stream:
                current = await query.get()
                if current == previous:
                    continue
                previous = current
                yield [self._to_entity(document) for document in current]

    async def fetch_snapshots(
        self,
        options: OptionsLike = None,
        events: Optional[Iterable[ChangeType]] = None,
    ) -> AsyncIterator[List[DocumentChange]]:
        """
        The matching result set as one ``DocumentChange`` per document, tagged
        with the latest change that touched it.

        With ``events`` only changes of those kinds are applied to the set. The
        first emission is always delivered; later ones only when an applied
        change altered the set.
        """

        if events is not None:
            events = list(events)
        query = self._query(options)
        async with self._watching(f"snapshots of query {query.to_filter()}") as stream:
            previous = [DocumentSnapshot.from_document(document) for document in await query.get()]
            state = combine_changes([], filter_changes(diff_snapshots([], previous), events), previous)
            yield state
            async for _ in stream:
                current = [DocumentSnapshot.from_document(document) for document in await query.get()]
                changes = filter_changes(diff_snapshots(previous, current), events)
                previous = current
                if not changes:
                    continue
                state = combine_changes(state, changes, current)
                yield state
