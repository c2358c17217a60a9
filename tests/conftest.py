"""Shared fixtures: an in-memory stand-in for the Motor database.

Queries run through ``mongomock`` so the translated filters, sorts and limits
are evaluated for real. Writes publish change events to every open change
stream, mimicking ``collection.watch()`` on a replica set.
"""

import asyncio

import mongomock
import pytest

from doc_repo import DocumentEntity, RepoFactory


class FakeChangeStream:
    def __init__(self, collection, pipeline=None, full_document=None):
        self._collection = collection
        self.full_document = full_document
        self.document_id = None
        for stage in pipeline or []:
            self.document_id = stage.get("$match", {}).get("documentKey._id", self.document_id)
        self._events = asyncio.Queue()
        self.closed = False

    def matches(self, document_id):
        return self.document_id is None or self.document_id == document_id

    def push(self, event):
        self._events.put_nowait(event)

    async def __aenter__(self):
        self._collection.streams.append(self)
        return self

    async def __aexit__(self, *exc_info):
        self.close()

    def close(self):
        self.closed = True
        if self in self._collection.streams:
            self._collection.streams.remove(self)

    def __aiter__(self):
        return self

    async def __anext__(self):
        return await self._events.get()


class FakeCursor:
    def __init__(self, cursor):
        self._cursor = cursor

    def sort(self, key_or_list):
        self._cursor = self._cursor.sort(key_or_list)
        return self

    def limit(self, count):
        self._cursor = self._cursor.limit(count)
        return self

    async def to_list(self, length=None):
        documents = list(self._cursor)
        return documents if length is None else documents[:length]


class FakeCollection:
    def __init__(self, collection):
        self._collection = collection
        self.streams = []

    def _publish(self, operation, document_id):
        for stream in list(self.streams):
            if not stream.matches(document_id):
                continue
            event = {"operationType": operation, "documentKey": {"_id": document_id}}
            if operation in ("insert", "replace") or (
                operation == "update" and stream.full_document == "updateLookup"
            ):
                event["fullDocument"] = self._collection.find_one({"_id": document_id})
            stream.push(event)

    async def insert_one(self, document):
        result = self._collection.insert_one(document)
        self._publish("insert", result.inserted_id)
        return result

    async def replace_one(self, filter, replacement, upsert=False):
        existed = self._collection.find_one(filter) is not None
        result = self._collection.replace_one(filter, replacement, upsert=upsert)
        if existed:
            self._publish("replace", filter["_id"])
        elif result.upserted_id is not None:
            self._publish("insert", result.upserted_id)
        return result

    async def update_one(self, filter, update):
        result = self._collection.update_one(filter, update)
        if result.matched_count:
            self._publish("update", filter["_id"])
        return result

    async def delete_one(self, filter):
        result = self._collection.delete_one(filter)
        if result.deleted_count:
            self._publish("delete", filter["_id"])
        return result

    async def find_one(self, filter=None, projection=None):
        return self._collection.find_one(filter, projection)

    def find(self, filter=None):
        return FakeCursor(self._collection.find(filter))

    def watch(self, pipeline=None, full_document=None):
        return FakeChangeStream(self, pipeline, full_document)


class FakeDatabase:
    def __init__(self):
        self._db = mongomock.MongoClient().db
        self._collections = {}

    def __getitem__(self, name):
        if name not in self._collections:
            self._collections[name] = FakeCollection(self._db[name])
        return self._collections[name]

    async def command(self, name):
        return {"ok": 1.0}


class SampleEntity(DocumentEntity):
    name: str
    timeStamp: int


@pytest.fixture()
def db():
    return FakeDatabase()


@pytest.fixture()
def factory(db):
    return RepoFactory(db)


@pytest.fixture()
def repo(factory):
    return factory.create("test-entities", SampleEntity)


async def next_value(stream, timeout=1.0):
    """Pull the next emission from a live stream, failing instead of hanging."""
    return await asyncio.wait_for(stream.__anext__(), timeout)
