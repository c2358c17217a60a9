"""Typed repositories over MongoDB collections.

Example usage:

    from doc_repo import DocumentEntity, get_repo_factory

    class Message(DocumentEntity):
        text: str
        timeStamp: int

    repo = get_repo_factory().create("messages", Message)
    saved = await repo.add(Message(text="hi", timeStamp=12345))

    async for page in repo.fetch({"sorts": [{"fieldName": "timeStamp"}], "limit": 20}):
        ...
"""

from .errors import DocumentNotFoundError
from .factory import RepoFactory, get_repo_factory
from .models import (
    DocumentEntity,
    FetchOptions,
    FilterSpecification,
    SortSpecification,
)
from .mongo import close_mongo_client, get_db, get_mongo_client, ping
from .query import Query, apply_options
from .repository import DocumentRepo
from .settings import MongoSettings, settings
from .snapshots import DocumentAction, DocumentChange, DocumentSnapshot

__all__ = [
    "DocumentNotFoundError",
    "RepoFactory",
    "get_repo_factory",
    "DocumentEntity",
    "FetchOptions",
    "FilterSpecification",
    "SortSpecification",
    "get_db",
    "get_mongo_client",
    "close_mongo_client",
    "ping",
    "Query",
    "apply_options",
    "DocumentRepo",
    "MongoSettings",
    "settings",
    "DocumentAction",
    "DocumentChange",
    "DocumentSnapshot",
]
