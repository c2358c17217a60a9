"""Factory handing out repositories that share one database handle."""

from functools import lru_cache
from typing import Type

from motor.motor_asyncio import AsyncIOMotorDatabase

from .models import DocumentEntity, EntityT
from .mongo import get_db
from .repository import DocumentRepo


class RepoFactory:
    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db

    def create(self, collection_path: str, entity_type: Type[EntityT] = DocumentEntity) -> DocumentRepo[EntityT]:
        """Return a new repository bound to ``collection_path``."""
        return DocumentRepo(self.db, collection_path, entity_type)


@lru_cache
def get_repo_factory() -> RepoFactory:
    """Return a cached factory over the database from ``get_db``."""

    return RepoFactory(get_db())
