"""Shared Motor client for all repositories.

Repositories never open their own connections; a ``RepoFactory`` hands them
the database returned by ``get_db``.
"""

from functools import lru_cache
from typing import Any

from loguru import logger
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from .settings import settings


@lru_cache
def get_mongo_client() -> AsyncIOMotorClient:
    """Return the process-wide Motor client built from ``settings``."""

    logger.debug(f"Creating Motor client for {settings.uri}")
    return AsyncIOMotorClient(settings.uri, **settings.client_options())


def get_db() -> AsyncIOMotorDatabase:
    return get_mongo_client()[settings.db_name]


def close_mongo_client() -> None:
    """Close the shared client; the next ``get_db`` call opens a fresh one."""

    if get_mongo_client.cache_info().currsize:
        get_mongo_client().close()
        get_mongo_client.cache_clear()


async def ping() -> dict[str, Any]:
    """Round trip to the server, raising the driver error when it is unreachable."""

    await get_db().command("ping")
    return {"ok": True}
