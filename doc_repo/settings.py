"""Connection settings for the shared Motor client.

Every field defaults from a ``MONGO_*`` environment variable, read when a
``MongoSettings`` is created; the module-level ``settings`` is created on import.
``uri`` and ``db_name`` are the only ones most deployments set;
``app_name`` and ``server_selection_timeout_ms`` are handed
to the driver as ``appname`` and ``serverSelectionTimeoutMS``.

The client is built once, on the first ``get_mongo_client`` or ``get_db``
call, so connection fields changed on ``doc_repo.settings`` after that only
take effect once ``close_mongo_client`` has dropped the cached client.
``db_name`` is read on every ``get_db`` call.
"""
import os

from loguru import logger
from pydantic import BaseModel, Field


class MongoSettings(BaseModel):
    """Connection settings for the document store backing the repositories."""

    uri: str = Field(
        default_factory=lambda: os.getenv("MONGO_URI", "mongodb://localhost:27017")
    )
    db_name: str = Field(default_factory=lambda: os.getenv("MONGO_DB_NAME", "app"))
    app_name: str = Field(default_factory=lambda: os.getenv("MONGO_APP_NAME", "doc_repo"))
    # how long the driver waits for a reachable server before failing an operation
    server_selection_timeout_ms: int = Field(
        default_factory=lambda: int(os.getenv("MONGO_SERVER_SELECTION_TIMEOUT_MS", "5000"))
    )

    def client_options(self) -> dict:
        return {
            "appname": self.app_name,
            "serverSelectionTimeoutMS": self.server_selection_timeout_ms,
        }


settings = MongoSettings()
logger.info(f"MongoSettings initialized with uri={settings.uri} db_name={settings.db_name}")
