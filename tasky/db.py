"""MongoDB connection management for Tasky.

A single Motor client is created lazily and Beanie is initialized with every
Tasky document model. Index creation (including the TTL index on one-time
tokens) happens during initialization.
"""

from typing import Optional

from beanie import init_beanie
from motor.motor_asyncio import AsyncIOMotorClient

from tasky.core.logging import get_logger
from tasky.core.settings import get_tasky_config
from tasky.models.documents import TaskDocument, UserDocument, VerificationTokenDocument

DOCUMENT_MODELS = [UserDocument, TaskDocument, VerificationTokenDocument]

logger = get_logger("db")

_client: Optional[AsyncIOMotorClient] = None


def get_client() -> AsyncIOMotorClient:
    """
    Get the global Motor client.

    Creates the client on first call but does NOT initialize Beanie.
    Initialization happens via `initialize_db()` during application startup.
    """
    global _client
    if _client is None:
        cfg = get_tasky_config()
        _client = AsyncIOMotorClient(
            cfg.MONGO_URI,
            maxPoolSize=cfg.MONGO_MAX_POOL_SIZE,
            serverSelectionTimeoutMS=cfg.MONGO_SERVER_SELECTION_TIMEOUT_MS,
            socketTimeoutMS=cfg.MONGO_SOCKET_TIMEOUT_MS,
            tz_aware=True,
        )
    return _client


async def initialize_db() -> None:
    """
    Initialize Beanie on the configured database.

    Should be called during application startup for predictable initialization.
    """
    cfg = get_tasky_config()
    client = get_client()
    await init_beanie(database=client[cfg.MONGO_DB], document_models=DOCUMENT_MODELS)
    logger.info("database_initialized", database=cfg.MONGO_DB)


async def close_db() -> None:
    """Close the database connection. Called during application shutdown."""
    global _client
    if _client is not None:
        _client.close()
        _client = None
        logger.info("database_closed")


def reset_db() -> None:
    """
    Reset the global client.

    Useful in tests to ensure a fresh client. Does NOT close the connection.
    """
    global _client
    _client = None
