"""
Key-value storage backends for persisted tracker state.
MongoDB (via motor) for deployments and an in-process dict for local runs.
"""

import copy
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, Optional

import structlog
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorCollection, AsyncIOMotorDatabase
from pymongo.errors import ConnectionFailure

from utilities.config import TrackerConfig

logger = structlog.get_logger(__name__)


class KeyValueStore(ABC):
    """Minimal get/set-by-string-key store holding JSON-compatible values."""

    async def connect(self) -> None:
        """Open any underlying connection."""

    async def disconnect(self) -> None:
        """Release any underlying connection."""

    @abstractmethod
    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        """Return the value stored under key, or None."""

    @abstractmethod
    async def set(self, key: str, value: Dict[str, Any]) -> None:
        """Store value under key, replacing any previous value."""

    async def health_check(self) -> Dict[str, Any]:
        return {"status": "healthy", "backend": type(self).__name__}


class MongoKeyValueStore(KeyValueStore):
    """
    Async MongoDB key-value store.
    Each key is one document: {_id: key, value: ..., updated_at: ...}.
    """

    def __init__(self, connection_url: str, database_name: str, collection_name: str):
        """
        Initialize MongoDB store.

        Args:
            connection_url: MongoDB connection URL
            database_name: Name of the database
            collection_name: Name of the collection holding the keys
        """
        self.connection_url = connection_url
        self.database_name = database_name
        self.collection_name = collection_name
        self.client: Optional[AsyncIOMotorClient] = None
        self.database: Optional[AsyncIOMotorDatabase] = None
        self.collection: Optional[AsyncIOMotorCollection] = None

    async def connect(self) -> None:
        """Establish connection to MongoDB."""
        try:
            self.client = AsyncIOMotorClient(self.connection_url)
            self.database = self.client[self.database_name]
            self.collection = self.database[self.collection_name]

            # Test connection
            await self.client.admin.command('ping')
            logger.info("Successfully connected to MongoDB",
                        database=self.database_name,
                        collection=self.collection_name)

        except ConnectionFailure as e:
            logger.error("Failed to connect to MongoDB", error=str(e))
            raise

    async def disconnect(self) -> None:
        """Close MongoDB connection."""
        if self.client:
            self.client.close()
            self.client = None
            logger.info("Disconnected from MongoDB")

    def _require_collection(self) -> AsyncIOMotorCollection:
        if self.collection is None:
            raise ConnectionFailure("MongoDB store used before connect()")
        return self.collection

    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        try:
            document = await self._require_collection().find_one({"_id": key})
        except Exception as e:
            logger.error("Failed to read key", key=key, error=str(e))
            raise
        if document is None:
            return None
        return document.get("value")

    async def set(self, key: str, value: Dict[str, Any]) -> None:
        try:
            await self._require_collection().replace_one(
                {"_id": key},
                {"_id": key, "value": value, "updated_at": datetime.utcnow()},
                upsert=True
            )
            logger.debug("Stored key", key=key)
        except Exception as e:
            logger.error("Failed to write key", key=key, error=str(e))
            raise

    async def health_check(self) -> Dict[str, Any]:
        try:
            if self.client is None:
                return {"status": "disconnected", "backend": "mongodb"}
            await self.client.admin.command('ping')
            return {"status": "healthy", "backend": "mongodb"}
        except Exception as e:
            logger.error("MongoDB health check failed", error=str(e))
            return {"status": "unhealthy", "backend": "mongodb", "error": str(e)}


class MemoryKeyValueStore(KeyValueStore):
    """In-process store; values are copied in and out so callers never share state."""

    def __init__(self, initial: Optional[Dict[str, Dict[str, Any]]] = None):
        self._data: Dict[str, Dict[str, Any]] = copy.deepcopy(initial or {})

    async def get(self, key: str) -> Optional[Dict[str, Any]]:
        value = self._data.get(key)
        return copy.deepcopy(value) if value is not None else None

    async def set(self, key: str, value: Dict[str, Any]) -> None:
        self._data[key] = copy.deepcopy(value)

    def keys(self):
        return list(self._data)


def create_store(config: TrackerConfig) -> KeyValueStore:
    """Build the store backend named by config.store_backend."""
    if config.store_backend == "memory":
        logger.warning("Using in-memory store; history is lost on restart")
        return MemoryKeyValueStore()
    return MongoKeyValueStore(
        connection_url=config.mongodb_url,
        database_name=config.mongodb_database,
        collection_name=config.mongodb_collection
    )
