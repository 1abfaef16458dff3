# database.py - Async MongoDB connection manager

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase, AsyncIOMotorCollection
from pymongo.errors import (
    ConnectionFailure,
    ServerSelectionTimeoutError,
)
from typing import Optional, AsyncGenerator, Dict, Any
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
import asyncio
import logging
import os
from dotenv import load_dotenv

from rentdesk.core.exceptions import DatabaseNotInitializedError

logger = logging.getLogger(__name__)
load_dotenv()

# =====================================
# CONFIGURATION
# =====================================

@dataclass
class AsyncDatabaseConfig:
    """Async MongoDB configuration"""
    mongo_uri: str
    database_name: str
    max_pool_size: int = 20
    min_pool_size: int = 0
    server_selection_timeout_ms: int = 5000
    connect_timeout_ms: int = 5000
    socket_timeout_ms: int = 20000
    retry_writes: bool = True
    retry_reads: bool = True
    tz_aware: bool = True

    @classmethod
    def from_env(cls) -> "AsyncDatabaseConfig":
        """Create configuration from environment variables"""
        return cls(
            mongo_uri=os.getenv("MONGO_URI", "mongodb://localhost:27017"),
            database_name=os.getenv("MONGO_DATABASE", "rentdesk"),
            max_pool_size=int(os.getenv("MONGO_MAX_POOL_SIZE", "20")),
            min_pool_size=int(os.getenv("MONGO_MIN_POOL_SIZE", "0")),
            server_selection_timeout_ms=int(os.getenv("MONGO_SERVER_TIMEOUT_MS", "5000")),
        )

    def validate(self) -> None:
        """Validate configuration"""
        if not self.mongo_uri:
            raise ValueError("MongoDB URI cannot be empty")
        if not self.database_name:
            raise ValueError("Database name cannot be empty")
        if self.max_pool_size < self.min_pool_size:
            raise ValueError("max_pool_size must be >= min_pool_size")


# =====================================
# ASYNC DATABASE MANAGER
# =====================================

class AsyncDatabaseManager:
    """
    Singleton MongoDB connection manager.

    Nothing connects at import time: the API lifespan and the CLI call
    `await db_manager.initialize()` explicitly. Calling it again while
    connected is a no-op. The client belongs to the event loop that
    initialized it; worker runs use `scoped_database` instead.
    """

    _instance: Optional["AsyncDatabaseManager"] = None
    _client: Optional[AsyncIOMotorClient] = None
    _database: Optional[AsyncIOMotorDatabase] = None
    _config: Optional[AsyncDatabaseConfig] = None
    _initialized: bool = False

    def __new__(cls) -> "AsyncDatabaseManager":
        if cls._instance is None:
            cls._instance = super(AsyncDatabaseManager, cls).__new__(cls)
        return cls._instance

    async def initialize(self, config: Optional[AsyncDatabaseConfig] = None) -> None:
        """
        Connect to MongoDB and verify the server answers.

        Raises:
            ConnectionFailure: If unable to connect to database
            ValueError: If invalid configuration
        """
        if self._initialized:
            logger.debug("AsyncDatabaseManager already initialized, skipping")
            return

        config = config or AsyncDatabaseConfig.from_env()
        config.validate()
        self._config = config

        try:
            self._client = create_client(config)
            await _ping(self._client, config)

            self._database = self._client[config.database_name]
            self._initialized = True
            logger.info(f"Connected to MongoDB: {config.database_name}")

        except (ConnectionFailure, ServerSelectionTimeoutError) as e:
            logger.error(f"Failed to connect to MongoDB: {e}")
            await self._cleanup()
            raise ConnectionFailure(f"Could not connect to MongoDB: {e}") from e
        except asyncio.TimeoutError as e:
            logger.error("MongoDB connection timeout")
            await self._cleanup()
            raise ConnectionFailure("MongoDB connection timeout") from e

    async def _cleanup(self) -> None:
        if self._client:
            try:
                self._client.close()
            except Exception as e:
                logger.error(f"Error closing MongoDB client: {e}")
        self._client = None
        self._database = None
        self._config = None
        self._initialized = False

    @property
    def database(self) -> AsyncIOMotorDatabase:
        if not self._initialized or self._database is None:
            raise DatabaseNotInitializedError(
                "AsyncDatabaseManager not initialized. Call `await initialize()` first."
            )
        return self._database

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    def get_collection(self, name: str) -> AsyncIOMotorCollection:
        return self.database[name]

    async def health_check(self) -> Dict[str, Any]:
        """Ping the server and report latency"""
        if not self._initialized:
            return {
                "status": "unhealthy",
                "error": "Database not initialized",
                "timestamp": datetime.now(timezone.utc).isoformat()
            }

        try:
            start_time = datetime.now()
            await asyncio.wait_for(self._client.admin.command("ping"), timeout=5.0)
            latency = (datetime.now() - start_time).total_seconds() * 1000
            return {
                "status": "healthy",
                "latency_ms": round(latency, 2),
                "database": self._config.database_name if self._config else "unknown",
                "timestamp": datetime.now(timezone.utc).isoformat()
            }
        except asyncio.TimeoutError:
            logger.error("Database health check timeout")
            return {
                "status": "unhealthy",
                "error": "Health check timeout",
                "timestamp": datetime.now(timezone.utc).isoformat()
            }
        except (ConnectionFailure, ServerSelectionTimeoutError) as e:
            logger.error(f"Database health check failed: {e}")
            return {
                "status": "unhealthy",
                "error": f"Connection error: {str(e)}",
                "timestamp": datetime.now(timezone.utc).isoformat()
            }

    async def close(self) -> None:
        """Close the client; the next `initialize()` reconnects"""
        await self._cleanup()
        logger.info("Database connection closed")

    async def create_indexes(self, indexes_config: Dict[str, list]) -> None:
        """
        Create indexes for collections

        Example:
            await db_manager.create_indexes({
                "emails": [{"keys": [("landlordId", 1), ("sentAt", -1)]}]
            })
        """
        await ensure_indexes(self.database, indexes_config)


# =====================================
# CLIENT HELPERS
# =====================================

def create_client(config: AsyncDatabaseConfig) -> AsyncIOMotorClient:
    return AsyncIOMotorClient(
        config.mongo_uri,
        maxPoolSize=config.max_pool_size,
        minPoolSize=config.min_pool_size,
        serverSelectionTimeoutMS=config.server_selection_timeout_ms,
        connectTimeoutMS=config.connect_timeout_ms,
        socketTimeoutMS=config.socket_timeout_ms,
        retryWrites=config.retry_writes,
        retryReads=config.retry_reads,
        tz_aware=config.tz_aware,
    )


async def _ping(client: AsyncIOMotorClient, config: AsyncDatabaseConfig) -> None:
    await asyncio.wait_for(
        client.server_info(),
        timeout=config.server_selection_timeout_ms / 1000
    )


async def ensure_indexes(db: AsyncIOMotorDatabase, indexes_config: Dict[str, list]) -> None:
    for collection_name, indexes in indexes_config.items():
        collection = db[collection_name]
        for index_def in indexes:
            index_def = dict(index_def)
            keys = index_def.pop("keys")
            try:
                await collection.create_index(keys, **index_def)
                logger.info(f"Created index on {collection_name}: {keys}")
            except Exception as e:
                logger.error(f"Failed to create index on {collection_name}: {e}")


@asynccontextmanager
async def scoped_database(
    config: Optional[AsyncDatabaseConfig] = None,
    indexes: Optional[Dict[str, list]] = None,
) -> AsyncGenerator[AsyncIOMotorDatabase, None]:
    """
    Database handle owned by the caller's event loop.

    Worker threads each run their own loop, so a worker run never shares the
    `db_manager` client; the client opened here is closed on exit.

    Usage:
        async with scoped_database(indexes=EMAIL_LOG_INDEXES) as db:
            ...
    """
    config = config or AsyncDatabaseConfig.from_env()
    config.validate()
    client = create_client(config)
    try:
        try:
            await _ping(client, config)
        except (ConnectionFailure, ServerSelectionTimeoutError, asyncio.TimeoutError) as e:
            logger.error(f"Failed to connect to MongoDB: {e}")
            raise ConnectionFailure(f"Could not connect to MongoDB: {e}") from e
        db = client[config.database_name]
        if indexes:
            await ensure_indexes(db, indexes)
        yield db
    finally:
        client.close()


# Global async database manager instance
db_manager = AsyncDatabaseManager()


async def get_database() -> AsyncGenerator[AsyncIOMotorDatabase, None]:
    """
    FastAPI dependency for database access

    Usage:
        @router.get("/emails")
        async def list_emails(db: AsyncIOMotorDatabase = Depends(get_database)):
            ...
    """
    if not db_manager.is_initialized:
        await db_manager.initialize()
    yield db_manager.database
