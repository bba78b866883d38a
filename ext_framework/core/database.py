"""
MongoDB connection management for plugin schema storage.

The async client is created lazily on first use, so a process whose plugins
declare no schema never opens a database connection.
"""

from typing import Optional, Any, Dict
import logging
import time

from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from .config import settings

logger = logging.getLogger(__name__)


class DatabaseManager:
    """Async database manager with connection pooling"""

    def __init__(self, mongodb_url: Optional[str] = None, database_name: Optional[str] = None):
        self.mongodb_url = mongodb_url or settings.mongodb_url
        self.database_name = database_name or settings.database_name
        self.async_client: Optional[AsyncIOMotorClient] = None
        self.async_database: Optional[AsyncIOMotorDatabase] = None
        self._connection_healthy = False
        self._last_health_check = 0.0
        self._health_check_interval = 30  # seconds

    def _get_async_client_options(self) -> Dict[str, Any]:
        """Get connection options for the async client"""
        return {
            # Connection pooling
            "maxPoolSize": 50,
            "minPoolSize": 0,
            "maxIdleTimeMS": 900000,
            "waitQueueTimeoutMS": 5000,

            # Timeout configurations
            "connectTimeoutMS": 5000,
            "socketTimeoutMS": 20000,
            "serverSelectionTimeoutMS": 5000,

            # Reliability options
            "retryWrites": True,
            "retryReads": True,
        }

    async def connect_async(self) -> None:
        """Create asynchronous MongoDB connection"""
        try:
            options = self._get_async_client_options()
            self.async_client = AsyncIOMotorClient(self.mongodb_url, **options)
            self.async_database = self.async_client[self.database_name]

            # Health check
            await self.async_client.admin.command("ping", maxTimeMS=5000)
            self._connection_healthy = True
            self._last_health_check = time.time()

            logger.info(f"MongoDB connected: {self.database_name}")

        except Exception as e:
            logger.error(f"MongoDB connection failed: {e}")
            self._connection_healthy = False
            raise

    async def close_async_connection(self) -> None:
        """Close asynchronous MongoDB connection"""
        if self.async_client:
            self.async_client.close()
            self.async_client = None
            self.async_database = None
            logger.info("MongoDB connection closed")

    async def get_async_database(self) -> AsyncIOMotorDatabase:
        """Get asynchronous database instance, connecting on first use"""
        if self.async_database is None:
            await self.connect_async()
        return self.async_database

    @property
    def is_connected(self) -> bool:
        return self.async_client is not None

    async def async_is_healthy(self) -> bool:
        """Ping the server, caching the result for the health check interval"""
        current_time = time.time()

        if (current_time - self._last_health_check) < self._health_check_interval:
            return self._connection_healthy

        try:
            if self.async_client:
                await self.async_client.admin.command("ping", maxTimeMS=2000)
                self._connection_healthy = True
            else:
                self._connection_healthy = False
        except Exception as e:
            logger.warning(f"Database health check failed: {e}")
            self._connection_healthy = False

        self._last_health_check = current_time
        return self._connection_healthy

    def get_connection_stats(self) -> Dict[str, Any]:
        """Get connection statistics"""
        return {
            "async_connected": self.async_client is not None,
            "database": self.database_name,
            "healthy": self._connection_healthy,
            "last_health_check": self._last_health_check
        }
