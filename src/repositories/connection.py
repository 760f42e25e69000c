"""
MongoDB Connection Management
Singleton Motor client with connection pooling and lifecycle management.
"""
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo.errors import PyMongoError
from typing import Optional
from ..config import settings
from ..utils.observability import logger


class DatabaseManager:
    """
    Singleton MongoDB client manager with async Motor.
    Handles connection lifecycle, pooling, and graceful shutdown.
    """

    _instance: Optional["DatabaseManager"] = None
    _client: Optional[AsyncIOMotorClient] = None
    _database: Optional[AsyncIOMotorDatabase] = None

    def __new__(cls) -> "DatabaseManager":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    async def connect(self) -> None:
        """
        Initialize MongoDB connection with configured pool settings.
        Idempotent - safe to call multiple times.
        """
        if self._client:
            try:
                await self._client.admin.command("ping")
                logger.debug("Reusing healthy MongoDB connection")
                return
            except (RuntimeError, PyMongoError):
                logger.warning("MongoDB connection lost. Rebuilding client...")
                self._client = None
                self._database = None

        logger.info(
            f"Connecting to MongoDB at {settings.mongodb_uri} "
            f"(environment={settings.environment}, "
            f"database={settings.mongodb_database}, pool={settings.mongodb_max_pool_size})"
        )
        # tz_aware so stored datetimes compare with dt.datetime.now(dt.UTC)
        self._client = AsyncIOMotorClient(
            settings.mongodb_uri,
            maxPoolSize=settings.mongodb_max_pool_size,
            minPoolSize=settings.mongodb_min_pool_size,
            serverSelectionTimeoutMS=settings.mongodb_server_selection_timeout_ms,
            tz_aware=True,
        )
        self._database = self._client[settings.mongodb_database]

    async def disconnect(self) -> None:
        """Close the client. Idempotent."""
        if self._client is None:
            logger.debug("MongoDB client already disconnected")
            return

        logger.info("Closing MongoDB connection")
        self._client.close()
        self._client = None
        self._database = None

    async def ping(self) -> bool:
        if self._client is None:
            return False
        try:
            await self._client.admin.command("ping")
            return True
        except PyMongoError as e:
            logger.warning(f"MongoDB ping failed: {e}")
            return False

    @property
    def database(self) -> AsyncIOMotorDatabase:
        """
        Get the database instance.
        Raises RuntimeError if not connected.
        """
        if self._database is None:
            raise RuntimeError(
                "Database not connected. Call await db_manager.connect() first."
            )
        return self._database

    async def create_indexes(self) -> None:
        """
        Create the indexes backing the engine's queries.
        Should be called during application startup.
        """
        db = self.database

        logger.info("Creating MongoDB indexes")

        # Eligible-lead and qualification-candidate scans
        await db.leads.create_index(
            [("auto_progression_enabled", 1), ("status", 1)],
            name="idx_progression_eligibility"
        )
        await db.leads.create_index(
            [("tenant_id", 1), ("status", 1), ("sentiment_score", -1)],
            name="idx_tenant_status_sentiment"
        )

        await db.progression_rules.create_index(
            [("is_active", 1), ("tenant_id", 1)],
            name="idx_active_rules"
        )

        # Busy-window lookups per assignee
        await db.calendar_events.create_index(
            [("user_id", 1), ("start_time", 1), ("end_time", 1)],
            name="idx_user_window"
        )
        await db.calendar_events.create_index(
            [("lead_id", 1), ("start_time", -1)],
            name="idx_lead_events"
        )

        logger.info("MongoDB indexes created successfully")


# Singleton instance
db_manager = DatabaseManager()


async def get_database() -> AsyncIOMotorDatabase:
    """Dependency helper returning the connected database."""
    return db_manager.database
