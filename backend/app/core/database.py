"""
Tubely Video Record Store Module

This module owns the video records the upload endpoints update:
- DatabaseClient: async MongoDB connection management using Motor (connection
  pooling, ping health check, retry with exponential backoff, index creation)
- VideoRepository: the record store contract used by the upload pipeline
- MongoVideoRepository: records in the ``videos`` collection keyed by the
  string form of the video UUID
- InMemoryVideoRepository: a lock-guarded dict for tests and local runs
- init_record_store / close_record_store / get_video_repository: lifecycle
  hooks for the FastAPI lifespan and the request dependency

Driver failures are reported as ``PersistFailedError``; missing records as
``RecordNotFoundError``.
"""

import asyncio
import logging
import threading

from abc import ABC, abstractmethod
from datetime import UTC, datetime
from uuid import UUID

from motor.motor_asyncio import (
    AsyncIOMotorClient,
    AsyncIOMotorCollection,
    AsyncIOMotorDatabase,
)
from pymongo import ReturnDocument
from pymongo.errors import ConnectionFailure, DuplicateKeyError, PyMongoError, ServerSelectionTimeoutError

from app.config import Settings, get_settings
from app.core.errors import PersistFailedError, RecordNotFoundError
from app.models.video import LocatorField, Video


# Configure module logger for structured logging
logger = logging.getLogger(__name__)

VIDEOS_COLLECTION = "videos"


# =============================================================================
# MongoDB Connection Management
# =============================================================================


class DatabaseClient:
    """
    Async MongoDB client wrapper with connection pooling and lifecycle management.

    Example usage:
        ```python
        db_client = DatabaseClient(Settings())
        await db_client.connect()
        videos = db_client.get_videos_collection()
        await db_client.close()
        ```
    """

    MAX_CONNECT_RETRIES = 3
    SERVER_SELECTION_TIMEOUT_MS = 5000

    def __init__(self, settings: Settings) -> None:
        self._mongodb_uri = settings.mongodb_uri
        self._db_name = settings.mongodb_db_name
        self._min_pool_size = settings.mongodb_min_pool_size
        self._max_pool_size = settings.mongodb_max_pool_size
        self._client: AsyncIOMotorClient | None = None
        self._database: AsyncIOMotorDatabase | None = None

    async def connect(self) -> bool:
        """
        Establish the MongoDB connection, retrying with exponential backoff.

        Each attempt creates the Motor client and verifies it with a ``ping``.
        Backoff doubles from one second between attempts.

        Returns:
            bool: True if connected, False after all retries failed.
        """
        retry_delay = 1.0

        for attempt in range(1, self.MAX_CONNECT_RETRIES + 1):
            try:
                logger.info(
                    "Attempting MongoDB connection (attempt %d/%d) to %s",
                    attempt,
                    self.MAX_CONNECT_RETRIES,
                    self._db_name,
                )
                self._client = AsyncIOMotorClient(
                    self._mongodb_uri,
                    minPoolSize=self._min_pool_size,
                    maxPoolSize=self._max_pool_size,
                    serverSelectionTimeoutMS=self.SERVER_SELECTION_TIMEOUT_MS,
                    uuidRepresentation="standard",
                    tz_aware=True,
                )
                self._database = self._client[self._db_name]
                await self._client.admin.command("ping")

                logger.info(
                    "Connected to MongoDB database %s (pool %d-%d)",
                    self._db_name,
                    self._min_pool_size,
                    self._max_pool_size,
                )
                return True

            except (ServerSelectionTimeoutError, ConnectionFailure):
                logger.exception(
                    "MongoDB connection failure (attempt %d/%d)", attempt, self.MAX_CONNECT_RETRIES
                )
                if attempt < self.MAX_CONNECT_RETRIES:
                    logger.warning("Retrying in %.0f seconds...", retry_delay)
                    await asyncio.sleep(retry_delay)
                    retry_delay *= 2

        logger.error(
            "Failed to connect to MongoDB after %d attempts. "
            "Check connection URI and server availability.",
            self.MAX_CONNECT_RETRIES,
        )
        return False

    async def close(self) -> None:
        """Close the Motor client. Safe to call when not connected."""
        if self._client is None:
            logger.warning("MongoDB close called but no active connection exists")
            return

        self._client.close()
        self._client = None
        self._database = None
        logger.info("MongoDB connection closed for database: %s", self._db_name)

    async def ping(self) -> bool:
        """Health check using the MongoDB admin ping command."""
        if self._client is None:
            logger.warning("MongoDB ping failed: No active connection")
            return False

        try:
            await self._client.admin.command("ping")
        except PyMongoError:
            logger.exception("MongoDB ping failed")
            return False
        return True

    def get_database(self) -> AsyncIOMotorDatabase:
        """
        Get the database instance.

        Raises:
            RuntimeError: If not connected to MongoDB.
        """
        if self._database is None:
            raise RuntimeError(
                "MongoDB database not available. Call connect() first or check connection status."
            )
        return self._database

    def get_videos_collection(self) -> AsyncIOMotorCollection:
        """Get the ``videos`` collection holding video records."""
        return self.get_database()[VIDEOS_COLLECTION]

    async def create_indexes(self) -> None:
        """Create indexes for owner listings of video records."""
        videos = self.get_videos_collection()
        await videos.create_index("user_id")
        await videos.create_index([("user_id", 1), ("created_at", -1)])
        logger.info("Created indexes on %s collection", VIDEOS_COLLECTION)


# =============================================================================
# Record Store Contract
# =============================================================================


class VideoRepository(ABC):
    """
    Record store used by the upload pipeline.

    Implementations serialize concurrent read/modify/write access so that two
    uploads to the same record cannot interleave a stale read with a write.
    """

    @abstractmethod
    async def get_video(self, video_id: UUID) -> Video:
        """Return the record or raise RecordNotFoundError."""

    @abstractmethod
    async def create_video(self, video: Video) -> Video:
        """Insert a new record. Raises PersistFailedError if the id exists."""

    @abstractmethod
    async def update_video(self, video: Video) -> Video:
        """Replace an existing record."""

    @abstractmethod
    async def set_locator(self, video_id: UUID, field: LocatorField, locator: str) -> Video:
        """Atomically point ``field`` of a record at ``locator``."""


class InMemoryVideoRepository(VideoRepository):
    """Records held in a dict guarded by a single lock. Lost on restart."""

    def __init__(self) -> None:
        self._videos: dict[UUID, Video] = {}
        self._lock = threading.Lock()

    async def get_video(self, video_id: UUID) -> Video:
        with self._lock:
            video = self._videos.get(video_id)
        if video is None:
            raise RecordNotFoundError(f"Video {video_id} not found")
        return video

    async def create_video(self, video: Video) -> Video:
        with self._lock:
            if video.id in self._videos:
                raise PersistFailedError(f"Video {video.id} already exists")
            self._videos[video.id] = video
        return video

    async def update_video(self, video: Video) -> Video:
        with self._lock:
            if video.id not in self._videos:
                raise RecordNotFoundError(f"Video {video.id} not found")
            updated = video.model_copy(update={"updated_at": datetime.now(UTC)})
            self._videos[video.id] = updated
        return updated

    async def set_locator(self, video_id: UUID, field: LocatorField, locator: str) -> Video:
        with self._lock:
            current = self._videos.get(video_id)
            if current is None:
                raise RecordNotFoundError(f"Video {video_id} not found")
            updated = current.with_locator(field, locator)
            self._videos[video_id] = updated
        return updated


class MongoVideoRepository(VideoRepository):
    """
    Records in the MongoDB ``videos`` collection.

    Documents use the string UUID as ``_id``. Locator updates use a single
    ``find_one_and_update`` so MongoDB's per-document atomicity provides the
    read/modify/write guard.
    """

    def __init__(self, collection: AsyncIOMotorCollection) -> None:
        self._collection = collection

    async def get_video(self, video_id: UUID) -> Video:
        try:
            document = await self._collection.find_one({"_id": str(video_id)})
        except PyMongoError as e:
            logger.exception("Failed to load video %s", video_id)
            raise PersistFailedError("Failed to load video record") from e

        if document is None:
            raise RecordNotFoundError(f"Video {video_id} not found")
        return Video.from_document(document)

    async def create_video(self, video: Video) -> Video:
        try:
            await self._collection.insert_one(video.to_document())
        except DuplicateKeyError as e:
            raise PersistFailedError(f"Video {video.id} already exists") from e
        except PyMongoError as e:
            logger.exception("Failed to create video %s", video.id)
            raise PersistFailedError("Failed to create video record") from e
        return video

    async def update_video(self, video: Video) -> Video:
        updated = video.model_copy(update={"updated_at": datetime.now(UTC)})
        try:
            result = await self._collection.replace_one({"_id": str(video.id)}, updated.to_document())
        except PyMongoError as e:
            logger.exception("Failed to update video %s", video.id)
            raise PersistFailedError("Failed to update video record") from e

        if result.matched_count == 0:
            raise RecordNotFoundError(f"Video {video.id} not found")
        return updated

    async def set_locator(self, video_id: UUID, field: LocatorField, locator: str) -> Video:
        try:
            document = await self._collection.find_one_and_update(
                {"_id": str(video_id)},
                {"$set": {field.value: locator, "updated_at": datetime.now(UTC)}},
                return_document=ReturnDocument.AFTER,
            )
        except PyMongoError as e:
            logger.exception("Failed to set %s on video %s", field.value, video_id)
            raise PersistFailedError("Failed to update video record") from e

        if document is None:
            raise RecordNotFoundError(f"Video {video_id} not found")
        return Video.from_document(document)


# =============================================================================
# Lifecycle
# =============================================================================


# Container class for singletons to avoid global statements
class _RecordStoreContainer:
    client: DatabaseClient | None = None
    repository: VideoRepository | None = None


_container = _RecordStoreContainer()


async def init_db(settings: Settings | None = None) -> DatabaseClient:
    """
    Initialize the global MongoDB client: connect and create indexes.

    Raises:
        RuntimeError: If connection to MongoDB fails after all retries.
    """
    if _container.client is not None:
        logger.warning("Database client already initialized, returning existing instance")
        return _container.client

    if settings is None:
        settings = get_settings()

    client = DatabaseClient(settings)
    if not await client.connect():
        raise RuntimeError(
            "Failed to establish MongoDB connection. "
            "Check mongodb_uri configuration and server availability."
        )

    await client.create_indexes()
    _container.client = client
    return client


async def close_db() -> None:
    """Close the global MongoDB client, if any."""
    if _container.client is not None:
        await _container.client.close()
        _container.client = None


def get_db_client() -> DatabaseClient:
    """
    Get the global database client.

    Raises:
        RuntimeError: If init_db() has not been called.
    """
    if _container.client is None:
        raise RuntimeError(
            "Database client not initialized. Call init_db() first during application startup."
        )
    return _container.client


async def init_record_store(settings: Settings) -> VideoRepository:
    """Create the repository selected by ``settings.record_store``."""
    if settings.record_store == "memory":
        logger.warning("Using in-memory video record store; records are lost on restart")
        repository: VideoRepository = InMemoryVideoRepository()
    else:
        client = await init_db(settings)
        repository = MongoVideoRepository(client.get_videos_collection())

    _container.repository = repository
    logger.info("Video record store initialized: %s", settings.record_store)
    return repository


async def close_record_store() -> None:
    """Drop the repository and close the MongoDB client."""
    _container.repository = None
    await close_db()


def get_video_repository() -> VideoRepository:
    """
    FastAPI dependency returning the active repository.

    Raises:
        RuntimeError: If init_record_store() has not been called.
    """
    if _container.repository is None:
        raise RuntimeError(
            "Video record store not initialized. Call init_record_store() during startup."
        )
    return _container.repository


__all__ = [
    "DatabaseClient",
    "InMemoryVideoRepository",
    "MongoVideoRepository",
    "VideoRepository",
    "close_db",
    "close_record_store",
    "get_db_client",
    "get_video_repository",
    "init_db",
    "init_record_store",
]
