"""
Persistence backends for uploaded media.

Each backend accepts bytes (or a binary file object) plus a content type and
returns a locator, the string written to the video record:

- LocalFileStore: files under ``assets_root``, served by the ``/assets`` mount
- MemoryAssetStore: process memory keyed by video id, served by
  ``GET /api/thumbnails/{video_id}``; lost on restart
- S3AssetStore: objects in the configured bucket, exposed through presigned
  or public URLs

The backend for each upload kind is chosen once from configuration by
``build_asset_store``. Any I/O or SDK failure is raised as
``StorageWriteError`` / ``StorageReadError`` so the pipeline aborts before it
touches the record.
"""

import asyncio
import logging
import mimetypes
import threading

from abc import ABC, abstractmethod
from dataclasses import dataclass
from functools import wraps
from pathlib import Path
from typing import Any, BinaryIO, Callable, TypeVar
from uuid import UUID

import aiofiles
import aiofiles.os

from botocore.exceptions import BotoCoreError, ClientError

from app.config import Settings
from app.core.errors import AssetNotFoundError, StorageReadError, StorageWriteError
from app.core.storage import StorageClient, get_storage_client, is_not_found_error


# Set up module-level logger for tracking storage operations
logger = logging.getLogger(__name__)

T = TypeVar("T")

# Chunk size used when copying file objects to disk
COPY_CHUNK_SIZE = 1024 * 1024

DEFAULT_CONTENT_TYPE = "application/octet-stream"

AssetData = bytes | BinaryIO


def async_wrap(func: Callable[..., T]) -> Callable[..., "asyncio.Future[T]"]:
    """
    Decorator to run a blocking function in a worker thread.

    boto3 and plain file reads block; wrapping them keeps the event loop free.
    """

    @wraps(func)
    async def wrapper(*args: Any, **kwargs: Any) -> T:
        return await asyncio.to_thread(func, *args, **kwargs)

    return wrapper


@dataclass(frozen=True)
class StoredAsset:
    """Bytes of a stored asset and the content type they were stored with."""

    data: bytes
    content_type: str


async def _read_all(data: AssetData) -> bytes:
    if isinstance(data, bytes | bytearray):
        return bytes(data)
    return await asyncio.to_thread(data.read)


class AssetStore(ABC):
    """Contract shared by all persistence backends."""

    name: str = "abstract"

    @abstractmethod
    async def store(self, *, key: str, video_id: UUID, data: AssetData, content_type: str) -> str:
        """Persist ``data`` and return its locator."""

    @abstractmethod
    async def retrieve(self, locator: str) -> StoredAsset:
        """Return the bytes behind a locator."""

    @abstractmethod
    async def delete(self, locator: str) -> None:
        """Remove the asset behind a locator. Missing assets are ignored."""

    async def discard(self, locator: str) -> None:
        """Undo the most recent ``store`` that returned ``locator``."""
        await self.delete(locator)

    async def resolve_url(self, locator: str) -> str:
        """Convert a stored locator into the URL handed to clients."""
        return locator


# =============================================================================
# Local filesystem
# =============================================================================


class LocalFileStore(AssetStore):
    """
    Assets written under a root directory.

    The locator is ``{public_base_url}/assets/{key}``; the application mounts
    the same directory at ``/assets``.
    """

    name = "local"

    def __init__(self, root: str | Path, public_base_url: str) -> None:
        self.root = Path(root).resolve()
        self.url_prefix = f"{public_base_url}/assets/"

    def path_for(self, key: str) -> Path:
        """Map a key to a path, refusing keys that escape the root."""
        path = (self.root / key).resolve()
        if not path.is_relative_to(self.root) or path == self.root:
            raise StorageWriteError(f"Invalid asset key '{key}'")
        return path

    def _key_from_locator(self, locator: str) -> str:
        if not locator.startswith(self.url_prefix):
            raise AssetNotFoundError(f"Locator is not served by the local store: {locator}")
        return locator[len(self.url_prefix):]

    async def store(self, *, key: str, video_id: UUID, data: AssetData, content_type: str) -> str:
        path = self.path_for(key)

        try:
            await aiofiles.os.makedirs(path.parent, exist_ok=True)
            async with aiofiles.open(path, "wb") as out:
                if isinstance(data, bytes | bytearray):
                    await out.write(data)
                else:
                    while chunk := await asyncio.to_thread(data.read, COPY_CHUNK_SIZE):
                        await out.write(chunk)
        except OSError as e:
            logger.exception("Failed to write asset %s", path)
            await self._remove(path)
            raise StorageWriteError("Failed to write asset to disk") from e

        logger.info("Stored asset on local disk", extra={"key": key, "video_id": str(video_id)})
        return f"{self.url_prefix}{key}"

    async def retrieve(self, locator: str) -> StoredAsset:
        path = self.path_for(self._key_from_locator(locator))

        try:
            async with aiofiles.open(path, "rb") as f:
                data = await f.read()
        except FileNotFoundError as e:
            raise AssetNotFoundError(f"Asset not found: {locator}") from e
        except OSError as e:
            logger.exception("Failed to read asset %s", path)
            raise StorageReadError("Failed to read asset from disk") from e

        content_type, _ = mimetypes.guess_type(path.name)
        return StoredAsset(data=data, content_type=content_type or DEFAULT_CONTENT_TYPE)

    async def delete(self, locator: str) -> None:
        await self._remove(self.path_for(self._key_from_locator(locator)))

    @staticmethod
    async def _remove(path: Path) -> None:
        try:
            await aiofiles.os.remove(path)
        except FileNotFoundError:
            pass
        except OSError:
            logger.warning("Could not remove asset file %s", path, exc_info=True)


# =============================================================================
# In-process memory
# =============================================================================


class MemoryAssetStore(AssetStore):
    """
    Assets held in a dict keyed by video id, guarded by one lock.

    A new upload for the same video replaces the previous asset, which is kept
    until the next upload so ``discard`` can put it back. The locator is
    ``{public_base_url}/api/thumbnails/{video_id}``.
    """

    name = "memory"

    def __init__(self, public_base_url: str) -> None:
        self.url_prefix = f"{public_base_url}/api/thumbnails/"
        self._assets: dict[UUID, StoredAsset] = {}
        self._replaced: dict[UUID, StoredAsset] = {}
        self._lock = threading.Lock()

    def locator_for(self, video_id: UUID) -> str:
        return f"{self.url_prefix}{video_id}"

    def _video_id_from_locator(self, locator: str) -> UUID:
        if not locator.startswith(self.url_prefix):
            raise AssetNotFoundError(f"Locator is not served by the memory store: {locator}")
        try:
            return UUID(locator[len(self.url_prefix):])
        except ValueError as e:
            raise AssetNotFoundError(f"Asset not found: {locator}") from e

    async def store(self, *, key: str, video_id: UUID, data: AssetData, content_type: str) -> str:
        try:
            payload = await _read_all(data)
        except OSError as e:
            raise StorageWriteError("Failed to read upload for in-memory storage") from e

        with self._lock:
            previous = self._assets.get(video_id)
            self._assets[video_id] = StoredAsset(data=payload, content_type=content_type)
            if previous is None:
                self._replaced.pop(video_id, None)
            else:
                self._replaced[video_id] = previous

        logger.info("Stored asset in memory", extra={"key": key, "video_id": str(video_id)})
        return self.locator_for(video_id)

    async def retrieve(self, locator: str) -> StoredAsset:
        video_id = self._video_id_from_locator(locator)
        with self._lock:
            asset = self._assets.get(video_id)
        if asset is None:
            raise AssetNotFoundError(f"Asset not found: {locator}")
        return asset

    async def delete(self, locator: str) -> None:
        video_id = self._video_id_from_locator(locator)
        with self._lock:
            self._assets.pop(video_id, None)
            self._replaced.pop(video_id, None)

    async def discard(self, locator: str) -> None:
        video_id = self._video_id_from_locator(locator)
        with self._lock:
            previous = self._replaced.pop(video_id, None)
            if previous is None:
                self._assets.pop(video_id, None)
            else:
                self._assets[video_id] = previous


# =============================================================================
# S3-compatible object storage
# =============================================================================


class S3AssetStore(AssetStore):
    """
    Assets stored as objects in the configured bucket.

    With ``presign`` enabled the locator is ``"bucket,key"`` and
    ``resolve_url`` signs a fresh GET URL on every read. Otherwise the locator
    is the public object URL.
    """

    name = "s3"

    def __init__(self, client: StorageClient, presign: bool, presign_expiration: int) -> None:
        self.client = client
        self.presign = presign
        self.presign_expiration = presign_expiration

    def _locator_for(self, key: str) -> str:
        if self.presign:
            return f"{self.client.bucket_name},{key}"
        return self.client.public_object_url(key)

    def _parse_locator(self, locator: str) -> tuple[str, str]:
        """Return ``(bucket, key)`` for either locator form."""
        if self.presign:
            bucket, sep, key = locator.partition(",")
            if not sep or not bucket or not key:
                raise AssetNotFoundError(f"Malformed object locator: {locator}")
            return bucket, key

        prefix = self.client.public_object_url("")
        if not locator.startswith(prefix):
            raise AssetNotFoundError(f"Locator is not served by this bucket: {locator}")
        return self.client.bucket_name, locator[len(prefix):]

    async def store(self, *, key: str, video_id: UUID, data: AssetData, content_type: str) -> str:
        @async_wrap
        def _put() -> None:
            self.client.put_object(key, data, content_type)

        try:
            await _put()
        except (ClientError, BotoCoreError) as e:
            raise StorageWriteError("Failed to upload asset to object storage") from e

        return self._locator_for(key)

    async def retrieve(self, locator: str) -> StoredAsset:
        _, key = self._parse_locator(locator)

        @async_wrap
        def _get() -> tuple[bytes, str]:
            return self.client.get_object(key)

        try:
            data, content_type = await _get()
        except ClientError as e:
            if is_not_found_error(e):
                raise AssetNotFoundError(f"Asset not found: {locator}") from e
            raise StorageReadError("Failed to download asset from object storage") from e
        except BotoCoreError as e:
            raise StorageReadError("Failed to download asset from object storage") from e

        return StoredAsset(data=data, content_type=content_type)

    async def delete(self, locator: str) -> None:
        _, key = self._parse_locator(locator)

        @async_wrap
        def _delete() -> None:
            self.client.delete_object(key)

        try:
            await _delete()
        except (ClientError, BotoCoreError) as e:
            raise StorageWriteError("Failed to delete asset from object storage") from e

    async def resolve_url(self, locator: str) -> str:
        # Locators written before presigning was enabled are already URLs
        if not self.presign or "://" in locator:
            return locator

        bucket, key = self._parse_locator(locator)

        @async_wrap
        def _sign() -> str:
            return self.client.generate_presigned_download_url(
                key, expires_in=self.presign_expiration, bucket=bucket
            )

        try:
            return await _sign()
        except (ClientError, BotoCoreError) as e:
            raise StorageReadError("Failed to sign asset URL") from e


# =============================================================================
# Factory
# =============================================================================


def build_asset_store(backend_name: str, settings: Settings) -> AssetStore:
    """
    Create the backend named ``backend_name`` (``local``, ``memory`` or ``s3``).

    Raises:
        ValueError: For an unknown backend name.
    """
    if backend_name == "local":
        return LocalFileStore(settings.assets_root, settings.public_base_url)
    if backend_name == "memory":
        return MemoryAssetStore(settings.public_base_url)
    if backend_name == "s3":
        return S3AssetStore(
            get_storage_client(settings),
            presign=settings.s3_presign_urls,
            presign_expiration=settings.presigned_url_expiration_seconds,
        )
    raise ValueError(f"Unknown storage backend '{backend_name}'")


__all__ = [
    "AssetStore",
    "LocalFileStore",
    "MemoryAssetStore",
    "S3AssetStore",
    "StoredAsset",
    "async_wrap",
    "build_asset_store",
]
