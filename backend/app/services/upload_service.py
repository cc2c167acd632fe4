"""
Tubely Upload Service Module

Orchestrates the thumbnail and video upload pipelines. Each request passes
through the same gates, in order, and no bytes are stored until all of them
have passed:

1. The caller is authenticated (FastAPI dependency, before this service runs)
2. The video record exists and is owned by the caller
3. The multipart part is present, of an accepted media type and within budget

Then the pipeline names the asset, writes it to the configured backend, and
finally points the record at the new locator. The record update is the last
step: if it fails, the freshly stored asset is deleted once on a best-effort
basis. An asset whose compensating delete also fails stays orphaned and is
logged.

Video uploads are additionally spooled to a temporary file, remuxed for fast
start and inspected for their aspect ratio, which becomes the key prefix.
Both temporary files are removed on every exit path.
"""

import asyncio
import logging

from pathlib import Path
from uuid import UUID

from fastapi import Request

from app.config import Settings
from app.core.database import VideoRepository
from app.core.errors import AppError, NotVideoOwnerError
from app.models.video import LocatorField, Video
from app.services.media_processing import VideoProcessor
from app.services.storage_service import AssetStore
from app.services.upload_ingestor import (
    read_bounded,
    read_upload_part,
    remove_file,
    spooled_temp_file,
)
from app.utils.file_validator import (
    UploadKind,
    classify_media_type,
    extension_for_media_type,
    max_size_for_kind,
    validate_file_size,
)
from app.utils.logger import add_log_context
from app.utils.naming import classify_aspect_ratio, generate_asset_key


# Configure module logger
logger = logging.getLogger(__name__)

THUMBNAIL_FIELD = "thumbnail"
VIDEO_FIELD = "video"


class UploadService:
    """
    Upload pipeline for video records.

    Attributes:
        repository: Record store holding the videos
        thumbnail_store: Backend receiving thumbnails
        video_store: Backend receiving video files
        processor: Fast-start remux and dimension probe for videos
        settings: Size budgets and temporary directory configuration

    Example:
        ```python
        service = UploadService(repository, thumbnail_store, video_store, processor, settings)
        video = await service.upload_thumbnail(video_id, user_id, request)
        ```
    """

    def __init__(
        self,
        repository: VideoRepository,
        thumbnail_store: AssetStore,
        video_store: AssetStore,
        processor: VideoProcessor,
        settings: Settings,
    ) -> None:
        self.repository = repository
        self.thumbnail_store = thumbnail_store
        self.video_store = video_store
        self.processor = processor
        self.settings = settings

    async def _authorize(self, video_id: UUID, user_id: UUID) -> Video:
        """
        Load the record and require the caller to own it.

        Raises:
            RecordNotFoundError: No record with ``video_id``.
            NotVideoOwnerError: The record belongs to another user.
        """
        video = await self.repository.get_video(video_id)
        if video.user_id != user_id:
            logger.warning(
                "User %s attempted to modify video %s owned by %s", user_id, video_id, video.user_id
            )
            raise NotVideoOwnerError("You do not own this video")
        return video

    async def _record_locator(
        self,
        store: AssetStore,
        video_id: UUID,
        field: LocatorField,
        locator: str,
        upload_logger: logging.LoggerAdapter,
    ) -> Video:
        """Write the locator to the record, discarding the stored asset if that fails."""
        try:
            return await self.repository.set_locator(video_id, field, locator)
        except AppError:
            upload_logger.error("Record update failed; discarding stored asset %s", locator)
            try:
                await store.discard(locator)
            except AppError:
                upload_logger.exception("Compensating delete failed; asset %s is orphaned", locator)
            raise

    async def resolve_locators(self, video: Video) -> Video:
        """Return a copy of ``video`` whose locators are client-usable URLs."""
        update: dict[str, str] = {}
        if video.thumbnail_url:
            update["thumbnail_url"] = await self.thumbnail_store.resolve_url(video.thumbnail_url)
        if video.video_url:
            update["video_url"] = await self.video_store.resolve_url(video.video_url)
        return video.model_copy(update=update) if update else video

    async def get_video(self, video_id: UUID) -> Video:
        """Load a record with its locators resolved for clients."""
        return await self.resolve_locators(await self.repository.get_video(video_id))

    async def upload_thumbnail(self, video_id: UUID, user_id: UUID, request: Request) -> Video:
        """
        Store the ``thumbnail`` form field and point the record at it.

        Raises:
            RecordNotFoundError, NotVideoOwnerError: Ownership gate failed.
            FormParseError, FieldMissingError, InvalidMediaTypeError,
            UnsupportedMediaTypeError, FileTooLargeError: Input rejected.
            StorageWriteError, PersistFailedError: Upstream failure.
        """
        kind = UploadKind.THUMBNAIL
        upload_logger = add_log_context(
            logger, video_id=str(video_id), user_id=str(user_id), kind=kind.value
        )
        max_bytes = max_size_for_kind(kind, self.settings)

        await self._authorize(video_id, user_id)

        async with read_upload_part(request, THUMBNAIL_FIELD, max_bytes) as part:
            media_type = classify_media_type(part.content_type, kind)
            validate_file_size(part.size, kind, self.settings)
            data = await read_bounded(part, max_bytes)

        key = generate_asset_key(extension_for_media_type(media_type))
        locator = await self.thumbnail_store.store(
            key=key, video_id=video_id, data=data, content_type=media_type
        )
        upload_logger.info("Stored thumbnail (%d bytes) via %s backend", len(data), self.thumbnail_store.name)

        video = await self._record_locator(
            self.thumbnail_store, video_id, LocatorField.THUMBNAIL, locator, upload_logger
        )
        upload_logger.info("Thumbnail updated")
        return await self.resolve_locators(video)

    async def upload_video(self, video_id: UUID, user_id: UUID, request: Request) -> Video:
        """
        Store the ``video`` form field, remuxed for fast start, and point the
        record at it.

        Raises:
            RecordNotFoundError, NotVideoOwnerError: Ownership gate failed.
            FormParseError, FieldMissingError, InvalidMediaTypeError,
            UnsupportedMediaTypeError, FileTooLargeError: Input rejected.
            VideoProcessingError: ffmpeg or ffprobe failed.
            StorageWriteError, PersistFailedError: Upstream failure.
        """
        kind = UploadKind.VIDEO
        upload_logger = add_log_context(
            logger, video_id=str(video_id), user_id=str(user_id), kind=kind.value
        )
        max_bytes = max_size_for_kind(kind, self.settings)

        await self._authorize(video_id, user_id)

        async with read_upload_part(request, VIDEO_FIELD, max_bytes) as part:
            media_type = classify_media_type(part.content_type, kind)
            validate_file_size(part.size, kind, self.settings)
            extension = extension_for_media_type(media_type)

            async with spooled_temp_file(
                part, max_bytes, suffix=f".{extension}", directory=self.settings.upload_temp_dir
            ) as temp_path:
                processed_path = await self.processor.normalize(temp_path)
                try:
                    locator = await self._store_processed_video(
                        video_id, processed_path, media_type, extension, upload_logger
                    )
                finally:
                    await remove_file(processed_path)

        video = await self._record_locator(
            self.video_store, video_id, LocatorField.VIDEO, locator, upload_logger
        )
        upload_logger.info("Video updated")
        return await self.resolve_locators(video)

    async def _store_processed_video(
        self,
        video_id: UUID,
        path: Path,
        media_type: str,
        extension: str,
        upload_logger: logging.LoggerAdapter,
    ) -> str:
        dimensions = await self.processor.inspect(path)
        aspect_ratio = classify_aspect_ratio(dimensions.width, dimensions.height)
        key = generate_asset_key(extension, aspect_ratio)

        video_file = await asyncio.to_thread(path.open, "rb")
        try:
            locator = await self.video_store.store(
                key=key, video_id=video_id, data=video_file, content_type=media_type
            )
        finally:
            video_file.close()

        upload_logger.info(
            "Stored %dx%d video (%s) via %s backend",
            dimensions.width,
            dimensions.height,
            aspect_ratio.value,
            self.video_store.name,
        )
        return locator


__all__ = ["THUMBNAIL_FIELD", "VIDEO_FIELD", "UploadService"]
