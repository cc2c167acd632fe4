"""
Shared pieces of the upload API: the error response model, path parameter
parsing, and the dependency injection functions tests override.
"""

from typing import Any
from uuid import UUID

from fastapi import Depends, status
from pydantic import BaseModel, Field

from app.config import Settings, get_settings
from app.core.database import VideoRepository, get_video_repository
from app.core.errors import InvalidVideoIDError
from app.services.media_processing import FFmpegVideoProcessor, VideoProcessor
from app.services.storage_service import AssetStore, build_asset_store
from app.services.upload_service import UploadService


# ============================================================================
# Response Models
# ============================================================================


class ErrorResponse(BaseModel):
    """Standard error response model."""

    error: str = Field(..., description="Error type/code")
    message: str = Field(..., description="Human-readable error message")


ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse, "description": "Invalid input"},
    status.HTTP_401_UNAUTHORIZED: {
        "model": ErrorResponse,
        "description": "Missing or invalid token, or the caller does not own the video",
    },
    status.HTTP_404_NOT_FOUND: {"model": ErrorResponse, "description": "Video not found"},
    status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": ErrorResponse, "description": "Internal server error"},
}


def multipart_request_body(field: str, description: str) -> dict[str, Any]:
    """OpenAPI request body for endpoints that parse their multipart form by hand."""
    return {
        "requestBody": {
            "required": True,
            "content": {
                "multipart/form-data": {
                    "schema": {
                        "type": "object",
                        "required": [field],
                        "properties": {
                            field: {"type": "string", "format": "binary", "description": description}
                        },
                    }
                }
            },
        }
    }


def parse_video_id(video_id: str) -> UUID:
    """
    Parse the ``{video_id}`` path segment.

    Parsed by hand so a malformed id yields the API's 400 error body instead
    of FastAPI's 422 validation response.

    Raises:
        InvalidVideoIDError: If ``video_id`` is not a UUID.
    """
    try:
        return UUID(video_id)
    except ValueError as e:
        raise InvalidVideoIDError(f"Invalid video ID '{video_id}'") from e


# ============================================================================
# Dependency Injection Functions
# ============================================================================


# Stores are built once per process so the memory backend keeps its contents
_store_container: dict[str, AssetStore] = {}


def get_thumbnail_store(settings: Settings = Depends(get_settings)) -> AssetStore:
    """Backend for thumbnails, chosen by ``thumbnail_storage_backend``."""
    if "thumbnail" not in _store_container:
        _store_container["thumbnail"] = build_asset_store(settings.thumbnail_storage_backend, settings)
    return _store_container["thumbnail"]


def get_video_store(settings: Settings = Depends(get_settings)) -> AssetStore:
    """Backend for videos, chosen by ``video_storage_backend``."""
    if "video" not in _store_container:
        _store_container["video"] = build_asset_store(settings.video_storage_backend, settings)
    return _store_container["video"]


def reset_asset_stores() -> None:
    """Forget the cached stores (shutdown and tests)."""
    _store_container.clear()


def get_video_processor(settings: Settings = Depends(get_settings)) -> VideoProcessor:
    return FFmpegVideoProcessor(settings.ffmpeg_path, settings.ffprobe_path)


def get_upload_service(
    settings: Settings = Depends(get_settings),
    repository: VideoRepository = Depends(get_video_repository),
    thumbnail_store: AssetStore = Depends(get_thumbnail_store),
    video_store: AssetStore = Depends(get_video_store),
    processor: VideoProcessor = Depends(get_video_processor),
) -> UploadService:
    """
    Dependency injection for UploadService.

    Returns:
        UploadService: Service wired to the configured record store, storage
        backends and video processor.
    """
    return UploadService(
        repository=repository,
        thumbnail_store=thumbnail_store,
        video_store=video_store,
        processor=processor,
        settings=settings,
    )


__all__ = [
    "ERROR_RESPONSES",
    "ErrorResponse",
    "get_thumbnail_store",
    "get_upload_service",
    "get_video_processor",
    "get_video_store",
    "multipart_request_body",
    "parse_video_id",
    "reset_asset_stores",
]
