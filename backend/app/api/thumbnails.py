"""
Thumbnail endpoints.

- POST /api/thumbnails/{video_id}: upload the ``thumbnail`` form field
  (image/jpeg or image/png, at most 10 MiB by default) for a video the caller
  owns
- GET /api/thumbnails/{video_id}: serve the current thumbnail bytes; this is
  the URL handed out by the in-memory backend
"""

import logging

from uuid import UUID

from fastapi import APIRouter, Depends, Request, Response, status

from app.api.dependencies import (
    ERROR_RESPONSES,
    get_upload_service,
    multipart_request_body,
    parse_video_id,
)
from app.core.auth import get_current_user_id
from app.core.errors import AssetNotFoundError
from app.models.video import Video
from app.services.upload_service import THUMBNAIL_FIELD, UploadService


logger = logging.getLogger(__name__)

router = APIRouter(tags=["thumbnails"], responses=ERROR_RESPONSES)


@router.post(
    "/{video_id}",
    response_model=Video,
    status_code=status.HTTP_200_OK,
    summary="Upload thumbnail",
    description="Store a JPEG or PNG thumbnail for a video owned by the caller.",
    openapi_extra=multipart_request_body(THUMBNAIL_FIELD, "Thumbnail image (image/jpeg or image/png)"),
)
async def upload_thumbnail(
    video_id: str,
    request: Request,
    user_id: UUID = Depends(get_current_user_id),
    upload_service: UploadService = Depends(get_upload_service),
) -> Video:
    """
    Upload a thumbnail and return the updated video record.

    Raises:
        AppError: Rendered by the application error handler (400, 401, 404, 500).
    """
    parsed_id = parse_video_id(video_id)
    logger.info("Thumbnail upload for video %s by user %s", parsed_id, user_id)
    return await upload_service.upload_thumbnail(parsed_id, user_id, request)


@router.get(
    "/{video_id}",
    response_class=Response,
    summary="Get thumbnail",
    description="Serve the current thumbnail of a video.",
    responses={status.HTTP_200_OK: {"content": {"image/png": {}, "image/jpeg": {}}}},
)
async def get_thumbnail(
    video_id: str,
    upload_service: UploadService = Depends(get_upload_service),
) -> Response:
    """Return the thumbnail bytes with the content type they were uploaded with."""
    parsed_id = parse_video_id(video_id)
    video = await upload_service.repository.get_video(parsed_id)
    if not video.thumbnail_url:
        raise AssetNotFoundError(f"Video {parsed_id} has no thumbnail")

    asset = await upload_service.thumbnail_store.retrieve(video.thumbnail_url)
    return Response(
        content=asset.data,
        media_type=asset.content_type,
        headers={"Cache-Control": "no-store"},
    )
