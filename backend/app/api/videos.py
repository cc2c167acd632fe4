"""
Video endpoints.

- POST /api/videos/{video_id}: upload the ``video`` form field (video/mp4, at
  most 1 GiB by default) for a video the caller owns; the file is remuxed for
  fast start and stored under its aspect-ratio prefix
- GET /api/videos/{video_id}: the video record with client-usable locators
  (presigned when the S3 backend signs URLs)
"""

import logging

from uuid import UUID

from fastapi import APIRouter, Depends, Request, status

from app.api.dependencies import (
    ERROR_RESPONSES,
    get_upload_service,
    multipart_request_body,
    parse_video_id,
)
from app.core.auth import get_current_user_id
from app.models.video import Video
from app.services.upload_service import VIDEO_FIELD, UploadService


logger = logging.getLogger(__name__)

router = APIRouter(tags=["videos"], responses=ERROR_RESPONSES)


@router.post(
    "/{video_id}",
    response_model=Video,
    status_code=status.HTTP_200_OK,
    summary="Upload video",
    description="Store an MP4 video file for a video record owned by the caller.",
    openapi_extra=multipart_request_body(VIDEO_FIELD, "Video file (video/mp4)"),
)
async def upload_video(
    video_id: str,
    request: Request,
    user_id: UUID = Depends(get_current_user_id),
    upload_service: UploadService = Depends(get_upload_service),
) -> Video:
    """
    Upload a video file and return the updated video record.

    Raises:
        AppError: Rendered by the application error handler (400, 401, 404, 500).
    """
    parsed_id = parse_video_id(video_id)
    logger.info("Video upload for video %s by user %s", parsed_id, user_id)
    return await upload_service.upload_video(parsed_id, user_id, request)


@router.get(
    "/{video_id}",
    response_model=Video,
    summary="Get video",
    description="Return a video record with locators resolved to URLs.",
)
async def get_video(
    video_id: str,
    _user_id: UUID = Depends(get_current_user_id),
    upload_service: UploadService = Depends(get_upload_service),
) -> Video:
    return await upload_service.get_video(parse_video_id(video_id))
