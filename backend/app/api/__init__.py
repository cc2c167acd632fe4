"""
Tubely API Package.

Routers:
    - thumbnails.py: POST/GET /api/thumbnails/{video_id}
    - videos.py: POST/GET /api/videos/{video_id}
    - dependencies.py: Shared error models and dependency injection
"""

from fastapi import APIRouter

from app.api import thumbnails, videos


api_router = APIRouter()

api_router.include_router(thumbnails.router, prefix="/api/thumbnails")
api_router.include_router(videos.router, prefix="/api/videos")


__all__ = ["api_router"]
