"""
Tubely Backend Application Package

This package contains the Tubely FastAPI application for the video-hosting
backend. The application accepts media for existing video records:

- Thumbnail uploads (JPEG/PNG) stored on local disk, in memory, or in S3
- Video uploads (MP4) normalized for fast start and organized by aspect ratio
- Bearer JWT authentication with ownership checks on every upload
- Presigned, time-limited object storage URLs for video playback

Package Structure:
- api/: REST API endpoints (thumbnails, videos)
- core/: Core infrastructure (auth, database, object storage, errors)
- models/: Pydantic data models
- services/: Upload pipeline, persistence backends, media processing
- utils/: Media type validation, naming, logging helpers
"""

__version__ = "1.0.0"
__app_name__ = "tubely"
