"""
Services module for the Tubely backend application.

- upload_service: Thumbnail and video upload pipelines
- upload_ingestor: Bounded multipart reading and temporary file spooling
- storage_service: Pluggable persistence backends (local, memory, S3)
- media_processing: ffmpeg/ffprobe video normalization and inspection

Services are wired through FastAPI's dependency system so tests can swap
any collaborator for a fake.
"""
