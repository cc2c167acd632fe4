"""
Pytest Configuration and Test Fixtures for the Tubely Backend

This module provides the shared fixtures for the test suite:
- Test settings pointing every backend at process memory or ``tmp_path``
- In-memory video repository and asset stores
- A fake VideoProcessor standing in for ffmpeg/ffprobe
- FastAPI TestClient with dependency overrides (no lifespan, no MongoDB)
- Bearer tokens for an owner and a second user
- Synthetic PNG images generated with Pillow
"""

import asyncio
import os
import shutil

from collections.abc import Generator
from datetime import timedelta
from io import BytesIO
from pathlib import Path
from unittest.mock import Mock
from uuid import UUID, uuid4

import pytest

from fastapi.testclient import TestClient
from PIL import Image

from app.api.dependencies import (
    get_thumbnail_store,
    get_video_processor,
    get_video_store,
    reset_asset_stores,
)
from app.config import Settings, get_settings
from app.core.auth import create_access_token
from app.core.database import InMemoryVideoRepository, get_video_repository
from app.core.errors import VideoProcessingError
from app.core.storage import StorageClient
from app.main import app
from app.models.video import Video
from app.services.media_processing import PROCESSING_SUFFIX, VideoDimensions, VideoProcessor
from app.services.storage_service import LocalFileStore, MemoryAssetStore


TEST_BASE_URL = "http://testserver"
TEST_SECRET_KEY = "test-secret-key-for-jwt-signing-minimum-32-chars"


def pytest_configure(config: pytest.Config) -> None:
    """Register the markers used across the suite."""
    config.addinivalue_line("markers", "unit: isolated tests with no external services")
    config.addinivalue_line("markers", "integration: tests that exercise the full HTTP stack")


# ==============================================================================
# Settings Fixtures
# ==============================================================================


@pytest.fixture
def test_settings(tmp_path: Path) -> Settings:
    """
    Settings for an isolated test run.

    Thumbnails live in memory, videos on local disk under ``tmp_path``, and
    both budgets are 1 MiB so size limits can be exercised cheaply.
    """
    upload_tmp = tmp_path / "uploads"
    upload_tmp.mkdir()

    return Settings(
        app_env="testing",
        app_name="tubely-test",
        secret_key=TEST_SECRET_KEY,
        public_base_url=TEST_BASE_URL,
        record_store="memory",
        thumbnail_storage_backend="memory",
        video_storage_backend="local",
        assets_root=str(tmp_path / "assets"),
        upload_temp_dir=str(upload_tmp),
        s3_endpoint_url="http://localhost:9000",
        s3_access_key_id="test-access-key",
        s3_secret_access_key="test-secret-key",
        s3_bucket_name="test-bucket",
        s3_region="us-east-1",
        max_thumbnail_size_mb=1,
        max_video_size_mb=1,
    )


# ==============================================================================
# Record Store and Asset Store Fixtures
# ==============================================================================


@pytest.fixture
def repository() -> InMemoryVideoRepository:
    return InMemoryVideoRepository()


@pytest.fixture
def thumbnail_store() -> MemoryAssetStore:
    return MemoryAssetStore(TEST_BASE_URL)


@pytest.fixture
def video_store(test_settings: Settings) -> LocalFileStore:
    return LocalFileStore(test_settings.assets_root, TEST_BASE_URL)


@pytest.fixture
def mock_storage_client() -> Mock:
    """
    Mocked StorageClient for S3AssetStore tests.

    Uses spec=StorageClient so the mock has the same interface as the real
    client.
    """
    mock = Mock(spec=StorageClient)
    mock.bucket_name = "test-bucket"
    mock.put_object = Mock(return_value=None)
    mock.get_object = Mock(return_value=(b"object-bytes", "image/png"))
    mock.delete_object = Mock(return_value=None)
    mock.file_exists = Mock(return_value=True)
    mock.generate_presigned_download_url = Mock(
        return_value="https://s3.example.com/test-bucket/key?X-Amz-Signature=abc123"
    )
    mock.public_object_url = Mock(
        side_effect=lambda key: f"https://test-bucket.s3.us-east-1.amazonaws.com/{key}"
    )
    return mock


# ==============================================================================
# Video Processing Fixtures
# ==============================================================================


class FakeVideoProcessor(VideoProcessor):
    """
    VideoProcessor that copies the input instead of running ffmpeg.

    ``dimensions`` is returned by ``inspect``; setting ``fail_normalize`` or
    ``fail_inspect`` makes the matching step raise VideoProcessingError.
    """

    def __init__(self, dimensions: VideoDimensions = VideoDimensions(1920, 1080)) -> None:
        self.dimensions = dimensions
        self.fail_normalize = False
        self.fail_inspect = False
        self.normalized: list[Path] = []
        self.inspected: list[Path] = []

    async def normalize(self, input_path: Path) -> Path:
        self.normalized.append(input_path)
        if self.fail_normalize:
            raise VideoProcessingError("ffmpeg failed")
        output_path = input_path.with_name(input_path.name + PROCESSING_SUFFIX)
        shutil.copyfile(input_path, output_path)
        return output_path

    async def inspect(self, path: Path) -> VideoDimensions:
        self.inspected.append(path)
        if self.fail_inspect:
            raise VideoProcessingError("ffprobe failed")
        return self.dimensions


@pytest.fixture
def video_processor() -> FakeVideoProcessor:
    return FakeVideoProcessor()


# ==============================================================================
# FastAPI Client Fixtures
# ==============================================================================


@pytest.fixture
def client(
    test_settings: Settings,
    repository: InMemoryVideoRepository,
    thumbnail_store: MemoryAssetStore,
    video_store: LocalFileStore,
    video_processor: FakeVideoProcessor,
) -> Generator[TestClient, None, None]:
    """
    TestClient with every collaborator replaced through dependency_overrides.

    The lifespan is not entered, so no MongoDB connection is attempted.
    """
    app.dependency_overrides[get_settings] = lambda: test_settings
    app.dependency_overrides[get_video_repository] = lambda: repository
    app.dependency_overrides[get_thumbnail_store] = lambda: thumbnail_store
    app.dependency_overrides[get_video_store] = lambda: video_store
    app.dependency_overrides[get_video_processor] = lambda: video_processor

    yield TestClient(app)

    app.dependency_overrides.clear()
    reset_asset_stores()


# ==============================================================================
# Authentication Fixtures
# ==============================================================================


@pytest.fixture
def owner_id() -> UUID:
    return uuid4()


@pytest.fixture
def other_user_id() -> UUID:
    return uuid4()


@pytest.fixture
def owner_token(owner_id: UUID, test_settings: Settings) -> str:
    return create_access_token(owner_id, test_settings)


@pytest.fixture
def auth_headers(owner_token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {owner_token}"}


@pytest.fixture
def other_user_headers(other_user_id: UUID, test_settings: Settings) -> dict[str, str]:
    return {"Authorization": f"Bearer {create_access_token(other_user_id, test_settings)}"}


@pytest.fixture
def expired_token(owner_id: UUID, test_settings: Settings) -> str:
    return create_access_token(owner_id, test_settings, expires_in=timedelta(minutes=-5))


# ==============================================================================
# Sample Data Fixtures
# ==============================================================================


@pytest.fixture
def seeded_video(repository: InMemoryVideoRepository, owner_id: UUID) -> Video:
    """A video record owned by ``owner_id`` with no media yet."""
    video = Video(user_id=owner_id, title="Boots unboxing", description="First look")
    return asyncio.run(repository.create_video(video))


def make_png(width: int = 24, height: int = 24) -> bytes:
    """Encode a PNG of random pixels (roughly 2 KB at the default size)."""
    image = Image.frombytes("RGB", (width, height), os.urandom(width * height * 3))
    buffer = BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


def make_jpeg(width: int = 32, height: int = 32) -> bytes:
    image = Image.new("RGB", (width, height), color=(200, 30, 30))
    buffer = BytesIO()
    image.save(buffer, format="JPEG")
    return buffer.getvalue()


@pytest.fixture
def png_bytes() -> bytes:
    return make_png()


@pytest.fixture
def jpeg_bytes() -> bytes:
    return make_jpeg()


@pytest.fixture
def mp4_bytes() -> bytes:
    """Bytes standing in for an MP4 file; the fake processor never decodes them."""
    return b"\x00\x00\x00\x18ftypmp42" + os.urandom(4096)
