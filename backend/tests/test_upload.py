"""
Tubely Upload Pipeline and Endpoint Test Suite

End-to-end behaviour of the upload endpoints through FastAPI's TestClient with
in-memory record and thumbnail stores, a local-disk video store under
``tmp_path`` and a fake video processor:

- TestThumbnailUpload: happy path, retrieval over HTTP, replacement
- TestOwnership: uploads by another user leave the record untouched
- TestInputValidation: form, field and media type rejections
- TestSizeLimits: Content-Length and part size budgets
- TestVideoUpload: fast-start processing, aspect-ratio prefixes, temp files
- TestRecordUpdateFailure: the stored asset is discarded or restored
- TestObjectStorageVideos: S3 backend with presigned locators
- TestIngestor: the multipart helpers on their own
- TestAPIResponses: health check and request headers
"""

import asyncio

from io import BytesIO
from pathlib import Path
from unittest.mock import Mock, patch
from uuid import UUID, uuid4

import pytest

from fastapi.testclient import TestClient
from starlette.datastructures import Headers, UploadFile
from starlette.requests import Request

from app.api.dependencies import get_thumbnail_store, get_video_repository, get_video_store
from app.config import Settings
from app.core.database import InMemoryVideoRepository
from app.core.errors import AssetNotFoundError, FileTooLargeError, PersistFailedError, StorageWriteError
from app.main import app
from app.models.video import LocatorField, Video
from app.services.media_processing import VideoDimensions
from app.services.storage_service import LocalFileStore, MemoryAssetStore, S3AssetStore
from app.services.upload_ingestor import (
    FORM_OVERHEAD_BYTES,
    UploadedPart,
    check_content_length,
    read_bounded,
    spooled_temp_file,
)
from conftest import TEST_BASE_URL, FakeVideoProcessor, make_png


MIB = 1024 * 1024


def _stored_video(repository: InMemoryVideoRepository, video_id: UUID) -> Video:
    return asyncio.run(repository.get_video(video_id))


def _files_under(directory: str | Path) -> list[Path]:
    root = Path(directory)
    if not root.exists():
        return []
    return [path for path in root.rglob("*") if path.is_file()]


def _thumbnail(data: bytes, content_type: str = "image/png", name: str = "boots.png") -> dict:
    return {"thumbnail": (name, data, content_type)}


def _video(data: bytes, content_type: str = "video/mp4", name: str = "boots.mp4") -> dict:
    return {"video": (name, data, content_type)}


def _has_thumbnail(store: MemoryAssetStore, video_id: UUID) -> bool:
    try:
        asyncio.run(store.retrieve(store.locator_for(video_id)))
    except AssetNotFoundError:
        return False
    return True


# =============================================================================
# Thumbnails
# =============================================================================


@pytest.mark.integration
class TestThumbnailUpload:
    def test_upload_png_and_fetch_it(
        self,
        client: TestClient,
        seeded_video: Video,
        auth_headers: dict[str, str],
        png_bytes: bytes,
    ) -> None:
        """An owner's PNG is stored and served back byte for byte."""
        response = client.post(
            f"/api/thumbnails/{seeded_video.id}", files=_thumbnail(png_bytes), headers=auth_headers
        )

        assert response.status_code == 200
        body = response.json()
        expected_url = f"{TEST_BASE_URL}/api/thumbnails/{seeded_video.id}"
        assert body["id"] == str(seeded_video.id)
        assert body["thumbnail_url"] == expected_url
        assert body["title"] == "Boots unboxing"

        fetched = client.get(f"/api/thumbnails/{seeded_video.id}")
        assert fetched.status_code == 200
        assert fetched.content == png_bytes
        assert fetched.headers["content-type"] == "image/png"
        assert fetched.headers["cache-control"] == "no-store"

    def test_jpeg_replaces_previous_thumbnail(
        self,
        client: TestClient,
        seeded_video: Video,
        auth_headers: dict[str, str],
        png_bytes: bytes,
        jpeg_bytes: bytes,
    ) -> None:
        client.post(f"/api/thumbnails/{seeded_video.id}", files=_thumbnail(png_bytes), headers=auth_headers)
        response = client.post(
            f"/api/thumbnails/{seeded_video.id}",
            files=_thumbnail(jpeg_bytes, "image/jpeg", "boots.jpg"),
            headers=auth_headers,
        )

        assert response.status_code == 200
        fetched = client.get(f"/api/thumbnails/{seeded_video.id}")
        assert fetched.content == jpeg_bytes
        assert fetched.headers["content-type"] == "image/jpeg"

    def test_media_type_parameters_are_accepted(
        self,
        client: TestClient,
        seeded_video: Video,
        auth_headers: dict[str, str],
        png_bytes: bytes,
    ) -> None:
        response = client.post(
            f"/api/thumbnails/{seeded_video.id}",
            files=_thumbnail(png_bytes, "Image/PNG; charset=binary"),
            headers=auth_headers,
        )

        assert response.status_code == 200
        assert client.get(f"/api/thumbnails/{seeded_video.id}").headers["content-type"] == "image/png"

    def test_local_disk_thumbnails(
        self,
        client: TestClient,
        seeded_video: Video,
        auth_headers: dict[str, str],
        test_settings: Settings,
        video_store,
        png_bytes: bytes,
    ) -> None:
        """With the local backend the locator points at the /assets mount."""
        app.dependency_overrides[get_thumbnail_store] = lambda: video_store

        response = client.post(
            f"/api/thumbnails/{seeded_video.id}", files=_thumbnail(png_bytes), headers=auth_headers
        )

        assert response.status_code == 200
        url = response.json()["thumbnail_url"]
        assert url.startswith(f"{TEST_BASE_URL}/assets/")
        assert url.endswith(".png")
        stored = Path(test_settings.assets_root) / url.removeprefix(f"{TEST_BASE_URL}/assets/")
        assert stored.read_bytes() == png_bytes

        # The thumbnail endpoint serves whichever backend holds the file
        assert client.get(f"/api/thumbnails/{seeded_video.id}").content == png_bytes

    def test_thumbnail_missing(self, client: TestClient, seeded_video: Video) -> None:
        response = client.get(f"/api/thumbnails/{seeded_video.id}")

        assert response.status_code == 404
        assert response.json()["error"] == "asset_not_found"

    def test_unknown_video(self, client: TestClient, auth_headers: dict[str, str], png_bytes: bytes) -> None:
        response = client.post(f"/api/thumbnails/{uuid4()}", files=_thumbnail(png_bytes), headers=auth_headers)

        assert response.status_code == 404
        assert response.json()["error"] == "video_not_found"

    def test_invalid_video_id(self, client: TestClient, auth_headers: dict[str, str], png_bytes: bytes) -> None:
        response = client.post("/api/thumbnails/not-a-uuid", files=_thumbnail(png_bytes), headers=auth_headers)

        assert response.status_code == 400
        assert response.json()["error"] == "invalid_video_id"


# =============================================================================
# Ownership
# =============================================================================


@pytest.mark.integration
class TestOwnership:
    def test_other_user_cannot_upload_thumbnail(
        self,
        client: TestClient,
        repository: InMemoryVideoRepository,
        thumbnail_store: MemoryAssetStore,
        seeded_video: Video,
        other_user_headers: dict[str, str],
        png_bytes: bytes,
    ) -> None:
        response = client.post(
            f"/api/thumbnails/{seeded_video.id}", files=_thumbnail(png_bytes), headers=other_user_headers
        )

        assert response.status_code == 401
        assert response.json()["error"] == "not_video_owner"
        assert _stored_video(repository, seeded_video.id) == seeded_video
        assert not _has_thumbnail(thumbnail_store, seeded_video.id)

    def test_other_user_cannot_upload_video(
        self,
        client: TestClient,
        repository: InMemoryVideoRepository,
        video_processor: FakeVideoProcessor,
        test_settings: Settings,
        seeded_video: Video,
        other_user_headers: dict[str, str],
        mp4_bytes: bytes,
    ) -> None:
        response = client.post(f"/api/videos/{seeded_video.id}", files=_video(mp4_bytes), headers=other_user_headers)

        assert response.status_code == 401
        assert _stored_video(repository, seeded_video.id).video_url is None
        assert video_processor.normalized == []
        assert _files_under(test_settings.assets_root) == []


# =============================================================================
# Input validation
# =============================================================================


@pytest.mark.integration
class TestInputValidation:
    @pytest.mark.parametrize("content_type", ["image/gif", "image/webp", "application/octet-stream", "video/mp4"])
    def test_unsupported_thumbnail_type(
        self,
        client: TestClient,
        repository: InMemoryVideoRepository,
        seeded_video: Video,
        auth_headers: dict[str, str],
        png_bytes: bytes,
        content_type: str,
    ) -> None:
        response = client.post(
            f"/api/thumbnails/{seeded_video.id}", files=_thumbnail(png_bytes, content_type), headers=auth_headers
        )

        assert response.status_code == 400
        assert response.json()["error"] == "unsupported_media_type"
        assert _stored_video(repository, seeded_video.id).thumbnail_url is None

    @pytest.mark.parametrize("content_type", ["video/quicktime", "image/png"])
    def test_unsupported_video_type(
        self,
        client: TestClient,
        video_processor: FakeVideoProcessor,
        seeded_video: Video,
        auth_headers: dict[str, str],
        mp4_bytes: bytes,
        content_type: str,
    ) -> None:
        response = client.post(
            f"/api/videos/{seeded_video.id}", files=_video(mp4_bytes, content_type), headers=auth_headers
        )

        assert response.status_code == 400
        assert response.json()["error"] == "unsupported_media_type"
        assert video_processor.normalized == []

    def test_malformed_media_type(
        self, client: TestClient, seeded_video: Video, auth_headers: dict[str, str], png_bytes: bytes
    ) -> None:
        response = client.post(
            f"/api/thumbnails/{seeded_video.id}", files=_thumbnail(png_bytes, "not a type"), headers=auth_headers
        )

        assert response.status_code == 400
        assert response.json()["error"] == "invalid_media_type"

    def test_missing_field(
        self, client: TestClient, seeded_video: Video, auth_headers: dict[str, str], png_bytes: bytes
    ) -> None:
        response = client.post(
            f"/api/thumbnails/{seeded_video.id}",
            files={"image": ("boots.png", png_bytes, "image/png")},
            headers=auth_headers,
        )

        assert response.status_code == 400
        assert response.json()["error"] == "field_missing"

    def test_field_without_file(
        self, client: TestClient, seeded_video: Video, auth_headers: dict[str, str]
    ) -> None:
        response = client.post(
            f"/api/thumbnails/{seeded_video.id}",
            data={"thumbnail": "just text"},
            files={"other": ("a.txt", b"x", "text/plain")},
            headers=auth_headers,
        )

        assert response.status_code == 400
        assert response.json()["error"] == "field_missing"

    def test_body_is_not_multipart(
        self, client: TestClient, seeded_video: Video, auth_headers: dict[str, str], png_bytes: bytes
    ) -> None:
        response = client.post(
            f"/api/thumbnails/{seeded_video.id}",
            content=png_bytes,
            headers={**auth_headers, "Content-Type": "image/png"},
        )

        assert response.status_code == 400
        assert response.json()["error"] == "invalid_form"

    def test_truncated_multipart_body(
        self, client: TestClient, seeded_video: Video, auth_headers: dict[str, str]
    ) -> None:
        response = client.post(
            f"/api/thumbnails/{seeded_video.id}",
            content=b"--boundary\r\nContent-Disposition: form-data; name=\"thumbnail\"",
            headers={**auth_headers, "Content-Type": "multipart/form-data"},
        )

        assert response.status_code == 400
        assert response.json()["error"] == "invalid_form"


# =============================================================================
# Size limits
# =============================================================================


@pytest.mark.integration
class TestSizeLimits:
    def test_declared_length_rejected_before_parsing(
        self,
        client: TestClient,
        thumbnail_store: MemoryAssetStore,
        seeded_video: Video,
        auth_headers: dict[str, str],
    ) -> None:
        oversized = b"\x00" * (2 * MIB)

        with patch.object(Request, "form") as form_mock:
            response = client.post(
                f"/api/thumbnails/{seeded_video.id}", files=_thumbnail(oversized), headers=auth_headers
            )

        assert response.status_code == 400
        assert response.json()["error"] == "file_too_large"
        form_mock.assert_not_called()
        assert not _has_thumbnail(thumbnail_store, seeded_video.id)

    def test_part_over_budget(
        self,
        client: TestClient,
        repository: InMemoryVideoRepository,
        thumbnail_store: MemoryAssetStore,
        seeded_video: Video,
        auth_headers: dict[str, str],
    ) -> None:
        """A part just over budget fits in the form allowance but is still rejected."""
        just_over = b"\x00" * (MIB + 1)

        response = client.post(f"/api/thumbnails/{seeded_video.id}", files=_thumbnail(just_over), headers=auth_headers)

        assert response.status_code == 400
        assert response.json()["error"] == "file_too_large"
        assert _stored_video(repository, seeded_video.id).thumbnail_url is None
        assert not _has_thumbnail(thumbnail_store, seeded_video.id)

    def test_thumbnail_at_budget_is_accepted(
        self, client: TestClient, seeded_video: Video, auth_headers: dict[str, str]
    ) -> None:
        response = client.post(
            f"/api/thumbnails/{seeded_video.id}", files=_thumbnail(b"\x00" * MIB), headers=auth_headers
        )

        assert response.status_code == 200

    def test_oversized_video_never_reaches_storage(
        self,
        client: TestClient,
        video_processor: FakeVideoProcessor,
        test_settings: Settings,
        seeded_video: Video,
        auth_headers: dict[str, str],
    ) -> None:
        response = client.post(
            f"/api/videos/{seeded_video.id}", files=_video(b"\x00" * (MIB + 10)), headers=auth_headers
        )

        assert response.status_code == 400
        assert response.json()["error"] == "file_too_large"
        assert video_processor.normalized == []
        assert _files_under(test_settings.assets_root) == []
        assert _files_under(test_settings.upload_temp_dir) == []


# =============================================================================
# Videos
# =============================================================================


class RecordingFileStore(LocalFileStore):
    """Local store that keeps the file objects it was handed."""

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.received: list = []

    async def store(self, *, key, video_id, data, content_type) -> str:
        self.received.append(data)
        return await super().store(key=key, video_id=video_id, data=data, content_type=content_type)


@pytest.mark.integration
class TestVideoUpload:
    def test_landscape_video(
        self,
        client: TestClient,
        repository: InMemoryVideoRepository,
        video_processor: FakeVideoProcessor,
        test_settings: Settings,
        seeded_video: Video,
        auth_headers: dict[str, str],
        mp4_bytes: bytes,
    ) -> None:
        response = client.post(f"/api/videos/{seeded_video.id}", files=_video(mp4_bytes), headers=auth_headers)

        assert response.status_code == 200
        video_url = response.json()["video_url"]
        assert video_url.startswith(f"{TEST_BASE_URL}/assets/landscape/")
        assert video_url.endswith(".mp4")

        stored = Path(test_settings.assets_root) / video_url.removeprefix(f"{TEST_BASE_URL}/assets/")
        assert stored.read_bytes() == mp4_bytes
        assert _stored_video(repository, seeded_video.id).video_url == video_url

        # The processor saw the spooled upload, then the processed copy
        assert len(video_processor.normalized) == 1
        assert video_processor.inspected[0].name.endswith(".processing")
        assert _files_under(test_settings.upload_temp_dir) == []

    def test_processed_file_is_stored_and_closed(
        self,
        client: TestClient,
        test_settings: Settings,
        seeded_video: Video,
        auth_headers: dict[str, str],
        mp4_bytes: bytes,
    ) -> None:
        store = RecordingFileStore(Path(test_settings.assets_root), TEST_BASE_URL)
        app.dependency_overrides[get_video_store] = lambda: store

        response = client.post(f"/api/videos/{seeded_video.id}", files=_video(mp4_bytes), headers=auth_headers)

        assert response.status_code == 200
        (video_file,) = store.received
        assert video_file.name.endswith(".processing")
        assert video_file.closed

    @pytest.mark.parametrize(
        "dimensions,prefix",
        [(VideoDimensions(1080, 1920), "portrait/"), (VideoDimensions(1000, 1000), "other/")],
    )
    def test_aspect_ratio_prefix(
        self,
        client: TestClient,
        video_processor: FakeVideoProcessor,
        seeded_video: Video,
        auth_headers: dict[str, str],
        mp4_bytes: bytes,
        dimensions: VideoDimensions,
        prefix: str,
    ) -> None:
        video_processor.dimensions = dimensions

        response = client.post(f"/api/videos/{seeded_video.id}", files=_video(mp4_bytes), headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["video_url"].startswith(f"{TEST_BASE_URL}/assets/{prefix}")

    def test_get_video_after_upload(
        self,
        client: TestClient,
        seeded_video: Video,
        auth_headers: dict[str, str],
        mp4_bytes: bytes,
    ) -> None:
        uploaded = client.post(f"/api/videos/{seeded_video.id}", files=_video(mp4_bytes), headers=auth_headers)

        fetched = client.get(f"/api/videos/{seeded_video.id}", headers=auth_headers)

        assert fetched.status_code == 200
        assert fetched.json()["video_url"] == uploaded.json()["video_url"]

    @pytest.mark.parametrize("failing_step", ["fail_normalize", "fail_inspect"])
    def test_processing_failure_cleans_up(
        self,
        client: TestClient,
        repository: InMemoryVideoRepository,
        video_processor: FakeVideoProcessor,
        test_settings: Settings,
        seeded_video: Video,
        auth_headers: dict[str, str],
        mp4_bytes: bytes,
        failing_step: str,
    ) -> None:
        setattr(video_processor, failing_step, True)

        response = client.post(f"/api/videos/{seeded_video.id}", files=_video(mp4_bytes), headers=auth_headers)

        assert response.status_code == 500
        assert response.json() == {"error": "video_processing_failed", "message": "An internal error occurred"}
        assert _stored_video(repository, seeded_video.id).video_url is None
        assert _files_under(test_settings.upload_temp_dir) == []
        assert _files_under(test_settings.assets_root) == []


# =============================================================================
# Record update failures
# =============================================================================


class FailingLocatorRepository(InMemoryVideoRepository):
    """Repository whose locator writes fail while ``fail`` is set."""

    fail = True

    async def set_locator(self, video_id: UUID, field: LocatorField, locator: str) -> Video:
        if self.fail:
            raise PersistFailedError("database unavailable")
        return await super().set_locator(video_id, field, locator)


class UndeletableMemoryStore(MemoryAssetStore):
    async def discard(self, locator: str) -> None:
        raise StorageWriteError("delete failed")


@pytest.mark.integration
class TestRecordUpdateFailure:
    @pytest.fixture
    def failing_repository(self, seeded_video: Video) -> FailingLocatorRepository:
        repository = FailingLocatorRepository()
        asyncio.run(repository.create_video(seeded_video))
        app.dependency_overrides[get_video_repository] = lambda: repository
        return repository

    def test_thumbnail_is_removed(
        self,
        client: TestClient,
        failing_repository: FailingLocatorRepository,
        thumbnail_store: MemoryAssetStore,
        seeded_video: Video,
        auth_headers: dict[str, str],
        png_bytes: bytes,
    ) -> None:
        response = client.post(
            f"/api/thumbnails/{seeded_video.id}", files=_thumbnail(png_bytes), headers=auth_headers
        )

        assert response.status_code == 500
        assert response.json()["error"] == "persist_failed"
        assert not _has_thumbnail(thumbnail_store, seeded_video.id)

    def test_previous_thumbnail_survives_failed_replacement(
        self,
        client: TestClient,
        failing_repository: FailingLocatorRepository,
        seeded_video: Video,
        auth_headers: dict[str, str],
        png_bytes: bytes,
        jpeg_bytes: bytes,
    ) -> None:
        failing_repository.fail = False
        first = client.post(
            f"/api/thumbnails/{seeded_video.id}", files=_thumbnail(png_bytes), headers=auth_headers
        )
        assert first.status_code == 200

        failing_repository.fail = True
        second = client.post(
            f"/api/thumbnails/{seeded_video.id}",
            files=_thumbnail(jpeg_bytes, "image/jpeg", "boots.jpg"),
            headers=auth_headers,
        )
        assert second.status_code == 500
        assert second.json()["error"] == "persist_failed"

        assert _stored_video(failing_repository, seeded_video.id).thumbnail_url == first.json()["thumbnail_url"]
        fetched = client.get(f"/api/thumbnails/{seeded_video.id}")
        assert fetched.status_code == 200
        assert fetched.content == png_bytes
        assert fetched.headers["content-type"] == "image/png"

    def test_video_is_removed(
        self,
        client: TestClient,
        failing_repository: FailingLocatorRepository,
        test_settings: Settings,
        seeded_video: Video,
        auth_headers: dict[str, str],
        mp4_bytes: bytes,
    ) -> None:
        response = client.post(f"/api/videos/{seeded_video.id}", files=_video(mp4_bytes), headers=auth_headers)

        assert response.status_code == 500
        assert _files_under(test_settings.assets_root) == []
        assert _files_under(test_settings.upload_temp_dir) == []

    def test_failed_compensation_still_reports_persist_error(
        self,
        client: TestClient,
        failing_repository: FailingLocatorRepository,
        seeded_video: Video,
        auth_headers: dict[str, str],
        png_bytes: bytes,
    ) -> None:
        app.dependency_overrides[get_thumbnail_store] = lambda: UndeletableMemoryStore(TEST_BASE_URL)

        response = client.post(
            f"/api/thumbnails/{seeded_video.id}", files=_thumbnail(png_bytes), headers=auth_headers
        )

        assert response.status_code == 500
        assert response.json()["error"] == "persist_failed"


# =============================================================================
# Object storage
# =============================================================================


@pytest.mark.integration
class TestObjectStorageVideos:
    def test_presigned_video_url(
        self,
        client: TestClient,
        repository: InMemoryVideoRepository,
        mock_storage_client: Mock,
        seeded_video: Video,
        auth_headers: dict[str, str],
        mp4_bytes: bytes,
    ) -> None:
        store = S3AssetStore(mock_storage_client, presign=True, presign_expiration=900)
        app.dependency_overrides[get_video_store] = lambda: store

        response = client.post(f"/api/videos/{seeded_video.id}", files=_video(mp4_bytes), headers=auth_headers)

        assert response.status_code == 200
        assert response.json()["video_url"].startswith("https://s3.example.com/")

        key, _, content_type = mock_storage_client.put_object.call_args.args
        assert key.startswith("landscape/")
        assert content_type == "video/mp4"

        # The record keeps the bucket/key locator; only responses are signed
        assert _stored_video(repository, seeded_video.id).video_url == f"test-bucket,{key}"

    def test_upload_failure_leaves_record_untouched(
        self,
        client: TestClient,
        repository: InMemoryVideoRepository,
        mock_storage_client: Mock,
        test_settings: Settings,
        seeded_video: Video,
        auth_headers: dict[str, str],
        mp4_bytes: bytes,
    ) -> None:
        mock_storage_client.put_object.side_effect = StorageWriteError("unreachable")
        app.dependency_overrides[get_video_store] = lambda: S3AssetStore(
            mock_storage_client, presign=True, presign_expiration=900
        )

        response = client.post(f"/api/videos/{seeded_video.id}", files=_video(mp4_bytes), headers=auth_headers)

        assert response.status_code == 500
        assert response.json()["error"] == "storage_write_failed"
        assert _stored_video(repository, seeded_video.id).video_url is None
        assert _files_under(test_settings.upload_temp_dir) == []


# =============================================================================
# Ingestor helpers
# =============================================================================


def _part(data: bytes, content_type: str = "video/mp4") -> UploadedPart:
    upload = UploadFile(
        file=BytesIO(data),
        size=len(data),
        filename="upload.mp4",
        headers=Headers({"content-type": content_type}),
    )
    return UploadedPart(
        field_name="video", filename="upload.mp4", content_type=content_type, upload=upload, size=len(data)
    )


def _request(content_length: str | None) -> Request:
    headers = [] if content_length is None else [(b"content-length", content_length.encode())]
    return Request({"type": "http", "method": "POST", "path": "/", "headers": headers})


@pytest.mark.unit
class TestIngestor:
    def test_content_length_within_allowance(self) -> None:
        check_content_length(_request(str(MIB + FORM_OVERHEAD_BYTES)), MIB)
        check_content_length(_request(None), MIB)
        check_content_length(_request("garbage"), MIB)

    def test_content_length_over_allowance(self) -> None:
        with pytest.raises(FileTooLargeError):
            check_content_length(_request(str(MIB + FORM_OVERHEAD_BYTES + 1)), MIB)

    @pytest.mark.asyncio
    async def test_read_bounded(self) -> None:
        assert await read_bounded(_part(b"abc"), 3) == b"abc"

        with pytest.raises(FileTooLargeError):
            await read_bounded(_part(b"abcd"), 3)

    @pytest.mark.asyncio
    async def test_spooled_file_is_removed_after_use(self, tmp_path: Path) -> None:
        data = b"\x01" * (2 * MIB + 5)

        async with spooled_temp_file(_part(data), 4 * MIB, directory=str(tmp_path)) as path:
            assert path.parent == tmp_path
            assert path.suffix == ".mp4"
            assert path.read_bytes() == data

        assert not path.exists()

    @pytest.mark.asyncio
    async def test_spooled_file_over_budget(self, tmp_path: Path) -> None:
        with pytest.raises(FileTooLargeError):
            async with spooled_temp_file(_part(b"\x01" * 100), 50, directory=str(tmp_path)):
                pytest.fail("context body must not run")

        assert list(tmp_path.iterdir()) == []

    @pytest.mark.asyncio
    async def test_spooled_file_removed_on_error(self, tmp_path: Path) -> None:
        with pytest.raises(RuntimeError):
            async with spooled_temp_file(_part(b"data"), 50, directory=str(tmp_path)) as path:
                assert path.exists()
                raise RuntimeError("processing failed")

        assert list(tmp_path.iterdir()) == []

    @pytest.mark.asyncio
    async def test_spooled_file_removed_on_cancellation(self, tmp_path: Path) -> None:
        entered = asyncio.Event()

        async def hold_file() -> None:
            async with spooled_temp_file(_part(b"data"), 50, directory=str(tmp_path)):
                entered.set()
                await asyncio.sleep(60)

        task = asyncio.create_task(hold_file())
        await entered.wait()
        assert len(list(tmp_path.iterdir())) == 1

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        assert list(tmp_path.iterdir()) == []


# =============================================================================
# API responses
# =============================================================================


@pytest.mark.integration
class TestAPIResponses:
    def test_health(self, client: TestClient) -> None:
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "healthy"
        assert response.headers["X-Request-ID"]
        assert response.headers["X-Process-Time"].endswith("ms")

    def test_request_id_is_echoed(self, client: TestClient) -> None:
        response = client.get("/health", headers={"X-Request-ID": "req-123"})

        assert response.headers["X-Request-ID"] == "req-123"

    def test_unknown_path(self, client: TestClient) -> None:
        response = client.get("/api/nothing-here")

        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    def test_png_helper_is_small(self) -> None:
        assert 1024 < len(make_png()) < 4096
