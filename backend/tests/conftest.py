"""
Pytest Configuration and Test Fixtures for the Tubely Backend

This module provides shared fixtures including:
- Test settings with an isolated staging directory per test
- User ids, a sample video record and bearer tokens
- A mocked video record store
- An in-process fake of the boto3 S3 client that records uploaded objects
- Fake media inspector and remuxer so pipeline tests need no ffmpeg
- MP4 box builders for fast-start tests
- A FastAPI TestClient wired to all of the above via dependency overrides
"""

import shutil
import struct

from collections.abc import Callable, Generator
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock
from uuid import UUID, uuid4

import pytest

from fastapi.testclient import TestClient

from tubely.api.v1.upload import get_media_classifier, get_media_remuxer
from tubely.config import Settings, get_settings
from tubely.core.auth import create_access_token
from tubely.main import app
from tubely.models.video import Video
from tubely.services.media_probe import MediaClassifier, MediaProperties
from tubely.services.media_transform import PROCESSING_SUFFIX, read_top_level_boxes
from tubely.services.staging import StagedArtifact
from tubely.services.storage_service import StorageService, get_storage_service
from tubely.services.thumbnail_store import InMemoryThumbnailStore, get_memory_thumbnail_store
from tubely.services.video_store import VideoStore, get_video_store


TEST_JWT_SECRET = "test-secret-key-for-jwt-signing-minimum-32-chars"


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "integration: tests that run real ffmpeg/ffprobe")
    config.addinivalue_line("markers", "unit: isolated tests with no external processes")


requires_ffmpeg = pytest.mark.skipif(
    shutil.which("ffmpeg") is None or shutil.which("ffprobe") is None,
    reason="ffmpeg and ffprobe binaries are required",
)


# ==============================================================================
# Settings Fixtures
# ==============================================================================


@pytest.fixture
def staging_dir(tmp_path: Path) -> Path:
    path = tmp_path / "staging"
    path.mkdir()
    return path


@pytest.fixture
def test_settings(tmp_path: Path, staging_dir: Path) -> Settings:
    """Settings isolated from the environment's MongoDB, S3 and temp dirs."""
    return Settings(
        app_env="testing",
        app_name="Tubely-Test",
        debug=False,
        public_base_url="http://localhost:8091",
        mongodb_uri="mongodb://localhost:27017",
        mongodb_db_name="tubely_test",
        s3_endpoint_url="http://localhost:9000",
        s3_access_key_id="test-access-key",
        s3_secret_access_key="test-secret-key",
        s3_bucket_name="test-bucket",
        s3_region="us-east-1",
        s3_public_base_url=None,
        jwt_secret=TEST_JWT_SECRET,
        jwt_issuer="tubely-access",
        video_max_upload_mb=1,
        thumbnail_max_upload_mb=1,
        staging_dir=str(staging_dir),
        thumbnail_storage="s3",
        assets_root=str(tmp_path / "assets"),
    )


# ==============================================================================
# Identity Fixtures
# ==============================================================================


@pytest.fixture
def owner_id() -> UUID:
    return uuid4()


@pytest.fixture
def other_user_id() -> UUID:
    return uuid4()


@pytest.fixture
def sample_video(owner_id: UUID) -> Video:
    return Video(
        id=uuid4(),
        user_id=owner_id,
        title="Boots on the ground",
        description="A short clip",
    )


@pytest.fixture
def auth_headers(test_settings: Settings, owner_id: UUID) -> dict[str, str]:
    token = create_access_token(owner_id, test_settings)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def other_user_headers(test_settings: Settings, other_user_id: UUID) -> dict[str, str]:
    token = create_access_token(other_user_id, test_settings)
    return {"Authorization": f"Bearer {token}"}


# ==============================================================================
# Store Fixtures
# ==============================================================================


@pytest.fixture
def mock_video_store(sample_video: Video) -> AsyncMock:
    """VideoStore mock that returns ``sample_video`` and accepts every commit."""
    store = AsyncMock(spec=VideoStore)
    store.get_video = AsyncMock(return_value=sample_video)
    store.update_video = AsyncMock(return_value=None)
    return store


class FakeS3Client:
    """Records ``upload_fileobj`` calls the way the real client would store them."""

    def __init__(self) -> None:
        self.objects: dict[str, dict[str, Any]] = {}
        self.error: Exception | None = None

    def upload_fileobj(self, fileobj, bucket, key, ExtraArgs=None, Config=None):  # noqa: N803
        if self.error is not None:
            raise self.error
        self.objects[key] = {
            "bucket": bucket,
            "body": fileobj.read(),
            "content_type": (ExtraArgs or {}).get("ContentType"),
        }


@pytest.fixture
def fake_s3() -> FakeS3Client:
    return FakeS3Client()


@pytest.fixture
def storage_service(test_settings: Settings, fake_s3: FakeS3Client) -> StorageService:
    return StorageService(
        bucket_name=test_settings.s3_bucket_name,
        endpoint_url=test_settings.s3_endpoint_url,
        region_name=test_settings.s3_region,
        client=fake_s3,
    )


@pytest.fixture
def memory_thumbnails() -> InMemoryThumbnailStore:
    return InMemoryThumbnailStore()


# ==============================================================================
# Media Fixtures
# ==============================================================================


def mp4_box(box_type: bytes, payload: bytes = b"") -> bytes:
    return struct.pack(">I4s", 8 + len(payload), box_type) + payload


def build_mp4(fast_start: bool = True, mdat_size: int = 4096) -> bytes:
    """Minimal ISO-BMFF byte layout: ftyp, then moov/mdat in the requested order."""
    ftyp = mp4_box(b"ftyp", b"isom\x00\x00\x02\x00isomiso2mp41")
    moov = mp4_box(b"moov", mp4_box(b"mvhd", b"\x00" * 100))
    mdat = mp4_box(b"mdat", b"\xab" * mdat_size)
    if fast_start:
        return ftyp + moov + mdat
    return ftyp + mdat + moov


@pytest.fixture
def mp4_builder() -> Callable[..., bytes]:
    return build_mp4


@pytest.fixture
def box_builder() -> Callable[..., bytes]:
    return mp4_box


class FakeInspector:
    """Reports a fixed list of streams for any file."""

    def __init__(self, streams: list[dict[str, Any]]) -> None:
        self.streams = streams
        self.calls: list[Path] = []

    async def inspect(self, path: Path) -> MediaProperties:
        self.calls.append(path)
        return MediaProperties(streams=self.streams)


class BoxReorderingRemuxer:
    """
    Moves top-level ``moov`` boxes ahead of ``mdat`` without touching offsets.

    Enough for the pipeline's byte-layout checks; not a playable remux.
    """

    def __init__(self) -> None:
        self.calls: list[Path] = []

    async def fast_start(self, artifact: StagedArtifact) -> StagedArtifact:
        self.calls.append(artifact.path)
        data = artifact.path.read_bytes()
        boxes = read_top_level_boxes(artifact.path)
        ordered = sorted(boxes, key=lambda b: 0 if b.box_type in ("ftyp", "moov") else 1)
        output = b"".join(data[b.offset : b.offset + b.size] for b in ordered)
        target = artifact.path.with_name(artifact.path.name + PROCESSING_SUFFIX)
        target.write_bytes(output)
        return StagedArtifact(path=target, size=len(output), content_type=artifact.content_type)


@pytest.fixture
def landscape_inspector() -> FakeInspector:
    return FakeInspector([{"codec_type": "video", "width": 1920, "height": 1080}])


@pytest.fixture
def fake_remuxer() -> BoxReorderingRemuxer:
    return BoxReorderingRemuxer()


# ==============================================================================
# Application Client Fixture
# ==============================================================================


@pytest.fixture
def client(
    test_settings: Settings,
    mock_video_store: AsyncMock,
    storage_service: StorageService,
    landscape_inspector: FakeInspector,
    fake_remuxer: BoxReorderingRemuxer,
    memory_thumbnails: InMemoryThumbnailStore,
) -> Generator[TestClient, None, None]:
    """TestClient with every external collaborator replaced by a fake."""
    app.dependency_overrides[get_settings] = lambda: test_settings
    app.dependency_overrides[get_video_store] = lambda: mock_video_store
    app.dependency_overrides[get_storage_service] = lambda: storage_service
    app.dependency_overrides[get_media_classifier] = lambda: MediaClassifier(landscape_inspector)
    app.dependency_overrides[get_media_remuxer] = lambda: fake_remuxer
    app.dependency_overrides[get_memory_thumbnail_store] = lambda: memory_thumbnails

    yield TestClient(app)

    app.dependency_overrides.clear()
