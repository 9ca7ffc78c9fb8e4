"""
FastAPI Upload Router for Tubely

Endpoints:
- POST /video/{video_id} - Upload the video file for a record (multipart field ``video``)
- POST /thumbnail/{video_id} - Upload a thumbnail for a record (multipart field ``thumbnail``)

Both endpoints require a bearer token for the record's owner and respond with
the updated record. Checks run in a fixed order so that nothing is staged for
a request that can be rejected up front: credentials, record id, ownership,
declared body size, multipart field, content type.
"""

import logging

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel, Field

from tubely.config import Settings, get_settings
from tubely.core.auth import get_current_user_id
from tubely.core.errors import (
    IngestionError,
    InvalidVideoIDError,
    UploadTooLargeError,
)
from tubely.models.video import MediaKind, Video, VideoResponse
from tubely.services.ingestion_service import IngestionService
from tubely.services.media_probe import FFprobeInspector, MediaClassifier
from tubely.services.media_transform import FFmpegFastStartRemuxer, MediaRemuxer
from tubely.services.storage_service import StorageService, get_storage_service
from tubely.services.thumbnail_store import (
    InMemoryThumbnailStore,
    get_memory_thumbnail_store,
)
from tubely.services.video_store import VideoStore, get_video_store
from tubely.utils.multipart_stream import open_file_part


logger = logging.getLogger(__name__)

# Allowance for multipart boundaries and part headers on top of the file itself
MULTIPART_OVERHEAD_BYTES = 64 * 1024


# ============================================================================
# Response Models
# ============================================================================


class ErrorDetail(BaseModel):
    error: str = Field(..., description="Machine-readable error code")
    message: str = Field(..., description="Human-readable error message")


class ErrorResponse(BaseModel):
    detail: ErrorDetail


router = APIRouter(
    tags=["upload"],
    responses={
        400: {"model": ErrorResponse, "description": "Invalid id, content type or form"},
        401: {"model": ErrorResponse, "description": "Missing/invalid token or not the owner"},
        404: {"model": ErrorResponse, "description": "Video not found"},
        413: {"model": ErrorResponse, "description": "Upload exceeds the size limit"},
        500: {"model": ErrorResponse, "description": "Processing or storage failure"},
    },
)


# ============================================================================
# Dependency Injection Functions
# ============================================================================


def get_media_classifier(settings: Settings = Depends(get_settings)) -> MediaClassifier:
    inspector = FFprobeInspector(settings.ffprobe_path, settings.media_tool_timeout_seconds)
    return MediaClassifier(inspector, tolerance=settings.aspect_ratio_tolerance)


def get_media_remuxer(settings: Settings = Depends(get_settings)) -> MediaRemuxer:
    return FFmpegFastStartRemuxer(settings.ffmpeg_path, settings.media_tool_timeout_seconds)


def get_ingestion_service(
    settings: Settings = Depends(get_settings),
    video_store: VideoStore = Depends(get_video_store),
    storage: StorageService = Depends(get_storage_service),
    classifier: MediaClassifier = Depends(get_media_classifier),
    remuxer: MediaRemuxer = Depends(get_media_remuxer),
    memory_thumbnails: InMemoryThumbnailStore = Depends(get_memory_thumbnail_store),
) -> IngestionService:
    """Dependency injection for IngestionService."""
    return IngestionService(
        video_store=video_store,
        storage=storage,
        classifier=classifier,
        remuxer=remuxer,
        settings=settings,
        memory_thumbnails=memory_thumbnails,
    )


# ============================================================================
# Helper Functions
# ============================================================================


def parse_video_id(raw: str) -> UUID:
    try:
        return UUID(raw)
    except ValueError as e:
        raise InvalidVideoIDError("Invalid ID", stage="validate") from e


def check_declared_length(request: Request, max_bytes: int) -> None:
    """
    Reject a request whose declared body size cannot fit under the ceiling.

    A missing or unparseable header is left to the streaming body cap.
    """
    raw = request.headers.get("content-length")
    if raw is None:
        return
    try:
        declared = int(raw)
    except ValueError:
        return
    if declared > max_bytes + MULTIPART_OVERHEAD_BYTES:
        raise UploadTooLargeError(
            f"Upload exceeds the {max_bytes} byte limit", stage="validate"
        )


async def ingest_form_upload(
    kind: MediaKind,
    request: Request,
    video: Video,
    service: IngestionService,
) -> Video:
    """
    Stream the multipart file part straight into the pipeline.

    Only the part headers are read before the content-type check; the body is
    capped at the kind's ceiling plus multipart overhead whether or not a
    ``Content-Length`` was sent.
    """
    max_body_bytes = service.max_bytes_for(kind) + MULTIPART_OVERHEAD_BYTES
    upload = await open_file_part(request, kind.form_field, max_body_bytes)
    if kind is MediaKind.VIDEO:
        return await service.ingest_video(video, upload)
    return await service.ingest_thumbnail(video, upload)


async def handle_upload(
    kind: MediaKind,
    raw_video_id: str,
    request: Request,
    user_id: UUID,
    service: IngestionService,
) -> VideoResponse:
    try:
        video_id = parse_video_id(raw_video_id)
        logger.info("Uploading %s for video %s by user %s", kind.value, video_id, user_id)

        video = await service.load_owned_video(video_id, user_id)
        check_declared_length(request, service.max_bytes_for(kind))
        updated = await ingest_form_upload(kind, request, video, service)
    except IngestionError as e:
        raise HTTPException(status_code=e.status_code, detail=e.to_detail()) from e

    return VideoResponse.from_video(updated)


# ============================================================================
# Endpoints
# ============================================================================


@router.post(
    "/video/{video_id}",
    response_model=VideoResponse,
    status_code=status.HTTP_200_OK,
    summary="Upload video",
    description="Upload an MP4 for a video record. The file is remuxed for fast start.",
)
async def upload_video(
    video_id: str,
    request: Request,
    user_id: UUID = Depends(get_current_user_id),
    service: IngestionService = Depends(get_ingestion_service),
) -> VideoResponse:
    return await handle_upload(MediaKind.VIDEO, video_id, request, user_id, service)


@router.post(
    "/thumbnail/{video_id}",
    response_model=VideoResponse,
    status_code=status.HTTP_200_OK,
    summary="Upload thumbnail",
    description="Upload a JPEG or PNG thumbnail for a video record.",
)
async def upload_thumbnail(
    video_id: str,
    request: Request,
    user_id: UUID = Depends(get_current_user_id),
    service: IngestionService = Depends(get_ingestion_service),
) -> VideoResponse:
    return await handle_upload(MediaKind.THUMBNAIL, video_id, request, user_id, service)
