"""
Video Pydantic models for Tubely.

This module defines the ``Video`` record that uploads are attached to, the
public ``VideoResponse`` shape, and the small value types produced by the
ingestion pipeline (media kinds, orientation buckets, classification results).

The video record is owned by the metadata store. The ingestion pipeline only
ever sets one of ``thumbnail_url`` / ``video_url`` on it; ``id`` and
``user_id`` are never written by the pipeline.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Any
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


# =============================================================================
# CONSTANTS
# =============================================================================

VIDEO_MIME_TYPES: frozenset[str] = frozenset({"video/mp4"})

THUMBNAIL_MIME_TYPES: frozenset[str] = frozenset({"image/jpeg", "image/png"})


# =============================================================================
# ENUMS
# =============================================================================


class MediaKind(str, Enum):
    """
    The two upload kinds accepted by the ingestion pipeline.

    Each kind has its own multipart field name, MIME allow-list, size ceiling
    and target URL field on the video record.
    """

    THUMBNAIL = "thumbnail"
    VIDEO = "video"

    @property
    def form_field(self) -> str:
        return self.value

    @property
    def url_field(self) -> str:
        return f"{self.value}_url"

    @property
    def allowed_mime_types(self) -> frozenset[str]:
        if self is MediaKind.VIDEO:
            return VIDEO_MIME_TYPES
        return THUMBNAIL_MIME_TYPES


class Orientation(str, Enum):
    """
    Coarse aspect-ratio bucket of a probed video.

    Used as the partition segment of video storage keys.
    """

    LANDSCAPE = "landscape"
    PORTRAIT = "portrait"
    OTHER = "other"


# =============================================================================
# MODELS
# =============================================================================


class ClassificationResult(BaseModel):
    """Orientation bucket derived from one probed stream's dimensions."""

    model_config = ConfigDict(frozen=True)

    orientation: Orientation
    width: int
    height: int


class Video(BaseModel):
    """
    Video record as stored in the ``videos`` collection.

    Attributes:
        id: Record identifier (aliased from ``_id``)
        user_id: Owning user's identifier
        title: Display title
        description: Free-form description
        thumbnail_url: Public URL of the current thumbnail, if any
        video_url: Public URL of the current video file, if any
        created_at: Creation timestamp (UTC)
        updated_at: Last modification timestamp (UTC)
    """

    model_config = ConfigDict(populate_by_name=True)

    id: UUID = Field(..., alias="_id")
    user_id: UUID
    title: str = Field(default="", max_length=500)
    description: str = Field(default="", max_length=5000)
    thumbnail_url: str | None = None
    video_url: str | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC))

    @classmethod
    def from_document(cls, document: dict[str, Any]) -> "Video":
        """Build a Video from a raw MongoDB document."""
        return cls.model_validate(document)

    def to_document(self) -> dict[str, Any]:
        """Serialize to a MongoDB document with string identifiers."""
        document = self.model_dump(by_alias=True)
        document["_id"] = str(self.id)
        document["user_id"] = str(self.user_id)
        return document

    def is_owned_by(self, user_id: UUID) -> bool:
        return self.user_id == user_id

    def with_media_url(self, kind: MediaKind, url: str) -> "Video":
        """
        Return a copy with the URL field for ``kind`` set.

        The original instance is left untouched so a failed commit never
        leaves a half-updated record in memory.
        """
        return self.model_copy(
            update={kind.url_field: url, "updated_at": datetime.now(UTC)}
        )


class VideoResponse(BaseModel):
    """Public JSON representation of a video record."""

    id: UUID
    user_id: UUID
    title: str
    description: str
    thumbnail_url: str | None
    video_url: str | None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_video(cls, video: Video) -> "VideoResponse":
        return cls(
            id=video.id,
            user_id=video.user_id,
            title=video.title,
            description=video.description,
            thumbnail_url=video.thumbnail_url,
            video_url=video.video_url,
            created_at=video.created_at,
            updated_at=video.updated_at,
        )
