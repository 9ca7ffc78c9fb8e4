"""
Models Package for Tubely.

Pydantic models for video records and the value types produced by the
ingestion pipeline.
"""

from tubely.models.video import (
    THUMBNAIL_MIME_TYPES,
    VIDEO_MIME_TYPES,
    ClassificationResult,
    MediaKind,
    Orientation,
    Video,
    VideoResponse,
)


__all__ = [
    "THUMBNAIL_MIME_TYPES",
    "VIDEO_MIME_TYPES",
    "ClassificationResult",
    "MediaKind",
    "Orientation",
    "Video",
    "VideoResponse",
]
