"""
Ingestion error taxonomy for Tubely.

Every pipeline stage raises a subclass of ``IngestionError`` instead of letting
library exceptions escape. Two families exist:

- ``ClientError``: the caller's fault (bad id, credentials, ownership, content
  type, size, malformed multipart body). Mapped to 4xx and never retried.
- ``DependencyError``: an external tool or store failed (ffprobe, ffmpeg, the
  object store, MongoDB). Mapped to 5xx and logged with record id and stage.

Routers translate these into ``HTTPException`` with a
``{"error": <code>, "message": <text>}`` detail body.
"""

from fastapi import status


class IngestionError(Exception):
    """Base exception for the media ingestion pipeline."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    error_code: str = "ingestion_failed"

    def __init__(self, message: str, stage: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.stage = stage

    def to_detail(self) -> dict[str, str]:
        """Structured error body returned to HTTP callers."""
        return {"error": self.error_code, "message": self.message}


# =============================================================================
# Client errors (4xx)
# =============================================================================


class ClientError(IngestionError):
    """The request cannot be processed as submitted."""

    status_code = status.HTTP_400_BAD_REQUEST
    error_code = "bad_request"


class InvalidVideoIDError(ClientError):
    error_code = "invalid_video_id"


class InvalidCredentialsError(ClientError):
    status_code = status.HTTP_401_UNAUTHORIZED
    error_code = "invalid_credentials"


class NotVideoOwnerError(ClientError):
    status_code = status.HTTP_401_UNAUTHORIZED
    error_code = "not_video_owner"


class VideoNotFoundError(ClientError):
    status_code = status.HTTP_404_NOT_FOUND
    error_code = "video_not_found"


class UnsupportedMediaTypeError(ClientError):
    error_code = "unsupported_media_type"


class UnrecognizedContentTypeError(ClientError):
    error_code = "unrecognized_content_type"


class MalformedUploadError(ClientError):
    error_code = "malformed_upload"


class EmptyUploadError(ClientError):
    error_code = "empty_upload"


class UploadTooLargeError(ClientError):
    status_code = status.HTTP_413_CONTENT_TOO_LARGE
    error_code = "upload_too_large"


# =============================================================================
# Dependency errors (5xx)
# =============================================================================


class DependencyError(IngestionError):
    """An external process or store failed while handling the request."""

    error_code = "dependency_failed"


class StagingError(DependencyError):
    error_code = "staging_failed"


class ProbeFailedError(DependencyError):
    error_code = "probe_failed"


class NoStreamsError(DependencyError):
    error_code = "no_streams"


class TransformFailedError(DependencyError):
    error_code = "transform_failed"


class UploadFailedError(DependencyError):
    error_code = "upload_failed"


class MetadataCommitError(DependencyError):
    error_code = "metadata_commit_failed"


class VideoStoreUnavailableError(DependencyError):
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    error_code = "video_store_unavailable"


__all__ = [
    "ClientError",
    "DependencyError",
    "EmptyUploadError",
    "IngestionError",
    "InvalidCredentialsError",
    "InvalidVideoIDError",
    "MalformedUploadError",
    "MetadataCommitError",
    "NoStreamsError",
    "NotVideoOwnerError",
    "ProbeFailedError",
    "StagingError",
    "TransformFailedError",
    "UnrecognizedContentTypeError",
    "UnsupportedMediaTypeError",
    "UploadFailedError",
    "UploadTooLargeError",
    "VideoNotFoundError",
    "VideoStoreUnavailableError",
]
