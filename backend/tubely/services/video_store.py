"""
Video record store backed by the MongoDB ``videos`` collection.

The ingestion pipeline reads a record once to check ownership and writes it
back once to commit a new media URL. Writes are scoped to the owning user so a
record that changed hands between read and commit is never updated.
"""

import logging

from collections.abc import Iterable
from uuid import UUID

from fastapi import HTTPException
from motor.motor_asyncio import AsyncIOMotorCollection
from pydantic import ValidationError
from pymongo.errors import PyMongoError

from tubely.core.database import get_db_client
from tubely.core.errors import (
    MetadataCommitError,
    VideoNotFoundError,
    VideoStoreUnavailableError,
)
from tubely.models.video import Video


logger = logging.getLogger(__name__)

# Fields the pipeline is allowed to overwrite on commit
MUTABLE_FIELDS: tuple[str, ...] = (
    "title",
    "description",
    "thumbnail_url",
    "video_url",
    "updated_at",
)


class VideoStore:
    """Async access to video records."""

    def __init__(self, collection: AsyncIOMotorCollection) -> None:
        self._collection = collection

    async def get_video(self, video_id: UUID) -> Video:
        """
        Load a video record by id.

        Raises:
            VideoNotFoundError: No record with this id exists.
            VideoStoreUnavailableError: The database could not be reached.
        """
        try:
            document = await self._collection.find_one({"_id": str(video_id)})
        except PyMongoError as e:
            logger.exception("Video lookup failed for %s", video_id)
            raise VideoStoreUnavailableError(
                "Couldn't get video", stage="load_record"
            ) from e

        if document is None:
            raise VideoNotFoundError("Video not found", stage="load_record")

        try:
            return Video.from_document(document)
        except ValidationError as e:
            logger.exception("Stored video document %s is malformed", video_id)
            raise VideoStoreUnavailableError(
                "Couldn't read video record", stage="load_record"
            ) from e

    async def update_video(self, video: Video, fields: Iterable[str] | None = None) -> None:
        """
        Persist ``fields`` of ``video`` (every mutable field when omitted).

        Only the named fields are ``$set``, so a commit that touches one URL
        field never writes back a stale copy of the other. The update is
        filtered on both id and owner.

        Raises:
            ValueError: A requested field is not mutable.
            MetadataCommitError: The write failed or matched no record.
        """
        selected = MUTABLE_FIELDS if fields is None else tuple(fields)
        immutable = set(selected) - set(MUTABLE_FIELDS)
        if immutable:
            raise ValueError(f"Fields cannot be updated: {', '.join(sorted(immutable))}")

        document = video.to_document()
        changes = {field: document[field] for field in selected}

        try:
            result = await self._collection.update_one(
                {"_id": str(video.id), "user_id": str(video.user_id)},
                {"$set": changes},
            )
        except PyMongoError as e:
            raise MetadataCommitError("Couldn't update video", stage="commit") from e

        if result.matched_count == 0:
            raise MetadataCommitError(
                "Video record no longer matches its owner", stage="commit"
            )

        logger.debug("Updated video %s", video.id)


def get_video_store() -> VideoStore:
    """FastAPI dependency returning a store bound to the live ``videos`` collection."""
    try:
        collection = get_db_client().get_videos_collection()
    except RuntimeError as e:
        error = VideoStoreUnavailableError("Video store is not connected", stage="load_record")
        raise HTTPException(status_code=error.status_code, detail=error.to_detail()) from e
    return VideoStore(collection)
