"""
Thumbnail retrieval for the in-memory thumbnail store.

Only active when ``thumbnail_storage`` is ``memory``; every lookup returns 404
otherwise.
"""

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Response, status

from tubely.config import THUMBNAIL_STORAGE_MEMORY, Settings, get_settings
from tubely.services.thumbnail_store import InMemoryThumbnailStore, get_memory_thumbnail_store


router = APIRouter(tags=["thumbnails"])


@router.get("/{video_id}", summary="Get thumbnail", response_class=Response)
async def get_thumbnail(
    video_id: UUID,
    settings: Settings = Depends(get_settings),
    store: InMemoryThumbnailStore = Depends(get_memory_thumbnail_store),
) -> Response:
    thumbnail = None
    if settings.thumbnail_storage == THUMBNAIL_STORAGE_MEMORY:
        thumbnail = store.get(video_id)
    if thumbnail is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": "thumbnail_not_found", "message": "Thumbnail not found"},
        )
    return Response(content=thumbnail.data, media_type=thumbnail.content_type)
