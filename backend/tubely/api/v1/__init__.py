"""
Tubely API v1 Router Aggregator.

Combines the v1 endpoint routers into a single APIRouter that the application
mounts under ``/api/v1``.

Router Structure:
    - /upload: Video and thumbnail ingestion endpoints
    - /thumbnails: Retrieval of thumbnails held in process memory
"""

import logging

from fastapi import APIRouter

from tubely.api.v1.thumbnails import router as thumbnails_router
from tubely.api.v1.upload import router as upload_router


logger = logging.getLogger(__name__)

api_router = APIRouter()

api_router.include_router(
    upload_router,
    prefix="/upload",
    tags=["upload"],
)

api_router.include_router(
    thumbnails_router,
    prefix="/thumbnails",
    tags=["thumbnails"],
)


__all__ = ["api_router"]
