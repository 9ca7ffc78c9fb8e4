"""
Tubely Ingestion Service Module

Runs one upload through the ingestion pipeline and attaches the result to its
video record:

    ownership check -> content-type check -> stage -> classify -> remux
    -> derive key -> publish -> commit

Thumbnails skip classification and remuxing and are stored according to the
``thumbnail_storage`` setting (object store, local assets directory or
process memory).

Every staged or derived file is registered on an ``AsyncExitStack`` and is
removed on every exit path. A failure at any stage stops the pipeline; the
record is only updated after the media has been durably written. When the
commit itself fails after a successful write, the written object is left in
place and logged as an orphan.
"""

import logging
import secrets

from collections.abc import Callable
from contextlib import AsyncExitStack
from pathlib import Path
from uuid import UUID

from tubely.config import (
    THUMBNAIL_STORAGE_FILESYSTEM,
    THUMBNAIL_STORAGE_MEMORY,
    Settings,
)
from tubely.core.errors import (
    ClientError,
    DependencyError,
    IngestionError,
    MetadataCommitError,
    NotVideoOwnerError,
    UnsupportedMediaTypeError,
)
from tubely.models.video import MediaKind, Video
from tubely.services.key_deriver import derive_storage_key
from tubely.services.media_probe import MediaClassifier
from tubely.services.media_transform import MediaRemuxer
from tubely.services.staging import (
    StagedArtifact,
    UploadSource,
    release_artifact,
    staged_upload,
)
from tubely.services.storage_service import StorageService
from tubely.services.thumbnail_store import InMemoryThumbnailStore, LocalAssetStore
from tubely.services.video_store import VideoStore
from tubely.utils.logger import ContextLoggerAdapter, add_log_context


logger = logging.getLogger(__name__)


def normalize_content_type(content_type: str | None) -> str:
    """Lower-cased media type with parameters removed."""
    if not content_type:
        return ""
    return content_type.split(";", 1)[0].strip().lower()


class IngestionService:
    """
    Orchestrates thumbnail and video ingestion for a single record.

    All collaborators are injected so tests can substitute fakes for the
    probe, the remuxer, the object store and the record store.
    """

    def __init__(
        self,
        video_store: VideoStore,
        storage: StorageService,
        classifier: MediaClassifier,
        remuxer: MediaRemuxer,
        settings: Settings,
        memory_thumbnails: InMemoryThumbnailStore | None = None,
        asset_store: LocalAssetStore | None = None,
        random_bytes: Callable[[int], bytes] = secrets.token_bytes,
    ) -> None:
        self.video_store = video_store
        self.storage = storage
        self.classifier = classifier
        self.remuxer = remuxer
        self.settings = settings
        self.memory_thumbnails = memory_thumbnails or InMemoryThumbnailStore()
        self.asset_store = asset_store or LocalAssetStore(Path(settings.assets_root))
        self.random_bytes = random_bytes

    # -------------------------------------------------------------------------
    # Pre-staging checks
    # -------------------------------------------------------------------------

    async def load_owned_video(self, video_id: UUID, caller_id: UUID) -> Video:
        """
        Load the target record and confirm the caller owns it.

        Raises:
            VideoNotFoundError: No such record.
            NotVideoOwnerError: The caller is not the record's owner.
        """
        video = await self.video_store.get_video(video_id)
        if not video.is_owned_by(caller_id):
            logger.warning(
                "User %s attempted upload to video %s owned by %s",
                caller_id,
                video_id,
                video.user_id,
            )
            raise NotVideoOwnerError("Not authorized to update this video", stage="authorize")
        return video

    def check_content_type(self, kind: MediaKind, declared: str | None) -> str:
        """
        Validate the part's declared content type against the kind's allow-list.

        Returns:
            The normalized media type.

        Raises:
            UnsupportedMediaTypeError: Missing or not allowed.
        """
        content_type = normalize_content_type(declared)
        if content_type not in kind.allowed_mime_types:
            allowed = ", ".join(sorted(kind.allowed_mime_types))
            raise UnsupportedMediaTypeError(
                f"Invalid file type for {kind.value}: {declared or 'missing'}. "
                f"Allowed: {allowed}",
                stage="validate",
            )
        return content_type

    def max_bytes_for(self, kind: MediaKind) -> int:
        if kind is MediaKind.VIDEO:
            return self.settings.video_max_upload_bytes
        return self.settings.thumbnail_max_upload_bytes

    # -------------------------------------------------------------------------
    # Pipelines
    # -------------------------------------------------------------------------

    async def ingest_video(self, video: Video, upload: UploadSource) -> Video:
        """
        Stage, classify, fast-start remux, publish and commit a video upload.

        Returns:
            The updated record with ``video_url`` set.
        """
        ctx_logger = add_log_context(
            logger, video_id=str(video.id), user_id=str(video.user_id), kind="video"
        )
        try:
            content_type = self.check_content_type(MediaKind.VIDEO, upload.content_type)

            async with AsyncExitStack() as stack:
                staged = await self._stage(stack, MediaKind.VIDEO, upload, content_type)
                ctx_logger.info("Staged video upload (%d bytes)", staged.size)

                classification = await self.classifier.classify(staged.path)
                ctx_logger.info(
                    "Classified video as %s (%dx%d)",
                    classification.orientation.value,
                    classification.width,
                    classification.height,
                )

                processed = await self.remuxer.fast_start(staged)
                stack.push_async_callback(release_artifact, processed.path)

                key = derive_storage_key(
                    content_type,
                    partition=classification.orientation,
                    random_bytes=self.random_bytes,
                )
                url = await self.storage.publish(processed.path, key, content_type)
                ctx_logger.info("Published video to %s", key.path)

                return await self._commit(video, MediaKind.VIDEO, url, key.path, ctx_logger)
        except IngestionError as e:
            self._log_failure(ctx_logger, e)
            raise

    async def ingest_thumbnail(self, video: Video, upload: UploadSource) -> Video:
        """
        Stage and store a thumbnail, then commit its URL.

        Returns:
            The updated record with ``thumbnail_url`` set.
        """
        ctx_logger = add_log_context(
            logger, video_id=str(video.id), user_id=str(video.user_id), kind="thumbnail"
        )
        try:
            content_type = self.check_content_type(MediaKind.THUMBNAIL, upload.content_type)

            async with AsyncExitStack() as stack:
                staged = await self._stage(stack, MediaKind.THUMBNAIL, upload, content_type)
                ctx_logger.info("Staged thumbnail upload (%d bytes)", staged.size)

                key = derive_storage_key(content_type, random_bytes=self.random_bytes)
                mode = self.settings.thumbnail_storage

                if mode == THUMBNAIL_STORAGE_MEMORY:
                    await self.memory_thumbnails.put(video.id, staged.path, content_type)
                    url = f"{self.settings.public_base_url}/api/v1/thumbnails/{video.id}"
                elif mode == THUMBNAIL_STORAGE_FILESYSTEM:
                    await self.asset_store.put(staged.path, key)
                    url = f"{self.settings.public_base_url}/assets/{key.path}"
                else:
                    url = await self.storage.publish(staged.path, key, content_type)
                ctx_logger.info("Stored thumbnail (%s) at %s", mode, url)

                return await self._commit(
                    video, MediaKind.THUMBNAIL, url, key.path, ctx_logger
                )
        except IngestionError as e:
            self._log_failure(ctx_logger, e)
            raise

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    async def _stage(
        self,
        stack: AsyncExitStack,
        kind: MediaKind,
        upload: UploadSource,
        content_type: str,
    ) -> StagedArtifact:
        return await stack.enter_async_context(
            staged_upload(
                upload,
                content_type,
                self.max_bytes_for(kind),
                self.settings.resolved_staging_dir,
                prefix=f"tubely-{kind.value}-",
                filename=upload.filename,
            )
        )

    async def _commit(
        self,
        video: Video,
        kind: MediaKind,
        url: str,
        key_path: str,
        ctx_logger: ContextLoggerAdapter,
    ) -> Video:
        updated = video.with_media_url(kind, url)
        try:
            await self.video_store.update_video(updated, fields=(kind.url_field, "updated_at"))
        except MetadataCommitError:
            ctx_logger.error(
                "Orphaned %s object after failed commit",
                kind.value,
                extra={"stage": "commit", "key": key_path, "url": url},
            )
            raise
        ctx_logger.info("Committed %s for video", kind.url_field)
        return updated

    @staticmethod
    def _log_failure(ctx_logger: ContextLoggerAdapter, error: IngestionError) -> None:
        if isinstance(error, DependencyError):
            ctx_logger.error(
                "Ingestion failed: %s",
                error.message,
                exc_info=error.__cause__ is not None,
                extra={"stage": error.stage, "error_code": error.error_code},
            )
        elif isinstance(error, ClientError):
            ctx_logger.warning(
                "Upload rejected: %s",
                error.message,
                extra={"stage": error.stage, "error_code": error.error_code},
            )


__all__ = [
    "IngestionService",
    "normalize_content_type",
]
