"""
Local thumbnail stores.

Used when ``thumbnail_storage`` is ``filesystem`` or ``memory`` instead of the
object store:

- ``LocalAssetStore`` copies the staged file into the directory served at
  ``/assets``. Durable on one host only.
- ``InMemoryThumbnailStore`` keeps the bytes in a process-local map keyed by
  video id. Contents are lost on restart and are not shared between worker
  processes.
"""

import logging
import shutil

from dataclasses import dataclass
from pathlib import Path
from uuid import UUID

import aiofiles

from tubely.core.errors import StagingError
from tubely.services.key_deriver import StorageKey
from tubely.utils.async_utils import async_wrap


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StoredThumbnail:
    data: bytes
    content_type: str


class InMemoryThumbnailStore:
    """Process-local thumbnail bytes keyed by video id."""

    def __init__(self) -> None:
        self._items: dict[UUID, StoredThumbnail] = {}

    async def put(self, video_id: UUID, artifact_path: Path, content_type: str) -> None:
        try:
            async with aiofiles.open(artifact_path, "rb") as f:
                data = await f.read()
        except OSError as e:
            raise StagingError("Couldn't read staged thumbnail", stage="store_thumbnail") from e
        self._items[video_id] = StoredThumbnail(data=data, content_type=content_type)

    def get(self, video_id: UUID) -> StoredThumbnail | None:
        return self._items.get(video_id)

    def clear(self) -> None:
        self._items.clear()


class LocalAssetStore:
    """Copies thumbnails into ``assets_root`` under their storage key."""

    def __init__(self, assets_root: Path) -> None:
        self.assets_root = assets_root

    async def put(self, artifact_path: Path, key: StorageKey) -> Path:
        """
        Copy the staged file to ``assets_root/<key>``.

        Raises:
            StagingError: The copy failed.
        """
        target = self.assets_root / key.path

        @async_wrap
        def _copy() -> None:
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(artifact_path, target)

        try:
            await _copy()
        except OSError as e:
            raise StagingError("Couldn't save thumbnail asset", stage="store_thumbnail") from e

        logger.debug("Stored thumbnail asset at %s", target)
        return target


_memory_store = InMemoryThumbnailStore()


def get_memory_thumbnail_store() -> InMemoryThumbnailStore:
    return _memory_store
