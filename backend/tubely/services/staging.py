"""
Stream staging for uploaded media.

Copies an inbound upload stream, chunk by chunk, into a uniquely named file in
the staging directory while enforcing a hard byte ceiling. The resulting
artifact is complete and closed, so later stages can reopen it from offset 0 as
many times as they need.
"""

import logging
import os
import tempfile

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

import aiofiles
import aiofiles.os

from tubely.core.errors import EmptyUploadError, StagingError, UploadTooLargeError


logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024  # 1 MiB


class AsyncReadable(Protocol):
    """Anything with an async ``read(size)``, e.g. Starlette's ``UploadFile``."""

    async def read(self, size: int = -1) -> bytes: ...


class UploadSource(AsyncReadable, Protocol):
    """An upload stream plus the metadata declared in its multipart part headers."""

    content_type: str | None
    filename: str | None


@dataclass(frozen=True)
class StagedArtifact:
    """A fully written upload (or derived file) on local disk."""

    path: Path
    size: int
    content_type: str


def _suffix_for(filename: str | None) -> str:
    """File suffix taken from the client filename, for readability of staged files only."""
    if not filename:
        return ""
    suffix = Path(filename).suffix.lower()
    if suffix[1:].isalnum() and len(suffix) <= 8:
        return suffix
    return ""


async def stage_upload(
    stream: AsyncReadable,
    content_type: str,
    max_bytes: int,
    staging_dir: Path,
    prefix: str = "tubely-",
    filename: str | None = None,
) -> StagedArtifact:
    """
    Copy ``stream`` into a new staging file.

    Args:
        stream: Source of the upload bytes
        content_type: Declared content type, carried on the artifact
        max_bytes: Ceiling; the chunk that crosses it aborts staging
        staging_dir: Directory to create the file in
        prefix: Filename prefix, e.g. ``tubely-video-``
        filename: Client filename, used only to pick a suffix

    Returns:
        StagedArtifact describing the written file

    Raises:
        UploadTooLargeError: The stream exceeded ``max_bytes``
        EmptyUploadError: The stream carried no bytes
        StagingError: Reading the stream or writing the file failed
    """
    try:
        staging_dir.mkdir(parents=True, exist_ok=True)
        fd, raw_path = tempfile.mkstemp(
            prefix=prefix, suffix=_suffix_for(filename), dir=staging_dir
        )
        os.close(fd)
    except OSError as e:
        raise StagingError("Couldn't create staging file", stage="stage") from e

    path = Path(raw_path)
    total = 0
    try:
        async with aiofiles.open(path, "wb") as out:
            while True:
                try:
                    chunk = await stream.read(CHUNK_SIZE)
                except OSError as e:
                    raise StagingError("Couldn't read upload stream", stage="stage") from e
                if not chunk:
                    break
                total += len(chunk)
                if total > max_bytes:
                    raise UploadTooLargeError(
                        f"Upload exceeds the {max_bytes} byte limit", stage="stage"
                    )
                await out.write(chunk)
    except OSError as e:
        await release_artifact(path)
        raise StagingError("Couldn't write staging file", stage="stage") from e
    except BaseException:
        await release_artifact(path)
        raise

    if total == 0:
        await release_artifact(path)
        raise EmptyUploadError("Upload is empty", stage="stage")

    logger.debug("Staged %d bytes at %s", total, path)
    return StagedArtifact(path=path, size=total, content_type=content_type)


async def release_artifact(path: Path) -> None:
    """Delete a staged file. A file that is already gone is not an error."""
    try:
        await aiofiles.os.remove(path)
    except FileNotFoundError:
        return
    except OSError:
        logger.warning("Couldn't remove staged file %s", path, exc_info=True)


@asynccontextmanager
async def staged_upload(
    stream: AsyncReadable,
    content_type: str,
    max_bytes: int,
    staging_dir: Path,
    prefix: str = "tubely-",
    filename: str | None = None,
) -> AsyncIterator[StagedArtifact]:
    """
    Stage ``stream`` and remove the file when the block exits.

    Example:
        async with staged_upload(upload, "video/mp4", limit, staging_dir) as artifact:
            await classifier.classify(artifact.path)
    """
    artifact = await stage_upload(
        stream, content_type, max_bytes, staging_dir, prefix=prefix, filename=filename
    )
    try:
        yield artifact
    finally:
        await release_artifact(artifact.path)
