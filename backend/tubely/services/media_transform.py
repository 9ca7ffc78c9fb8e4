"""
Fast-start remuxing of MP4 uploads via ffmpeg.

A fast-start file has its ``moov`` (index) box ahead of the ``mdat`` (media
data) box, so players can begin playback before the whole file has arrived.
The remux is a stream copy: no re-encoding takes place.
"""

import logging
import os
import struct
import subprocess

from pathlib import Path
from typing import NamedTuple, Protocol

from tubely.core.errors import TransformFailedError
from tubely.services.staging import StagedArtifact
from tubely.utils.async_utils import async_wrap


logger = logging.getLogger(__name__)

PROCESSING_SUFFIX = ".processing"

BOX_HEADER_SIZE = 8
LARGE_BOX_HEADER_SIZE = 16


class MP4Box(NamedTuple):
    box_type: str
    offset: int
    size: int


class MediaRemuxer(Protocol):
    """Capability to rewrite a staged video so it is fast-start."""

    async def fast_start(self, artifact: StagedArtifact) -> StagedArtifact: ...


def read_top_level_boxes(path: Path) -> list[MP4Box]:
    """
    List the top-level boxes of an ISO-BMFF file in order.

    Handles 64-bit sizes (size field 1) and the "extends to end of file"
    form (size field 0). Stops at the first truncated or invalid header.
    """
    boxes: list[MP4Box] = []
    file_size = os.path.getsize(path)

    with open(path, "rb") as f:
        offset = 0
        while offset + BOX_HEADER_SIZE <= file_size:
            f.seek(offset)
            header = f.read(BOX_HEADER_SIZE)
            if len(header) < BOX_HEADER_SIZE:
                break
            size, raw_type = struct.unpack(">I4s", header)
            box_type = raw_type.decode("latin-1")

            if size == 1:
                large = f.read(8)
                if len(large) < 8:
                    break
                size = struct.unpack(">Q", large)[0]
                if size < LARGE_BOX_HEADER_SIZE:
                    break
            elif size == 0:
                size = file_size - offset
            elif size < BOX_HEADER_SIZE:
                break

            boxes.append(MP4Box(box_type, offset, size))
            offset += size

    return boxes


def is_fast_start(path: Path) -> bool:
    """True when a ``moov`` box precedes the first ``mdat`` box."""
    seen_moov = False
    for box in read_top_level_boxes(path):
        if box.box_type == "moov":
            seen_moov = True
        elif box.box_type == "mdat":
            return seen_moov
    return False


class FFmpegFastStartRemuxer:
    """
    Remux with ``-movflags faststart`` into ``<input>.processing``.

    The input is left untouched. The caller owns the returned artifact and
    must release it.
    """

    def __init__(
        self,
        ffmpeg_path: str = "ffmpeg",
        timeout_seconds: float = 600,
        verify: bool = True,
    ) -> None:
        self.ffmpeg_path = ffmpeg_path
        self.timeout_seconds = timeout_seconds
        self.verify = verify

    def build_command(self, source: Path, target: Path) -> list[str]:
        return [
            self.ffmpeg_path,
            "-y",
            "-v",
            "error",
            "-i",
            str(source),
            "-c",
            "copy",
            "-movflags",
            "faststart",
            "-f",
            "mp4",
            str(target),
        ]

    async def fast_start(self, artifact: StagedArtifact) -> StagedArtifact:
        """
        Raises:
            TransformFailedError: ffmpeg failed, produced nothing, or the
                output still has its index after the media data.
        """
        target = artifact.path.with_name(artifact.path.name + PROCESSING_SUFFIX)

        @async_wrap
        def _run() -> subprocess.CompletedProcess[str]:
            return subprocess.run(
                self.build_command(artifact.path, target),
                capture_output=True,
                text=True,
                check=False,
                timeout=self.timeout_seconds,
            )

        try:
            proc = await _run()
        except FileNotFoundError as e:
            _discard(target)
            raise TransformFailedError(
                f"ffmpeg not found at {self.ffmpeg_path}", stage="transform"
            ) from e
        except subprocess.TimeoutExpired as e:
            _discard(target)
            raise TransformFailedError("ffmpeg timed out", stage="transform") from e
        except OSError as e:
            _discard(target)
            raise TransformFailedError("Couldn't run ffmpeg", stage="transform") from e

        if proc.returncode != 0:
            logger.error("ffmpeg exited with %d: %s", proc.returncode, proc.stderr[:500])
            _discard(target)
            raise TransformFailedError("Couldn't process video", stage="transform")

        try:
            size = target.stat().st_size
        except FileNotFoundError as e:
            raise TransformFailedError("ffmpeg produced no output", stage="transform") from e

        if size == 0 or (self.verify and not is_fast_start(target)):
            _discard(target)
            raise TransformFailedError(
                "Processed video is not fast-start", stage="transform"
            )

        return StagedArtifact(path=target, size=size, content_type=artifact.content_type)


def _discard(path: Path) -> None:
    try:
        path.unlink(missing_ok=True)
    except OSError:
        logger.warning("Couldn't remove partial output %s", path, exc_info=True)
