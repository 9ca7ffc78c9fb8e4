"""
Media classification via ffprobe.

``FFprobeInspector`` reports the streams of a staged file, and
``MediaClassifier`` turns the first stream with both dimensions into an
orientation bucket used to partition storage keys.
"""

import json
import logging
import subprocess

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

from tubely.core.errors import NoStreamsError, ProbeFailedError
from tubely.models.video import ClassificationResult, Orientation
from tubely.utils.async_utils import async_wrap


logger = logging.getLogger(__name__)

ASPECT_RATIO_TOLERANCE = 0.01

# Keep stderr excerpts in error logs short
STDERR_EXCERPT_CHARS = 500


@dataclass(frozen=True)
class MediaProperties:
    """Dimensions reported by the probe, one entry per stream."""

    streams: list[dict[str, Any]]

    def first_dimensions(self) -> tuple[int, int] | None:
        """Width and height of the first stream that carries both."""
        for stream in self.streams:
            width = stream.get("width")
            height = stream.get("height")
            if isinstance(width, int) and isinstance(height, int):
                return width, height
        return None


class MediaInspector(Protocol):
    """Capability to report the streams of a media file."""

    async def inspect(self, path: Path) -> MediaProperties: ...


def parse_ffprobe_output(raw: str) -> MediaProperties:
    """
    Parse ``ffprobe -print_format json -show_streams`` output.

    Raises:
        ProbeFailedError: The output is not the expected JSON shape.
    """
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ProbeFailedError("ffprobe returned malformed JSON", stage="classify") from e

    if not isinstance(payload, dict):
        raise ProbeFailedError("ffprobe returned unexpected output", stage="classify")

    streams = payload.get("streams") or []
    if not isinstance(streams, list):
        raise ProbeFailedError("ffprobe returned unexpected output", stage="classify")

    return MediaProperties(streams=[s for s in streams if isinstance(s, dict)])


class FFprobeInspector:
    """Runs ffprobe in a worker thread."""

    def __init__(self, ffprobe_path: str = "ffprobe", timeout_seconds: float = 600) -> None:
        self.ffprobe_path = ffprobe_path
        self.timeout_seconds = timeout_seconds

    def build_command(self, path: Path) -> list[str]:
        return [
            self.ffprobe_path,
            "-v",
            "error",
            "-print_format",
            "json",
            "-show_streams",
            str(path),
        ]

    async def inspect(self, path: Path) -> MediaProperties:
        """
        Probe ``path``.

        Raises:
            ProbeFailedError: ffprobe is missing, timed out, failed or printed garbage.
        """

        @async_wrap
        def _run() -> subprocess.CompletedProcess[str]:
            return subprocess.run(
                self.build_command(path),
                capture_output=True,
                text=True,
                check=False,
                timeout=self.timeout_seconds,
            )

        try:
            proc = await _run()
        except FileNotFoundError as e:
            raise ProbeFailedError(
                f"ffprobe not found at {self.ffprobe_path}", stage="classify"
            ) from e
        except subprocess.TimeoutExpired as e:
            raise ProbeFailedError("ffprobe timed out", stage="classify") from e
        except OSError as e:
            raise ProbeFailedError("Couldn't run ffprobe", stage="classify") from e

        if proc.returncode != 0:
            logger.error(
                "ffprobe exited with %d: %s",
                proc.returncode,
                proc.stderr[:STDERR_EXCERPT_CHARS],
            )
            raise ProbeFailedError("ffprobe failed to read the file", stage="classify")

        return parse_ffprobe_output(proc.stdout)


def classify_orientation(
    width: int, height: int, tolerance: float = ASPECT_RATIO_TOLERANCE
) -> Orientation:
    """
    Bucket dimensions into landscape (16:9), portrait (9:16) or other.

    The comparison is done in integers scaled by the ratio terms so no
    floating point division is involved; ``tolerance`` is relative.

    >>> classify_orientation(1920, 1080)
    <Orientation.LANDSCAPE: 'landscape'>
    >>> classify_orientation(800, 800)
    <Orientation.OTHER: 'other'>
    """
    if width <= 0 or height <= 0:
        return Orientation.OTHER
    if abs(width * 9 - height * 16) <= tolerance * height * 16:
        return Orientation.LANDSCAPE
    if abs(width * 16 - height * 9) <= tolerance * height * 9:
        return Orientation.PORTRAIT
    return Orientation.OTHER


class MediaClassifier:
    """Probe a file and derive its orientation bucket."""

    def __init__(
        self, inspector: MediaInspector, tolerance: float = ASPECT_RATIO_TOLERANCE
    ) -> None:
        self.inspector = inspector
        self.tolerance = tolerance

    async def classify(self, path: Path) -> ClassificationResult:
        """
        Raises:
            ProbeFailedError: The inspector could not read the file.
            NoStreamsError: The file has no stream with dimensions.
        """
        properties = await self.inspector.inspect(path)
        if not properties.streams:
            raise NoStreamsError("No streams found in upload", stage="classify")

        dimensions = properties.first_dimensions()
        if dimensions is None:
            raise NoStreamsError("No video stream found in upload", stage="classify")

        width, height = dimensions
        orientation = classify_orientation(width, height, self.tolerance)
        logger.debug("Classified %dx%d as %s", width, height, orientation.value)
        return ClassificationResult(orientation=orientation, width=width, height=height)
