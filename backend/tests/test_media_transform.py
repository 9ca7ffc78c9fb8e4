"""
Tests for tubely.services.media_transform: MP4 box scanning and the ffmpeg
fast-start remuxer.
"""

import struct
import subprocess

from pathlib import Path
from unittest.mock import patch

import pytest

from conftest import build_mp4, mp4_box, requires_ffmpeg
from test_media_probe import make_test_video

from tubely.core.errors import TransformFailedError
from tubely.services.media_transform import (
    PROCESSING_SUFFIX,
    FFmpegFastStartRemuxer,
    is_fast_start,
    read_top_level_boxes,
)
from tubely.services.staging import StagedArtifact


def write(path: Path, data: bytes) -> Path:
    path.write_bytes(data)
    return path


def artifact_for(path: Path) -> StagedArtifact:
    return StagedArtifact(path=path, size=path.stat().st_size, content_type="video/mp4")


# =============================================================================
# Box scanning
# =============================================================================


@pytest.mark.unit
class TestTopLevelBoxes:
    def test_lists_boxes_in_order(self, tmp_path: Path) -> None:
        path = write(tmp_path / "a.mp4", build_mp4(fast_start=False))
        assert [b.box_type for b in read_top_level_boxes(path)] == ["ftyp", "mdat", "moov"]

    def test_offsets_and_sizes_cover_file(self, tmp_path: Path) -> None:
        data = build_mp4()
        path = write(tmp_path / "a.mp4", data)
        boxes = read_top_level_boxes(path)

        assert boxes[0].offset == 0
        assert sum(b.size for b in boxes) == len(data)

    def test_large_size_box(self, tmp_path: Path) -> None:
        payload = b"\x01" * 32
        large_mdat = struct.pack(">I4sQ", 1, b"mdat", 16 + len(payload)) + payload
        moov = mp4_box(b"moov", b"\x00" * 8)

        late = write(tmp_path / "late.mp4", mp4_box(b"ftyp") + large_mdat + moov)
        early = write(tmp_path / "early.mp4", mp4_box(b"ftyp") + moov + large_mdat)

        assert [b.box_type for b in read_top_level_boxes(late)] == ["ftyp", "mdat", "moov"]
        assert not is_fast_start(late)
        assert is_fast_start(early)

    def test_zero_size_box_extends_to_end(self, tmp_path: Path) -> None:
        data = mp4_box(b"ftyp") + mp4_box(b"moov") + struct.pack(">I4s", 0, b"mdat") + b"\x02" * 50
        path = write(tmp_path / "a.mp4", data)

        boxes = read_top_level_boxes(path)

        assert boxes[-1].box_type == "mdat"
        assert boxes[-1].size == 58
        assert is_fast_start(path)

    def test_truncated_header_stops_scan(self, tmp_path: Path) -> None:
        path = write(tmp_path / "a.mp4", mp4_box(b"ftyp") + b"\x00\x00\x00")
        assert [b.box_type for b in read_top_level_boxes(path)] == ["ftyp"]


@pytest.mark.unit
class TestIsFastStart:
    def test_fast_start_layout(self, tmp_path: Path) -> None:
        assert is_fast_start(write(tmp_path / "a.mp4", build_mp4(fast_start=True)))

    def test_trailing_index_layout(self, tmp_path: Path) -> None:
        assert not is_fast_start(write(tmp_path / "a.mp4", build_mp4(fast_start=False)))

    def test_missing_moov(self, tmp_path: Path) -> None:
        path = write(tmp_path / "a.mp4", mp4_box(b"ftyp") + mp4_box(b"mdat", b"x"))
        assert not is_fast_start(path)

    def test_not_an_mp4(self, tmp_path: Path) -> None:
        assert not is_fast_start(write(tmp_path / "a.txt", b"hello"))


# =============================================================================
# Remuxer (ffmpeg mocked)
# =============================================================================


def fake_ffmpeg(output: bytes | None, returncode: int = 0):
    """Side effect for subprocess.run that writes ``output`` to the target path."""

    def _run(cmd, **kwargs):
        if output is not None:
            Path(cmd[-1]).write_bytes(output)
        return subprocess.CompletedProcess(cmd, returncode, stdout="", stderr="boom")

    return _run


@pytest.mark.unit
class TestFFmpegFastStartRemuxer:
    @pytest.mark.asyncio
    async def test_writes_processing_output(self, tmp_path: Path) -> None:
        source_bytes = build_mp4(fast_start=False)
        source = write(tmp_path / "upload.mp4", source_bytes)
        remuxer = FFmpegFastStartRemuxer("ffmpeg", timeout_seconds=5)

        with patch(
            "tubely.services.media_transform.subprocess.run",
            side_effect=fake_ffmpeg(build_mp4(fast_start=True)),
        ) as run:
            result = await remuxer.fast_start(artifact_for(source))

        assert result.path == tmp_path / ("upload.mp4" + PROCESSING_SUFFIX)
        assert result.content_type == "video/mp4"
        assert is_fast_start(result.path)
        assert source.read_bytes() == source_bytes

        cmd = run.call_args.args[0]
        assert cmd[cmd.index("-movflags") + 1] == "faststart"
        assert cmd[cmd.index("-c") + 1] == "copy"
        assert cmd[cmd.index("-i") + 1] == str(source)

    @pytest.mark.asyncio
    async def test_nonzero_exit_removes_partial_output(self, tmp_path: Path) -> None:
        source = write(tmp_path / "upload.mp4", build_mp4(fast_start=False))

        with patch(
            "tubely.services.media_transform.subprocess.run",
            side_effect=fake_ffmpeg(b"partial", returncode=1),
        ):
            with pytest.raises(TransformFailedError):
                await FFmpegFastStartRemuxer().fast_start(artifact_for(source))

        assert not (tmp_path / ("upload.mp4" + PROCESSING_SUFFIX)).exists()

    @pytest.mark.asyncio
    async def test_output_not_fast_start_is_rejected(self, tmp_path: Path) -> None:
        source = write(tmp_path / "upload.mp4", build_mp4(fast_start=False))

        with patch(
            "tubely.services.media_transform.subprocess.run",
            side_effect=fake_ffmpeg(build_mp4(fast_start=False)),
        ):
            with pytest.raises(TransformFailedError):
                await FFmpegFastStartRemuxer().fast_start(artifact_for(source))

        assert not (tmp_path / ("upload.mp4" + PROCESSING_SUFFIX)).exists()

    @pytest.mark.asyncio
    async def test_missing_output(self, tmp_path: Path) -> None:
        source = write(tmp_path / "upload.mp4", build_mp4())
        with patch(
            "tubely.services.media_transform.subprocess.run", side_effect=fake_ffmpeg(None)
        ):
            with pytest.raises(TransformFailedError):
                await FFmpegFastStartRemuxer().fast_start(artifact_for(source))

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "error",
        [FileNotFoundError("ffmpeg"), subprocess.TimeoutExpired(cmd="ffmpeg", timeout=1)],
    )
    async def test_process_errors(self, tmp_path: Path, error: Exception) -> None:
        source = write(tmp_path / "upload.mp4", build_mp4())
        with patch("tubely.services.media_transform.subprocess.run", side_effect=error):
            with pytest.raises(TransformFailedError):
                await FFmpegFastStartRemuxer().fast_start(artifact_for(source))


# =============================================================================
# Remuxer (real ffmpeg)
# =============================================================================


@pytest.mark.integration
@requires_ffmpeg
class TestFFmpegIntegration:
    @pytest.mark.asyncio
    async def test_moves_index_ahead_of_media(self, tmp_path: Path) -> None:
        source = tmp_path / "source.mp4"
        make_test_video(source, 320, 180)
        assert not is_fast_start(source)

        result = await FFmpegFastStartRemuxer().fast_start(artifact_for(source))

        assert is_fast_start(result.path)

    @pytest.mark.asyncio
    async def test_remux_is_idempotent(self, tmp_path: Path) -> None:
        source = tmp_path / "source.mp4"
        make_test_video(source, 320, 180)
        remuxer = FFmpegFastStartRemuxer()

        once = await remuxer.fast_start(artifact_for(source))
        twice = await remuxer.fast_start(artifact_for(once.path))

        assert is_fast_start(twice.path)
        assert [b.box_type for b in read_top_level_boxes(once.path)] == [
            b.box_type for b in read_top_level_boxes(twice.path)
        ]
