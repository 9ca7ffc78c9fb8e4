"""
Tests for tubely.services.key_deriver.
"""

import re

import pytest

from tubely.core.errors import UnrecognizedContentTypeError
from tubely.models.video import Orientation
from tubely.services.key_deriver import (
    RANDOM_KEY_BYTES,
    derive_storage_key,
    parse_media_type,
)


URLSAFE_NO_PAD = re.compile(r"^[A-Za-z0-9_-]{43}$")


def zero_bytes(n: int) -> bytes:
    return b"\x00" * n


@pytest.mark.unit
class TestParseMediaType:
    @pytest.mark.parametrize(
        ("content_type", "expected"),
        [
            ("video/mp4", ("video", "mp4")),
            ("image/png; charset=binary", ("image", "png")),
            ("IMAGE/JPEG", ("image", "jpeg")),
            ("  image/svg+xml  ", ("image", "svg+xml")),
            ("video/x-matroska", ("video", "x-matroska")),
        ],
    )
    def test_valid(self, content_type: str, expected: tuple[str, str]) -> None:
        assert parse_media_type(content_type) == expected

    @pytest.mark.parametrize(
        "content_type",
        ["", "mp4", "video/", "/mp4", "video/../../etc", "video/mp4 x", "video/.mp4", "video/a/b"],
    )
    def test_invalid(self, content_type: str) -> None:
        with pytest.raises(UnrecognizedContentTypeError) as exc_info:
            parse_media_type(content_type)
        assert exc_info.value.status_code == 400


@pytest.mark.unit
class TestDeriveStorageKey:
    def test_thumbnail_key_has_no_partition(self) -> None:
        key = derive_storage_key("image/png", random_bytes=zero_bytes)

        assert key.partition is None
        assert key.path == "A" * 43 + ".png"

    def test_video_key_is_partitioned(self) -> None:
        key = derive_storage_key(
            "video/mp4", partition=Orientation.PORTRAIT, random_bytes=zero_bytes
        )
        assert key.path == "portrait/" + "A" * 43 + ".mp4"
        assert str(key) == key.path

    def test_requests_32_random_bytes(self) -> None:
        requested: list[int] = []

        def source(n: int) -> bytes:
            requested.append(n)
            return bytes(range(n))

        derive_storage_key("video/mp4", random_bytes=source)

        assert requested == [RANDOM_KEY_BYTES]

    def test_random_component_is_urlsafe_without_padding(self) -> None:
        key = derive_storage_key("video/mp4", random_bytes=lambda n: b"\xff" * n)

        assert URLSAFE_NO_PAD.match(key.random_component)
        assert "=" not in key.path

    def test_rejects_non_orientation_partition(self) -> None:
        with pytest.raises(ValueError):
            derive_storage_key("video/mp4", partition="../secrets")  # type: ignore[arg-type]

    def test_keys_are_unique_and_safe(self) -> None:
        keys = [
            derive_storage_key("video/mp4", partition=Orientation.LANDSCAPE).path
            for _ in range(10_000)
        ]

        assert len(set(keys)) == len(keys)
        for key in keys:
            assert ".." not in key
            assert not key.startswith("/")
            assert not any(ch.isspace() for ch in key)
