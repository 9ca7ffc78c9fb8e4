"""
Storage key derivation.

Keys are ``<partition>/<random>.<ext>`` for videos and ``<random>.<ext>`` for
thumbnails. The random component is 32 bytes of entropy encoded as URL-safe
base64 without padding; the extension is the validated MIME subtype.
"""

import base64
import re
import secrets

from collections.abc import Callable
from dataclasses import dataclass

from tubely.core.errors import UnrecognizedContentTypeError
from tubely.models.video import Orientation


RANDOM_KEY_BYTES = 32

_SUBTYPE_PATTERN = re.compile(r"[a-z0-9][a-z0-9+-]*")


@dataclass(frozen=True)
class StorageKey:
    random_component: str
    extension: str
    partition: Orientation | None = None

    @property
    def filename(self) -> str:
        return f"{self.random_component}.{self.extension}"

    @property
    def path(self) -> str:
        if self.partition is None:
            return self.filename
        return f"{self.partition.value}/{self.filename}"

    def __str__(self) -> str:
        return self.path


def parse_media_type(content_type: str) -> tuple[str, str]:
    """
    Split a content type into (type, subtype), dropping parameters.

    Raises:
        UnrecognizedContentTypeError: Missing ``/`` or an unsafe subtype.
    """
    media_type = content_type.split(";", 1)[0].strip().lower()
    main_type, sep, subtype = media_type.partition("/")
    if not sep or not main_type or not _SUBTYPE_PATTERN.fullmatch(subtype):
        raise UnrecognizedContentTypeError(
            f"Unrecognized content type: {content_type!r}", stage="derive_key"
        )
    return main_type, subtype


def random_component(random_bytes: Callable[[int], bytes] = secrets.token_bytes) -> str:
    raw = random_bytes(RANDOM_KEY_BYTES)
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def derive_storage_key(
    content_type: str,
    partition: Orientation | None = None,
    random_bytes: Callable[[int], bytes] = secrets.token_bytes,
) -> StorageKey:
    """
    Build a fresh storage key for an object of ``content_type``.

    ``random_bytes`` is injectable so tests can make keys deterministic.
    """
    if partition is not None and not isinstance(partition, Orientation):
        raise ValueError(f"Invalid partition: {partition!r}")

    _, extension = parse_media_type(content_type)
    return StorageKey(
        random_component=random_component(random_bytes),
        extension=extension,
        partition=partition,
    )
