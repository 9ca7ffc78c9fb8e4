"""
Streaming access to one file part of a ``multipart/form-data`` request body.

Unlike ``Request.form()``, nothing is spooled: the body is pulled from the ASGI
stream only as fast as the consumer reads the selected part, and the part's
headers are available before any of its payload has been read. The total
number of body bytes pulled is capped, with or without a ``Content-Length``.

Usage:
    part = await open_file_part(request, "video", max_body_bytes)
    check(part.content_type)
    await stage_upload(part, ...)
"""

import logging

from collections.abc import AsyncIterator

from python_multipart.exceptions import FormParserError
from python_multipart.multipart import MultipartParser, parse_options_header
from starlette.requests import Request

from tubely.core.errors import MalformedUploadError, UploadTooLargeError


logger = logging.getLogger(__name__)


class MultipartFileStream:
    """
    Reader over the first file part named ``field_name``.

    Exposes ``content_type``, ``filename`` and an async ``read(size)`` so it can
    stand in for an ``UploadFile`` when staging.
    """

    def __init__(
        self,
        chunks: AsyncIterator[bytes],
        boundary: bytes,
        field_name: str,
        max_body_bytes: int,
    ) -> None:
        self.field_name = field_name
        self.max_body_bytes = max_body_bytes
        self.content_type: str | None = None
        self.filename: str | None = None
        self.bytes_received = 0

        self._chunks = chunks
        self._buffer = bytearray()
        self._body_exhausted = False
        self._target_found = False
        self._in_target = False
        self._target_done = False

        self._header_field = b""
        self._header_value = b""
        self._part_headers: dict[bytes, bytes] = {}

        self._parser = MultipartParser(
            boundary,
            {
                "on_part_begin": self._on_part_begin,
                "on_header_field": self._on_header_field,
                "on_header_value": self._on_header_value,
                "on_header_end": self._on_header_end,
                "on_headers_finished": self._on_headers_finished,
                "on_part_data": self._on_part_data,
                "on_part_end": self._on_part_end,
            },
        )

    # -------------------------------------------------------------------------
    # Parser callbacks
    # -------------------------------------------------------------------------

    def _on_part_begin(self) -> None:
        self._part_headers = {}
        self._header_field = b""
        self._header_value = b""

    def _on_header_field(self, data: bytes, start: int, end: int) -> None:
        self._header_field += data[start:end]

    def _on_header_value(self, data: bytes, start: int, end: int) -> None:
        self._header_value += data[start:end]

    def _on_header_end(self) -> None:
        self._part_headers[self._header_field.lower()] = self._header_value
        self._header_field = b""
        self._header_value = b""

    def _on_headers_finished(self) -> None:
        if self._target_found:
            return
        _, options = parse_options_header(self._part_headers.get(b"content-disposition"))
        name = options.get(b"name", b"").decode("latin-1")
        if name != self.field_name:
            return

        self._target_found = True
        self._in_target = True
        raw_filename = options.get(b"filename")
        if raw_filename is not None:
            self.filename = raw_filename.decode("utf-8", errors="replace")
        raw_type = self._part_headers.get(b"content-type")
        if raw_type:
            self.content_type = raw_type.decode("latin-1").strip()

    def _on_part_data(self, data: bytes, start: int, end: int) -> None:
        if self._in_target:
            self._buffer.extend(data[start:end])

    def _on_part_end(self) -> None:
        if self._in_target:
            self._in_target = False
            self._target_done = True

    # -------------------------------------------------------------------------
    # Reading
    # -------------------------------------------------------------------------

    async def _pump(self) -> None:
        """Feed the next body chunk to the parser."""
        try:
            chunk = await self._chunks.__anext__()
        except StopAsyncIteration:
            self._body_exhausted = True
            self._parser.finalize()
            return

        self.bytes_received += len(chunk)
        if self.bytes_received > self.max_body_bytes:
            raise UploadTooLargeError(
                f"Request body exceeds the {self.max_body_bytes} byte limit", stage="receive"
            )
        try:
            self._parser.write(chunk)
        except FormParserError as e:
            raise MalformedUploadError("Unable to parse multipart body", stage="receive") from e

    async def open(self) -> "MultipartFileStream":
        """
        Advance until the headers of the requested part have been parsed.

        Raises:
            MalformedUploadError: The part is missing or is not a file.
            UploadTooLargeError: The body ran past the byte cap first.
        """
        while not self._target_found:
            if self._body_exhausted:
                raise MalformedUploadError(
                    f"Unable to parse form file: missing '{self.field_name}' field",
                    stage="validate",
                )
            await self._pump()

        if self.filename is None:
            raise MalformedUploadError(
                f"Unable to parse form file: '{self.field_name}' is not a file",
                stage="validate",
            )
        return self

    async def read(self, size: int = -1) -> bytes:
        """Return up to ``size`` bytes of the part (all remaining when negative)."""
        while not self._target_done and (size < 0 or len(self._buffer) < size):
            if self._body_exhausted:
                raise MalformedUploadError(
                    f"Multipart body ended inside the '{self.field_name}' part",
                    stage="receive",
                )
            await self._pump()

        if size < 0 or size >= len(self._buffer):
            data = bytes(self._buffer)
            self._buffer.clear()
        else:
            data = bytes(self._buffer[:size])
            del self._buffer[:size]
        return data


def multipart_boundary(content_type: str | None) -> bytes:
    """
    Boundary parameter of a ``multipart/form-data`` content type.

    Raises:
        MalformedUploadError: Not multipart/form-data or no boundary.
    """
    media_type, options = parse_options_header(content_type)
    boundary = options.get(b"boundary")
    if media_type.lower() != b"multipart/form-data" or not boundary:
        raise MalformedUploadError(
            "Request must be multipart/form-data with a boundary", stage="validate"
        )
    return boundary


async def open_file_part(
    request: Request, field_name: str, max_body_bytes: int
) -> MultipartFileStream:
    """Open the file part ``field_name`` of ``request`` for streaming reads."""
    boundary = multipart_boundary(request.headers.get("content-type"))
    part = MultipartFileStream(request.stream(), boundary, field_name, max_body_bytes)
    await part.open()
    logger.debug(
        "Opened multipart part %s (%s, %d body bytes read)",
        field_name,
        part.content_type,
        part.bytes_received,
    )
    return part


__all__ = [
    "MultipartFileStream",
    "multipart_boundary",
    "open_file_part",
]
