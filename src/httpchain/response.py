from __future__ import annotations

import typing
import zlib

try:
    try:
        import brotlicffi as brotli  # type: ignore[import-not-found]
    except ImportError:
        import brotli  # type: ignore[import-not-found]
except ImportError:
    brotli = None

from ._collections import _TYPE_HEADERS
from .base import Base

if typing.TYPE_CHECKING:
    from typing_extensions import Literal

    from .request import Request


class ContentDecoder:
    """Undoes one content coding, one chunk at a time."""

    def decompress(self, data: bytes) -> bytes:
        raise NotImplementedError()

    def flush(self) -> bytes:
        raise NotImplementedError()


class DeflateDecoder(ContentDecoder):
    """
    ``deflate`` is specified as zlib-wrapped, but plenty of servers send a raw
    deflate stream. The first chunk decides which one this is.
    """

    def __init__(self) -> None:
        self._obj = zlib.decompressobj()
        #: Input seen while the framing is still unknown.
        self._pending: bytes | None = b""

    def decompress(self, data: bytes) -> bytes:
        if not data:
            return b""
        if self._pending is None:
            return self._obj.decompress(data)

        self._pending += data
        try:
            out = self._obj.decompress(data)
        except zlib.error:
            pending, self._pending = self._pending, None
            self._obj = zlib.decompressobj(-zlib.MAX_WBITS)
            return self._obj.decompress(pending)
        if out:
            self._pending = None
        return out

    def flush(self) -> bytes:
        return self._obj.flush()


class GzipDecoder(ContentDecoder):
    """
    Decodes every member of a multi-member gzip stream. Garbage after a
    complete member is dropped; garbage before any member is an error, and
    everything after an error is discarded.
    """

    def __init__(self) -> None:
        self._obj = self._new_member()
        self._members = 0
        self._failed = False

    @staticmethod
    def _new_member() -> typing.Any:
        return zlib.decompressobj(16 + zlib.MAX_WBITS)

    def decompress(self, data: bytes) -> bytes:
        out = bytearray()
        if self._failed or not data:
            return b""
        while data:
            try:
                out += self._obj.decompress(data)
            except zlib.error:
                self._failed = True
                if self._members:
                    return bytes(out)
                raise
            data = self._obj.unused_data
            if data:
                self._members += 1
                self._obj = self._new_member()
        return bytes(out)

    def flush(self) -> bytes:
        return self._obj.flush()


if brotli is not None:

    class BrotliDecoder(ContentDecoder):
        # 'brotlicffi' and 'Brotli' share an import name but not an API.
        def __init__(self) -> None:
            self._obj = brotli.Decompressor()

        def decompress(self, data: bytes) -> bytes:
            decompress = getattr(self._obj, "decompress", None) or self._obj.process
            return decompress(data)  # type: ignore[no-any-return]

        def flush(self) -> bytes:
            flush = getattr(self._obj, "flush", None)
            return flush() if flush is not None else b""  # type: ignore[no-any-return]


class MultiDecoder(ContentDecoder):
    """
    Stacked codings. ``Content-Encoding`` lists them in the order they were
    applied (RFC 7231, section 3.1.2.2), so they are undone last to first.
    """

    def __init__(self, decoders: typing.Sequence[ContentDecoder]) -> None:
        self._decoders = list(reversed(decoders))

    def decompress(self, data: bytes) -> bytes:
        for decoder in self._decoders:
            data = decoder.decompress(data)
        return data

    def flush(self) -> bytes:
        data = b""
        for decoder in self._decoders:
            data = decoder.decompress(data) + decoder.flush() if data else decoder.flush()
        return data


#: Content codings this module can undo, by name.
CONTENT_DECODERS: dict[str, typing.Callable[[], ContentDecoder]] = {
    "gzip": GzipDecoder,
    "deflate": DeflateDecoder,
}
if brotli is not None:
    CONTENT_DECODERS["br"] = BrotliDecoder

DECODER_ERROR_CLASSES: tuple[type[Exception], ...] = (OSError, zlib.error)
if brotli is not None:
    DECODER_ERROR_CLASSES += (brotli.error,)


def get_content_decoder(content_encoding: str | None) -> ContentDecoder | None:
    """
    Pick the decoder for a ``Content-Encoding`` value, or ``None`` when the
    body is sent as-is or encoded with something we cannot undo. Unknown
    codings in a list (``identity`` for one) are skipped.
    """
    if not content_encoding:
        return None
    decoders = [
        CONTENT_DECODERS[name]()
        for name in (part.strip() for part in content_encoding.lower().split(","))
        if name in CONTENT_DECODERS
    ]
    if not decoders:
        return None
    if len(decoders) == 1:
        return decoders[0]
    return MultiDecoder(decoders)


class Response(Base):
    """
    The result of a request, created by a transport.

    Once the request it belongs to settles the response is frozen: assigning
    attributes or mutating headers raises
    :class:`~httpchain.exceptions.ImmutableError`.

    :param url: The URL that was actually fetched, after redirects.
    :param status: The numeric status code.
    :param status_text: The reason phrase.
    :param body:
        Text or bytes for buffered responses, an async iterable of chunks for
        streamed ones, or whatever a ``parse`` middleware replaced it with.
    :param request: The request this response answers.
    """

    #: Statuses whose ``Location`` a redirect policy may follow.
    REDIRECT_STATUSES = frozenset([301, 302, 303, 307, 308])

    def __init__(
        self,
        url: str,
        status: int,
        status_text: str = "",
        headers: _TYPE_HEADERS | None = None,
        raw_headers: typing.Sequence[str] | None = None,
        body: typing.Any = None,
        request: Request | None = None,
    ) -> None:
        super().__init__(url, headers=headers, raw_headers=raw_headers)
        #: The HTTP status code of the response.
        self.status = status
        #: The reason phrase sent with the status code.
        self.status_text = status_text
        self.body = body
        #: The originating request.
        self.request = request

    def status_type(self) -> int:
        """The class of the status code: 2 for 204, 4 for 404."""
        return self.status // 100

    def get_redirect_location(self) -> str | None | Literal[False]:
        """
        Should we redirect and where to?

        :returns: Truthy redirect location string if we got a redirect status
            code and valid location. ``None`` if redirect status and no
            location. ``False`` if not a redirect status code.
        """
        if self.status in self.REDIRECT_STATUSES:
            return self.get("Location")
        return False

    async def aclose(self) -> None:
        """Release a streamed body without reading the rest of it."""
        close = getattr(self.body, "aclose", None)
        if close is not None:
            await close()

    def to_json(self) -> dict[str, typing.Any]:
        return {
            "url": self.get_url(),
            "headers": self.get_headers(),
            "body": self.body,
            "status": self.status,
            "statusText": self.status_text,
        }

    def __repr__(self) -> str:
        return f"<{type(self).__name__} [{self.status}] {self.get_url()}>"
