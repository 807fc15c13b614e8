from __future__ import annotations

import asyncio
import codecs
import logging
import ssl
import typing
import warnings
import weakref
from collections.abc import AsyncIterable
from email.message import Message
from urllib.parse import quote, unquote

import h11

from ._base_transport import _TYPE_MIDDLEWARE, BaseTransport
from .cookies import CookieJar
from .exceptions import (
    DecodeError,
    InsecureRequestWarning,
    SSLError,
    StringifyError,
    TooLargeError,
    UnavailableError,
    UnsupportedTypeError,
)
from .plugins import default_headers, stringify
from .response import (
    DECODER_ERROR_CLASSES,
    ContentDecoder,
    Response,
    get_content_decoder,
)
from .util.redirect import _TYPE_CONFIRM, Redirect
from .util.request import BodyKind, body_length, classify_body, make_headers
from .util.ssl_ import create_ssl_context
from .util.url import Url, parse_url

if typing.TYPE_CHECKING:
    from .request import Request, RequestHop

log = logging.getLogger(__name__)

port_by_scheme = {"http": 80, "https": 443}

#: Methods which always send a ``Content-Length``, even for an empty body.
_METHODS_EXPECTING_BODY = frozenset(["POST", "PUT", "PATCH"])

_TYPE_UPLOAD_CALLBACK = typing.Callable[[int], None]

# Characters left alone when percent-encoding a request target.
_TARGET_SAFE = "/?#[]@!$&'()*+,;=:%~"


async def _make_body_iterable(
    body: typing.Any, blocksize: int
) -> typing.AsyncIterator[bytes]:
    """
    Turn every body shape the transport sends into an async iterator of
    bytes: byte strings become a single chunk, readables are read
    ``blocksize`` at a time and other iterables (sync or async) are used
    directly. Text chunks are encoded as UTF-8.
    """
    if body is None:
        return
    if isinstance(body, (bytes, bytearray, memoryview)):
        yield bytes(body)
        return

    read = getattr(body, "read", None)
    if read is not None:
        while True:
            block = read(blocksize)
            if not block:
                break
            yield block.encode("utf-8") if isinstance(block, str) else block
    elif isinstance(body, AsyncIterable):
        async for chunk in body:
            yield chunk.encode("utf-8") if isinstance(chunk, str) else bytes(chunk)
    else:
        for chunk in body:
            yield chunk.encode("utf-8") if isinstance(chunk, str) else bytes(chunk)


class HTTPConnection:
    """
    One HTTP/1.1 exchange over an asyncio stream, framed by ``h11``.

    Connections are not reused: the transport opens one per hop and closes
    it once the response body is read or released.

    :param host: The host to connect to.
    :param port: Defaults to the scheme's port.
    :param scheme: ``http`` or ``https``.
    :param ssl_context: Required for ``https``.
    :param blocksize: Maximum number of bytes read from the socket at once.
    """

    def __init__(
        self,
        host: str,
        port: int | None = None,
        *,
        scheme: str = "http",
        ssl_context: ssl.SSLContext | None = None,
        blocksize: int = 16384,
    ) -> None:
        self.host = host
        self.port = port or port_by_scheme[scheme]
        self.scheme = scheme
        self.ssl_context = ssl_context
        self.blocksize = blocksize

        self._state_machine = h11.Connection(our_role=h11.CLIENT)
        self._reader: asyncio.StreamReader | None = None
        self._writer: asyncio.StreamWriter | None = None

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.scheme}://{self.host}:{self.port}>"

    async def connect(self) -> None:
        log.debug(
            "Starting new %s connection: %s:%s", self.scheme.upper(), self.host, self.port
        )
        kwargs: dict[str, typing.Any] = {}
        if self.scheme == "https":
            kwargs["ssl"] = self.ssl_context
            kwargs["server_hostname"] = self.host
        self._reader, self._writer = await asyncio.open_connection(
            self.host, self.port, **kwargs
        )

    def close(self) -> None:
        """
        Close this connection.
        """
        if self._writer is not None:
            # Make sure self._writer is None even if closing raises an exception
            writer, self._writer = self._writer, None
            writer.close()

    async def _send(self, event: h11.Event) -> None:
        data = self._state_machine.send(event)
        if self._writer is None:
            raise ConnectionError("Connection closed")
        if data:
            self._writer.write(data)
            await self._writer.drain()

    async def _next_event(self) -> h11.Event:
        """
        Keep reading and feeding data into h11 until it has an event other
        than ``h11.NEED_DATA`` for us.
        """
        while True:
            event = self._state_machine.next_event()
            if event is not h11.NEED_DATA:
                return event
            if self._reader is None:
                raise ConnectionError("Connection closed")
            self._state_machine.receive_data(await self._reader.read(self.blocksize))

    async def request(
        self,
        method: str,
        target: str,
        headers: list[tuple[str, str]],
        body: typing.AsyncIterator[bytes] | None = None,
        on_upload: _TYPE_UPLOAD_CALLBACK | None = None,
    ) -> h11.Response:
        """
        Send the request and wait for the response head. Informational (1xx)
        responses are skipped.
        """
        await self._send(
            h11.Request(
                method=method.encode("ascii"),
                target=target.encode("ascii"),
                headers=[
                    (name.encode("ascii"), value.encode("latin-1"))
                    for name, value in headers
                ],
            )
        )

        sent = 0
        if body is not None:
            async for chunk in body:
                if not chunk:
                    continue
                await self._send(h11.Data(data=chunk))
                sent += len(chunk)
                if on_upload is not None:
                    on_upload(sent)
        await self._send(h11.EndOfMessage())

        while True:
            event = await self._next_event()
            if isinstance(event, h11.InformationalResponse):
                # Ignore 1xx responses
                continue
            if isinstance(event, h11.Response):
                return event
            raise ConnectionError(f"Unexpected h11 event {event}")

    async def iter_body(self) -> typing.AsyncGenerator[bytes, None]:
        """
        Iterate over the body bytes of the response until end of message.
        """
        while True:
            event = await self._next_event()
            if isinstance(event, h11.Data):
                yield bytes(event.data)
            elif isinstance(event, h11.EndOfMessage):
                return
            else:
                raise ConnectionError(f"Unexpected h11 event {event}")


class HTTPResponseStream:
    """
    The body of a response opened with ``type="stream"``: an async iterator
    of decoded chunks. The connection is closed when the body is exhausted
    or :meth:`aclose` is called.
    """

    def __init__(
        self, chunks: typing.AsyncGenerator[bytes, None], release: typing.Callable[[], None]
    ) -> None:
        self._chunks = chunks
        self._release = release
        self.closed = False

    def __aiter__(self) -> HTTPResponseStream:
        return self

    async def __anext__(self) -> bytes:
        if self.closed:
            raise StopAsyncIteration
        try:
            return await self._chunks.__anext__()
        except BaseException:
            await self.aclose()
            raise

    async def read(self) -> bytes:
        """Read and return the rest of the body."""
        return b"".join([chunk async for chunk in self])

    async def aclose(self) -> None:
        if self.closed:
            return
        self.closed = True
        try:
            await self._chunks.aclose()
        finally:
            self._release()


def _get_content_length(response: Response) -> int | None:
    value = response.get("Content-Length")
    if value is None:
        return None
    try:
        length = int(value)
    except ValueError:
        return None
    return length if length >= 0 else None


def _get_charset(content_type: str | None, default: str = "utf-8") -> str:
    if not content_type:
        return default
    message = Message()
    message["Content-Type"] = content_type
    charset = message.get_content_charset()
    if charset is None:
        return default
    try:
        return codecs.lookup(charset).name
    except LookupError:
        return default


class HTTPTransport(BaseTransport):
    """
    The process-level transport: HTTP/1.1 over asyncio streams.

    Every hop opens a fresh connection. Around it the transport follows
    redirects (:class:`~httpchain.util.redirect.Redirect`), exchanges cookies
    with ``jar`` and undoes ``gzip``/``deflate`` (and ``br`` when brotli is
    installed) content encodings, leaving the ``Content-Encoding`` header in
    place.

    :param type:
        ``"text"`` (the default) decodes the body using the charset of the
        response, ``"bytes"`` keeps it as bytes, ``"stream"`` hands back a
        :class:`HTTPResponseStream` without buffering. Anything else fails
        the request with ``ETYPE``.
    :param max_buffer_size:
        Largest body, in bytes, buffered for ``text`` and ``bytes``. Larger
        bodies fail with ``ETOOLARGE``.
    :param follow_redirects: ``False`` returns redirect responses as they are.
    :param max_redirects: Hops to follow before failing with ``EMAXREDIRECTS``.
    :param confirm_redirect:
        ``confirm_redirect(request, response) -> bool`` deciding 308s and 307s
        on methods other than GET and HEAD.
    :param redirect: A complete :class:`~httpchain.util.redirect.Redirect`
        policy, overriding the three options above.
    :param jar: A :class:`~httpchain.cookies.CookieJar` to use.
    :param ca_certs: Path to the trusted certificate authorities (PEM).
    :param ca_cert_data: The same, as PEM text or DER bytes.
    :param cert_file: Client certificate.
    :param key_file: Client private key.
    :param reject_unauthorized: ``False`` disables certificate verification.
    :param ssl_context: A ready context, overriding the TLS options above.
    :param user_agent: ``User-Agent`` sent when the request sets none.
    :param blocksize: Socket read and file upload block size.
    :param use: Replaces the built-in middleware ``[stringify(), default_headers()]``.
    """

    DEFAULT_MAX_BUFFER_SIZE = 2_000_000
    DEFAULT_BLOCKSIZE = 16384
    RESPONSE_TYPES = ("text", "bytes", "stream")

    def __init__(
        self,
        type: str = "text",
        *,
        max_buffer_size: int = DEFAULT_MAX_BUFFER_SIZE,
        follow_redirects: bool = True,
        max_redirects: int = Redirect.DEFAULT_MAX_REDIRECTS,
        confirm_redirect: _TYPE_CONFIRM | None = None,
        redirect: Redirect | None = None,
        jar: CookieJar | None = None,
        ca_certs: str | None = None,
        ca_cert_data: str | bytes | None = None,
        cert_file: str | None = None,
        key_file: str | None = None,
        reject_unauthorized: bool = True,
        ssl_context: ssl.SSLContext | None = None,
        user_agent: str | None = None,
        blocksize: int = DEFAULT_BLOCKSIZE,
        use: typing.Iterable[_TYPE_MIDDLEWARE] | None = None,
    ) -> None:
        if use is None:
            use = [stringify(), default_headers(user_agent=user_agent)]
        super().__init__(use)

        self.type = type
        self.max_buffer_size = max_buffer_size
        self.redirect = (
            redirect
            if redirect is not None
            else Redirect(
                follow=follow_redirects,
                max_redirects=max_redirects,
                confirm=confirm_redirect,
            )
        )
        self.jar = jar
        self.blocksize = blocksize

        self._ssl_context = ssl_context
        self._ssl_options = dict(
            ca_certs=ca_certs,
            ca_cert_data=ca_cert_data,
            cert_file=cert_file,
            key_file=key_file,
            reject_unauthorized=reject_unauthorized,
        )
        self._connections: weakref.WeakKeyDictionary[
            Request, HTTPConnection
        ] = weakref.WeakKeyDictionary()

    def __repr__(self) -> str:
        return f"<{type(self).__name__} type={self.type!r} redirect={self.redirect!r}>"

    @property
    def ssl_context(self) -> ssl.SSLContext:
        if self._ssl_context is None:
            self._ssl_context = create_ssl_context(**self._ssl_options)  # type: ignore[arg-type]
        return self._ssl_context

    async def open(self, request: Request) -> Response:
        if self.type not in self.RESPONSE_TYPES:
            raise UnsupportedTypeError(f"Unsupported type: {self.type}", request)
        if request.method == "CONNECT":
            raise UnavailableError("CONNECT requests are not supported", request)
        return await self.redirect.follow(request, self._open_hop)

    def abort(self, request: Request) -> None:
        conn = self._connections.pop(request, None)
        if conn is not None:
            log.debug("Closing aborted connection to %s:%s", conn.host, conn.port)
            conn.close()

    def _release(self, request: Request, conn: HTTPConnection) -> None:
        conn.close()
        if self._connections.get(request) is conn:
            del self._connections[request]

    def _prepare_body(self, hop: RequestHop) -> tuple[typing.Any, int | None]:
        request = hop.request
        body = hop.body
        try:
            kind = classify_body(body)
        except TypeError as e:
            raise StringifyError(f"Unable to stringify request body: {e}", request) from e

        if kind is BodyKind.TEXT:
            body = body.encode("utf-8")
        elif kind in (BodyKind.STRUCTURED, BodyKind.FORM):
            raise StringifyError(
                "Unable to stringify request body: "
                f"{type(body).__name__} bodies need the stringify() middleware",
                request,
            )
        return body, body_length(body)

    def _prepare_headers(
        self, hop: RequestHop, url: Url, length: int | None
    ) -> list[tuple[str, str]]:
        raw = hop.raw_headers
        headers = list(zip(raw[::2], raw[1::2]))

        if hop.get("Host") is None:
            headers.insert(0, ("Host", typing.cast(str, url.netloc)))

        if url.auth and hop.get("Authorization") is None:
            headers.extend(make_headers(basic_auth=unquote(url.auth)).items())

        if hop.get("Content-Length") is None and hop.get("Transfer-Encoding") is None:
            if length is None:
                headers.append(("Transfer-Encoding", "chunked"))
            elif length or hop.method in _METHODS_EXPECTING_BODY:
                headers.append(("Content-Length", str(length)))

        return headers

    async def _open_hop(self, hop: RequestHop) -> Response:
        request = hop.request
        url = hop.get_url()
        parsed = parse_url(url)
        if parsed.scheme not in port_by_scheme or not parsed.host:
            raise UnavailableError(f'Unable to connect to "{url}"', request)

        if self.jar is not None:
            self.jar.inject(hop)

        body, length = self._prepare_body(hop)

        conn = HTTPConnection(
            parsed.host,
            parsed.port,
            scheme=parsed.scheme,
            ssl_context=self.ssl_context if parsed.scheme == "https" else None,
            blocksize=self.blocksize,
        )
        if parsed.scheme == "https" and not self._ssl_options["reject_unauthorized"]:
            warnings.warn(
                f"Unverified HTTPS request is being made to host '{parsed.host}'. "
                "Adding certificate verification is strongly advised.",
                InsecureRequestWarning,
                stacklevel=2,
            )
        self._connections[request] = conn
        streaming = False
        try:
            try:
                await conn.connect()
            except ssl.SSLError as e:
                raise SSLError(f'Unable to connect to "{url}"', request) from e
            except (OSError, UnicodeError) as e:
                raise UnavailableError(f'Unable to connect to "{url}"', request) from e

            def on_upload(sent: int) -> None:
                request.set_upload_progress(sent, length)

            try:
                h11_response = await conn.request(
                    hop.method,
                    quote(parsed.request_uri, safe=_TARGET_SAFE),
                    self._prepare_headers(hop, parsed, length),
                    _make_body_iterable(body, self.blocksize),
                    on_upload,
                )
            except UnicodeEncodeError as e:
                raise StringifyError(
                    f"Unable to encode request: {e}", request
                ) from e
            except (OSError, h11.ProtocolError) as e:
                raise UnavailableError(f'Connection to "{url}" failed: {e}', request) from e

            if length is None:
                request.set_upload_progress(request.uploaded_bytes, request.uploaded_bytes)

            raw_headers: list[str] = []
            for name, value in h11_response.headers.raw_items():
                raw_headers.append(name.decode("latin-1"))
                raw_headers.append(value.decode("latin-1"))

            response = Response(
                url,
                status=h11_response.status_code,
                status_text=h11_response.reason.decode("latin-1"),
                raw_headers=raw_headers,
                request=request,
            )
            log.debug(
                '%s://%s:%s "%s %s HTTP/%s" %s %s',
                parsed.scheme,
                conn.host,
                conn.port,
                hop.method,
                parsed.request_uri,
                h11_response.http_version.decode("ascii"),
                response.status,
                response.get("Content-Length"),
            )

            if self.jar is not None:
                self.jar.ingest(response)

            chunks = self._iter_response_body(conn, hop, response)
            if self.type == "stream":
                response.body = HTTPResponseStream(
                    chunks, lambda: self._release(request, conn)
                )
                streaming = True
            else:
                response.body = await self._read_buffered(chunks, request, response)
            return response
        finally:
            if not streaming:
                self._release(request, conn)

    async def _iter_response_body(
        self, conn: HTTPConnection, hop: RequestHop, response: Response
    ) -> typing.AsyncGenerator[bytes, None]:
        request = hop.request
        url = response.get_url()
        length = _get_content_length(response)
        content_encoding = response.get("Content-Encoding")
        decoder: ContentDecoder | None = None
        if hop.method != "HEAD":
            decoder = get_content_decoder(content_encoding)

        received = 0
        chunks = conn.iter_body()
        try:
            while True:
                try:
                    data = await chunks.__anext__()
                except StopAsyncIteration:
                    break
                except (OSError, h11.ProtocolError) as e:
                    raise UnavailableError(
                        f'Connection to "{url}" failed: {e}', request
                    ) from e

                received += len(data)
                request.set_download_progress(received, length)
                if decoder is not None:
                    data = self._decode(decoder, data, content_encoding, request)
                if data:
                    yield data

            if decoder is not None:
                data = self._decode(decoder, None, content_encoding, request)
                if data:
                    yield data
            request.set_download_progress(received, received)
        finally:
            await chunks.aclose()

    @staticmethod
    def _decode(
        decoder: ContentDecoder,
        data: bytes | None,
        content_encoding: str | None,
        request: Request,
    ) -> bytes:
        try:
            return decoder.flush() if data is None else decoder.decompress(data)
        except DECODER_ERROR_CLASSES as e:
            raise DecodeError(
                "Received response with content-encoding: "
                f"{content_encoding}, but failed to decode it.",
                request,
            ) from e

    async def _read_buffered(
        self,
        chunks: typing.AsyncGenerator[bytes, None],
        request: Request,
        response: Response,
    ) -> str | bytes:
        too_large = TooLargeError(
            f"Response body exceeded maximum size of {self.max_buffer_size} bytes",
            request,
        )
        length = _get_content_length(response)
        try:
            if length is not None and length > self.max_buffer_size:
                raise too_large

            buffer = bytearray()
            async for chunk in chunks:
                buffer += chunk
                if len(buffer) > self.max_buffer_size:
                    raise too_large
        finally:
            await chunks.aclose()

        if self.type == "text":
            return buffer.decode(_get_charset(response.get("Content-Type")), "replace")
        return bytes(buffer)
