"""
A transport for Pyodide running in a web browser.

Requests go through an asynchronous ``XMLHttpRequest``, so redirects, cookies
and compression are handled by the browser rather than by httpchain.

A few caveats -

Firstly, the browser refuses to let scripts set some headers, and others
trigger unintended CORS preflight requests; those in ``HEADERS_TO_IGNORE``
are dropped before sending.

Secondly, a request the browser blocks (CORS, mixed content, DNS failure)
completes with status 0 and no detail; it fails with
:class:`~httpchain.exceptions.UnavailableError`.
"""

from __future__ import annotations

import asyncio
import logging
import typing
import weakref
from email.parser import Parser

from ..._base_transport import BaseTransport, _TYPE_MIDDLEWARE
from ...exceptions import (
    AbortError,
    StringifyError,
    UnavailableError,
    UnsupportedTypeError,
)
from ...plugins import stringify
from ...response import Response
from ...util.request import BodyKind, classify_body

if typing.TYPE_CHECKING:
    from ...request import Request

log = logging.getLogger(__name__)

"""
There are some headers that trigger unintended CORS preflight requests.
See also https://github.com/koenvo/pyodide-http/issues/22
"""
HEADERS_TO_IGNORE = ("user-agent",)

_TYPE_RESPONSE_TYPE = typing.Literal["text", "document", "blob", "arraybuffer", "json"]


def parse_response_headers(text: str) -> list[str]:
    """
    Turn the ``getAllResponseHeaders()`` block into a flat raw header list,
    keeping every repeated header.
    """
    message = Parser().parsestr(text, headersonly=True)
    raw: list[str] = []
    for name, value in message.items():
        raw.extend((name, value))
    return raw


def _to_py(value: typing.Any) -> typing.Any:
    to_py = getattr(value, "to_py", None)
    return to_py() if to_py is not None else value


class BrowserTransport(BaseTransport):
    """
    Send requests with the browser's ``XMLHttpRequest``.

    :param type:
        The ``responseType`` to ask for: ``text`` gives a ``str`` body, ``json``
        the parsed value, ``arraybuffer`` ``bytes``, and ``document`` or
        ``blob`` the JavaScript object itself.

    :param with_credentials:
        Send cookies and authorization with cross-origin requests.

    :param override_mime_type:
        Treat the response as this MIME type whatever the server says.

    :param use:
        Built-in middleware; defaults to ``[stringify()]``.
    """

    RESPONSE_TYPES = ("text", "document", "blob", "arraybuffer", "json")

    def __init__(
        self,
        type: _TYPE_RESPONSE_TYPE = "text",
        with_credentials: bool = False,
        override_mime_type: str | None = None,
        use: typing.Iterable[_TYPE_MIDDLEWARE] | None = None,
    ) -> None:
        super().__init__(use if use is not None else [stringify()])
        self.type = type
        self.with_credentials = with_credentials
        self.override_mime_type = override_mime_type
        self._xhrs: weakref.WeakKeyDictionary[Request, typing.Any] = (
            weakref.WeakKeyDictionary()
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}(type={self.type!r})"

    def abort(self, request: Request) -> None:
        xhr = self._xhrs.pop(request, None)
        if xhr is not None:
            xhr.abort()

    async def _prepare_body(self, request: Request) -> typing.Any:
        body = request.body
        try:
            kind = classify_body(body)
        except TypeError as e:
            raise StringifyError(f"Unable to stringify request body: {e}", request) from e

        if kind in (BodyKind.EMPTY, BodyKind.TEXT, BodyKind.BYTES):
            return body
        if kind is BodyKind.FILE:
            return body.read()
        if kind is BodyKind.STREAM:
            chunks = []
            if hasattr(body, "__aiter__"):
                async for chunk in body:
                    chunks.append(chunk)
            else:
                chunks.extend(body)
            return b"".join(
                chunk.encode("utf-8") if isinstance(chunk, str) else chunk
                for chunk in chunks
            )
        raise StringifyError(
            "Unable to stringify request body: "
            f"{type(body).__name__} bodies need the stringify() middleware",
            request,
        )

    def _response_body(self, xhr: typing.Any) -> typing.Any:
        if self.type == "text":
            return xhr.responseText
        if self.type == "arraybuffer":
            return xhr.response.to_py().tobytes() if xhr.response is not None else b""
        if self.type == "json":
            return _to_py(xhr.response)
        return xhr.response

    async def open(self, request: Request) -> Response:
        if self.type not in self.RESPONSE_TYPES:
            raise UnsupportedTypeError(f"Unsupported type: {self.type}", request)

        import js  # type: ignore[import]
        from pyodide.ffi import JsException, create_proxy, to_js  # type: ignore[import]

        body = await self._prepare_body(request)
        if isinstance(body, (bytes, bytearray, memoryview)):
            body = to_js(body)

        url = request.get_url()
        loop = asyncio.get_running_loop()
        done: asyncio.Future[None] = loop.create_future()

        def finish(error: Exception | None = None) -> None:
            if done.done():
                return
            if error is None:
                done.set_result(None)
            else:
                done.set_exception(error)

        def on_load(event: typing.Any) -> None:
            if xhr.status == 0:
                finish(UnavailableError(f'Unable to connect to "{url}"', request))
            else:
                finish()

        def on_error(event: typing.Any) -> None:
            finish(UnavailableError(f'Unable to connect to "{url}"', request))

        def on_abort(event: typing.Any) -> None:
            finish(AbortError("Request aborted", request))

        def on_download(event: typing.Any) -> None:
            request.set_download_progress(
                event.loaded, event.total if event.lengthComputable else None
            )

        def on_upload(event: typing.Any) -> None:
            request.set_upload_progress(
                event.loaded, event.total if event.lengthComputable else None
            )

        xhr = js.XMLHttpRequest.new()
        listeners = [
            (xhr, "load", create_proxy(on_load)),
            (xhr, "error", create_proxy(on_error)),
            (xhr, "timeout", create_proxy(on_error)),
            (xhr, "abort", create_proxy(on_abort)),
            (xhr, "progress", create_proxy(on_download)),
            (xhr.upload, "progress", create_proxy(on_upload)),
        ]
        for target, event_name, proxy in listeners:
            target.addEventListener(event_name, proxy)

        self._xhrs[request] = xhr
        try:
            xhr.open(request.method, url, True)
            xhr.withCredentials = self.with_credentials
            xhr.responseType = self.type
            if self.override_mime_type:
                xhr.overrideMimeType(self.override_mime_type)

            raw = request.raw_headers
            for name, value in zip(raw[::2], raw[1::2]):
                if name.lower() not in HEADERS_TO_IGNORE:
                    xhr.setRequestHeader(name, value)

            xhr.send(body)
            await done
        except JsException as err:
            raise UnavailableError(
                f'Unable to connect to "{url}": {err.message}', request
            ) from err
        finally:
            self._xhrs.pop(request, None)
            for target, event_name, proxy in listeners:
                target.removeEventListener(event_name, proxy)
                proxy.destroy()

        log.debug('"%s %s" %s', request.method, url, xhr.status)
        return Response(
            xhr.responseURL or url,
            xhr.status,
            status_text=xhr.statusText,
            raw_headers=parse_response_headers(xhr.getAllResponseHeaders()),
            body=self._response_body(xhr),
            request=request,
        )
