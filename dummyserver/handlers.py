from __future__ import annotations

import asyncio
import gzip
import logging
import os
import typing
import zlib
from http.client import responses
from json import dumps
from urllib.parse import urlsplit

from tornado import httputil
from tornado.web import RequestHandler

log = logging.getLogger(__name__)


class Response:
    def __init__(
        self,
        body: str | bytes | typing.Sequence[str | bytes] = "",
        status: str = "200 OK",
        headers: typing.Sequence[tuple[str, str | bytes]] | None = None,
        json: typing.Any | None = None,
    ) -> None:
        self.body = body
        self.status = status
        if json is not None:
            self.headers = headers or [("Content-type", "application/json")]
            self.body = dumps(json)
        else:
            self.headers = headers or [("Content-type", "text/plain")]

    def __call__(self, request_handler: RequestHandler) -> None:
        status, reason = self.status.split(" ", 1)
        request_handler.set_status(int(status), reason)
        for header in {name.lower() for name, _ in self.headers}:
            request_handler.clear_header(header)
        for header, value in self.headers:
            request_handler.add_header(header, value)

        if not self.body:
            return
        if isinstance(self.body, str):
            request_handler.write(self.body.encode())
        elif isinstance(self.body, bytes):
            request_handler.write(self.body)
        # chunked
        else:
            for item in self.body:
                if not isinstance(item, bytes):
                    item = item.encode("utf8")
                request_handler.write(item)
                request_handler.flush()


def request_params(request: httputil.HTTPServerRequest) -> dict[str, bytes]:
    params = {}
    for k, v in request.arguments.items():
        params[k] = next(iter(v))
    return params


def _path_args(request: httputil.HTTPServerRequest) -> list[str]:
    path = urlsplit(request.path).path
    return [part for part in path.split("/")[2:] if part]


def _status(code: int) -> str:
    return f"{code} {responses.get(code, 'Unknown')}"


class TestingApp(RequestHandler):
    """
    Simple app that performs various operations, useful for testing an HTTP
    client.

    Given any path, it will attempt to load a corresponding local method named
    after the first path segment. The remaining segments are arguments.
    """

    async def get(self) -> None:
        await self._call_method()

    async def post(self) -> None:
        await self._call_method()

    async def put(self) -> None:
        await self._call_method()

    async def patch(self) -> None:
        await self._call_method()

    async def delete(self) -> None:
        await self._call_method()

    async def options(self) -> None:
        await self._call_method()

    async def head(self) -> None:
        await self._call_method()

    async def _call_method(self) -> None:
        """Call the correct method in this class based on the incoming URI"""
        req = self.request

        path = req.path[:]
        if not path.startswith("/"):
            path = urlsplit(path).path

        target = path[1:].split("/", 1)[0].replace("-", "_")
        method = getattr(self, f"handle_{target}", self.index)

        resp = method(req)
        if asyncio.iscoroutine(resp):
            resp = await resp

        resp(self)

    def index(self, _request: httputil.HTTPServerRequest) -> Response:
        "Render simple message"
        return Response("Dummy server!")

    def handle_echo(self, request: httputil.HTTPServerRequest) -> Response:
        """
        ``/echo`` returns the request body with the request Content-Type,
        ``/echo/method`` the method, ``/echo/query`` the query as JSON and
        ``/echo/header/<name>`` the value of a request header.
        """
        args = _path_args(request)
        if not args:
            content_type = request.headers.get("Content-Type", "text/plain")
            return Response(request.body, headers=[("Content-Type", content_type)])
        if args[0] == "method":
            return Response(request.method or "")
        if args[0] == "query":
            query = {
                key: [value.decode("utf-8") for value in values]
                for key, values in request.query_arguments.items()
            }
            return Response(json={k: v[0] if len(v) == 1 else v for k, v in query.items()})
        if args[0] == "header" and len(args) > 1:
            return Response(request.headers.get(args[1], ""))
        if args[0] == "headers":
            return Response(json=[[name, value] for name, value in request.headers.get_all()])
        if args[0] == "zip":
            data = gzip.compress(request.body)
            return Response(data, headers=[("Content-Encoding", "gzip")])
        return Response("Unknown echo", status="400 Bad Request")

    def handle_redirect(self, request: httputil.HTTPServerRequest) -> Response:
        """
        ``/redirect`` answers 302 to ``/destination``,
        ``/redirect/code/<status>`` redirects there with ``status``,
        ``/redirect/to?target=<url>`` redirects to ``url`` and
        ``/redirect/<n>`` starts a chain of ``n`` redirects.
        """
        args = _path_args(request)
        if not args:
            return Response(status=_status(302), headers=[("Location", "/destination")])
        if args[0] == "to":
            target = request_params(request)["target"].decode("utf-8")
            return Response(status=_status(302), headers=[("Location", target)])
        if args[0] == "code":
            code = int(args[1])
            return Response(status=_status(code), headers=[("Location", "/destination")])

        remaining = int(args[0]) - 1
        location = f"/redirect/{remaining}" if remaining > 0 else "/destination"
        return Response(status=_status(302), headers=[("Location", location)])

    def handle_destination(self, request: httputil.HTTPServerRequest) -> Response:
        assert request.method is not None
        return Response(f"welcome {request.method.lower()}")

    async def handle_delay(self, request: httputil.HTTPServerRequest) -> Response:
        "Answer after ``/delay/<milliseconds>``"
        args = _path_args(request)
        await asyncio.sleep(int(args[0]) / 1000)
        return Response("delayed")

    def handle_download(self, request: httputil.HTTPServerRequest) -> Response:
        params = request_params(request)
        length = int(params.get("length", b"1024"))
        data = b"x" * length
        return Response(data, headers=[("Content-Type", "application/octet-stream")])

    def handle_chunked(self, request: httputil.HTTPServerRequest) -> Response:
        return Response(["123"] * 4)

    def handle_chunked_gzip(self, request: httputil.HTTPServerRequest) -> Response:
        chunks = []
        compressor = zlib.compressobj(6, zlib.DEFLATED, 16 + zlib.MAX_WBITS)

        for uncompressed in [b"123"] * 4:
            chunks.append(compressor.compress(uncompressed))

        chunks.append(compressor.flush())

        return Response(chunks, headers=[("Content-Encoding", "gzip")])

    def handle_encoding(self, request: httputil.HTTPServerRequest) -> Response:
        "Answer ``hello, world!`` compressed with ``/encoding/<coding>``"
        data = b"hello, world!"
        coding = _path_args(request)[0]
        if coding == "gzip":
            data = gzip.compress(data)
        elif coding == "deflate":
            data = zlib.compress(data)
        elif coding == "garbage":
            coding = "gzip"
            data = b"garbage"
        return Response(data, headers=[("Content-Encoding", coding)])

    def handle_cookie(self, request: httputil.HTTPServerRequest) -> Response:
        """
        ``/cookie`` sets ``hello=world``, ``/cookie/redirect`` does so while
        redirecting to ``/cookie/show``, which echoes the Cookie header.
        """
        args = _path_args(request)
        if args and args[0] == "show":
            return Response(request.headers.get("Cookie", ""))
        headers: list[tuple[str, str | bytes]] = [("Set-Cookie", "hello=world; Path=/")]
        if args and args[0] == "redirect":
            headers.append(("Location", "/cookie/show"))
            return Response(status=_status(302), headers=headers)
        return Response("cookie set", headers=headers)

    def handle_json(self, request: httputil.HTTPServerRequest) -> Response:
        return Response(json={"username": "blakeembrey"})

    def handle_urlencoded(self, request: httputil.HTTPServerRequest) -> Response:
        return Response(
            "username=blakeembrey&tag=a&tag=b",
            headers=[("Content-Type", "application/x-www-form-urlencoded")],
        )

    def handle_no_content(self, request: httputil.HTTPServerRequest) -> Response:
        return Response(status="204 No Content", headers=[("X-Empty", "1")])

    def handle_not_found(self, request: httputil.HTTPServerRequest) -> Response:
        return Response("Not found", status="404 Not Found")

    def handle_error(self, request: httputil.HTTPServerRequest) -> Response:
        return Response("Server error", status="500 Internal Server Error")

    def handle_raw_headers(self, request: httputil.HTTPServerRequest) -> Response:
        return Response(
            "",
            headers=[
                ("Content-Type", "text/plain"),
                ("X-Custom", "one"),
                ("x-custom", "two"),
            ],
        )

    def handle_latin1(self, request: httputil.HTTPServerRequest) -> Response:
        return Response(
            "caf\xe9".encode("latin-1"),
            headers=[("Content-Type", "text/plain; charset=latin-1")],
        )

    def handle_urandom(self, request: httputil.HTTPServerRequest) -> Response:
        return Response(
            os.urandom(1024), headers=[("Content-Type", "application/octet-stream")]
        )
