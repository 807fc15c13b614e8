from __future__ import annotations

import os
import typing

import pytest

try:
    try:
        import brotlicffi as brotli  # type: ignore[import-not-found]
    except ImportError:
        import brotli  # type: ignore[import-not-found]
except ImportError:
    brotli = None

from httpchain import BaseTransport, Response

if typing.TYPE_CHECKING:
    from httpchain import Request

# Request timeouts are in milliseconds.
SHORT_TIMEOUT = 10
LONG_TIMEOUT = 2000
if os.environ.get("CI") or os.environ.get("GITHUB_ACTIONS") == "true":
    LONG_TIMEOUT = 5000


def onlyBrotli() -> pytest.MarkDecorator:
    return pytest.mark.skipif(
        brotli is None, reason="only run if brotli library is present"
    )


def notBrotli() -> pytest.MarkDecorator:
    return pytest.mark.skipif(
        brotli is not None, reason="only run if a brotli library is absent"
    )


class RecordingTransport(BaseTransport):
    """
    Answers every request with a canned response and remembers what it was
    asked. ``handler(request)`` may return a :class:`Response` to use instead.
    """

    def __init__(
        self,
        status: int = 200,
        body: typing.Any = "ok",
        headers: typing.Any = None,
        handler: typing.Callable[[Request], typing.Any] | None = None,
        use: typing.Any = None,
    ) -> None:
        super().__init__(use)
        self.status = status
        self.body = body
        self.headers = headers
        self.handler = handler
        self.opened: list[Request] = []
        self.aborted: list[Request] = []

    async def open(self, request: Request) -> Response:
        self.opened.append(request)
        if self.handler is not None:
            result = self.handler(request)
            if hasattr(result, "__await__"):
                result = await result
            if result is not None:
                return typing.cast(Response, result)
        return Response(
            request.get_url(),
            self.status,
            headers=self.headers,
            body=self.body,
            request=request,
        )

    def abort(self, request: Request) -> None:
        self.aborted.append(request)
