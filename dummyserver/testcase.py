from __future__ import annotations

import asyncio
import contextlib
import tempfile
import typing
from pathlib import Path

from tornado import httpserver, web

from dummyserver.handlers import TestingApp
from dummyserver.server import run_loop_in_thread, run_tornado_app, write_certs


class HTTPDummyServerTestCase:
    """
    A tornado server running :class:`~dummyserver.handlers.TestingApp` in a
    background thread for the duration of the test class.
    """

    scheme = "http"
    host = "localhost"
    host_alt = "127.0.0.1"
    certs: typing.ClassVar[dict[str, typing.Any] | None] = None

    port: typing.ClassVar[int]
    server: typing.ClassVar[httpserver.HTTPServer]
    _stack: typing.ClassVar[contextlib.ExitStack]

    @classmethod
    def setup_class(cls) -> None:
        with contextlib.ExitStack() as stack:
            io_loop = stack.enter_context(run_loop_in_thread())

            async def run_app() -> None:
                app = web.Application([(r".*", TestingApp)])
                cls.server, cls.port = run_tornado_app(
                    app, cls.certs, cls.scheme, cls.host
                )

            asyncio.run_coroutine_threadsafe(run_app(), io_loop.asyncio_loop).result()  # type: ignore[attr-defined]
            cls._stack = stack.pop_all()

    @classmethod
    def teardown_class(cls) -> None:
        cls._stack.close()

    @classmethod
    def base_url(cls, host: str | None = None) -> str:
        return f"{cls.scheme}://{host or cls.host}:{cls.port}"

    def url(self, path: str, host: str | None = None) -> str:
        return f"{self.base_url(host)}{path}"


class HTTPSDummyServerTestCase(HTTPDummyServerTestCase):
    """The same server over TLS, with a certificate from a throwaway CA."""

    scheme = "https"
    ca_certs: typing.ClassVar[str]
    _tmpdir: typing.ClassVar[tempfile.TemporaryDirectory[str]]

    @classmethod
    def setup_class(cls) -> None:
        cls._tmpdir = tempfile.TemporaryDirectory()
        certs = write_certs(Path(cls._tmpdir.name), cls.host)
        cls.ca_certs = certs.pop("ca_certs")
        cls.certs = certs
        super().setup_class()

    @classmethod
    def teardown_class(cls) -> None:
        super().teardown_class()
        cls._tmpdir.cleanup()
