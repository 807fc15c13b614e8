from __future__ import annotations

import asyncio
import enum
import inspect
import logging
import typing

from ._base_transport import _TYPE_MIDDLEWARE
from ._collections import _TYPE_HEADERS
from .base import Base
from .connection import HTTPTransport
from .exceptions import AbortError, RequestError, TimeoutError
from .util.url import _TYPE_QUERY_INPUT

if typing.TYPE_CHECKING:
    from ._base_transport import Transport
    from .response import Response

log = logging.getLogger(__name__)

_TYPE_PROGRESS_CALLBACK = typing.Callable[["Request"], None]


class RequestState(enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    ERRORED = "errored"
    ABORTED = "aborted"


TERMINAL_STATES = frozenset(
    [RequestState.COMPLETED, RequestState.ERRORED, RequestState.ABORTED]
)


class Request(Base):
    """
    A single HTTP exchange and its lifecycle.

    A request runs at most once. ``await request`` (or :meth:`start`) runs the
    chain ``transport.use + middleware + [transport.open]`` and every awaiter
    receives the same :class:`~httpchain.response.Response`, or the same
    error. Once settled the request and its response are frozen.

    .. code-block:: python

        req = Request("http://example.com", timeout=500)
        req.subscribe(lambda r: print(r.downloaded))
        res = await req

    :param url: The URL, optionally carrying a query string.
    :param method: The HTTP method, upper-cased.
    :param headers: A mapping or an iterable of ``(name, value)`` pairs.
    :param raw_headers: A flat ``[name, value, ...]`` list.
    :param query: A query string or mapping merged over the one in ``url``.
    :param body:
        ``str``, bytes, a mapping or list (encoded by ``stringify``), a
        :class:`~httpchain.filepost.Form`, a readable file or an iterable of
        byte chunks.
    :param timeout: Milliseconds before the request fails with ``ETIMEOUT``.
    :param transport: Defaults to a new :class:`~httpchain.connection.HTTPTransport`.
    :param middleware: Handlers run after the transport's own.
    """

    def __init__(
        self,
        url: str,
        method: str = "GET",
        headers: _TYPE_HEADERS | None = None,
        raw_headers: typing.Sequence[str] | None = None,
        query: _TYPE_QUERY_INPUT | None = None,
        body: typing.Any = None,
        timeout: int | float | None = None,
        transport: Transport | None = None,
        middleware: typing.Iterable[_TYPE_MIDDLEWARE] | None = None,
    ) -> None:
        super().__init__(url, headers=headers, raw_headers=raw_headers, query=query)
        self.method = method.upper()
        self.body = body
        self.timeout = timeout
        self.transport = transport if transport is not None else HTTPTransport()
        self.middleware: list[_TYPE_MIDDLEWARE] = list(middleware or ())

        self._state = RequestState.IDLE
        self._future: asyncio.Future[Response] | None = None
        self._task: asyncio.Task[Response] | None = None
        self._timer: asyncio.TimerHandle | None = None
        self._response: Response | None = None
        self._error: BaseException | None = None
        self._handlers: list[_TYPE_MIDDLEWARE] = []
        self._observers: list[_TYPE_PROGRESS_CALLBACK] = []

        self._uploaded_bytes = 0
        self._upload_length: int | None = None
        self._downloaded_bytes = 0
        self._download_length: int | None = None

    def __repr__(self) -> str:
        return f"<{type(self).__name__} [{self.method}] {self.get_url()} ({self._state.value})>"

    # Lifecycle

    @property
    def state(self) -> RequestState:
        return self._state

    @property
    def settled(self) -> bool:
        return self._state in TERMINAL_STATES

    def use(self, *middleware: _TYPE_MIDDLEWARE) -> Request:
        """Append middleware. Returns the request for chaining."""
        self._check_mutable()
        if self._state is not RequestState.IDLE:
            raise RuntimeError("Cannot add middleware once the request started")
        self.middleware.extend(middleware)
        return self

    def start(self) -> asyncio.Future[Response]:
        """
        Run the request on the current event loop, once. Later calls return
        the same future.
        """
        if self._future is None:
            loop = asyncio.get_running_loop()
            self._future = loop.create_future()
            if self.settled:
                # Aborted before it ever started.
                self._resolve_future()
            else:
                self._begin(loop)
        return self._future

    def __await__(self) -> typing.Generator[typing.Any, None, Response]:
        return self.start().__await__()

    def _begin(self, loop: asyncio.AbstractEventLoop) -> None:
        self._state = RequestState.RUNNING
        self._handlers = [*getattr(self.transport, "use", ()), *self.middleware]

        if self.timeout is not None and self.timeout > 0:
            self._timer = loop.call_later(self.timeout / 1000, self._expire)

        log.debug("Starting %s %s", self.method, self.get_url())
        self._task = loop.create_task(self._dispatch(0))
        self._task.add_done_callback(self._chain_done)

    async def _dispatch(self, index: int) -> Response:
        if index == len(self._handlers):
            return await self.transport.open(self)

        def call_next() -> typing.Awaitable[Response]:
            return self._dispatch(index + 1)

        result = self._handlers[index](self, call_next)
        if inspect.isawaitable(result):
            result = await result
        return typing.cast("Response", result)

    def _chain_done(self, task: asyncio.Task[Response]) -> None:
        if task.cancelled():
            # Normally already settled by abort() or the timeout.
            self._settle(error=AbortError("Request aborted", self))
            return
        error = task.exception()
        if error is not None:
            self._settle(error=error)
        else:
            self._settle(response=task.result())

    def _expire(self) -> None:
        self._timer = None
        if self.settled:
            return
        timeout = self.timeout
        if isinstance(timeout, float) and timeout.is_integer():
            timeout = int(timeout)
        log.debug("Timed out after %sms: %s %s", timeout, self.method, self.get_url())
        self._stop()
        self._settle(error=TimeoutError(f"Timeout of {timeout}ms exceeded", self))

    def abort(self) -> None:
        """
        Abort the request. Before it started the chain never runs; while it
        runs the transport is told to stop and the request settles at once.
        Late results from the transport are ignored. Calling it again, or
        after settlement, does nothing.
        """
        if self.settled:
            return
        log.debug("Aborting %s %s", self.method, self.get_url())
        if self._state is RequestState.RUNNING:
            self._stop()
        self._settle(error=AbortError("Request aborted", self))

    def _stop(self) -> None:
        abort = getattr(self.transport, "abort", None)
        if abort is not None:
            try:
                abort(self)
            except Exception:
                log.warning("Transport failed to abort %s", self.get_url(), exc_info=True)
        if self._task is not None:
            self._task.cancel()

    def _settle(
        self, response: Response | None = None, error: BaseException | None = None
    ) -> None:
        if self.settled:
            return
        complete = self.uploaded == 1 and self.downloaded == 1

        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

        if error is not None:
            if isinstance(error, RequestError) and error.request is None:
                error.request = self
            self._error = error
            self._state = (
                RequestState.ABORTED
                if isinstance(error, AbortError)
                else RequestState.ERRORED
            )
        else:
            self._response = response
            self._state = RequestState.COMPLETED

        self._freeze()
        if response is not None:
            response._freeze()

        if self._future is not None:
            self._resolve_future()

        if not complete:
            self._notify()

    def _resolve_future(self) -> None:
        future = typing.cast("asyncio.Future[Response]", self._future)
        if future.done():
            return
        if self._error is not None:
            future.set_exception(self._error)
        else:
            future.set_result(typing.cast("Response", self._response))

    # Progress

    def subscribe(self, callback: _TYPE_PROGRESS_CALLBACK) -> typing.Callable[[], None]:
        """
        Call ``callback(request)`` synchronously on every progress update and
        once more when the counters reach 1 at settlement. Returns a function
        that unsubscribes it.
        """
        self._observers.append(callback)

        def unsubscribe() -> None:
            if callback in self._observers:
                self._observers.remove(callback)

        return unsubscribe

    def _notify(self) -> None:
        for callback in list(self._observers):
            callback(self)

    def set_upload_progress(self, uploaded: int, length: int | None = None) -> None:
        """Record ``uploaded`` bytes sent out of ``length``, when known."""
        if self.settled:
            return
        self._uploaded_bytes = uploaded
        if length is not None:
            self._upload_length = length
        self._notify()

    def set_download_progress(self, downloaded: int, length: int | None = None) -> None:
        """Record ``downloaded`` bytes received out of ``length``, when known."""
        if self.settled:
            return
        self._downloaded_bytes = downloaded
        if length is not None:
            self._download_length = length
        self._notify()

    @staticmethod
    def _ratio(done: int, length: int | None) -> float:
        if not length:
            return 0.0
        return min(1.0, done / length)

    @property
    def uploaded(self) -> float:
        """Fraction of the body sent, between 0 and 1."""
        if self.settled:
            return 1.0
        return self._ratio(self._uploaded_bytes, self._upload_length)

    @property
    def downloaded(self) -> float:
        """Fraction of the response received, between 0 and 1."""
        if self.settled:
            return 1.0
        return self._ratio(self._downloaded_bytes, self._download_length)

    @property
    def uploaded_bytes(self) -> int:
        return self._uploaded_bytes

    @property
    def upload_length(self) -> int | None:
        return self._upload_length

    @property
    def downloaded_bytes(self) -> int:
        return self._downloaded_bytes

    @property
    def download_length(self) -> int | None:
        return self._download_length

    # Copies

    def clone(self) -> Request:
        """
        A new idle request with the same url, headers, body, timeout,
        transport and middleware. It shares nothing of this request's
        execution: aborting one never affects the other.
        """
        return type(self)(
            self.get_url(),
            method=self.method,
            raw_headers=self.raw_headers,
            body=self.body,
            timeout=self.timeout,
            transport=self.transport,
            middleware=list(self.middleware),
        )

    def to_json(self) -> dict[str, typing.Any]:
        return {
            "url": self.get_url(),
            "method": self.method,
            "headers": self.get_headers(),
            "body": self.body,
            "timeout": self.timeout,
        }

    def hop(self) -> RequestHop:
        """The first hop of this request; see :class:`RequestHop`."""
        return RequestHop(self, self.get_url(), self.method, self.raw_headers, self.body)


class RequestHop(Base):
    """
    What a transport sends for one hop of a :class:`Request`. Redirects
    rewrite the hop's url, method, headers and body; the request itself is
    left as the caller built it.
    """

    def __init__(
        self,
        request: Request,
        url: str,
        method: str,
        raw_headers: typing.Sequence[str],
        body: typing.Any,
    ) -> None:
        super().__init__(url, raw_headers=raw_headers)
        #: The request this hop belongs to.
        self.request = request
        self.method = method
        self.body = body

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.method} {self.get_url()}>"

    def copy(self) -> RequestHop:
        return type(self)(
            self.request, self.get_url(), self.method, self.raw_headers, self.body
        )
