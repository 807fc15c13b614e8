from __future__ import annotations

import typing

if typing.TYPE_CHECKING:
    from .request import Request
    from .response import Response

#: ``next()`` handed to a middleware; runs the rest of the chain.
_TYPE_NEXT = typing.Callable[[], typing.Awaitable["Response"]]

#: ``middleware(request, next)``, returning the response or an awaitable of it.
_TYPE_MIDDLEWARE = typing.Callable[
    ["Request", _TYPE_NEXT],
    typing.Union["Response", typing.Awaitable["Response"]],
]


class BaseTransport:
    """
    The backend a :class:`~httpchain.request.Request` runs against.

    A transport contributes ``use``, the middleware spliced ahead of the
    request's own so it runs first on the way in and last on the way out, and
    performs the exchange itself in :meth:`open`.

    The request engine only needs ``open``. Any object providing it is
    accepted; a missing ``use`` counts as empty and a missing ``abort`` as a
    no-op.
    """

    def __init__(self, use: typing.Iterable[_TYPE_MIDDLEWARE] | None = None) -> None:
        self.use: list[_TYPE_MIDDLEWARE] = list(use) if use is not None else []

    async def open(self, request: Request) -> Response:
        """Perform the exchange for ``request`` and return its response."""
        raise NotImplementedError()

    def abort(self, request: Request) -> None:
        """
        Ask the transport to stop the in-flight exchange for ``request``.

        Called at most once per request, when it is aborted or times out. It
        may take effect later; the request settles regardless.
        """


if typing.TYPE_CHECKING:
    from typing import Protocol

    class Transport(Protocol):
        use: list[_TYPE_MIDDLEWARE]

        async def open(self, request: Request) -> Response:
            ...

        def abort(self, request: Request) -> None:
            ...
