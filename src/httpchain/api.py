"""
The top-level request factory and its shorthands.

.. code-block:: python

    import httpchain

    res = await httpchain.get("http://example.com", timeout=1000)

    api = httpchain.defaults(
        transport=httpchain.create_transport(type="bytes"),
        use=[httpchain.plugins.parse("json")],
    )
    res = await api.post("http://example.com/users", body={"name": "Blake"})
"""

from __future__ import annotations

import typing

from ._base_transport import _TYPE_MIDDLEWARE
from ._collections import HTTPHeaderDict
from .connection import HTTPTransport
from .cookies import CookieJar
from .exceptions import LocationValueError
from .filepost import _TYPE_FIELDS, Form
from .request import Request

if typing.TYPE_CHECKING:
    from ._base_transport import Transport

__all__ = (
    "RequestFactory",
    "create_transport",
    "defaults",
    "delete",
    "form",
    "get",
    "head",
    "jar",
    "options",
    "patch",
    "post",
    "put",
    "request",
)

_OPTION_NAMES = frozenset(
    [
        "url",
        "method",
        "headers",
        "raw_headers",
        "query",
        "body",
        "timeout",
        "transport",
        "use",
    ]
)


def _merge_options(
    url_or_options: str | typing.Mapping[str, typing.Any] | None,
    options: typing.Mapping[str, typing.Any],
) -> dict[str, typing.Any]:
    if isinstance(url_or_options, str):
        merged: dict[str, typing.Any] = {"url": url_or_options}
    elif url_or_options is None:
        merged = {}
    else:
        merged = dict(url_or_options)
    merged.update(options)

    unknown = set(merged) - _OPTION_NAMES
    if unknown:
        raise TypeError(f"Unexpected request options: {sorted(unknown)}")
    return merged


class RequestFactory:
    """
    Builds requests that share options.

    Headers are merged, the request's own winning per name; ``use`` lists are
    concatenated, the shared middleware first; every other option is a
    default the request can override.
    """

    def __init__(self, **defaults: typing.Any) -> None:
        self._options = _merge_options(None, defaults)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._options!r})"

    def request(
        self,
        url_or_options: str | typing.Mapping[str, typing.Any] | None = None,
        **options: typing.Any,
    ) -> Request:
        """
        Create a :class:`~httpchain.request.Request` from a URL or a mapping
        of options, plus keyword options: ``url``, ``method``, ``headers``,
        ``raw_headers``, ``query``, ``body``, ``timeout``, ``transport`` and
        ``use``. The request starts when awaited.

        :raises LocationValueError: when no string URL is given.
        """
        given = _merge_options(url_or_options, options)
        merged = {**self._options, **given}

        url = merged.get("url")
        if not isinstance(url, str):
            raise LocationValueError("url must be a string")

        headers = merged.get("headers")
        if "headers" in self._options and "headers" in given:
            shared = HTTPHeaderDict(self._options["headers"])
            for name in HTTPHeaderDict(given["headers"]):
                shared.discard(name)
            shared.extend(HTTPHeaderDict(given["headers"]))
            headers = shared

        middleware: list[_TYPE_MIDDLEWARE] = [
            *self._options.get("use", ()),
            *given.get("use", ()),
        ]

        return Request(
            url,
            method=merged.get("method") or "GET",
            headers=headers,
            raw_headers=merged.get("raw_headers"),
            query=merged.get("query"),
            body=merged.get("body"),
            timeout=merged.get("timeout"),
            transport=merged.get("transport"),
            middleware=middleware,
        )

    __call__ = request

    def _method(self, method: str) -> typing.Callable[..., Request]:
        def request_method(
            url_or_options: str | typing.Mapping[str, typing.Any] | None = None,
            **options: typing.Any,
        ) -> Request:
            return self.request(url_or_options, **{**options, "method": method})

        request_method.__name__ = method.lower()
        request_method.__doc__ = f"Shorthand for a ``{method}`` :meth:`request`."
        return request_method

    def get(self, *args: typing.Any, **kwargs: typing.Any) -> Request:
        return self._method("GET")(*args, **kwargs)

    def post(self, *args: typing.Any, **kwargs: typing.Any) -> Request:
        return self._method("POST")(*args, **kwargs)

    def put(self, *args: typing.Any, **kwargs: typing.Any) -> Request:
        return self._method("PUT")(*args, **kwargs)

    def patch(self, *args: typing.Any, **kwargs: typing.Any) -> Request:
        return self._method("PATCH")(*args, **kwargs)

    def delete(self, *args: typing.Any, **kwargs: typing.Any) -> Request:
        return self._method("DELETE")(*args, **kwargs)

    def head(self, *args: typing.Any, **kwargs: typing.Any) -> Request:
        return self._method("HEAD")(*args, **kwargs)

    def options(self, *args: typing.Any, **kwargs: typing.Any) -> Request:
        return self._method("OPTIONS")(*args, **kwargs)

    def defaults(self, **options: typing.Any) -> RequestFactory:
        """A new factory layering ``options`` over these defaults."""
        layered = dict(self._options)
        if "use" in options:
            layered["use"] = [*layered.get("use", ()), *options.pop("use")]
        if "headers" in options and "headers" in layered:
            headers = HTTPHeaderDict(layered["headers"])
            for name in HTTPHeaderDict(options["headers"]):
                headers.discard(name)
            headers.extend(HTTPHeaderDict(options.pop("headers")))
            layered["headers"] = headers
        layered.update(options)
        return type(self)(**layered)


_DEFAULT_FACTORY = RequestFactory()

request = _DEFAULT_FACTORY.request
get = _DEFAULT_FACTORY.get
post = _DEFAULT_FACTORY.post
put = _DEFAULT_FACTORY.put
patch = _DEFAULT_FACTORY.patch
delete = _DEFAULT_FACTORY.delete
head = _DEFAULT_FACTORY.head
options = _DEFAULT_FACTORY.options


def defaults(**options: typing.Any) -> RequestFactory:
    """
    A request factory sharing ``options`` between the requests it makes:

    .. code-block:: python

        api = httpchain.defaults(
            headers={"Authorization": "Bearer ..."},
            transport=httpchain.create_transport(jar=httpchain.jar()),
        )
        res = await api.get("https://example.com/me")
    """
    return _DEFAULT_FACTORY.defaults(**options)


def create_transport(**options: typing.Any) -> Transport:
    """Create an :class:`~httpchain.connection.HTTPTransport`; see its options."""
    return HTTPTransport(**options)


def form(fields: _TYPE_FIELDS | None = None) -> Form:
    """Create a multipart :class:`~httpchain.filepost.Form` body."""
    return Form(fields)


def jar() -> CookieJar:
    """Create an empty :class:`~httpchain.cookies.CookieJar` for a transport."""
    return CookieJar()
