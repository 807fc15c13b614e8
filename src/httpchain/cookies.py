"""
Cookie persistence for :class:`~httpchain.connection.HTTPTransport`.

The storage and matching rules (domain, path, secure, expiry) are those of
:mod:`http.cookiejar`; this module only adapts our request and response
objects to the interface it expects.
"""

from __future__ import annotations

import http.cookiejar
import threading
import typing
import weakref
from email.message import Message

from .util.url import parse_url

if typing.TYPE_CHECKING:
    from .request import Request, RequestHop
    from .response import Response

__all__ = ("CookieJar", "create_cookie")


def create_cookie(name: str, value: str, **kwargs: typing.Any) -> http.cookiejar.Cookie:
    """Make a cookie from underspecified parameters.

    By default, the pair of `name` and `value` will be set for the domain ''
    and sent on every request (this is sometimes called a "supercookie").
    """
    result: dict[str, typing.Any] = dict(
        version=0,
        name=name,
        value=value,
        port=None,
        domain="",
        path="/",
        secure=False,
        expires=None,
        discard=True,
        comment=None,
        comment_url=None,
        rest={"HttpOnly": None},
        rfc2109=False,
    )
    if kwargs.get("path") in ("", "/,"):
        del kwargs["path"]
    badargs = set(kwargs) - set(result)
    if badargs:
        raise TypeError(
            f"create_cookie() got unexpected keyword arguments: {list(badargs)}"
        )
    result.update(kwargs)
    result["port_specified"] = bool(result["port"])
    result["domain_specified"] = bool(result["domain"])
    result["domain_initial_dot"] = result["domain"].startswith(".")
    result["path_specified"] = bool(result["path"])
    return http.cookiejar.Cookie(**result)


class _CookieRequest:
    """The ``urllib.request.Request`` subset :mod:`http.cookiejar` reads."""

    def __init__(self, url: str) -> None:
        self._url = url
        parsed = parse_url(url)
        self.type = parsed.scheme or "http"
        self.host = parsed.netloc or ""
        self.origin_req_host = parsed.host or ""
        self.unverifiable = False
        self._headers: dict[str, str] = {}

    def get_full_url(self) -> str:
        return self._url

    def get_host(self) -> str:
        return self.host

    def get_type(self) -> str:
        return self.type

    def get_origin_req_host(self) -> str:
        return self.origin_req_host

    def is_unverifiable(self) -> bool:
        return self.unverifiable

    def has_header(self, name: str) -> bool:
        return name.capitalize() in self._headers

    def get_header(self, name: str, default: str | None = None) -> str | None:
        return self._headers.get(name.capitalize(), default)

    def add_unredirected_header(self, name: str, value: str) -> None:
        self._headers[name.capitalize()] = value

    def header_items(self) -> list[tuple[str, str]]:
        return list(self._headers.items())


class _CookieResponse:
    """The ``info()`` half of a urllib response, carrying ``Set-Cookie``."""

    def __init__(self, set_cookie: typing.Iterable[str]) -> None:
        self._message = Message()
        for value in set_cookie:
            self._message["Set-Cookie"] = value

    def info(self) -> Message:
        return self._message


class CookieJar:
    """
    A thread-safe cookie store a transport consults around every hop.

    ``inject`` adds the matching cookies to an outgoing request, ``ingest``
    stores the ``Set-Cookie`` headers of a response. A ``Cookie`` header the
    caller set on the request is kept and the jar's cookies are appended to it.

    :param jar:
        The :class:`http.cookiejar.CookieJar` to use, e.g. a
        ``MozillaCookieJar`` loaded from disk. Defaults to an empty one.
    """

    def __init__(self, jar: http.cookiejar.CookieJar | None = None) -> None:
        self.jar = jar if jar is not None else http.cookiejar.CookieJar()
        self._lock = threading.RLock()
        # request -> (cookie set by the caller, value after the last inject)
        self._injected: weakref.WeakKeyDictionary[
            Request | RequestHop, tuple[str | None, str | None]
        ] = weakref.WeakKeyDictionary()

    def __len__(self) -> int:
        return len(self.jar)

    def __iter__(self) -> typing.Iterator[http.cookiejar.Cookie]:
        with self._lock:
            return iter(list(self.jar))

    def set(self, name: str, value: str, **kwargs: typing.Any) -> http.cookiejar.Cookie:
        """Store a cookie directly; keyword arguments as :func:`create_cookie`."""
        cookie = create_cookie(name, value, **kwargs)
        with self._lock:
            self.jar.set_cookie(cookie)
        return cookie

    def clear(self) -> None:
        with self._lock:
            self.jar.clear()

    def get_cookie_header(self, url: str) -> str | None:
        """The ``Cookie`` value the jar would send to ``url``, if any."""
        adapter = _CookieRequest(url)
        with self._lock:
            self.jar.add_cookie_header(adapter)  # type: ignore[arg-type]
        return adapter.get_header("Cookie")

    def inject(self, request: Request | RequestHop) -> None:
        """Add the cookies matching the request URL to its ``Cookie`` header.

        Safe to call again on the same request for every redirect hop: the
        cookies added by the previous call are replaced rather than repeated.
        """
        current = request.get("Cookie")
        previous = self._injected.get(request)
        if previous is not None and current == previous[1]:
            user_cookie = previous[0]
        else:
            user_cookie = current

        cookies = self.get_cookie_header(request.get_url())
        value = "; ".join(part for part in (user_cookie, cookies) if part) or None

        if value is None:
            request.remove("Cookie")
        else:
            request.set("Cookie", value)
        self._injected[request] = (user_cookie, value)

    def ingest(self, response: Response) -> None:
        """Store the ``Set-Cookie`` headers of ``response`` against its URL."""
        set_cookie = response.get_all("Set-Cookie")
        if not set_cookie:
            return
        with self._lock:
            self.jar.extract_cookies(
                _CookieResponse(set_cookie),  # type: ignore[arg-type]
                _CookieRequest(response.get_url()),  # type: ignore[arg-type]
            )
