"""
This module provides the common structure of the Request/Response objects that
httpchain passes around.

Both carry a URL and an ordered, duplicate-preserving header list. Everything
else (the header mapping, the serialized query string) is derived from those
two on demand, so there is only ever one source of truth to keep consistent.
"""

from __future__ import annotations

import typing

from ._collections import _TYPE_HEADER_VALUE, _TYPE_HEADERS, HTTPHeaderDict
from .exceptions import ImmutableError, LocationValueError
from .util.url import (
    _TYPE_QUERY,
    _TYPE_QUERY_INPUT,
    Url,
    encode_query,
    normalize_query,
    parse_url,
)


class Base:
    """
    The header and URL model shared by :class:`~httpchain.request.Request`
    and :class:`~httpchain.response.Response`.

    :param url:
        The absolute or relative URL. Its query string is parsed into the
        structured query.

    :param headers:
        A mapping or an iterable of ``(name, value)`` pairs.

    :param raw_headers:
        A flat ``[name, value, name, value, ...]`` list. Takes precedence over
        ``headers``. An odd length raises
        :class:`~httpchain.exceptions.InvalidHeaderError`.

    :param query:
        A query string or mapping merged over the query already in ``url``.
    """

    _frozen: bool = False

    def __init__(
        self,
        url: str,
        headers: _TYPE_HEADERS | None = None,
        raw_headers: typing.Sequence[str] | None = None,
        query: _TYPE_QUERY_INPUT | None = None,
    ) -> None:
        if not isinstance(url, str):
            raise LocationValueError("url must be a string")

        #: The URL without its query; the query lives in ``_query``.
        self._url = Url()
        self._query: _TYPE_QUERY = {}
        #: Serialized form of ``_query``, ``None`` until requested.
        self._query_string: str | None = None

        if raw_headers is not None:
            self._headers = HTTPHeaderDict.from_raw(raw_headers)
        else:
            self._headers = HTTPHeaderDict(headers)

        self.set_url(url)
        if query:
            self._query.update(normalize_query(query))

    def __setattr__(self, name: str, value: typing.Any) -> None:
        if self._frozen and not name.startswith("_"):
            raise ImmutableError(
                f"Cannot set {name!r} on {type(self).__name__} after it settled"
            )
        super().__setattr__(name, value)

    def _check_mutable(self) -> None:
        if self._frozen:
            raise ImmutableError(f"{type(self).__name__} is immutable once settled")

    def _freeze(self) -> None:
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    # URL and query

    def get_url(self) -> str:
        """Serialize the URL, including the current query."""
        query = self.get_query_string()
        return self._url._replace(query=query or None).url

    def set_url(self, url: str) -> None:
        """Replace the URL. The structured query and its cached string are
        replaced by the ones parsed from ``url``."""
        self._check_mutable()
        parsed = parse_url(url)
        self._query = normalize_query(parsed.query or "")
        self._query_string = None
        self._url = parsed._replace(query=None)

    def get_query(self) -> _TYPE_QUERY:
        """Return a copy of the structured query."""
        return {
            key: list(value) if isinstance(value, list) else value
            for key, value in self._query.items()
        }

    def set_query(self, query: _TYPE_QUERY_INPUT | None) -> None:
        """Replace the structured query. Clears the cached query string."""
        self._check_mutable()
        self._query = normalize_query(query)
        self._query_string = None

    def get_query_string(self) -> str:
        if self._query_string is None:
            self._query_string = encode_query(self._query)
        return self._query_string

    @property
    def url(self) -> str:
        return self.get_url()

    @property
    def query(self) -> _TYPE_QUERY:
        return self.get_query()

    @property
    def parsed_url(self) -> Url:
        return parse_url(self.get_url())

    # Headers

    def get_headers(self) -> dict[str, str | list[str]]:
        """The lower-cased header mapping; repeated names map to lists."""
        return self._headers.to_dict()

    def set_headers(self, headers: _TYPE_HEADERS | None) -> None:
        """Replace every header with ``headers``."""
        self._check_mutable()
        self._headers = HTTPHeaderDict(headers)

    def to_headers(self) -> dict[str, str | list[str]]:
        """Like :meth:`get_headers` but keyed by the original casing."""
        return self._headers.to_original_dict()

    @property
    def headers(self) -> dict[str, str | list[str]]:
        return self.get_headers()

    @property
    def raw_headers(self) -> list[str]:
        return self._headers.raw

    def set(self, name: str, value: _TYPE_HEADER_VALUE) -> None:
        """Replace every entry for ``name``, in any casing, with ``value``."""
        self._check_mutable()
        self._headers.set(name, value)

    def append(self, name: str, value: _TYPE_HEADER_VALUE) -> None:
        """Add ``value`` without replacing. Lists add one entry per item and
        ``None`` is ignored."""
        self._check_mutable()
        self._headers.add(name, value)

    def remove(self, name: str) -> None:
        self._check_mutable()
        self._headers.discard(name)

    def name(self, name: str) -> str | None:
        """Return the casing ``name`` was first stored with."""
        return self._headers.original_name(name)

    def get(self, name: str) -> str | None:
        return self._headers.getfirst(name)

    def get_all(self, name: str) -> list[str]:
        return self._headers.getlist(name)

    def type(self, value: str | None = None) -> str | None:
        """
        With no argument, return the media type of ``Content-Type`` without its
        parameters (``"text/html"`` for ``text/html; charset=utf-8``), or
        ``None``. With an argument, set ``Content-Type``.
        """
        if value is not None:
            self.set("Content-Type", value)
            return value
        content_type = self.get("Content-Type")
        if content_type is None:
            return None
        return content_type.split(";", 1)[0].strip()
