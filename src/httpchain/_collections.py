from __future__ import annotations

import typing
from collections.abc import Mapping, MutableMapping

from .exceptions import InvalidHeaderError

__all__ = ["HTTPHeaderDict", "normalize_header_name"]

_TYPE_HEADER_VALUE = typing.Union[str, int, None, typing.Iterable[typing.Union[str, int, None]]]
_TYPE_HEADERS = typing.Union[
    "HTTPHeaderDict",
    typing.Mapping[str, _TYPE_HEADER_VALUE],
    typing.Iterable[typing.Tuple[str, _TYPE_HEADER_VALUE]],
]

# Names which are spelled two ways in the wild and must compare equal.
_HEADER_ALIASES = {"referrer": "referer"}

_Null = object()


def normalize_header_name(name: str) -> str:
    """Lower-case ``name`` and fold known aliases (``Referrer`` is ``Referer``)."""
    lower = name.lower()
    return _HEADER_ALIASES.get(lower, lower)


def _iter_values(value: _TYPE_HEADER_VALUE) -> typing.Iterator[str]:
    if value is None:
        return
    if isinstance(value, (str, bytes, int)):
        yield value.decode("latin-1") if isinstance(value, bytes) else str(value)
        return
    for item in value:
        if item is not None:
            yield str(item)


class HTTPHeaderDict(MutableMapping):
    """
    :param headers:
        An iterable of field-value pairs, a mapping, or another
        ``HTTPHeaderDict``. Mapping values may be lists, in which case one
        entry is stored per item. ``None`` values are ignored.

    :param kwargs:
        Additional field-value pairs to pass in to ``dict.update``.

    A ``dict`` like container for storing HTTP Headers.

    Entries are kept as an ordered list of ``(name, value)`` pairs, preserving
    the original casing of each name and every duplicate. Field names are
    compared case-insensitively in compliance with RFC 7230, and ``Referrer``
    is treated as ``Referer``. Iteration provides the first case-sensitive
    key seen for each case-insensitive name.

    Using ``__setitem__`` syntax replaces every entry that compares equal
    case-insensitively. To keep duplicates use ``.add``.

    >>> headers = HTTPHeaderDict()
    >>> headers.add('Set-Cookie', 'foo=bar')
    >>> headers.add('set-cookie', 'baz=quxx')
    >>> headers['content-length'] = '7'
    >>> headers['SET-cookie']
    'foo=bar, baz=quxx'
    >>> headers.raw
    ['Set-Cookie', 'foo=bar', 'set-cookie', 'baz=quxx', 'content-length', '7']
    """

    _items: list[tuple[str, str]]

    def __init__(self, headers: _TYPE_HEADERS | None = None, **kwargs: str) -> None:
        super().__init__()
        self._items = []
        if headers is not None:
            self.extend(headers)
        if kwargs:
            self.extend(kwargs)

    @classmethod
    def from_raw(cls, raw: typing.Sequence[str]) -> HTTPHeaderDict:
        """Build from a flat ``[name, value, name, value, ...]`` list.

        :raises InvalidHeaderError: if ``raw`` has an odd number of entries.
        """
        if len(raw) % 2 == 1:
            raise InvalidHeaderError(
                f"Expected raw headers length to be even, was {len(raw)}"
            )
        headers = cls()
        headers._items = [(str(raw[i]), str(raw[i + 1])) for i in range(0, len(raw), 2)]
        return headers

    @property
    def raw(self) -> list[str]:
        """The flat, original-cased header list. Its length is always even."""
        raw: list[str] = []
        for name, value in self._items:
            raw.append(name)
            raw.append(value)
        return raw

    def __setitem__(self, key: str, val: _TYPE_HEADER_VALUE) -> None:
        self.set(key, val)

    def __getitem__(self, key: str) -> str:
        values = self.getlist(key)
        if not values:
            raise KeyError(key)
        return ", ".join(values)

    def __delitem__(self, key: str) -> None:
        if key not in self:
            raise KeyError(key)
        self.discard(key)

    def __contains__(self, key: object) -> bool:
        if not isinstance(key, str):
            return False
        wanted = normalize_header_name(key)
        return any(normalize_header_name(name) == wanted for name, _ in self._items)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Mapping) and not hasattr(other, "keys"):
            return False
        if not isinstance(other, type(self)):
            other = type(self)(other)  # type: ignore[arg-type]
        return self.to_dict() == other.to_dict()

    def __ne__(self, other: object) -> bool:
        return not self.__eq__(other)

    def __len__(self) -> int:
        return len({normalize_header_name(name) for name, _ in self._items})

    def __iter__(self) -> typing.Iterator[str]:
        # Only provide the originally cased names
        seen = set()
        for name, _ in self._items:
            normalized = normalize_header_name(name)
            if normalized not in seen:
                seen.add(normalized)
                yield name

    def discard(self, key: str) -> None:
        """Remove every entry for ``key``; missing names are ignored."""
        wanted = normalize_header_name(key)
        self._items = [
            (name, value)
            for name, value in self._items
            if normalize_header_name(name) != wanted
        ]

    def add(self, key: str, val: _TYPE_HEADER_VALUE) -> None:
        """Adds a (name, value) pair, doesn't overwrite the value if it already
        exists. Iterables add one entry per item and ``None`` is skipped.

        >>> headers = HTTPHeaderDict(foo='bar')
        >>> headers.add('Foo', ['baz', None, 'qux'])
        >>> headers['foo']
        'bar, baz, qux'
        """
        for value in _iter_values(val):
            self._items.append((key, value))

    def set(self, key: str, val: _TYPE_HEADER_VALUE) -> None:
        """Replace all entries for ``key`` (any casing) with ``val``."""
        self.discard(key)
        self.add(key, val)

    def extend(self, *args: _TYPE_HEADERS, **kwargs: str) -> None:
        """Generic import function for any type of header-like object.
        Adapted version of MutableMapping.update in order to insert items
        with self.add instead of self.__setitem__
        """
        if len(args) > 1:
            raise TypeError(
                f"extend() takes at most 1 positional arguments ({len(args)} given)"
            )
        other = args[0] if len(args) >= 1 else ()

        if isinstance(other, HTTPHeaderDict):
            self._items.extend(other._items)
        elif isinstance(other, Mapping):
            for key in other:
                self.add(key, other[key])
        elif hasattr(other, "keys"):
            for key in other.keys():  # type: ignore[union-attr]
                self.add(key, other[key])  # type: ignore[index]
        else:
            for key, value in other:  # type: ignore[misc]
                self.add(key, value)

        for key, value in kwargs.items():
            self.add(key, value)

    def getlist(self, key: str) -> list[str]:
        """Returns a list of all the values for the named field. Returns an
        empty list if the key doesn't exist."""
        wanted = normalize_header_name(key)
        return [
            value for name, value in self._items if normalize_header_name(name) == wanted
        ]

    def getfirst(self, key: str, default: typing.Any = None) -> typing.Any:
        """Return the first value stored for ``key``, or ``default``."""
        wanted = normalize_header_name(key)
        for name, value in self._items:
            if normalize_header_name(name) == wanted:
                return value
        return default

    def original_name(self, key: str) -> str | None:
        """Return the name as it was first stored, e.g. ``content-type``."""
        wanted = normalize_header_name(key)
        for name, _ in self._items:
            if normalize_header_name(name) == wanted:
                return name
        return None

    def to_dict(self) -> dict[str, str | list[str]]:
        """Collapse into ``{normalized name: value or [values]}``.

        A name stored once maps to its value, a repeated name maps to the
        list of its values in insertion order.
        """
        return self._collapse(original=False)

    def to_original_dict(self) -> dict[str, str | list[str]]:
        """Like :meth:`to_dict` but keyed by the first stored casing of each name."""
        return self._collapse(original=True)

    def _collapse(self, original: bool) -> dict[str, str | list[str]]:
        headers: dict[str, str | list[str]] = {}
        keys: dict[str, str] = {}
        for name, value in self._items:
            normalized = normalize_header_name(name)
            key = keys.setdefault(normalized, name if original else normalized)
            existing = headers.get(key, _Null)
            if existing is _Null:
                headers[key] = value
            elif isinstance(existing, list):
                existing.append(value)
            else:
                headers[key] = [typing.cast(str, existing), value]
        return headers

    def __repr__(self) -> str:
        return f"{type(self).__name__}({dict(self.itermerged())})"

    def copy(self) -> HTTPHeaderDict:
        clone = type(self)()
        clone._items = list(self._items)
        return clone

    def iteritems(self) -> typing.Iterator[tuple[str, str]]:
        """Iterate over all header lines, including duplicate ones."""
        yield from self._items

    def itermerged(self) -> typing.Iterator[tuple[str, str]]:
        """Iterate over all headers, merging duplicate ones together."""
        for key in self:
            yield key, ", ".join(self.getlist(key))

    def items(self) -> list[tuple[str, str]]:  # type: ignore[override]
        return list(self.iteritems())
