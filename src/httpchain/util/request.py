from __future__ import annotations

import io
import typing
from base64 import b64encode
from collections.abc import AsyncIterable, Iterable, Mapping
from enum import Enum

from .._version import __version__
from ..exceptions import UnrewindableBodyError
from ..filepost import Form

if typing.TYPE_CHECKING:
    from typing_extensions import Final

ACCEPT_ENCODING = "gzip,deflate"
try:
    try:
        import brotlicffi as _unused_module_brotli  # type: ignore[import-not-found] # noqa: F401
    except ImportError:
        import brotli as _unused_module_brotli  # type: ignore[import-not-found] # noqa: F401
except ImportError:
    pass
else:
    ACCEPT_ENCODING += ",br"


def get_default_user_agent() -> str:
    return f"python-httpchain/{__version__}"


class _TYPE_FAILEDTELL(Enum):
    token = 0


_FAILEDTELL: Final[_TYPE_FAILEDTELL] = _TYPE_FAILEDTELL.token

_TYPE_BODY_POSITION = typing.Union[int, _TYPE_FAILEDTELL]


class BodyKind(Enum):
    """The closed set of request body shapes the encoders understand."""

    EMPTY = "empty"
    TEXT = "text"
    BYTES = "bytes"
    #: A mapping or list, encoded by Content-Type (JSON by default).
    STRUCTURED = "structured"
    FORM = "form"
    #: A readable file object.
    FILE = "file"
    #: A sync or async iterable of byte chunks.
    STREAM = "stream"


def classify_body(body: typing.Any) -> BodyKind:
    """
    Decide once which kind of body ``body`` is. Everything downstream
    dispatches on the returned :class:`BodyKind` instead of inspecting the
    value again.

    :raises TypeError: for values no encoder can send.
    """
    if body is None:
        return BodyKind.EMPTY
    if isinstance(body, str):
        return BodyKind.TEXT
    if isinstance(body, (bytes, bytearray, memoryview)):
        return BodyKind.BYTES
    if isinstance(body, Form):
        return BodyKind.FORM
    if isinstance(body, (Mapping, list, tuple)):
        return BodyKind.STRUCTURED
    if hasattr(body, "read"):
        return BodyKind.FILE
    if isinstance(body, (Iterable, AsyncIterable)):
        return BodyKind.STREAM
    raise TypeError(f"Unsupported body type: {type(body).__name__}")


def body_length(body: typing.Any) -> int | None:
    """
    The byte length of an encoded body, or ``None`` when it can only be known
    by sending it (files without a usable size and iterators).
    """
    if body is None:
        return 0
    if isinstance(body, (bytes, bytearray)):
        return len(body)
    if isinstance(body, memoryview):
        return body.nbytes
    if isinstance(body, io.BytesIO):
        return len(body.getbuffer()) - body.tell()
    return None


def make_headers(
    accept_encoding: bool | list[str] | str | None = None,
    user_agent: str | None = None,
    basic_auth: str | None = None,
    disable_cache: bool | None = None,
) -> dict[str, str]:
    """
    Shortcuts for generating request headers.

    :param accept_encoding:
        Can be a boolean, list, or string.
        ``True`` translates to 'gzip,deflate'.  If either the ``brotli`` or
        ``brotlicffi`` package is installed 'gzip,deflate,br' is used instead.
        List will get joined by comma.
        String will be used as provided.

    :param user_agent:
        String representing the user-agent you want, such as
        "python-httpchain/1.0"

    :param basic_auth:
        Colon-separated username:password string for 'authorization: basic ...'
        auth header.

    :param disable_cache:
        If ``True``, adds 'cache-control: no-cache' header.

    Example:

    .. code-block:: python

        import httpchain

        print(httpchain.make_headers(user_agent="Batman/1.0"))
        # {'user-agent': 'Batman/1.0'}
        print(httpchain.make_headers(accept_encoding=True))
        # {'accept-encoding': 'gzip,deflate'}
    """
    headers: dict[str, str] = {}
    if accept_encoding:
        if isinstance(accept_encoding, str):
            pass
        elif isinstance(accept_encoding, list):
            accept_encoding = ",".join(accept_encoding)
        else:
            accept_encoding = ACCEPT_ENCODING
        headers["accept-encoding"] = accept_encoding

    if user_agent:
        headers["user-agent"] = user_agent

    if basic_auth:
        headers["authorization"] = (
            f"Basic {b64encode(basic_auth.encode('latin-1')).decode()}"
        )

    if disable_cache:
        headers["cache-control"] = "no-cache"

    return headers


def set_file_position(
    body: typing.Any, pos: _TYPE_BODY_POSITION | None
) -> _TYPE_BODY_POSITION | None:
    """
    If a position is provided, move file to that point.
    Otherwise, we'll attempt to record a position for future use.
    """
    if pos is not None:
        rewind_body(body, pos)
    elif getattr(body, "tell", None) is not None:
        try:
            pos = body.tell()
        except OSError:
            # This differentiates from None, allowing us to catch
            # a failed `tell()` later when trying to rewind the body.
            pos = _FAILEDTELL

    return pos


def rewind_body(body: typing.IO[typing.AnyStr], body_pos: _TYPE_BODY_POSITION) -> None:
    """
    Attempt to rewind body to a certain position.
    Used when a redirect resends the request body.

    :param body:
        File-like object that supports seek.

    :param int pos:
        Position to seek to in file.
    """
    body_seek = getattr(body, "seek", None)
    if body_seek is not None and isinstance(body_pos, int):
        try:
            body_seek(body_pos)
        except OSError as e:
            raise UnrewindableBodyError(
                "An error occurred when rewinding request body for redirect."
            ) from e
    elif body_pos is _FAILEDTELL:
        raise UnrewindableBodyError(
            "Unable to record file position for rewinding "
            "request body during a redirect."
        )
    else:
        raise ValueError(
            f"body_pos must be of type integer, instead it was {type(body_pos)}."
        )
