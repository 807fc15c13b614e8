"""
Built-in middleware.

Each factory returns a ``middleware(request, next)`` coroutine function.
``stringify`` and ``default_headers`` are part of
:class:`~httpchain.connection.HTTPTransport`'s ``use``; ``parse`` is opt-in.
"""

from __future__ import annotations

import json as _json
import typing
from urllib.parse import parse_qs

from ._base_transport import _TYPE_MIDDLEWARE, _TYPE_NEXT
from .exceptions import ParseError, StringifyError
from .filepost import Form
from .util.request import ACCEPT_ENCODING, BodyKind, classify_body, get_default_user_agent
from .util.url import encode_query

if typing.TYPE_CHECKING:
    from .request import Request
    from .response import Response

JSON_TYPE = "application/json"
URL_ENCODED_TYPE = "application/x-www-form-urlencoded"
MULTIPART_TYPE = "multipart/form-data"

#: Response types ``parse`` understands, keyed by name.
PARSE_TYPES = {
    "json": ("application/json", "+json"),
    "urlencoded": (URL_ENCODED_TYPE,),
}


def _encode_structured(request: Request, body: typing.Any) -> bytes:
    media_type = request.type()

    if media_type is None:
        request.type(JSON_TYPE)
        media_type = JSON_TYPE

    if media_type == JSON_TYPE or media_type.endswith("+json"):
        return _json.dumps(body, separators=(",", ":")).encode("utf-8")

    if media_type == URL_ENCODED_TYPE:
        if not isinstance(body, typing.Mapping):
            body = dict(body)
        return encode_query(body).encode("utf-8")

    if media_type == MULTIPART_TYPE:
        data, content_type = Form(body).encode()
        request.type(content_type)
        return data

    raise ValueError(f"no encoder for {media_type}")


def stringify() -> _TYPE_MIDDLEWARE:
    """
    Encode the request body for the wire.

    The body is classified once with
    :func:`~httpchain.util.request.classify_body`:

    - mappings and lists are encoded according to ``Content-Type``: JSON when
      it is unset (and then set to ``application/json``), urlencoded or
      multipart otherwise
    - a :class:`~httpchain.filepost.Form` is encoded as multipart
    - text, bytes, files and chunk iterables are left as they are

    Failures settle the request with
    :class:`~httpchain.exceptions.StringifyError`.
    """

    async def stringify_middleware(request: Request, call_next: _TYPE_NEXT) -> Response:
        try:
            kind = classify_body(request.body)
            if kind is BodyKind.STRUCTURED:
                request.body = _encode_structured(request, request.body)
            elif kind is BodyKind.FORM:
                data, content_type = request.body.encode()
                request.type(content_type)
                request.body = data
        except (TypeError, ValueError, OSError) as e:
            raise StringifyError(f"Unable to stringify request body: {e}", request) from e

        return await call_next()

    return stringify_middleware


def default_headers(
    user_agent: str | None = None, accept_encoding: str | None = ACCEPT_ENCODING
) -> _TYPE_MIDDLEWARE:
    """
    Set ``User-Agent`` and ``Accept-Encoding`` when the request has none.
    Pass ``None`` to leave a header out.
    """
    if user_agent is None:
        user_agent = get_default_user_agent()

    def default_headers_middleware(
        request: Request, call_next: _TYPE_NEXT
    ) -> typing.Awaitable[Response]:
        if user_agent and request.get("User-Agent") is None:
            request.set("User-Agent", user_agent)
        if accept_encoding and request.get("Accept-Encoding") is None:
            request.set("Accept-Encoding", accept_encoding)
        return call_next()

    return default_headers_middleware


def _matches(media_type: str | None, name: str) -> bool:
    if media_type is None:
        return False
    for pattern in PARSE_TYPES[name]:
        if pattern.startswith("+"):
            if media_type.endswith(pattern):
                return True
        elif media_type == pattern:
            return True
    return False


def _parse_urlencoded(text: str) -> dict[str, str | list[str]]:
    return {
        key: values[0] if len(values) == 1 else values
        for key, values in parse_qs(text, keep_blank_values=True).items()
    }


def parse(
    types: str | typing.Iterable[str] = ("json", "urlencoded"), strict: bool = True
) -> _TYPE_MIDDLEWARE:
    """
    Replace a buffered response body with its parsed value.

    :param types: Which of ``json`` and ``urlencoded`` to accept.
    :param strict:
        When true a response whose Content-Type is not among ``types`` fails
        with :class:`~httpchain.exceptions.ParseError`; otherwise its body is
        left alone.

    An empty body parses to ``None``.
    """
    if isinstance(types, str):
        types = [types]
    names = list(types)
    for name in names:
        if name not in PARSE_TYPES:
            raise ValueError(f"Unsupported parser: {name}")

    async def parse_middleware(request: Request, call_next: _TYPE_NEXT) -> Response:
        if request.get("Accept") is None:
            request.set(
                "Accept", ", ".join(PARSE_TYPES[name][0] for name in names) + ", */*;q=0.8"
            )

        response = await call_next()
        body = response.body

        if body is None or body == "" or body == b"":
            response.body = None
            return response

        media_type = response.type()
        name = next((name for name in names if _matches(media_type, name)), None)
        if name is None:
            if strict:
                raise ParseError(f"Unhandled response type: {media_type}", request)
            return response

        try:
            if isinstance(body, (bytes, bytearray)):
                body = bytes(body).decode("utf-8")
            if not isinstance(body, str):
                raise TypeError(f"expected a buffered body, got {type(body).__name__}")
            if name == "json":
                response.body = _json.loads(body)
            else:
                response.body = _parse_urlencoded(body)
        except (TypeError, ValueError) as e:
            raise ParseError(f"Unable to parse response body: {e}", request) from e
        return response

    return parse_middleware
