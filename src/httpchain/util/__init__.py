from __future__ import annotations

from .redirect import Redirect, RequestHistory
from .request import ACCEPT_ENCODING, BodyKind, classify_body, make_headers
from .ssl_ import create_ssl_context
from .url import Url, encode_query, parse_query, parse_url

__all__ = (
    "ACCEPT_ENCODING",
    "BodyKind",
    "Redirect",
    "RequestHistory",
    "Url",
    "classify_body",
    "create_ssl_context",
    "encode_query",
    "make_headers",
    "parse_query",
    "parse_url",
)
