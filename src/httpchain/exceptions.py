from __future__ import annotations

import typing

if typing.TYPE_CHECKING:
    from .request import Request

# Base Exceptions


class HTTPError(Exception):
    """Base exception used by this module."""

    pass


class HTTPWarning(Warning):
    """Base warning used by this module."""

    pass


class SecurityWarning(HTTPWarning):
    """Warned when performing security reducing actions"""

    pass


class InsecureRequestWarning(SecurityWarning):
    """Warned when making an unverified HTTPS request."""

    pass


_TYPE_REDUCE_RESULT = typing.Tuple[
    typing.Callable[..., object], typing.Tuple[object, ...]
]


class RequestError(HTTPError):
    """Base exception for errors that settle a :class:`~httpchain.request.Request`.

    Every subclass carries a stable, machine-readable ``code`` and a
    back-reference to the request it settled.

    :param message: Human readable description.
    :param request: The originating request, attached by the engine when the
        error is raised without one.
    """

    code: typing.ClassVar[str] = "EREQUEST"

    def __init__(self, message: str, request: Request | None = None) -> None:
        self.message = message
        self.request = request
        super().__init__(message)

    def __reduce__(self) -> _TYPE_REDUCE_RESULT:
        # For pickling purposes.
        return self.__class__, (self.message, None)


class ImmutableError(HTTPError):
    """Raised when a settled request or its response is mutated."""

    pass


# Leaf Exceptions


class TimeoutError(RequestError):
    """Raised when a request is still unsettled when its timeout expires."""

    code = "ETIMEOUT"


class AbortError(RequestError):
    """Raised when a request is aborted, before or during execution."""

    code = "EABORT"


class UnavailableError(RequestError):
    """Raised when the remote end cannot be reached or the transfer breaks."""

    code = "EUNAVAILABLE"


class SSLError(UnavailableError):
    """Raised when the TLS handshake or certificate verification fails."""

    pass


class ParseError(RequestError):
    """Raised when a response body cannot be parsed."""

    code = "EPARSE"


class DecodeError(ParseError):
    """Raised when automatic decoding based on Content-Encoding fails."""

    pass


class StringifyError(RequestError):
    """Raised when a request body cannot be encoded for the wire."""

    code = "ESTRINGIFY"


class UnrewindableBodyError(StringifyError):
    """Raised when a streamed request body must be resent but cannot be rewound."""

    pass


class TooLargeError(RequestError):
    """Raised when a buffered response body exceeds the configured maximum size."""

    code = "ETOOLARGE"


class UnsupportedTypeError(RequestError):
    """Raised when a transport is configured with an unknown response type."""

    code = "ETYPE"


class MaxRedirectsError(RequestError):
    """Raised when the maximum number of redirects is exceeded.

    :param int max_redirects: The configured maximum.
    """

    code = "EMAXREDIRECTS"

    def __init__(self, max_redirects: int, request: Request | None = None) -> None:
        self.max_redirects = max_redirects
        super().__init__(f"Exceeded maximum of {max_redirects} redirects", request)

    def __reduce__(self) -> _TYPE_REDUCE_RESULT:
        # For pickling purposes.
        return self.__class__, (self.max_redirects, None)


# Validation errors, raised synchronously at construction time.


class LocationValueError(ValueError, HTTPError):
    """Raised when there is something wrong with a given URL input."""

    pass


class LocationParseError(LocationValueError):
    """Raised when get_host or similar fails to parse the URL input."""

    def __init__(self, location: str) -> None:
        message = f"Failed to parse: {location}"
        super().__init__(message)

        self.location = location

    def __reduce__(self) -> _TYPE_REDUCE_RESULT:
        # For pickling purposes.
        return self.__class__, (self.location,)


class InvalidHeaderError(ValueError, HTTPError):
    """Raised when a raw header list is malformed."""

    pass


#: Every code a :class:`RequestError` can surface to callers.
ERROR_CODES = frozenset(
    cls.code
    for cls in (
        TimeoutError,
        AbortError,
        UnavailableError,
        ParseError,
        StringifyError,
        TooLargeError,
        UnsupportedTypeError,
        MaxRedirectsError,
    )
)
