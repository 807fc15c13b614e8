"""
Asyncio HTTP requests composed from middleware, with redirects, cookies, compression, timeouts and cancellation
"""

from __future__ import annotations

# Set default logging handler to avoid "No handler found" warnings.
import logging
import typing
import warnings
from logging import NullHandler

from . import exceptions, plugins
from ._base_transport import BaseTransport
from ._collections import HTTPHeaderDict
from ._version import __version__
from .api import (
    RequestFactory,
    create_transport,
    defaults,
    delete,
    form,
    get,
    head,
    jar,
    options,
    patch,
    post,
    put,
    request,
)
from .base import Base
from .connection import HTTPTransport
from .cookies import CookieJar
from .filepost import Form, encode_multipart_formdata
from .request import Request, RequestState
from .response import Response
from .util.redirect import Redirect
from .util.request import make_headers

__license__ = "MIT"
__version__ = __version__

__all__ = (
    "Base",
    "BaseTransport",
    "CookieJar",
    "Form",
    "HTTPHeaderDict",
    "HTTPTransport",
    "Redirect",
    "Request",
    "RequestFactory",
    "RequestState",
    "Response",
    "add_stderr_logger",
    "create_transport",
    "defaults",
    "delete",
    "disable_warnings",
    "encode_multipart_formdata",
    "exceptions",
    "form",
    "get",
    "head",
    "jar",
    "make_headers",
    "options",
    "patch",
    "plugins",
    "post",
    "put",
    "request",
)

logging.getLogger(__name__).addHandler(NullHandler())


def add_stderr_logger(
    level: int = logging.DEBUG,
) -> logging.StreamHandler[typing.TextIO]:
    """
    Helper for quickly adding a StreamHandler to the logger. Useful for
    debugging.

    Returns the handler after adding it.
    """
    # This method needs to be in this __init__.py to get the __name__ correct
    # even if httpchain is vendored within another package.
    logger = logging.getLogger(__name__)
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(message)s"))
    logger.addHandler(handler)
    logger.setLevel(level)
    logger.debug("Added a stderr logging handler to logger: %s", __name__)
    return handler


# ... Clean up.
del NullHandler


# All warning filters *must* be appended unless you're really certain that they
# shouldn't be: otherwise, it's very hard for users to use most Python
# mechanisms to silence them.
# SecurityWarning's always go off by default.
warnings.simplefilter("always", exceptions.SecurityWarning, append=True)


def disable_warnings(category: type[Warning] = exceptions.HTTPWarning) -> None:
    """
    Helper for quickly disabling all httpchain warnings.
    """
    warnings.simplefilter("ignore", category)
