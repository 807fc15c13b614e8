from __future__ import annotations

import logging
import typing
from urllib.parse import urljoin

from ..exceptions import MaxRedirectsError, UnrewindableBodyError
from .request import BodyKind, classify_body, set_file_position
from .url import parse_url

if typing.TYPE_CHECKING:
    from ..request import Request, RequestHop
    from ..response import Response

log = logging.getLogger(__name__)

_TYPE_CONFIRM = typing.Callable[["Request", "Response"], bool]
_TYPE_OPEN = typing.Callable[["RequestHop"], typing.Awaitable["Response"]]


# Data structure for representing the metadata of followed redirects.
class RequestHistory(typing.NamedTuple):
    method: str
    url: str
    status: int
    redirect_location: str


class Redirect:
    """Redirect following configuration.

    This object should be treated as immutable. Each followed hop creates a
    new Redirect object with updated values.

    Example usage::

        redirect = Redirect(max_redirects=10, confirm=lambda req, res: True)
        transport = HTTPTransport(redirect=redirect)

    :param bool follow:
        Set to ``False`` to hand every redirect response back to the caller.

    :param int max_redirects:
        How many hops to follow before failing with
        :class:`~httpchain.exceptions.MaxRedirectsError`. The response of the
        hop that went over the limit is discarded.

    :param confirm:
        ``confirm(request, response) -> bool``, consulted for a 307 on a method
        other than GET or HEAD and for every 308. Without it those responses
        are returned unfollowed.

    :param remove_headers_on_redirect:
        Headers (case-insensitive) removed from the hop when a redirect
        moves to another host.

    :param tuple history: The hops followed so far.
    """

    #: Default maximum redirects allowed.
    DEFAULT_MAX_REDIRECTS = 5

    #: Default headers to be removed on a cross-host redirect.
    DEFAULT_REMOVE_HEADERS_ON_REDIRECT = frozenset(
        ["Cookie", "Authorization", "Proxy-Authorization"]
    )

    #: Statuses on which the request is reissued as GET without a body.
    GET_REWRITE_STATUSES = frozenset([301, 302, 303])

    #: Methods a 307 is followed for without confirmation.
    SAFE_METHODS = frozenset(["GET", "HEAD"])

    def __init__(
        self,
        follow: bool = True,
        max_redirects: int = DEFAULT_MAX_REDIRECTS,
        confirm: _TYPE_CONFIRM | None = None,
        remove_headers_on_redirect: typing.Collection[
            str
        ] = DEFAULT_REMOVE_HEADERS_ON_REDIRECT,
        history: tuple[RequestHistory, ...] | None = None,
    ) -> None:
        self.follow_redirects = follow
        self.max_redirects = max_redirects
        self.confirm = confirm
        self.remove_headers_on_redirect = frozenset(
            h.lower() for h in remove_headers_on_redirect
        )
        self.history = history or ()

    def new(self, **kw: typing.Any) -> Redirect:
        params = dict(
            follow=self.follow_redirects,
            max_redirects=self.max_redirects,
            confirm=self.confirm,
            remove_headers_on_redirect=self.remove_headers_on_redirect,
            history=self.history,
        )
        params.update(kw)
        return type(self)(**params)  # type: ignore[arg-type]

    @property
    def count(self) -> int:
        return len(self.history)

    def is_exhausted(self) -> bool:
        """Have we followed more hops than allowed?"""
        return self.count > self.max_redirects

    def should_follow(self, hop: RequestHop, response: Response) -> bool:
        """Is ``response`` a redirect this policy follows for ``hop``?"""
        if not self.follow_redirects:
            return False
        if not response.get_redirect_location():
            return False

        if response.status in self.GET_REWRITE_STATUSES:
            return True
        if response.status == 307 and hop.method in self.SAFE_METHODS:
            return True
        # 308, or 307 on a method that carries a body.
        return self.confirm is not None and bool(self.confirm(hop.request, response))

    def increment(
        self, method: str, url: str, response: Response, redirect_location: str
    ) -> Redirect:
        """Return a new Redirect object with the hop recorded."""
        history = self.history + (
            RequestHistory(method, url, response.status, redirect_location),
        )
        return self.new(history=history)

    def rewrite(self, hop: RequestHop, response: Response, location: str) -> None:
        """Point ``hop`` at ``location`` for the next hop.

        301 and 302 become GET (HEAD stays HEAD) and 303 always becomes GET;
        in both cases the body and its framing headers are dropped. 307 and 308
        keep the method and body.
        """
        previous = parse_url(hop.get_url())
        target = parse_url(location)

        if response.status in self.GET_REWRITE_STATUSES:
            if not (response.status != 303 and hop.method == "HEAD"):
                hop.method = "GET"
            hop.body = None
            for header in ("Content-Type", "Content-Length", "Transfer-Encoding"):
                hop.remove(header)

        if self.remove_headers_on_redirect and (
            previous.host != target.host or previous.port != target.port
        ):
            for header in self.remove_headers_on_redirect:
                hop.remove(header)

        hop.set_url(location)

    async def follow(self, request: Request, open_fn: _TYPE_OPEN) -> Response:
        """
        Call ``open_fn`` with a hop of ``request`` and keep reissuing it while
        the response is a redirect this policy follows. ``request`` itself is
        never rewritten. Returns the final response; its url is the last URL
        fetched.

        :raises MaxRedirectsError: once more than ``max_redirects`` hops are
            needed.
        """
        redirect = self
        hop = request.hop()
        body_pos = None
        try:
            kind: BodyKind | None = classify_body(hop.body)
        except TypeError:
            # Left for the transport to reject.
            kind = None
        if kind is BodyKind.FILE:
            body_pos = set_file_position(hop.body, None)

        while True:
            # Each hop gets its own copy; the transport may add headers to it.
            response = await open_fn(hop.copy())
            if not redirect.should_follow(hop, response):
                return response

            url = hop.get_url()
            location = urljoin(url, typing.cast(str, response.get_redirect_location()))
            redirect = redirect.increment(hop.method, url, response, location)

            # The redirect response is never handed back to the caller.
            await response.aclose()

            if redirect.is_exhausted():
                raise MaxRedirectsError(redirect.max_redirects, request)

            log.info("Redirecting %s -> %s", url, location)
            redirect.rewrite(hop, response, location)

            if hop.body is not None:
                if body_pos is not None:
                    set_file_position(hop.body, body_pos)
                elif kind is BodyKind.STREAM:
                    raise UnrewindableBodyError(
                        "Unable to resend a streamed request body on redirect",
                        request,
                    )

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(follow={self.follow_redirects}, "
            f"max_redirects={self.max_redirects}, count={self.count})"
        )
