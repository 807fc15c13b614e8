from __future__ import annotations

import io
import typing

import pytest

from httpchain import Request, Response
from httpchain.base import Base
from httpchain.exceptions import MaxRedirectsError, UnrewindableBodyError
from httpchain.request import RequestHop
from httpchain.util.redirect import Redirect, RequestHistory

from . import RecordingTransport

pytestmark = pytest.mark.anyio


def make_request(url: str = "http://example.com/a", **kwargs: typing.Any) -> Request:
    return Request(url, transport=RecordingTransport(), **kwargs)


def make_hop(url: str = "http://example.com/a", **kwargs: typing.Any) -> RequestHop:
    return make_request(url, **kwargs).hop()


def redirect_response(
    source: Base, status: int, location: str | None = "/b"
) -> Response:
    headers = {"Location": location} if location is not None else None
    return Response(source.get_url(), status, headers=headers)


class Server:
    """Answers from ``routes``: path -> (status, location)."""

    def __init__(self, routes: dict[str, tuple[int, str | None]]) -> None:
        self.routes = routes
        self.seen: list[tuple[str, str, typing.Any, list[str]]] = []
        self.closed: list[Response] = []

    async def open(self, request: RequestHop) -> Response:
        path = request.parsed_url.path or "/"
        self.seen.append((request.method, request.get_url(), request.body, request.raw_headers))
        status, location = self.routes.get(path, (200, None))
        response = redirect_response(request, status, location)
        if isinstance(request.body, io.BytesIO):
            response.body = request.body.read()
        server = self

        class Body:
            async def aclose(self) -> None:
                server.closed.append(response)

        if response.body is None:
            response.body = Body()
        return response


class TestShouldFollow:
    @pytest.mark.parametrize("status", [301, 302, 303])
    @pytest.mark.parametrize("method", ["GET", "POST", "PUT", "HEAD"])
    def test_always_followed(self, status: int, method: str) -> None:
        hop = make_hop(method=method)
        assert Redirect().should_follow(hop, redirect_response(hop, status))

    @pytest.mark.parametrize("method", ["GET", "HEAD"])
    def test_307_safe_methods(self, method: str) -> None:
        hop = make_hop(method=method)
        assert Redirect().should_follow(hop, redirect_response(hop, 307))

    @pytest.mark.parametrize("method", ["POST", "PUT", "DELETE"])
    def test_307_unsafe_methods_need_confirm(self, method: str) -> None:
        hop = make_hop(method=method)
        response = redirect_response(hop, 307)
        assert not Redirect().should_follow(hop, response)
        assert Redirect(confirm=lambda req, res: True).should_follow(hop, response)
        assert not Redirect(confirm=lambda req, res: False).should_follow(hop, response)

    @pytest.mark.parametrize("method", ["GET", "POST"])
    def test_308_needs_confirm(self, method: str) -> None:
        hop = make_hop(method=method)
        response = redirect_response(hop, 308)
        assert not Redirect().should_follow(hop, response)
        assert Redirect(confirm=lambda req, res: True).should_follow(hop, response)

    def test_confirm_receives_request_and_response(self) -> None:
        calls = []
        request = make_request(method="POST")
        response = redirect_response(request, 308)
        Redirect(confirm=lambda req, res: calls.append((req, res)) or True).should_follow(
            request.hop(), response
        )
        assert calls == [(request, response)]

    def test_not_a_redirect(self) -> None:
        hop = make_hop()
        assert not Redirect().should_follow(hop, redirect_response(hop, 200))
        assert not Redirect().should_follow(hop, redirect_response(hop, 304))

    def test_missing_location(self) -> None:
        hop = make_hop()
        assert not Redirect().should_follow(hop, redirect_response(hop, 302, None))

    def test_disabled(self) -> None:
        hop = make_hop()
        assert not Redirect(follow=False).should_follow(
            hop, redirect_response(hop, 302)
        )


class TestRewrite:
    @pytest.mark.parametrize("status", [301, 302])
    def test_post_becomes_get(self, status: int) -> None:
        hop = make_hop(
            method="POST",
            body="data",
            headers={"Content-Type": "text/plain", "Content-Length": "4", "X-Keep": "1"},
        )
        Redirect().rewrite(hop, redirect_response(hop, status), "http://example.com/b")

        assert hop.method == "GET"
        assert hop.body is None
        assert hop.get("Content-Type") is None
        assert hop.get("Content-Length") is None
        assert hop.get("X-Keep") == "1"
        assert hop.get_url() == "http://example.com/b"

    def test_request_untouched(self) -> None:
        request = make_request(method="POST", body="data", headers={"Authorization": "s"})
        hop = request.hop()
        Redirect().rewrite(hop, redirect_response(hop, 303), "http://other.com/b")

        assert hop.method == "GET"
        assert request.method == "POST"
        assert request.body == "data"
        assert request.get("Authorization") == "s"
        assert request.get_url() == "http://example.com/a"

    @pytest.mark.parametrize("status", [301, 302])
    def test_head_stays_head(self, status: int) -> None:
        hop = make_hop(method="HEAD")
        Redirect().rewrite(hop, redirect_response(hop, status), "http://example.com/b")
        assert hop.method == "HEAD"

    def test_303_always_get(self) -> None:
        hop = make_hop(method="HEAD")
        Redirect().rewrite(hop, redirect_response(hop, 303), "http://example.com/b")
        assert hop.method == "GET"

    @pytest.mark.parametrize("status", [307, 308])
    def test_method_and_body_preserved(self, status: int) -> None:
        hop = make_hop(method="PUT", body="data", headers={"Content-Type": "text/plain"})
        Redirect().rewrite(hop, redirect_response(hop, status), "http://example.com/b")
        assert hop.method == "PUT"
        assert hop.body == "data"
        assert hop.get("Content-Type") == "text/plain"

    def test_cross_host_strips_credentials(self) -> None:
        hop = make_hop(
            headers={"Authorization": "secret", "Cookie": "a=1", "X-Keep": "1"}
        )
        Redirect().rewrite(hop, redirect_response(hop, 302), "http://other.com/b")
        assert hop.get("Authorization") is None
        assert hop.get("Cookie") is None
        assert hop.get("X-Keep") == "1"

    def test_cross_port_strips_credentials(self) -> None:
        hop = make_hop(headers={"Authorization": "secret"})
        Redirect().rewrite(hop, redirect_response(hop, 302), "http://example.com:8080/b")
        assert hop.get("Authorization") is None

    def test_same_host_keeps_credentials(self) -> None:
        hop = make_hop(headers={"Authorization": "secret"})
        Redirect().rewrite(hop, redirect_response(hop, 302), "http://example.com/b")
        assert hop.get("Authorization") == "secret"

    def test_custom_headers_to_remove(self) -> None:
        hop = make_hop(headers={"Authorization": "secret", "X-Api-Key": "k"})
        redirect = Redirect(remove_headers_on_redirect=["X-API-KEY"])
        redirect.rewrite(hop, redirect_response(hop, 302), "http://other.com/b")
        assert hop.get("X-Api-Key") is None
        assert hop.get("Authorization") == "secret"


class TestFollow:
    async def test_follows_chain(self) -> None:
        server = Server({"/a": (302, "/b"), "/b": (301, "http://example.com/c")})
        request = make_request()
        response = await Redirect().follow(request, server.open)

        assert response.status == 200
        assert response.get_url() == "http://example.com/c"
        assert [url for _, url, _, _ in server.seen] == [
            "http://example.com/a",
            "http://example.com/b",
            "http://example.com/c",
        ]
        # Intermediate responses are released.
        assert len(server.closed) == 2

    async def test_request_left_as_built(self) -> None:
        server = Server({"/start": (303, "/end")})
        request = make_request(
            "http://example.com/start",
            method="POST",
            body="data",
            headers={"Content-Type": "text/plain", "Authorization": "secret"},
        )
        before = request.to_json()

        response = await Redirect().follow(request, server.open)

        assert response.get_url() == "http://example.com/end"
        assert server.seen[-1][:3] == ("GET", "http://example.com/end", None)
        assert request.to_json() == before
        assert request.get_url() == "http://example.com/start"
        assert request.method == "POST"
        assert request.body == "data"

        clone = request.clone()
        assert clone.method == "POST"
        assert clone.get_url() == "http://example.com/start"
        assert clone.body == "data"

    async def test_cross_host_keeps_request_headers(self) -> None:
        server = Server({"/a": (302, "http://other.com/b")})
        request = make_request(headers={"Authorization": "secret"})
        await Redirect().follow(request, server.open)

        assert server.seen[0][3] == ["Authorization", "secret"]
        assert server.seen[1][3] == []
        assert request.get("Authorization") == "secret"

    async def test_each_hop_is_a_fresh_copy(self) -> None:
        hops: list[RequestHop] = []
        server = Server({"/a": (302, "/b")})

        async def open_hop(hop: RequestHop) -> Response:
            hops.append(hop)
            hop.set("Cookie", f"hop={len(hops)}")
            return await server.open(hop)

        request = make_request()
        await Redirect().follow(request, open_hop)

        assert [hop.request for hop in hops] == [request, request]
        assert hops[0] is not hops[1]
        # Headers added while sending one hop do not carry into the next.
        assert server.seen[1][3] == ["Cookie", "hop=2"]
        assert request.get("Cookie") is None

    async def test_not_followed(self) -> None:
        server = Server({"/a": (302, "/b")})
        response = await Redirect(follow=False).follow(make_request(), server.open)
        assert response.status == 302
        assert len(server.seen) == 1

    async def test_max_redirects(self) -> None:
        server = Server({"/a": (302, "/a")})
        request = make_request()
        with pytest.raises(MaxRedirectsError, match="Exceeded maximum of 5 redirects") as e:
            await Redirect().follow(request, server.open)
        assert e.value.code == "EMAXREDIRECTS"
        assert e.value.request is request
        assert len(server.seen) == 6

    async def test_exactly_max_redirects(self) -> None:
        routes: dict[str, tuple[int, str | None]] = {
            f"/{i}": (302, f"/{i + 1}") for i in range(3)
        }
        server = Server(routes)
        response = await Redirect(max_redirects=3).follow(
            make_request("http://example.com/0"), server.open
        )
        assert response.get_url() == "http://example.com/3"

    async def test_zero_max_redirects(self) -> None:
        server = Server({"/a": (302, "/b")})
        with pytest.raises(MaxRedirectsError, match="Exceeded maximum of 0 redirects"):
            await Redirect(max_redirects=0).follow(make_request(), server.open)

    async def test_rewinds_file_body(self) -> None:
        server = Server({"/a": (307, "/b")})
        body = io.BytesIO(b"payload")
        request = make_request(method="POST", body=body)
        response = await Redirect(confirm=lambda req, res: True).follow(request, server.open)
        assert response.body == b"payload"

    async def test_stream_body_cannot_be_resent(self) -> None:
        server = Server({"/a": (308, "/b")})
        request = make_request(method="POST", body=iter([b"chunk"]))
        with pytest.raises(UnrewindableBodyError) as e:
            await Redirect(confirm=lambda req, res: True).follow(request, server.open)
        assert e.value.code == "ESTRINGIFY"

    async def test_stream_body_dropped_on_get_rewrite(self) -> None:
        server = Server({"/a": (303, "/b")})
        request = make_request(method="POST", body=iter([b"chunk"]))
        response = await Redirect().follow(request, server.open)
        assert response.status == 200
        assert server.seen[-1][0] == "GET"
        assert server.seen[-1][2] is None


class TestRedirectPolicy:
    def test_increment_is_immutable(self) -> None:
        redirect = Redirect()
        request = make_request()
        new = redirect.increment("GET", "http://a/", redirect_response(request, 302), "http://b/")
        assert redirect.count == 0
        assert new.count == 1
        assert new.history == (RequestHistory("GET", "http://a/", 302, "http://b/"),)
        assert new.max_redirects == redirect.max_redirects

    def test_is_exhausted(self) -> None:
        request = make_request()
        redirect = Redirect(max_redirects=1)
        redirect = redirect.increment("GET", "/", redirect_response(request, 302), "/b")
        assert not redirect.is_exhausted()
        redirect = redirect.increment("GET", "/", redirect_response(request, 302), "/b")
        assert redirect.is_exhausted()

    def test_repr(self) -> None:
        assert repr(Redirect()) == "Redirect(follow=True, max_redirects=5, count=0)"
