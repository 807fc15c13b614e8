from __future__ import annotations

import http.cookiejar

import pytest

from httpchain import CookieJar, Request, Response
from httpchain.cookies import create_cookie

from . import RecordingTransport


def make_request(url: str, **kwargs: object) -> Request:
    return Request(url, transport=RecordingTransport(), **kwargs)  # type: ignore[arg-type]


def set_cookie_response(url: str, *cookies: str) -> Response:
    return Response(url, 200, headers=[("Set-Cookie", cookie) for cookie in cookies])


class TestCreateCookie:
    def test_defaults(self) -> None:
        cookie = create_cookie("a", "1")
        assert isinstance(cookie, http.cookiejar.Cookie)
        assert cookie.name == "a"
        assert cookie.value == "1"
        assert cookie.path == "/"
        assert cookie.domain == ""
        assert not cookie.domain_specified

    def test_domain(self) -> None:
        cookie = create_cookie("a", "1", domain=".example.com")
        assert cookie.domain_specified
        assert cookie.domain_initial_dot

    def test_unexpected_arguments(self) -> None:
        with pytest.raises(TypeError, match="unexpected keyword arguments"):
            create_cookie("a", "1", colour="blue")


class TestCookieJar:
    def test_ingest_then_inject(self) -> None:
        jar = CookieJar()
        jar.ingest(set_cookie_response("http://example.com/", "a=1; Path=/", "b=2; Path=/"))
        assert len(jar) == 2

        request = make_request("http://example.com/page")
        jar.inject(request)
        assert request.get("Cookie") in ("a=1; b=2", "b=2; a=1")

    def test_ignores_response_without_set_cookie(self) -> None:
        jar = CookieJar()
        jar.ingest(Response("http://example.com/", 200))
        assert len(jar) == 0

    def test_domain_matching(self) -> None:
        jar = CookieJar()
        jar.ingest(set_cookie_response("http://example.com/", "a=1; Path=/"))

        request = make_request("http://other.com/")
        jar.inject(request)
        assert request.get("Cookie") is None

    def test_path_matching(self) -> None:
        jar = CookieJar()
        jar.ingest(set_cookie_response("http://example.com/admin/", "a=1; Path=/admin"))

        assert jar.get_cookie_header("http://example.com/admin/users") == "a=1"
        assert jar.get_cookie_header("http://example.com/public") is None

    def test_secure_cookie(self) -> None:
        jar = CookieJar()
        jar.ingest(set_cookie_response("https://example.com/", "a=1; Path=/; Secure"))

        assert jar.get_cookie_header("https://example.com/") == "a=1"
        assert jar.get_cookie_header("http://example.com/") is None

    def test_expired_cookie_removed(self) -> None:
        jar = CookieJar()
        jar.ingest(set_cookie_response("http://example.com/", "a=1; Path=/"))
        jar.ingest(
            set_cookie_response(
                "http://example.com/", "a=gone; Path=/; Expires=Thu, 01 Jan 1970 00:00:00 GMT"
            )
        )
        assert len(jar) == 0

    def test_keeps_user_cookie(self) -> None:
        jar = CookieJar()
        jar.set("jar", "1")
        request = make_request("http://example.com/", headers={"Cookie": "user=1"})
        jar.inject(request)
        assert request.get("Cookie") == "user=1; jar=1"

    def test_inject_is_repeatable(self) -> None:
        jar = CookieJar()
        jar.set("jar", "1")
        request = make_request("http://example.com/", headers={"Cookie": "user=1"})

        jar.inject(request)
        jar.inject(request)
        assert request.get("Cookie") == "user=1; jar=1"

        jar.set("more", "2")
        jar.inject(request)
        assert request.get("Cookie") in ("user=1; jar=1; more=2", "user=1; more=2; jar=1")

    def test_inject_after_user_changes_cookie(self) -> None:
        jar = CookieJar()
        jar.set("jar", "1")
        request = make_request("http://example.com/")
        jar.inject(request)
        request.set("Cookie", "changed=1")
        jar.inject(request)
        assert request.get("Cookie") == "changed=1; jar=1"

    def test_inject_removes_stale_cookies_across_hosts(self) -> None:
        jar = CookieJar()
        jar.set("scoped", "1", domain="example.com")
        request = make_request("http://example.com/")
        jar.inject(request)
        assert request.get("Cookie") == "scoped=1"

        request.set_url("http://other.com/")
        jar.inject(request)
        assert request.get("Cookie") is None

    def test_clear_and_iter(self) -> None:
        jar = CookieJar()
        jar.set("a", "1")
        assert [cookie.name for cookie in jar] == ["a"]
        jar.clear()
        assert len(jar) == 0

    def test_wraps_existing_jar(self) -> None:
        inner = http.cookiejar.CookieJar()
        jar = CookieJar(inner)
        jar.set("a", "1")
        assert len(inner) == 1
