from __future__ import annotations

import pytest

import httpchain
from httpchain import CookieJar, Form, HTTPTransport, Request, RequestFactory
from httpchain.exceptions import LocationValueError

from . import RecordingTransport

pytestmark = pytest.mark.anyio


def noop_a(req, next):  # type: ignore[no-untyped-def]
    return next()


def noop_b(req, next):  # type: ignore[no-untyped-def]
    return next()


class TestRequestFactory:
    def test_url_string(self) -> None:
        req = httpchain.request("http://example.com/", transport=RecordingTransport())
        assert isinstance(req, Request)
        assert req.method == "GET"
        assert req.get_url() == "http://example.com/"

    def test_options_mapping(self) -> None:
        req = httpchain.request(
            {"url": "http://example.com/", "method": "post", "body": "x"},
            transport=RecordingTransport(),
        )
        assert req.method == "POST"
        assert req.body == "x"

    def test_keyword_url(self) -> None:
        req = httpchain.request(url="http://example.com/", transport=RecordingTransport())
        assert req.get_url() == "http://example.com/"

    @pytest.mark.parametrize("args", [(), (None,), ({"method": "GET"},)])
    def test_missing_url(self, args: tuple[object, ...]) -> None:
        with pytest.raises(LocationValueError):
            httpchain.request(*args)  # type: ignore[arg-type]

    def test_unknown_option(self) -> None:
        with pytest.raises(TypeError, match="Unexpected request options"):
            httpchain.request("http://example.com/", colour="blue")

    @pytest.mark.parametrize(
        "shorthand, method",
        [
            (httpchain.get, "GET"),
            (httpchain.post, "POST"),
            (httpchain.put, "PUT"),
            (httpchain.patch, "PATCH"),
            (httpchain.delete, "DELETE"),
            (httpchain.head, "HEAD"),
            (httpchain.options, "OPTIONS"),
        ],
    )
    def test_shorthands(self, shorthand, method: str) -> None:  # type: ignore[no-untyped-def]
        req = shorthand("http://example.com/", transport=RecordingTransport())
        assert req.method == method

    def test_shorthand_overrides_method_option(self) -> None:
        req = httpchain.post(
            {"url": "http://example.com/", "method": "PUT"}, transport=RecordingTransport()
        )
        assert req.method == "POST"

    def test_default_transport(self) -> None:
        assert isinstance(httpchain.get("http://example.com/").transport, HTTPTransport)

    async def test_await_request(self) -> None:
        transport = RecordingTransport(body="hello")
        res = await httpchain.get("http://example.com/", transport=transport)
        assert res.status == 200
        assert res.body == "hello"
        assert len(transport.opened) == 1


class TestDefaults:
    def test_shared_options(self) -> None:
        transport = RecordingTransport()
        api = httpchain.defaults(transport=transport, timeout=1000, method="PUT")
        assert isinstance(api, RequestFactory)

        req = api("http://example.com/")
        assert req.transport is transport
        assert req.timeout == 1000
        assert req.method == "PUT"

        assert api.get("http://example.com/").method == "GET"
        assert api("http://example.com/", timeout=5).timeout == 5

    def test_shared_url(self) -> None:
        api = httpchain.defaults(url="http://example.com/", transport=RecordingTransport())
        assert api().get_url() == "http://example.com/"

    def test_header_merge(self) -> None:
        api = httpchain.defaults(
            headers={"Authorization": "Bearer a", "X-Shared": "1"},
            transport=RecordingTransport(),
        )
        req = api("http://example.com/", headers={"authorization": "Bearer b", "X-Own": "2"})
        assert req.get_all("Authorization") == ["Bearer b"]
        assert req.get("X-Shared") == "1"
        assert req.get("X-Own") == "2"

    def test_shared_headers_only(self) -> None:
        api = httpchain.defaults(headers={"X-Shared": "1"}, transport=RecordingTransport())
        assert api("http://example.com/").get("X-Shared") == "1"

    def test_use_concatenated(self) -> None:
        api = httpchain.defaults(use=[noop_a], transport=RecordingTransport())
        req = api("http://example.com/", use=[noop_b])
        assert req.middleware == [noop_a, noop_b]
        assert api("http://example.com/").middleware == [noop_a]

    def test_layered_defaults(self) -> None:
        transport = RecordingTransport()
        base = httpchain.defaults(
            use=[noop_a], headers={"X-A": "1", "X-B": "1"}, transport=transport
        )
        layered = base.defaults(use=[noop_b], headers={"x-b": "2"}, timeout=10)

        req = layered("http://example.com/")
        assert req.middleware == [noop_a, noop_b]
        assert req.get("X-A") == "1"
        assert req.get_all("X-B") == ["2"]
        assert req.timeout == 10
        assert req.transport is transport

        # The base factory is unchanged.
        assert base("http://example.com/").middleware == [noop_a]
        assert base("http://example.com/").timeout is None

    def test_defaults_method_on_constructed_factory(self) -> None:
        api = RequestFactory(timeout=1, transport=RecordingTransport())
        assert callable(api.defaults)

        req = api.defaults(method="POST")("http://example.com/")
        assert req.method == "POST"
        assert req.timeout == 1

    def test_unknown_option(self) -> None:
        with pytest.raises(TypeError):
            httpchain.defaults(colour="blue")

    def test_repr(self) -> None:
        assert repr(RequestFactory(timeout=1)) == "RequestFactory({'timeout': 1})"


class TestHelpers:
    def test_create_transport(self) -> None:
        transport = httpchain.create_transport(type="bytes", max_redirects=2)
        assert isinstance(transport, HTTPTransport)

    def test_form(self) -> None:
        form = httpchain.form({"a": "1"})
        assert isinstance(form, Form)
        assert len(form) == 1

    def test_jar(self) -> None:
        jar = httpchain.jar()
        assert isinstance(jar, CookieJar)
        assert len(jar) == 0
