# © Copyright 2025-2026, Query.Farm LLC - https://query.farm
# SPDX-License-Identifier: Apache-2.0

"""Tests for the Falcon server dispatcher and end-to-end calls through it."""

from __future__ import annotations

import json
from collections.abc import Iterator
from types import SimpleNamespace
from typing import Any

import falcon
import httpx
import pytest

from tests.conftest import BASE_URL
from tests.haberdasher import (
    HABERDASHER,
    PATH_PREFIX,
    ClassifiedFailureImpl,
    FailingImpl,
    HaberdasherImpl,
    Hat,
    Size,
)
from twirp_rpc.errors import ErrorCode, TwirpError
from twirp_rpc.http import (
    REQUEST_ID_HEADER,
    TwirpClient,
    _SyncTestClient,
    _SyncTestResponse,
    make_sync_client,
    make_wsgi_app,
    twirp_connect,
)
from twirp_rpc.http._server import _TwirpDispatcher
from twirp_rpc.service import build_routes
from twirp_rpc.wire import ContentType

_JSON = {"Content-Type": "application/json"}
_PROTOBUF = {"Content-Type": "application/protobuf"}


def _post(client: _SyncTestClient, method: str, body: bytes, headers: dict[str, str]) -> _SyncTestResponse:
    return client.post(f"{BASE_URL}{PATH_PREFIX}{method}", content=body, headers=headers)


def _error_body(resp: _SyncTestResponse) -> dict[str, Any]:
    assert resp.headers["content-type"] == "application/json"
    body: dict[str, Any] = json.loads(resp.content)
    return body


@pytest.fixture
def failing_client() -> Iterator[_SyncTestClient]:
    """Client whose only method raises a plain RuntimeError."""
    c = make_sync_client(HABERDASHER, FailingImpl())
    yield c
    c.close()


# ---------------------------------------------------------------------------
# Tests: make_wsgi_app
# ---------------------------------------------------------------------------


class TestMakeWsgiApp:
    """Tests for the make_wsgi_app factory."""

    def test_returns_falcon_app(self) -> None:
        """make_wsgi_app returns a Falcon application."""
        app = make_wsgi_app(HABERDASHER, HaberdasherImpl())
        assert isinstance(app, falcon.App)

    def test_custom_prefix(self) -> None:
        """Routes live under the configured prefix only."""
        c = make_sync_client(HABERDASHER, HaberdasherImpl(), prefix="/rpc")
        ok = c.post(
            f"{BASE_URL}/rpc/twitch.twirp.example.Haberdasher/MakeHat",
            content=Size(inches=1).SerializeToString(),
            headers=_PROTOBUF,
        )
        assert ok.status_code == 200
        missing = _post(c, "MakeHat", Size(inches=1).SerializeToString(), _PROTOBUF)
        assert missing.status_code == 404


# ---------------------------------------------------------------------------
# Tests: successful calls
# ---------------------------------------------------------------------------


class TestSuccess:
    """Tests for successful dispatch and response framing."""

    def test_protobuf_call(self, client: _SyncTestClient) -> None:
        """A protobuf request gets a protobuf response with the same content type."""
        resp = _post(client, "MakeHat", Size(inches=42).SerializeToString(), _PROTOBUF)
        assert resp.status_code == 200
        assert resp.headers["content-type"] == "application/protobuf"
        assert Hat.FromString(resp.content) == Hat(size=42, color="red", name="fancy hat")

    def test_json_call_exact_content_length(self, client: _SyncTestClient) -> None:
        """A JSON request gets compact JSON with an exact Content-Length."""
        resp = _post(client, "MakeHat", json.dumps({"inches": 42}).encode(), _JSON)
        assert resp.status_code == 200
        assert resp.headers["content-type"] == "application/json"
        assert resp.headers["content-length"] == "44"
        assert int(resp.headers["content-length"]) == len(resp.content)
        assert json.loads(resp.content) == {"size": 42, "name": "fancy hat", "color": "red"}

    def test_json_content_type_parameters_accepted(self, client: _SyncTestClient) -> None:
        """Parameters on the Content-Type header do not defeat negotiation."""
        resp = _post(client, "MakeHat", b'{"inches": 3}', {"Content-Type": "Application/JSON; charset=utf-8"})
        assert resp.status_code == 200
        assert resp.headers["content-type"] == "application/json"

    def test_handler_returning_mapping(self, client: _SyncTestClient) -> None:
        """Handlers may return a mapping of the response fields."""
        resp = _post(client, "FindHat", Size(inches=8).SerializeToString(), _PROTOBUF)
        assert Hat.FromString(resp.content) == Hat(size=8, color="blue", name="found hat", brim_width=3)

    def test_request_id_echoed(self, client: _SyncTestClient) -> None:
        """X-Request-ID is echoed, or generated when absent."""
        resp = _post(client, "MakeHat", b"{}", {**_JSON, REQUEST_ID_HEADER: "abc123"})
        assert resp.headers["x-request-id"] == "abc123"
        resp = _post(client, "MakeHat", b"{}", _JSON)
        assert len(resp.headers["x-request-id"]) == 16


# ---------------------------------------------------------------------------
# Tests: routing failures
# ---------------------------------------------------------------------------


class TestBadRoute:
    """Requests that never reach application code."""

    @pytest.mark.parametrize("http_method", ["GET", "PUT", "DELETE", "PATCH"])
    def test_non_post_method(self, client: _SyncTestClient, http_method: str) -> None:
        """Any method other than POST is bad_route, regardless of path or body."""
        resp = client.request(http_method, f"{BASE_URL}{PATH_PREFIX}MakeHat", content=b"{}", headers=_JSON)
        assert resp.status_code == 404
        assert _error_body(resp) == {
            "code": "bad_route",
            "msg": f"unsupported method {http_method} (only POST is allowed)",
        }

    def test_non_post_on_unknown_path(self, client: _SyncTestClient) -> None:
        """The method check comes before route resolution."""
        resp = client.request("GET", f"{BASE_URL}/nowhere", headers={})
        assert resp.status_code == 404
        assert _error_body(resp)["msg"] == "unsupported method GET (only POST is allowed)"

    def test_missing_content_type(self, client: _SyncTestClient) -> None:
        """A request without Content-Type is bad_route."""
        resp = _post(client, "MakeHat", b"{}", {})
        assert resp.status_code == 404
        assert _error_body(resp) == {"code": "bad_route", "msg": "missing Content-Type header"}

    @pytest.mark.parametrize("mime", ["image/png", "text/plain", "application/x-protobuf"])
    def test_unknown_content_type(self, client: _SyncTestClient, mime: str) -> None:
        """An unrecognized Content-Type is bad_route naming the value verbatim."""
        resp = _post(client, "MakeHat", b"{}", {"Content-Type": mime})
        assert resp.status_code == 404
        assert _error_body(resp) == {"code": "bad_route", "msg": f"unexpected Content-Type: {mime}"}

    def test_missing_route(self, client: _SyncTestClient) -> None:
        """An unregistered method path is bad_route naming the exact path."""
        resp = _post(client, "MakePants", b'{"inches": 42}', _JSON)
        assert resp.status_code == 404
        assert _error_body(resp) == {
            "code": "bad_route",
            "msg": f"no handler for path {PATH_PREFIX}MakePants",
        }

    def test_route_match_is_case_sensitive(self, client: _SyncTestClient) -> None:
        """Paths match exactly, including case."""
        resp = _post(client, "makehat", b"{}", _JSON)
        assert resp.status_code == 404
        assert _error_body(resp)["code"] == "bad_route"

    def test_unimplemented_method_not_routed(self, failing_client: _SyncTestClient) -> None:
        """Methods the implementation lacks are unroutable."""
        resp = _post(failing_client, "FindHat", b"{}", _JSON)
        assert resp.status_code == 404
        assert _error_body(resp)["msg"] == f"no handler for path {PATH_PREFIX}FindHat"


# ---------------------------------------------------------------------------
# Tests: handler failures
# ---------------------------------------------------------------------------


class TestHandlerErrors:
    """Failures raised while handling a routed request."""

    @pytest.mark.parametrize(
        ("headers", "body"),
        [(_PROTOBUF, Size(inches=42).SerializeToString()), (_JSON, b'{"inches": 42}')],
    )
    def test_arbitrary_exception_is_internal(
        self, failing_client: _SyncTestClient, headers: dict[str, str], body: bytes
    ) -> None:
        """A plain exception becomes a 500 internal error with its message; the envelope is always JSON."""
        resp = _post(failing_client, "MakeHat", body, headers)
        assert resp.status_code == 500
        assert _error_body(resp) == {"code": "internal", "msg": "thrown!"}
        assert int(resp.headers["content-length"]) == len(resp.content)

    def test_classified_error_passes_through(self) -> None:
        """A TwirpError raised by the application keeps its code and status."""
        c = make_sync_client(HABERDASHER, ClassifiedFailureImpl())
        resp = _post(c, "MakeHat", b"{}", _JSON)
        assert resp.status_code == 409
        assert _error_body(resp) == {"code": "already_exists", "msg": "hat already made"}

    def test_application_required_argument(self, client: _SyncTestClient) -> None:
        """Application validation errors reach the caller unchanged."""
        resp = _post(client, "MakeHat", b'{"inches": -1}', _JSON)
        assert resp.status_code == 400
        assert _error_body(resp) == {"code": "invalid_argument", "msg": "inches is required"}

    def test_undecodable_filename_in_message(self) -> None:
        """An exception message carrying surrogate-escaped bytes is still framed as an envelope."""
        bad_name = b"hat\xff".decode("utf-8", "surrogateescape")

        def make_hat(size: Any) -> Any:
            raise FileNotFoundError(f"no such file: {bad_name}")

        c = make_sync_client(HABERDASHER, {"MakeHat": make_hat})
        resp = _post(c, "MakeHat", b"{}", _JSON)
        assert resp.status_code == 500
        assert int(resp.headers["content-length"]) == len(resp.content)
        assert _error_body(resp) == {"code": "internal", "msg": f"no such file: {bad_name}"}

    def test_non_ascii_json_response(self) -> None:
        """JSON responses escape non-ASCII text and keep an exact Content-Length."""
        c = make_sync_client(HABERDASHER, {"MakeHat": lambda size: {"size": size.inches, "name": "chapeau élégant"}})
        resp = _post(c, "MakeHat", b'{"inches": 2}', _JSON)
        assert resp.status_code == 200
        assert resp.content.isascii()
        assert int(resp.headers["content-length"]) == len(resp.content)
        assert json.loads(resp.content) == {"size": 2, "name": "chapeau élégant"}

    def test_malformed_json_request(self, client: _SyncTestClient) -> None:
        """A JSON body that cannot be decoded is invalid_argument."""
        resp = _post(client, "MakeHat", b"{nope", _JSON)
        assert resp.status_code == 400
        assert _error_body(resp)["code"] == "invalid_argument"

    def test_body_read_failure_is_internal(self) -> None:
        """A transport read failure becomes an internal error carrying its message."""

        class _BrokenStream:
            def read(self) -> bytes:
                raise OSError("connection reset by peer")

        dispatcher = _TwirpDispatcher(HABERDASHER.full_name, build_routes(HABERDASHER, HaberdasherImpl()))
        req = SimpleNamespace(bounded_stream=_BrokenStream(), path=f"{PATH_PREFIX}MakeHat")
        with pytest.raises(TwirpError) as exc_info:
            dispatcher._invoke(req, "MakeHat", lambda b, c: b, ContentType.JSON)  # type: ignore[arg-type]
        assert exc_info.value.code is ErrorCode.INTERNAL
        assert "connection reset by peer" in exc_info.value.message

    def test_handler_invoked_once(self) -> None:
        """Each request calls the application exactly once."""
        calls: list[int] = []

        def make_hat(size: Any) -> Any:
            calls.append(size.inches)
            return Hat(size=size.inches)

        c = make_sync_client(HABERDASHER, {"MakeHat": make_hat})
        _post(c, "MakeHat", b'{"inches": 5}', _JSON)
        assert calls == [5]


# ---------------------------------------------------------------------------
# Tests: end-to-end through the client transport
# ---------------------------------------------------------------------------


class TestEndToEnd:
    """Client transport talking to the dispatcher in-process."""

    def test_binary_call_via_proxy(self, client: _SyncTestClient) -> None:
        """A binary call with {inches: 42} returns a hat of size 42."""
        with twirp_connect(HABERDASHER, BASE_URL, client=client) as svc:
            hat = svc.make_hat(Size(inches=42))
        assert hat == Hat(size=42, color="red", name="fancy hat")

    def test_json_call_via_proxy(self, client: _SyncTestClient) -> None:
        """The JSON mode decodes camelCased responses into the message type."""
        with twirp_connect(HABERDASHER, BASE_URL, json=True, client=client) as svc:
            hat = svc.FindHat({"inches": 11})
        assert hat == Hat(size=11, color="blue", name="found hat", brim_width=3)

    def test_json_call_raw(self, client: _SyncTestClient) -> None:
        """call_json returns camelCase keys by default and snake_case on request."""
        transport = TwirpClient(HABERDASHER, BASE_URL, client=client)
        assert transport.call_json("FindHat", {"inches": 2}) == {
            "size": 2,
            "color": "blue",
            "name": "found hat",
            "brimWidth": 3,
        }
        assert transport.call_json("FindHat", {"inches": 2}, camel_case=False)["brim_width"] == 3

    def test_error_raised_to_caller(self, failing_client: _SyncTestClient) -> None:
        """A handler failure surfaces as TwirpError(internal) on the client."""
        with twirp_connect(HABERDASHER, BASE_URL, client=failing_client) as svc:
            with pytest.raises(TwirpError) as exc_info:
                svc.make_hat(Size(inches=42))
        assert exc_info.value == TwirpError("internal", "thrown!")
        assert exc_info.value.http_status == 500

    def test_not_found_raised_to_caller(self, client: _SyncTestClient) -> None:
        """Application error codes survive the wire."""
        with twirp_connect(HABERDASHER, BASE_URL, json=True, client=client) as svc:
            with pytest.raises(TwirpError) as exc_info:
                svc.find_hat(Size(inches=0))
        assert exc_info.value.code is ErrorCode.NOT_FOUND
        assert exc_info.value.message == "no hat of size 0"

    def test_unknown_proxy_method(self, client: _SyncTestClient) -> None:
        """Accessing a method the service does not define is an AttributeError."""
        with twirp_connect(HABERDASHER, BASE_URL, client=client) as svc:
            with pytest.raises(AttributeError, match="make_pants"):
                _ = svc.make_pants

    def test_real_httpx_client_over_wsgi(self) -> None:
        """The httpx code path works against the WSGI app with exact Content-Length."""
        app = make_wsgi_app(HABERDASHER, HaberdasherImpl())
        http = httpx.Client(transport=httpx.WSGITransport(app=app))
        try:
            resp = http.post(
                f"{BASE_URL}{PATH_PREFIX}MakeHat",
                content=b'{"inches":42}',
                headers=_JSON,
            )
            assert resp.headers["content-length"] == str(len(resp.content)) == "44"
            with TwirpClient(HABERDASHER, BASE_URL, client=http) as transport:
                raw = transport.call_protobuf("MakeHat", Size(inches=42).SerializeToString())
            assert Hat.FromString(raw).size == 42
        finally:
            http.close()
