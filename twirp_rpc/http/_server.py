"""HTTP server implementation using Falcon/WSGI.

Provides ``make_wsgi_app`` to expose a Twirp service implementation as a
Falcon WSGI application.  The dispatcher, request-id middleware and access
logging live here.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Mapping
from typing import Any, Literal

import falcon

from twirp_rpc._debug import fmt_body, wire_server_logger
from twirp_rpc.errors import (
    TwirpError,
    bad_route_error,
    encode_error,
    internal_error,
)
from twirp_rpc.service import DEFAULT_PREFIX, Handler, ServiceDefinition, build_routes
from twirp_rpc.wire import JSON_CONTENT_TYPE, ContentType, content_type_from_header

from ._common import REQUEST_ID_HEADER, _current_request_id, _generate_request_id

_logger = logging.getLogger("twirp_rpc.http")
_access_logger = logging.getLogger("twirp_rpc.access")


def _log_handler_error(service_name: str, method_name: str, exc: BaseException) -> None:
    """Log an application handler failure that is being normalized to ``internal``."""
    extra: dict[str, object] = {
        "service": service_name,
        "method": method_name,
        "error_type": type(exc).__name__,
    }
    request_id = _current_request_id.get()
    if request_id:
        extra["request_id"] = request_id
    _logger.error(
        "Error in %s.%s: %s",
        service_name,
        method_name,
        exc,
        exc_info=True,
        extra=extra,
    )


def _emit_access_log(
    service_name: str,
    method_name: str,
    http_method: str,
    remote_addr: str | None,
    duration_ms: float,
    status: Literal["ok", "error"],
    http_status: int,
    error_code: str = "",
) -> None:
    """Emit a structured access log record for a completed request."""
    if not _access_logger.isEnabledFor(logging.INFO):
        return
    extra: dict[str, object] = {
        "service": service_name,
        "method": method_name,
        "http_method": http_method,
        "remote_addr": remote_addr or "",
        "duration_ms": round(duration_ms, 2),
        "status": status,
        "http_status": http_status,
        "error_code": error_code,
    }
    request_id = _current_request_id.get()
    if request_id:
        extra["request_id"] = request_id
    _access_logger.info("%s.%s %s", service_name, method_name, status, extra=extra)


def _set_error_response(resp: falcon.Response, error: TwirpError) -> None:
    """Frame *error* as a JSON error envelope on a Falcon response."""
    resp.content_type = JSON_CONTENT_TYPE
    resp.data = encode_error(error)
    resp.status = error.http_status


# ---------------------------------------------------------------------------
# Server: Falcon sink
# ---------------------------------------------------------------------------


class _TwirpDispatcher:
    """Falcon sink that validates, routes and frames every inbound request.

    Registered as a sink rather than a resource so that non-POST methods and
    unknown paths reach it and get a Twirp ``bad_route`` envelope instead of
    Falcon's default 404/405 responses.
    """

    __slots__ = ("_routes", "_service_name")

    def __init__(self, service_name: str, routes: Mapping[str, Handler]) -> None:
        self._service_name = service_name
        self._routes = routes

    def _resolve(self, req: falcon.Request) -> tuple[Handler, ContentType]:
        """Run the method, content-type and route checks.

        Raises:
            TwirpError: ``bad_route`` for any request that cannot be dispatched.

        """
        if req.method != "POST":
            raise bad_route_error(f"unsupported method {req.method} (only POST is allowed)")

        header = req.get_header("Content-Type")
        if not header:
            raise bad_route_error("missing Content-Type header")

        content_type = content_type_from_header(header)
        if content_type is ContentType.UNKNOWN:
            raise bad_route_error(f"unexpected Content-Type: {header}")

        handler = self._routes.get(req.path)
        if handler is None:
            raise bad_route_error(f"no handler for path {req.path}")
        return handler, content_type

    def _invoke(self, req: falcon.Request, method_name: str, handler: Handler, content_type: ContentType) -> bytes:
        """Buffer the body and call *handler* once, normalizing its failures.

        Raises:
            TwirpError: The handler's own error, or ``internal`` for any other
                failure (including a failed body read).

        """
        try:
            body = req.bounded_stream.read()
        except OSError as exc:
            raise internal_error(f"failed to read request body: {exc}") from exc

        if wire_server_logger.isEnabledFor(logging.DEBUG):
            wire_server_logger.debug(
                "Twirp request: path=%s, content_type=%s, body=%s",
                req.path,
                content_type.mime,
                fmt_body(body),
            )
        try:
            return handler(body, content_type)
        except TwirpError:
            raise
        except Exception as exc:
            _log_handler_error(self._service_name, method_name, exc)
            raise internal_error(str(exc)) from exc

    def __call__(self, req: falcon.Request, resp: falcon.Response, **kwargs: Any) -> None:
        """Handle one request; always produces a complete response."""
        start = time.monotonic()
        method_name = req.path.rsplit("/", 1)[-1]
        status: Literal["ok", "error"] = "ok"
        error_code = ""
        http_status = 200
        try:
            handler, content_type = self._resolve(req)
            result = self._invoke(req, method_name, handler, content_type)
        except TwirpError as err:
            status = "error"
            error_code = err.code.value
            http_status = err.http_status
            _set_error_response(resp, err)
        else:
            resp.content_type = content_type.mime
            resp.data = result
            resp.status = falcon.HTTP_200
        if wire_server_logger.isEnabledFor(logging.DEBUG):
            wire_server_logger.debug(
                "Twirp response: path=%s, status=%d, body=%s",
                req.path,
                http_status,
                fmt_body(resp.data or b""),
            )
        _emit_access_log(
            self._service_name,
            method_name,
            req.method,
            req.remote_addr,
            (time.monotonic() - start) * 1000,
            status,
            http_status,
            error_code,
        )


class _RequestIdMiddleware:
    """Falcon middleware that sets a per-request correlation ID.

    Reads ``X-Request-ID`` from the incoming request header or generates a
    new 16-char hex ID.  The value is stored in ``req.context.request_id``,
    set on the ``_current_request_id`` contextvar, and echoed back on the
    response as the ``X-Request-ID`` header.
    """

    def process_request(self, req: falcon.Request, resp: falcon.Response) -> None:
        """Set request ID from header or generate one; populate contextvar."""
        request_id = req.get_header(REQUEST_ID_HEADER) or _generate_request_id()
        req.context.request_id = request_id
        req.context.request_id_token = _current_request_id.set(request_id)

    def process_response(
        self,
        req: falcon.Request,
        resp: falcon.Response,
        resource: object,
        req_succeeded: bool,
    ) -> None:
        """Echo request ID on response header and reset contextvar."""
        request_id = getattr(req.context, "request_id", None)
        if request_id is not None:
            resp.set_header(REQUEST_ID_HEADER, request_id)
        token = getattr(req.context, "request_id_token", None)
        if token is not None:
            _current_request_id.reset(token)


def make_wsgi_app(
    service: ServiceDefinition,
    implementation: object,
    *,
    prefix: str = DEFAULT_PREFIX,
) -> falcon.App[falcon.Request, falcon.Response]:
    """Create a Falcon WSGI app that serves a Twirp service.

    Args:
        service: The service definition (method names and payload codecs).
        implementation: The application handler set: a mapping from method
            name to function, or an object with snake_case methods
            (``make_hat``).  Each function takes the decoded request message
            and returns the response message or a mapping of its fields.
        prefix: URL prefix for all routes (default ``/twirp``).  Routes are
            ``{prefix}/{service.full_name}/{Method}``.

    Returns:
        A Falcon application.  The route table is built once here and never
        changes afterwards.

    """
    routes = build_routes(service, implementation, prefix)
    dispatcher = _TwirpDispatcher(service.full_name, routes)
    app: falcon.App[falcon.Request, falcon.Response] = falcon.App(middleware=[_RequestIdMiddleware()])
    app.add_sink(dispatcher, prefix="/")

    _logger.info(
        "WSGI app created for %s (prefix=%s, methods=%d/%d)",
        service.full_name,
        service.path_prefix(prefix),
        len(routes),
        len(service.methods),
        extra={
            "service": service.full_name,
            "prefix": service.path_prefix(prefix),
            "routed_methods": sorted(routes),
        },
    )
    return app
