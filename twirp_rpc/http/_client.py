"""HTTP client implementation using httpx.

Provides ``TwirpClient`` and ``AsyncTwirpClient`` (the binary and JSON call
modes), and the ``twirp_connect`` context manager that wraps them in a typed
per-method proxy.
"""

from __future__ import annotations

import contextlib
import json
import logging
from collections.abc import Callable, Iterator, Mapping
from dataclasses import dataclass, field
from http import HTTPStatus
from types import TracebackType
from typing import TYPE_CHECKING, Any, Protocol

import httpx

from twirp_rpc._debug import fmt_body, wire_http_logger
from twirp_rpc.casing import camelize_keys
from twirp_rpc.errors import (
    MalformedErrorEnvelope,
    TwirpError,
    decode_error,
    error_from_intermediary,
    internal_error,
)
from twirp_rpc.service import DEFAULT_PREFIX, Method, ServiceDefinition
from twirp_rpc.wire import JSON_CONTENT_TYPE, PROTOBUF_CONTENT_TYPE, dumps_compact

if TYPE_CHECKING:
    from ._testing import _SyncTestClient


@dataclass(frozen=True)
class ClientConfig:
    """Configuration shared by ``TwirpClient`` and ``AsyncTwirpClient``.

    Attributes:
        timeout: Timeout in seconds for clients created by the transport
            (``None`` disables it).  Ignored when an existing client is
            passed in.
        headers: Extra headers sent with every call.  ``Content-Type`` is
            always set by the call mode and cannot be overridden here.
        camel_case_json: Whether JSON responses have their object keys
            rewritten from snake_case to camelCase.

    Raises:
        ValueError: If *timeout* is negative.

    """

    timeout: float | None = 30.0
    headers: Mapping[str, str] = field(default_factory=dict)
    camel_case_json: bool = True

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if self.timeout is not None and self.timeout < 0:
            raise ValueError(f"timeout must be >= 0, got {self.timeout}")


class _ResponseLike(Protocol):
    status_code: int
    content: bytes

    @property
    def headers(self) -> Mapping[str, str]: ...


def _raise_for_twirp_error(resp: _ResponseLike) -> None:
    """Raise the ``TwirpError`` carried by a non-200 response.

    Responses without a valid error envelope (proxies, gateways, load
    balancers) are classified from their HTTP status instead.
    """
    if resp.status_code == HTTPStatus.OK:
        return
    try:
        error = decode_error(resp.content)
    except MalformedErrorEnvelope:
        location = resp.headers.get("location") or resp.headers.get("Location")
        error = error_from_intermediary(resp.status_code, resp.content, location)
    raise error


def _decode_json_body(content: bytes, camel_case: bool) -> Any:
    """Parse a successful JSON response body."""
    try:
        payload = json.loads(content)
    except ValueError as exc:
        raise internal_error(f"failed to decode json response: {exc}") from exc
    return camelize_keys(payload) if camel_case else payload


def _log_response(method: str, resp: _ResponseLike) -> None:
    if wire_http_logger.isEnabledFor(logging.DEBUG):
        wire_http_logger.debug(
            "Twirp response: method=%s, status=%d, body=%s",
            method,
            resp.status_code,
            fmt_body(resp.content),
        )


class _TwirpClientBase:
    """URL and header bookkeeping shared by the sync and async transports."""

    def __init__(
        self,
        service: ServiceDefinition | str,
        base_url: str | None,
        prefix: str,
        config: ClientConfig | None,
    ) -> None:
        full_name = service.full_name if isinstance(service, ServiceDefinition) else service
        self._config = config or ClientConfig()
        self._url_prefix = f"{(base_url or '').rstrip('/')}{prefix.rstrip('/')}/{full_name}/"

    @property
    def url_prefix(self) -> str:
        """The ``<base url><prefix>/<service>/`` every method name is appended to."""
        return self._url_prefix

    def _headers(self, content_type: str) -> dict[str, str]:
        return {**self._config.headers, "Content-Type": content_type}

    def _prepare(self, method: str, content_type: str, body: bytes) -> tuple[str, dict[str, str]]:
        url = f"{self._url_prefix}{method}"
        if wire_http_logger.isEnabledFor(logging.DEBUG):
            wire_http_logger.debug("Twirp call: url=%s, content_type=%s, body=%s", url, content_type, fmt_body(body))
        return url, self._headers(content_type)

    def _camel(self, camel_case: bool | None) -> bool:
        return self._config.camel_case_json if camel_case is None else camel_case


class TwirpClient(_TwirpClientBase):
    """Synchronous Twirp transport over ``httpx.Client``.

    Transport failures (connection refused, reset, timeout before a status
    line) propagate as ``httpx`` exceptions; every HTTP response that is not
    a 200 raises ``TwirpError``.
    """

    def __init__(
        self,
        service: ServiceDefinition | str,
        base_url: str | None = None,
        *,
        prefix: str = DEFAULT_PREFIX,
        client: httpx.Client | _SyncTestClient | None = None,
        config: ClientConfig | None = None,
    ) -> None:
        """Initialize the transport.

        Args:
            service: Service definition or fully-qualified service name.
            base_url: Base URL of the server (e.g. ``http://localhost:8000``).
            prefix: Path prefix matching the server's (default ``/twirp``).
            client: Optional existing HTTP client; it is not closed by
                ``close()``.
            config: Optional client configuration.

        """
        super().__init__(service, base_url, prefix, config)
        self._own_client = client is None
        self._client: httpx.Client | _SyncTestClient = (
            httpx.Client(timeout=self._config.timeout) if client is None else client
        )

    def call_protobuf(self, method: str, request: bytes) -> bytes:
        """Call *method* with a protobuf-encoded request; return the raw response bytes."""
        url, headers = self._prepare(method, PROTOBUF_CONTENT_TYPE, request)
        resp = self._client.post(url, content=request, headers=headers)
        _log_response(method, resp)
        _raise_for_twirp_error(resp)
        return resp.content

    def call_json(self, method: str, payload: Any, *, camel_case: bool | None = None) -> Any:
        """Call *method* with a JSON request; return the decoded JSON response.

        Args:
            method: The method name (``MakeHat``).
            payload: Any JSON-serializable value, normally a dict using
                snake_case field names.
            camel_case: Override ``ClientConfig.camel_case_json`` for this call.

        """
        body = dumps_compact(payload)
        url, headers = self._prepare(method, JSON_CONTENT_TYPE, body)
        resp = self._client.post(url, content=body, headers=headers)
        _log_response(method, resp)
        _raise_for_twirp_error(resp)
        return _decode_json_body(resp.content, self._camel(camel_case))

    def close(self) -> None:
        """Close the underlying HTTP client if this transport created it."""
        if self._own_client:
            self._client.close()

    def __enter__(self) -> TwirpClient:
        """Enter the context manager."""
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Close the transport."""
        self.close()


class AsyncTwirpClient(_TwirpClientBase):
    """Asynchronous Twirp transport over ``httpx.AsyncClient``.

    Each call is one independent HTTP exchange, so concurrent calls can be
    issued with ``asyncio.gather`` without coordination.
    """

    def __init__(
        self,
        service: ServiceDefinition | str,
        base_url: str | None = None,
        *,
        prefix: str = DEFAULT_PREFIX,
        client: httpx.AsyncClient | None = None,
        config: ClientConfig | None = None,
    ) -> None:
        """Initialize the transport; arguments as for ``TwirpClient``."""
        super().__init__(service, base_url, prefix, config)
        self._own_client = client is None
        self._client = httpx.AsyncClient(timeout=self._config.timeout) if client is None else client

    async def call_protobuf(self, method: str, request: bytes) -> bytes:
        """Call *method* with a protobuf-encoded request; return the raw response bytes."""
        url, headers = self._prepare(method, PROTOBUF_CONTENT_TYPE, request)
        resp = await self._client.post(url, content=request, headers=headers)
        _log_response(method, resp)
        _raise_for_twirp_error(resp)
        return resp.content

    async def call_json(self, method: str, payload: Any, *, camel_case: bool | None = None) -> Any:
        """Call *method* with a JSON request; return the decoded JSON response."""
        body = dumps_compact(payload)
        url, headers = self._prepare(method, JSON_CONTENT_TYPE, body)
        resp = await self._client.post(url, content=body, headers=headers)
        _log_response(method, resp)
        _raise_for_twirp_error(resp)
        return _decode_json_body(resp.content, self._camel(camel_case))

    async def aclose(self) -> None:
        """Close the underlying HTTP client if this transport created it."""
        if self._own_client:
            await self._client.aclose()

    async def __aenter__(self) -> AsyncTwirpClient:
        """Enter the async context manager."""
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        """Close the transport."""
        await self.aclose()


# ---------------------------------------------------------------------------
# Typed proxy: twirp_connect
# ---------------------------------------------------------------------------


def _decode_response(method: Method, decode: Callable[[Any], Any], payload: Any) -> Any:
    """Decode a response payload, classifying codec failures as ``internal``."""
    try:
        return decode(payload)
    except TwirpError as err:
        raise internal_error(f"failed to decode {method.name} response: {err.message}") from err


class _TwirpProxy:
    """Dynamic proxy exposing each service method as a snake_case callable."""

    def __init__(self, service: ServiceDefinition, transport: TwirpClient, *, use_json: bool) -> None:
        self._service = service
        self._transport = transport
        self._use_json = use_json

    def __getattr__(self, name: str) -> Callable[[Any], Any]:
        """Resolve method names (``make_hat`` or ``MakeHat``) to callers, caching on first access."""
        if name.startswith("_"):
            raise AttributeError(name)
        try:
            method = self._service.method(name)
        except KeyError:
            raise AttributeError(f"{self._service.full_name} has no RPC method '{name}'") from None
        caller = self._make_json_caller(method) if self._use_json else self._make_protobuf_caller(method)
        self.__dict__[name] = caller
        return caller

    def _make_protobuf_caller(self, method: Method) -> Callable[[Any], Any]:
        transport = self._transport

        def caller(request: Any) -> Any:
            data = transport.call_protobuf(method.name, method.request.encode_binary(request))
            return _decode_response(method, method.response.decode_binary, data)

        return caller

    def _make_json_caller(self, method: Method) -> Callable[[Any], Any]:
        transport = self._transport

        def caller(request: Any) -> Any:
            payload = transport.call_json(method.name, method.request.to_json(request))
            return _decode_response(method, method.response.from_json, payload)

        return caller


@contextlib.contextmanager
def twirp_connect(
    service: ServiceDefinition,
    base_url: str | None = None,
    *,
    json: bool = False,
    prefix: str = DEFAULT_PREFIX,
    client: httpx.Client | _SyncTestClient | None = None,
    config: ClientConfig | None = None,
) -> Iterator[Any]:
    """Connect to a Twirp server and yield a typed proxy.

    Example::

        with twirp_connect(haberdasher, "http://localhost:8000") as svc:
            hat = svc.make_hat(Size(inches=12))

    Args:
        service: The service definition (method names and payload codecs).
        base_url: Base URL of the server.
        json: Use the JSON call mode instead of protobuf.
        prefix: Path prefix matching the server's (default ``/twirp``).
        client: Optional existing HTTP client (``httpx.Client`` or
            ``_SyncTestClient``).
        config: Optional client configuration.

    Yields:
        A proxy whose attributes are the service's methods.  Each takes the
        request message (or a mapping of its fields) and returns the decoded
        response message.

    """
    transport = TwirpClient(service, base_url, prefix=prefix, client=client, config=config)
    try:
        yield _TwirpProxy(service, transport, use_json=json)
    finally:
        transport.close()
