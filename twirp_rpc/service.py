# © Copyright 2025-2026, Query.Farm LLC - https://query.farm
# SPDX-License-Identifier: Apache-2.0

"""Service definitions, per-method handlers, and the route table.

A :class:`ServiceDefinition` is what a code generator hands to the runtime:
the fully-qualified service name and, for each method, its name plus a
:class:`PayloadCodec` for the request and response types.  The server turns
a definition and an application implementation into a read-only mapping
from request path to :data:`Handler`.
"""

from __future__ import annotations

import json
import logging
import re
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from types import MappingProxyType
from typing import Any

from twirp_rpc.errors import invalid_argument_error
from twirp_rpc.wire import ContentType, dumps_compact

__all__ = [
    "DEFAULT_PREFIX",
    "Handler",
    "Method",
    "PayloadCodec",
    "ServiceDefinition",
    "build_routes",
    "make_handler",
    "method_attribute_name",
]

_logger = logging.getLogger("twirp_rpc.service")

DEFAULT_PREFIX = "/twirp"

Handler = Callable[[bytes, ContentType], bytes]
"""Takes the raw request body and its content type, returns the raw response body."""

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")


def method_attribute_name(method_name: str) -> str:
    """Return the Python attribute name for an RPC method (``MakeHat`` -> ``make_hat``)."""
    return _CAMEL_BOUNDARY.sub("_", method_name).lower()


@dataclass(frozen=True)
class PayloadCodec:
    """Serialization functions for one payload type.

    Attributes:
        encode_binary: Message -> protobuf bytes.
        decode_binary: Protobuf bytes -> message.
        to_json: Message -> JSON value using snake_case field names.
        from_json: Decoded JSON value -> message.

    Decoders raise ``TwirpError`` (``invalid_argument``) for payloads that
    cannot be decoded.

    """

    encode_binary: Callable[[Any], bytes]
    decode_binary: Callable[[bytes], Any]
    to_json: Callable[[Any], Any]
    from_json: Callable[[Any], Any]


@dataclass(frozen=True)
class Method:
    """One RPC method: its wire name and request/response codecs."""

    name: str
    request: PayloadCodec
    response: PayloadCodec

    @property
    def attribute_name(self) -> str:
        """The snake_case name used for implementation and proxy attributes."""
        return method_attribute_name(self.name)


@dataclass(frozen=True)
class ServiceDefinition:
    """A Twirp service: fully-qualified name plus its methods."""

    full_name: str
    methods: tuple[Method, ...]

    def __post_init__(self) -> None:
        """Reject duplicate method names."""
        names = [m.name for m in self.methods]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"Duplicate method names in {self.full_name}: {duplicates}")

    @property
    def name(self) -> str:
        """The short service name (last component of ``full_name``)."""
        return self.full_name.rsplit(".", 1)[-1]

    def path_prefix(self, prefix: str = DEFAULT_PREFIX) -> str:
        """Return ``<prefix>/<full_name>/``; method names are appended to it."""
        return f"{prefix.rstrip('/')}/{self.full_name}/"

    def method(self, name: str) -> Method:
        """Look up a method by wire name or snake_case attribute name.

        Raises:
            KeyError: If the service has no such method.

        """
        for m in self.methods:
            if name in (m.name, m.attribute_name):
                return m
        raise KeyError(f"{self.full_name} has no method {name!r}")


def make_handler(method: Method, fn: Callable[[Any], Any]) -> Handler:
    """Wrap an application function as a :data:`Handler` for *method*.

    The request is decoded with the negotiated encoding, *fn* is called
    exactly once, and its result is encoded with the same encoding.
    """

    def handler(body: bytes, content_type: ContentType) -> bytes:
        if content_type is ContentType.PROTOBUF:
            request = method.request.decode_binary(body)
            return method.response.encode_binary(fn(request))
        try:
            payload = json.loads(body) if body.strip() else {}
        except ValueError as exc:
            raise invalid_argument_error(f"the json request could not be decoded: {exc}") from exc
        request = method.request.from_json(payload)
        return dumps_compact(method.response.to_json(fn(request)))

    return handler


def _lookup_impl(implementation: object, method: Method) -> Callable[[Any], Any] | None:
    if isinstance(implementation, Mapping):
        fn = implementation.get(method.name)
        if fn is None:
            fn = implementation.get(method.attribute_name)
    else:
        fn = getattr(implementation, method.attribute_name, None)
    if fn is not None and not callable(fn):
        raise TypeError(f"Implementation of {method.name} must be callable, got {type(fn).__name__}")
    return fn


def build_routes(
    service: ServiceDefinition,
    implementation: object,
    prefix: str = DEFAULT_PREFIX,
) -> Mapping[str, Handler]:
    """Build the read-only route table for *service*.

    Args:
        service: The service definition.
        implementation: Either a mapping from method name (or snake_case
            attribute name) to function, or an object exposing snake_case
            methods.  Each function takes the decoded request and returns
            the response message (or a mapping of its fields).
        prefix: Path prefix shared by every route (default ``/twirp``).

    Returns:
        A ``MappingProxyType`` from exact request path to handler.  Methods
        the implementation lacks are left unrouted.

    """
    base = service.path_prefix(prefix)
    routes: dict[str, Handler] = {}
    for method in service.methods:
        fn = _lookup_impl(implementation, method)
        if fn is None:
            _logger.debug("No implementation for %s.%s; not routed", service.full_name, method.name)
            continue
        routes[base + method.name] = make_handler(method, fn)
    return MappingProxyType(routes)
