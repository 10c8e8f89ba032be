# © Copyright 2025-2026, Query.Farm LLC - https://query.farm
# SPDX-License-Identifier: Apache-2.0

"""Twirp error codes, HTTP status mapping, and the JSON error envelope.

Every failure that crosses the wire is classified into exactly one
:class:`ErrorCode` and serialized as ``{"code": "...", "msg": "..."}``,
regardless of whether the call itself used protobuf or JSON encoding.
"""

from __future__ import annotations

import json
from enum import StrEnum
from http import HTTPStatus
from types import MappingProxyType

__all__ = [
    "ErrorCode",
    "MalformedErrorEnvelope",
    "TwirpError",
    "bad_route_error",
    "code_from_intermediary_status",
    "decode_error",
    "encode_error",
    "error_from_intermediary",
    "internal_error",
    "invalid_argument_error",
    "is_valid_error_code",
    "not_found_error",
    "required_argument_error",
    "status_for",
]


class ErrorCode(StrEnum):
    """Canonical Twirp error codes; the value is the wire string."""

    CANCELED = "canceled"
    """The operation was cancelled, typically by the caller."""

    UNKNOWN = "unknown"
    """Errors raised by APIs that do not return enough error information."""

    INVALID_ARGUMENT = "invalid_argument"
    """The client specified an argument that is invalid regardless of system state."""

    DEADLINE_EXCEEDED = "deadline_exceeded"
    """The operation expired before completion."""

    NOT_FOUND = "not_found"
    """Some requested entity was not found."""

    BAD_ROUTE = "bad_route"
    """The request could not be routed to a service method.

    Returned by the server dispatcher; applications should prefer
    ``not_found`` or ``unimplemented``.
    """

    ALREADY_EXISTS = "already_exists"
    """An attempt to create an entity failed because one already exists."""

    PERMISSION_DENIED = "permission_denied"
    """The caller is identified but not allowed to perform the operation."""

    UNAUTHENTICATED = "unauthenticated"
    """The request does not have valid authentication credentials."""

    RESOURCE_EXHAUSTED = "resource_exhausted"
    """Some resource (quota, disk space) has been exhausted."""

    FAILED_PRECONDITION = "failed_precondition"
    """The system is not in a state required for the operation."""

    ABORTED = "aborted"
    """The operation was aborted, typically due to a concurrency issue."""

    OUT_OF_RANGE = "out_of_range"
    """The operation was attempted past the valid range."""

    UNIMPLEMENTED = "unimplemented"
    """The operation is not implemented or not enabled in this service."""

    INTERNAL = "internal"
    """An invariant of the underlying system has been broken."""

    UNAVAILABLE = "unavailable"
    """The service is currently unavailable; usually transient."""

    DATA_LOSS = "data_loss"
    """Unrecoverable data loss or corruption."""


_HTTP_STATUS: MappingProxyType[ErrorCode, int] = MappingProxyType(
    {
        ErrorCode.CANCELED: HTTPStatus.REQUEST_TIMEOUT,
        ErrorCode.UNKNOWN: HTTPStatus.INTERNAL_SERVER_ERROR,
        ErrorCode.INVALID_ARGUMENT: HTTPStatus.BAD_REQUEST,
        ErrorCode.DEADLINE_EXCEEDED: HTTPStatus.REQUEST_TIMEOUT,
        ErrorCode.NOT_FOUND: HTTPStatus.NOT_FOUND,
        ErrorCode.BAD_ROUTE: HTTPStatus.NOT_FOUND,
        ErrorCode.ALREADY_EXISTS: HTTPStatus.CONFLICT,
        ErrorCode.PERMISSION_DENIED: HTTPStatus.FORBIDDEN,
        ErrorCode.UNAUTHENTICATED: HTTPStatus.UNAUTHORIZED,
        ErrorCode.RESOURCE_EXHAUSTED: HTTPStatus.FORBIDDEN,
        ErrorCode.FAILED_PRECONDITION: HTTPStatus.PRECONDITION_FAILED,
        ErrorCode.ABORTED: HTTPStatus.CONFLICT,
        ErrorCode.OUT_OF_RANGE: HTTPStatus.BAD_REQUEST,
        ErrorCode.UNIMPLEMENTED: HTTPStatus.NOT_IMPLEMENTED,
        ErrorCode.INTERNAL: HTTPStatus.INTERNAL_SERVER_ERROR,
        ErrorCode.UNAVAILABLE: HTTPStatus.SERVICE_UNAVAILABLE,
        ErrorCode.DATA_LOSS: HTTPStatus.INTERNAL_SERVER_ERROR,
    }
)


def status_for(code: ErrorCode | str) -> int:
    """Return the HTTP status a server responds with for *code*.

    Args:
        code: An ``ErrorCode`` or its wire string.

    Returns:
        The HTTP status code as a plain ``int``.

    Raises:
        ValueError: If *code* is not a canonical Twirp error code.

    """
    return int(_HTTP_STATUS[ErrorCode(code)])


def is_valid_error_code(code: str) -> bool:
    """Return ``True`` if *code* is one of the canonical wire strings."""
    try:
        status_for(code)
    except ValueError:
        return False
    return True


class TwirpError(Exception):
    """A classified failure: an error code plus a human-readable message.

    The HTTP status is derived from the code and never set independently.
    Two errors are equal when their code and message are equal, so an error
    survives an encode/decode round trip intact.
    """

    def __init__(self, code: ErrorCode | str, message: str) -> None:
        """Initialize with a code and message.

        Raises:
            ValueError: If *code* is not a canonical Twirp error code.

        """
        self.code = ErrorCode(code)
        self.message = message
        self.http_status = status_for(self.code)
        super().__init__(f"{self.code.value}: {message}")

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TwirpError):
            return NotImplemented
        return self.code == other.code and self.message == other.message

    def __hash__(self) -> int:
        return hash((self.code, self.message))

    def __reduce__(self) -> tuple[type[TwirpError], tuple[str, str]]:
        return (TwirpError, (self.code.value, self.message))

    def __repr__(self) -> str:
        return f"TwirpError(code={self.code.value!r}, message={self.message!r})"


class MalformedErrorEnvelope(ValueError):
    """Raised when bytes are not a valid Twirp JSON error envelope."""


def not_found_error(message: str) -> TwirpError:
    """Build a ``not_found`` error."""
    return TwirpError(ErrorCode.NOT_FOUND, message)


def invalid_argument_error(message: str) -> TwirpError:
    """Build an ``invalid_argument`` error (bad format, out-of-range number, bad option)."""
    return TwirpError(ErrorCode.INVALID_ARGUMENT, message)


def required_argument_error(argument: str) -> TwirpError:
    """Build an ``invalid_argument`` error for a missing required argument."""
    return TwirpError(ErrorCode.INVALID_ARGUMENT, f"{argument} is required")


def internal_error(message: str) -> TwirpError:
    """Build an ``internal`` error for something bad or unexpected."""
    return TwirpError(ErrorCode.INTERNAL, message)


def bad_route_error(message: str) -> TwirpError:
    """Build a ``bad_route`` error; used by the server dispatcher."""
    return TwirpError(ErrorCode.BAD_ROUTE, message)


def encode_error(error: TwirpError) -> bytes:
    """Serialize *error* as the two-field JSON envelope.

    Non-ASCII characters are written as ``\\u`` escapes, so any message
    (including lone surrogates) encodes and survives :func:`decode_error`.
    """
    envelope = {"code": error.code.value, "msg": error.message}
    return json.dumps(envelope, separators=(",", ":")).encode("ascii")


def decode_error(data: bytes) -> TwirpError:
    """Parse a JSON error envelope produced by :func:`encode_error`.

    Extra fields in the envelope (such as ``meta``) are ignored.

    Raises:
        MalformedErrorEnvelope: If *data* is not a JSON object with string
            ``code`` and ``msg`` fields, or ``code`` is not canonical.

    """
    try:
        envelope = json.loads(data)
    except (UnicodeDecodeError, ValueError) as exc:
        raise MalformedErrorEnvelope(f"malformed error envelope: {exc}") from exc
    if not isinstance(envelope, dict):
        raise MalformedErrorEnvelope(f"malformed error envelope: expected a JSON object, got {type(envelope).__name__}")
    code = envelope.get("code")
    msg = envelope.get("msg")
    if not isinstance(code, str) or not isinstance(msg, str):
        raise MalformedErrorEnvelope("malformed error envelope: 'code' and 'msg' must be strings")
    if not is_valid_error_code(code):
        raise MalformedErrorEnvelope(f"malformed error envelope: unknown error code {code!r}")
    return TwirpError(code, msg)


def code_from_intermediary_status(status: int) -> ErrorCode:
    """Classify an HTTP failure that did not come from a Twirp server.

    Proxies and gateways answer without an error envelope; the mapping
    follows the gRPC HTTP-to-status convention.
    """
    if 300 <= status <= 399:
        return ErrorCode.INTERNAL
    match status:
        case 400:
            return ErrorCode.INTERNAL
        case 401:
            return ErrorCode.UNAUTHENTICATED
        case 403:
            return ErrorCode.PERMISSION_DENIED
        case 404:
            return ErrorCode.BAD_ROUTE
        case 429 | 502 | 503 | 504:
            return ErrorCode.UNAVAILABLE
        case _:
            return ErrorCode.UNKNOWN


_BODY_PREVIEW_LEN = 200


def error_from_intermediary(status: int, body: bytes, location: str | None = None) -> TwirpError:
    """Build the client-side error for a non-Twirp HTTP failure.

    Args:
        status: The HTTP status of the response.
        body: The raw response body (only a preview is kept).
        location: The ``Location`` header of a redirect, if any.

    """
    try:
        reason = HTTPStatus(status).phrase
    except ValueError:
        reason = "Unknown Status"
    message = f'Error from intermediary with HTTP status code {status} "{reason}"'
    if 300 <= status <= 399 and location:
        message += f" (redirect to {location})"
    preview = body[:_BODY_PREVIEW_LEN].decode("utf-8", errors="replace")
    if preview:
        message += f": {preview}"
    return TwirpError(code_from_intermediary_status(status), message)
