"""Shared constants and request-id helpers for the HTTP transport layer."""

from __future__ import annotations

import uuid
from contextvars import ContextVar

REQUEST_ID_HEADER = "X-Request-ID"

_current_request_id: ContextVar[str] = ContextVar("twirp_rpc_request_id", default="")


def _generate_request_id() -> str:
    """Generate a 16-char hex request ID for correlation."""
    return uuid.uuid4().hex[:16]
