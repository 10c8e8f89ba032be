"""Debug logging infrastructure for wire protocol diagnostics.

Provides logger instances under the ``twirp_rpc.wire.*`` hierarchy and
formatting helpers for request and response bodies.  Enabling
``logging.getLogger("twirp_rpc.wire").setLevel(logging.DEBUG)`` shows what
flows over the wire, which is the quickest way to debug interop with
Twirp implementations in other languages.

Formatting helpers return ``str`` and never log directly.  Call them inside
``isEnabledFor`` guards so disabled debug logging costs nothing.
"""

from __future__ import annotations

import logging

# ---------------------------------------------------------------------------
# Logger hierarchy: twirp_rpc.wire.*
# ---------------------------------------------------------------------------

wire_server_logger = logging.getLogger("twirp_rpc.wire.server")
"""Inbound requests and the responses framed for them."""

wire_http_logger = logging.getLogger("twirp_rpc.wire.http")
"""HTTP client requests / responses."""

# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------

_MAX_PREVIEW_LEN = 80
"""Maximum number of bytes shown by fmt_body."""


def fmt_body(body: bytes) -> str:
    """Format a request or response body compactly.

    Returns:
        ``"17 bytes b'{\\"inches\\":42}'"`` with long bodies truncated.

    """
    preview = body[:_MAX_PREVIEW_LEN]
    suffix = "..." if len(body) > _MAX_PREVIEW_LEN else ""
    return f"{len(body)} bytes {preview!r}{suffix}"
