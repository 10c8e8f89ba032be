# © Copyright 2025-2026, Query.Farm LLC - https://query.farm
# SPDX-License-Identifier: Apache-2.0

"""Content negotiation and JSON framing shared by server and client."""

from __future__ import annotations

import json
from enum import Enum
from typing import Any

__all__ = [
    "JSON_CONTENT_TYPE",
    "PROTOBUF_CONTENT_TYPE",
    "ContentType",
    "content_type_from_header",
    "dumps_compact",
]

PROTOBUF_CONTENT_TYPE = "application/protobuf"
JSON_CONTENT_TYPE = "application/json"


class ContentType(Enum):
    """Payload encoding negotiated from the ``Content-Type`` header.

    ``UNKNOWN`` is a routing failure, never a payload variant.
    """

    PROTOBUF = PROTOBUF_CONTENT_TYPE
    JSON = JSON_CONTENT_TYPE
    UNKNOWN = ""

    @property
    def mime(self) -> str:
        """The MIME type written on requests and responses."""
        return self.value


def content_type_from_header(header: str) -> ContentType:
    """Map a ``Content-Type`` header value to a :class:`ContentType`.

    Parameters such as ``; charset=utf-8`` are ignored and the media type
    is compared case-insensitively.
    """
    media_type = header.split(";", 1)[0].strip().lower()
    if media_type == PROTOBUF_CONTENT_TYPE:
        return ContentType.PROTOBUF
    if media_type == JSON_CONTENT_TYPE:
        return ContentType.JSON
    return ContentType.UNKNOWN


def dumps_compact(value: Any) -> bytes:
    """Serialize *value* as ASCII-escaped JSON without insignificant whitespace."""
    return json.dumps(value, separators=(",", ":")).encode("ascii")
