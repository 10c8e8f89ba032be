# © Copyright 2025-2026, Query.Farm LLC - https://query.farm
# SPDX-License-Identifier: Apache-2.0

"""JSON formatter for structured logging output.

Provides :class:`TwirpJsonFormatter`, a :class:`logging.Formatter` subclass
that serializes log records as single-line JSON objects.  The dispatcher's
access and error records carry their fields (``service``, ``method``,
``http_status``, ``error_code``, ``request_id`` ...) via ``extra``; all such
fields are emitted automatically.

This module is **not** auto-imported by ``twirp_rpc``; import it explicitly::

    from twirp_rpc.logging_utils import configure_json_logging

    configure_json_logging()
"""

from __future__ import annotations

import json
import logging

__all__ = ["TwirpJsonFormatter", "configure_json_logging"]

# Attribute names every LogRecord has by default.  Anything else was
# injected via ``extra``.
_DEFAULT_RECORD_ATTRS: frozenset[str] = frozenset(logging.LogRecord("", 0, "", 0, "", (), None).__dict__.keys()) | {
    "message",
    "asctime",
}

_RESERVED_KEYS: frozenset[str] = frozenset({"timestamp", "level", "logger", "message", "exception", "stack_info"})

# Correlation fields, emitted ahead of other extras.
_LEADING_KEYS: tuple[str, ...] = ("request_id", "service", "method")


def _extra_fields(record: logging.LogRecord) -> dict[str, object]:
    extra = {
        k: v for k, v in record.__dict__.items() if k not in _DEFAULT_RECORD_ATTRS and k not in _RESERVED_KEYS
    }
    leading = {k: extra.pop(k) for k in _LEADING_KEYS if k in extra}
    return {**leading, **extra}


class TwirpJsonFormatter(logging.Formatter):
    """JSON formatter that emits all structured extra fields.

    Standard fields (``timestamp``, ``level``, ``logger``, ``message``) are
    always present and cannot be overwritten by extra fields with the same
    name.  Exception information goes under ``"exception"``.  Values that
    are not JSON serializable are coerced with ``str``.
    """

    def format(self, record: logging.LogRecord) -> str:
        """Format a log record as a single-line JSON string."""
        record.message = record.getMessage()
        obj: dict[str, object] = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.message,
        }
        obj.update(_extra_fields(record))
        if record.exc_info and record.exc_info[1]:
            obj["exception"] = self.formatException(record.exc_info)
        if record.stack_info:
            obj["stack_info"] = self.formatStack(record.stack_info)
        return json.dumps(obj, default=str)


def configure_json_logging(level: int = logging.INFO, logger_name: str = "twirp_rpc") -> logging.Handler:
    """Attach a stderr handler using :class:`TwirpJsonFormatter` to *logger_name*.

    Returns:
        The handler that was added, so callers can remove it again.

    """
    handler = logging.StreamHandler()
    handler.setFormatter(TwirpJsonFormatter())
    logger = logging.getLogger(logger_name)
    logger.addHandler(handler)
    logger.setLevel(level)
    return handler
