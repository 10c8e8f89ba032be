# © Copyright 2025-2026, Query.Farm LLC - https://query.farm
# SPDX-License-Identifier: Apache-2.0

"""Twirp RPC-over-HTTP runtime: error model, server dispatcher and client transport."""

import logging

from twirp_rpc.casing import camelize_keys, snake_to_camel
from twirp_rpc.errors import (
    ErrorCode,
    MalformedErrorEnvelope,
    TwirpError,
    bad_route_error,
    code_from_intermediary_status,
    decode_error,
    encode_error,
    error_from_intermediary,
    internal_error,
    invalid_argument_error,
    is_valid_error_code,
    not_found_error,
    required_argument_error,
    status_for,
)
from twirp_rpc.http import (
    AsyncTwirpClient,
    ClientConfig,
    TwirpClient,
    make_sync_client,
    make_wsgi_app,
    twirp_connect,
)
from twirp_rpc.service import (
    DEFAULT_PREFIX,
    Handler,
    Method,
    PayloadCodec,
    ServiceDefinition,
    build_routes,
    make_handler,
)
from twirp_rpc.wire import JSON_CONTENT_TYPE, PROTOBUF_CONTENT_TYPE, ContentType

logging.getLogger("twirp_rpc").addHandler(logging.NullHandler())

__all__ = [
    "DEFAULT_PREFIX",
    "JSON_CONTENT_TYPE",
    "PROTOBUF_CONTENT_TYPE",
    "AsyncTwirpClient",
    "ClientConfig",
    "ContentType",
    "ErrorCode",
    "Handler",
    "MalformedErrorEnvelope",
    "Method",
    "PayloadCodec",
    "ServiceDefinition",
    "TwirpClient",
    "TwirpError",
    "bad_route_error",
    "build_routes",
    "camelize_keys",
    "code_from_intermediary_status",
    "decode_error",
    "encode_error",
    "error_from_intermediary",
    "internal_error",
    "invalid_argument_error",
    "is_valid_error_code",
    "make_handler",
    "make_sync_client",
    "make_wsgi_app",
    "not_found_error",
    "required_argument_error",
    "snake_to_camel",
    "status_for",
    "twirp_connect",
]
