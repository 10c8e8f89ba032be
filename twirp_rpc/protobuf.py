# © Copyright 2025-2026, Query.Farm LLC - https://query.farm
# SPDX-License-Identifier: Apache-2.0

"""Payload codecs for ``google.protobuf`` message classes.

Bridges protobuf-generated (or descriptor-built) message classes to the
runtime's :class:`~twirp_rpc.service.PayloadCodec` interface::

    from twirp_rpc.protobuf import service_from_descriptor

    service = service_from_descriptor(haberdasher_pb2.DESCRIPTOR.services_by_name["Haberdasher"])

JSON output uses the original proto field names (snake_case), which is the
Twirp JSON wire convention.  JSON input accepts either spelling.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any

from google.protobuf import json_format, message_factory
from google.protobuf.descriptor import ServiceDescriptor
from google.protobuf.message import DecodeError, Message

from twirp_rpc.errors import invalid_argument_error
from twirp_rpc.service import Method, PayloadCodec, ServiceDefinition

__all__ = ["message_codec", "protobuf_method", "service_from_descriptor"]


def _coerce(message_cls: type[Message], value: Any) -> Message:
    """Accept a message instance or a mapping of its fields."""
    if isinstance(value, message_cls):
        return value
    if isinstance(value, Mapping):
        try:
            return json_format.ParseDict(dict(value), message_cls(), ignore_unknown_fields=True)
        except json_format.ParseError as exc:
            raise TypeError(f"Cannot build {message_cls.DESCRIPTOR.full_name} from mapping: {exc}") from exc
    raise TypeError(f"Expected {message_cls.DESCRIPTOR.full_name} or a mapping, got {type(value).__name__}")


def message_codec(message_cls: type[Message]) -> PayloadCodec:
    """Build a :class:`PayloadCodec` for one protobuf message class."""
    full_name = message_cls.DESCRIPTOR.full_name

    def encode_binary(value: Any) -> bytes:
        return _coerce(message_cls, value).SerializeToString()

    def decode_binary(data: bytes) -> Message:
        msg = message_cls()
        try:
            msg.ParseFromString(data)
        except DecodeError as exc:
            raise invalid_argument_error(f"the protobuf request could not be decoded as {full_name}: {exc}") from exc
        return msg

    def to_json(value: Any) -> Any:
        return json_format.MessageToDict(_coerce(message_cls, value), preserving_proto_field_name=True)

    def from_json(payload: Any) -> Message:
        if not isinstance(payload, dict):
            raise invalid_argument_error(f"the json request for {full_name} must be an object")
        try:
            return json_format.ParseDict(payload, message_cls(), ignore_unknown_fields=True)
        except json_format.ParseError as exc:
            raise invalid_argument_error(f"the json request could not be decoded as {full_name}: {exc}") from exc

    return PayloadCodec(
        encode_binary=encode_binary,
        decode_binary=decode_binary,
        to_json=to_json,
        from_json=from_json,
    )


def protobuf_method(name: str, request_cls: type[Message], response_cls: type[Message]) -> Method:
    """Build a :class:`Method` whose payloads are protobuf messages."""
    return Method(name=name, request=message_codec(request_cls), response=message_codec(response_cls))


def service_from_descriptor(descriptor: ServiceDescriptor) -> ServiceDefinition:
    """Build a :class:`ServiceDefinition` from a protobuf service descriptor.

    Message classes are resolved with ``message_factory.GetMessageClass``,
    so descriptors loaded at runtime work as well as ``protoc`` output.
    """
    methods = tuple(
        protobuf_method(
            m.name,
            message_factory.GetMessageClass(m.input_type),
            message_factory.GetMessageClass(m.output_type),
        )
        for m in descriptor.methods
    )
    return ServiceDefinition(full_name=descriptor.full_name, methods=methods)
