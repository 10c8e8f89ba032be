"""Testing a Twirp service without a running server.

``make_sync_client`` wraps a Falcon ``TestClient`` so you can exercise the
full HTTP stack (routing, content negotiation, error envelopes) in-process
with zero network I/O.

Run::

    python examples/testing_http.py
"""

from __future__ import annotations

import json

from google.protobuf import descriptor_pb2, descriptor_pool, message_factory

from twirp_rpc import (
    ErrorCode,
    Method,
    PayloadCodec,
    ServiceDefinition,
    TwirpError,
    make_sync_client,
    not_found_error,
    twirp_connect,
)
from twirp_rpc.protobuf import service_from_descriptor

# ---------------------------------------------------------------------------
# 1. A protobuf-backed service
# ---------------------------------------------------------------------------

_FIELD = descriptor_pb2.FieldDescriptorProto

_fdp = descriptor_pb2.FileDescriptorProto(name="greeter.proto", package="example.greeter", syntax="proto3")
_req = _fdp.message_type.add(name="GreetRequest")
_req.field.add(name="display_name", number=1, type=_FIELD.TYPE_STRING, label=_FIELD.LABEL_OPTIONAL)
_resp = _fdp.message_type.add(name="GreetResponse")
_resp.field.add(name="greeting_text", number=1, type=_FIELD.TYPE_STRING, label=_FIELD.LABEL_OPTIONAL)
_fdp.service.add(name="Greeter").method.add(
    name="Greet", input_type=".example.greeter.GreetRequest", output_type=".example.greeter.GreetResponse"
)
_pool = descriptor_pool.DescriptorPool()
_pool.AddSerializedFile(_fdp.SerializeToString())

GreetRequest = message_factory.GetMessageClass(_pool.FindMessageTypeByName("example.greeter.GreetRequest"))
GREETER = service_from_descriptor(_pool.FindServiceByName("example.greeter.Greeter"))


class GreeterImpl:
    """Concrete implementation of the Greeter service."""

    def greet(self, request: object) -> dict[str, str]:
        """Greet by name; nobody is not found."""
        name = getattr(request, "display_name", "")
        if not name:
            raise not_found_error("nobody to greet")
        return {"greeting_text": f"Hello, {name}!"}


# ---------------------------------------------------------------------------
# 2. A service with a custom codec (plain JSON-able dicts, no protobuf)
# ---------------------------------------------------------------------------


def _dict_codec() -> PayloadCodec:
    return PayloadCodec(
        encode_binary=lambda value: json.dumps(value).encode(),
        decode_binary=lambda data: json.loads(data or b"{}"),
        to_json=lambda value: value,
        from_json=lambda payload: payload,
    )


ECHO = ServiceDefinition("example.echo.Echo", (Method("Echo", _dict_codec(), _dict_codec()),))


def main() -> None:
    """Run the in-process testing examples."""
    # --- Protobuf service, both encodings -----------------------------------
    client = make_sync_client(GREETER, GreeterImpl())
    with twirp_connect(GREETER, client=client) as svc:
        resp = svc.greet(GreetRequest(display_name="World"))
        assert resp.greeting_text == "Hello, World!"
        print(f"greet('World') = {resp.greeting_text}")

    with twirp_connect(GREETER, client=client, json=True) as svc:
        try:
            svc.greet({})
        except TwirpError as e:
            assert e.code is ErrorCode.NOT_FOUND
            print(f"greet() [json] -> {e.code}: {e.message}")

    # --- Raw requests show the wire format ----------------------------------
    raw = client.post(
        "/twirp/example.greeter.Greeter/Greet",
        content=b'{"display_name": "wire"}',
        headers={"Content-Type": "application/json"},
    )
    print(f"raw json response = {raw.status_code} {raw.content.decode()}")

    # --- Mapping-based implementation with a custom codec -------------------
    echo_client = make_sync_client(ECHO, {"Echo": lambda payload: {"echo": payload}})
    with twirp_connect(ECHO, client=echo_client) as svc:
        result = svc.echo({"hello": "there"})
        assert result == {"echo": {"hello": "there"}}
        print(f"echo = {result}")

    print("All assertions passed!")


if __name__ == "__main__":
    main()
