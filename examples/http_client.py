"""HTTP client that connects to the Haberdasher example server.

Start the server first::

    python examples/http_server.py

Then run this client::

    python examples/http_client.py
"""

from __future__ import annotations

import sys
from typing import Any

from google.protobuf import descriptor_pb2, descriptor_pool, message_factory

from twirp_rpc import TwirpError, twirp_connect
from twirp_rpc.protobuf import service_from_descriptor

PORT = 8234


def _load_descriptors() -> descriptor_pool.DescriptorPool:
    """Build the Haberdasher descriptors.

    Duplicated from http_server.py so each file is self-contained.  In a
    real project both sides import the protoc-generated module.
    """
    field = descriptor_pb2.FieldDescriptorProto
    fdp = descriptor_pb2.FileDescriptorProto(
        name="haberdasher.proto", package="twitch.twirp.example", syntax="proto3"
    )
    size = fdp.message_type.add(name="Size")
    size.field.add(name="inches", number=1, type=field.TYPE_INT32, label=field.LABEL_OPTIONAL)
    hat = fdp.message_type.add(name="Hat")
    hat.field.add(name="size", number=1, type=field.TYPE_INT32, label=field.LABEL_OPTIONAL)
    hat.field.add(name="color", number=2, type=field.TYPE_STRING, label=field.LABEL_OPTIONAL)
    hat.field.add(name="name", number=3, type=field.TYPE_STRING, label=field.LABEL_OPTIONAL)
    svc = fdp.service.add(name="Haberdasher")
    svc.method.add(name="MakeHat", input_type=".twitch.twirp.example.Size", output_type=".twitch.twirp.example.Hat")
    pool = descriptor_pool.DescriptorPool()
    pool.AddSerializedFile(fdp.SerializeToString())
    return pool


_pool = _load_descriptors()
Size: Any = message_factory.GetMessageClass(_pool.FindMessageTypeByName("twitch.twirp.example.Size"))
HABERDASHER = service_from_descriptor(_pool.FindServiceByName("twitch.twirp.example.Haberdasher"))


def main(url: str | None = None) -> None:
    """Connect to the HTTP server and make calls in both encodings."""
    url = url or f"http://127.0.0.1:{PORT}"

    # Protobuf encoding
    with twirp_connect(HABERDASHER, url) as svc:
        hat = svc.make_hat(Size(inches=12))
        print(f"protobuf: size={hat.size} color={hat.color} name={hat.name}")

    # JSON encoding; requests may also be plain mappings
    with twirp_connect(HABERDASHER, url, json=True) as svc:
        hat = svc.make_hat({"inches": 7})
        print(f"json: size={hat.size} color={hat.color} name={hat.name}")

        try:
            svc.make_hat(Size(inches=-1))
        except TwirpError as e:
            print(f"error: {e.code} {e.message}")


if __name__ == "__main__":
    main(sys.argv[1] if len(sys.argv) > 1 else None)
