"""Haberdasher server example using Falcon (WSGI) and waitress.

Requires the serve extra: ``pip install twirp-rpc[serve]``

Start the server::

    python examples/http_server.py

Then run the client in another terminal::

    python examples/http_client.py

or call it with curl::

    curl -X POST -H 'Content-Type: application/json' -d '{"inches": 12}' \\
        http://127.0.0.1:8234/twirp/twitch.twirp.example.Haberdasher/MakeHat
"""

from __future__ import annotations

import logging
import random
import socket
import sys
from typing import Any

import waitress
from google.protobuf import descriptor_pb2, descriptor_pool, message_factory

from twirp_rpc import invalid_argument_error, make_wsgi_app
from twirp_rpc.logging_utils import configure_json_logging
from twirp_rpc.protobuf import service_from_descriptor

PORT = 8234

# ---------------------------------------------------------------------------
# Service definition
# ---------------------------------------------------------------------------
# Normally this comes from protoc output (haberdasher_pb2.py).  Building the
# descriptor here keeps the example self-contained.


def _load_descriptors() -> descriptor_pool.DescriptorPool:
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
Hat: Any = message_factory.GetMessageClass(_pool.FindMessageTypeByName("twitch.twirp.example.Hat"))
HABERDASHER = service_from_descriptor(_pool.FindServiceByName("twitch.twirp.example.Haberdasher"))


class HaberdasherImpl:
    """Makes hats of any positive size."""

    def make_hat(self, size: Any) -> Any:
        """Make a hat of the requested size in a random color."""
        if size.inches <= 0:
            raise invalid_argument_error("inches must be positive")
        color = random.choice(["white", "black", "brown", "red", "blue"])
        name = random.choice(["bowler", "baseball cap", "top hat", "derby"])
        return Hat(size=size.inches, color=color, name=name)


# ---------------------------------------------------------------------------
# Main
# ---------------------------------------------------------------------------


def _find_free_port() -> int:
    """Find a free TCP port on localhost."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return int(s.getsockname()[1])


def main() -> None:
    """Start the HTTP server."""
    port = int(sys.argv[1]) if len(sys.argv) > 1 else PORT
    if port == 0:
        port = _find_free_port()

    configure_json_logging(logging.INFO)
    app = make_wsgi_app(HABERDASHER, HaberdasherImpl())

    print(f"Serving Haberdasher on http://127.0.0.1:{port}", flush=True)
    waitress.serve(app, host="127.0.0.1", port=port, _quiet=True)


if __name__ == "__main__":
    main()
