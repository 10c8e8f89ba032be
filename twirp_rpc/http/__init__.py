"""HTTP transport for twirp-rpc using Falcon (server) and httpx (client).

Provides ``make_wsgi_app`` to expose a service implementation as a Falcon
WSGI application, and ``TwirpClient`` / ``twirp_connect`` to call it from
Python with ``httpx``.

HTTP Wire Protocol
------------------
Every method is one endpoint: ``POST {prefix}/{package.Service}/{Method}``
with ``Content-Type: application/protobuf`` or ``application/json``.  A
successful call answers 200 with the same content type; every failure
answers with ``Content-Type: application/json`` and the error envelope
``{"code": "...", "msg": "..."}``.
"""

from twirp_rpc.http._client import (
    AsyncTwirpClient,
    ClientConfig,
    TwirpClient,
    twirp_connect,
)
from twirp_rpc.http._common import REQUEST_ID_HEADER
from twirp_rpc.http._server import make_wsgi_app
from twirp_rpc.http._testing import (
    _SyncTestClient,
    _SyncTestResponse,
    make_sync_client,
)

__all__ = [
    "REQUEST_ID_HEADER",
    "AsyncTwirpClient",
    "ClientConfig",
    "TwirpClient",
    "_SyncTestClient",
    "_SyncTestResponse",
    "make_sync_client",
    "make_wsgi_app",
    "twirp_connect",
]
