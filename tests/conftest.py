# © Copyright 2025-2026, Query.Farm LLC - https://query.farm
# SPDX-License-Identifier: Apache-2.0

"""Shared test fixtures for twirp-rpc tests."""

from __future__ import annotations

import time
from collections.abc import Iterator

import httpx
import pytest

from tests.haberdasher import HABERDASHER, HaberdasherImpl
from twirp_rpc.http import _SyncTestClient, make_sync_client

BASE_URL = "http://test"


def _wait_for_http(port: int, timeout: float = 5.0) -> None:
    """Poll until the HTTP server is accepting connections."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        try:
            _ = httpx.get(f"http://127.0.0.1:{port}/", timeout=5.0)
            return
        except (httpx.ConnectError, httpx.ConnectTimeout):
            time.sleep(0.1)
    raise TimeoutError(f"HTTP server on port {port} did not start within {timeout}s")


@pytest.fixture
def client() -> Iterator[_SyncTestClient]:
    """In-process Falcon test client serving the Haberdasher fixture."""
    c = make_sync_client(HABERDASHER, HaberdasherImpl())
    yield c
    c.close()
