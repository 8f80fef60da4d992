"""Shared fixtures: local websocket targets on ephemeral ports."""
from __future__ import annotations

import asyncio
import socket
import threading
from typing import Iterator

import pytest
import pytest_asyncio
from websockets.sync.server import serve as sync_serve

from frieza.testserver import start_server


@pytest_asyncio.fixture
async def target():
    """Base ``ws://`` URL of a running frieza test server."""
    server = await start_server("127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    try:
        yield f"ws://127.0.0.1:{port}"
    finally:
        server.close()
        await server.wait_closed()


@pytest_asyncio.fixture
async def silent_url():
    """A ``ws://`` URL whose server accepts TCP but never answers the upgrade."""

    async def hold(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        try:
            await reader.read()
        finally:
            writer.close()

    server = await asyncio.start_server(hold, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    try:
        yield f"ws://127.0.0.1:{port}/"
    finally:
        server.close()
        await server.wait_closed()


@pytest.fixture
def refused_url() -> str:
    """A ``ws://`` URL on a local port nobody listens on."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        port = sock.getsockname()[1]
    return f"ws://127.0.0.1:{port}/ws-echo"


@pytest.fixture
def threaded_push_target() -> Iterator[str]:
    """Target served from its own thread, for tests that drive ``asyncio.run``."""

    def handler(ws) -> None:
        ws.send(b"x" * 100)
        for _ in ws:
            pass

    server = sync_serve(handler, "127.0.0.1", 0)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    port = server.socket.getsockname()[1]
    try:
        yield f"ws://127.0.0.1:{port}/"
    finally:
        server.shutdown()
        thread.join(timeout=5)
