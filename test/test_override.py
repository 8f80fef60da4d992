import asyncio
import logging
import socket

import pytest

from frieza.errors import OverrideResolutionError
from frieza.override import (
    AddressOverride,
    join_host_port,
    open_socket,
    parse_resolve_spec,
    split_host_port,
)


class RecordingConnector:
    def __init__(self, fail=False):
        self.calls = []
        self.fail = fail

    async def __call__(self, host, port):
        self.calls.append((host, port))
        await asyncio.sleep(0)
        if self.fail:
            raise ConnectionRefusedError(f"refused {host}:{port}")
        return object()


def test_parse_resolve_spec():
    spec = parse_resolve_spec("example.com:443:10.0.0.1,10.0.0.2")
    assert spec.host == "example.com"
    assert spec.port == 443
    assert spec.addrs == ("10.0.0.1", "10.0.0.2")


def test_parse_resolve_spec_accepts_bracketed_ipv6():
    spec = parse_resolve_spec("example.com:80:[::1],10.0.0.3")
    assert spec.addrs == ("::1", "10.0.0.3")


def test_parse_resolve_spec_folds_host_case():
    assert parse_resolve_spec("Example.COM:443:10.0.0.1").host == "example.com"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "configured, dialed",
    [("Example.COM", "example.com:80"), ("example.com", "EXAMPLE.com:80"), ("Example.com", "eXample.COM:80")],
)
async def test_host_match_ignores_case(configured, dialed):
    connector = RecordingConnector()
    override = AddressOverride(configured, ("10.0.0.1",), connector=connector)

    await override.dial(dialed)

    assert connector.calls == [("10.0.0.1", 80)]
    assert override.selections == 1


@pytest.mark.parametrize(
    "raw",
    [
        "example.com",
        "example.com:443",
        ":443:10.0.0.1",
        "example.com:https:10.0.0.1",
        "example.com:0:10.0.0.1",
        "example.com:443:",
        "example.com:443:,,",
    ],
)
def test_parse_resolve_spec_rejects(raw):
    with pytest.raises(OverrideResolutionError):
        parse_resolve_spec(raw)


def test_split_and_join_host_port():
    assert split_host_port("example.com:443") == ("example.com", 443)
    assert split_host_port("[::1]:8080") == ("::1", 8080)
    assert join_host_port("::1", 8080) == "[::1]:8080"
    assert join_host_port("10.0.0.1", 80) == "10.0.0.1:80"
    with pytest.raises(ValueError):
        split_host_port("example.com")


@pytest.mark.asyncio
async def test_matching_host_round_robin():
    connector = RecordingConnector()
    override = AddressOverride("example.com", ("10.0.0.1", "10.0.0.2", "10.0.0.3"), connector=connector)

    for _ in range(7):
        await override.dial("example.com:443")

    assert [host for host, _ in connector.calls] == [
        "10.0.0.1", "10.0.0.2", "10.0.0.3",
        "10.0.0.1", "10.0.0.2", "10.0.0.3",
        "10.0.0.1",
    ]
    assert {port for _, port in connector.calls} == {443}
    assert override.selections == 7


@pytest.mark.asyncio
async def test_round_robin_holds_for_concurrent_callers():
    connector = RecordingConnector()
    override = AddressOverride("example.com", ("a", "b"), connector=connector)

    await asyncio.gather(*(override.dial("example.com:80") for _ in range(10)))

    assert [host for host, _ in connector.calls] == ["a", "b"] * 5
    assert override.selections == 10


@pytest.mark.asyncio
async def test_matching_host_error_is_logged_and_propagated(caplog):
    override = AddressOverride("example.com", ("10.0.0.9",), connector=RecordingConnector(fail=True))

    with pytest.raises(ConnectionRefusedError):
        await override.dial("example.com:443")

    assert "override dial error dialing 10.0.0.9:443" in caplog.text
    assert override.selections == 1


@pytest.mark.asyncio
async def test_other_host_passes_through_unchanged(caplog):
    listener = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    listener.bind(("127.0.0.1", 0))
    listener.listen(8)
    port = listener.getsockname()[1]
    override = AddressOverride("example.com", ("10.0.0.1",), connector=open_socket)
    sockets = []
    try:
        with caplog.at_level(logging.WARNING):
            for _ in range(2):
                sockets.append(await override.dial(f"127.0.0.1:{port}"))
        assert override.selections == 0
        assert sockets[0].getpeername()[1] == port
        # the diagnostic is best-effort; one line per newly seen peer
        assert f"127.0.0.1:{port}" in override.seen
        assert caplog.text.count("NO override dial") == 1
    finally:
        for sock in sockets:
            sock.close()
        listener.close()


@pytest.mark.asyncio
async def test_open_socket_refused():
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as unused:
        unused.bind(("127.0.0.1", 0))
        port = unused.getsockname()[1]
    with pytest.raises(OSError):
        await open_socket("127.0.0.1", port)
