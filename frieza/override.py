"""Round-robin address override for a single hostname (``-resolve``).

Every TCP dial of the run goes through :meth:`AddressOverride.dial`.  Dials
to the configured host are spread over a fixed pool of addresses instead of
going through DNS; dials to any other host pass through unchanged.
"""
from __future__ import annotations

import asyncio
import itertools
import logging
import socket
from dataclasses import dataclass
from typing import Awaitable, Callable, Set, Tuple

from .errors import OverrideResolutionError

Connector = Callable[[str, int], Awaitable[socket.socket]]


@dataclass(frozen=True)
class ResolveSpec:
    host: str
    port: int
    addrs: Tuple[str, ...]


def _strip_brackets(host: str) -> str:
    if host.startswith("[") and host.endswith("]"):
        return host[1:-1]
    return host


def parse_resolve_spec(spec: str) -> ResolveSpec:
    """Parse ``host:port:addr[,addr...]``."""
    parts = spec.split(":", 2)
    if len(parts) != 3:
        raise OverrideResolutionError(f"resolve spec must be host:port:addr[,addr...], got: {spec}")
    host, port_text, addr_text = parts
    if not host:
        raise OverrideResolutionError(f"resolve spec missing host: {spec}")
    try:
        port = int(port_text)
    except ValueError as exc:
        raise OverrideResolutionError(f"invalid port in resolve spec: {spec}") from exc
    if not 0 < port < 65536:
        raise OverrideResolutionError(f"port out of range in resolve spec: {spec}")
    addrs = tuple(_strip_brackets(a.strip()) for a in addr_text.split(",") if a.strip())
    if not addrs:
        raise OverrideResolutionError(f"resolve spec has no addresses: {spec}")
    return ResolveSpec(host=host.lower(), port=port, addrs=addrs)


def split_host_port(address: str) -> Tuple[str, int]:
    if address.startswith("["):
        closing = address.find("]:")
        if closing == -1:
            raise ValueError(f"missing port in address: {address}")
        host, port_text = address[1:closing], address[closing + 2:]
    else:
        if address.count(":") != 1:
            raise ValueError(f"address must be host:port, got: {address}")
        host, port_text = address.split(":", 1)
    try:
        return host, int(port_text)
    except ValueError as exc:
        raise ValueError(f"invalid port in address: {address}") from exc


def join_host_port(host: str, port: int) -> str:
    if ":" in host:
        return f"[{host}]:{port}"
    return f"{host}:{port}"


async def open_socket(host: str, port: int) -> socket.socket:
    """Open a non-blocking TCP socket through the running event loop."""
    loop = asyncio.get_running_loop()
    infos = await loop.getaddrinfo(host, port, type=socket.SOCK_STREAM)
    if not infos:
        raise OSError(f"no addresses found for {host}")
    last_exc: OSError = OSError(f"could not connect to {join_host_port(host, port)}")
    for family, sock_type, proto, _, sockaddr in infos:
        sock = socket.socket(family, sock_type, proto)
        sock.setblocking(False)
        try:
            await loop.sock_connect(sock, sockaddr)
        except OSError as exc:
            sock.close()
            last_exc = exc
            continue
        except BaseException:
            sock.close()
            raise
        return sock
    raise last_exc


class AddressOverride:
    def __init__(self, host: str, addrs: Tuple[str, ...], connector: Connector = open_socket) -> None:
        if not addrs:
            raise OverrideResolutionError(f"no override addresses for {host}")
        self.host = host.lower()
        self.addrs = tuple(addrs)
        self.connector = connector
        # Diagnostic only: updated without coordination, may miss entries.
        self.seen: Set[str] = set()
        self._counter = itertools.count()
        self._selections = 0

    @classmethod
    def from_spec(cls, spec: ResolveSpec, connector: Connector = open_socket) -> "AddressOverride":
        return cls(spec.host, spec.addrs, connector=connector)

    @property
    def selections(self) -> int:
        return self._selections

    def next_index(self) -> int:
        index = next(self._counter)
        self._selections = index + 1
        return index

    def select(self) -> str:
        return self.addrs[self.next_index() % len(self.addrs)]

    async def dial(self, address: str) -> socket.socket:
        host, port = split_host_port(address)
        if host.lower() != self.host:
            sock = await self.connector(host, port)
            try:
                peer = sock.getpeername()
                raddr = join_host_port(peer[0], peer[1]) if isinstance(peer, tuple) else str(peer)
            except OSError:
                raddr = address
            if raddr not in self.seen:
                self.seen.add(raddr)
                logging.warning(
                    "NO override dial(%s) for %s host=%s !! dialed %s", address, self.host, host, raddr
                )
            return sock

        target = self.select()
        try:
            return await self.connector(target, port)
        except OSError as exc:
            logging.error("override dial error dialing %s: %s", join_host_port(target, port), exc)
            raise
