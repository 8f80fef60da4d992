"""Dial configuration shared by every connection worker of a run."""
from __future__ import annotations

import asyncio
import socket
import ssl
from dataclasses import dataclass
from typing import Any, Dict, Optional

from websockets.asyncio.client import ClientConnection, connect
from websockets.datastructures import Headers
from websockets.exceptions import InvalidStatus
from websockets.uri import parse_uri

from .errors import DialError, ProtocolUpgradeError
from .override import AddressOverride, join_host_port

CLOSE_TIMEOUT = 5.0


def build_ssl_context(insecure: bool) -> ssl.SSLContext:
    context = ssl.create_default_context(ssl.Purpose.SERVER_AUTH)
    if insecure:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
    return context


@dataclass(frozen=True)
class Dialer:
    url: str
    headers: Headers
    user_agent: Optional[str] = None
    ssl_context: Optional[ssl.SSLContext] = None
    timeout: float = 20.0
    override: Optional[AddressOverride] = None

    def connect_kwargs(self, secure: bool) -> Dict[str, Any]:
        kwargs: Dict[str, Any] = {
            "additional_headers": self.headers,
            "open_timeout": self.timeout,
            "close_timeout": CLOSE_TIMEOUT,
            "ping_interval": None,
            "max_size": None,
        }
        if self.user_agent is not None:
            kwargs["user_agent_header"] = self.user_agent
        if secure:
            kwargs["ssl"] = self.ssl_context or build_ssl_context(False)
        return kwargs

    async def dial(self, index: int = 0) -> ClientConnection:
        try:
            return await asyncio.wait_for(self._dial(), timeout=self.timeout)
        except InvalidStatus as exc:
            response = exc.response
            raise ProtocolUpgradeError(
                index,
                str(exc),
                status=response.status_code,
                reason=response.reason_phrase,
                headers=list(response.headers.raw_items()),
                body=response.body or b"",
            ) from exc
        except asyncio.TimeoutError as exc:
            raise DialError(index, f"timed out after {self.timeout:g}s") from exc
        except (OSError, ValueError) as exc:
            raise DialError(index, str(exc) or exc.__class__.__name__) from exc
        except Exception as exc:  # pylint: disable=broad-except
            # websockets raises InvalidHandshake / InvalidURI subclasses here
            raise DialError(index, f"{exc.__class__.__name__}: {exc}") from exc

    async def _dial(self) -> ClientConnection:
        uri = parse_uri(self.url)
        kwargs = self.connect_kwargs(uri.secure)
        if self.override is None:
            return await connect(self.url, **kwargs)

        sock: socket.socket = await self.override.dial(join_host_port(uri.host, uri.port))
        try:
            return await connect(self.url, sock=sock, **kwargs)
        except BaseException:
            sock.close()
            raise
