"""Error types raised by the load driver."""
from __future__ import annotations

from typing import List, Optional, Tuple


class FriezaError(Exception):
    """Base class for all frieza errors."""


class ConfigError(FriezaError, ValueError):
    """Invalid run configuration; fatal before any connection is opened."""


class HeaderParseError(ConfigError):
    pass


class OverrideResolutionError(ConfigError):
    """The ``-resolve`` spec could not be parsed."""


class DialError(FriezaError):
    """A single websocket could not be opened.

    Never fatal to the run: the worker logs it and its slot contributes
    nothing to the report.
    """

    def __init__(self, index: int, message: str) -> None:
        super().__init__(message)
        self.index = index


class ProtocolUpgradeError(DialError):
    """The server answered the upgrade request with a non-101 response."""

    def __init__(
        self,
        index: int,
        message: str,
        status: int,
        reason: str = "",
        headers: Optional[List[Tuple[str, str]]] = None,
        body: bytes = b"",
    ) -> None:
        super().__init__(index, message)
        self.status = status
        self.reason = reason
        self.headers = headers or []
        self.body = body
