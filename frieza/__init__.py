"""frieza: open many websockets at once and count what they read."""
from __future__ import annotations

from .config import RunConfig
from .counter import Counter
from .errors import (
    ConfigError,
    DialError,
    FriezaError,
    HeaderParseError,
    OverrideResolutionError,
    ProtocolUpgradeError,
)
from .override import AddressOverride
from .work import Work

__version__ = "0.0.1"

__all__ = [
    "AddressOverride",
    "ConfigError",
    "Counter",
    "DialError",
    "FriezaError",
    "HeaderParseError",
    "OverrideResolutionError",
    "ProtocolUpgradeError",
    "RunConfig",
    "Work",
]
