"""Run configuration and conversion helpers for command-line values."""
from __future__ import annotations

import json
import re
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Tuple

from .errors import ConfigError, HeaderParseError
from .override import parse_resolve_spec

HEADER_REGEXP = re.compile(r"^([\w-]+):\s*(.+)")
DEFAULT_USER_AGENT = "frieza/0.0.1"
DEFAULT_CONNECTIONS = 50
DEFAULT_DURATION = 5 * 60.0
DEFAULT_TIMEOUT = 20.0

_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}
_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")


@dataclass(frozen=True)
class RunConfig:
    url: str
    connections: int = DEFAULT_CONNECTIONS
    rate: int = 0
    duration: float = DEFAULT_DURATION
    headers: Tuple[Tuple[str, str], ...] = ()
    insecure: bool = False
    body: Optional[bytes] = None
    user_agent: str = DEFAULT_USER_AGENT
    verbose: bool = False
    very_verbose: bool = False
    resolve: str = ""
    timeout: float = DEFAULT_TIMEOUT
    ramp_interval: float = 1.0

    def __post_init__(self) -> None:
        if not self.url:
            raise ConfigError("missing target url")
        if self.rate == 0:
            object.__setattr__(self, "rate", self.connections)
        if self.connections < 1:
            raise ConfigError(f"connection count must be >= 1, got {self.connections}")
        if self.rate < 1:
            raise ConfigError(f"rate must be >= 1, got {self.rate}")
        if self.duration < 0:
            raise ConfigError(f"duration must not be negative, got {self.duration}")
        if self.timeout <= 0:
            raise ConfigError(f"timeout must be positive, got {self.timeout}")
        if self.very_verbose and not self.verbose:
            object.__setattr__(self, "verbose", True)
        if self.resolve:
            parse_resolve_spec(self.resolve)


def parse_header(raw: str) -> Tuple[str, str]:
    match = HEADER_REGEXP.match(raw)
    if match is None:
        raise HeaderParseError(f"could not parse the provided input; input = {raw}")
    return match.group(1), match.group(2).strip()


def build_headers(raw_headers: Iterable[str]) -> Tuple[Tuple[str, str], ...]:
    """Parse ``Name: value`` strings; a repeated name replaces the earlier value."""
    ordered: Dict[str, Tuple[str, str]] = {}
    for raw in raw_headers:
        name, value = parse_header(raw)
        key = name.lower()
        ordered.pop(key, None)
        ordered[key] = (name, value)
    return tuple(ordered.values())


def parse_duration(text: str) -> float:
    """Parse a Go style duration such as ``300ms``, ``5m`` or ``1h30m`` into seconds."""
    value = text.strip()
    if value in {"0", "+0", "-0"}:
        return 0.0
    sign = 1.0
    if value[:1] in {"+", "-"}:
        sign = -1.0 if value[0] == "-" else 1.0
        value = value[1:]
    if not value:
        raise ValueError(f"invalid duration {text!r}")
    total = 0.0
    pos = 0
    while pos < len(value):
        match = _DURATION_PART.match(value, pos)
        if match is None:
            raise ValueError(f"invalid duration {text!r}")
        total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
        pos = match.end()
    return sign * total


def load_json_config(path: Path) -> Dict[str, Any]:
    with path.open("r", encoding="utf-8") as fh:
        data = json.load(fh)
    if not isinstance(data, dict):
        raise ConfigError(f"config file {path} must hold a JSON object")
    known = {f.name for f in fields(RunConfig)}
    unknown = sorted(set(data) - known - {"body_file"})
    if unknown:
        raise ConfigError(f"unknown keys in config file {path}: {', '.join(unknown)}")
    return data


def normalize_file_values(data: Dict[str, Any]) -> Dict[str, Any]:
    """Convert JSON-friendly values into RunConfig field types."""
    values = dict(data)
    if "duration" in values and isinstance(values["duration"], str):
        values["duration"] = parse_duration(values["duration"])
    if "headers" in values:
        headers = values["headers"]
        if isinstance(headers, dict):
            headers = [f"{name}: {value}" for name, value in headers.items()]
        values["headers"] = build_headers(headers)
    body_file = values.pop("body_file", None)
    if body_file:
        values["body"] = Path(body_file).read_bytes()
    elif isinstance(values.get("body"), str):
        values["body"] = values["body"].encode("utf-8")
    return values


def apply_overrides(base: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in overrides.items():
        if value is not None:
            merged[key] = value
    return merged


def make_config(values: Dict[str, Any]) -> RunConfig:
    try:
        return RunConfig(**values)
    except TypeError as exc:
        raise ConfigError(str(exc)) from exc

