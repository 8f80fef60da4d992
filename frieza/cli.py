"""Command line front end: ``frieza [options...] <url>``."""
from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Any, BinaryIO, Dict, List, Optional, Sequence

from .config import (
    DEFAULT_USER_AGENT,
    RunConfig,
    apply_overrides,
    build_headers,
    load_json_config,
    make_config,
    normalize_file_values,
    parse_duration,
)
from .work import Work

# Flags follow hey, so the two tools can be driven the same way.
USAGE = f"""Usage: frieza [options...] <url>
Options:
  -c  Number of websockets to open. Default is 50.
  -q  Rate limit, in connections started per second. Default is -c.
  -z  Duration of the run. When duration is reached, every websocket is
      closed and the report is printed. Default is 5m.
      Examples: -z 10s -z 3m -z 1h.
  -H  Custom HTTP header for the upgrade request. Repeat as needed,
      for example -H "Accept: text/html" -H "Origin: https://example.com".
  -k  Allow insecure connections when using TLS.
  -d  Data to send on each websocket after it connects.
  -D  Data to send on each websocket, read from file.
      For example, /home/user/file.txt or ./file.txt.
  -U  User-Agent, defaults to "{DEFAULT_USER_AGENT}".
  -t  Timeout for each dial, in seconds. Default is 20.
  -v  Verbose output.
  -vv Very verbose output, echoes every byte read to stdout.
  -resolve <host:port:addr[,addr]...> Use custom addrs instead of DNS for host.
  -config <file> JSON file with default values for any of the options above.
  -host, -h2 Accepted for compatibility and ignored; use -resolve to pick addresses.
"""


class UsageError(Exception):
    pass


class _Parser(argparse.ArgumentParser):
    def error(self, message: str) -> None:  # type: ignore[override]
        raise UsageError(message)


def build_arg_parser() -> argparse.ArgumentParser:
    parser = _Parser(prog="frieza", usage=USAGE, add_help=False, allow_abbrev=False)
    parser.add_argument("url", nargs="?", default=None)
    parser.add_argument("-c", type=int, default=None)
    parser.add_argument("-q", type=int, default=None)
    parser.add_argument("-z", type=parse_duration, default=None)
    parser.add_argument("-H", action="append", default=[])
    parser.add_argument("-k", action="store_true", default=None)
    parser.add_argument("-d", default=None)
    parser.add_argument("-D", type=Path, default=None)
    parser.add_argument("-U", default=None)
    parser.add_argument("-t", type=float, default=None)
    parser.add_argument("-v", action="store_true", default=None)
    parser.add_argument("-vv", action="store_true", default=None)
    parser.add_argument("-resolve", default=None)
    parser.add_argument("-config", type=Path, default=None)
    # accepted so hey-style command lines keep parsing; neither has an effect
    parser.add_argument("-host", default=None)
    parser.add_argument("-h2", action="store_true", default=False)
    parser.add_argument("-h", "-help", "--help", dest="help", action="store_true")
    return parser


def ignored_options(args: argparse.Namespace) -> List[str]:
    ignored = []
    if args.host is not None:
        ignored.append("-host")
    if args.h2:
        ignored.append("-h2")
    return ignored


def read_body(args: argparse.Namespace) -> Optional[bytes]:
    if args.D is not None:
        return args.D.read_bytes()
    if args.d is not None:
        return args.d.encode("utf-8")
    return None


def config_from_args(args: argparse.Namespace) -> RunConfig:
    base: Dict[str, Any] = {}
    if args.config is not None:
        base = normalize_file_values(load_json_config(args.config))
    overrides: Dict[str, Any] = {
        "url": args.url,
        "connections": args.c,
        "rate": args.q,
        "duration": args.z,
        "headers": build_headers(args.H) if args.H else None,
        "insecure": args.k,
        "body": read_body(args),
        "user_agent": args.U,
        "verbose": args.v,
        "very_verbose": args.vv,
        "resolve": args.resolve,
        "timeout": args.t,
    }
    return make_config(apply_overrides(base, overrides))


def usage_and_exit(msg: str) -> int:
    if msg:
        print(msg, file=sys.stderr, end="\n\n")
    print(USAGE, file=sys.stderr)
    return 1


def configure_logging(config: RunConfig) -> None:
    level = logging.WARNING
    if config.very_verbose:
        level = logging.DEBUG
    elif config.verbose:
        level = logging.INFO
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(message)s")
    # frame level tracing from the websockets library drowns out our own lines
    logging.getLogger("websockets").setLevel(max(level, logging.INFO))


async def async_main(config: RunConfig, echo: Optional[BinaryIO] = None) -> int:
    logging.info(
        "target %s: %d websockets, %d per %gs, duration %gs",
        config.url,
        config.connections,
        config.rate,
        config.ramp_interval,
        config.duration,
    )
    work = Work(config, echo=echo)
    return await work.run()


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_arg_parser()
    arg_list: List[str] = list(sys.argv[1:] if argv is None else argv)
    try:
        args = parser.parse_args(arg_list)
        if args.help:
            print(USAGE, file=sys.stderr)
            return 0
        config = config_from_args(args)
    except (UsageError, ValueError) as exc:
        return usage_and_exit(str(exc))
    except OSError as exc:
        return usage_and_exit(f"error: {exc}")

    configure_logging(config)
    for option in ignored_options(args):
        logging.warning("%s is not supported and has no effect", option)
    echo = sys.stdout.buffer if config.very_verbose else None
    try:
        asyncio.run(async_main(config, echo))
    except KeyboardInterrupt:
        return 130
    return 0


if __name__ == "__main__":
    sys.exit(main())
