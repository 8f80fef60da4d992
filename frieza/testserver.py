#!/usr/bin/env python3
"""Websocket test target for manual load runs.

Endpoints:
  /           - plain HTTP listing of the endpoints below
  /ws-echo    - echoes every message back
  /ws-pinger  - sends an incrementing counter line every ``delay`` (default 10s)
  /ws-push    - sends ``count`` messages of ``len`` bytes, ``delay`` apart,
                then waits for the client to close
"""
from __future__ import annotations

import argparse
import asyncio
import http
import logging
import ssl
import sys
from typing import Dict, List, Optional, Sequence
from urllib.parse import parse_qs, urlsplit

from websockets.asyncio.server import Server, ServerConnection, serve
from websockets.exceptions import ConnectionClosed
from websockets.http11 import Request, Response

from .config import parse_duration

INDEX_TEXT = """Endpoints on this server:
/ws-echo - a websocket connection which echoes messages back
/ws-pinger - a websocket connection which sends a counter line periodically - accepts query param: delay
/ws-push - a websocket connection which pushes data - accepts query params: len, count, delay
"""


def query_params(path: str) -> Dict[str, List[str]]:
    return parse_qs(urlsplit(path).query)


def duration_param(params: Dict[str, List[str]], name: str, default: float) -> float:
    values = params.get(name)
    if not values:
        return default
    try:
        return parse_duration(values[0])
    except ValueError as exc:
        logging.warning("couldn't parse query parameter %s=%s: %s", name, values[0], exc)
        return default


def int_param(params: Dict[str, List[str]], name: str, default: int) -> int:
    values = params.get(name)
    if not values:
        return default
    try:
        return int(values[0])
    except ValueError:
        logging.warning("couldn't parse query parameter %s=%s", name, values[0])
        return default


async def echo(ws: ServerConnection) -> None:
    async for message in ws:
        await ws.send(message)


async def pinger(ws: ServerConnection, delay: float) -> None:
    n = 0
    while True:
        try:
            message = await asyncio.wait_for(ws.recv(), timeout=1.0)
        except asyncio.TimeoutError:
            pass
        except ConnectionClosed:
            return
        else:
            logging.info("pinger read: %r", message)
        try:
            await asyncio.wait_for(ws.wait_closed(), timeout=delay)
            return
        except asyncio.TimeoutError:
            pass
        n += 1
        try:
            await ws.send(f"{n}\n")
        except ConnectionClosed as exc:
            logging.info("pinger write error: %s", exc)
            return


async def push(ws: ServerConnection, size: int, count: int, delay: float) -> None:
    payload = b"x" * max(0, size)
    try:
        for seq in range(count):
            if seq and delay > 0:
                await asyncio.sleep(delay)
            await ws.send(payload)
    except ConnectionClosed:
        return
    await ws.wait_closed()


ROUTES = {"/ws-echo", "/ws-pinger", "/ws-push"}


def route_request(connection: ServerConnection, request: Request) -> Optional[Response]:
    path = urlsplit(request.path).path
    if path in ROUTES:
        return None
    if path == "/":
        return connection.respond(http.HTTPStatus.OK, INDEX_TEXT)
    return connection.respond(http.HTTPStatus.NOT_FOUND, f"no such endpoint: {path}\n")


async def handle(ws: ServerConnection) -> None:
    path = urlsplit(ws.request.path).path
    params = query_params(ws.request.path)
    if path == "/ws-echo":
        await echo(ws)
    elif path == "/ws-pinger":
        await pinger(ws, duration_param(params, "delay", 10.0))
    elif path == "/ws-push":
        await push(
            ws,
            int_param(params, "len", 512),
            int_param(params, "count", 1),
            duration_param(params, "delay", 0.0),
        )


async def start_server(host: str = "127.0.0.1", port: int = 0, ssl_context: Optional[ssl.SSLContext] = None) -> Server:
    return await serve(
        handle,
        host,
        port,
        process_request=route_request,
        ssl=ssl_context,
        max_size=None,
    )


def server_ssl_context(certfile: str) -> ssl.SSLContext:
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    context.load_cert_chain(certfile)
    return context


async def serve_main(args: argparse.Namespace) -> None:
    context = server_ssl_context(args.certfile) if args.certfile else None
    server = await start_server(args.host, args.port, context)
    scheme = "wss" if context else "ws"
    for sock in server.sockets:
        host, port = sock.getsockname()[:2]
        logging.info("listening on %s://%s:%d", scheme, host, port)
    await server.serve_forever()


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Websocket test target for frieza")
    parser.add_argument("--host", default="0.0.0.0", help="listen address")
    parser.add_argument("--port", type=int, default=8080, help="listen port")
    parser.add_argument("--certfile", help="PEM holding key and certificate; enables wss://")
    parser.add_argument("--log-level", default="INFO", help="log level")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_arg_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(message)s",
    )
    try:
        asyncio.run(serve_main(args))
    except KeyboardInterrupt:
        return 130
    return 0


if __name__ == "__main__":
    sys.exit(main())
