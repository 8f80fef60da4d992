"""One websocket, end to end: dial, optional send, counted receive loop."""
from __future__ import annotations

import asyncio
import enum
import logging
from dataclasses import dataclass
from typing import Optional

from websockets.asyncio.client import ClientConnection
from websockets.exceptions import ConnectionClosed, ConnectionClosedOK

from .context import RunContext
from .counter import Counter
from .dialer import Dialer
from .errors import DialError, ProtocolUpgradeError


class WorkerState(enum.Enum):
    DIAL_FAILED = "dial_failed"
    ACTIVE = "active"
    CLOSED = "closed"


@dataclass
class WorkerResult:
    index: int
    state: WorkerState = WorkerState.ACTIVE
    reason: str = ""
    bytes_read: int = 0
    messages: int = 0


def log_dial_failure(index: int, exc: DialError) -> None:
    logging.error("fatal error dialing websocket %d: %s", index, exc)
    if isinstance(exc, ProtocolUpgradeError):
        logging.error("%d %s %s", exc.status, exc.reason, exc.headers)
        if exc.body:
            logging.error("%s", exc.body.decode("utf-8", errors="replace"))


class ConnectionWorker:
    def __init__(self, index: int, dialer: Dialer, context: RunContext, payload: Optional[bytes] = None) -> None:
        self.index = index
        self.dialer = dialer
        self.context = context
        self.payload = payload
        self.result = WorkerResult(index=index)
        self.counter: Optional[Counter] = None

    async def run(self) -> WorkerResult:
        result = self.result
        if self.context.stopping:
            return self._finish(WorkerState.CLOSED, "stopped")

        try:
            ws = await self.dial()
        except DialError as exc:
            log_dial_failure(self.index, exc)
            reason = "upgrade_error" if isinstance(exc, ProtocolUpgradeError) else "dial_error"
            return self._finish(WorkerState.DIAL_FAILED, reason)
        if ws is None:
            logging.debug("websocket %d dial abandoned by stop", self.index)
            return self._finish(WorkerState.CLOSED, "stopped")
        logging.info("websocket %d connected", self.index)

        if not self.context.connections.put(ws):
            # the run stopped while this dial was in flight
            logging.debug("websocket %d connected after stop, closing", self.index)
            await ws.close()
            return self._finish(WorkerState.CLOSED, "stopped")

        if self.payload:
            try:
                await ws.send(self.payload)
            except ConnectionClosed as exc:
                logging.warning("error writing to websocket %d: %s", self.index, exc)

        self.counter = Counter()
        self.context.counters.put(self.counter)
        result.reason = await self.receive(ws, self.counter)
        result.state = WorkerState.CLOSED
        return result

    async def dial(self) -> Optional[ClientConnection]:
        """Dial, or return None if the run stops before the dial completes."""
        dialing = asyncio.ensure_future(self.dialer.dial(self.index))
        stop_wait = asyncio.ensure_future(self.context.stop_requested.wait())
        try:
            await asyncio.wait({dialing, stop_wait}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            stop_wait.cancel()
            if not dialing.done():
                dialing.cancel()
                await asyncio.gather(dialing, return_exceptions=True)
        if dialing.cancelled():
            return None
        return dialing.result()

    async def receive(self, ws: ClientConnection, counter: Counter) -> str:
        """Read until close, read error or stop signal.

        The stop waiter races the in-flight read, so a stop cancels a read
        that is blocked waiting for data.
        """
        stop_wait = asyncio.ensure_future(self.context.stop_signals.get())
        reader = asyncio.ensure_future(self._read_loop(ws, counter, stop_wait))
        try:
            await asyncio.wait({reader, stop_wait}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (reader, stop_wait):
                if not task.done():
                    task.cancel()
            outcome = await asyncio.gather(reader, stop_wait, return_exceptions=True)
        self.result.bytes_read = counter.total
        reason = outcome[0]
        if isinstance(reason, str):
            return reason
        if isinstance(reason, asyncio.CancelledError):
            logging.debug("websocket %d read cancelled by stop", self.index)
            return "stopped"
        logging.error("websocket %d receive loop failed: %r", self.index, reason)
        return "read_error"

    async def _read_loop(self, ws: ClientConnection, counter: Counter, stop_wait: asyncio.Future) -> str:
        echo = self.context.echo
        while True:
            size = 0
            try:
                async for chunk in ws.recv_streaming(decode=False):
                    counter.write(chunk)
                    if echo is not None:
                        echo.write(chunk)
                    size += len(chunk)
            except ConnectionClosedOK:
                logging.info("websocket %d closed by remote", self.index)
                return "remote_close"
            except ConnectionClosed as exc:
                logging.info("error reading from websocket %d: %s", self.index, exc)
                return "read_error"
            self.result.messages += 1
            if echo is not None:
                echo.flush()
            logging.info("read %d bytes from websocket %d", size, self.index)
            if stop_wait.done():
                return "stopped"

    def _finish(self, state: WorkerState, reason: str) -> WorkerResult:
        self.result.state = state
        self.result.reason = reason
        return self.result
