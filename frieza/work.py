"""Run controller: ramp-up, stop fan-out, and the final byte report."""
from __future__ import annotations

import asyncio
import logging
import signal
import sys
import time
from typing import BinaryIO, List, Optional, TextIO

from websockets.datastructures import Headers

from .config import RunConfig
from .context import RunContext
from .dialer import Dialer, build_ssl_context
from .override import AddressOverride, Connector, open_socket, parse_resolve_spec
from .worker import ConnectionWorker, WorkerResult, WorkerState


class Work:
    def __init__(
        self,
        config: RunConfig,
        connector: Optional[Connector] = None,
        echo: Optional[BinaryIO] = None,
    ) -> None:
        self.config = config
        self.connector = connector or open_socket
        self.context = RunContext(config.connections, echo=echo)
        self.dialer: Optional[Dialer] = None
        self.override: Optional[AddressOverride] = None
        self.results: List[WorkerResult] = []
        self.started: Optional[float] = None
        self.stopped: Optional[float] = None
        self._start_called = False
        self._stop_called = False
        self._stop_done = asyncio.Event()
        self._stop_tasks: List[asyncio.Task] = []

    def build_dialer(self) -> Dialer:
        cfg = self.config
        headers = Headers()
        for name, value in cfg.headers:
            headers[name] = value
        if cfg.resolve:
            self.override = AddressOverride.from_spec(parse_resolve_spec(cfg.resolve), connector=self.connector)
        return Dialer(
            url=cfg.url,
            headers=headers,
            user_agent=cfg.user_agent,
            ssl_context=build_ssl_context(cfg.insecure),
            timeout=cfg.timeout,
            override=self.override,
        )

    async def start(self) -> None:
        if self._start_called:
            raise RuntimeError("Work.start() may only be called once per run")
        self._start_called = True
        cfg = self.config
        self.dialer = self.build_dialer()
        self.started = time.monotonic()

        tasks: List[asyncio.Task] = []
        for index in range(cfg.connections):
            # naive connections-per-interval ceiling; dial latency is ignored
            if index > 0 and index % cfg.rate == 0 and not self.context.stopping:
                logging.info("%d workers started", index)
                await self._pause()
            tasks.append(asyncio.ensure_future(self._run_worker(index)))
        logging.info("%d workers started", cfg.connections)

        self.results = list(await asyncio.gather(*tasks))
        self.stopped = time.monotonic()

    async def _pause(self) -> None:
        await asyncio.sleep(self.config.ramp_interval)

    async def _run_worker(self, index: int) -> WorkerResult:
        assert self.dialer is not None
        worker = ConnectionWorker(index, self.dialer, self.context, payload=self.config.body)
        return await worker.run()

    async def stop(self) -> None:
        if self._stop_called:
            return
        self._stop_called = True
        try:
            logging.info("stopping")
            ctx = self.context
            ctx.broadcast_stop()
            ctx.close()
            sockets = ctx.connections.drain_nowait()
            if sockets:
                await asyncio.gather(*(self._send_close(i, ws) for i, ws in enumerate(sockets)))
            logging.info("stopped")
        finally:
            self._stop_done.set()

    async def _send_close(self, position: int, ws) -> None:
        try:
            await ws.close(code=1000)
        except Exception as exc:  # pylint: disable=broad-except
            logging.warning("write close (%d): %s", position, exc)

    def request_stop(self) -> None:
        """Schedule the stop path; safe to call from timers and signal handlers.

        The scheduled tasks are awaited by :meth:`run` before it returns.
        """
        self._stop_tasks.append(asyncio.ensure_future(self.stop()))

    async def print_report(self, out: Optional[TextIO] = None) -> int:
        total = 0
        counters = 0
        async for counter in self.context.counters.drain():
            total += counter.total
            counters += 1
        self._log_summary(total, counters)
        print(total, "bytes read from", self.config.connections, "websockets", file=out or sys.stdout)
        return total

    def _log_summary(self, total: int, counters: int) -> None:
        failed = sum(1 for r in self.results if r.state is WorkerState.DIAL_FAILED)
        end = self.stopped if self.stopped is not None else time.monotonic()
        elapsed = end - self.started if self.started is not None else 0.0
        rate = total / elapsed if elapsed > 0 else 0.0
        logging.info(
            "websockets: configured=%d counted=%d dial_failed=%d elapsed=%.2fs throughput=%.1f bytes/s",
            self.config.connections,
            counters,
            failed,
            elapsed,
            rate,
        )

    async def run(self) -> int:
        """Start the workers, stop on timer or SIGINT, print the report."""
        loop = asyncio.get_running_loop()
        handles_sigint = False
        try:
            loop.add_signal_handler(signal.SIGINT, self.request_stop)
            handles_sigint = True
        except (NotImplementedError, RuntimeError):
            logging.debug("SIGINT handler unavailable on this platform")
        timer = loop.call_later(self.config.duration, self.request_stop)
        try:
            await self.start()
            total = await self.print_report()
            await self._stop_done.wait()
            return total
        finally:
            timer.cancel()
            if handles_sigint:
                loop.remove_signal_handler(signal.SIGINT)
            await self._join_stop_tasks()

    async def _join_stop_tasks(self) -> None:
        for outcome in await asyncio.gather(*self._stop_tasks, return_exceptions=True):
            if isinstance(outcome, Exception):
                logging.error("stop failed: %r", outcome)
