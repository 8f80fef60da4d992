"""Per-run shared state handed to every connection worker."""
from __future__ import annotations

import asyncio
from collections import deque
from typing import AsyncIterator, BinaryIO, Deque, Generic, List, Optional, TypeVar

T = TypeVar("T")


class HandoffQueue(Generic[T]):
    """Bounded hand-off from many worker tasks to the controller.

    Producers never block: the capacity equals the number of connection
    slots, and each slot publishes at most one item.  Once closed, ``put``
    refuses new items and ``drain`` yields whatever is still buffered.
    """

    def __init__(self, capacity: int) -> None:
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self.capacity = capacity
        self._items: Deque[T] = deque()
        self._closed = asyncio.Event()

    def __len__(self) -> int:
        return len(self._items)

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def put(self, item: T) -> bool:
        if self.closed:
            return False
        if len(self._items) >= self.capacity:
            raise asyncio.QueueFull(f"hand-off queue full ({self.capacity} items)")
        self._items.append(item)
        return True

    def close(self) -> None:
        self._closed.set()

    def drain_nowait(self) -> List[T]:
        items = list(self._items)
        self._items.clear()
        return items

    async def wait_closed(self) -> None:
        await self._closed.wait()

    async def drain(self) -> AsyncIterator[T]:
        await self._closed.wait()
        while self._items:
            yield self._items.popleft()


class RunContext:
    """Queues and signals of one load run.

    A fresh context is created for every run, so independent runs can share
    a process (and an event loop) without touching each other.
    """

    def __init__(self, slots: int, echo: Optional[BinaryIO] = None) -> None:
        self.slots = slots
        self.connections: HandoffQueue = HandoffQueue(slots)
        self.counters: HandoffQueue = HandoffQueue(slots)
        self.stop_signals: asyncio.Queue = asyncio.Queue(maxsize=slots)
        self.signals_sent = 0
        # set alongside the signals; dials in flight wait on it
        self.stop_requested = asyncio.Event()
        self.echo = echo

    @property
    def stopping(self) -> bool:
        return self.stop_requested.is_set()

    def broadcast_stop(self) -> int:
        """Queue one stop signal per slot and return how many were sent."""
        self.stop_requested.set()
        sent = 0
        for _ in range(self.slots):
            self.stop_signals.put_nowait(None)
            sent += 1
        self.signals_sent += sent
        return sent

    def close(self) -> None:
        self.connections.close()
        self.counters.close()
