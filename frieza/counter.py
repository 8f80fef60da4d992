from __future__ import annotations


class Counter:
    """Accumulates the number of bytes read from one websocket.

    Written only by the worker that owns it; the controller reads ``total``
    once the counter has been handed over through the run context.
    """

    __slots__ = ("total",)

    def __init__(self) -> None:
        self.total = 0

    def write(self, data: bytes) -> int:
        size = len(data)
        self.total += size
        return size

    def __repr__(self) -> str:
        return f"Counter(total={self.total})"
