import asyncio

import pytest

from frieza.context import HandoffQueue, RunContext


@pytest.mark.asyncio
async def test_handoff_queue_refuses_after_close():
    queue = HandoffQueue(2)
    assert queue.put("a")
    queue.close()
    assert queue.closed
    assert not queue.put("b")
    assert [item async for item in queue.drain()] == ["a"]


@pytest.mark.asyncio
async def test_handoff_queue_drain_waits_for_close():
    queue = HandoffQueue(3)
    queue.put(1)
    queue.put(2)

    async def collect():
        return [item async for item in queue.drain()]

    task = asyncio.ensure_future(collect())
    await asyncio.sleep(0.01)
    assert not task.done()
    queue.put(3)
    queue.close()
    assert await asyncio.wait_for(task, 1) == [1, 2, 3]


def test_handoff_queue_capacity():
    queue = HandoffQueue(1)
    queue.put("x")
    with pytest.raises(asyncio.QueueFull):
        queue.put("y")
    with pytest.raises(ValueError):
        HandoffQueue(0)


@pytest.mark.asyncio
async def test_run_context_broadcast_stop():
    ctx = RunContext(4)
    assert ctx.broadcast_stop() == 4
    assert ctx.stopping
    assert ctx.stop_requested.is_set()
    assert ctx.signals_sent == 4
    assert ctx.stop_signals.qsize() == 4
    # nobody consumed them; the queue capacity absorbs every signal
    assert ctx.stop_signals.full()


@pytest.mark.asyncio
async def test_independent_run_contexts():
    first, second = RunContext(2), RunContext(2)
    first.broadcast_stop()
    first.close()
    assert not second.stopping
    assert second.connections.put("ws")
    assert not first.connections.put("ws")
