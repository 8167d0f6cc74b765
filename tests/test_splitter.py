import asyncio

import pytest

from scribe.pipelines.transcription.splitter import StreamSplitter, fork


class _Source:
    def __init__(self, items, *, error=None, hold=None):
        self.items = list(items)
        self.error = error
        self.hold = hold
        self.closed = False

    async def generate(self):
        try:
            for item in self.items:
                yield item
                await asyncio.sleep(0)
            if self.error is not None:
                raise self.error
            if self.hold is not None:
                await self.hold.wait()
        finally:
            self.closed = True


async def _drain(branch, delay=0.0):
    items = []
    async for item in branch:
        items.append(item)
        if delay:
            await asyncio.sleep(delay)
    return items


def test_both_branches_see_every_fragment_in_order():
    async def scenario():
        source = _Source(["a", "b", "c", "d"])
        fast, slow = fork(source.generate())
        return await asyncio.gather(_drain(fast), _drain(slow, delay=0.01)), source

    (fast_items, slow_items), source = asyncio.run(scenario())

    assert fast_items == ["a", "b", "c", "d"]
    assert slow_items == ["a", "b", "c", "d"]
    assert source.closed


def test_fast_reader_is_not_held_back_by_idle_reader():
    async def scenario():
        source = _Source(["a", "b", "c"])
        reader, idle = fork(source.generate())
        items = await asyncio.wait_for(_drain(reader), timeout=1)
        late = await _drain(idle)
        return items, late

    items, late = asyncio.run(scenario())

    assert items == ["a", "b", "c"]
    assert late == ["a", "b", "c"]


def test_cancelling_one_branch_leaves_the_other_running():
    async def scenario():
        source = _Source(["a", "b", "c"])
        first, second = fork(source.generate())
        assert await first.__anext__() == "a"
        first.cancel()
        remaining = await _drain(second)
        return first, remaining, source

    first, remaining, source = asyncio.run(scenario())

    assert first.closed
    assert remaining == ["a", "b", "c"]
    assert source.closed


def test_cancelling_all_branches_closes_the_source():
    async def scenario():
        hold = asyncio.Event()
        source = _Source(["a"], hold=hold)
        first, second = fork(source.generate())
        assert await first.__anext__() == "a"
        first.cancel()
        second.cancel()
        for _ in range(50):
            if source.closed:
                break
            await asyncio.sleep(0.01)
        with pytest.raises(StopAsyncIteration):
            await first.__anext__()
        return source

    assert asyncio.run(scenario()).closed


def test_error_is_delivered_after_buffered_fragments():
    async def scenario():
        source = _Source(["a", "b"], error=RuntimeError("boom"))
        first, second = fork(source.generate())
        seen = []
        with pytest.raises(RuntimeError, match="boom"):
            async for item in first:
                seen.append(item)
        with pytest.raises(RuntimeError, match="boom"):
            await _drain(second)
        return seen

    assert asyncio.run(scenario()) == ["a", "b"]


def test_splitter_requires_a_branch():
    async def empty():
        if False:
            yield None

    with pytest.raises(ValueError):
        StreamSplitter(empty(), branches=0)
