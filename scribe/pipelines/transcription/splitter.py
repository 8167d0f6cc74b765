"""Fork one async fragment stream into independent branches.

A single pump task reads the source and offers every fragment to each open
branch before reading the next one. Branches buffer without bound, so a slow
or abandoned reader never stalls the other, and both observe the same order.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import AsyncIterator, Deque, Generic, Optional, TypeVar, Union

logger = logging.getLogger("scribe.pipeline")

T = TypeVar("T")

_END = object()


class _Failure:
    __slots__ = ("error",)

    def __init__(self, error: BaseException) -> None:
        self.error = error


class StreamBranch(Generic[T]):
    """One reader's view of a forked stream."""

    def __init__(self, splitter: "StreamSplitter[T]") -> None:
        self._splitter = splitter
        self._buffer: Deque[Union[T, object]] = deque()
        self._ready = asyncio.Event()
        self._closed = False
        self._done = False

    @property
    def closed(self) -> bool:
        return self._closed

    def __aiter__(self) -> "StreamBranch[T]":
        return self

    async def __anext__(self) -> T:
        if self._closed or self._done:
            raise StopAsyncIteration
        self._splitter._ensure_started()
        while not self._buffer:
            self._ready.clear()
            await self._ready.wait()
            if self._closed:
                raise StopAsyncIteration
        item = self._buffer.popleft()
        if item is _END:
            self._done = True
            raise StopAsyncIteration
        if isinstance(item, _Failure):
            self._done = True
            raise item.error
        return item  # type: ignore[return-value]

    def cancel(self) -> None:
        """Close this branch only; the other branch keeps receiving fragments."""

        if self._closed:
            return
        self._closed = True
        self._buffer.clear()
        self._ready.set()
        self._splitter._branch_closed()

    def _offer(self, item: Union[T, object]) -> None:
        if self._closed:
            return
        self._buffer.append(item)
        self._ready.set()


class StreamSplitter(Generic[T]):
    def __init__(self, source: AsyncIterator[T], branches: int = 2) -> None:
        if branches < 1:
            raise ValueError("At least one branch is required.")
        self._source = source
        self._branches = tuple(StreamBranch(self) for _ in range(branches))
        self._pump_task: Optional[asyncio.Task[None]] = None

    @property
    def branches(self) -> tuple[StreamBranch[T], ...]:
        return self._branches

    def _ensure_started(self) -> None:
        if self._pump_task is None:
            self._pump_task = asyncio.get_running_loop().create_task(self._pump())

    def _branch_closed(self) -> None:
        if all(branch.closed for branch in self._branches):
            if self._pump_task is not None and not self._pump_task.done():
                self._pump_task.cancel()
            elif self._pump_task is None:
                self._pump_task = asyncio.get_running_loop().create_task(self._close_source())

    async def _pump(self) -> None:
        try:
            async for item in self._source:
                for branch in self._branches:
                    branch._offer(item)
        except asyncio.CancelledError:
            for branch in self._branches:
                branch._offer(_END)
            await self._close_source()
            raise
        except Exception as exc:  # noqa: BLE001 - delivered to every reader
            logger.debug("Forked stream failed: %s", exc)
            for branch in self._branches:
                branch._offer(_Failure(exc))
        else:
            for branch in self._branches:
                branch._offer(_END)
        await self._close_source()

    async def _close_source(self) -> None:
        aclose = getattr(self._source, "aclose", None)
        if aclose is None:
            return
        try:
            await aclose()
        except Exception:  # noqa: BLE001 - source already failed or finished
            logger.debug("Closing forked source raised", exc_info=True)


def fork(source: AsyncIterator[T]) -> tuple[StreamBranch[T], StreamBranch[T]]:
    """Split ``source`` into two branches carrying identical fragments."""

    first, second = StreamSplitter(source, branches=2).branches
    return first, second


__all__ = ["StreamBranch", "StreamSplitter", "fork"]
