"""Per-job cancellation token.

Every stage receives the job's token explicitly. Cancellation is one-way
(`Active -> Cancelled`) and cooperative: stages check the token at their
boundaries, and in-flight operations that support aborting register a
callback that fires on the transition.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, TypeVar

logger = logging.getLogger("scribe.pipeline")

T = TypeVar("T")


class JobCancelled(Exception):
    """Internal signal that unwinds a cancelled job. Never shown to users."""


class CancellationToken:
    def __init__(self) -> None:
        self._cancelled = False
        self._callbacks: list[Callable[[], object]] = []

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> bool:
        """Flip the token and run abort callbacks. Returns False if already cancelled."""

        if self._cancelled:
            return False
        self._cancelled = True
        callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            self._invoke(callback)
        return True

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise JobCancelled()

    def add_callback(self, callback: Callable[[], object]) -> Callable[[], None]:
        """Register an abort hook; returns a function that unregisters it."""

        if self._cancelled:
            self._invoke(callback)
            return lambda: None

        self._callbacks.append(callback)

        def remove() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return remove

    async def run(self, awaitable: Awaitable[T]) -> T:
        """Await a call that is aborted (task-cancelled) when the token fires."""

        self.raise_if_cancelled()
        task = asyncio.ensure_future(awaitable)
        remove = self.add_callback(task.cancel)
        try:
            result = await task
        except asyncio.CancelledError:
            if self._cancelled:
                raise JobCancelled() from None
            raise
        finally:
            remove()
        # The call may have finished just as the token fired; discard it.
        self.raise_if_cancelled()
        return result

    @staticmethod
    def _invoke(callback: Callable[[], object]) -> None:
        try:
            callback()
        except Exception:  # noqa: BLE001 - one failing hook must not block the others
            logger.exception("Cancellation callback %r failed", callback)


__all__ = ["CancellationToken", "JobCancelled"]
