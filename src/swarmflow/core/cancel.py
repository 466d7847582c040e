# cancel.py - Cancellable run context
#
# One RunContext threads through every call of a run. Cancelling it:
#   - makes in-flight model calls (wrapped with guard()) return promptly
#   - aborts backoff sleeps early
#   - stops graph traversal before the next node
#   - makes the concurrent dispatcher return partial results

import asyncio
import time
from typing import Awaitable, Optional, TypeVar

from ..errors import RunCancelledError

T = TypeVar("T")


class RunContext:
    """
    Cancellation token with an optional deadline.

    Usage:
        ctx = RunContext(timeout=30)
        response = await executor.run(agent, messages, ctx=ctx)

        # from anywhere else (a UI handler, a hook, another task):
        ctx.cancel("user pressed stop")
    """

    def __init__(self, timeout: Optional[float] = None):
        self._event: Optional[asyncio.Event] = None
        self._reason = ""
        self._cancelled = False
        self.deadline: Optional[float] = (
            time.monotonic() + timeout if timeout is not None else None
        )

    def _get_event(self) -> asyncio.Event:
        # Created lazily so the context can be built outside a running loop
        if self._event is None:
            self._event = asyncio.Event()
            if self._cancelled:
                self._event.set()
        return self._event

    @property
    def reason(self) -> str:
        return self._reason

    @property
    def cancelled(self) -> bool:
        if not self._cancelled and self.deadline is not None and time.monotonic() >= self.deadline:
            self.cancel("deadline exceeded")
        return self._cancelled

    def cancel(self, reason: str = "run cancelled") -> None:
        if self._cancelled:
            return
        self._cancelled = True
        self._reason = reason
        if self._event is not None:
            self._event.set()

    def remaining(self) -> Optional[float]:
        if self.deadline is None:
            return None
        return max(0.0, self.deadline - time.monotonic())

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise RunCancelledError(self._reason)

    async def wait(self) -> None:
        """Block until the context is cancelled (or its deadline passes)."""
        event = self._get_event()
        remaining = self.remaining()
        if remaining is None:
            await event.wait()
            return
        try:
            await asyncio.wait_for(event.wait(), timeout=remaining)
        except asyncio.TimeoutError:
            self.cancel("deadline exceeded")

    async def sleep(self, delay: float) -> None:
        """Sleep for `delay` seconds, raising RunCancelledError if cancelled first."""
        self.raise_if_cancelled()
        if delay <= 0:
            return
        waiter = asyncio.ensure_future(self.wait())
        try:
            done, _ = await asyncio.wait({waiter}, timeout=delay)
        finally:
            if not waiter.done():
                waiter.cancel()
        if done:
            raise RunCancelledError(self._reason)

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """
        Await `awaitable`, abandoning it as soon as the context is cancelled.

        The abandoned call is cancelled and RunCancelledError is raised.
        """
        self.raise_if_cancelled()
        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except BaseException:
            task.cancel()
            raise
        finally:
            if not waiter.done():
                waiter.cancel()
        if task.done():
            return task.result()
        task.cancel()
        raise RunCancelledError(self._reason)
