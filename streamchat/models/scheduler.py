"""Update scheduler: runs the caller's progress callback at a rate the caller can sustain.

The stream may emit deltas far faster than the callback completes (e.g. a
database write per update). The scheduler keeps at most one invocation in
flight; deltas arriving meanwhile only raise a "newer content" flag, and the
next invocation reads the accumulated text when it actually starts. After each
invocation the scheduler stays busy for a fixed cool-down before it may fire
again. The terminal flush (sequence None) is issued by the session once the
stream has ended and always carries the complete text.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from typing import Any, Awaitable, Callable, Optional, Union

from streamchat.core.errors import CallbackError

logger = logging.getLogger(__name__)

UPDATE_COOLDOWN_SECONDS = 0.1

OnUpdate = Callable[[str, Optional[int]], Union[Awaitable[Any], Any]]


class UpdateScheduler:
    """Coalescing, single-flight scheduler for one session's progress callback."""

    def __init__(
        self,
        callback: OnUpdate | None,
        snapshot: Callable[[], str],
        *,
        cooldown: float = UPDATE_COOLDOWN_SECONDS,
    ) -> None:
        self._callback = callback
        self._snapshot = snapshot
        self._cooldown = cooldown
        self._busy = False
        self._pending = False
        self._closed = False
        self._sequence = 0
        self._inflight: asyncio.Task | None = None
        self._cooldown_handle: asyncio.TimerHandle | None = None
        self._error: CallbackError | None = None
        self._failed = asyncio.Event()

    @property
    def enabled(self) -> bool:
        return self._callback is not None

    @property
    def busy(self) -> bool:
        return self._busy

    @property
    def invocations(self) -> int:
        return self._sequence

    @property
    def error(self) -> CallbackError | None:
        return self._error

    def notify(self) -> None:
        """Called after each append to the accumulated message."""
        if self._callback is None or self._closed or self._error is not None:
            return
        if self._busy:
            self._pending = True
            return
        self._start()

    async def wait_failed(self) -> None:
        """Returns once any invocation, the terminal one included, has failed."""
        await self._failed.wait()

    def raise_if_failed(self) -> None:
        if self._error is not None:
            raise self._error

    async def drain(self) -> None:
        """Stop scheduling and wait for the in-flight invocation, ignoring any cool-down."""
        self.close()
        if self._inflight is not None and not self._inflight.done():
            # asyncio.wait never cancels what it waits on, so a call timeout leaves the callback running
            await asyncio.wait({self._inflight})
        self.raise_if_failed()

    async def flush(self) -> None:
        """Terminal delivery of the complete text, with sequence None."""
        if self._callback is None:
            return
        task = asyncio.ensure_future(self._invoke(self._snapshot(), None))
        task.add_done_callback(_retrieve)
        await asyncio.wait({task})
        task.result()

    def close(self) -> None:
        """No new invocations after this. An in-flight one finishes but nothing follows it."""
        self._closed = True
        self._pending = False
        if self._cooldown_handle is not None:
            self._cooldown_handle.cancel()
            self._cooldown_handle = None

    def _start(self) -> None:
        self._busy = True
        self._inflight = asyncio.ensure_future(self._run_next())
        self._inflight.add_done_callback(self._on_done)

    async def _run_next(self) -> None:
        # Snapshot taken when the task runs, not when it was scheduled.
        self._pending = False
        self._sequence += 1
        await self._invoke(self._snapshot(), self._sequence)

    async def _invoke(self, text: str, sequence: int | None) -> None:
        try:
            result = self._callback(text, sequence)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.warning("progress callback failed: %s", e, extra={"sequence": sequence})
            self._error = CallbackError(f"progress callback failed: {e}")
            self._failed.set()
            raise self._error from e

    def _on_done(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        if task.exception() is not None or self._closed:
            # Stays busy: nothing else runs after a failure or once closed.
            return
        loop = asyncio.get_running_loop()
        self._cooldown_handle = loop.call_later(self._cooldown, self._release)

    def _release(self) -> None:
        self._cooldown_handle = None
        self._busy = False
        if self._pending and not self._closed:
            self._start()


def _retrieve(task: asyncio.Future) -> None:
    if not task.cancelled():
        task.exception()
