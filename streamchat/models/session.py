"""Stream session: one chat call from dispatch to the final result.

Idle -> Sent -> Streaming -> Draining -> Finalizing -> Resolved, with Failed
reachable from any non-terminal state. The session owns the accumulated
message and the update scheduler; neither outlives the call.
"""

from __future__ import annotations

import asyncio
import json
import logging
from enum import Enum
from typing import Any, AsyncIterable, Optional

from streamchat.core.errors import ChatError, HttpStatusError
from streamchat.models.deltas import extract_delta
from streamchat.models.scheduler import UPDATE_COOLDOWN_SECONDS, OnUpdate, UpdateScheduler
from streamchat.models.tags import parse_json, parse_xml

logger = logging.getLogger(__name__)


class SessionState(str, Enum):
    IDLE = "idle"
    SENT = "sent"
    STREAMING = "streaming"
    DRAINING = "draining"
    FINALIZING = "finalizing"
    RESOLVED = "resolved"
    FAILED = "failed"


_TRANSITIONS: dict[SessionState, frozenset[SessionState]] = {
    SessionState.IDLE: frozenset({SessionState.SENT}),
    SessionState.SENT: frozenset({SessionState.STREAMING}),
    SessionState.STREAMING: frozenset({SessionState.DRAINING}),
    SessionState.DRAINING: frozenset({SessionState.FINALIZING}),
    SessionState.FINALIZING: frozenset({SessionState.RESOLVED}),
    SessionState.RESOLVED: frozenset(),
    SessionState.FAILED: frozenset(),
}

_TERMINAL = frozenset({SessionState.RESOLVED, SessionState.FAILED})


class StreamSession:
    """Accumulates deltas from an event stream and produces the ChatResult."""

    def __init__(
        self,
        *,
        prefill: str = "",
        on_update: OnUpdate | None = None,
        json_mode: bool = False,
        xml: Optional[list[str]] = None,
        cooldown: float = UPDATE_COOLDOWN_SECONDS,
    ) -> None:
        self._message = prefill or ""
        self._json_mode = json_mode
        self._xml = xml
        self._state = SessionState.IDLE
        self._error: ChatError | None = None
        self._scheduler = UpdateScheduler(on_update, lambda: self._message, cooldown=cooldown)

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def message(self) -> str:
        return self._message

    @property
    def error(self) -> ChatError | None:
        return self._error

    @property
    def scheduler(self) -> UpdateScheduler:
        return self._scheduler

    def _transition(self, new: SessionState) -> None:
        if new is SessionState.FAILED:
            if self._state in _TERMINAL:
                raise RuntimeError(f"session already {self._state.value}")
        elif new not in _TRANSITIONS[self._state]:
            raise RuntimeError(f"illegal session transition {self._state.value} -> {new.value}")
        logger.debug("session %s -> %s", self._state.value, new.value)
        self._state = new

    def mark_sent(self) -> None:
        self._transition(SessionState.SENT)

    def accept(self, status_code: int, body: bytes | str | None = None) -> None:
        """Response headers arrived. Any non-2xx status fails the session with HttpStatusError."""
        if not 200 <= status_code < 300:
            raise self.fail(HttpStatusError(status_code, _error_body(status_code, body)))
        self._transition(SessionState.STREAMING)

    def append(self, delta: str) -> None:
        if not delta:
            return
        self._message += delta
        self._scheduler.notify()

    def feed_line(self, line: str | bytes) -> None:
        """Process one wire event. Raises CallbackError if the progress callback has failed."""
        if self._state is not SessionState.STREAMING:
            raise RuntimeError(f"cannot feed events in state {self._state.value}")
        self._guard()
        self.append(extract_delta(line))

    async def consume(self, lines: AsyncIterable[str]) -> Any:
        """Read the stream to its end, drain, flush and finalize. Returns the ChatResult."""
        try:
            await self._read_until_end(lines)
            return await self.finish()
        except ChatError as e:
            if self._state not in _TERMINAL:
                self.fail(e)
            raise

    async def _read(self, lines: AsyncIterable[str]) -> None:
        async for line in lines:
            self.feed_line(line)

    async def _read_until_end(self, lines: AsyncIterable[str]) -> None:
        """Reads lines until the stream ends, or stops at once when the progress callback fails."""
        reader = asyncio.ensure_future(self._read(lines))
        failed = asyncio.ensure_future(self._scheduler.wait_failed())
        try:
            done, _ = await asyncio.wait({reader, failed}, return_when=asyncio.FIRST_COMPLETED)
            if reader in done:
                reader.result()
            else:
                self._guard()
        finally:
            reader.cancel()
            failed.cancel()
            await asyncio.gather(reader, failed, return_exceptions=True)

    async def finish(self) -> Any:
        self._transition(SessionState.DRAINING)
        await self._scheduler.drain()
        self._transition(SessionState.FINALIZING)
        await self._scheduler.flush()
        result = self._finalize()
        self._transition(SessionState.RESOLVED)
        return result

    def fail(self, error: ChatError) -> ChatError:
        """Move to Failed. Any in-flight callback is left to finish; nothing else is scheduled."""
        if self._state is SessionState.FAILED:
            return self._error or error
        self._transition(SessionState.FAILED)
        self._error = error
        self._scheduler.close()
        return error

    def _guard(self) -> None:
        try:
            self._scheduler.raise_if_failed()
        except ChatError as e:
            raise self.fail(e)

    def _finalize(self) -> Any:
        if self._json_mode:
            return parse_json(self._message)
        if self._xml:
            return parse_xml(self._message, self._xml)
        return self._message


def _error_body(status_code: int, body: bytes | str | None) -> Any:
    if isinstance(body, bytes):
        body = body.decode("utf-8", errors="replace")
    body = body or ""
    try:
        data = json.loads(body)
    except ValueError:
        logger.warning("[LLM Error] %s %s", status_code, body)
        return body
    logger.warning("[LLM Error] %s %s", status_code, data)
    return data
