"""Errors raised by a chat call. Everything the caller can see derives from ChatError."""

from __future__ import annotations

from typing import Any


class ChatError(Exception):
    """Base exception for all chat call failures."""


class ProtocolError(ChatError):
    """Unknown or unsupported provider protocol."""


class TransportError(ChatError):
    """Network failure while sending the request or reading the stream."""


class ChatTimeoutError(ChatError, TimeoutError):
    """The call did not complete within the configured timeout."""


class HttpStatusError(ChatError):
    """Provider answered with a non-success status. body is parsed JSON when possible, else text."""

    def __init__(self, status_code: int, body: Any = None) -> None:
        super().__init__(f"HTTP {status_code}")
        self.status_code = status_code
        self.body = body


class FinalizationError(ChatError):
    """JSON mode: the final text is not valid JSON."""

    def __init__(self, text: str) -> None:
        super().__init__("Failed to parse response")
        self.text = text


class CallbackError(ChatError):
    """The progress callback raised. The original exception is chained as __cause__."""
