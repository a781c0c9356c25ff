"""streamchat: streaming chat-completion client with throttled progress updates."""

from streamchat.core.errors import (
    CallbackError,
    ChatError,
    ChatTimeoutError,
    FinalizationError,
    HttpStatusError,
    ProtocolError,
    TransportError,
)
from streamchat.core.messages import ContextMessage
from streamchat.models.client import ChatClient

__all__ = [
    "CallbackError",
    "ChatClient",
    "ChatError",
    "ChatTimeoutError",
    "ContextMessage",
    "FinalizationError",
    "HttpStatusError",
    "ProtocolError",
    "TransportError",
]

__version__ = "0.1.0"
