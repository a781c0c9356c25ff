"""Streaming chat pipeline: providers, delta/tag extraction, update scheduling, sessions."""

from streamchat.models.client import ChatClient
from streamchat.models.deltas import extract_delta
from streamchat.models.providers import ProviderKind
from streamchat.models.scheduler import UpdateScheduler
from streamchat.models.session import SessionState, StreamSession
from streamchat.models.tags import extract_tags, parse_json, parse_xml

__all__ = [
    "ChatClient",
    "ProviderKind",
    "SessionState",
    "StreamSession",
    "UpdateScheduler",
    "extract_delta",
    "extract_tags",
    "parse_json",
    "parse_xml",
]
