"""Provider variants: a closed set of tagged strategy records selected by protocol name.

Each variant knows how to build headers, the chat URL and the request payload.
Reading deltas back is shared (see streamchat.models.deltas): both wire shapes are
accepted from any provider.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional
from urllib.parse import urljoin

from pydantic import BaseModel, ConfigDict, Field

from streamchat.core.errors import ProtocolError
from streamchat.core.messages import ChatOptions, Role

ANTHROPIC_VERSION = "2023-06-01"


class ProviderKind(str, Enum):
    OPENAI = "openai"
    ANTHROPIC = "anthropic"


class ClientConfig(BaseModel):
    """Read-only configuration shared by every call of one client."""

    model_config = ConfigDict(frozen=True)

    protocol: ProviderKind = ProviderKind.OPENAI
    model: str
    api_base: str
    api_key: str = ""
    system_prompt: Optional[str] = None
    headers: dict[str, str] = Field(default_factory=dict)


@dataclass(frozen=True)
class ProviderStrategy:
    kind: ProviderKind
    path: str
    auth_headers: Callable[[str], dict[str, str]]
    system_in_messages: bool
    supports_json_format: bool

    def build_headers(self, config: ClientConfig) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        headers.update(self.auth_headers(config.api_key))
        headers.update(config.headers)
        return headers

    def build_url(self, config: ClientConfig) -> str:
        return urljoin(config.api_base, self.path)

    def build_messages(
        self, config: ClientConfig, prompt: str, options: ChatOptions
    ) -> list[dict[str, str]]:
        messages: list[dict[str, str]] = []
        if self.system_in_messages and config.system_prompt:
            messages.append({"role": Role.SYSTEM.value, "content": config.system_prompt})
        for doc in options.sorted_context():
            messages.append({"role": doc.role.value, "content": doc.message})
        messages.append({"role": Role.USER.value, "content": prompt})
        if options.prefill:
            messages.append({"role": Role.ASSISTANT.value, "content": options.prefill})
        return messages

    def build_payload(
        self, config: ClientConfig, prompt: str, options: ChatOptions
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "model": config.model,
            "temperature": options.temperature,
            "stream": True,
            "messages": self.build_messages(config, prompt, options),
        }
        if options.max_tokens:
            payload["max_tokens"] = options.max_tokens
        if options.json_mode and self.supports_json_format:
            payload["response_format"] = {"type": "json_object"}
        if not self.system_in_messages and config.system_prompt:
            payload["system"] = config.system_prompt
        return payload


def _bearer(api_key: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {api_key}"} if api_key else {}


def _anthropic_key(api_key: str) -> dict[str, str]:
    return {"X-Api-Key": api_key, "anthropic-version": ANTHROPIC_VERSION}


_STRATEGIES: dict[ProviderKind, ProviderStrategy] = {
    ProviderKind.OPENAI: ProviderStrategy(
        kind=ProviderKind.OPENAI,
        path="/v1/chat/completions",
        auth_headers=_bearer,
        system_in_messages=True,
        supports_json_format=True,
    ),
    ProviderKind.ANTHROPIC: ProviderStrategy(
        kind=ProviderKind.ANTHROPIC,
        path="/v1/messages",
        auth_headers=_anthropic_key,
        system_in_messages=False,
        supports_json_format=False,
    ),
}


def resolve_protocol(protocol: str | ProviderKind) -> ProviderKind:
    try:
        return ProviderKind(protocol)
    except ValueError:
        raise ProtocolError(f"Invalid protocol: {protocol!r}") from None


def get_strategy(protocol: str | ProviderKind) -> ProviderStrategy:
    return _STRATEGIES[resolve_protocol(protocol)]
