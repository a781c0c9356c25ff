"""Chat client: single entrypoint chat(prompt, ...) over a streaming HTTP request.

The client holds read-only configuration; every call gets its own StreamSession.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Iterable, Mapping, Optional

import httpx

from streamchat.core.errors import ChatTimeoutError, TransportError
from streamchat.core.messages import ChatOptions, ContextMessage
from streamchat.models.providers import ClientConfig, get_strategy, resolve_protocol
from streamchat.models.scheduler import UPDATE_COOLDOWN_SECONDS, OnUpdate
from streamchat.models.session import StreamSession

if TYPE_CHECKING:
    from streamchat.config.loader import Config

logger = logging.getLogger(__name__)


class ChatClient:
    """Streaming chat-completion client for OpenAI- and Anthropic-style APIs."""

    def __init__(
        self,
        *,
        protocol: str = "openai",
        model: str,
        api_base: str,
        api_key: str = "",
        system_prompt: str | None = None,
        headers: Mapping[str, str] | None = None,
        default_timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        update_cooldown: float = UPDATE_COOLDOWN_SECONDS,
    ) -> None:
        self._config = ClientConfig(
            protocol=resolve_protocol(protocol),
            model=model,
            api_base=api_base,
            api_key=api_key,
            system_prompt=system_prompt,
            headers=dict(headers or {}),
        )
        self._strategy = get_strategy(self._config.protocol)
        self._default_timeout = default_timeout
        self._transport = transport
        self._update_cooldown = update_cooldown

    @classmethod
    def from_config(cls, config: Config, **kwargs: Any) -> "ChatClient":
        p = config.provider
        return cls(
            protocol=p.protocol,
            model=p.model,
            api_base=p.api_base,
            api_key=p.api_key,
            system_prompt=p.system_prompt,
            headers=p.headers,
            default_timeout=config.chat.timeout,
            **kwargs,
        )

    @property
    def config(self) -> ClientConfig:
        return self._config

    def build_request(self, prompt: str, options: ChatOptions) -> tuple[str, dict[str, str], dict[str, Any]]:
        """URL, headers and JSON payload for one call."""
        return (
            self._strategy.build_url(self._config),
            self._strategy.build_headers(self._config),
            self._strategy.build_payload(self._config, prompt, options),
        )

    async def chat(
        self,
        prompt: str,
        *,
        context: Iterable[ContextMessage | Mapping[str, Any]] = (),
        prefill: str = "",
        max_tokens: int | None = None,
        temperature: float = 0.7,
        timeout: float | None = None,
        json: bool = False,
        xml: Optional[list[str]] = None,
        on_update: OnUpdate | None = None,
    ) -> Any:
        """Stream a completion. Returns text, parsed JSON (json=True) or a tag map (xml=[...]).

        on_update(text, sequence) is called with growing snapshots while streaming and
        once more with sequence None and the complete text before the call returns.
        """
        options = ChatOptions(
            context=list(context),
            prefill=prefill,
            max_tokens=max_tokens,
            temperature=temperature,
            timeout=timeout if timeout is not None else self._default_timeout,
            json=json,
            xml=xml,
        )
        session = StreamSession(
            prefill=options.prefill,
            on_update=on_update,
            json_mode=options.json_mode,
            xml=options.xml,
            cooldown=self._update_cooldown,
        )
        try:
            return await asyncio.wait_for(self._run(session, prompt, options), options.timeout)
        except ChatTimeoutError:
            raise
        except asyncio.TimeoutError:
            logger.warning("chat timed out after %ss", options.timeout)
            raise session.fail(ChatTimeoutError(f"no completion within {options.timeout}s")) from None

    async def _run(self, session: StreamSession, prompt: str, options: ChatOptions) -> Any:
        url, headers, payload = self.build_request(prompt, options)
        timeout = httpx.Timeout(options.timeout) if options.timeout else httpx.Timeout(None)
        try:
            async with httpx.AsyncClient(timeout=timeout, transport=self._transport) as client:
                async with client.stream("POST", url, json=payload, headers=headers) as resp:
                    session.mark_sent()
                    logger.debug(
                        "chat request sent",
                        extra={
                            "url": url,
                            "protocol": self._config.protocol.value,
                            "status": resp.status_code,
                            "headers": headers,
                        },
                    )
                    body = None if resp.is_success else await resp.aread()
                    session.accept(resp.status_code, body)
                    return await session.consume(resp.aiter_lines())
        except httpx.TimeoutException as e:
            raise session.fail(ChatTimeoutError(str(e) or "request timed out")) from e
        except httpx.TransportError as e:
            raise session.fail(TransportError(str(e) or type(e).__name__)) from e
