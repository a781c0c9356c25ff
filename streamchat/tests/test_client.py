"""Tests for ChatClient over a mocked HTTP transport."""

import asyncio
import json
import logging

import httpx
import pytest

from streamchat.core.errors import (
    CallbackError,
    ChatTimeoutError,
    FinalizationError,
    HttpStatusError,
    ProtocolError,
    TransportError,
)
from streamchat.core.logging_config import StructuredFormatter
from streamchat.core.messages import ChatOptions
from streamchat.models.client import ChatClient
from streamchat.tests.streams import anthropic_line, openai_line


def _sse(*lines: str) -> bytes:
    return ("\n\n".join(lines) + "\n\ndata: [DONE]\n\n").encode("utf-8")


def _client(handler, protocol="openai", **kwargs) -> ChatClient:
    return ChatClient(
        protocol=protocol,
        model="test-model",
        api_base="http://llm.test",
        api_key="sk-test",
        transport=httpx.MockTransport(handler),
        update_cooldown=0,
        **kwargs,
    )


@pytest.mark.asyncio
async def test_chat_openai_stream():
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, content=_sse(openai_line("Hel"), openai_line("lo")))

    out = await _client(handler, system_prompt="Be brief").chat("Hi")
    assert out == "Hello"
    req = requests[0]
    assert req.url == "http://llm.test/v1/chat/completions"
    assert req.headers["authorization"] == "Bearer sk-test"
    body = json.loads(req.content)
    assert body["stream"] is True
    assert body["model"] == "test-model"
    assert body["temperature"] == 0.7
    assert body["messages"][0] == {"role": "system", "content": "Be brief"}
    assert body["messages"][-1] == {"role": "user", "content": "Hi"}
    assert "max_tokens" not in body


@pytest.mark.asyncio
async def test_chat_anthropic_stream_with_prefill():
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        lines = ["event: content_block_delta\ndata: " + anthropic_line(" world")[6:]]
        return httpx.Response(200, content=_sse(*lines))

    client = _client(handler, protocol="anthropic", system_prompt="sys")
    out = await client.chat("Greet", prefill="Hello", max_tokens=64)
    assert out == "Hello world"
    req = requests[0]
    assert req.url == "http://llm.test/v1/messages"
    assert req.headers["x-api-key"] == "sk-test"
    assert "authorization" not in req.headers
    body = json.loads(req.content)
    assert body["system"] == "sys"
    assert body["max_tokens"] == 64
    assert body["messages"] == [
        {"role": "user", "content": "Greet"},
        {"role": "assistant", "content": "Hello"},
    ]


@pytest.mark.asyncio
async def test_context_sorted_by_added_on():
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, content=_sse(openai_line("ok")))

    context = [
        {"message": "second", "is_bot": True, "added_on": 2},
        {"message": "first", "added_on": 1},
    ]
    await _client(handler).chat("third", context=context)
    messages = json.loads(requests[0].content)["messages"]
    assert messages == [
        {"role": "user", "content": "first"},
        {"role": "assistant", "content": "second"},
        {"role": "user", "content": "third"},
    ]


@pytest.mark.asyncio
async def test_json_mode_sets_response_format():
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(200, content=_sse(openai_line('{"a":1}')))

    assert await _client(handler).chat("x", json=True) == {"a": 1}
    assert json.loads(requests[0].content)["response_format"] == {"type": "json_object"}


@pytest.mark.asyncio
async def test_json_mode_invalid_rejects():
    def handler(request):
        return httpx.Response(200, content=_sse(openai_line("not json")))

    with pytest.raises(FinalizationError):
        await _client(handler).chat("x", json=True)


@pytest.mark.asyncio
async def test_xml_mode():
    def handler(request):
        return httpx.Response(200, content=_sse(openai_line("<a>1</a>"), openai_line("<b>2</b>")))

    assert await _client(handler).chat("x", xml=["a", "b"]) == {"a": "1", "b": "2"}


@pytest.mark.asyncio
async def test_json_and_xml_are_exclusive():
    with pytest.raises(ValueError):
        await _client(lambda r: httpx.Response(200)).chat("x", json=True, xml=["a"])


@pytest.mark.asyncio
async def test_on_update_final_call():
    calls = []

    def handler(request):
        return httpx.Response(200, content=_sse(*(openai_line(c) for c in "abcdef")))

    out = await _client(handler).chat("x", on_update=lambda text, seq: calls.append((text, seq)))
    assert out == "abcdef"
    assert calls[-1] == ("abcdef", None)
    assert all(seq is not None for _, seq in calls[:-1])


@pytest.mark.asyncio
async def test_callback_error_rejects():
    async def on_update(text, seq):
        raise RuntimeError("nope")

    def handler(request):
        return httpx.Response(200, content=_sse(openai_line("a")))

    with pytest.raises(CallbackError):
        await _client(handler).chat("x", on_update=on_update)


@pytest.mark.asyncio
async def test_http_error_status():
    def handler(request):
        return httpx.Response(401, json={"error": {"message": "invalid key"}})

    with pytest.raises(HttpStatusError) as exc:
        await _client(handler).chat("x")
    assert exc.value.status_code == 401
    assert exc.value.body == {"error": {"message": "invalid key"}}


@pytest.mark.asyncio
async def test_transport_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(TransportError):
        await _client(handler).chat("x")


@pytest.mark.asyncio
async def test_timeout_mid_stream():
    async def stalled():
        yield (openai_line("partial") + "\n\n").encode("utf-8")
        await asyncio.sleep(5)
        yield b"data: [DONE]\n\n"

    def handler(request):
        return httpx.Response(200, content=stalled())

    calls = []
    with pytest.raises(ChatTimeoutError):
        await _client(handler).chat("x", timeout=0.2, on_update=lambda t, s: calls.append((t, s)))
    assert all(seq is not None for _, seq in calls)


def test_invalid_protocol():
    with pytest.raises(ProtocolError):
        ChatClient(protocol="gopher", model="m", api_base="http://x")


def test_caller_headers_merged():
    client = ChatClient(
        protocol="anthropic",
        model="m",
        api_base="http://x",
        api_key="k",
        headers={"anthropic-version": "2024-01-01", "X-Trace": "1"},
    )
    _, headers, _ = client.build_request("hi", ChatOptions())
    assert headers["anthropic-version"] == "2024-01-01"
    assert headers["X-Trace"] == "1"
    assert headers["Content-Type"] == "application/json"


def test_openai_without_key_has_no_auth_header():
    client = ChatClient(model="m", api_base="http://localhost:11434")
    url, headers, payload = client.build_request("hi", ChatOptions())
    assert url == "http://localhost:11434/v1/chat/completions"
    assert "Authorization" not in headers
    assert payload["messages"] == [{"role": "user", "content": "hi"}]


@pytest.mark.asyncio
async def test_redirect_status_rejects():
    def handler(request):
        return httpx.Response(302, content=b"moved", headers={"location": "http://elsewhere"})

    with pytest.raises(HttpStatusError) as exc:
        await _client(handler).chat("x")
    assert exc.value.status_code == 302
    assert exc.value.body == "moved"


@pytest.mark.asyncio
async def test_timeout_does_not_cancel_terminal_update():
    events = []

    async def on_update(text, seq):
        if seq is None:
            events.append("final-start")
            await asyncio.sleep(0.3)
            events.append("final-done")

    def handler(request):
        return httpx.Response(200, content=_sse(openai_line("a")))

    with pytest.raises(ChatTimeoutError):
        await _client(handler).chat("x", timeout=0.1, on_update=on_update)
    await asyncio.sleep(0.4)
    assert events == ["final-start", "final-done"]


@pytest.mark.asyncio
async def test_request_headers_logged_redacted(caplog):
    def handler(request):
        return httpx.Response(200, content=_sse(openai_line("ok")))

    with caplog.at_level(logging.DEBUG, logger="streamchat.models.client"):
        await _client(handler).chat("x")
    record = next(r for r in caplog.records if r.getMessage() == "chat request sent")
    data = json.loads(StructuredFormatter(use_json=True).format(record))
    assert data["headers"]["Authorization"] == "[REDACTED]"
    assert data["headers"]["Content-Type"] == "application/json"
