"""Delta extraction from one line of the event stream.

Two payload shapes are understood:
- Anthropic Messages: {"delta": {"text": "..."}}
- OpenAI Chat Completions: {"choices": [{"delta": {"content": "..."}}]}

Anything else (event: lines, [DONE], pings, malformed JSON) yields "".
"""

from __future__ import annotations

import json
from typing import Any

EVENT_PREFIX = "data:"


def _delta_text(data: Any) -> str:
    if not isinstance(data, dict):
        return ""
    delta = data.get("delta")
    if isinstance(delta, dict):
        text = delta.get("text")
        if isinstance(text, str) and text:
            return text
    choices = data.get("choices")
    if not isinstance(choices, list) or not choices or not isinstance(choices[0], dict):
        return ""
    delta = choices[0].get("delta")
    if not isinstance(delta, dict):
        return ""
    content = delta.get("content")
    return content if isinstance(content, str) else ""


def extract_delta(line: str | bytes) -> str:
    """Return the text fragment carried by one stream line, or "" if there is none. Never raises."""
    if isinstance(line, bytes):
        line = line.decode("utf-8", errors="replace")
    if not line.startswith(EVENT_PREFIX):
        return ""
    try:
        data = json.loads(line[len(EVENT_PREFIX):])
    except (ValueError, RecursionError):
        return ""
    return _delta_text(data)
