"""Structured extraction of the final text: XML-like tags or JSON.

Tags are matched with a lazy regex rather than a parser, so truncated model
output still yields something: an opened tag with no closing tag runs to the
end of the text.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Iterable, Union

from streamchat.core.errors import FinalizationError

logger = logging.getLogger(__name__)

TagValue = Union[str, list[str]]
TagMap = dict[str, TagValue]

_TAG_RE = re.compile(r"<(\w+)>([\s\S]*?)(?:</\1>|\Z)", re.IGNORECASE)


def extract_tags(text: str) -> TagMap:
    """All tags in text, keyed by lower-cased name. A repeated tag becomes a list."""
    res: TagMap = {}
    for match in _TAG_RE.finditer(text):
        key = match.group(1).lower()
        val = match.group(2).strip()
        current = res.get(key)
        if current is None:
            res[key] = val
        elif isinstance(current, list):
            current.append(val)
        else:
            res[key] = [current, val]
    return res


def parse_xml(text: str, tags: Iterable[str]) -> TagMap:
    """Only the requested tags; missing or empty ones are left out."""
    data = extract_tags(text)
    res: TagMap = {}
    for tag in tags:
        tag = tag.lower()
        if data.get(tag):
            res[tag] = data[tag]
    return res


def parse_json(text: str) -> Any:
    try:
        return json.loads(text)
    except ValueError as err:
        logger.warning("Failed to parse response: %s", text)
        raise FinalizationError(text) from err


def pretty_response(text: str) -> Any:
    """Parsed JSON when text is JSON, otherwise text unchanged."""
    try:
        return json.loads(text)
    except ValueError:
        return text
