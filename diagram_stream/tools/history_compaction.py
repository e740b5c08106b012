"""Shrink base64 image payloads echoed back in tool results."""
from __future__ import annotations

import re

DATA_URL_PATTERN = re.compile(r"data:image/[^;]+;base64,[A-Za-z0-9+/=]{100,}")
TRUNCATION_MARKER = "...[base64 truncated to save tokens]..."


def truncate_data_urls(text: str, keep: int = 50) -> str:
    """Replace long base64 data URLs with their first ``keep`` characters."""
    if not text:
        return text
    return DATA_URL_PATTERN.sub(lambda m: f"{m.group(0)[:keep]}{TRUNCATION_MARKER}", text)


def compact_tool_results(messages: list) -> list:
    """Apply :func:`truncate_data_urls` to string results of tool messages.

    Messages are dicts shaped like ``{"role": "tool", "content": [{"type":
    "tool-result", "result": "..."}]}``; other messages pass through untouched.
    """
    compacted = []
    for message in messages:
        if not isinstance(message, dict) or message.get("role") != "tool":
            compacted.append(message)
            continue
        content = message.get("content")
        if not isinstance(content, list):
            compacted.append(message)
            continue
        parts = []
        for part in content:
            if isinstance(part, dict) and part.get("type") == "tool-result" and isinstance(part.get("result"), str):
                part = {**part, "result": truncate_data_urls(part["result"])}
            parts.append(part)
        compacted.append({**message, "content": parts})
    return compacted
