"""Detect whether generated cell markup ends on a closed element boundary."""
from __future__ import annotations

from enum import Enum


class Completeness(str, Enum):
    COMPLETE = "complete"
    INCOMPLETE = "incomplete"


# Markup constructs that never open an element, keyed by opener.
_SKIPPED_CONSTRUCTS = (
    ("<!--", "-->"),
    ("<![CDATA[", "]]>"),
    ("<?", "?>"),
)


def check_completeness(text: str) -> Completeness:
    """Classify ``text`` as complete or truncated.

    The scan tracks three things: whether it is inside a tag, whether it is
    inside a quoted attribute value (where ``<`` and ``>`` are inert), and the
    depth of open elements that have not been self-closed or closed. The text
    is complete only when the scan ends outside any tag and quote with a depth
    of exactly zero after seeing at least one element. Never raises.
    """
    if not text or not text.strip():
        return Completeness.INCOMPLETE

    depth = 0
    seen_element = False
    i = 0
    n = len(text)
    while i < n:
        ch = text[i]
        if ch != "<":
            i += 1
            continue

        skipped = False
        for opener, closer in _SKIPPED_CONSTRUCTS:
            if text.startswith(opener, i):
                end = text.find(closer, i + len(opener))
                if end == -1:
                    return Completeness.INCOMPLETE
                i = end + len(closer)
                skipped = True
                break
        if skipped:
            continue

        # Inside a tag: find its closing '>' while honouring quoted values.
        j = i + 1
        quote = None
        while j < n:
            c = text[j]
            if quote:
                if c == quote:
                    quote = None
            elif c in ("\"", "'"):
                quote = c
            elif c == ">":
                break
            j += 1
        if j >= n:
            return Completeness.INCOMPLETE

        body = text[i + 1:j].strip()
        if body.startswith("/"):
            depth -= 1
            if depth < 0:
                # Stray closing tag.
                return Completeness.INCOMPLETE
        elif body.startswith("!"):
            pass
        elif body.endswith("/"):
            seen_element = True
        else:
            seen_element = True
            depth += 1
        i = j + 1

    if depth == 0 and seen_element:
        return Completeness.COMPLETE
    return Completeness.INCOMPLETE


def is_complete(text: str) -> bool:
    return check_completeness(text) is Completeness.COMPLETE
