"""
Markdown → plain text reduction for the content search index.

The passes run in a fixed order; later passes assume earlier syntax is
already gone. The result is lossy and meant for substring search, not for
display.
"""

from __future__ import annotations

import re

_PASSES = [
    (re.compile(r"```[\s\S]*?```"), ""),                     # fenced code blocks
    (re.compile(r"`[^`]+`"), ""),                            # inline code
    (re.compile(r"!\[.*?\]\(.*?\)"), ""),                    # images, alt text dropped
    (re.compile(r"\[([^\]]+)\]\(.*?\)"), r"\1"),             # links -> label
    (re.compile(r"#{1,6}\s+"), ""),                          # heading markers
    (re.compile(r"[*_~]{1,3}(.*?)[*_~]{1,3}"), r"\1"),       # bold/italic/strikethrough
    (re.compile(r"^\s*[-*+]\s+", re.MULTILINE), ""),         # unordered list markers
    (re.compile(r"^\s*\d+\.\s+", re.MULTILINE), ""),         # ordered list markers
    (re.compile(r"^\s*>\s+", re.MULTILINE), ""),             # blockquote markers
    (re.compile(r"\|.*\|"), ""),                             # table rows
    (re.compile(r"[-=]{3,}"), ""),                           # horizontal rules
    (re.compile(r"\n{2,}"), "\n"),                           # blank line runs
]


def strip_markdown(text: str) -> str:
    """
    Reduce markdown to plain text.

    The passes repeat until the text stops changing, so nested markers such
    as ``> - item`` are fully removed and the result is stable under a
    second call. Every substitution shortens the text, which bounds the loop.

    >>> strip_markdown("# Title\\n\\nSome **bold** text.")
    'Title\\nSome bold text.'
    """
    while True:
        reduced = _reduce(text)
        if reduced == text:
            return text
        text = reduced


def _reduce(text: str) -> str:
    for pattern, replacement in _PASSES:
        text = pattern.sub(replacement, text)
    return text.strip()
