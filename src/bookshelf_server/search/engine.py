"""
Content Search Engine

Case-insensitive substring search over the chapter index. Results keep index
order (no relevance ranking) and stop at the first ``MAX_RESULTS`` matches.
"""

from __future__ import annotations

import re
from typing import List

from .index import SearchIndexBuilder
from .models import SearchResult

MIN_QUERY_LENGTH = 2
MAX_RESULTS = 20
SNIPPET_RADIUS = 30
ELLIPSIS = "..."


def extract_snippet(text: str, query: str, radius: int = SNIPPET_RADIUS) -> str:
    """
    Up to ``radius`` characters either side of the first match of ``query``.

    Clipped ends are marked with ``...``. Returns ``""`` when ``query`` does
    not occur in ``text``.
    """
    match = _matcher(query).search(text)
    if match is None:
        return ""
    return _snippet_around(text, match, radius)


def _matcher(query: str) -> re.Pattern:
    # Matching the original text keeps offsets valid; ``str.lower()`` can
    # change the length of non-ASCII text.
    return re.compile(re.escape(query), re.IGNORECASE)


def _snippet_around(text: str, match: re.Match, radius: int) -> str:
    start = max(0, match.start() - radius)
    end = min(len(text), match.end() + radius)
    prefix = ELLIPSIS if start > 0 else ""
    suffix = ELLIPSIS if end < len(text) else ""

    return prefix + text[start:end] + suffix


class ContentSearchEngine:
    """
    Answers queries against the records held by a ``SearchIndexBuilder``.
    """

    def __init__(self, index: SearchIndexBuilder) -> None:
        self._index = index

    def search(self, query: str) -> List[SearchResult]:
        if not query or len(query) < MIN_QUERY_LENGTH:
            return []

        pattern = _matcher(query)
        results: List[SearchResult] = []

        for entry in self._index.records:
            match = pattern.search(entry.plain_text)
            if match is None:
                continue

            results.append(
                SearchResult(
                    book_slug=entry.book_slug,
                    book_title=entry.book_title,
                    chapter_path=entry.chapter_path,
                    chapter_name=entry.chapter_name,
                    snippet=_snippet_around(entry.plain_text, match, SNIPPET_RADIUS),
                )
            )
            if len(results) >= MAX_RESULTS:
                break

        return results
