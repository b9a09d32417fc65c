"""
Bounded, most-recent-first lists kept in a KeyValueStore.
"""

from __future__ import annotations

import logging
from typing import Any, List

from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel

from ..core.errors import CacheCorrupt
from .kv import KeyValueStore

logger = logging.getLogger("bookshelf.history")

READING_HISTORY_KEY = "reading-history"
READING_HISTORY_LIMIT = 10
RECENT_SEARCHES_KEY = "recent-searches"
RECENT_SEARCHES_LIMIT = 5


class ReadingEntry(BaseModel):
    book_slug: str
    book_title: str = ""
    chapter_path: str
    chapter_title: str = ""
    read_at: int = 0

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


def _load_list(store: KeyValueStore, key: str) -> List[Any]:
    try:
        value = store.get(key)
    except CacheCorrupt:
        logger.warning("Discarding unreadable %r", key)
        store.delete(key)
        return []
    return value if isinstance(value, list) else []


class ReadingHistory:
    """
    The last ``READING_HISTORY_LIMIT`` chapters read, newest first.

    Re-reading a chapter moves it to the front instead of duplicating it.
    """

    def __init__(self, store: KeyValueStore, limit: int = READING_HISTORY_LIMIT) -> None:
        self._store = store
        self._limit = limit

    def entries(self) -> List[ReadingEntry]:
        result = []
        for raw in _load_list(self._store, READING_HISTORY_KEY):
            try:
                result.append(ReadingEntry.model_validate(raw))
            except ValidationError:
                continue
        return result

    def record(
        self,
        book_slug: str,
        chapter_path: str,
        book_title: str = "",
        chapter_title: str = "",
    ) -> List[ReadingEntry]:
        entry = ReadingEntry(
            book_slug=book_slug,
            book_title=book_title,
            chapter_path=chapter_path,
            chapter_title=chapter_title,
            read_at=self._store.timestamp(),
        )
        kept = [
            e for e in self.entries()
            if not (e.book_slug == book_slug and e.chapter_path == chapter_path)
        ]
        updated = [entry, *kept][:self._limit]
        self._save(updated)
        return updated

    def remove(self, book_slug: str, chapter_path: str) -> List[ReadingEntry]:
        updated = [
            e for e in self.entries()
            if not (e.book_slug == book_slug and e.chapter_path == chapter_path)
        ]
        self._save(updated)
        return updated

    def clear(self) -> None:
        self._store.delete(READING_HISTORY_KEY)

    def _save(self, entries: List[ReadingEntry]) -> None:
        self._store.set(
            READING_HISTORY_KEY,
            [e.model_dump(by_alias=True) for e in entries],
        )


class RecentSearches:
    """
    The last ``RECENT_SEARCHES_LIMIT`` distinct search queries, newest first.
    """

    def __init__(self, store: KeyValueStore, limit: int = RECENT_SEARCHES_LIMIT) -> None:
        self._store = store
        self._limit = limit

    def queries(self) -> List[str]:
        return [q for q in _load_list(self._store, RECENT_SEARCHES_KEY) if isinstance(q, str)]

    def record(self, query: str) -> List[str]:
        query = query.strip()
        if not query:
            return self.queries()
        updated = [query, *(q for q in self.queries() if q != query)][:self._limit]
        self._store.set(RECENT_SEARCHES_KEY, updated)
        return updated

    def clear(self) -> None:
        self._store.delete(RECENT_SEARCHES_KEY)
