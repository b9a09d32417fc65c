"""
Content Search Index Builder

This module builds the in-memory full-text index over every chapter of every
book and keeps a timestamped snapshot of it in the client state store.

Lifecycle
---------
    EMPTY --build_index--> BUILDING --pool drained--> READY
    EMPTY --load_cached_index (fresh snapshot)------> READY

Build Procedure
---------------
1. Enumerate chapter files of every book concurrently; root and subfolder
   chapters go into one flat task list. A book whose listing fails
   contributes no tasks.
2. A fixed pool of workers (5 by default) consumes task indices from a
   shared queue. Each worker fetches one chapter, strips markdown, appends a
   record and reports ``(done, total)``. A failed fetch is skipped: no retry,
   no abort of the pool.
3. When the queue drains, the records are written to the store under
   ``search-index`` with the current timestamp and the state becomes READY.

Record order follows completion order, not chapter order.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, List, Optional, Protocol, Tuple

from pydantic import ValidationError

from ..config import settings
from ..content.models import Book, ChapterRef
from ..content.parsing import parse_frontmatter
from ..store.kv import KeyValueStore
from .markdown import strip_markdown
from .models import IndexedChapter, IndexProgress, IndexState

logger = logging.getLogger("bookshelf.search.index")

SEARCH_INDEX_KEY = "search-index"

ProgressCallback = Callable[[int, int], None]


class ChapterSource(Protocol):
    """What the builder needs from the content client."""

    async def list_chapter_files(self, book_slug: str) -> List[ChapterRef]:
        ...

    async def fetch_markdown(self, file_path: str) -> str:
        ...


class SearchIndexBuilder:
    """
    Builds and holds the chapter search index.

    Not thread-safe; meant to be driven from a single event loop, where the
    re-entry guard in ``build_index`` is enough to prevent concurrent builds.
    """

    def __init__(
        self,
        source: ChapterSource,
        store: KeyValueStore,
        ttl_seconds: Optional[float] = None,
        concurrency: Optional[int] = None,
    ) -> None:
        """
        Parameters
        ----------
        source : ChapterSource
            Lists chapter files and fetches markdown (the content client).

        store : KeyValueStore
            Holds the persisted ``{index, timestamp}`` snapshot.

        ttl_seconds : Optional[float]
            Snapshot lifetime. Defaults to settings.search_cache_ttl_seconds.

        concurrency : Optional[int]
            Number of fetch workers. Defaults to settings.search_concurrency.
        """
        self._source = source
        self._store = store
        self._ttl_seconds = ttl_seconds if ttl_seconds is not None else settings.search_cache_ttl_seconds
        self._concurrency = max(1, concurrency or settings.search_concurrency)

        self.state: IndexState = IndexState.EMPTY
        self.records: List[IndexedChapter] = []
        self.progress = IndexProgress()

        self._background: Optional[asyncio.Task] = None

    # ------------------------------------------------------------------
    # Cache
    # ------------------------------------------------------------------

    def load_cached_index(self) -> bool:
        """
        Hydrate from a fresh persisted snapshot.

        Returns
        -------
        bool
            True if the index is now READY from cache. A stale, corrupt or
            missing snapshot is a miss; stale and corrupt ones are deleted.
        """
        snapshot = self._store.get_fresh(SEARCH_INDEX_KEY, self._ttl_seconds)
        if snapshot is None:
            return False

        try:
            records = [IndexedChapter.model_validate(raw) for raw in snapshot["index"]]
        except (KeyError, TypeError, ValidationError) as exc:
            logger.warning("Discarding unusable search index snapshot (%s)", type(exc).__name__)
            self._store.delete(SEARCH_INDEX_KEY)
            return False

        self.records = records
        self.state = IndexState.READY
        logger.info("Search index loaded from cache (%d chapters)", len(records))
        return True

    def invalidate(self) -> bool:
        """
        Drop the current index and its snapshot so the next build runs.

        Returns False (and does nothing) while a build is in progress.
        """
        if self.state is IndexState.BUILDING:
            return False
        self.records = []
        self.state = IndexState.EMPTY
        self.progress = IndexProgress()
        self._store.delete(SEARCH_INDEX_KEY)
        return True

    # ------------------------------------------------------------------
    # Build
    # ------------------------------------------------------------------

    async def build_index(
        self,
        books: List[Book],
        on_progress: Optional[ProgressCallback] = None,
    ) -> None:
        """
        Build the index for ``books``.

        No-op when the index is already BUILDING or READY. Individual chapter
        failures never surface; a complete content outage yields an empty
        READY index.
        """
        if self.state is not IndexState.EMPTY:
            return

        self.state = IndexState.BUILDING
        self.progress = IndexProgress()

        try:
            tasks = await self._enumerate_tasks(books)
            self._report(0, len(tasks), on_progress)
            records = await self._run_pool(tasks, on_progress)
            await self._persist(records)
        except BaseException:
            self.state = IndexState.EMPTY
            raise

        self.records = records
        self.state = IndexState.READY
        logger.info(
            "Search index built: %d of %d chapters indexed",
            len(records),
            len(tasks),
        )

    def start_background_build(self, books: List[Book]) -> Optional[asyncio.Task]:
        """
        Launch ``build_index`` without awaiting it.

        The build runs to completion even if the requester goes away.
        Returns the running task, or None if the index is already READY.
        """
        if self._background is not None and not self._background.done():
            return self._background
        if self.state is not IndexState.EMPTY:
            return None

        task = asyncio.create_task(self.build_index(books))
        task.add_done_callback(self._on_background_done)
        self._background = task
        return task

    @staticmethod
    def _on_background_done(task: asyncio.Task) -> None:
        if task.cancelled():
            logger.warning("Background index build was cancelled")
            return
        exc = task.exception()
        if exc is not None:
            logger.error("Background index build failed", exc_info=exc)

    # ------------------------------------------------------------------
    # Internal Helpers
    # ------------------------------------------------------------------

    async def _enumerate_tasks(self, books: List[Book]) -> List[Tuple[Book, ChapterRef]]:
        chapter_lists = await asyncio.gather(*(self._chapters_of(book) for book in books))
        return [
            (book, chapter)
            for book, chapters in zip(books, chapter_lists)
            for chapter in chapters
        ]

    async def _chapters_of(self, book: Book) -> List[ChapterRef]:
        try:
            return await self._source.list_chapter_files(book.slug)
        except Exception as exc:
            logger.warning("No chapters indexed for %r (%s)", book.slug, type(exc).__name__)
            return []

    async def _run_pool(
        self,
        tasks: List[Tuple[Book, ChapterRef]],
        on_progress: Optional[ProgressCallback],
    ) -> List[IndexedChapter]:
        queue: asyncio.Queue[int] = asyncio.Queue()
        for idx in range(len(tasks)):
            queue.put_nowait(idx)

        records: List[IndexedChapter] = []
        total = len(tasks)

        async def worker() -> None:
            while True:
                try:
                    idx = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return

                book, chapter = tasks[idx]
                try:
                    raw = await self._source.fetch_markdown(chapter.file_path)
                    _, body = parse_frontmatter(raw)
                    records.append(
                        IndexedChapter(
                            book_slug=book.slug,
                            book_title=book.title,
                            chapter_path=chapter.path,
                            chapter_name=chapter.name,
                            plain_text=strip_markdown(body),
                        )
                    )
                except Exception as exc:
                    logger.warning(
                        "Skipping chapter %s/%s (%s)",
                        book.slug,
                        chapter.path,
                        type(exc).__name__,
                    )

                self._report(self.progress.done + 1, total, on_progress)

        await asyncio.gather(*(worker() for _ in range(self._concurrency)))
        return records

    def _report(self, done: int, total: int, on_progress: Optional[ProgressCallback]) -> None:
        self.progress = IndexProgress(done=done, total=total)
        if on_progress is not None:
            on_progress(done, total)

    async def _persist(self, records: List[IndexedChapter]) -> None:
        snapshot = {
            "index": [r.model_dump(by_alias=True) for r in records],
            "timestamp": self._store.timestamp(),
        }
        try:
            await asyncio.to_thread(self._store.set, SEARCH_INDEX_KEY, snapshot)
        except (OSError, TypeError, ValueError) as exc:
            logger.warning("Search index snapshot not persisted (%s)", type(exc).__name__)
