"""
Reading history and recent searches kept for the site's reader.
"""

import asyncio
from typing import Annotated, List, Optional

from fastapi import APIRouter, Depends, Query, Response, status

from .dependencies import get_reading_history, get_recent_searches
from ..store import ReadingEntry, ReadingHistory, RecentSearches

router = APIRouter(prefix="/api/history", tags=["history"])


@router.get("/reading", response_model=List[ReadingEntry])
async def reading_history(
    history: Annotated[ReadingHistory, Depends(get_reading_history)],
) -> List[ReadingEntry]:
    return history.entries()


@router.delete("/reading", response_model=List[ReadingEntry])
async def remove_reading_history(
    history: Annotated[ReadingHistory, Depends(get_reading_history)],
    book_slug: Optional[str] = Query(None, alias="bookSlug"),
    chapter_path: Optional[str] = Query(None, alias="chapterPath"),
) -> List[ReadingEntry]:
    """Remove one entry when both keys are given, otherwise clear all."""
    if book_slug and chapter_path:
        return await asyncio.to_thread(history.remove, book_slug, chapter_path)
    await asyncio.to_thread(history.clear)
    return []


@router.get("/searches", response_model=List[str])
async def recent_searches(
    recent: Annotated[RecentSearches, Depends(get_recent_searches)],
) -> List[str]:
    return recent.queries()


@router.delete("/searches", status_code=status.HTTP_204_NO_CONTENT)
async def clear_recent_searches(
    recent: Annotated[RecentSearches, Depends(get_recent_searches)],
) -> Response:
    await asyncio.to_thread(recent.clear)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
