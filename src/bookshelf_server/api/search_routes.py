"""
Search Routes

Full-text search over chapter content.

The first query of two or more characters hydrates the index from its
cached snapshot, or starts a background build when there is none. The build
keeps running after the request returns; until it finishes, searches answer
with empty results and the index status shows build progress.
"""

import asyncio
from typing import Annotated

from fastapi import APIRouter, Depends, Query, status

from .dependencies import (
    get_content_client,
    get_index_builder,
    get_recent_searches,
    get_search_engine,
)
from .models import IndexStatus, SearchResponse
from ..content.github_client import GitHubContentClient
from ..search.engine import MIN_QUERY_LENGTH, ContentSearchEngine
from ..search.index import SearchIndexBuilder
from ..search.models import IndexState
from ..store import RecentSearches

router = APIRouter(prefix="/api/search", tags=["search"])

IndexBuilder = Annotated[SearchIndexBuilder, Depends(get_index_builder)]


def _status(index: SearchIndexBuilder) -> IndexStatus:
    return IndexStatus(
        state=index.state,
        progress=index.progress,
        chapters=len(index.records),
    )


async def _ensure_index(index: SearchIndexBuilder, client: GitHubContentClient) -> None:
    if index.state is not IndexState.EMPTY:
        return
    if index.load_cached_index():
        return
    books = await client.list_books()
    index.start_background_build(books)


@router.get(
    "",
    response_model=SearchResponse,
    summary="Search chapter content",
    status_code=status.HTTP_200_OK,
)
async def search(
    index: IndexBuilder,
    engine: Annotated[ContentSearchEngine, Depends(get_search_engine)],
    client: Annotated[GitHubContentClient, Depends(get_content_client)],
    recent: Annotated[RecentSearches, Depends(get_recent_searches)],
    q: str = Query(""),
) -> SearchResponse:
    """
    Case-insensitive substring search, at most 20 results in index order.

    Queries shorter than two characters return no results and never touch
    the index.
    """
    if len(q) >= MIN_QUERY_LENGTH:
        await _ensure_index(index, client)
        await asyncio.to_thread(recent.record, q)

    return SearchResponse(query=q, results=engine.search(q), index=_status(index))


@router.get("/status", response_model=IndexStatus, summary="Search index status")
async def index_status(index: IndexBuilder) -> IndexStatus:
    return _status(index)


@router.post(
    "/index",
    response_model=IndexStatus,
    summary="Start building the search index",
    status_code=status.HTTP_202_ACCEPTED,
)
async def build_index(
    index: IndexBuilder,
    client: Annotated[GitHubContentClient, Depends(get_content_client)],
    rebuild: bool = Query(False),
) -> IndexStatus:
    """
    Start a background build. With ``rebuild=true`` a READY index and its
    snapshot are dropped first; a build already in progress is left alone.
    """
    if rebuild:
        index.invalidate()
    if index.state is IndexState.EMPTY:
        books = await client.list_books()
        index.start_background_build(books)
    return _status(index)
