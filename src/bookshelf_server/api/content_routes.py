"""
Content Routes

Books, chapters and dev posts read from the GitHub content repository.

Error Mapping
-------------
- ``ContentUnavailable`` (listing failed)   -> 503 via the global handler
- ``ChapterNotFound`` / ``PostNotFound``      -> 404 via the global handler
"""

import asyncio
from typing import Annotated, Dict, List

from fastapi import APIRouter, Depends, Query

from .dependencies import get_content_client, get_discussions_client, get_reading_history
from .models import ChapterPage
from ..content.discussions import DiscussionsClient
from ..content.filters import ALL_CATEGORIES, categories, chapter_nav, filter_books, filter_posts
from ..content.github_client import GitHubContentClient
from ..content.models import Book, BookDetail, DevPost, DevPostDetail
from ..store import ReadingHistory

router = APIRouter(prefix="/api", tags=["content"])

ContentClient = Annotated[GitHubContentClient, Depends(get_content_client)]


# ---------------------------------------------------------------------
# Books
# ---------------------------------------------------------------------

@router.get("/books", response_model=List[Book], summary="List books")
async def list_books(
    client: ContentClient,
    category: str = Query(ALL_CATEGORIES),
    q: str = Query(""),
) -> List[Book]:
    books = await client.list_books()
    return filter_books(books, category=category, query=q)


@router.get("/books/categories", response_model=List[str], summary="Book categories")
async def book_categories(client: ContentClient) -> List[str]:
    books = await client.list_books()
    return categories(b.category for b in books)


@router.get("/books/{slug}", response_model=BookDetail, summary="Book detail with chapters")
async def book_detail(
    slug: str,
    client: ContentClient,
    discussions: Annotated[DiscussionsClient, Depends(get_discussions_client)],
) -> BookDetail:
    """
    Book metadata, chapter lists and per-chapter comment counts.
    """
    book, counts = await asyncio.gather(
        client.get_book_detail(slug),
        discussions.book_comment_counts(slug),
    )
    return book.model_copy(update={"comment_counts": counts})


@router.get(
    "/books/{slug}/read/{chapter_path:path}",
    response_model=ChapterPage,
    summary="Read one chapter",
)
async def read_chapter(
    slug: str,
    chapter_path: str,
    client: ContentClient,
    history: Annotated[ReadingHistory, Depends(get_reading_history)],
) -> ChapterPage:
    """
    Chapter body plus previous/next navigation. Successful reads are added
    to the reading history.
    """
    chapter, book = await asyncio.gather(
        client.get_chapter_content(slug, chapter_path),
        client.get_book_detail(slug),
    )
    await asyncio.to_thread(
        history.record, slug, chapter_path, book_title=book.title, chapter_title=chapter.title,
    )

    return ChapterPage(
        chapter=chapter,
        book_title=book.title,
        nav=chapter_nav(book, chapter_path),
    )


# ---------------------------------------------------------------------
# Dev posts
# ---------------------------------------------------------------------

@router.get("/posts", response_model=List[DevPost], summary="List dev posts")
async def list_posts(
    client: ContentClient,
    category: str = Query(ALL_CATEGORIES),
    q: str = Query(""),
) -> List[DevPost]:
    posts = await client.list_dev_posts()
    return filter_posts(posts, category=category, query=q)


@router.get("/posts/categories", response_model=List[str], summary="Dev post categories")
async def post_categories(client: ContentClient) -> List[str]:
    posts = await client.list_dev_posts()
    return categories(p.category for p in posts)


@router.get("/posts/comments", response_model=Dict[str, int], summary="Comment counts per dev post")
async def post_comment_counts(
    discussions: Annotated[DiscussionsClient, Depends(get_discussions_client)],
) -> Dict[str, int]:
    """Keyed by ``<category>/<slug>``."""
    return await discussions.post_comment_counts()


@router.get("/posts/{category}/{slug}", response_model=DevPostDetail, summary="Read one dev post")
async def read_post(category: str, slug: str, client: ContentClient) -> DevPostDetail:
    return await client.get_dev_post(category, slug)
