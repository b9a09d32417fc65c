"""
Listing filters and chapter navigation used by the content routes.
"""

from __future__ import annotations

from typing import Iterable, List, Optional

from .models import Book, BookDetail, ChapterNav, DevPost

ALL_CATEGORIES = "all"


def _matches(query: str, *fields: Optional[str], tags: Iterable[str] = ()) -> bool:
    q = query.lower()
    return any(q in (f or "").lower() for f in fields) or any(q in t.lower() for t in tags)


def filter_books(books: List[Book], category: str = ALL_CATEGORIES, query: str = "") -> List[Book]:
    return [
        book for book in books
        if (category == ALL_CATEGORIES or book.category == category)
        and (not query or _matches(query, book.title, book.author, tags=book.tags))
    ]


def filter_posts(posts: List[DevPost], category: str = ALL_CATEGORIES, query: str = "") -> List[DevPost]:
    return [
        post for post in posts
        if (category == ALL_CATEGORIES or post.category == category)
        and (not query or _matches(query, post.title, post.description, tags=post.tags))
    ]


def categories(values: Iterable[Optional[str]]) -> List[str]:
    """``["all", *sorted distinct non-empty values]``."""
    return [ALL_CATEGORIES, *sorted({v for v in values if v})]


def chapter_nav(book: BookDetail, chapter_path: str) -> ChapterNav:
    """
    Previous/next chapter across root and grouped chapters, by order.
    """
    all_chapters = list(book.root_chapters)
    for group in book.folder_groups.values():
        all_chapters.extend(group)
    all_chapters.sort(key=lambda c: c.order)

    index = next((i for i, c in enumerate(all_chapters) if c.path == chapter_path), None)
    if index is None:
        return ChapterNav()

    return ChapterNav(
        prev=all_chapters[index - 1] if index > 0 else None,
        next=all_chapters[index + 1] if index < len(all_chapters) - 1 else None,
    )
