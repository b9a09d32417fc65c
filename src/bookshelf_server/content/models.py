"""
Content Data Models

Typed structures produced by the content client from the GitHub content
repository: books, chapter references, chapter bodies and dev posts.

All models serialize with camelCase aliases so the JSON shape matches what
the reading site's front-end consumes (``totalChapters``, ``rootChapters``,
``createdAt`` ...).
"""

from __future__ import annotations

from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


_WIRE = ConfigDict(
    alias_generator=to_camel,
    populate_by_name=True,
    extra="ignore",
)


class Book(BaseModel):
    """
    A book folder in the content repository.

    Metadata comes from the folder's ``info.json``; ``slug`` is the decoded
    directory name.
    """

    slug: str = Field(..., min_length=1)
    title: str = ""
    author: Optional[str] = None
    cover: str = ""
    status: Optional[str] = None
    category: Optional[str] = None
    description: Optional[str] = None
    date: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    rating: Optional[float] = Field(default=None, ge=0, le=5)
    total_chapters: int = Field(default=0, ge=0)

    model_config = ConfigDict(**_WIRE, frozen=True)


class ChapterRef(BaseModel):
    """
    Reference to a chapter file within a book.

    ``path`` is unique within the book: the filename without ``.md`` for
    root chapters, ``folder/name`` for subfolder chapters.
    """

    name: str
    path: str = Field(..., min_length=1)
    file_name: str
    file_path: str = Field(..., description="Repository path of the markdown file.")
    order: int = 999
    folder: Optional[str] = Field(
        default=None,
        description="Display label of the subfolder group, if any.",
    )
    date: str = Field(default="", description="Last commit date (YYYY/MM/DD).")

    model_config = _WIRE


class BookDetail(Book):
    """
    A book with its chapter lists.
    """

    root_chapters: List[ChapterRef] = Field(default_factory=list)
    folder_groups: Dict[str, List[ChapterRef]] = Field(default_factory=dict)
    comment_counts: Dict[str, int] = Field(default_factory=dict)


class ChapterContent(BaseModel):
    """
    A single chapter body with its commit dates.
    """

    book_slug: str
    path: str
    file_name: str
    title: str
    content: str = Field(..., description="Raw markdown body (frontmatter removed).")
    created_at: str = ""
    updated_at: str = ""

    model_config = _WIRE


class DevPost(BaseModel):
    """
    A developer post listed under ``dev/<category>/``.
    """

    slug: str
    category: str
    title: str
    date: str = ""
    tags: List[str] = Field(default_factory=list)
    description: str = ""
    cover: str = ""

    model_config = _WIRE


class DevPostDetail(DevPost):
    content: str = ""
    created_at: str = ""
    updated_at: str = ""


class ChapterNav(BaseModel):
    prev: Optional[ChapterRef] = None
    next: Optional[ChapterRef] = None

    model_config = _WIRE
