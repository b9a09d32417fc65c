"""
Search Data Models

Records held by the content search index and the results derived from it.
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


_WIRE = ConfigDict(
    alias_generator=to_camel,
    populate_by_name=True,
    frozen=True,
)


class IndexState(str, Enum):
    EMPTY = "empty"
    BUILDING = "building"
    READY = "ready"


class IndexedChapter(BaseModel):
    """
    One chapter's searchable text.

    Exactly one record exists per (book_slug, chapter_path) that fetched
    successfully during a build.
    """

    book_slug: str
    book_title: str = ""
    chapter_path: str
    chapter_name: str = ""
    plain_text: str = Field(default="", description="Chapter body with markdown syntax removed.")

    model_config = _WIRE


class SearchResult(BaseModel):
    book_slug: str
    book_title: str = ""
    chapter_path: str
    chapter_name: str = ""
    snippet: str = ""

    model_config = _WIRE


class IndexProgress(BaseModel):
    done: int = 0
    total: int = 0

    model_config = _WIRE
