"""
API Models

Pydantic models for request/response bodies that are not plain content
models. Field names are camelCase on the wire.
"""

from __future__ import annotations

from typing import List

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..content.models import ChapterContent, ChapterNav
from ..search.models import IndexProgress, IndexState, SearchResult


_WIRE = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------
# Content
# ---------------------------------------------------------------------

class ChapterPage(BaseModel):
    """
    Everything the reader page needs for one chapter.
    """
    chapter: ChapterContent
    book_title: str
    nav: ChapterNav

    model_config = _WIRE


# ---------------------------------------------------------------------
# Search
# ---------------------------------------------------------------------

class IndexStatus(BaseModel):
    state: IndexState
    progress: IndexProgress
    chapters: int = Field(..., ge=0)

    model_config = _WIRE


class SearchResponse(BaseModel):
    query: str
    results: List[SearchResult]
    index: IndexStatus

    model_config = _WIRE


# ---------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------

class LoginRequest(BaseModel):
    password: str

    model_config = ConfigDict(extra="forbid")


class LoginResponse(BaseModel):
    success: bool = True
    token: str


# ---------------------------------------------------------------------
# Views
# ---------------------------------------------------------------------

class ViewCount(BaseModel):
    count: str = "0"


class ViewsBatchRequest(BaseModel):
    paths: List[str] = Field(default_factory=list)

