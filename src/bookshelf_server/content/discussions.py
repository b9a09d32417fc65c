"""
GitHub Discussions (giscus) Client

Comments and the guestbook live in GitHub Discussions, created by giscus.
Discussion titles bind threads to content:

    book/<slug>/read/<chapterPath>   chapter comments
    post/<category>/<slug>           dev post comments
    guestbook                        free-form guestbook

Every operation degrades to an empty result when no token is configured or
the GraphQL call fails; comment data is never critical to page rendering.
"""

from __future__ import annotations

import logging
import math
from typing import Any, Dict, List, Optional
from urllib.parse import unquote

import httpx

from ..config import settings

logger = logging.getLogger("bookshelf.discussions")

GUESTBOOK_TITLE = "guestbook"
GUESTBOOK_PAGE_SIZE = 10

_COUNTS_QUERY = """
query($owner: String!, $name: String!, $categoryId: ID!) {
  repository(owner: $owner, name: $name) {
    discussions(first: 100, categoryId: $categoryId) {
      nodes {
        title
        comments { totalCount }
      }
    }
  }
}
"""

_GUESTBOOK_QUERY = """
query($owner: String!, $name: String!, $categoryId: ID!) {
  repository(owner: $owner, name: $name) {
    discussions(first: 10, categoryId: $categoryId) {
      nodes {
        title
        comments(last: 100) {
          totalCount
          nodes {
            author { login avatarUrl }
            body
            createdAt
          }
        }
      }
    }
  }
}
"""


def normalize_discussion_title(title: str) -> str:
    """Strip a leading ``/`` and percent-decode the title."""
    return unquote(title[1:] if title.startswith("/") else title)


def count_by_prefix(discussions: List[Dict[str, Any]], prefix: str) -> Dict[str, int]:
    """
    Sum comment counts of discussions whose title starts with ``prefix``,
    keyed by the remainder of the title.
    """
    counts: Dict[str, int] = {}
    for discussion in discussions:
        title = normalize_discussion_title(discussion.get("title") or "")
        if not title.startswith(prefix):
            continue
        key = title[len(prefix):]
        total = (discussion.get("comments") or {}).get("totalCount") or 0
        counts[key] = counts.get(key, 0) + total
    return counts


def paginate_guestbook(nodes: List[Dict[str, Any]], page: int) -> Dict[str, Any]:
    """
    Newest-first page of guestbook comments.

    ``page`` is clamped to ``[1, totalPages]``.
    """
    comments = [
        {
            "author": (node.get("author") or {}).get("login") or "anonymous",
            "avatar": (node.get("author") or {}).get("avatarUrl") or "",
            "body": node.get("body") or "",
            "createdAt": node.get("createdAt"),
        }
        for node in nodes
    ]
    comments.reverse()

    total_pages = math.ceil(len(comments) / GUESTBOOK_PAGE_SIZE)
    safe_page = min(max(1, page), max(1, total_pages))
    start = (safe_page - 1) * GUESTBOOK_PAGE_SIZE

    return {
        "comments": comments[start:start + GUESTBOOK_PAGE_SIZE],
        "page": safe_page,
        "totalPages": total_pages,
    }


class DiscussionsClient:
    """
    GraphQL client for the discussion repository/category used by giscus.
    """

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self.graphql_url = str(settings.github_api_base_url).rstrip("/") + "/graphql"
        self._transport = transport

    @property
    def enabled(self) -> bool:
        return settings.github_token is not None

    async def _discussions(self, query: str) -> List[Dict[str, Any]]:
        """
        Run a discussions query and return the discussion nodes.

        Raises ``httpx.HTTPError`` on transport/status failure; callers
        decide how to degrade.
        """
        token = settings.github_token.get_secret_value()
        payload = {
            "query": query,
            "variables": {
                "owner": settings.github_owner,
                "name": settings.discussion_repo,
                "categoryId": settings.discussion_category_id,
            },
        }
        async with httpx.AsyncClient(
            timeout=settings.http_timeout_seconds,
            transport=self._transport,
        ) as client:
            resp = await client.post(
                self.graphql_url,
                json=payload,
                headers={"Authorization": f"Bearer {token}"},
            )
        resp.raise_for_status()
        data = resp.json()
        return (
            ((data.get("data") or {}).get("repository") or {})
            .get("discussions", {})
            .get("nodes")
            or []
        )

    async def _counts(self, prefix: str) -> Dict[str, int]:
        if not self.enabled:
            return {}
        try:
            nodes = await self._discussions(_COUNTS_QUERY)
        except (httpx.HTTPError, ValueError, AttributeError) as exc:
            logger.warning("Discussion counts unavailable (%s)", type(exc).__name__)
            return {}
        return count_by_prefix(nodes, prefix)

    async def book_comment_counts(self, book_slug: str) -> Dict[str, int]:
        """Comment counts per chapter path for one book."""
        return await self._counts(f"book/{book_slug}/read/")

    async def post_comment_counts(self) -> Dict[str, int]:
        """Comment counts keyed by ``<category>/<slug>``."""
        return await self._counts("post/")

    async def guestbook(self, page: int = 1) -> Dict[str, Any]:
        """
        One page of guestbook comments, newest first.
        """
        empty = {"comments": [], "page": 1, "totalPages": 0}
        if not self.enabled:
            return empty

        try:
            nodes = await self._discussions(_GUESTBOOK_QUERY)
        except (httpx.HTTPError, ValueError, AttributeError) as exc:
            logger.warning("Guestbook unavailable (%s)", type(exc).__name__)
            return empty

        guestbook = next((d for d in nodes if d.get("title") == GUESTBOOK_TITLE), None)
        if guestbook is None:
            return empty

        return paginate_guestbook((guestbook.get("comments") or {}).get("nodes") or [], page)
