"""
Visit Statistics Aggregation

Builds the public dashboard (visitors plus the most viewed posts and books)
and the admin statistics page from GoatCounter and GitHub data.

Design Goals
------------
- Every upstream call may fail independently; missing data becomes zeros or
  empty lists, never an error.
- Day boundaries are UTC midnights.
"""

from __future__ import annotations

import asyncio
import re
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional
from urllib.parse import unquote

from ..content.github_client import GitHubContentClient
from .goatcounter import GoatCounterClient

ALL_TIME_START = datetime(2020, 1, 1, tzinfo=timezone.utc)
TOP_POSTS_LIMIT = 10
TOP_BOOKS_LIMIT = 3
BREAKDOWNS = ("browsers", "systems", "locations", "languages")

_BOOK_PATH = re.compile(r"^/book/([^/]+)")


def _today_start(now: datetime) -> datetime:
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


def visitor_summary(
    recent: Optional[Dict[str, Any]],
    all_time: Optional[Dict[str, Any]],
    today_start: datetime,
) -> Dict[str, int]:
    """
    Today's and yesterday's daily visitors plus the all-time total.
    """
    stats = (recent or {}).get("stats") or []
    by_day = {s.get("day"): s.get("daily") or 0 for s in stats}
    yesterday = today_start - timedelta(days=1)

    return {
        "today": by_day.get(today_start.date().isoformat(), 0),
        "yesterday": by_day.get(yesterday.date().isoformat(), 0),
        "total": (all_time or {}).get("total") or 0,
    }


def top_posts(hits: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """The first ``TOP_POSTS_LIMIT`` hits under ``/post/``, in GoatCounter order."""
    posts = []
    for hit in hits:
        path = unquote(hit.get("path") or "")
        if not path.startswith("/post/"):
            continue
        posts.append({
            "path": path,
            "title": hit.get("title") or path,
            "count": hit.get("count") or 0,
        })
        if len(posts) >= TOP_POSTS_LIMIT:
            break
    return posts


def top_books(hits: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """
    Views summed per ``/book/<slug>`` prefix, most viewed first.

    The title comes from the book's landing page hit when present, else
    from the first hit seen for that book.
    """
    books: Dict[str, Dict[str, Any]] = {}
    for hit in hits:
        path = unquote(hit.get("path") or "")
        match = _BOOK_PATH.match(path)
        if not match:
            continue
        slug = match.group(1)
        entry = books.setdefault(slug, {"slug": slug, "title": "", "count": 0})
        entry["count"] += hit.get("count") or 0
        if not entry["title"] or path == f"/book/{slug}":
            entry["title"] = hit.get("title") or slug

    ranked = sorted(books.values(), key=lambda b: b["count"], reverse=True)
    return ranked[:TOP_BOOKS_LIMIT]


async def build_public_dashboard(
    goatcounter: GoatCounterClient,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    ``{"visitors": {...}, "topPosts": [...], "topBooks": [...]}`` over the
    last week of hits.
    """
    now = now or datetime.now(timezone.utc)
    today_start = _today_start(now)
    week_ago = today_start - timedelta(days=7)

    recent, all_time, hits = await asyncio.gather(
        goatcounter.total(week_ago, now),
        goatcounter.total(ALL_TIME_START, now),
        goatcounter.hits(week_ago, now, limit=100),
    )
    hit_list = (hits or {}).get("hits") or []

    return {
        "visitors": visitor_summary(recent, all_time, today_start),
        "topPosts": top_posts(hit_list),
        "topBooks": top_books(hit_list),
    }


async def build_admin_stats(
    goatcounter: GoatCounterClient,
    github: GitHubContentClient,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Visitors, 90-day hits, audience breakdowns and the GitHub rate limit.

    Requests go out in three batches to stay friendly to GoatCounter's
    rate limit.
    """
    now = now or datetime.now(timezone.utc)
    today_start = _today_start(now)
    week_ago = today_start - timedelta(days=7)
    quarter_ago = today_start - timedelta(days=90)

    recent, all_time, hits = await asyncio.gather(
        goatcounter.total(week_ago, now),
        goatcounter.total(ALL_TIME_START, now),
        goatcounter.hits(quarter_ago, now, limit=20),
    )
    breakdowns = await asyncio.gather(
        *(goatcounter.breakdown(kind, quarter_ago, now, limit=10) for kind in BREAKDOWNS)
    )
    rate_limit = await github.rate_limit()

    stats: Dict[str, Any] = {
        "visitors": visitor_summary(recent, all_time, today_start),
        "hits": (hits or {}).get("hits") or [],
    }
    for kind, data in zip(BREAKDOWNS, breakdowns):
        stats[kind] = (data or {}).get("stats") or []
    stats["rateLimit"] = rate_limit
    return stats
