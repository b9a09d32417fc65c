"""
Sitemap Generation

Enumerates the site's public pages from the content repository and renders
them as a sitemaps.org XML document.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date
from typing import List, Optional
from urllib.parse import quote
from xml.sax.saxutils import escape

from ..core.errors import ContentError
from .github_client import GitHubContentClient

logger = logging.getLogger("bookshelf.sitemap")


@dataclass(frozen=True)
class SitemapUrl:
    loc: str
    changefreq: str
    priority: str


STATIC_PAGES = [
    SitemapUrl("/", "weekly", "1.0"),
    SitemapUrl("/books", "weekly", "0.8"),
    SitemapUrl("/books/reading", "weekly", "0.7"),
    SitemapUrl("/about", "monthly", "0.6"),
]


async def collect_sitemap_urls(client: GitHubContentClient) -> List[SitemapUrl]:
    """
    Static pages, then dev posts, then books and their chapters.

    A missing books listing only drops the book section.
    """
    urls = list(STATIC_PAGES)

    for category, slug in await client.list_dev_post_entries():
        urls.append(SitemapUrl(f"/post/{category}/{slug}", "weekly", "0.8"))

    try:
        books = await client.list_books()
    except ContentError as exc:
        logger.warning("Books omitted from sitemap: %s", exc)
        return urls

    for book in books:
        urls.append(SitemapUrl(f"/book/{book.slug}", "weekly", "0.7"))
        try:
            chapters = await client.list_chapter_files(book.slug)
        except ContentError as exc:
            logger.warning("Chapters of %r omitted from sitemap: %s", book.slug, exc)
            continue
        for chapter in chapters:
            urls.append(SitemapUrl(f"/book/{book.slug}/read/{chapter.path}", "monthly", "0.5"))

    return urls


def render_sitemap(urls: List[SitemapUrl], site_url: str, today: Optional[date] = None) -> str:
    lastmod = (today or date.today()).isoformat()
    base = site_url.rstrip("/")
    body = "\n".join(
        "  <url>\n"
        f"    <loc>{escape(base + quote(u.loc, safe='/:@!$&()*+,;=-._~'))}</loc>\n"
        f"    <lastmod>{lastmod}</lastmod>\n"
        f"    <changefreq>{u.changefreq}</changefreq>\n"
        f"    <priority>{u.priority}</priority>\n"
        "  </url>"
        for u in urls
    )
    return (
        '<?xml version="1.0" encoding="UTF-8"?>\n'
        '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">\n'
        f"{body}\n"
        "</urlset>"
    )
