"""
GitHub Content Repository Client

This module translates the hierarchical listing of a GitHub repository used
as a headless CMS into typed book, chapter and dev-post structures.

Repository Layout
-----------------
    books/<slug>/info.json              book metadata
    books/<slug>/cover.<img>            optional cover
    books/<slug>/01-intro.md            root chapter
    books/<slug>/<folder>/03-x.md       grouped chapter
    dev/<category>/<post>.md            flat dev post
    dev/<category>/<post>/<any>.md      folder dev post (+ optional cover)

Failure Semantics
-----------------
- A failed top-level listing raises ``ContentUnavailable``.
- A failed item inside a listing (one book's metadata, one subfolder, one
  commit lookup, one post) degrades to a fallback or empty value.
- A chapter/post that resolves in neither flat nor folder form raises
  ``ChapterNotFound`` / ``PostNotFound``.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import quote

import httpx

from ..config import settings
from ..core.errors import (
    ChapterNotFound,
    ContentError,
    ContentNotFound,
    ContentUnavailable,
    PartialFetchFailure,
    PostNotFound,
)
from .models import Book, BookDetail, ChapterContent, ChapterRef, DevPost, DevPostDetail
from .parsing import (
    chapter_order,
    decode_base64_content,
    decode_git_quoted_name,
    find_cover,
    find_markdown,
    format_chapter_name,
    format_commit_date,
    format_folder_label,
    parse_frontmatter,
    slug_to_title,
    strip_md_extension,
)

logger = logging.getLogger("bookshelf.github")

# Errors that mean "this one item could not be read" at any call site.
_ITEM_ERRORS = (httpx.HTTPError, ContentError, KeyError, IndexError, TypeError, ValueError)


# ---------------------------------------------------------------------
# Ordering helpers
# ---------------------------------------------------------------------

def sort_books(books: List[Book]) -> List[Book]:
    """
    Newest first when every book carries a date, otherwise by title.
    """
    if books and all(b.date for b in books):
        return sorted(books, key=lambda b: b.date.replace("/", "-"), reverse=True)
    return sorted(books, key=lambda b: (b.title or "").casefold())


def sort_posts(posts: List[DevPost]) -> List[DevPost]:
    """
    Dated posts newest first, then undated posts by title.
    """
    dated = sorted(
        (p for p in posts if p.date),
        key=lambda p: (p.date, p.title.casefold()),
        reverse=True,
    )
    undated = sorted((p for p in posts if not p.date), key=lambda p: p.title.casefold())
    return dated + undated


def _meta_str(meta: Dict[str, Any], key: str) -> str:
    value = meta.get(key)
    return value if isinstance(value, str) else ""


def _meta_list(meta: Dict[str, Any], key: str) -> List[str]:
    value = meta.get(key)
    return list(value) if isinstance(value, list) else []


# ---------------------------------------------------------------------
# Client
# ---------------------------------------------------------------------

class GitHubContentClient:
    """
    Async client for the GitHub Contents and Commits REST APIs.
    """

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        """
        Parameters
        ----------
        transport : Optional[httpx.AsyncBaseTransport]
            Transport override, e.g. ``httpx.MockTransport`` in tests.
        """
        self.base_url = str(settings.github_api_base_url).rstrip("/")
        self.books_path = settings.github_books_path.strip("/")
        self.dev_path = settings.github_dev_path.strip("/")
        self._repo_prefix = f"/repos/{settings.github_owner}/{settings.github_repo}"
        self._transport = transport

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/vnd.github.v3+json"}
        if settings.github_token:
            headers["Authorization"] = f"Bearer {settings.github_token.get_secret_value()}"
        return headers

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers=self._headers(),
            timeout=settings.http_timeout_seconds,
            transport=self._transport,
        )

    def _contents_url(self, repo_path: str) -> str:
        encoded = "/".join(quote(part, safe="") for part in repo_path.split("/") if part)
        return f"{self._repo_prefix}/contents/{encoded}"

    async def _get(self, url: str, params: Optional[Dict[str, Any]] = None) -> httpx.Response:
        async with self._client() as client:
            resp = await client.get(url, params=params)
        resp.raise_for_status()
        return resp

    async def _list_dir(self, repo_path: str) -> List[Dict[str, Any]]:
        data = (await self._get(self._contents_url(repo_path))).json()
        if not isinstance(data, list):
            raise ContentNotFound(f"Not a directory: {repo_path}")
        return data

    async def _read_file(self, repo_path: str) -> Tuple[str, str]:
        """Return ``(decoded file name, decoded text)`` for a repository file."""
        data = (await self._get(self._contents_url(repo_path))).json()
        if not isinstance(data, dict) or "content" not in data:
            raise ContentNotFound(f"Not a file: {repo_path}")
        name = decode_git_quoted_name(data.get("name", ""))
        return name, decode_base64_content(data["content"])

    async def rate_limit(self) -> Optional[Dict[str, Any]]:
        """Core REST rate limit (``limit``, ``remaining``, ``reset``), or None."""
        if not settings.github_token:
            return None
        try:
            data = (await self._get("/rate_limit")).json()
            return data["resources"]["core"]
        except _ITEM_ERRORS as exc:
            logger.warning("Rate limit lookup failed (%s)", type(exc).__name__)
            return None

    # ------------------------------------------------------------------
    # Books
    # ------------------------------------------------------------------

    async def list_books(self) -> List[Book]:
        """
        List every book folder with its metadata.

        Raises
        ------
        ContentUnavailable
            If the books root listing cannot be fetched.
        """
        try:
            entries = await self._list_dir(self.books_path)
        except (httpx.HTTPError, ContentError, ValueError) as exc:
            logger.error("Book listing failed (%s)", type(exc).__name__)
            raise ContentUnavailable(
                f"Book listing unavailable: {type(exc).__name__}"
            ) from exc

        slugs = [
            decode_git_quoted_name(e["name"])
            for e in entries
            if e.get("type") == "dir"
        ]
        books = await asyncio.gather(*(self._load_book(slug) for slug in slugs))
        return sort_books(list(books))

    async def _load_book(self, slug: str) -> Book:
        try:
            files = await self._list_dir(f"{self.books_path}/{slug}")
            decoded = [{**f, "name": decode_git_quoted_name(f.get("name", ""))} for f in files]

            info: Dict[str, Any] = {"title": slug_to_title(slug)}
            if any(f["name"] == "info.json" for f in decoded):
                _, raw = await self._read_file(f"{self.books_path}/{slug}/info.json")
                info = json.loads(raw)

            return Book.model_validate({"cover": find_cover(decoded), **info, "slug": slug})
        except _ITEM_ERRORS as exc:
            logger.warning("Metadata for book %r unavailable (%s)", slug, type(exc).__name__)
            return Book(slug=slug, title=slug_to_title(slug), cover="")

    async def list_chapter_files(self, book_slug: str) -> List[ChapterRef]:
        """
        List a book's chapter files in discovery order.

        Root chapters come first, followed by each subfolder's chapters.

        Raises
        ------
        ContentUnavailable
            If the book folder itself cannot be listed.
        """
        entries = await self._list_book_folder(book_slug)
        return await self._collect_chapters(book_slug, entries)

    async def _list_book_folder(self, book_slug: str) -> List[Dict[str, Any]]:
        try:
            return await self._list_dir(f"{self.books_path}/{book_slug}")
        except (httpx.HTTPError, ContentError, ValueError) as exc:
            logger.error("Listing for book %r failed (%s)", book_slug, type(exc).__name__)
            raise ContentUnavailable(
                f"Book {book_slug!r} unavailable: {type(exc).__name__}"
            ) from exc

    async def _collect_chapters(
        self,
        book_slug: str,
        entries: List[Dict[str, Any]],
    ) -> List[ChapterRef]:
        chapters: List[ChapterRef] = []
        sub_dirs: List[str] = []

        for entry in entries:
            name = decode_git_quoted_name(entry.get("name", ""))
            if entry.get("type") == "file" and name.endswith(".md") and name != "index.md":
                chapters.append(
                    ChapterRef(
                        name=format_chapter_name(name),
                        path=strip_md_extension(name),
                        file_name=name,
                        file_path=f"{self.books_path}/{book_slug}/{name}",
                        order=chapter_order(name),
                    )
                )
            elif entry.get("type") == "dir":
                sub_dirs.append(name)

        grouped = await asyncio.gather(
            *(self._folder_chapters(book_slug, folder) for folder in sub_dirs)
        )
        for group in grouped:
            chapters.extend(group)

        return chapters

    async def _folder_chapters(self, book_slug: str, folder: str) -> List[ChapterRef]:
        try:
            entries = await self._list_dir(f"{self.books_path}/{book_slug}/{folder}")
        except _ITEM_ERRORS as exc:
            logger.warning(
                "Chapter folder %s/%s unavailable (%s)",
                book_slug,
                folder,
                type(exc).__name__,
            )
            return []

        label = format_folder_label(folder)
        refs: List[ChapterRef] = []
        for entry in entries:
            name = decode_git_quoted_name(entry.get("name", ""))
            if entry.get("type") != "file" or not name.endswith(".md"):
                continue
            refs.append(
                ChapterRef(
                    name=format_chapter_name(name),
                    path=f"{folder}/{strip_md_extension(name)}",
                    file_name=name,
                    file_path=f"{self.books_path}/{book_slug}/{folder}/{name}",
                    order=chapter_order(name),
                    folder=label,
                )
            )
        return refs

    async def get_book_detail(self, slug: str) -> BookDetail:
        """
        Fetch a book with its chapters partitioned into root and folder groups.

        Each list is sorted by chapter order; ties keep discovery order.
        Per-chapter dates are looked up concurrently and fall back to ``""``.
        """
        entries = await self._list_book_folder(slug)
        decoded = [{**e, "name": decode_git_quoted_name(e.get("name", ""))} for e in entries]

        info: Dict[str, Any] = {"title": slug}
        if any(e["name"] == "info.json" for e in decoded):
            try:
                _, raw = await self._read_file(f"{self.books_path}/{slug}/info.json")
                info = json.loads(raw)
            except _ITEM_ERRORS as exc:
                logger.warning("info.json for %r unreadable (%s)", slug, type(exc).__name__)

        chapters = await self._collect_chapters(slug, entries)
        chapters = list(await asyncio.gather(*(self._with_last_modified(ch) for ch in chapters)))

        root_chapters = sorted((c for c in chapters if not c.folder), key=lambda c: c.order)
        folder_groups: Dict[str, List[ChapterRef]] = {}
        for chapter in sorted((c for c in chapters if c.folder), key=lambda c: c.order):
            folder_groups.setdefault(chapter.folder, []).append(chapter)

        fields = {
            "slug": slug,
            "root_chapters": root_chapters,
            "folder_groups": folder_groups,
            "total_chapters": len(chapters),
        }
        try:
            return BookDetail.model_validate({"cover": find_cover(decoded), **info, **fields})
        except (TypeError, ValueError) as exc:
            logger.warning("info.json for %r malformed (%s)", slug, type(exc).__name__)
            return BookDetail.model_validate({"cover": find_cover(decoded), "title": slug, **fields})

    async def _with_last_modified(self, chapter: ChapterRef) -> ChapterRef:
        try:
            resp = await self._get(
                f"{self._repo_prefix}/commits",
                params={"path": chapter.file_path, "per_page": 1},
            )
            commits = resp.json()
            date = format_commit_date(commits[0]["commit"]["committer"]["date"]) if commits else ""
        except _ITEM_ERRORS as exc:
            logger.warning("Commit date for %s unavailable (%s)", chapter.file_path, type(exc).__name__)
            date = ""
        return chapter.model_copy(update={"date": date})

    # ------------------------------------------------------------------
    # Chapters
    # ------------------------------------------------------------------

    async def fetch_markdown(self, file_path: str) -> str:
        """
        Fetch and decode one markdown file by repository path.

        Raises
        ------
        PartialFetchFailure
            If the file cannot be fetched or decoded.
        """
        try:
            _, text = await self._read_file(file_path)
        except _ITEM_ERRORS as exc:
            raise PartialFetchFailure(
                f"Failed to fetch {file_path}: {type(exc).__name__}"
            ) from exc
        return text

    async def get_commit_dates(self, file_path: str) -> Tuple[str, str]:
        """
        Return ``(created_at, updated_at)`` ISO timestamps for a file.

        The newest commit comes from ``per_page=1``; when the response is
        paginated, the page named by ``rel="last"`` holds the creation
        commit. Any failure yields ``("", "")``.
        """
        url = f"{self._repo_prefix}/commits"
        params: Dict[str, Any] = {"path": file_path, "per_page": 1}
        try:
            resp = await self._get(url, params=params)
            commits = resp.json()
            if not commits:
                return "", ""

            updated_at = commits[0]["commit"]["committer"]["date"]
            created_at = updated_at

            last_url = resp.links.get("last", {}).get("url")
            last_page = httpx.URL(last_url).params.get("page") if last_url else None
            if last_page:
                first = (await self._get(url, params={**params, "page": last_page})).json()
                if first:
                    created_at = first[0]["commit"]["committer"]["date"]

            return created_at, updated_at
        except _ITEM_ERRORS as exc:
            logger.warning("Commit history for %s unavailable (%s)", file_path, type(exc).__name__)
            return "", ""

    async def get_chapter_content(self, book_slug: str, chapter_path: str) -> ChapterContent:
        """
        Fetch one chapter's markdown body and commit dates.

        The flat file ``<chapter_path>.md`` is tried first, then a folder
        ``<chapter_path>/`` holding a markdown file (``index.md`` preferred).

        Raises
        ------
        ChapterNotFound
            If neither form resolves.
        """
        base = f"{self.books_path}/{book_slug}/{chapter_path}"
        default_title = format_chapter_name(chapter_path.rsplit("/", 1)[-1] + ".md")

        try:
            file_name, raw = await self._read_file(f"{base}.md")
            md_path = f"{base}.md"
            default_title = format_chapter_name(file_name)
        except _ITEM_ERRORS:
            try:
                entries = await self._list_dir(base)
                decoded = [{**e, "name": decode_git_quoted_name(e.get("name", ""))} for e in entries]
                md_entry = find_markdown(decoded, prefer="index.md")
                if md_entry is None:
                    raise ContentNotFound(f"No markdown file in {base}")
                md_path = f"{base}/{md_entry['name']}"
                file_name, raw = await self._read_file(md_path)
            except _ITEM_ERRORS as exc:
                raise ChapterNotFound(
                    f"Chapter not found: {book_slug}/{chapter_path}"
                ) from exc

        created_at, updated_at = await self.get_commit_dates(md_path)
        meta, body = parse_frontmatter(raw)

        return ChapterContent(
            book_slug=book_slug,
            path=chapter_path,
            file_name=file_name,
            title=_meta_str(meta, "title") or default_title,
            content=body,
            created_at=format_commit_date(created_at),
            updated_at=format_commit_date(updated_at),
        )

    # ------------------------------------------------------------------
    # Dev posts
    # ------------------------------------------------------------------

    async def list_dev_posts(self) -> List[DevPost]:
        """
        List dev posts across every category folder.

        Never raises: a failed root listing yields an empty list and failed
        categories or posts are skipped.
        """
        try:
            categories = await self._list_dir(self.dev_path)
        except _ITEM_ERRORS as exc:
            logger.warning("Dev post listing unavailable (%s)", type(exc).__name__)
            return []

        groups = await asyncio.gather(*(
            self._category_posts(decode_git_quoted_name(c.get("name", "")))
            for c in categories
            if c.get("type") == "dir"
        ))
        return sort_posts([post for group in groups for post in group])

    async def list_dev_post_entries(self) -> List[Tuple[str, str]]:
        """
        Return ``(category, slug)`` for every flat ``.md`` dev post.

        Cheaper than ``list_dev_posts`` since no post body is fetched.
        """
        try:
            categories = await self._list_dir(self.dev_path)
        except _ITEM_ERRORS as exc:
            logger.warning("Dev post listing unavailable (%s)", type(exc).__name__)
            return []

        found: List[Tuple[str, str]] = []
        for category in categories:
            if category.get("type") != "dir":
                continue
            cat_name = decode_git_quoted_name(category.get("name", ""))
            try:
                files = await self._list_dir(f"{self.dev_path}/{cat_name}")
            except _ITEM_ERRORS:
                continue
            for entry in files:
                name = decode_git_quoted_name(entry.get("name", ""))
                if entry.get("type") == "file" and name.endswith(".md"):
                    found.append((cat_name, strip_md_extension(name)))
        return found

    async def _category_posts(self, category: str) -> List[DevPost]:
        try:
            entries = await self._list_dir(f"{self.dev_path}/{category}")
        except _ITEM_ERRORS as exc:
            logger.warning("Dev category %r unavailable (%s)", category, type(exc).__name__)
            return []

        posts = await asyncio.gather(*(self._load_post(category, e) for e in entries))
        return [p for p in posts if p is not None]

    async def _load_post(self, category: str, entry: Dict[str, Any]) -> Optional[DevPost]:
        name = decode_git_quoted_name(entry.get("name", ""))
        folder = f"{self.dev_path}/{category}/{name}"
        try:
            if entry.get("type") == "file" and name.endswith(".md"):
                _, raw = await self._read_file(folder)
                meta, _ = parse_frontmatter(raw)
                return self._post_from_meta(meta, strip_md_extension(name), category, cover="")

            if entry.get("type") == "dir":
                files = await self._list_dir(folder)
                decoded = [{**f, "name": decode_git_quoted_name(f.get("name", ""))} for f in files]
                md_entry = find_markdown(decoded)
                if md_entry is None:
                    return None
                _, raw = await self._read_file(f"{folder}/{md_entry['name']}")
                meta, _ = parse_frontmatter(raw)
                return self._post_from_meta(meta, name, category, cover=find_cover(decoded))
        except _ITEM_ERRORS as exc:
            logger.warning("Dev post %s unavailable (%s)", folder, type(exc).__name__)
        return None

    @staticmethod
    def _post_from_meta(meta: Dict[str, Any], slug: str, category: str, cover: str) -> DevPost:
        return DevPost(
            slug=slug,
            category=category,
            title=_meta_str(meta, "title") or slug,
            date=_meta_str(meta, "date"),
            tags=_meta_list(meta, "tags"),
            description=_meta_str(meta, "description"),
            cover=cover,
        )

    async def get_dev_post(self, category: str, slug: str) -> DevPostDetail:
        """
        Fetch one dev post: folder form first, flat ``<slug>.md`` second.

        Raises
        ------
        PostNotFound
            If neither form resolves.
        """
        folder = f"{self.dev_path}/{category}/{slug}"
        cover = ""
        try:
            files = await self._list_dir(folder)
            decoded = [{**f, "name": decode_git_quoted_name(f.get("name", ""))} for f in files]
            md_entry = find_markdown(decoded)
            if md_entry is None:
                raise ContentNotFound(f"No markdown file in {folder}")
            cover = find_cover(decoded)
            md_path = f"{folder}/{md_entry['name']}"
            _, raw = await self._read_file(md_path)
        except _ITEM_ERRORS:
            md_path = f"{folder}.md"
            try:
                _, raw = await self._read_file(md_path)
            except _ITEM_ERRORS as exc:
                raise PostNotFound(f"Post not found: {category}/{slug}") from exc

        created_at, updated_at = await self.get_commit_dates(md_path)
        meta, body = parse_frontmatter(raw)
        post = self._post_from_meta(meta, slug, category, cover)

        return DevPostDetail(
            **post.model_dump(),
            content=body,
            created_at=format_commit_date(created_at),
            updated_at=format_commit_date(updated_at),
        )
