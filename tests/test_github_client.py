import base64

import httpx
import pytest

from bookshelf_server.config import settings
from bookshelf_server.content.github_client import GitHubContentClient, sort_books, sort_posts
from bookshelf_server.content.models import Book, DevPost
from bookshelf_server.core.errors import (
    ChapterNotFound,
    ContentUnavailable,
    PartialFetchFailure,
    PostNotFound,
)

REPO = f"/repos/{settings.github_owner}/{settings.github_repo}"
BOOKS = f"{REPO}/contents/{settings.github_books_path}"
DEV = f"{REPO}/contents/{settings.github_dev_path}"
COMMITS = f"{REPO}/commits"


def entry(name, kind="file", download_url=None):
    return {"name": name, "type": kind, "download_url": download_url}


def file_payload(name, text):
    return {"name": name, "content": base64.b64encode(text.encode("utf-8")).decode("ascii")}


def commit(date):
    return {"commit": {"committer": {"date": date}}}


class FakeGitHub:
    """Serves a dict of contents paths; anything else is a 404."""

    def __init__(self, routes, failing=(), commits=None):
        self.routes = routes
        self.failing = set(failing)
        self.commits = commits or {}
        self.requests = []

    def __call__(self, request):
        self.requests.append(request)
        path = request.url.path
        if path in self.failing:
            return httpx.Response(500, json={"message": "boom"})
        if path == COMMITS:
            return self.commit_response(request)
        if path in self.routes:
            return httpx.Response(200, json=self.routes[path])
        return httpx.Response(404, json={"message": "Not Found"})

    def commit_response(self, request):
        history = self.commits.get(request.url.params.get("path"), [])
        if not history:
            return httpx.Response(200, json=[])
        page = int(request.url.params.get("page", "1"))
        headers = {}
        if len(history) > 1 and page == 1:
            last = f"https://api.github.com{COMMITS}?per_page=1&page={len(history)}"
            headers["Link"] = f'<{last}>; rel="last"'
        return httpx.Response(200, json=[commit(history[page - 1])], headers=headers)


def make_client(fake):
    return GitHubContentClient(transport=httpx.MockTransport(fake))


@pytest.fixture
def library():
    routes = {
        BOOKS: [entry("clean-code", "dir"), entry("refactoring", "dir"), entry("README.md")],
        f"{BOOKS}/clean-code": [
            entry("info.json"),
            entry("cover.png", download_url="https://raw/clean-code/cover.png"),
            entry("01-intro.md"),
            entry("index.md"),
            entry("part-one", "dir"),
            entry("broken", "dir"),
        ],
        f"{BOOKS}/clean-code/info.json": file_payload(
            "info.json",
            '{"title": "Clean Code", "author": "Robert C. Martin", "date": "2023/01/01", "category": "dev"}',
        ),
        f"{BOOKS}/clean-code/01-intro.md": file_payload(
            "01-intro.md",
            "---\ntitle: Welcome\n---\n# Intro\nSOLID principles",
        ),
        f"{BOOKS}/clean-code/part-one": [entry("03-names.md"), entry("02-basics.md"), entry("diagram.png")],
        f"{BOOKS}/clean-code/part-one/02-basics.md": file_payload("02-basics.md", "basics"),
        f"{BOOKS}/clean-code/ch9": [entry("notes.md"), entry("index.md")],
        f"{BOOKS}/clean-code/ch9/index.md": file_payload("index.md", "folder chapter"),
    }
    return FakeGitHub(
        routes,
        failing={f"{BOOKS}/refactoring", f"{BOOKS}/clean-code/broken"},
        commits={
            "books/clean-code/01-intro.md": ["2024-03-05T10:00:00Z", "2024-02-01T09:00:00Z", "2024-01-10T08:00:00Z"],
            "books/clean-code/part-one/02-basics.md": ["2024-04-01T00:00:00Z"],
        },
    )


# ---------------------------------------------------------------------
# Books
# ---------------------------------------------------------------------

async def test_list_books_degrades_per_book(library):
    books = await make_client(library).list_books()

    assert [b.slug for b in books] == ["clean-code", "refactoring"]
    clean, refactoring = books
    assert clean.title == "Clean Code"
    assert clean.author == "Robert C. Martin"
    assert clean.cover == "https://raw/clean-code/cover.png"
    assert refactoring.title == "refactoring"
    assert refactoring.cover == ""


async def test_list_books_root_failure_is_unavailable():
    fake = FakeGitHub({}, failing={BOOKS})
    with pytest.raises(ContentUnavailable):
        await make_client(fake).list_books()


def test_sort_books_by_date_only_when_all_dated():
    dated = [Book(slug="a", title="A", date="2023/01/01"), Book(slug="b", title="B", date="2024/01/01")]
    assert [b.slug for b in sort_books(dated)] == ["b", "a"]

    mixed = [Book(slug="z", title="zeta", date="2024/01/01"), Book(slug="a", title="Alpha")]
    assert [b.slug for b in sort_books(mixed)] == ["a", "z"]


# ---------------------------------------------------------------------
# Chapters
# ---------------------------------------------------------------------

async def test_list_chapter_files_flattens_root_and_folders(library):
    chapters = await make_client(library).list_chapter_files("clean-code")

    assert [c.path for c in chapters] == ["01-intro", "part-one/03-names", "part-one/02-basics"]
    assert chapters[0].folder is None
    assert chapters[1].folder == "Part One"
    assert chapters[2].file_path == "books/clean-code/part-one/02-basics.md"


async def test_list_chapter_files_missing_book_is_unavailable(library):
    with pytest.raises(ContentUnavailable):
        await make_client(library).list_chapter_files("refactoring")


async def test_book_detail_groups_and_orders_chapters(library):
    detail = await make_client(library).get_book_detail("clean-code")

    assert detail.title == "Clean Code"
    assert detail.total_chapters == 3
    assert [c.path for c in detail.root_chapters] == ["01-intro"]
    assert [c.path for c in detail.folder_groups["Part One"]] == ["part-one/02-basics", "part-one/03-names"]
    assert detail.root_chapters[0].date == "2024/03/05"
    assert detail.folder_groups["Part One"][1].date == ""


async def test_book_detail_malformed_info_falls_back_to_slug(library):
    library.routes[f"{BOOKS}/clean-code/info.json"] = file_payload(
        "info.json", '{"title": "Clean Code", "tags": "x"}',
    )

    detail = await make_client(library).get_book_detail("clean-code")

    assert detail.title == "clean-code"
    assert detail.tags == []
    assert detail.cover == "https://raw/clean-code/cover.png"
    assert detail.total_chapters == 3


async def test_chapter_content_flat_form(library):
    chapter = await make_client(library).get_chapter_content("clean-code", "01-intro")

    assert chapter.title == "Welcome"
    assert chapter.content == "# Intro\nSOLID principles"
    assert chapter.updated_at == "2024/03/05"
    assert chapter.created_at == "2024/01/10"


async def test_chapter_content_folder_form_prefers_index(library):
    chapter = await make_client(library).get_chapter_content("clean-code", "ch9")

    assert chapter.file_name == "index.md"
    assert chapter.content == "folder chapter"
    assert chapter.title == "Ch9"
    assert chapter.created_at == ""


async def test_chapter_not_found(library):
    with pytest.raises(ChapterNotFound):
        await make_client(library).get_chapter_content("clean-code", "missing")


async def test_fetch_markdown_failure_is_partial(library):
    client = make_client(library)
    assert await client.fetch_markdown("books/clean-code/part-one/02-basics.md") == "basics"
    with pytest.raises(PartialFetchFailure):
        await client.fetch_markdown("books/clean-code/part-one/03-names.md")


async def test_commit_dates_single_page(library):
    created, updated = await make_client(library).get_commit_dates("books/clean-code/part-one/02-basics.md")
    assert created == updated == "2024-04-01T00:00:00Z"


# ---------------------------------------------------------------------
# Dev posts
# ---------------------------------------------------------------------

@pytest.fixture
def blog():
    routes = {
        DEV: [entry("java", "dir"), entry("README.md")],
        f"{DEV}/java": [entry("streams.md"), entry("records", "dir"), entry("draft", "dir")],
        f"{DEV}/java/streams.md": file_payload(
            "streams.md",
            "---\ntitle: Streams\ndate: 2024-01-02\ntags: [java, fp]\n---\nbody",
        ),
        f"{DEV}/java/records": [entry("cover.webp", download_url="https://raw/records.webp"), entry("index.md")],
        f"{DEV}/java/records/index.md": file_payload(
            "index.md",
            "---\ntitle: Records\ndate: 2024-05-01\n---\nrecord body",
        ),
        f"{DEV}/java/draft": [entry("notes.txt")],
    }
    return FakeGitHub(routes)


async def test_list_dev_posts_sorted_newest_first(blog):
    posts = await make_client(blog).list_dev_posts()

    assert [p.slug for p in posts] == ["records", "streams"]
    assert posts[0].cover == "https://raw/records.webp"
    assert posts[1].tags == ["java", "fp"]


async def test_list_dev_posts_root_failure_is_empty():
    fake = FakeGitHub({}, failing={DEV})
    assert await make_client(fake).list_dev_posts() == []


async def test_dev_post_folder_then_flat(blog):
    client = make_client(blog)

    folder_post = await client.get_dev_post("java", "records")
    assert folder_post.content == "record body"

    flat_post = await client.get_dev_post("java", "streams")
    assert flat_post.title == "Streams"
    assert flat_post.content == "body"

    with pytest.raises(PostNotFound):
        await client.get_dev_post("java", "nope")


async def test_dev_post_entries_lists_flat_posts(blog):
    assert await make_client(blog).list_dev_post_entries() == [("java", "streams")]


def test_sort_posts_undated_last():
    posts = [
        DevPost(slug="u", category="c", title="Undated"),
        DevPost(slug="o", category="c", title="Old", date="2023-01-01"),
        DevPost(slug="n", category="c", title="New", date="2024-01-01"),
    ]
    assert [p.slug for p in sort_posts(posts)] == ["n", "o", "u"]
