from unittest.mock import AsyncMock, patch

import pytest
from fastapi.testclient import TestClient
from pydantic import SecretStr

from bookshelf_server.analytics.goatcounter import GoatCounterClient
from bookshelf_server.api.dependencies import (
    get_client_store,
    get_content_client,
    get_dashboard_cache,
    get_discussions_client,
    get_goatcounter_client,
    get_index_builder,
)
from bookshelf_server.config import settings
from bookshelf_server.content.discussions import DiscussionsClient
from bookshelf_server.content.github_client import GitHubContentClient
from bookshelf_server.content.models import (
    Book,
    BookDetail,
    ChapterContent,
    ChapterRef,
    DevPost,
    DevPostDetail,
)
from bookshelf_server.core.errors import ChapterNotFound, ContentUnavailable, PostNotFound
from bookshelf_server.main import create_app
from bookshelf_server.search.index import SEARCH_INDEX_KEY, SearchIndexBuilder
from bookshelf_server.search.models import IndexedChapter, IndexState
from bookshelf_server.store import MemoryStore

TEST_ADMIN_PASSWORD = "bookshelf-admin-password-long-enough"

BOOKS = [
    Book(slug="clean-code", title="Clean Code", author="Robert C. Martin", category="dev", tags=["craft"]),
    Book(slug="demian", title="Demian", author="Hermann Hesse", category="novel"),
]

INTRO = ChapterRef(
    name="Intro", path="01-intro", file_name="01-intro.md",
    file_path="books/clean-code/01-intro.md", order=1,
)
BASICS = ChapterRef(
    name="Basics", path="part-one/02-basics", file_name="02-basics.md",
    file_path="books/clean-code/part-one/02-basics.md", order=2, folder="Part One",
)

DETAIL = BookDetail(
    slug="clean-code",
    title="Clean Code",
    root_chapters=[INTRO],
    folder_groups={"Part One": [BASICS]},
    total_chapters=2,
)


@pytest.fixture
def content():
    mock = AsyncMock(spec=GitHubContentClient)
    mock.list_books.return_value = BOOKS
    mock.get_book_detail.return_value = DETAIL
    mock.list_chapter_files.return_value = []
    mock.list_dev_posts.return_value = [
        DevPost(slug="records", category="java", title="Records", date="2024-05-01"),
        DevPost(slug="pods", category="k8s", title="Pods", description="kubernetes basics"),
    ]
    return mock


@pytest.fixture
def discussions():
    mock = AsyncMock(spec=DiscussionsClient)
    mock.book_comment_counts.return_value = {"01-intro": 3}
    mock.guestbook.return_value = {"comments": [], "page": 1, "totalPages": 0}
    return mock


@pytest.fixture
def goatcounter():
    mock = AsyncMock(spec=GoatCounterClient)
    mock.enabled = True
    mock.page_count.return_value = "12"
    mock.page_counts.return_value = {"/post/java/records": "7"}
    return mock


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def index(content, store):
    return SearchIndexBuilder(content, store)


@pytest.fixture
def app(content, discussions, goatcounter, store, index, monkeypatch):
    monkeypatch.setattr(settings, "admin_password", SecretStr(TEST_ADMIN_PASSWORD))
    application = create_app()
    dashboard_cache = MemoryStore()
    application.dependency_overrides[get_content_client] = lambda: content
    application.dependency_overrides[get_discussions_client] = lambda: discussions
    application.dependency_overrides[get_goatcounter_client] = lambda: goatcounter
    application.dependency_overrides[get_client_store] = lambda: store
    application.dependency_overrides[get_index_builder] = lambda: index
    application.dependency_overrides[get_dashboard_cache] = lambda: dashboard_cache
    return application


@pytest.fixture
def client(app):
    with TestClient(app) as c:
        yield c


def ready_index(index, records):
    index.records = records
    index.state = IndexState.READY


def admin_headers(client):
    resp = client.post("/api/admin/login", json={"password": TEST_ADMIN_PASSWORD})
    return {"Authorization": f"Bearer {resp.json()['token']}"}


# ---------------------------------------------------------------------
# Health & content
# ---------------------------------------------------------------------

def test_health(client):
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"


def test_list_books_filters_by_category_and_query(client):
    resp = client.get("/api/books", params={"category": "dev"})
    assert resp.status_code == 200
    assert [b["slug"] for b in resp.json()] == ["clean-code"]
    assert "totalChapters" in resp.json()[0]

    resp = client.get("/api/books", params={"q": "hesse"})
    assert [b["slug"] for b in resp.json()] == ["demian"]


def test_book_categories(client):
    assert client.get("/api/books/categories").json() == ["all", "dev", "novel"]


def test_book_listing_outage_is_503(client, content):
    content.list_books.side_effect = ContentUnavailable("books down")

    resp = client.get("/api/books")

    assert resp.status_code == 503
    assert resp.json()["error"] == "content_unavailable"


def test_book_detail_includes_comment_counts(client, content, discussions):
    resp = client.get("/api/books/clean-code")

    assert resp.status_code == 200
    body = resp.json()
    assert body["commentCounts"] == {"01-intro": 3}
    assert [c["path"] for c in body["rootChapters"]] == ["01-intro"]
    assert body["folderGroups"]["Part One"][0]["fileName"] == "02-basics.md"
    discussions.book_comment_counts.assert_awaited_once_with("clean-code")


def test_read_chapter_returns_nav_and_records_history(client, content):
    content.get_chapter_content.return_value = ChapterContent(
        book_slug="clean-code",
        path="part-one/02-basics",
        file_name="02-basics.md",
        title="Basics",
        content="# Basics",
    )

    resp = client.get("/api/books/clean-code/read/part-one/02-basics")

    assert resp.status_code == 200
    body = resp.json()
    assert body["bookTitle"] == "Clean Code"
    assert body["chapter"]["title"] == "Basics"
    assert body["nav"]["prev"]["path"] == "01-intro"
    assert body["nav"]["next"] is None
    content.get_chapter_content.assert_awaited_once_with("clean-code", "part-one/02-basics")

    history = client.get("/api/history/reading").json()
    assert history[0]["bookSlug"] == "clean-code"
    assert history[0]["chapterPath"] == "part-one/02-basics"
    assert history[0]["chapterTitle"] == "Basics"


def test_missing_chapter_is_404(client, content):
    content.get_chapter_content.side_effect = ChapterNotFound("Chapter not found: clean-code/x")

    resp = client.get("/api/books/clean-code/read/x")

    assert resp.status_code == 404
    assert resp.json()["error"] == "not_found"
    assert client.get("/api/history/reading").json() == []


def test_list_posts_and_categories(client):
    resp = client.get("/api/posts", params={"q": "kubernetes"})
    assert [p["slug"] for p in resp.json()] == ["pods"]

    assert client.get("/api/posts/categories").json() == ["all", "java", "k8s"]


def test_post_comment_counts(client, discussions):
    discussions.post_comment_counts.return_value = {"java/records": 2}
    assert client.get("/api/posts/comments").json() == {"java/records": 2}


def test_read_post(client, content):
    content.get_dev_post.return_value = DevPostDetail(
        slug="records", category="java", title="Records", content="body", created_at="2024/05/01",
    )

    resp = client.get("/api/posts/java/records")

    assert resp.status_code == 200
    assert resp.json()["createdAt"] == "2024/05/01"


def test_missing_post_is_404(client, content):
    content.get_dev_post.side_effect = PostNotFound("Post not found: java/nope")
    assert client.get("/api/posts/java/nope").status_code == 404


def test_unexpected_error_is_generic_500(app, content):
    content.list_books.side_effect = RuntimeError("secret detail")

    with TestClient(app, raise_server_exceptions=False) as c:
        resp = c.get("/api/books")

    assert resp.status_code == 500
    assert "secret detail" not in resp.text


# ---------------------------------------------------------------------
# Search
# ---------------------------------------------------------------------

def test_short_query_does_not_touch_index(client, content, index):
    resp = client.get("/api/search", params={"q": "s"})

    assert resp.status_code == 200
    assert resp.json()["results"] == []
    assert resp.json()["index"]["state"] == "empty"
    content.list_books.assert_not_awaited()
    assert client.get("/api/history/searches").json() == []


def test_search_ready_index(client, index):
    ready_index(index, [
        IndexedChapter(book_slug="clean-code", book_title="Clean Code", chapter_path="01-intro",
                       chapter_name="Intro", plain_text="The SOLID principles"),
        IndexedChapter(book_slug="demian", book_title="Demian", chapter_path="01",
                       chapter_name="One", plain_text="Two worlds"),
    ])

    resp = client.get("/api/search", params={"q": "solid"})

    body = resp.json()
    assert body["query"] == "solid"
    assert body["index"]["state"] == "ready"
    assert body["index"]["chapters"] == 2
    assert [r["bookSlug"] for r in body["results"]] == ["clean-code"]
    assert body["results"][0]["snippet"] == "The SOLID principles"
    assert client.get("/api/history/searches").json() == ["solid"]


def test_search_hydrates_from_cached_snapshot(client, content, store):
    store.set(SEARCH_INDEX_KEY, {
        "index": [{"bookSlug": "demian", "bookTitle": "Demian", "chapterPath": "01",
                   "chapterName": "One", "plainText": "Two worlds"}],
        "timestamp": store.timestamp(),
    })

    body = client.get("/api/search", params={"q": "worlds"}).json()

    assert body["index"]["state"] == "ready"
    assert [r["chapterPath"] for r in body["results"]] == ["01"]
    content.list_books.assert_not_awaited()


def test_stale_cached_snapshot_triggers_fresh_build(app, content):
    now = [1_700_000_000.0]
    stale_store = MemoryStore(clock=lambda: now[0])
    stale_index = SearchIndexBuilder(content, stale_store)
    app.dependency_overrides[get_client_store] = lambda: stale_store
    app.dependency_overrides[get_index_builder] = lambda: stale_index

    stale_at = stale_store.timestamp()
    stale_store.set(SEARCH_INDEX_KEY, {
        "index": [{"bookSlug": "demian", "bookTitle": "Demian", "chapterPath": "01",
                   "chapterName": "One", "plainText": "Two worlds"}],
        "timestamp": stale_at,
    })
    now[0] += 24 * 60 * 60 + 1

    with TestClient(app) as c:
        body = c.get("/api/search", params={"q": "worlds"}).json()

    assert body["results"] == []
    assert body["index"]["state"] in ("building", "ready")
    content.list_books.assert_awaited_once()
    snapshot = stale_store.get(SEARCH_INDEX_KEY)
    assert snapshot is None or snapshot["timestamp"] > stale_at


def test_first_search_starts_build(client, content):
    body = client.get("/api/search", params={"q": "solid"}).json()

    assert body["index"]["state"] in ("building", "ready")
    content.list_books.assert_awaited_once()


def test_search_status(client, index):
    ready_index(index, [])
    assert client.get("/api/search/status").json() == {
        "state": "ready",
        "progress": {"done": 0, "total": 0},
        "chapters": 0,
    }


def test_rebuild_request_accepted(client, index, content):
    ready_index(index, [])

    resp = client.post("/api/search/index", params={"rebuild": "true"})

    assert resp.status_code == 202
    assert resp.json()["state"] in ("building", "ready")
    content.list_books.assert_awaited_once()


# ---------------------------------------------------------------------
# History
# ---------------------------------------------------------------------

def test_history_remove_one_then_clear(client, content):
    content.get_chapter_content.side_effect = lambda slug, path: ChapterContent(
        book_slug=slug, path=path, file_name=f"{path}.md", title=path, content="",
    )
    client.get("/api/books/clean-code/read/01-intro")
    client.get("/api/books/clean-code/read/part-one/02-basics")

    resp = client.delete("/api/history/reading", params={"bookSlug": "clean-code", "chapterPath": "01-intro"})
    assert [e["chapterPath"] for e in resp.json()] == ["part-one/02-basics"]

    client.delete("/api/history/reading")
    assert client.get("/api/history/reading").json() == []


def test_clear_recent_searches(client, index):
    ready_index(index, [])
    client.get("/api/search", params={"q": "tdd"})

    assert client.delete("/api/history/searches").status_code == 204
    assert client.get("/api/history/searches").json() == []


# ---------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------

def test_login_issues_token(client):
    resp = client.post("/api/admin/login", json={"password": TEST_ADMIN_PASSWORD})

    assert resp.status_code == 200
    assert resp.json()["success"] is True
    assert resp.json()["token"]


def test_login_wrong_password(client):
    assert client.post("/api/admin/login", json={"password": "nope"}).status_code == 401


def test_login_unconfigured(client, monkeypatch):
    monkeypatch.setattr(settings, "admin_password", None)
    assert client.post("/api/admin/login", json={"password": "x"}).status_code == 500


def test_admin_stats_requires_token(client):
    assert client.get("/api/admin/stats").status_code == 403
    assert client.post("/api/admin/stats", headers={"Authorization": "Bearer junk"}).status_code == 403


def test_admin_stats_with_token(client):
    stats = {"visitors": {"today": 1, "yesterday": 2, "total": 3}, "hits": [], "rateLimit": None}
    with patch("bookshelf_server.api.admin_routes.build_admin_stats", new_callable=AsyncMock) as build:
        build.return_value = stats
        resp = client.post("/api/admin/stats", headers=admin_headers(client))

    assert resp.status_code == 200
    assert resp.json() == stats


def test_admin_stats_without_goatcounter_token(client, goatcounter):
    goatcounter.enabled = False
    resp = client.get("/api/admin/stats", headers=admin_headers(client))
    assert resp.status_code == 500


# ---------------------------------------------------------------------
# Analytics & guestbook
# ---------------------------------------------------------------------

def test_dashboard_cached_between_requests(client):
    dashboard = {"visitors": {"today": 0, "yesterday": 0, "total": 0}, "topPosts": [], "topBooks": []}
    with patch("bookshelf_server.api.analytics_routes.build_public_dashboard", new_callable=AsyncMock) as build:
        build.return_value = dashboard
        first = client.get("/api/dashboard")
        second = client.get("/api/dashboard")

    assert first.json() == second.json() == dashboard
    assert build.await_count == 1
    assert "max-age=300" in first.headers["cache-control"]


def test_views(client, goatcounter):
    assert client.get("/api/views", params={"path": "/post/java/records"}).json() == {"count": "12"}
    goatcounter.page_count.assert_awaited_once_with("/post/java/records")


def test_views_batch(client, goatcounter):
    assert client.post("/api/views-batch", json={"paths": []}).json() == {}
    goatcounter.page_counts.assert_not_awaited()

    resp = client.post("/api/views-batch", json={"paths": ["/post/java/records"]})
    assert resp.json() == {"/post/java/records": "7"}


def test_guestbook(client, discussions):
    resp = client.get("/api/guestbook", params={"page": 2})

    assert resp.status_code == 200
    assert resp.json() == {"comments": [], "page": 1, "totalPages": 0}
    assert resp.headers["cache-control"] == "s-maxage=60, stale-while-revalidate=30"
    discussions.guestbook.assert_awaited_once_with(2)
