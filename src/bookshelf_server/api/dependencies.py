from functools import lru_cache

from fastapi import Depends

from ..config import settings
from ..content.github_client import GitHubContentClient
from ..content.discussions import DiscussionsClient
from ..analytics.goatcounter import GoatCounterClient
from ..search.index import SearchIndexBuilder
from ..search.engine import ContentSearchEngine
from ..store import KeyValueStore, JsonFileStore, MemoryStore, ReadingHistory, RecentSearches


@lru_cache
def get_content_client() -> GitHubContentClient:
    return GitHubContentClient()


@lru_cache
def get_discussions_client() -> DiscussionsClient:
    return DiscussionsClient()


@lru_cache
def get_goatcounter_client() -> GoatCounterClient:
    return GoatCounterClient()


@lru_cache
def get_client_store() -> KeyValueStore:
    return JsonFileStore(settings.client_state_path)


@lru_cache
def get_index_store() -> KeyValueStore:
    return JsonFileStore(settings.search_index_path)


# Process-wide: one index per server, shared by every request.
@lru_cache
def get_index_builder() -> SearchIndexBuilder:
    return SearchIndexBuilder(get_content_client(), get_index_store())


def get_search_engine(
    index: SearchIndexBuilder = Depends(get_index_builder),
) -> ContentSearchEngine:
    return ContentSearchEngine(index)


def get_reading_history(store: KeyValueStore = Depends(get_client_store)) -> ReadingHistory:
    return ReadingHistory(store)


def get_recent_searches(store: KeyValueStore = Depends(get_client_store)) -> RecentSearches:
    return RecentSearches(store)


@lru_cache
def get_dashboard_cache() -> KeyValueStore:
    return MemoryStore()
