"""
Client State Store Package

Key-value storage for state the reading site keeps on the client side:
the search index snapshot, reading history and recent searches.
"""

from .kv import KeyValueStore, MemoryStore, JsonFileStore, now_ms
from .history import ReadingHistory, RecentSearches, ReadingEntry

__all__ = [
    "KeyValueStore",
    "MemoryStore",
    "JsonFileStore",
    "now_ms",
    "ReadingHistory",
    "RecentSearches",
    "ReadingEntry",
]
