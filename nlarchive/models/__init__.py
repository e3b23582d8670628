"""Data models for the newsletter archive."""

from .item import ArchivedItem, ItemSource
from .run import SyncRun
from .search import SearchDocument, SearchHit, SearchRequest, SearchResponse, SearchSort

__all__ = [
    "ArchivedItem",
    "ItemSource",
    "SearchDocument",
    "SearchHit",
    "SearchRequest",
    "SearchResponse",
    "SearchSort",
    "SyncRun",
]
