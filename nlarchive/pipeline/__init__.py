"""Maintenance jobs over the whole archive."""

from .diagnostics import ContentRecovery, MissingContent, RecoveryResult, find_missing_content
from .reindex import ReindexResult, reindex_all
from .visibility import delete_item, set_hidden

__all__ = [
    "ContentRecovery",
    "MissingContent",
    "RecoveryResult",
    "ReindexResult",
    "find_missing_content",
    "delete_item",
    "reindex_all",
    "set_hidden",
]
