"""Full-text search over archived items."""

from .index import SearchIndex, restore_excerpt
from .query import MAX_QUERY_LENGTH, QueryError, compile_query

__all__ = ["SearchIndex", "restore_excerpt", "MAX_QUERY_LENGTH", "QueryError", "compile_query"]
