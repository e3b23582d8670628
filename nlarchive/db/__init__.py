"""Database management for the newsletter archive."""

from .connection import get_connection, get_connection_pool
from .init import init_database, validate_connection
from .items import ItemStorage
from .runs import SyncRunManager

__all__ = [
    "ItemStorage",
    "SyncRunManager",
    "get_connection",
    "get_connection_pool",
    "init_database",
    "validate_connection",
]
