"""Hide, unhide and delete archived items, keeping the search index in step."""

import logging
from typing import Optional

from psycopg import Connection

from ..db.items import ItemStorage
from ..models import ArchivedItem
from ..search.index import SearchIndex

logger = logging.getLogger(__name__)


def set_hidden(
    conn: Connection,
    item_id: str,
    hidden: bool,
    index: SearchIndex,
    store: Optional[ItemStorage] = None,
) -> Optional[ArchivedItem]:
    """
    Change an item's visibility.

    Hiding drops the search document, unhiding rebuilds it.

    Returns:
        The updated item, or None if no item has this id
    """
    store = store or ItemStorage()
    if not store.set_hidden(conn, item_id, hidden):
        return None

    item = store.find_by_id(conn, item_id)
    if item is None:
        return None

    if hidden:
        index.delete_document(conn, item_id)
    elif item.content_path and not index.index_item(conn, item):
        logger.warning("Item %s is visible again but could not be indexed; run reindex", item_id)

    logger.info("Item %s %s", item_id, "hidden" if hidden else "unhidden")
    return item


def delete_item(conn: Connection, item_id: str, store: Optional[ItemStorage] = None) -> bool:
    """Delete an item; its search document goes with it."""
    store = store or ItemStorage()
    deleted = store.delete(conn, item_id)
    if deleted:
        logger.info("Item %s deleted", item_id)
    return deleted
