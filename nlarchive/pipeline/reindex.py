"""Rebuild search documents for the whole archive."""

import logging
from typing import Optional

from psycopg import Connection
from pydantic import BaseModel

from ..db.items import ItemStorage
from ..ingestion.events import EventCallback, Severity, SyncEvent, SyncEventKind
from ..search.index import SearchIndex

logger = logging.getLogger(__name__)


class ReindexResult(BaseModel):
    """Statistics of a reindex run."""

    total: int = 0
    success: int = 0
    failed: int = 0
    skipped: int = 0


def reindex_all(
    conn: Connection,
    index: SearchIndex,
    store: Optional[ItemStorage] = None,
    on_event: Optional[EventCallback] = None,
) -> ReindexResult:
    """
    Re-derive every search document from the archive.

    Hidden items and items without content lose their document and are
    counted as skipped.
    """
    store = store or ItemStorage()

    def emit(kind: SyncEventKind, severity: Severity, message: str, **fields) -> None:
        if on_event is not None:
            on_event(SyncEvent(kind=kind, severity=severity, message=message, **fields))

    items = store.list_all(conn)
    result = ReindexResult(total=len(items))
    emit(SyncEventKind.STARTED, Severity.INFO, f"Found {result.total} items to index")

    for num, item in enumerate(items, start=1):
        if item.hidden or not item.content_path:
            index.delete_document(conn, item.id)
            result.skipped += 1
            reason = "hidden" if item.hidden else "no content"
            emit(
                SyncEventKind.ITEM_SKIPPED,
                Severity.INFO,
                f"[{num}/{result.total}] Skipped ({reason}): {item.subject}",
                source_id=item.source_id,
                title=item.subject,
            )
            continue

        if index.index_item(conn, item):
            result.success += 1
            emit(
                SyncEventKind.ITEM_INDEXED,
                Severity.SUCCESS,
                f"[{num}/{result.total}] Indexed: {item.subject}",
                source_id=item.source_id,
                title=item.subject,
            )
        else:
            result.failed += 1
            emit(
                SyncEventKind.ITEM_FAILED,
                Severity.ERROR,
                f"[{num}/{result.total}] Failed to index: {item.subject}",
                source_id=item.source_id,
                title=item.subject,
            )

    logger.info(
        "Reindex complete: %d indexed, %d failed, %d skipped", result.success, result.failed, result.skipped
    )
    emit(
        SyncEventKind.COMPLETED,
        Severity.ERROR if result.failed else Severity.SUCCESS,
        f"Indexing complete! Success: {result.success}, Failed: {result.failed}, Skipped: {result.skipped}",
        counts=result.model_dump(),
    )
    return result
