"""Find archived items whose content file is missing and recover them."""

import logging
import re
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, List, Optional, Sequence

import psycopg
from psycopg import Connection
from pydantic import BaseModel, Field

from ..db.items import ItemStorage
from ..ingestion.api_client import ApiError, MailerLiteClient
from ..ingestion.events import EventCallback, Severity, SyncEvent, SyncEventKind
from ..ingestion.sync import SAFE_SOURCE_ID_RE
from ..models import ArchivedItem, ItemSource
from ..search.index import SearchIndex

logger = logging.getLogger(__name__)

MAX_RECOVERY_BATCH = 20
ITEM_ID_RE = re.compile(r"^[0-9a-f]{16}$")


class MissingContent(BaseModel):
    """An item whose HTML body cannot be read."""

    item: ArchivedItem
    reason: str = Field(..., description="Why the content is considered missing")
    recoverable: bool = Field(False, description="Whether the body can be re-fetched from the API")


class RecoveryResult(BaseModel):
    """Statistics of a recovery run."""

    recovered: int = 0
    failed: int = 0
    errors: List[str] = Field(default_factory=list)


def is_recoverable(item: ArchivedItem) -> bool:
    """API items keep the campaign id needed to fetch them again."""
    return item.source == ItemSource.EXTERNAL_API and bool(item.source_id)


def find_missing_content(
    conn: Connection,
    content_root: Path,
    store: Optional[ItemStorage] = None,
) -> List[MissingContent]:
    """List items with no recorded content file or a file that no longer exists."""
    store = store or ItemStorage()
    missing = []
    for item in store.list_all(conn):
        if not item.content_path:
            reason = "no content file recorded"
        elif not (content_root / item.content_path).is_file():
            reason = f"file not found: {item.content_path}"
        else:
            continue
        missing.append(MissingContent(item=item, reason=reason, recoverable=is_recoverable(item)))

    logger.info("Found %d items with missing content", len(missing))
    return missing


def validate_recovery_ids(item_ids: Sequence[str]) -> List[str]:
    """
    Check a recovery request before anything is fetched.

    Raises:
        ValueError: If there are too many ids or one is malformed
    """
    if len(item_ids) > MAX_RECOVERY_BATCH:
        raise ValueError(
            f"Too many items selected for recovery. Please select {MAX_RECOVERY_BATCH} or fewer at a time."
        )
    for item_id in item_ids:
        if not isinstance(item_id, str) or not ITEM_ID_RE.match(item_id):
            raise ValueError(f"Invalid item ID format: {item_id!r}")
    return list(item_ids)


class ContentRecovery:
    """Re-fetch HTML bodies from the API for items that lost them."""

    def __init__(
        self,
        conn: Connection,
        client: MailerLiteClient,
        content_root: Path,
        store: Optional[ItemStorage] = None,
        index: Optional[SearchIndex] = None,
        on_event: Optional[EventCallback] = None,
        delay_seconds: float = 2.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Initialize content recovery."""
        self.conn = conn
        self.client = client
        self.content_root = content_root
        self.store = store or ItemStorage()
        self.index = index or SearchIndex(content_root)
        self.on_event = on_event
        self.delay_seconds = delay_seconds
        self.sleep = sleep

    def recover(self, item_ids: Sequence[str]) -> RecoveryResult:
        """Recover the given items, one API call at a time."""
        item_ids = validate_recovery_ids(item_ids)
        result = RecoveryResult()
        total = len(item_ids)
        self._emit(SyncEventKind.STARTED, Severity.INFO, f"Starting recovery for {total} items...")

        for num, item_id in enumerate(item_ids, start=1):
            self._emit(SyncEventKind.ITEM_PROCESSING, Severity.INFO, f"[{num}/{total}] Recovering item {item_id}...")
            try:
                message = self._recover_one(item_id)
            except (ApiError, psycopg.Error, OSError, ValueError) as e:
                if isinstance(e, psycopg.Error):
                    self.conn.rollback()
                message = f"Error: {e}"

            if message is None:
                result.recovered += 1
                self._emit(SyncEventKind.ITEM_UPDATED, Severity.SUCCESS, "  Recovered successfully")
            else:
                result.failed += 1
                result.errors.append(f"{item_id}: {message}")
                logger.error("Recovery of %s failed: %s", item_id, message)
                self._emit(SyncEventKind.ITEM_FAILED, Severity.ERROR, f"  Failed: {message}")

            if num < total:
                self.sleep(self.delay_seconds)

        self._emit(
            SyncEventKind.COMPLETED,
            Severity.SUCCESS,
            f"Recovery complete! Recovered: {result.recovered}, Failed: {result.failed}",
            counts={"recovered": result.recovered, "failed": result.failed},
        )
        return result

    def _recover_one(self, item_id: str) -> Optional[str]:
        """Returns None on success, otherwise the reason for failure."""
        item = self.store.find_by_id(self.conn, item_id)
        if item is None:
            return "item not found in archive"
        if not is_recoverable(item):
            return "item has no API campaign id"
        if not SAFE_SOURCE_ID_RE.match(item.source_id):
            return f"unsafe campaign id {item.source_id!r}"

        detail = self.client.get_campaign(item.source_id)
        self._emit(SyncEventKind.ITEM_PROCESSING, Severity.INFO, f"  Found: {detail.name or 'Unknown'}")

        html = detail.content_html()
        if not html and detail.preview_url:
            self._emit(SyncEventKind.ITEM_PROCESSING, Severity.INFO, "  Fetching from preview URL...")
            html = self.client.fetch_preview(detail.preview_url)
        if not html:
            return "no HTML content available"

        html_dir = self.content_root / ItemSource.EXTERNAL_API.value
        html_dir.mkdir(parents=True, exist_ok=True)
        html_path = html_dir / f"{item.source_id}.html"
        html_path.write_text(html, encoding="utf-8")

        now = datetime.now(timezone.utc).isoformat()
        raw_payload = dict(item.raw_payload or detail.raw)
        raw_payload.setdefault("archived_at", now)
        raw_payload["recovered_at"] = now

        updated = item.model_copy(
            update={
                "content_path": f"{ItemSource.EXTERNAL_API.value}/{html_path.name}",
                "raw_payload": raw_payload,
            }
        )
        stored = self.store.update(self.conn, updated) or updated

        if not stored.hidden:
            self.index.index_item(self.conn, stored, html=html)
        return None

    def _emit(self, kind: SyncEventKind, severity: Severity, message: str, **fields) -> None:
        if self.on_event is not None:
            self.on_event(SyncEvent(kind=kind, severity=severity, message=message, **fields))
