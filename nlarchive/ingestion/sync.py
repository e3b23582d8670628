"""Synchronize sent campaigns from the MailerLite API into the archive."""

import logging
import re
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, List, Optional

import psycopg
from psycopg import Connection
from tenacity import RetryCallState, Retrying, retry_if_exception_type, wait_fixed

from ..config import ApiConfig
from ..db.items import ItemStorage
from ..db.runs import SyncRunManager
from ..models import ArchivedItem, ItemSource
from ..search.index import SearchIndex
from .api_client import ApiError, MailerLiteClient, RateLimitError
from .events import EventCallback, Severity, SyncEvent, SyncEventKind
from .identity import derive_id
from .models import CampaignSummary, SyncResult

logger = logging.getLogger(__name__)

SOURCE = ItemSource.EXTERNAL_API
SAFE_SOURCE_ID_RE = re.compile(r"^[A-Za-z0-9_-]+$")

# Errors that abort a single item but never the whole run
ITEM_ERRORS = (ApiError, psycopg.Error, OSError, ValueError)


class SyncEngine:
    """Pull sent campaigns from the API and reconcile them with the archive.

    Runs are synchronous and strictly sequential. Callers must not run two
    syncs against the same archive at once.
    """

    def __init__(
        self,
        conn: Connection,
        client: MailerLiteClient,
        config: ApiConfig,
        content_root: Path,
        store: Optional[ItemStorage] = None,
        index: Optional[SearchIndex] = None,
        runs: Optional[SyncRunManager] = None,
        on_event: Optional[EventCallback] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize sync engine."""
        self.conn = conn
        self.client = client
        self.config = config
        self.content_root = content_root
        self.store = store or ItemStorage()
        self.index = index or SearchIndex(content_root)
        self.runs = runs or SyncRunManager()
        self.on_event = on_event
        self.sleep = sleep
        self.clock = clock
        self._deadline: Optional[float] = None

    @property
    def content_dir(self) -> Path:
        """Directory for HTML bodies fetched from the API."""
        return self.content_root / SOURCE.value

    # ------------------------------------------------------------------
    # Public entry points

    def sync_new_only(self) -> SyncResult:
        """Import campaigns newer than the newest archived one.

        Only page 1 is read. The listing is newest first, so the walk stops at
        the first campaign that is already archived.
        """
        return self._run("incremental", self._sync_new_only)

    def sync_all(self, limit: Optional[int] = None) -> SyncResult:
        """Reconcile every sent campaign, optionally capping imports+updates."""
        if limit is not None and limit < 1:
            raise ValueError("limit must be a positive number")
        return self._run("full", lambda result: self._sync_all(result, limit))

    # ------------------------------------------------------------------

    def _run(self, mode: str, body: Callable[[SyncResult], None]) -> SyncResult:
        result = SyncResult(mode=mode)
        budget = self.config.time_budget_seconds
        self._deadline = self.clock() + budget if budget else None

        self.content_dir.mkdir(parents=True, exist_ok=True)
        run_id = self.runs.start_run(self.conn, mode)
        self._emit(SyncEventKind.STARTED, Severity.INFO, f"Starting {mode} sync")

        try:
            body(result)
        except Exception:
            self.runs.finish_run(self.conn, run_id, "failed", result.model_dump())
            raise

        self.runs.finish_run(self.conn, run_id, result.status, result.model_dump())
        self._emit(
            SyncEventKind.COMPLETED,
            Severity.ERROR if result.errors else Severity.SUCCESS,
            f"Sync complete: {result.imported} imported, {result.updated} updated, "
            f"{result.skipped} skipped, {len(result.errors)} errors",
            counts={
                "imported": result.imported,
                "updated": result.updated,
                "skipped": result.skipped,
                "errors": len(result.errors),
            },
        )
        return result

    def _sync_new_only(self, result: SyncResult) -> None:
        try:
            campaigns = self._fetch_page(result, 1)
        except RateLimitError:
            self._budget_exhausted(result)
            return
        except ApiError as e:
            result.errors.append(str(e))
            result.completed = False
            self._emit(SyncEventKind.PAGE_FAILED, Severity.ERROR, f"API error on page 1: {e}", page=1)
            return

        if not campaigns:
            result.already_synced = True
            self._emit(SyncEventKind.ALREADY_SYNCED, Severity.INFO, "No sent campaigns found")
            return

        latest = campaigns[0]
        if not latest.source_id:
            result.errors.append("Latest campaign missing ID")
            result.completed = False
            self._emit(SyncEventKind.PAGE_FAILED, Severity.ERROR, "Latest campaign missing ID", page=1)
            return

        try:
            latest_known = self.store.find_by_source_id(self.conn, SOURCE, latest.source_id)
        except psycopg.Error as e:
            self.conn.rollback()
            result.errors.append(f"Database error while checking the latest campaign: {e}")
            result.completed = False
            self._emit(SyncEventKind.PAGE_FAILED, Severity.ERROR, f"Database error: {e}", page=1)
            return

        if latest_known:
            result.already_synced = True
            result.skipped = len(campaigns)
            self._emit(SyncEventKind.ALREADY_SYNCED, Severity.SUCCESS, "Latest campaign already synced")
            return

        for campaign in campaigns:
            if not campaign.source_id:
                continue
            if self._budget_exhausted(result):
                return

            try:
                if self.store.find_by_source_id(self.conn, SOURCE, campaign.source_id):
                    # Everything below this one was archived by an earlier run
                    break
                self._emit_item(SyncEventKind.ITEM_PROCESSING, Severity.INFO, campaign, "Processing")
                item = self._import_campaign(campaign, existing=None)
            except ITEM_ERRORS as e:
                self._item_failed(result, campaign, e)
                continue

            if item is None:
                result.skipped += 1
                self._emit_item(SyncEventKind.ITEM_NO_CONTENT, Severity.WARNING, campaign, "Skipped (no content)")
            else:
                result.imported += 1
                self._emit_item(SyncEventKind.ITEM_IMPORTED, Severity.SUCCESS, campaign, f"Imported (#{result.imported})")

    def _sync_all(self, result: SyncResult, limit: Optional[int]) -> None:
        page = 1
        while True:
            if self._budget_exhausted(result):
                return

            self._emit(SyncEventKind.PAGE_REQUESTED, Severity.INFO, f"Requesting page {page}...", page=page)
            try:
                campaigns = self._fetch_page(result, page)
            except RateLimitError:
                # Retries only stop once the time budget is gone
                self._budget_exhausted(result)
                return
            except ApiError as e:
                result.errors.append(f"API error on page {page}: {e}")
                result.completed = False
                self._emit(SyncEventKind.PAGE_FAILED, Severity.ERROR, f"API error on page {page}: {e}", page=page)
                return

            if not campaigns:
                if page == 1:
                    self._emit(SyncEventKind.END_OF_LISTING, Severity.WARNING, "No sent campaigns found", page=page)
                else:
                    self._emit(SyncEventKind.END_OF_LISTING, Severity.SUCCESS, "Reached end of campaigns", page=page)
                return

            self._emit(
                SyncEventKind.PAGE_LOADED,
                Severity.SUCCESS,
                f"Found {len(campaigns)} campaigns on page {page}",
                page=page,
            )

            for campaign in campaigns:
                if self._budget_exhausted(result):
                    return
                self._reconcile(result, campaign)

                if limit and result.imported + result.updated >= limit:
                    self._emit(
                        SyncEventKind.LIMIT_REACHED,
                        Severity.WARNING,
                        f"Reached import limit of {limit} campaigns",
                        page=page,
                    )
                    return

            page += 1
            self.sleep(self.config.page_delay_seconds)

    def _reconcile(self, result: SyncResult, campaign: CampaignSummary) -> None:
        if not campaign.source_id:
            result.errors.append(f"Campaign '{campaign.title}' has no ID")
            self._emit_item(SyncEventKind.ITEM_FAILED, Severity.ERROR, campaign, "Missing campaign ID")
            return

        try:
            existing = self.store.find_by_source_id(self.conn, SOURCE, campaign.source_id)
            if existing and self._is_unchanged(existing, campaign):
                result.skipped += 1
                self._emit_item(SyncEventKind.ITEM_SKIPPED, Severity.INFO, campaign, "Skipped (unchanged)")
                return

            if existing:
                self._emit_item(SyncEventKind.ITEM_CHANGED, Severity.INFO, campaign, "Updating (changed)")
            else:
                self._emit_item(SyncEventKind.ITEM_PROCESSING, Severity.INFO, campaign, "Processing")

            item = self._import_campaign(campaign, existing)
        except ITEM_ERRORS as e:
            self._item_failed(result, campaign, e)
            return

        if item is None:
            result.skipped += 1
            self._emit_item(SyncEventKind.ITEM_NO_CONTENT, Severity.WARNING, campaign, "Skipped (no content)")
        elif existing:
            result.updated += 1
            self._emit_item(SyncEventKind.ITEM_UPDATED, Severity.SUCCESS, campaign, "Updated")
        else:
            result.imported += 1
            self._emit_item(SyncEventKind.ITEM_IMPORTED, Severity.SUCCESS, campaign, f"Imported (#{result.imported})")

    def _is_unchanged(self, existing: ArchivedItem, campaign: CampaignSummary) -> bool:
        """Name and subject are the only fields compared."""
        if not existing.content_path or not (self.content_root / existing.content_path).is_file():
            return False
        return (existing.display_name or "") == (campaign.name or "") and existing.subject == campaign.stored_subject

    def _import_campaign(
        self,
        campaign: CampaignSummary,
        existing: Optional[ArchivedItem],
    ) -> Optional[ArchivedItem]:
        """Fetch content, store the HTML body and write the archive record.

        Returns:
            The stored item, or None when the API has no content for it
        """
        source_id = campaign.source_id
        if not SAFE_SOURCE_ID_RE.match(source_id):
            raise ValueError(f"Unsafe campaign id: {source_id!r}")

        detail = self.client.get_campaign(source_id)
        html = detail.content_html()
        if not html:
            logger.warning("No HTML content in API response for campaign %s", source_id)
            return None

        html_path = self.content_dir / f"{source_id}.html"
        html_path.write_text(html, encoding="utf-8")

        sent_at = campaign.sent_at or detail.sent_at or datetime.now(timezone.utc).replace(tzinfo=None)
        subject = campaign.stored_subject
        raw_payload = dict(campaign.raw)
        raw_payload["archived_at"] = datetime.now(timezone.utc).isoformat()

        item = ArchivedItem(
            id=existing.id if existing else derive_id(SOURCE, source_id, sent_at, subject),
            display_name=campaign.name,
            subject=subject,
            preview_text=campaign.preview_text or detail.preview_text,
            sent_at=sent_at,
            source=SOURCE,
            source_id=source_id,
            content_path=f"{SOURCE.value}/{html_path.name}",
            hidden=existing.hidden if existing else False,
            raw_payload=raw_payload,
        )

        if existing:
            stored = self.store.update(self.conn, item)
        else:
            stored = self.store.insert(self.conn, item)

        stored = stored or item
        if not stored.hidden:
            self.index.index_item(self.conn, stored, html=html)
        return stored

    # ------------------------------------------------------------------

    def _fetch_page(self, result: SyncResult, page: int) -> List[CampaignSummary]:
        """Fetch one listing page, waiting out HTTP 429 and retrying the same page."""
        backoff = self.config.rate_limit_backoff_seconds

        def on_rate_limited(retry_state: RetryCallState) -> None:
            result.rate_limited += 1
            self._emit(
                SyncEventKind.RATE_LIMITED,
                Severity.WARNING,
                f"Rate limited. Waiting {backoff:g} seconds...",
                page=page,
            )

        retrying = Retrying(
            retry=retry_if_exception_type(RateLimitError),
            wait=wait_fixed(backoff),
            stop=self._out_of_time,
            sleep=self.sleep,
            before_sleep=on_rate_limited,
            reraise=True,
        )
        return retrying(self.client.list_sent_campaigns, page)

    def _out_of_time(self, retry_state: RetryCallState) -> bool:
        return self._deadline is not None and self.clock() >= self._deadline

    def _budget_exhausted(self, result: SyncResult) -> bool:
        if self._deadline is None or self.clock() < self._deadline:
            return False
        result.completed = False
        self._emit(
            SyncEventKind.BUDGET_EXHAUSTED,
            Severity.WARNING,
            "Time budget exhausted; stopping. Run the sync again to continue.",
        )
        return True

    def _item_failed(self, result: SyncResult, campaign: CampaignSummary, error: Exception) -> None:
        if isinstance(error, psycopg.Error):
            # The failed statement aborted the transaction; later items need a clean one
            self.conn.rollback()
        message = f"Failed to import '{campaign.title}': {error}"
        result.errors.append(message)
        logger.error(message)
        self._emit_item(SyncEventKind.ITEM_FAILED, Severity.ERROR, campaign, f"ERROR: {error}")

    def _emit_item(
        self,
        kind: SyncEventKind,
        severity: Severity,
        campaign: CampaignSummary,
        message: str,
    ) -> None:
        self._emit(
            kind,
            severity,
            f"{message}: '{campaign.title}'",
            source_id=campaign.source_id,
            title=campaign.title,
        )

    def _emit(self, kind: SyncEventKind, severity: Severity, message: str, **fields) -> None:
        if self.on_event is not None:
            self.on_event(SyncEvent(kind=kind, severity=severity, message=message, **fields))
