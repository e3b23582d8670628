"""One-time import of a batch export (ZIP with campaigns.csv and HTML files)."""

import csv
import logging
import re
import shutil
import tempfile
import zipfile
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Optional

import psycopg
from psycopg import Connection

from ..config import MatchingConfig
from ..db.items import ItemStorage
from ..models import ArchivedItem, ItemSource
from ..search.index import SearchIndex
from .identity import derive_id
from .matching import FileMatcher, build_inventory
from .models import BatchImportResult, FileInventoryEntry, UnmatchedRow, parse_timestamp

logger = logging.getLogger(__name__)

SOURCE = ItemSource.BATCH_IMPORT
METADATA_FILENAME = "campaigns.csv"
CONTENT_DIRNAME = "campaigns_content"
REQUIRED_COLUMNS = ("Subject", "Send Date")

# Export format: "May 19, 2019 06:00 pm"
SEND_DATE_FORMAT = "%b %d, %Y %I:%M %p"

_NUMERIC_TITLE_RE = re.compile(r"^#?\d+$")


class BatchImportError(Exception):
    """The export bundle is unusable as a whole."""


def parse_send_date(value: str) -> Optional[datetime]:
    """Parse the export's send date, falling back to a lenient parser."""
    cleaned = (value or "").strip().strip('"')
    if not cleaned:
        return None
    try:
        return datetime.strptime(cleaned, SEND_DATE_FORMAT)
    except ValueError:
        return parse_timestamp(cleaned)


def display_name_for(title: str, subject: str) -> str:
    """Title, unless it is empty or only an issue number like ``#12``."""
    if title and not _NUMERIC_TITLE_RE.match(title):
        return title
    return subject


class BatchImporter:
    """Import metadata rows and their matched HTML bodies from an export."""

    def __init__(
        self,
        conn: Connection,
        content_root: Path,
        matching: Optional[MatchingConfig] = None,
        store: Optional[ItemStorage] = None,
        index: Optional[SearchIndex] = None,
    ) -> None:
        """Initialize batch importer."""
        self.conn = conn
        self.content_root = content_root
        self.matcher = FileMatcher((matching or MatchingConfig()).similarity_threshold)
        self.store = store or ItemStorage()
        self.index = index or SearchIndex(content_root)

    @property
    def content_dir(self) -> Path:
        """Directory for imported HTML bodies."""
        return self.content_root / SOURCE.value

    def import_bundle(self, zip_path: Path) -> BatchImportResult:
        """
        Extract an export and import every row of its metadata file.

        Raises:
            BatchImportError: If the bundle is not a ZIP or lacks the expected layout
        """
        if not zip_path.is_file():
            raise BatchImportError(f"File not found: {zip_path}")
        if not zipfile.is_zipfile(zip_path):
            raise BatchImportError("File must be a ZIP archive.")

        with tempfile.TemporaryDirectory(prefix="nlarchive_import_") as temp_dir:
            extract_dir = Path(temp_dir)
            try:
                with zipfile.ZipFile(zip_path) as archive:
                    archive.extractall(extract_dir)
            except (zipfile.BadZipFile, OSError) as e:
                raise BatchImportError(f"Failed to open ZIP archive: {e}") from e

            # Exports nest the metadata file a couple of directories deep
            csv_path = next((p for p in sorted(extract_dir.rglob(METADATA_FILENAME)) if p.is_file()), None)
            if csv_path is None:
                raise BatchImportError(
                    f"{METADATA_FILENAME} not found in ZIP archive. Please ensure the export is complete."
                )

            html_dir = csv_path.parent / CONTENT_DIRNAME
            if not html_dir.is_dir():
                raise BatchImportError(f"{CONTENT_DIRNAME} directory not found. Expected at: {html_dir}")

            inventory = build_inventory(list(html_dir.iterdir()))
            if not inventory:
                raise BatchImportError(f"No HTML files found in {CONTENT_DIRNAME} directory.")

            result = self.import_csv(csv_path, inventory)

        logger.info(result.message)
        return result

    def import_csv(self, csv_path: Path, inventory: List[FileInventoryEntry]) -> BatchImportResult:
        """Import rows of a metadata file against an inventory of HTML files."""
        result = BatchImportResult()
        self.content_dir.mkdir(parents=True, exist_ok=True)

        with open(csv_path, newline="", encoding="utf-8-sig") as f:
            reader = csv.DictReader(f)
            header = reader.fieldnames or []
            if not header:
                raise BatchImportError("Invalid CSV format - no header row")
            for column in REQUIRED_COLUMNS:
                if column not in header:
                    raise BatchImportError(f"Missing required CSV column: {column}")

            for row in reader:
                result.total += 1
                try:
                    self._import_row(row, inventory, result)
                except (psycopg.Error, OSError, ValueError) as e:
                    if isinstance(e, psycopg.Error):
                        self.conn.rollback()
                    result.errors += 1
                    result.error_messages.append(f"Row {result.total}: {e}")
                    logger.error("Batch import row error: %s", e)

        return result

    def _import_row(self, row: Dict[str, str], inventory: List[FileInventoryEntry], result: BatchImportResult) -> None:
        # Values are used untrimmed; they feed the item id
        title = row.get("Title") or ""
        subject = row.get("Subject") or ""
        send_date_raw = row.get("Send Date") or ""
        unique_id = row.get("Unique Id") or ""

        if not subject or not send_date_raw.strip():
            result.errors += 1
            result.error_messages.append(f"Row {result.total}: missing subject or send date")
            return

        sent_at = parse_send_date(send_date_raw)
        if sent_at is None:
            logger.warning("Batch import: failed to parse date: %s", send_date_raw)
            result.errors += 1
            result.error_messages.append(f"Row {result.total}: unparseable send date {send_date_raw!r}")
            return

        item_id = derive_id(SOURCE, unique_id, sent_at, subject)
        if self.store.find_by_id(self.conn, item_id):
            result.skipped += 1
            return

        matched = self.matcher.match(subject, title, unique_id, inventory)
        content_path = self._copy_content(matched, item_id) if matched else None
        if matched is None:
            result.unmatched.append(
                UnmatchedRow(subject=subject, title=title, sent_at=sent_at, unique_id=unique_id)
            )

        item = ArchivedItem(
            id=item_id,
            display_name=display_name_for(title, subject),
            subject=subject,
            preview_text="",
            sent_at=sent_at,
            source=SOURCE,
            source_id=unique_id or None,
            content_path=content_path,
        )
        stored = self.store.insert(self.conn, item)

        if content_path:
            self.index.index_item(self.conn, stored)
        result.imported += 1

    def _copy_content(self, entry: FileInventoryEntry, item_id: str) -> Optional[str]:
        destination = self.content_dir / f"{item_id}.html"
        try:
            shutil.copyfile(entry.path, destination)
        except OSError as e:
            logger.error("Batch import: failed to copy HTML file %s: %s", entry.path, e)
            return None
        return f"{SOURCE.value}/{destination.name}"
