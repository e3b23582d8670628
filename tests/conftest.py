"""Shared fixtures and in-memory fakes."""

from datetime import datetime
from typing import Dict, List, Optional
from unittest.mock import MagicMock

import pytest

from nlarchive.config import ApiConfig
from nlarchive.ingestion.api_client import ApiError
from nlarchive.ingestion.models import CampaignDetail, CampaignSummary
from nlarchive.models import ArchivedItem, ItemSource


class FakeStore:
    """ItemStorage kept in a dict."""

    def __init__(self):
        self.items: Dict[str, ArchivedItem] = {}

    def find_by_id(self, conn, item_id):
        return self.items.get(item_id)

    def find_by_source_id(self, conn, source, source_id):
        for item in self.items.values():
            if item.source == source and item.source_id == source_id:
                return item
        return None

    def insert(self, conn, item):
        if item.id in self.items:
            raise ValueError(f"duplicate id {item.id}")
        self.items[item.id] = item
        return item

    def update(self, conn, item):
        if item.id not in self.items:
            return None
        self.items[item.id] = item
        return item

    def set_hidden(self, conn, item_id, hidden):
        if item_id not in self.items:
            return False
        self.items[item_id] = self.items[item_id].model_copy(update={"hidden": hidden})
        return True

    def delete(self, conn, item_id):
        return self.items.pop(item_id, None) is not None

    def list_all(self, conn):
        return sorted(self.items.values(), key=lambda i: (i.sent_at, i.id), reverse=True)


class FakeIndex:
    """SearchIndex that records what it was asked to do."""

    def __init__(self, fail: bool = False):
        self.indexed: Dict[str, Optional[str]] = {}
        self.deleted: List[str] = []
        self.fail = fail

    def index_item(self, conn, item, html=None):
        if self.fail:
            return False
        if item.hidden:
            self.delete_document(conn, item.id)
            return True
        self.indexed[item.id] = html
        return True

    def delete_document(self, conn, item_id):
        self.deleted.append(item_id)
        return self.indexed.pop(item_id, None) is not None


class FakeRuns:
    """SyncRunManager in memory."""

    def __init__(self):
        self.started: List[str] = []
        self.finished: List[tuple] = []

    def start_run(self, conn, mode, started_at=None):
        self.started.append(mode)
        return len(self.started)

    def finish_run(self, conn, run_id, status, stats_json=None, finished_at=None):
        self.finished.append((run_id, status, stats_json))


def campaign_payload(source_id, name=None, subject=None, finished_at="2024-03-01 10:00:00", html=None):
    """An API campaign object as the listing and detail endpoints return it."""
    payload = {
        "id": source_id,
        "name": name or f"Issue {source_id}",
        "finished_at": finished_at,
        "emails": [{"subject": subject or f"Subject {source_id}", "preview_text": "Preview"}],
    }
    if html is not None:
        payload["emails"][0]["html"] = html
    return payload


class FakeClient:
    """MailerLiteClient serving canned pages and details."""

    def __init__(self, pages=None, details=None):
        # page number -> list of payloads, or an exception (or a list of them) to raise
        self.pages = pages or {}
        self.details = details or {}
        self.page_calls: List[int] = []
        self.detail_calls: List[str] = []
        self.preview_calls: List[str] = []

    def list_sent_campaigns(self, page):
        self.page_calls.append(page)
        entry = self.pages.get(page, [])
        if isinstance(entry, list) and entry and isinstance(entry[0], Exception):
            raise entry.pop(0)
        if isinstance(entry, Exception):
            raise entry
        return [CampaignSummary.from_api(p) for p in entry]

    def get_campaign(self, source_id):
        self.detail_calls.append(source_id)
        detail = self.details.get(source_id)
        if isinstance(detail, Exception):
            raise detail
        if detail is None:
            raise ApiError(f"Not found (404): /campaigns/{source_id}", 404)
        return CampaignDetail.from_api(detail)

    def fetch_preview(self, url):
        self.preview_calls.append(url)
        return f"<html><body>Preview of {url}</body></html>"


class FakeClock:
    """Monotonic clock advanced by sleeps and explicit ticks."""

    def __init__(self, start: float = 0.0, step: float = 0.0):
        self.now = start
        self.step = step
        self.sleeps: List[float] = []

    def __call__(self):
        self.now += self.step
        return self.now

    def sleep(self, seconds):
        self.sleeps.append(seconds)
        self.now += seconds


@pytest.fixture
def conn():
    return MagicMock(name="conn")


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def index():
    return FakeIndex()


@pytest.fixture
def runs():
    return FakeRuns()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def api_config():
    return ApiConfig(api_key="test-key", time_budget_seconds=None)


@pytest.fixture
def make_item():
    def _make(item_id="0123456789abcdef", **overrides):
        fields = {
            "id": item_id,
            "display_name": "Issue",
            "subject": "Subject",
            "preview_text": "",
            "sent_at": datetime(2024, 3, 1, 10, 0, 0),
            "source": ItemSource.EXTERNAL_API,
            "source_id": "1001",
            "content_path": None,
            "hidden": False,
        }
        fields.update(overrides)
        return ArchivedItem(**fields)

    return _make
