"""Tests for reindexing, diagnostics, recovery and visibility changes."""

from unittest.mock import MagicMock

import psycopg
import pytest

from nlarchive.ingestion.api_client import ApiError
from nlarchive.ingestion.events import SyncEventKind
from nlarchive.models import ItemSource
from nlarchive.pipeline import ContentRecovery, delete_item, find_missing_content, reindex_all, set_hidden
from nlarchive.pipeline.diagnostics import MAX_RECOVERY_BATCH, validate_recovery_ids

from conftest import FakeClient, FakeIndex, campaign_payload

VISIBLE_ID = "aaaaaaaaaaaaaaaa"
HIDDEN_ID = "bbbbbbbbbbbbbbbb"
BARE_ID = "cccccccccccccccc"
BATCH_ID = "dddddddddddddddd"


@pytest.fixture
def archive(tmp_path, store, make_item):
    """Store with one item of each kind and the content files that exist."""
    (tmp_path / "mailerlite").mkdir()
    (tmp_path / "mailerlite" / "1001.html").write_text("<p>one</p>", encoding="utf-8")
    (tmp_path / "mailerlite" / "1002.html").write_text("<p>two</p>", encoding="utf-8")

    store.insert(None, make_item(VISIBLE_ID, source_id="1001", content_path="mailerlite/1001.html"))
    store.insert(None, make_item(HIDDEN_ID, source_id="1002", content_path="mailerlite/1002.html", hidden=True))
    store.insert(None, make_item(BARE_ID, source_id="1003", content_path="mailerlite/1003.html"))
    store.insert(None, make_item(BATCH_ID, source=ItemSource.BATCH_IMPORT, source_id=None, content_path=None))
    return store


def test_reindex_all_counts_outcomes(archive, index):
    events = []
    result = reindex_all(MagicMock(), index, store=archive, on_event=events.append)

    assert result.total == 4
    # The fake index does not read files, so the item with a missing file counts too
    assert result.success == 2
    assert result.failed == 0
    assert result.skipped == 2
    assert set(index.deleted) == {HIDDEN_ID, BATCH_ID}
    assert events[0].kind == SyncEventKind.STARTED
    assert events[-1].kind == SyncEventKind.COMPLETED
    assert events[-1].counts["success"] == 2


def test_reindex_all_counts_failures(archive):
    result = reindex_all(MagicMock(), FakeIndex(fail=True), store=archive)
    assert result.failed == 2
    assert result.success == 0


def test_find_missing_content(tmp_path, archive):
    missing = {entry.item.id: entry for entry in find_missing_content(MagicMock(), tmp_path, store=archive)}

    assert set(missing) == {BARE_ID, BATCH_ID}
    assert missing[BARE_ID].recoverable is True
    assert "file not found" in missing[BARE_ID].reason
    assert missing[BATCH_ID].recoverable is False


def test_validate_recovery_ids():
    assert validate_recovery_ids([VISIBLE_ID]) == [VISIBLE_ID]
    with pytest.raises(ValueError, match="Too many"):
        validate_recovery_ids([VISIBLE_ID] * (MAX_RECOVERY_BATCH + 1))
    with pytest.raises(ValueError, match="Invalid item ID"):
        validate_recovery_ids(["../../etc/passwd"])
    with pytest.raises(ValueError):
        validate_recovery_ids(["ABCDEF0123456789"])


def _recovery(tmp_path, store, index, client, events=None):
    sleeps = []
    recovery = ContentRecovery(
        MagicMock(),
        client,
        tmp_path,
        store=store,
        index=index,
        on_event=events.append if events is not None else None,
        sleep=sleeps.append,
    )
    return recovery, sleeps


def test_recover_refetches_content(tmp_path, archive, index):
    client = FakeClient(details={"1003": campaign_payload("1003", html="<p>three</p>")})
    recovery, sleeps = _recovery(tmp_path, archive, index, client)

    result = recovery.recover([BARE_ID])

    assert result.recovered == 1
    assert result.failed == 0
    assert (tmp_path / "mailerlite" / "1003.html").read_text(encoding="utf-8") == "<p>three</p>"
    item = archive.find_by_id(None, BARE_ID)
    assert "recovered_at" in item.raw_payload
    assert index.indexed[BARE_ID] == "<p>three</p>"
    assert sleeps == []


def test_recover_falls_back_to_preview_url(tmp_path, archive, index):
    detail = campaign_payload("1003")
    detail["preview_url"] = "https://preview.example.test/1003"
    client = FakeClient(details={"1003": detail})
    recovery, _ = _recovery(tmp_path, archive, index, client)

    result = recovery.recover([BARE_ID])

    assert result.recovered == 1
    assert client.preview_calls == ["https://preview.example.test/1003"]


def test_recover_reports_failures_per_item(tmp_path, archive, index):
    client = FakeClient(details={"1003": ApiError("HTTP 500", 500)})
    events = []
    recovery, sleeps = _recovery(tmp_path, archive, index, client, events)

    result = recovery.recover([BARE_ID, BATCH_ID, "eeeeeeeeeeeeeeee"])

    assert result.recovered == 0
    assert result.failed == 3
    assert len(result.errors) == 3
    assert "no API campaign id" in result.errors[1]
    assert "not found" in result.errors[2]
    # Delay between items, not after the last one
    assert sleeps == [2.0, 2.0]
    assert events[-1].kind == SyncEventKind.COMPLETED


def test_recover_rejects_bad_request_before_fetching(tmp_path, archive, index):
    client = FakeClient()
    recovery, _ = _recovery(tmp_path, archive, index, client)

    with pytest.raises(ValueError):
        recovery.recover([BARE_ID, "not-an-id"])
    assert client.detail_calls == []


def test_hide_drops_search_document(archive, index):
    item = set_hidden(MagicMock(), VISIBLE_ID, True, index, store=archive)

    assert item.hidden is True
    assert index.deleted == [VISIBLE_ID]


def test_unhide_reindexes(archive, index):
    item = set_hidden(MagicMock(), HIDDEN_ID, False, index, store=archive)

    assert item.hidden is False
    assert HIDDEN_ID in index.indexed


def test_set_hidden_unknown_item(archive, index):
    assert set_hidden(MagicMock(), "eeeeeeeeeeeeeeee", True, index, store=archive) is None


def test_delete_item(archive):
    assert delete_item(MagicMock(), VISIBLE_ID, store=archive) is True
    assert archive.find_by_id(None, VISIBLE_ID) is None
    assert delete_item(MagicMock(), VISIBLE_ID, store=archive) is False


def test_recover_rolls_back_after_database_error(tmp_path, archive, index):
    client = FakeClient(details={"1003": campaign_payload("1003", html="<p>three</p>")})
    recovery, _ = _recovery(tmp_path, archive, index, client)
    find_by_id = archive.find_by_id
    lookups = []

    def failing_first_lookup(conn, item_id):
        lookups.append(item_id)
        if len(lookups) == 1:
            raise psycopg.OperationalError("server closed the connection")
        return find_by_id(conn, item_id)

    archive.find_by_id = failing_first_lookup

    result = recovery.recover([VISIBLE_ID, BARE_ID])

    assert result.failed == 1
    assert result.recovered == 1
    assert "server closed the connection" in result.errors[0]
    assert recovery.conn.rollback.call_count == 1
