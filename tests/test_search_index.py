"""Tests for the search index."""

from datetime import date, datetime
from unittest.mock import MagicMock

import psycopg
import pytest

from nlarchive.models import SearchRequest, SearchResponse, SearchSort
from nlarchive.search.index import SearchIndex, date_bounds, restore_excerpt


class FakeCursor:
    """Cursor returning canned rows and recording statements."""

    def __init__(self, total, rows):
        self.total = total
        self.rows = rows
        self.executed = []

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        return False

    def execute(self, sql, params=None):
        self.executed.append((sql, params))

    def fetchone(self):
        return {"total": self.total}

    def fetchall(self):
        return self.rows


def _conn(cursor):
    conn = MagicMock()
    conn.cursor.return_value = cursor
    return conn


BODY = "Jorge Luis Borges escribió sobre el tiempo y los laberintos en muchas ocasiones"


def test_restore_excerpt_marks_cut_edges():
    folded = "Jorge Luis Borges escribio sobre el tiempo y los laberintos en muchas ocasiones"
    assert restore_excerpt("<mark>Jorge</mark> Luis Borges escribio", BODY) == "<mark>Jorge</mark> Luis Borges escribió..."
    assert restore_excerpt("el <mark>tiempo</mark> y", BODY) == "...el <mark>tiempo</mark> y..."
    assert restore_excerpt("en muchas <mark>ocasiones</mark>", BODY) == "...en muchas <mark>ocasiones</mark>"
    assert restore_excerpt(folded, BODY) == BODY


def test_restore_excerpt_puts_accents_back_on_highlighted_terms():
    body = "Hola Valentín Pérez, bienvenido"
    assert restore_excerpt("Hola <mark>Valentin</mark> Perez", body) == "Hola <mark>Valentín</mark> Pérez..."


def test_restore_excerpt_keeps_combining_marks_with_their_letter():
    body = "Valenti\u0301n"
    assert restore_excerpt("<mark>Valentin</mark>", body) == "<mark>Valenti\u0301n</mark>"


def test_restore_excerpt_without_ellipsis():
    assert restore_excerpt("Cancion de <mark>Napoleon</mark>", "Canción de Napoleón", ellipsis=False) == (
        "Canción de <mark>Napoleón</mark>"
    )


def test_restore_excerpt_of_unknown_or_empty_headline():
    assert restore_excerpt("", "body") == ""
    assert restore_excerpt(None, "body") == ""
    assert restore_excerpt("not in <mark>body</mark>", "other text") == "not in <mark>body</mark>"


def test_response_pages():
    assert SearchResponse(total=41, per_page=20).pages == 3
    assert SearchResponse(total=0).pages == 0
    assert SearchResponse(total=41, per_page=20, page=4).page_out_of_range is True
    assert SearchResponse(total=41, per_page=20, page=3).page_out_of_range is False
    assert SearchResponse(total=0, page=2).page_out_of_range is False


def test_date_bounds_cover_whole_days():
    request = SearchRequest(date_from=date(2024, 1, 1), date_to=date(2024, 1, 31))
    assert date_bounds(request) == (datetime(2024, 1, 1), datetime(2024, 2, 1))
    assert date_bounds(SearchRequest()) == (None, None)


def test_search_request_validation():
    with pytest.raises(ValueError):
        SearchRequest(date_from=date(2024, 2, 1), date_to=date(2024, 1, 1))
    with pytest.raises(ValueError):
        SearchRequest(per_page=101)
    with pytest.raises(ValueError):
        SearchRequest(page=0)
    assert SearchRequest(page=3, per_page=20).offset == 40


def test_headline_options_use_excerpt_budget():
    options = SearchIndex(None, excerpt_words=40).headline_options
    assert "StartSel=<mark>" in options
    assert "StopSel=</mark>" in options
    assert "MaxWords=40" in options
    assert "MinWords=20" in options


def test_build_document_extracts_body_text(make_item):
    item = make_item(subject="Borges", preview_text=None)
    document = SearchIndex(None).build_document(item, "<p>El <b>Aleph</b></p>")
    assert document.id == item.id
    assert document.subject == "Borges"
    assert document.preview_text == ""
    assert document.body_text == "El Aleph"


def test_upsert_folds_diacritics_for_the_vector(make_item):
    cursor = FakeCursor(0, [])
    conn = _conn(cursor)
    index = SearchIndex(None)

    index.upsert_document(conn, index.build_document(make_item(subject="Napoleón"), "<p>Valentín</p>"))

    sql, params = cursor.executed[0]
    assert "ON CONFLICT (item_id)" in sql
    assert params["subject"] == "Napoleón"
    assert params["subject_folded"] == "Napoleon"
    assert params["body_folded"] == "Valentin"
    assert "body_folded = EXCLUDED.body_folded" in sql
    conn.commit.assert_called_once()


def test_index_item_reads_content_file(tmp_path, make_item):
    (tmp_path / "mailerlite").mkdir()
    (tmp_path / "mailerlite" / "1001.html").write_text("<p>Hola</p>", encoding="utf-8")
    index = SearchIndex(tmp_path)
    index.upsert_document = MagicMock()

    assert index.index_item(MagicMock(), make_item(content_path="mailerlite/1001.html")) is True
    assert index.upsert_document.call_args[0][1].body_text == "Hola"


def test_index_item_without_content_file(tmp_path, make_item):
    index = SearchIndex(tmp_path)
    index.upsert_document = MagicMock()

    assert index.index_item(MagicMock(), make_item(content_path=None)) is False
    assert index.index_item(MagicMock(), make_item(content_path="mailerlite/missing.html")) is False
    index.upsert_document.assert_not_called()


def test_index_item_removes_hidden_items(tmp_path, make_item):
    index = SearchIndex(tmp_path)
    index.delete_document = MagicMock(return_value=True)
    index.upsert_document = MagicMock()

    assert index.index_item(MagicMock(), make_item(hidden=True), html="<p>x</p>") is True
    index.delete_document.assert_called_once()
    index.upsert_document.assert_not_called()


def test_index_item_failure_is_logged_not_raised(tmp_path, make_item):
    index = SearchIndex(tmp_path)
    index.upsert_document = MagicMock(side_effect=psycopg.OperationalError("disk full"))
    conn = MagicMock()

    assert index.index_item(conn, make_item(), html="<p>x</p>") is False
    conn.rollback.assert_called_once()


def test_query_runs_folded_query_with_filters():
    rows = [
        {
            "id": "0123456789abcdef",
            "subject": "Borges",
            "preview_text": None,
            "sent_at": datetime(2024, 3, 1, 10, 0),
            "source": "mailerlite",
            "indexed_subject": "Borges",
            "body_text": BODY,
            "subject_highlight": "<mark>Borges</mark>",
            "excerpt": "el <mark>tiempo</mark> y",
            "rank": 0.5,
        }
    ]
    cursor = FakeCursor(21, rows)
    request = SearchRequest(date_from=date(2024, 1, 1), sort=SearchSort.DATE_ASC, page=2, per_page=20)

    response = SearchIndex(None).query(_conn(cursor), "'napoleón':*", request)

    count_sql, count_params = cursor.executed[0]
    assert "COUNT(*)" in count_sql
    assert "c.hidden = FALSE" in count_sql
    assert count_params["query"] == "'napoleon':*"
    assert count_params["date_from"] == datetime(2024, 1, 1)
    assert "date_to" not in count_params

    select_sql, select_params = cursor.executed[1]
    assert "ORDER BY c.sent_at ASC, c.id" in select_sql
    assert "ts_headline('simple', d.body_folded, q.query" in select_sql
    assert "ts_headline('simple', d.subject_folded, q.query" in select_sql
    assert select_params["limit"] == 20
    assert select_params["offset"] == 20

    assert response.total == 21
    assert response.page == 2
    hit = response.results[0]
    assert hit.preview_text == ""
    assert hit.excerpt == "...el <mark>tiempo</mark> y..."
    assert hit.subject_highlight == "<mark>Borges</mark>"


def test_query_without_matches_skips_result_fetch():
    cursor = FakeCursor(0, [])
    response = SearchIndex(None).query(_conn(cursor), "'x':*", SearchRequest())
    assert response.total == 0
    assert response.results == []
    assert len(cursor.executed) == 1


def test_empty_compiled_query_hits_nothing():
    conn = MagicMock()
    response = SearchIndex(None).query(conn, "", SearchRequest())
    assert response.total == 0
    conn.cursor.assert_not_called()


def test_relevance_order_breaks_ties_by_date_then_id():
    cursor = FakeCursor(1, [])
    SearchIndex(None).search(_conn(cursor), "borges", SearchRequest())
    assert "ORDER BY rank DESC, c.sent_at DESC, c.id" in cursor.executed[1][0]
