"""Full-text search index backed by PostgreSQL tsvector columns."""

import logging
import re
from datetime import datetime, time, timedelta
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import psycopg
from psycopg import Connection

from ..text import extract_text_from_html, fold_with_offsets, remove_diacritics
from ..models import ArchivedItem, SearchDocument, SearchHit, SearchRequest, SearchResponse, SearchSort
from .query import compile_query

logger = logging.getLogger(__name__)

# Text search configuration: no stemming, no stop words
TS_CONFIG = "simple"

ORDER_BY = {
    SearchSort.RELEVANCE: "rank DESC, c.sent_at DESC, c.id",
    SearchSort.DATE_DESC: "c.sent_at DESC, c.id",
    SearchSort.DATE_ASC: "c.sent_at ASC, c.id",
}

_MARK_RE = re.compile(r"</?mark>")
_MARK_SPLIT_RE = re.compile(r"(</?mark>)")

SUBJECT_HEADLINE_OPTIONS = "StartSel=<mark>, StopSel=</mark>, HighlightAll=TRUE"


def restore_excerpt(excerpt: str, original: str, ellipsis: bool = True) -> str:
    """Map a headline taken from folded text back onto the original text.

    The headline's plain text is located in the folded original and each
    piece between highlight tags is replaced by the accented characters it
    came from. With ``ellipsis``, "..." marks a cut at either end. A headline
    that cannot be located is returned as it is.
    """
    excerpt = (excerpt or "").strip()
    plain = _MARK_RE.sub("", excerpt)
    folded, offsets = fold_with_offsets(original)
    start = folded.find(plain) if plain else -1
    if start < 0:
        return excerpt

    pieces = []
    position = start
    for part in _MARK_SPLIT_RE.split(excerpt):
        if _MARK_RE.fullmatch(part):
            pieces.append(part)
        elif part:
            end = position + len(part)
            # Trailing combining marks belong to the character before them
            stop = offsets[end] if end < len(offsets) else len(original)
            pieces.append(original[offsets[position]:stop])
            position = end
    restored = "".join(pieces)

    if ellipsis:
        if folded[:start].strip():
            restored = "..." + restored
        if folded[start + len(plain):].strip():
            restored = restored + "..."
    return restored


def date_bounds(request: SearchRequest) -> Tuple[Optional[datetime], Optional[datetime]]:
    """Inclusive day filters as [start, end) timestamps."""
    start = datetime.combine(request.date_from, time.min) if request.date_from else None
    end = datetime.combine(request.date_to + timedelta(days=1), time.min) if request.date_to else None
    return start, end


class SearchIndex:
    """Maintain and query search documents.

    Documents are derived from archived items and their HTML bodies; they can
    always be rebuilt, so write failures are logged rather than raised.
    """

    def __init__(self, content_root: Path, excerpt_words: int = 64) -> None:
        """Initialize search index."""
        self.content_root = content_root
        self.excerpt_words = excerpt_words

    @property
    def headline_options(self) -> str:
        """Options for ts_headline excerpts."""
        return (
            f"StartSel=<mark>, StopSel=</mark>, MaxWords={self.excerpt_words}, "
            f"MinWords={self.excerpt_words // 2}, ShortWord=2, HighlightAll=FALSE"
        )

    def build_document(self, item: ArchivedItem, html: str) -> SearchDocument:
        """Derive the search document for an item."""
        return SearchDocument(
            id=item.id,
            subject=item.subject,
            preview_text=item.preview_text or "",
            body_text=extract_text_from_html(html),
        )

    def upsert_document(self, conn: Connection, document: SearchDocument) -> None:
        """Create or replace a search document.

        Folded copies of subject and body are stored next to the originals so
        excerpts can be highlighted with the same folded query that matched.
        """
        with conn.cursor() as cur:
            cur.execute(
                f"""
                INSERT INTO search_documents (
                    item_id, subject, preview_text, body_text, subject_folded, body_folded, document
                )
                VALUES (
                    %(id)s, %(subject)s, %(preview_text)s, %(body_text)s, %(subject_folded)s, %(body_folded)s,
                    setweight(to_tsvector('{TS_CONFIG}', %(subject_folded)s), 'A')
                    || setweight(to_tsvector('{TS_CONFIG}', %(preview_folded)s), 'B')
                    || setweight(to_tsvector('{TS_CONFIG}', %(body_folded)s), 'C')
                )
                ON CONFLICT (item_id) DO UPDATE SET
                    subject = EXCLUDED.subject,
                    preview_text = EXCLUDED.preview_text,
                    body_text = EXCLUDED.body_text,
                    subject_folded = EXCLUDED.subject_folded,
                    body_folded = EXCLUDED.body_folded,
                    document = EXCLUDED.document
                """,
                {
                    **document.model_dump(),
                    "subject_folded": fold_with_offsets(document.subject)[0],
                    "preview_folded": remove_diacritics(document.preview_text),
                    "body_folded": fold_with_offsets(document.body_text)[0],
                },
            )
        conn.commit()

    def delete_document(self, conn: Connection, item_id: str) -> bool:
        """Remove an item's search document."""
        with conn.cursor() as cur:
            cur.execute("DELETE FROM search_documents WHERE item_id = %s", (item_id,))
            deleted = cur.rowcount > 0
        conn.commit()
        return deleted

    def index_item(self, conn: Connection, item: ArchivedItem, html: Optional[str] = None) -> bool:
        """
        Bring an item's search document up to date.

        Hidden items lose their document. ``html`` skips reading the content
        file when the caller already has the body.

        Returns:
            True if the index now reflects the item
        """
        try:
            if item.hidden:
                self.delete_document(conn, item.id)
                return True

            if html is None:
                if not item.content_path:
                    logger.warning("Cannot index item %s: no content file recorded", item.id)
                    return False
                content_path = self.content_root / item.content_path
                if not content_path.is_file():
                    logger.warning("Cannot index item %s: content file not found at %s", item.id, content_path)
                    return False
                html = content_path.read_text(encoding="utf-8", errors="replace")

            self.upsert_document(conn, self.build_document(item, html))
            return True
        except psycopg.Error as e:
            conn.rollback()
            logger.error("Failed to index item %s for search: %s", item.id, e)
            return False
        except OSError as e:
            logger.error("Failed to read content of item %s: %s", item.id, e)
            return False

    def _filters(self, request: SearchRequest) -> Tuple[str, Dict[str, Any]]:
        clauses = ["d.document @@ q.query", "c.hidden = FALSE"]
        params: Dict[str, Any] = {}

        start, end = date_bounds(request)
        if start is not None:
            clauses.append("c.sent_at >= %(date_from)s")
            params["date_from"] = start
        if end is not None:
            clauses.append("c.sent_at < %(date_to)s")
            params["date_to"] = end

        return " AND ".join(clauses), params

    def query(self, conn: Connection, compiled_query: str, request: SearchRequest) -> SearchResponse:
        """Run a compiled query and return one page of ranked results."""
        response = SearchResponse(page=request.page, per_page=request.per_page)
        if not compiled_query:
            return response

        where_sql, params = self._filters(request)
        params["query"] = remove_diacritics(compiled_query)
        from_sql = f"""
            FROM archived_items c
            JOIN search_documents d ON d.item_id = c.id
            CROSS JOIN to_tsquery('{TS_CONFIG}', %(query)s) AS q(query)
            WHERE {where_sql}
        """

        with conn.cursor() as cur:
            cur.execute("SELECT COUNT(*) AS total " + from_sql, params)
            response.total = int(cur.fetchone()["total"])
            if response.total == 0:
                return response

            cur.execute(
                f"""
                SELECT
                    c.id,
                    c.subject,
                    c.preview_text,
                    c.sent_at,
                    c.source,
                    d.subject AS indexed_subject,
                    d.body_text,
                    ts_headline('{TS_CONFIG}', d.subject_folded, q.query, %(subject_headline)s) AS subject_highlight,
                    ts_headline('{TS_CONFIG}', d.body_folded, q.query, %(headline)s) AS excerpt,
                    ts_rank_cd(d.document, q.query) AS rank
                {from_sql}
                ORDER BY {ORDER_BY[request.sort]}
                LIMIT %(limit)s OFFSET %(offset)s
                """,
                {
                    **params,
                    "headline": self.headline_options,
                    "subject_headline": SUBJECT_HEADLINE_OPTIONS,
                    "limit": request.per_page,
                    "offset": request.offset,
                },
            )
            rows = cur.fetchall()

        response.results = [self._to_hit(row) for row in rows]
        return response

    def search(self, conn: Connection, raw_query: str, request: SearchRequest) -> SearchResponse:
        """Compile free text and run it."""
        return self.query(conn, compile_query(raw_query), request)

    @staticmethod
    def _to_hit(row: Dict[str, Any]) -> SearchHit:
        return SearchHit(
            id=row["id"],
            subject=row["subject"],
            preview_text=row["preview_text"] or "",
            sent_at=row["sent_at"],
            source=row["source"],
            subject_highlight=restore_excerpt(row["subject_highlight"], row["indexed_subject"], ellipsis=False),
            excerpt=restore_excerpt(row["excerpt"], row["body_text"]),
        )
