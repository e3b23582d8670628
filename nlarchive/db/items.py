"""Archived item storage."""

from typing import Dict, List, Optional

from psycopg import Connection
from psycopg.types.json import Jsonb

from ..models import ArchivedItem, ItemSource

_MUTABLE_FIELDS = (
    "display_name",
    "subject",
    "preview_text",
    "sent_at",
    "source_id",
    "content_path",
    "hidden",
    "raw_payload",
)


def _to_params(item: ArchivedItem) -> Dict:
    params = item.model_dump(exclude={"created_at", "updated_at"})
    params["source"] = item.source.value
    params["raw_payload"] = Jsonb(item.raw_payload) if item.raw_payload is not None else None
    return params


def _to_item(row: Optional[Dict]) -> Optional[ArchivedItem]:
    if row is None:
        return None
    return ArchivedItem(**row)


class ItemStorage:
    """Read and write archived items.

    Every mutating method commits, so an item written during a long sync
    survives a later failure in the same run.
    """

    def find_by_id(self, conn: Connection, item_id: str) -> Optional[ArchivedItem]:
        """Get an item by its archive id."""
        with conn.cursor() as cur:
            cur.execute("SELECT * FROM archived_items WHERE id = %s", (item_id,))
            return _to_item(cur.fetchone())

    def find_by_source_id(
        self,
        conn: Connection,
        source: ItemSource,
        source_id: str,
    ) -> Optional[ArchivedItem]:
        """Get an item by its identifier in the source system."""
        with conn.cursor() as cur:
            cur.execute(
                """
                SELECT * FROM archived_items
                WHERE source = %s AND source_id = %s
                ORDER BY created_at
                LIMIT 1
                """,
                (source.value, source_id),
            )
            return _to_item(cur.fetchone())

    def insert(self, conn: Connection, item: ArchivedItem) -> ArchivedItem:
        """Insert a new item."""
        with conn.cursor() as cur:
            cur.execute(
                """
                INSERT INTO archived_items (
                    id, display_name, subject, preview_text, sent_at,
                    source, source_id, content_path, hidden, raw_payload
                ) VALUES (
                    %(id)s, %(display_name)s, %(subject)s, %(preview_text)s, %(sent_at)s,
                    %(source)s, %(source_id)s, %(content_path)s, %(hidden)s, %(raw_payload)s
                )
                RETURNING *
                """,
                _to_params(item),
            )
            stored = _to_item(cur.fetchone())
        conn.commit()
        return stored

    def update(self, conn: Connection, item: ArchivedItem) -> Optional[ArchivedItem]:
        """Overwrite the mutable fields of an existing item.

        Returns:
            The stored item, or None if no item has this id
        """
        assignments = ", ".join(f"{field} = %({field})s" for field in _MUTABLE_FIELDS)
        with conn.cursor() as cur:
            cur.execute(
                f"UPDATE archived_items SET {assignments} WHERE id = %(id)s RETURNING *",
                _to_params(item),
            )
            stored = _to_item(cur.fetchone())
        conn.commit()
        return stored

    def set_hidden(self, conn: Connection, item_id: str, hidden: bool) -> bool:
        """Toggle the hidden flag."""
        with conn.cursor() as cur:
            cur.execute(
                "UPDATE archived_items SET hidden = %s WHERE id = %s",
                (hidden, item_id),
            )
            updated = cur.rowcount > 0
        conn.commit()
        return updated

    def delete(self, conn: Connection, item_id: str) -> bool:
        """Delete an item (its search document goes with it)."""
        with conn.cursor() as cur:
            cur.execute("DELETE FROM archived_items WHERE id = %s", (item_id,))
            deleted = cur.rowcount > 0
        conn.commit()
        return deleted

    def list_visible(
        self,
        conn: Connection,
        source: Optional[ItemSource] = None,
        limit: Optional[int] = None,
        offset: int = 0,
        order: str = "desc",
    ) -> List[ArchivedItem]:
        """List non-hidden items ordered by send date."""
        direction = "ASC" if order == "asc" else "DESC"
        query = "SELECT * FROM archived_items WHERE hidden = FALSE"
        params: List = []

        if source is not None:
            query += " AND source = %s"
            params.append(source.value)

        query += f" ORDER BY sent_at {direction}, id"

        if limit is not None:
            query += " LIMIT %s OFFSET %s"
            params.extend([limit, offset])

        with conn.cursor() as cur:
            cur.execute(query, params)
            return [ArchivedItem(**row) for row in cur.fetchall()]

    def list_all(self, conn: Connection) -> List[ArchivedItem]:
        """List every item, hidden ones included."""
        with conn.cursor() as cur:
            cur.execute("SELECT * FROM archived_items ORDER BY sent_at DESC, id")
            return [ArchivedItem(**row) for row in cur.fetchall()]

    def count(self, conn: Connection, include_hidden: bool = False) -> int:
        """Count items."""
        query = "SELECT COUNT(*) AS count FROM archived_items"
        if not include_hidden:
            query += " WHERE hidden = FALSE"
        with conn.cursor() as cur:
            cur.execute(query)
            return int(cur.fetchone()["count"])
