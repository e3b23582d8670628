"""Sync run management in database."""

from datetime import datetime
from typing import Dict, List, Optional

from psycopg import Connection
from psycopg.types.json import Jsonb

from ..models import SyncRun


class SyncRunManager:
    """Record sync runs and answer "when did we last sync"."""

    def start_run(
        self,
        conn: Connection,
        mode: str,
        started_at: Optional[datetime] = None,
    ) -> int:
        """
        Create a new run record.

        Returns:
            Run ID
        """
        if started_at is None:
            started_at = datetime.now()

        with conn.cursor() as cur:
            cur.execute(
                """
                INSERT INTO sync_runs (mode, started_at, status)
                VALUES (%s, %s, 'running')
                RETURNING id
                """,
                (mode, started_at),
            )
            run_id = cur.fetchone()["id"]

        conn.commit()
        return run_id

    def finish_run(
        self,
        conn: Connection,
        run_id: int,
        status: str,
        stats_json: Optional[Dict] = None,
        finished_at: Optional[datetime] = None,
    ) -> None:
        """Update run status and statistics."""
        if finished_at is None:
            finished_at = datetime.now()

        with conn.cursor() as cur:
            cur.execute(
                """
                UPDATE sync_runs
                SET
                    status = %s,
                    finished_at = %s,
                    stats_json = %s
                WHERE id = %s
                """,
                (status, finished_at, Jsonb(stats_json) if stats_json else None, run_id),
            )

        conn.commit()

    def last_synced_at(self, conn: Connection) -> Optional[datetime]:
        """Finish time of the latest run that was not a failure."""
        with conn.cursor() as cur:
            cur.execute(
                """
                SELECT MAX(finished_at) AS last_sync
                FROM sync_runs
                WHERE status IN ('success', 'partial')
                """
            )
            row = cur.fetchone()
            return row["last_sync"] if row else None

    def get_recent_runs(self, conn: Connection, limit: int = 10) -> List[SyncRun]:
        """Get recent runs."""
        with conn.cursor() as cur:
            cur.execute(
                """
                SELECT * FROM sync_runs
                ORDER BY started_at DESC
                LIMIT %s
                """,
                (limit,),
            )
            return [SyncRun(**row) for row in cur.fetchall()]
