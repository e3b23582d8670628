"""Database initialization and schema management."""

import logging
from typing import Any, Dict

from psycopg.errors import DatabaseError

from .connection import get_connection

logger = logging.getLogger(__name__)


SCHEMA_SQL = """
-- Archived items table
CREATE TABLE IF NOT EXISTS archived_items (
    id CHAR(16) PRIMARY KEY CHECK (id ~ '^[0-9a-f]{16}$'),
    display_name TEXT,
    subject TEXT NOT NULL,
    preview_text TEXT,
    sent_at TIMESTAMP NOT NULL,
    source TEXT NOT NULL CHECK (source IN ('mailerlite', 'mailchimp')),
    source_id TEXT,
    content_path TEXT,
    hidden BOOLEAN NOT NULL DEFAULT FALSE,
    raw_payload JSONB,
    created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
);

-- Full-text search documents (derived, rebuildable)
CREATE TABLE IF NOT EXISTS search_documents (
    item_id CHAR(16) PRIMARY KEY REFERENCES archived_items(id) ON DELETE CASCADE,
    subject TEXT NOT NULL,
    preview_text TEXT NOT NULL DEFAULT '',
    body_text TEXT NOT NULL DEFAULT '',
    subject_folded TEXT NOT NULL DEFAULT '',
    body_folded TEXT NOT NULL DEFAULT '',
    document TSVECTOR NOT NULL,
    created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
);

-- Upgrade older archives; run `nlarchive reindex` afterwards to fill them
ALTER TABLE search_documents ADD COLUMN IF NOT EXISTS subject_folded TEXT NOT NULL DEFAULT '';
ALTER TABLE search_documents ADD COLUMN IF NOT EXISTS body_folded TEXT NOT NULL DEFAULT '';

-- Sync runs table
CREATE TABLE IF NOT EXISTS sync_runs (
    id SERIAL PRIMARY KEY,
    mode TEXT NOT NULL CHECK (mode IN ('incremental', 'full')),
    started_at TIMESTAMP NOT NULL,
    finished_at TIMESTAMP,
    status TEXT NOT NULL DEFAULT 'running' CHECK (status IN ('running', 'success', 'partial', 'failed')),
    stats_json JSONB,
    created_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP,
    updated_at TIMESTAMP NOT NULL DEFAULT CURRENT_TIMESTAMP
);

-- Create indexes
CREATE INDEX IF NOT EXISTS idx_archived_items_source_id ON archived_items(source, source_id);
CREATE INDEX IF NOT EXISTS idx_archived_items_sent_at ON archived_items(sent_at);
CREATE INDEX IF NOT EXISTS idx_archived_items_hidden ON archived_items(hidden);
CREATE INDEX IF NOT EXISTS idx_search_documents_document ON search_documents USING GIN(document);
CREATE INDEX IF NOT EXISTS idx_sync_runs_finished_at ON sync_runs(finished_at);

-- Update trigger function
CREATE OR REPLACE FUNCTION update_updated_at_column()
RETURNS TRIGGER AS $$
BEGIN
    NEW.updated_at = CURRENT_TIMESTAMP;
    RETURN NEW;
END;
$$ language 'plpgsql';

-- Create update triggers
DROP TRIGGER IF EXISTS update_archived_items_updated_at ON archived_items;
CREATE TRIGGER update_archived_items_updated_at BEFORE UPDATE ON archived_items
    FOR EACH ROW EXECUTE FUNCTION update_updated_at_column();

DROP TRIGGER IF EXISTS update_search_documents_updated_at ON search_documents;
CREATE TRIGGER update_search_documents_updated_at BEFORE UPDATE ON search_documents
    FOR EACH ROW EXECUTE FUNCTION update_updated_at_column();

DROP TRIGGER IF EXISTS update_sync_runs_updated_at ON sync_runs;
CREATE TRIGGER update_sync_runs_updated_at BEFORE UPDATE ON sync_runs
    FOR EACH ROW EXECUTE FUNCTION update_updated_at_column();
"""


def validate_connection(config: Dict[str, Any]) -> bool:
    """Validate database connection."""
    try:
        with get_connection(config) as conn:
            with conn.cursor() as cur:
                cur.execute("SELECT 1 AS ok")
                result = cur.fetchone()
                return result is not None and result["ok"] == 1
    except Exception as e:
        logger.error("Database connection failed: %s", e)
        return False


def init_database(config: Dict[str, Any]) -> None:
    """Initialize database schema."""
    try:
        with get_connection(config) as conn:
            with conn.cursor() as cur:
                cur.execute(SCHEMA_SQL)
                conn.commit()
                logger.info("Database schema initialized successfully")
    except DatabaseError as e:
        logger.error("Failed to initialize database schema: %s", e)
        raise
