"""Newsletter Archive - ingestion, reconciliation and full-text search."""

__version__ = "0.1.0"
