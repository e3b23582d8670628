"""Ingestion from the MailerLite API and batch exports."""

from .api_client import ApiError, MailerLiteClient, RateLimitError
from .batch_import import BatchImporter, BatchImportError
from .events import Severity, SyncEvent, SyncEventKind, encode_sse
from .identity import derive_id
from .matching import FileMatcher, similarity
from .models import BatchImportResult, SyncResult
from .sync import SyncEngine

__all__ = [
    "ApiError",
    "BatchImporter",
    "BatchImportError",
    "BatchImportResult",
    "FileMatcher",
    "MailerLiteClient",
    "RateLimitError",
    "Severity",
    "SyncEngine",
    "SyncEvent",
    "SyncEventKind",
    "SyncResult",
    "derive_id",
    "encode_sse",
    "similarity",
]
