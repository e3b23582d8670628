"""Typed progress events emitted by long-running ingestion jobs."""

from enum import Enum
from typing import Callable, Dict, Optional

from pydantic import BaseModel, Field


class Severity(str, Enum):
    """How a presentation layer should render an event."""

    INFO = "info"
    SUCCESS = "success"
    WARNING = "warning"
    ERROR = "error"


class SyncEventKind(str, Enum):
    """What happened."""

    STARTED = "started"
    PAGE_REQUESTED = "page_requested"
    PAGE_LOADED = "page_loaded"
    PAGE_FAILED = "page_failed"
    RATE_LIMITED = "rate_limited"
    END_OF_LISTING = "end_of_listing"
    ALREADY_SYNCED = "already_synced"
    ITEM_SKIPPED = "item_skipped"
    ITEM_CHANGED = "item_changed"
    ITEM_PROCESSING = "item_processing"
    ITEM_IMPORTED = "item_imported"
    ITEM_UPDATED = "item_updated"
    ITEM_NO_CONTENT = "item_no_content"
    ITEM_FAILED = "item_failed"
    ITEM_INDEXED = "item_indexed"
    LIMIT_REACHED = "limit_reached"
    BUDGET_EXHAUSTED = "budget_exhausted"
    COMPLETED = "completed"


class SyncEvent(BaseModel):
    """A progress event with structured payload."""

    kind: SyncEventKind
    severity: Severity = Severity.INFO
    message: str = ""
    page: Optional[int] = None
    source_id: Optional[str] = None
    title: Optional[str] = None
    counts: Dict[str, int] = Field(default_factory=dict)


EventCallback = Callable[[SyncEvent], None]


def encode_sse(event: SyncEvent) -> str:
    """Encode an event as a Server-Sent Events frame."""
    return f"event: {event.severity.value}\ndata: {event.model_dump_json(exclude_none=True)}\n\n"
