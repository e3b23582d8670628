"""Archived newsletter item model."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import Field

from .base import DBModel


class ItemSource(str, Enum):
    """Where an archived item came from.

    Values are the identifiers persisted by earlier archives; they take part
    in id derivation and must not change.
    """

    EXTERNAL_API = "mailerlite"
    BATCH_IMPORT = "mailchimp"


class ArchivedItem(DBModel):
    """One archived newsletter issue."""

    id: str = Field(..., description="Stable 16-hex identifier", pattern=r"^[0-9a-f]{16}$")
    display_name: Optional[str] = Field(None, description="Campaign name or title")
    subject: str = Field(..., description="Email subject line")
    preview_text: Optional[str] = Field(None, description="Inbox preview text")
    sent_at: datetime = Field(..., description="When the issue was sent")
    source: ItemSource = Field(..., description="Source system")
    source_id: Optional[str] = Field(None, description="Identifier in the source system")
    content_path: Optional[str] = Field(None, description="HTML body path relative to the content root")
    hidden: bool = Field(False, description="Excluded from listings and search")
    raw_payload: Optional[Dict[str, Any]] = Field(None, description="Source payload as received")

    @property
    def has_content(self) -> bool:
        """Whether a content file was recorded for this item."""
        return bool(self.content_path)
