"""Stable identifiers for archived items."""

import hashlib
from datetime import datetime
from enum import Enum
from typing import Optional, Union

SENT_AT_FORMAT = "%Y-%m-%d %H:%M:%S"


def format_sent_at(sent_at: datetime) -> str:
    """Render a send time the way it takes part in id derivation."""
    return sent_at.strftime(SENT_AT_FORMAT)


def derive_id(
    source: Union[Enum, str, None],
    source_id: Optional[str],
    sent_at: Union[datetime, str, None],
    subject: Optional[str],
) -> str:
    """
    Derive the archive id of an item.

    The four fields are joined with ``|`` (missing fields become empty
    strings) and hashed with SHA-256; the id is the first 16 hex characters.
    Field order and separator are part of the stored data format.
    """
    if isinstance(source, Enum):
        source = source.value
    if isinstance(sent_at, datetime):
        sent_at = format_sent_at(sent_at)

    unique_string = "|".join([source or "", source_id or "", sent_at or "", subject or ""])
    return hashlib.sha256(unique_string.encode("utf-8")).hexdigest()[:16]
