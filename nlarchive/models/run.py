"""Sync run model for the run ledger."""

from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import Field

from .base import DBModel


class SyncRun(DBModel):
    """One synchronization run against the external API."""

    id: Optional[int] = Field(None, description="Primary key")
    mode: str = Field(..., description="Sync mode (incremental, full)")
    started_at: datetime = Field(..., description="When the run started")
    finished_at: Optional[datetime] = Field(None, description="When the run finished")
    status: str = Field("running", description="Run status (running, success, partial, failed)")
    stats_json: Optional[Dict[str, Any]] = Field(None, description="Run statistics")
