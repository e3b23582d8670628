"""Data models for ingestion."""

from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import pendulum
from pydantic import BaseModel, Field


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse an API/CSV timestamp into a naive UTC datetime."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = pendulum.instance(value)
    else:
        try:
            parsed = pendulum.parse(str(value).strip().strip('"'), strict=False)
        except ValueError:
            return None
    if not isinstance(parsed, pendulum.DateTime):
        return None
    return parsed.in_timezone("UTC").naive()


class CampaignEmail(BaseModel):
    """One email variant of a campaign."""

    subject: Optional[str] = Field(None, description="Email subject")
    preview_text: Optional[str] = Field(None, description="Inbox preview text")
    html: Optional[str] = Field(None, description="Rendered HTML body")
    content: Optional[str] = Field(None, description="Rendered content (fallback)")

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "CampaignEmail":
        """Build from an API email object."""
        return cls(
            subject=data.get("subject"),
            preview_text=data.get("preview_text"),
            html=data.get("html"),
            content=data.get("content"),
        )


class CampaignSummary(BaseModel):
    """A sent campaign as listed by the API."""

    source_id: Optional[str] = Field(None, description="Campaign id in the source system")
    name: Optional[str] = Field(None, description="Campaign name")
    subject: Optional[str] = Field(None, description="Campaign subject")
    preview_text: Optional[str] = Field(None, description="Inbox preview text")
    finished_at: Optional[datetime] = Field(None, description="When sending finished")
    scheduled_for: Optional[datetime] = Field(None, description="When sending was scheduled")
    emails: List[CampaignEmail] = Field(default_factory=list, description="Email variants")
    raw: Dict[str, Any] = Field(default_factory=dict, description="Payload as received")

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "CampaignSummary":
        """Build from an API campaign object, tolerating missing fields."""
        emails = [CampaignEmail.from_api(e) for e in data.get("emails") or [] if isinstance(e, dict)]
        first_email = emails[0] if emails else CampaignEmail()
        settings = data.get("settings") if isinstance(data.get("settings"), dict) else {}
        source_id = data.get("id")

        return cls(
            source_id=str(source_id) if source_id not in (None, "") else None,
            name=data.get("name"),
            subject=data.get("subject") or first_email.subject,
            preview_text=settings.get("preview_text") or first_email.preview_text,
            finished_at=parse_timestamp(data.get("finished_at")),
            scheduled_for=parse_timestamp(data.get("scheduled_for") or data.get("scheduled_at")),
            emails=emails,
            raw=data,
        )

    @property
    def title(self) -> str:
        """Name shown in progress messages."""
        return self.name or self.subject or "Unnamed"

    @property
    def stored_subject(self) -> str:
        """Subject as it is written to the archive."""
        return self.subject or self.name or ""

    @property
    def sent_at(self) -> Optional[datetime]:
        """Best known send time."""
        return self.finished_at or self.scheduled_for


class CampaignDetail(CampaignSummary):
    """A campaign fetched by id, carrying its content."""

    html: Optional[str] = Field(None, description="Top-level HTML body")
    preview_url: Optional[str] = Field(None, description="Public preview URL")

    @classmethod
    def from_api(cls, data: Dict[str, Any]) -> "CampaignDetail":
        """Build from an API campaign detail object."""
        summary = CampaignSummary.from_api(data)
        return cls(
            **summary.model_dump(exclude={"emails", "raw"}),
            emails=summary.emails,
            raw=data,
            html=data.get("html"),
            preview_url=data.get("preview_url"),
        )

    def content_html(self) -> Optional[str]:
        """HTML body from the first response shape that carries one."""
        first_email = self.emails[0] if self.emails else CampaignEmail()
        for candidate in (self.html, first_email.html, first_email.content):
            if candidate:
                return candidate
        return None


class FileInventoryEntry(BaseModel):
    """An HTML file found in a batch export."""

    filename: str = Field(..., description="File name including extension")
    source_fragment: str = Field("", description="Identifier embedded before the first underscore")
    slug: str = Field("", description="Free-form remainder of the file name")
    path: Path = Field(..., description="Absolute path of the file")

    @classmethod
    def from_path(cls, path: Path) -> "FileInventoryEntry":
        """Parse ``{sourceFragment}_{slug}.html``."""
        fragment, _, remainder = path.name.partition("_")
        return cls(
            filename=path.name,
            source_fragment=fragment,
            slug=Path(remainder).stem if remainder else "",
            path=path,
        )


class UnmatchedRow(BaseModel):
    """A metadata row archived without content."""

    subject: str
    title: str = ""
    sent_at: datetime
    unique_id: str = ""


class BatchImportResult(BaseModel):
    """Statistics of a batch import."""

    total: int = 0
    imported: int = 0
    skipped: int = 0
    errors: int = 0
    unmatched: List[UnmatchedRow] = Field(default_factory=list)
    error_messages: List[str] = Field(default_factory=list)

    @property
    def message(self) -> str:
        """One-line summary."""
        message = f"Import complete: {self.imported} imported, {self.skipped} skipped, {self.errors} errors"
        if self.unmatched:
            message += f", {len(self.unmatched)} unmatched (metadata only)"
        return message + "."


class SyncResult(BaseModel):
    """Statistics of a sync run."""

    mode: str = Field(..., description="incremental or full")
    imported: int = 0
    updated: int = 0
    skipped: int = 0
    rate_limited: int = 0
    already_synced: bool = False
    completed: bool = Field(True, description="False when the run stopped early")
    errors: List[str] = Field(default_factory=list)

    @property
    def status(self) -> str:
        """Ledger status for this result."""
        if not self.errors and self.completed:
            return "success"
        if self.imported or self.updated or self.skipped:
            return "partial"
        return "failed"
