"""Search document and result models."""

from datetime import date, datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

from .item import ItemSource


class SearchDocument(BaseModel):
    """Derived full-text index entry for an archived item."""

    id: str = Field(..., description="Archived item id")
    subject: str = Field(..., description="Item subject")
    preview_text: str = Field("", description="Item preview text")
    body_text: str = Field("", description="Plain text extracted from the HTML body")


class SearchSort(str, Enum):
    """Result ordering."""

    RELEVANCE = "relevance"
    DATE_DESC = "date_desc"
    DATE_ASC = "date_asc"


class SearchRequest(BaseModel):
    """Validated search parameters."""

    date_from: Optional[date] = Field(None, description="Only items sent on or after this day")
    date_to: Optional[date] = Field(None, description="Only items sent on or before this day")
    sort: SearchSort = Field(SearchSort.RELEVANCE, description="Result ordering")
    page: int = Field(1, description="1-based page number", ge=1)
    per_page: int = Field(20, description="Results per page", ge=1, le=100)

    @model_validator(mode="after")
    def check_date_range(self) -> "SearchRequest":
        """Reject inverted date ranges."""
        if self.date_from and self.date_to and self.date_from > self.date_to:
            raise ValueError("date_from must not be after date_to")
        return self

    @property
    def offset(self) -> int:
        """Row offset for the requested page."""
        return (self.page - 1) * self.per_page


class SearchHit(BaseModel):
    """One ranked search result."""

    id: str
    subject: str
    preview_text: str = ""
    sent_at: datetime
    source: ItemSource
    subject_highlight: str = ""
    excerpt: str = ""


class SearchResponse(BaseModel):
    """A page of search results."""

    total: int = Field(0, description="Total matching items")
    page: int = Field(1, description="Page returned")
    per_page: int = Field(20, description="Page size")
    results: List[SearchHit] = Field(default_factory=list)

    @property
    def pages(self) -> int:
        """Number of pages the matches span."""
        return (self.total + self.per_page - 1) // self.per_page

    @property
    def page_out_of_range(self) -> bool:
        """True when there are matches but none on the requested page."""
        return self.total > 0 and self.page > self.pages
