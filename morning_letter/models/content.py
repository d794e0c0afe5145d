"""Content models for the morning letter pipeline."""

from datetime import date, datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


class NewsletterStatus(str, Enum):
    """Lifecycle state of a letter."""

    DRAFT = "draft"
    SCHEDULED = "scheduled"
    SENT = "sent"


class SubscriberStatus(str, Enum):
    """Subscription state of a reader."""

    ACTIVE = "active"
    UNSUBSCRIBED = "unsubscribed"
    BOUNCED = "bounced"


class FeedEntry(BaseModel):
    """A candidate news entry pulled out of a feed document."""

    title: str = ""
    link: str = ""
    description: str = ""
    thumbnail: Optional[str] = None
    pub_date: Optional[str] = None


class NewsItem(BaseModel):
    """A stored news article that can be attached to a letter."""

    model_config = ConfigDict(use_enum_values=True)

    id: str = Field(..., description="Unique identifier")
    source_url: str = Field(..., description="Normalized article URL")
    source_name: str = Field(..., description="Publisher label")
    title: str = Field(..., description="Article title")
    original_summary: Optional[str] = Field(None, description="Sanitized summary")
    ai_summary: Optional[str] = Field(None, description="AI generated summary")
    thumbnail_url: Optional[str] = Field(None, description="Thumbnail image")
    category: str = Field(..., description="Feed label")
    published_at: Optional[datetime] = Field(None, description="Publish time")
    newsletter_id: Optional[str] = Field(None, description="Selected into letter")
    is_selected: bool = Field(False, description="Selected for a letter")
    display_order: int = Field(0, description="Render position in the letter")
    created_at: datetime = Field(default_factory=utcnow, description="Stored at")


class Newsletter(BaseModel):
    """A letter and its delivery state."""

    model_config = ConfigDict(use_enum_values=True)

    id: str = Field(..., description="Unique identifier")
    title: str = Field(..., description="Letter title")
    letter_body: str = Field("", description="HTML body")
    curator_note: Optional[str] = Field(None, description="HTML curator note")
    status: NewsletterStatus = Field(NewsletterStatus.DRAFT, description="State")
    scheduled_at: Optional[datetime] = Field(None, description="Dispatch time")
    sent_at: Optional[datetime] = Field(None, description="Delivery time")
    delivery_id: Optional[str] = Field(None, description="Provider correlation id")
    published_date: date = Field(..., description="Issue date")
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow)
    claim_token: Optional[str] = Field(None, exclude=True)
    claimed_at: Optional[datetime] = Field(None, exclude=True)

    @property
    def is_sent(self) -> bool:
        return self.status == NewsletterStatus.SENT.value


class Subscriber(BaseModel):
    """A newsletter reader."""

    model_config = ConfigDict(use_enum_values=True)

    id: str
    email: str
    name: Optional[str] = None
    phone: Optional[str] = None
    company: Optional[str] = None
    position: Optional[str] = None
    status: SubscriberStatus = SubscriberStatus.ACTIVE
    privacy_agreed: bool = False
    privacy_agreed_at: Optional[datetime] = None
    subscribed_at: datetime = Field(default_factory=utcnow)
    updated_at: Optional[datetime] = None


class CategoryResult(BaseModel):
    """Outcome of ingesting one feed category."""

    category: str
    fetched: int = 0
    error: Optional[str] = None


class FetchReport(BaseModel):
    """Outcome of one ingestion run across categories."""

    total_fetched: int = 0
    errors: List[str] = Field(default_factory=list)
    results: List[CategoryResult] = Field(default_factory=list)


class AIDraft(BaseModel):
    """Letter title and body produced by an AI provider."""

    title: str
    body: str
    provider: Optional[str] = None


class FanOutResult(BaseModel):
    """Outcome of sending a letter to each subscriber individually."""

    success: bool
    sent_count: int = 0
    failed_emails: List[str] = Field(default_factory=list)


class DispatchResult(BaseModel):
    """Outcome of delivering one letter."""

    newsletter_id: str
    mode: str
    success: bool
    delivery_id: Optional[str] = None
    sent_count: Optional[int] = None
    failed_emails: List[str] = Field(default_factory=list)
    error: Optional[str] = None


class DueDispatchReport(BaseModel):
    """Outcome of dispatching every due letter in one tick."""

    sent: int = 0
    errors: List[str] = Field(default_factory=list)
    skipped: List[str] = Field(default_factory=list)
    results: List[DispatchResult] = Field(default_factory=list)


class SendTestResult(BaseModel):
    """Outcome of a single-address test send."""

    delivered: bool
    to: str
    preview_html: Optional[str] = None


class LinkPreview(BaseModel):
    """Open Graph data read from an article page."""

    url: str
    title: Optional[str] = None
    description: Optional[str] = None
    image: Optional[str] = None
    site_name: Optional[str] = None


class Page(BaseModel):
    """Pagination block returned alongside listings."""

    page: int
    limit: int
    total: int
    total_pages: int

    @classmethod
    def build(cls, page: int, limit: int, total: int) -> "Page":
        return cls(
            page=page, limit=limit, total=total, total_pages=-(-total // limit)
        )


class ApiResponse(BaseModel):
    """Envelope returned by every JSON endpoint."""

    success: bool
    data: Optional[Any] = None
    error: Optional[str] = None
    message: Optional[str] = None
    code: Optional[str] = None

    def dump(self) -> Dict[str, Any]:
        return self.model_dump(mode="json", exclude_none=True)
