"""Settings and configuration management."""

import logging
from typing import Dict, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger(__name__)


class FeedSource(BaseModel):
    """A syndication feed and the publisher label stored on its items."""

    url: str = Field(..., description="Feed URL")
    source: str = Field(..., description="Publisher label")


DEFAULT_FEED_SOURCES: Dict[str, FeedSource] = {
    "news": FeedSource(
        url="https://www.venturesquare.net/news/feed", source="VentureSquare"
    ),
    "interview": FeedSource(
        url="https://www.venturesquare.net/interview/feed", source="VentureSquare"
    ),
    "startup_guide": FeedSource(
        url="https://www.venturesquare.net/startup_guide/feed",
        source="VentureSquare",
    ),
    "trend": FeedSource(
        url="https://www.venturesquare.net/trend/feed", source="VentureSquare"
    ),
    "platum": FeedSource(url="https://platum.kr/feed", source="Platum"),
}


class Settings(BaseSettings):
    """Application settings loaded from environment variables or a .env file."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False)

    # Storage
    database_path: str = Field("morning_letter.db", description="SQLite file")

    # Content Sources
    feed_sources: Dict[str, FeedSource] = Field(
        default_factory=lambda: dict(DEFAULT_FEED_SOURCES),
        description="Category to feed mapping (JSON in the environment)",
    )
    feed_item_limit: int = Field(
        10, ge=1, le=100, description="Maximum items stored per feed and run"
    )

    # AI Processing (tried in this order: Gemini, OpenAI, Claude)
    gemini_api_key: Optional[str] = Field(None, description="Gemini")
    openai_api_key: Optional[str] = Field(None, description="OpenAI")
    claude_api_key: Optional[str] = Field(None, description="Anthropic Claude")
    gemini_model: str = Field("gemini-2.0-flash", description="Gemini model")
    openai_model: str = Field("gpt-4o-mini", description="OpenAI model")
    claude_model: str = Field("claude-3-haiku-20240307", description="Claude model")

    # Newsletter Platform
    stibee_api_key: Optional[str] = Field(None, description="Stibee access token")
    stibee_list_id: Optional[str] = Field(None, description="Stibee address book")
    stibee_sender_email: Optional[str] = Field(None, description="Sender address")
    stibee_sender_name: str = Field("Morning Letter", description="Sender name")
    stibee_auto_email_url: Optional[str] = Field(
        None, description="Stibee auto-email trigger URL"
    )
    delivery_mode: str = Field(
        "broadcast", description="'broadcast' (campaign) or 'personalized' (fan-out)"
    )
    send_delay_ms: int = Field(
        100, ge=0, le=10000, description="Pause between personalized sends"
    )
    dispatch_claim_ttl: int = Field(
        1800,
        ge=60,
        le=86400,
        description="Seconds after which an unfinished dispatch claim expires",
    )
    frontend_url: str = Field(
        "https://morning-letter.vercel.app",
        description="Public site used for unsubscribe links",
    )

    # Scheduler
    ingest_hour_utc: int = Field(
        21, ge=0, le=23, description="UTC hour of the daily feed ingestion"
    )
    redis_url: str = Field("redis://localhost:6379/0", description="Celery broker")

    # Application Settings
    debug: bool = Field(False, description="Debug mode")
    log_level: str = Field("INFO", description="Log level")

    # API Timeout Settings (in seconds)
    feed_timeout: float = Field(
        30.0, ge=5.0, le=120.0, description="RSS feed fetch timeout in seconds"
    )
    ai_timeout: float = Field(
        60.0, ge=5.0, le=180.0, description="AI provider request timeout in seconds"
    )
    delivery_timeout: float = Field(
        15.0, ge=5.0, le=60.0, description="Stibee API request timeout in seconds"
    )
    link_preview_timeout: float = Field(
        10.0, ge=3.0, le=30.0, description="Link preview fetch timeout in seconds"
    )

    # General API Settings
    default_user_agent: str = Field(
        "Mozilla/5.0 (compatible; MorningLetterBot/1.0)",
        min_length=5,
        max_length=100,
        description="Default User-Agent for HTTP requests",
    )

    @field_validator("delivery_mode")
    @classmethod
    def check_delivery_mode(cls, value: str) -> str:
        """Only the two dispatch modes are accepted."""
        value = value.strip().lower()
        if value not in ("broadcast", "personalized"):
            raise ValueError("delivery_mode must be 'broadcast' or 'personalized'")
        return value

    @property
    def stibee_configured(self) -> bool:
        """Whether list-scoped Stibee calls can be made."""
        return bool(self.stibee_api_key and self.stibee_list_id)

    @property
    def configured_ai_providers(self) -> Dict[str, bool]:
        """Credential presence per AI provider, in priority order."""
        return {
            "gemini": bool(self.gemini_api_key),
            "openai": bool(self.openai_api_key),
            "claude": bool(self.claude_api_key),
        }
