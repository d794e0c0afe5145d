import pytest
from unittest.mock import AsyncMock

from morning_letter.core.services import build_services
from morning_letter.core.store import Datastore
from morning_letter.models.settings import FeedSource, Settings


SAMPLE_FEED = """<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0" xmlns:media="http://search.yahoo.com/mrss/">
<channel>
  <title>Startup News</title>
  <item>
    <title><![CDATA[Seed round &amp; beyond]]></title>
    <link>https://news.example.com/seed-round?utm_source=rss</link>
    <description><![CDATA[<p>A startup raised&nbsp;<b>$2M</b> in seed funding.</p>]]></description>
    <media:thumbnail url="https://img.example.com/seed.jpg" />
    <pubDate>Mon, 06 Jan 2025 08:30:00 +0900</pubDate>
  </item>
  <item>
    <title>Hiring your first engineer</title>
    <link>https://news.example.com/first-engineer</link>
    <description>Plain text description</description>
    <enclosure url="https://img.example.com/hire.png" type="image/png" />
    <pubDate>not a date</pubDate>
  </item>
  <item>
    <title>Missing link is dropped</title>
    <description>No link here</description>
  </item>
</channel>
</rss>
"""


@pytest.fixture
def mock_settings(tmp_path):
    """Settings isolated from the environment, backed by a temp database."""
    return Settings(
        _env_file=None,
        database_path=str(tmp_path / "test.db"),
        feed_sources={
            "news": FeedSource(url="https://news.example.com/feed", source="Example"),
            "trend": FeedSource(url="https://trend.example.com/feed", source="Trend"),
        },
        gemini_api_key=None,
        openai_api_key=None,
        claude_api_key=None,
        stibee_api_key="test_key",
        stibee_list_id="12345",
        stibee_sender_email="letter@example.com",
        stibee_auto_email_url="https://stibee.example.com/auto",
        delivery_mode="broadcast",
        send_delay_ms=0,
    )


@pytest.fixture
def store(mock_settings):
    return Datastore(mock_settings.database_path)


@pytest.fixture
def services(mock_settings):
    return build_services(mock_settings)


@pytest.fixture
def sample_feed():
    return SAMPLE_FEED


@pytest.fixture
def mock_stibee():
    """Stibee client double with successful network calls."""
    stibee = AsyncMock()
    stibee.is_configured = lambda: True
    stibee.auto_email_url = "https://stibee.example.com/auto"
    stibee.create_and_send_email.return_value = "email-1"
    stibee.send_auto_email.return_value = True
    stibee.add_subscriber.return_value = True
    stibee.delete_subscriber.return_value = True
    return stibee
