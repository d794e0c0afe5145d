"""Tests for the feed extractor and fetcher."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, patch

import pytest

from morning_letter.clients.rss import (
    FeedFetcher,
    FeedFetchError,
    parse_feed_items,
    parse_pub_date,
)
from morning_letter.models.settings import FeedSource


def test_parse_feed_items_reads_cdata_and_plain_fields(sample_feed):
    entries = parse_feed_items(sample_feed)

    assert len(entries) == 2
    first, second = entries
    assert first.title == "Seed round &amp; beyond"
    assert first.link == "https://news.example.com/seed-round?utm_source=rss"
    assert "<b>$2M</b>" in first.description
    assert first.thumbnail == "https://img.example.com/seed.jpg"
    assert first.pub_date == "Mon, 06 Jan 2025 08:30:00 +0900"

    assert second.title == "Hiring your first engineer"
    assert second.description == "Plain text description"
    assert second.thumbnail == "https://img.example.com/hire.png"


def test_parse_feed_items_respects_limit(sample_feed):
    entries = parse_feed_items(sample_feed, limit=1)
    assert [e.title for e in entries] == ["Seed round &amp; beyond"]


@pytest.mark.parametrize(
    "xml",
    ["", "not xml at all", "<item><title>unterminated", "<rss><item></item></rss>"],
)
def test_parse_feed_items_never_raises_on_garbage(xml):
    assert parse_feed_items(xml) == []


def test_parse_pub_date_rfc822():
    parsed = parse_pub_date("Mon, 06 Jan 2025 08:30:00 +0900")
    assert parsed == datetime(2025, 1, 5, 23, 30, tzinfo=timezone.utc)


def test_parse_pub_date_iso():
    parsed = parse_pub_date("2025-01-06T08:30:00Z")
    assert parsed == datetime(2025, 1, 6, 8, 30, tzinfo=timezone.utc)


@pytest.mark.parametrize("value", [None, "", "not a date"])
def test_parse_pub_date_invalid(value):
    assert parse_pub_date(value) is None


def test_fetcher_headers():
    fetcher = FeedFetcher({})
    assert fetcher.headers["User-Agent"] == "Mozilla/5.0 (compatible; MorningLetterBot/1.0)"
    assert fetcher.headers["Accept"].startswith("application/rss+xml")


@pytest.mark.asyncio
async def test_fetch_entries_uses_category_source(sample_feed):
    fetcher = FeedFetcher(
        {"news": FeedSource(url="https://news.example.com/feed", source="Example")}
    )
    with patch.object(fetcher, "fetch", AsyncMock(return_value=sample_feed)) as fetch:
        entries = await fetcher.fetch_entries("news", limit=5)

    fetch.assert_awaited_once_with("https://news.example.com/feed")
    assert len(entries) == 2


@pytest.mark.asyncio
async def test_fetch_entries_unknown_category():
    with pytest.raises(FeedFetchError):
        await FeedFetcher({}).fetch_entries("missing")


@pytest.mark.asyncio
async def test_test_feeds_reports_each_category(sample_feed):
    fetcher = FeedFetcher(
        {
            "news": FeedSource(url="https://news.example.com/feed", source="A"),
            "trend": FeedSource(url="https://trend.example.com/feed", source="B"),
        }
    )
    fetch = AsyncMock(side_effect=[sample_feed, FeedFetchError("HTTP 500")])
    with patch.object(fetcher, "fetch", fetch):
        results = await fetcher.test_feeds()

    assert results == {"news": True, "trend": False}
