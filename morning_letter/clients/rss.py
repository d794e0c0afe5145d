"""RSS feed client for retrieving candidate news entries from feed sources."""

import asyncio
import logging
import re
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Dict, List, Optional

import aiohttp

from ..models.content import FeedEntry
from ..models.settings import FeedSource

logger = logging.getLogger(__name__)

FEED_ACCEPT = "application/rss+xml, application/xml, text/xml, */*"

_ITEM_RE = re.compile(r"<item\b[^>]*>(.*?)</item>", re.DOTALL | re.IGNORECASE)
_THUMBNAIL_RES = [
    re.compile(r"<media:thumbnail[^>]*\burl=[\"']([^\"']+)[\"']", re.IGNORECASE),
    re.compile(r"<media:content[^>]*\burl=[\"']([^\"']+)[\"']", re.IGNORECASE),
    re.compile(r"<enclosure[^>]*\burl=[\"']([^\"']+)[\"']", re.IGNORECASE),
]


class FeedFetchError(Exception):
    """A feed could not be retrieved."""


def _tag_text(block: str, tag: str) -> str:
    """Text of the first ``<tag>`` in a block, CDATA-wrapped or plain."""
    pattern = re.compile(
        rf"<{tag}(?:\s[^>]*)?>\s*(?:<!\[CDATA\[(.*?)\]\]>|(.*?))\s*</{tag}>",
        re.DOTALL | re.IGNORECASE,
    )
    match = pattern.search(block)
    if not match:
        return ""
    value = match.group(1) if match.group(1) is not None else match.group(2)
    return (value or "").strip()


def parse_feed_items(xml: str, limit: Optional[int] = None) -> List[FeedEntry]:
    """Pull news entries out of a feed document.

    This is a best-effort scan of ``<item>`` blocks, not an XML parse: missing
    or broken tags only leave fields empty. Entries without both a title and a
    link are dropped. At most ``limit`` entries are returned, in feed order.
    """
    entries: List[FeedEntry] = []
    if not xml:
        return entries

    for block in _ITEM_RE.findall(xml):
        title = _tag_text(block, "title")
        link = _tag_text(block, "link")
        if not title or not link:
            continue

        thumbnail = None
        for regex in _THUMBNAIL_RES:
            found = regex.search(block)
            if found:
                thumbnail = found.group(1).strip()
                break

        entries.append(
            FeedEntry(
                title=title,
                link=link,
                description=_tag_text(block, "description"),
                thumbnail=thumbnail,
                pub_date=_tag_text(block, "pubDate") or None,
            )
        )
        if limit is not None and len(entries) >= limit:
            break

    return entries


def parse_pub_date(date_str: Optional[str]) -> Optional[datetime]:
    """Parse RFC 822 or ISO 8601 feed dates into aware UTC datetimes."""
    if not date_str:
        return None

    try:
        dt = parsedate_to_datetime(date_str)
    except (TypeError, ValueError, IndexError):
        try:
            dt = datetime.fromisoformat(date_str.strip().replace("Z", "+00:00"))
        except ValueError:
            logger.debug(f"Unparseable feed date: {date_str}")
            return None

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


class FeedFetcher:
    """Client for fetching feed documents from the configured sources."""

    def __init__(self, feed_sources: Dict[str, FeedSource], settings=None):
        """Initialize feed fetcher.

        Args:
            feed_sources: Category to feed mapping
            settings: Settings instance for configuration values
        """
        self.feed_sources = feed_sources or {}
        self.feed_timeout = settings.feed_timeout if settings else 30.0
        self.user_agent = (
            settings.default_user_agent
            if settings
            else "Mozilla/5.0 (compatible; MorningLetterBot/1.0)"
        )

    @property
    def headers(self) -> Dict[str, str]:
        return {"User-Agent": self.user_agent, "Accept": FEED_ACCEPT}

    async def fetch(self, feed_url: str) -> str:
        """Fetch one feed document.

        Raises:
            FeedFetchError: on a non-2xx answer, network error or timeout
        """
        timeout = aiohttp.ClientTimeout(total=self.feed_timeout)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(feed_url, headers=self.headers) as response:
                    if not 200 <= response.status < 300:
                        raise FeedFetchError(f"HTTP {response.status}")
                    return await response.text()
        except asyncio.TimeoutError as e:
            raise FeedFetchError(f"Timeout after {self.feed_timeout}s") from e
        except aiohttp.ClientError as e:
            raise FeedFetchError(f"Network error: {e}") from e

    async def fetch_entries(
        self, category: str, limit: Optional[int] = None
    ) -> List[FeedEntry]:
        """Fetch and extract the entries of one category's feed."""
        source = self.feed_sources.get(category)
        if source is None:
            raise FeedFetchError(f"Unknown category '{category}'")

        xml = await self.fetch(source.url)
        entries = parse_feed_items(xml, limit=limit)
        logger.debug(f"Parsed {len(entries)} entries from {source.url}")
        return entries

    async def test_feeds(self) -> Dict[str, bool]:
        """Test connectivity to every configured feed.

        Returns:
            Dictionary mapping categories to whether the feed answered with items
        """
        results = {}
        for category, source in self.feed_sources.items():
            try:
                xml = await self.fetch(source.url)
                results[category] = bool(parse_feed_items(xml, limit=1))
            except FeedFetchError as e:
                logger.warning(f"Feed test failed for {category} ({source.url}): {e}")
                results[category] = False
        return results
