"""Feed ingestion: fetch, extract, sanitize and de-duplicate news items."""

import logging
from typing import Optional

from .errors import ValidationError
from .sanitizer import ContentSanitizer
from .store import Datastore
from .utils import extract_source_from_url
from ..clients.link_preview import LinkPreviewClient
from ..clients.rss import FeedFetcher, FeedFetchError, parse_pub_date
from ..models.content import (
    CategoryResult,
    FeedEntry,
    FetchReport,
    LinkPreview,
    NewsItem,
    utcnow,
)

logger = logging.getLogger(__name__)

MANUAL_CATEGORY = "manual"


class NewsIngestor:
    """Runs one ingestion pass over the configured feeds."""

    def __init__(
        self,
        store: Datastore,
        fetcher: FeedFetcher,
        sanitizer: Optional[ContentSanitizer] = None,
        settings=None,
        link_preview: Optional[LinkPreviewClient] = None,
    ):
        self.store = store
        self.fetcher = fetcher
        self.sanitizer = sanitizer or ContentSanitizer()
        self.default_limit = settings.feed_item_limit if settings else 10
        self.link_preview = link_preview or LinkPreviewClient(settings)

    def store_entry(
        self, entry: FeedEntry, category: str, source_name: str
    ) -> Optional[NewsItem]:
        """Store one entry unless its normalized link is already known.

        Returns the new item, or None when the entry was a duplicate.
        """
        source_url = self.sanitizer.normalize_url(entry.link)
        if not source_url:
            return None
        if self.store.get_news_item_by_url(source_url):
            logger.debug(f"Already stored: {source_url}")
            return None

        # A lost insert race is reported by the store as a duplicate too
        return self.store.insert_news_item(
            source_url=source_url,
            source_name=source_name,
            title=self.sanitizer.clean_title(entry.title),
            original_summary=self.sanitizer.clean_summary(entry.description),
            thumbnail_url=entry.thumbnail,
            category=category,
            published_at=parse_pub_date(entry.pub_date) or utcnow(),
        )

    async def ingest_category(
        self, category: str, limit: Optional[int] = None
    ) -> CategoryResult:
        source = self.fetcher.feed_sources[category]
        entries = await self.fetcher.fetch_entries(category, limit or self.default_limit)

        fetched = 0
        for entry in entries:
            if self.store_entry(entry, category, source.source):
                fetched += 1

        logger.info(
            f"[{category}] {fetched} new of {len(entries)} entries from {source.url}"
        )
        return CategoryResult(category=category, fetched=fetched)

    async def run(
        self, category: Optional[str] = None, limit: Optional[int] = None
    ) -> FetchReport:
        """Ingest every configured category, or just ``category``.

        Categories are processed one after another. A failing feed is recorded
        as ``"<category>: <reason>"`` and does not stop the others.
        """
        if category is not None and category not in self.fetcher.feed_sources:
            raise ValidationError(
                f"Unknown category '{category}'", {"category": category}
            )
        categories = [category] if category else list(self.fetcher.feed_sources)

        report = FetchReport()
        for name in categories:
            try:
                result = await self.ingest_category(name, limit)
            except FeedFetchError as e:
                logger.warning(f"Feed error for {name}: {e}")
                result = CategoryResult(category=name, error=str(e))
                report.errors.append(f"{name}: {e}")
            report.results.append(result)
            report.total_fetched += result.fetched

        logger.info(
            f"Ingestion finished: {report.total_fetched} new items, "
            f"{len(report.errors)} feed errors"
        )
        return report

    def save_preview(self, preview: LinkPreview) -> Optional[NewsItem]:
        """Store a link preview as a manually curated news item."""
        entry = FeedEntry(
            title=preview.title or preview.url,
            link=preview.url,
            description=preview.description or "",
            thumbnail=preview.image,
        )
        source_name = preview.site_name or extract_source_from_url(preview.url)
        return self.store_entry(entry, MANUAL_CATEGORY, source_name or "Manual")

    async def preview_link(self, url: str, save: bool = False) -> dict:
        """Fetch Open Graph data for ``url`` and optionally keep it as an item."""
        if not url or not url.strip():
            raise ValidationError("URL is required", {"field": "url"})
        preview = await self.link_preview.preview(url.strip())
        result = {"preview": preview, "news": None}
        if save:
            item = self.save_preview(preview)
            if item is None:
                item = self.store.get_news_item_by_url(
                    self.sanitizer.normalize_url(preview.url)
                )
            result["news"] = item
        return result
