"""Open Graph link preview for manually added articles."""

import asyncio
import logging
from typing import Optional

import aiohttp
from bs4 import BeautifulSoup

from ..core.errors import ValidationError
from ..core.utils import extract_source_from_url
from ..models.content import LinkPreview

logger = logging.getLogger(__name__)


def _meta(soup: BeautifulSoup, key: str) -> Optional[str]:
    tag = soup.find("meta", attrs={"property": key}) or soup.find(
        "meta", attrs={"name": key}
    )
    if tag is None:
        return None
    content = tag.get("content")
    return content.strip() if content and content.strip() else None


def parse_link_preview(url: str, html: str) -> LinkPreview:
    """Read title, description, image and site name from a page."""
    soup = BeautifulSoup(html or "", "html.parser")

    title = _meta(soup, "og:title")
    if not title and soup.title and soup.title.string:
        title = soup.title.string.strip() or None

    return LinkPreview(
        url=url,
        title=title,
        description=_meta(soup, "og:description") or _meta(soup, "description"),
        image=_meta(soup, "og:image"),
        site_name=_meta(soup, "og:site_name") or extract_source_from_url(url) or None,
    )


class LinkPreviewClient:
    """Fetches article pages to build previews."""

    def __init__(self, settings=None):
        self.timeout = settings.link_preview_timeout if settings else 10.0
        self.user_agent = (
            settings.default_user_agent
            if settings
            else "Mozilla/5.0 (compatible; MorningLetterBot/1.0)"
        )

    async def fetch_html(self, url: str) -> str:
        timeout = aiohttp.ClientTimeout(total=self.timeout)
        async with aiohttp.ClientSession(timeout=timeout) as session:
            async with session.get(
                url, headers={"User-Agent": self.user_agent}
            ) as response:
                if response.status != 200:
                    raise aiohttp.ClientResponseError(
                        response.request_info,
                        response.history,
                        status=response.status,
                    )
                return await response.text()

    async def preview(self, url: str) -> LinkPreview:
        """Build a preview for ``url``.

        Raises:
            ValidationError: the page could not be fetched
        """
        try:
            html = await self.fetch_html(url)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            logger.warning(f"Link preview failed for {url}: {e}")
            raise ValidationError("Could not fetch link preview", {"url": url}) from e
        return parse_link_preview(url, html)
