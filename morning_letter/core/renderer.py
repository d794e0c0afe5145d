"""Jinja2 rendering of the letter email."""

import logging
from functools import lru_cache
from typing import List, Optional
from urllib.parse import quote

from jinja2 import Environment, PackageLoader, select_autoescape

from ..models.content import NewsItem, Newsletter, utcnow

logger = logging.getLogger(__name__)

DEFAULT_PREVIEW_TEXT = "Today's morning letter has arrived."


@lru_cache(maxsize=1)
def get_template_environment() -> Environment:
    """Create and configure the Jinja2 environment."""
    return Environment(
        loader=PackageLoader("morning_letter", "templates"),
        autoescape=select_autoescape(["html", "xml"]),
    )


def unsubscribe_url(frontend_url: str, email: Optional[str] = None) -> str:
    base = f"{frontend_url.rstrip('/')}/unsubscribe"
    return f"{base}?email={quote(email)}" if email else base


def render_letter(
    newsletter: Newsletter,
    news_items: Optional[List[NewsItem]] = None,
    unsubscribe_link: str = "",
) -> str:
    """Render the email HTML for a letter and its selected items.

    The letter body and curator note are operator-authored HTML and are
    inserted as-is; item titles, sources and summaries are escaped.
    """
    template = get_template_environment().get_template("letter.html")
    return template.render(
        title=newsletter.title,
        letter_body=newsletter.letter_body or "",
        curator_note=newsletter.curator_note or "",
        news_items=news_items or [],
        unsubscribe_url=unsubscribe_link,
        year=utcnow().year,
    )
