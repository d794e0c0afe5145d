"""AI drafting of letter content and news summaries."""

import json
import logging
import re
from typing import List, Optional

from .errors import AIUnavailableError, NotFoundError
from .store import Datastore
from .utils import truncate_text
from ..clients.llm_router import LLMRouter
from ..models.content import AIDraft, NewsItem

logger = logging.getLogger(__name__)

DEFAULT_TITLE = "[Morning Letter] Today's letter"
RECENT_TITLES = 5
FALLBACK_SUMMARY_LENGTH = 200

LETTER_PROMPT = """You are the founder of a startup media company and a long-time
mentor in the startup ecosystem. Every morning you write a warm, candid letter
to founders.

Writing style:
- A warm tone that understands the real difficulties founders face
- Encouragement and comfort, together with practical and realistic advice
- Sincere stories drawn from personal experience or observation
- 4-6 paragraphs, 2-4 sentences each

Draw on today's news topics for relevant insights.

Response format (JSON):
{
  "title": "[Morning Letter] title",
  "body": "letter body (paragraphs separated with HTML <p> tags)"
}"""

SUMMARY_PROMPT = """Summarize the following news article in 2-3 sentences.
Keep only the key points and be concise.

Title: {title}
Content: {content}

Summary:"""

_JSON_BLOCK = re.compile(r"\{.*\}", re.DOTALL)
_PARAGRAPH_TAG = re.compile(r"<p[\s>]", re.IGNORECASE)


def format_body(text: str) -> str:
    """Wrap blank-line separated paragraphs in ``<p>`` unless already HTML."""
    if _PARAGRAPH_TAG.search(text):
        return text
    paragraphs = [p.strip() for p in re.split(r"\n\s*\n", text) if p.strip()]
    return "\n".join(f"<p>{p}</p>" for p in paragraphs)


def parse_draft(text: str) -> AIDraft:
    """Read ``{"title", "body"|"content"}`` out of a response, else use it raw."""
    match = _JSON_BLOCK.search(text)
    if match:
        try:
            parsed = json.loads(match.group(0))
        except json.JSONDecodeError:
            logger.debug("AI response contained a brace block that is not JSON")
        else:
            if isinstance(parsed, dict):
                body = parsed.get("body") or parsed.get("content") or text
                return AIDraft(
                    title=parsed.get("title") or DEFAULT_TITLE,
                    body=format_body(str(body)),
                )

    return AIDraft(title=DEFAULT_TITLE, body=format_body(text))


def build_letter_prompt(titles: List[str], instruction: Optional[str] = None) -> str:
    extra = f"Additional instruction: {instruction}\n" if instruction else ""
    numbered = "\n".join(f"{i}. {title}" for i, title in enumerate(titles, 1))
    return f"{LETTER_PROMPT}\n\n{extra}Today's news topics:\n{numbered}"


class LetterDrafter:
    """Generates letter drafts and item summaries through the provider chain."""

    def __init__(self, store: Datastore, router: LLMRouter):
        self.store = store
        self.router = router

    async def generate_letter(
        self,
        news_titles: Optional[List[str]] = None,
        prompt: Optional[str] = None,
    ) -> AIDraft:
        """Draft a letter from ``news_titles`` or the most recent stored items.

        Raises:
            AIUnavailableError: no provider produced usable text
        """
        titles = [t for t in (news_titles or []) if t and t.strip()]
        if not titles:
            titles = self.store.recent_news_titles(RECENT_TITLES)

        text, provider = await self.router.complete(build_letter_prompt(titles, prompt))
        draft = parse_draft(text)
        draft.provider = provider
        logger.info(f"Letter drafted by {provider}: {draft.title}")
        return draft

    async def summarize_news_item(self, item_id: str) -> NewsItem:
        """Store a short AI summary on an item.

        When no provider is available the stored summary is cut down instead.
        """
        item = self.store.get_news_item(item_id)
        if item is None:
            raise NotFoundError("News item")

        content = item.original_summary or ""
        try:
            summary, provider = await self.router.complete(
                SUMMARY_PROMPT.format(title=item.title, content=content)
            )
            summary = summary.strip()
            logger.debug(f"Summary for {item_id} by {provider}")
        except AIUnavailableError:
            logger.warning(f"No AI summary for {item_id}, using feed summary")
            summary = truncate_text(content, FALLBACK_SUMMARY_LENGTH)

        return self.store.update_news_item(item_id, ai_summary=summary)
