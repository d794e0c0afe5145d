"""Newsletter lifecycle: draft, scheduled and sent letters and their items."""

import logging
from datetime import date, datetime, timezone
from typing import Dict, List, Optional, Tuple

from .errors import NotFoundError, ValidationError, validate_required
from .store import Datastore
from ..models.content import (
    NewsItem,
    Newsletter,
    NewsletterStatus,
    Page,
    utcnow,
)

logger = logging.getLogger(__name__)

ALREADY_SENT = "Newsletter has already been sent"


def as_utc(value: datetime) -> datetime:
    """Aware UTC datetime; naive values are taken to be UTC already."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class NewsletterService:
    """State machine over stored letters.

    A letter starts as draft, may be scheduled and unscheduled any number of
    times and ends as sent. Only the dispatch engine moves a letter to sent;
    once sent nothing about it can change.
    """

    def __init__(self, store: Datastore):
        self.store = store

    def _require(self, newsletter_id: str) -> Newsletter:
        newsletter = self.store.get_newsletter(newsletter_id)
        if newsletter is None:
            raise NotFoundError("Newsletter")
        return newsletter

    def _require_unsent(self, newsletter_id: str) -> Newsletter:
        newsletter = self._require(newsletter_id)
        if newsletter.is_sent:
            raise ValidationError(ALREADY_SENT, {"id": newsletter_id})
        return newsletter

    # Letters

    def create(
        self,
        title: str,
        letter_body: Optional[str] = None,
        curator_note: Optional[str] = None,
        published_date: Optional[date] = None,
    ) -> Newsletter:
        validate_required(title, "title")
        newsletter = self.store.insert_newsletter(
            title=title.strip(),
            letter_body=letter_body or "",
            curator_note=curator_note,
            published_date=published_date,
        )
        logger.info(f"Created draft {newsletter.id}: {newsletter.title}")
        return newsletter

    def update(
        self,
        newsletter_id: str,
        title: Optional[str] = None,
        letter_body: Optional[str] = None,
        curator_note: Optional[str] = None,
        published_date: Optional[date] = None,
    ) -> Newsletter:
        """Edit content fields of a draft or scheduled letter."""
        self._require_unsent(newsletter_id)

        fields: Dict[str, object] = {}
        if title is not None:
            validate_required(title, "title")
            fields["title"] = title.strip()
        if letter_body is not None:
            fields["letter_body"] = letter_body
        if curator_note is not None:
            fields["curator_note"] = curator_note
        if published_date is not None:
            fields["published_date"] = published_date

        return self.store.update_newsletter(newsletter_id, **fields)

    def delete(self, newsletter_id: str) -> None:
        self._require_unsent(newsletter_id)
        released = self.store.clear_newsletter_links(newsletter_id)
        self.store.delete_newsletter(newsletter_id)
        logger.info(f"Deleted newsletter {newsletter_id}, released {released} items")

    def schedule(
        self,
        newsletter_id: str,
        scheduled_at: datetime,
        now: Optional[datetime] = None,
    ) -> Newsletter:
        """Schedule (or reschedule) a letter for a future time."""
        self._require_unsent(newsletter_id)
        if scheduled_at is None:
            raise ValidationError("scheduled_at is required", {"field": "scheduled_at"})

        scheduled_at = as_utc(scheduled_at)
        if scheduled_at <= as_utc(now or utcnow()):
            raise ValidationError(
                "Scheduled time must be in the future",
                {"scheduled_at": scheduled_at.isoformat()},
            )

        newsletter = self.store.update_newsletter(
            newsletter_id,
            status=NewsletterStatus.SCHEDULED,
            scheduled_at=scheduled_at,
        )
        logger.info(f"Scheduled {newsletter_id} for {scheduled_at.isoformat()}")
        return newsletter

    def cancel_schedule(self, newsletter_id: str) -> Newsletter:
        newsletter = self._require_unsent(newsletter_id)
        if newsletter.status != NewsletterStatus.SCHEDULED.value:
            raise NotFoundError("Scheduled newsletter")
        return self.store.update_newsletter(
            newsletter_id, status=NewsletterStatus.DRAFT, scheduled_at=None
        )

    def get(self, newsletter_id: str) -> Tuple[Newsletter, List[NewsItem]]:
        """A letter and every item linked to it, in display order."""
        newsletter = self._require(newsletter_id)
        return newsletter, self.store.news_items_for_newsletter(newsletter_id)

    def list(
        self, status: Optional[str] = None, page: int = 1, limit: int = 20
    ) -> Tuple[List[Newsletter], Page]:
        if status is not None and status not in {s.value for s in NewsletterStatus}:
            raise ValidationError(f"Unknown status '{status}'", {"status": status})
        page, limit = max(page, 1), max(limit, 1)
        newsletters, total = self.store.list_newsletters(
            status=status, limit=limit, offset=(page - 1) * limit
        )
        return newsletters, Page.build(page, limit, total)

    def stats(self) -> Dict[str, int]:
        counts = self.store.newsletter_status_counts()
        stats = {"total": sum(counts.values())}
        for status in NewsletterStatus:
            stats[status.value] = counts.get(status.value, 0)
        return stats

    def due(self, now: Optional[datetime] = None) -> List[Newsletter]:
        """Scheduled letters whose time has come, oldest first."""
        return self.store.due_newsletters(as_utc(now or utcnow()))

    # News items

    def list_news(
        self,
        category: Optional[str] = None,
        newsletter_id: Optional[str] = None,
        page: int = 1,
        limit: int = 50,
    ) -> Tuple[List[NewsItem], Page]:
        page, limit = max(page, 1), max(limit, 1)
        items, total = self.store.list_news_items(
            category=category,
            newsletter_id=newsletter_id,
            limit=limit,
            offset=(page - 1) * limit,
        )
        return items, Page.build(page, limit, total)

    def select_news_item(
        self,
        item_id: str,
        newsletter_id: Optional[str],
        is_selected: bool,
        display_order: int = 0,
    ) -> NewsItem:
        """Attach an item to a letter, or detach it from its current one."""
        item = self.store.get_news_item(item_id)
        if item is None:
            raise NotFoundError("News item")

        if item.newsletter_id:
            current = self.store.get_newsletter(item.newsletter_id)
            if current is not None and current.is_sent:
                raise ValidationError(ALREADY_SENT, {"id": current.id})

        if not is_selected:
            return self.store.update_news_item(
                item_id, newsletter_id=None, is_selected=False, display_order=0
            )

        validate_required(newsletter_id, "newsletter_id")
        self._require_unsent(newsletter_id)
        return self.store.update_news_item(
            item_id,
            newsletter_id=newsletter_id,
            is_selected=True,
            display_order=display_order or 0,
        )

    def delete_news_item(self, item_id: str) -> None:
        item = self.store.get_news_item(item_id)
        if item is None:
            raise NotFoundError("News item")
        if item.newsletter_id:
            current = self.store.get_newsletter(item.newsletter_id)
            if current is not None and current.is_sent:
                raise ValidationError(ALREADY_SENT, {"id": current.id})
        self.store.delete_news_item(item_id)
