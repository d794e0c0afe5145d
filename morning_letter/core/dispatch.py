"""Dispatch engine: deliver letters through the email provider."""

import asyncio
import logging
from datetime import datetime
from typing import Dict, List, Optional

from .errors import (
    AppError,
    ConflictError,
    DeliveryError,
    ExternalApiError,
    NotDueError,
    NotFoundError,
    ValidationError,
    validate_required,
)
from .newsletter import ALREADY_SENT, as_utc
from .renderer import DEFAULT_PREVIEW_TEXT, render_letter, unsubscribe_url
from .sanitizer import ContentSanitizer
from .store import Datastore, new_id
from ..clients.stibee import StibeeClient
from ..models.content import (
    DispatchResult,
    DueDispatchReport,
    FanOutResult,
    NewsItem,
    Newsletter,
    SendTestResult,
    utcnow,
)

logger = logging.getLogger(__name__)

SUBJECT_PREFIX = "[Morning Letter]"
DEFAULT_SUBSCRIBER_NAME = "Subscriber"


class DispatchEngine:
    """Sends letters in the configured delivery mode.

    ``broadcast`` creates one provider campaign for the whole list and sends
    it. ``personalized`` triggers the provider's auto email once per active
    local subscriber, pausing ``send_delay_ms`` between recipients. In both
    modes a letter only becomes sent when the whole delivery succeeded.
    """

    def __init__(
        self,
        store: Datastore,
        stibee: StibeeClient,
        settings,
        sanitizer: Optional[ContentSanitizer] = None,
    ):
        self.store = store
        self.stibee = stibee
        self.mode = settings.delivery_mode
        self.send_delay = settings.send_delay_ms / 1000
        self.claim_ttl = settings.dispatch_claim_ttl
        self.frontend_url = settings.frontend_url
        self.sanitizer = sanitizer or ContentSanitizer()

    def _require(self, newsletter_id: str) -> Newsletter:
        newsletter = self.store.get_newsletter(newsletter_id)
        if newsletter is None:
            raise NotFoundError("Newsletter")
        return newsletter

    def _check_configured(self) -> None:
        if self.mode == "personalized":
            if not self.stibee.auto_email_url:
                raise ValidationError(
                    "Stibee auto email URL is not configured. Check the environment."
                )
        elif not self.stibee.is_configured():
            raise ValidationError(
                "Stibee API is not configured. Check the environment."
            )

    def subject(self, newsletter: Newsletter) -> str:
        return f"{SUBJECT_PREFIX} {newsletter.title}"

    def preview_text(self, newsletter: Newsletter) -> str:
        note = self.sanitizer.clean_summary(newsletter.curator_note)
        return note or DEFAULT_PREVIEW_TEXT

    def render(
        self,
        newsletter: Newsletter,
        items: List[NewsItem],
        email: Optional[str] = None,
    ) -> str:
        return render_letter(
            newsletter, items, unsubscribe_url(self.frontend_url, email)
        )

    def preview(self, newsletter_id: str) -> str:
        """Rendered HTML of a letter with its selected items; nothing is sent."""
        newsletter = self._require(newsletter_id)
        return self.render(newsletter, self.store.selected_news_items(newsletter_id))

    async def broadcast(
        self, newsletter: Newsletter, items: List[NewsItem]
    ) -> DispatchResult:
        html = self.render(newsletter, items)
        try:
            email_id = await self.stibee.create_and_send_email(
                self.subject(newsletter), html, self.preview_text(newsletter)
            )
        except ExternalApiError as e:
            logger.error(f"Broadcast of {newsletter.id} failed: {e.message}")
            return DispatchResult(
                newsletter_id=newsletter.id,
                mode="broadcast",
                success=False,
                error=e.message,
            )
        return DispatchResult(
            newsletter_id=newsletter.id,
            mode="broadcast",
            success=True,
            delivery_id=email_id,
        )

    async def fan_out(
        self, newsletter: Newsletter, items: List[NewsItem]
    ) -> FanOutResult:
        """Send the letter to each active subscriber, one after another."""
        subscribers = self.store.active_subscribers()
        if not subscribers:
            logger.warning(f"No active subscribers for {newsletter.id}")
            return FanOutResult(success=True)

        logger.info(f"Sending {newsletter.id} to {len(subscribers)} subscribers")
        sent_count = 0
        failed_emails: List[str] = []
        for index, subscriber in enumerate(subscribers):
            variables: Dict[str, str] = {
                "title": newsletter.title,
                "content": self.render(newsletter, items, subscriber.email),
                "curator_note": newsletter.curator_note or "",
                "subscriber_name": subscriber.name or DEFAULT_SUBSCRIBER_NAME,
                "unsubscribe_url": unsubscribe_url(
                    self.frontend_url, subscriber.email
                ),
            }
            if await self.stibee.send_auto_email(subscriber.email, variables):
                sent_count += 1
            else:
                failed_emails.append(subscriber.email)

            if self.send_delay and index < len(subscribers) - 1:
                await asyncio.sleep(self.send_delay)

        logger.info(f"Letter {newsletter.id} sent: {sent_count}/{len(subscribers)}")
        return FanOutResult(
            success=not failed_emails,
            sent_count=sent_count,
            failed_emails=failed_emails,
        )

    async def deliver(
        self, newsletter: Newsletter, items: List[NewsItem]
    ) -> DispatchResult:
        if self.mode == "broadcast":
            return await self.broadcast(newsletter, items)

        fan_out = await self.fan_out(newsletter, items)
        error = None
        if not fan_out.success:
            error = f"{len(fan_out.failed_emails)} recipients failed"
        return DispatchResult(
            newsletter_id=newsletter.id,
            mode="personalized",
            success=fan_out.success,
            sent_count=fan_out.sent_count,
            failed_emails=fan_out.failed_emails,
            error=error,
        )

    async def send(
        self,
        newsletter_id: str,
        now: Optional[datetime] = None,
        due_only: bool = False,
    ) -> DispatchResult:
        """Deliver a letter and mark it sent.

        With ``due_only`` the letter is only claimed while it is still
        scheduled at or before ``now``.

        Raises:
            NotFoundError: unknown letter
            ValidationError: letter already sent or provider not configured
            ConflictError: another dispatcher holds the letter
            NotDueError: ``due_only`` and the letter is no longer due
            DeliveryError: the provider did not accept the whole delivery
        """
        newsletter = self._require(newsletter_id)
        if newsletter.is_sent:
            if due_only:
                raise NotDueError(ALREADY_SENT, {"id": newsletter_id})
            raise ValidationError(ALREADY_SENT, {"id": newsletter_id})
        self._check_configured()

        now = as_utc(now or utcnow())
        token = new_id()
        claimed = self.store.claim_newsletter(
            newsletter_id,
            token,
            now,
            self.claim_ttl,
            due_before=now if due_only else None,
        )
        if not claimed:
            if due_only:
                raise NotDueError(
                    "Newsletter is no longer due", {"id": newsletter_id}
                )
            raise ConflictError(
                "Newsletter is already being dispatched", {"id": newsletter_id}
            )

        try:
            # Re-read under the claim so edits made before it are delivered
            newsletter = self._require(newsletter_id)
            items = self.store.selected_news_items(newsletter_id)
            logger.info(f"Dispatching {newsletter_id} ({self.mode}, {len(items)} items)")
            result = await self.deliver(newsletter, items)
        except BaseException:
            self.store.release_newsletter(newsletter_id, token)
            raise

        if not result.success:
            self.store.release_newsletter(newsletter_id, token)
            raise DeliveryError(
                f"Stibee delivery failed: {result.error}",
                {
                    "sent_count": result.sent_count,
                    "failed_emails": result.failed_emails,
                },
            )

        if self.store.mark_newsletter_sent(
            newsletter_id, token, now, result.delivery_id
        ) is None:
            # The claim expired and another dispatcher took over mid-delivery
            raise ConflictError(
                "Dispatch claim was lost during delivery", {"id": newsletter_id}
            )

        logger.info(f"Newsletter {newsletter_id} sent")
        return result

    async def send_test(self, newsletter_id: str, email: str) -> SendTestResult:
        """Deliver one copy to ``email``; the letter itself is not changed.

        Without an auto email URL the rendered HTML is handed back instead.
        """
        validate_required(email, "email")
        newsletter = self._require(newsletter_id)
        html = self.render(
            newsletter, self.store.selected_news_items(newsletter_id), email
        )

        if not self.stibee.auto_email_url:
            logger.info("Auto email URL not configured, returning preview only")
            return SendTestResult(delivered=False, to=email, preview_html=html)

        delivered = await self.stibee.send_auto_email(
            email,
            {
                "title": newsletter.title,
                "content": html,
                "curator_note": newsletter.curator_note or "",
            },
        )
        if not delivered:
            raise DeliveryError(f"Test email to {email} failed", {"to": email})
        return SendTestResult(delivered=True, to=email)

    async def dispatch_due(self, now: Optional[datetime] = None) -> DueDispatchReport:
        """Send every scheduled letter whose time has come, oldest first.

        Letters cancelled or rescheduled while earlier ones were being
        delivered are skipped.
        """
        now = as_utc(now or utcnow())
        due = self.store.due_newsletters(now)
        report = DueDispatchReport()
        if not due:
            logger.info("No scheduled newsletters due")
            return report

        logger.info(f"Found {len(due)} due newsletters")
        for newsletter in due:
            try:
                result = await self.send(newsletter.id, now, due_only=True)
                report.sent += 1
                report.results.append(result)
            except NotDueError as e:
                logger.info(f"Skipping {newsletter.id}: {e.message}")
                report.skipped.append(newsletter.id)
            except DeliveryError as e:
                logger.warning(f"Scheduled send of {newsletter.id} failed: {e.message}")
                report.errors.append(f"{newsletter.id}: {e.message}")
                report.results.append(
                    DispatchResult(
                        newsletter_id=newsletter.id,
                        mode=self.mode,
                        success=False,
                        sent_count=e.details.get("sent_count"),
                        failed_emails=e.details.get("failed_emails") or [],
                        error=e.message,
                    )
                )
            except AppError as e:
                logger.warning(f"Scheduled send of {newsletter.id} failed: {e.message}")
                report.errors.append(f"{newsletter.id}: {e.message}")
            except Exception as e:
                logger.exception(f"Unexpected error sending {newsletter.id}")
                report.errors.append(f"{newsletter.id}: {e}")
        return report
