"""Subscriber management with a best-effort mirror in the Stibee list."""

import logging
import sqlite3
from typing import Any, Dict, List, Optional, Tuple

from .errors import ExternalApiError, NotFoundError, ValidationError, validate_required
from .store import Datastore
from .utils import is_valid_email
from ..clients.stibee import StibeeClient
from ..models.content import Page, Subscriber, SubscriberStatus, utcnow

logger = logging.getLogger(__name__)

PROFILE_FIELDS = ("name", "phone", "company", "position")


def _provider_record(subscriber: Subscriber) -> Dict[str, Any]:
    record = {"email": subscriber.email}
    for field in ("name", "company", "position"):
        value = getattr(subscriber, field)
        if value:
            record[field] = value
    return record


class SubscriberService:
    """Local subscriber records are authoritative; the provider list follows."""

    def __init__(self, store: Datastore, stibee: StibeeClient):
        self.store = store
        self.stibee = stibee

    def _check_email(self, email: Optional[str]) -> str:
        validate_required(email, "email")
        email = email.strip().lower()
        if not is_valid_email(email):
            raise ValidationError("Invalid email address", {"email": email})
        return email

    async def _mirror_add(self, subscriber: Subscriber) -> bool:
        try:
            return await self.stibee.add_subscriber(_provider_record(subscriber))
        except ExternalApiError as e:
            logger.warning(f"Could not mirror {subscriber.email} to Stibee: {e}")
            return False

    async def _mirror_delete(self, email: str) -> bool:
        try:
            return await self.stibee.delete_subscriber(email)
        except ExternalApiError as e:
            logger.warning(f"Could not remove {email} from Stibee: {e}")
            return False

    async def subscribe(
        self, email: str, privacy_agreed: bool = False, **profile: Optional[str]
    ) -> Tuple[Subscriber, bool]:
        """Register or reactivate a reader.

        Returns:
            The subscriber and whether the provider list accepted it
        """
        email = self._check_email(email)
        fields = {k: v for k, v in profile.items() if k in PROFILE_FIELDS and v}
        now = utcnow()

        existing = self.store.get_subscriber_by_email(email)
        if existing and existing.status == SubscriberStatus.ACTIVE.value:
            raise ValidationError("Email is already subscribed", {"email": email})

        if existing:
            subscriber = self.store.update_subscriber(
                existing.id,
                status=SubscriberStatus.ACTIVE,
                privacy_agreed=privacy_agreed,
                privacy_agreed_at=now if privacy_agreed else None,
                **fields,
            )
            logger.info(f"Reactivated subscriber {email}")
        else:
            subscriber = self._insert(
                email,
                privacy_agreed=privacy_agreed,
                privacy_agreed_at=now if privacy_agreed else None,
                **fields,
            )
            logger.info(f"New subscriber {email}")

        return subscriber, await self._mirror_add(subscriber)

    async def unsubscribe(self, email: str) -> bool:
        email = self._check_email(email)
        subscriber = self.store.get_subscriber_by_email(email)
        if subscriber is None:
            raise NotFoundError("Subscriber")
        self.store.update_subscriber(
            subscriber.id, status=SubscriberStatus.UNSUBSCRIBED
        )
        logger.info(f"Unsubscribed {email}")
        return await self._mirror_delete(email)

    def _insert(self, email: str, **fields: Any) -> Subscriber:
        try:
            return self.store.insert_subscriber(email, **fields)
        except sqlite3.IntegrityError as e:
            raise ValidationError(
                "Email is already registered", {"email": email}
            ) from e

    async def add(self, email: str, **profile: Optional[str]) -> Subscriber:
        """Admin insert of an active subscriber."""
        email = self._check_email(email)
        fields = {k: v for k, v in profile.items() if k in PROFILE_FIELDS and v}
        subscriber = self._insert(email, **fields)
        await self._mirror_add(subscriber)
        return subscriber

    async def delete(self, subscriber_id: str) -> bool:
        """Remove a subscriber locally and from the provider list."""
        subscriber = self.store.get_subscriber(subscriber_id)
        if subscriber is None:
            raise NotFoundError("Subscriber")
        self.store.delete_subscriber(subscriber_id)
        logger.info(f"Deleted subscriber {subscriber.email}")
        return await self._mirror_delete(subscriber.email)

    def list(
        self,
        status: Optional[str] = None,
        search: Optional[str] = None,
        page: int = 1,
        limit: int = 50,
    ) -> Tuple[List[Subscriber], Page]:
        if status is not None and status not in {s.value for s in SubscriberStatus}:
            raise ValidationError(f"Unknown status '{status}'", {"status": status})
        page, limit = max(page, 1), max(limit, 1)
        subscribers, total = self.store.list_subscribers(
            status=status, search=search, limit=limit, offset=(page - 1) * limit
        )
        return subscribers, Page.build(page, limit, total)

    def stats(self) -> Dict[str, Any]:
        counts = self.store.subscriber_status_counts()
        stats: Dict[str, Any] = {"total": sum(counts.values())}
        for status in SubscriberStatus:
            stats[status.value] = counts.get(status.value, 0)
        stats["stibee_configured"] = self.stibee.is_configured()
        return stats

    def _require_provider(self) -> None:
        if not self.stibee.is_configured():
            raise ValidationError("Stibee API is not configured.")

    async def sync_to_provider(self) -> Dict[str, Any]:
        """Upsert every active subscriber into the provider list."""
        self._require_provider()
        active = self.store.active_subscribers()
        if not active:
            return {"total": 0, "success": 0, "updated": 0, "failed": 0}

        result = await self.stibee.add_subscribers([_provider_record(s) for s in active])
        failed = [
            f.get("email") if isinstance(f, dict) else f for f in result["fail"]
        ]
        logger.info(f"Synced {len(active)} subscribers to Stibee, {len(failed)} failed")
        return {
            "total": len(active),
            "success": len(result["success"]),
            "updated": len(result["update"]),
            "failed": len(failed),
            "failed_emails": failed,
        }

    async def import_from_provider(self) -> Dict[str, int]:
        """Insert provider list members that are missing locally."""
        self._require_provider()
        remote = await self.stibee.get_subscribers(0, 10000)

        imported = skipped = errors = 0
        for record in remote:
            email = (record.get("email") or "").strip().lower()
            if not is_valid_email(email):
                errors += 1
                continue
            if self.store.get_subscriber_by_email(email):
                skipped += 1
                continue
            fields = {
                k: record[k] for k in ("name", "company", "position") if record.get(k)
            }
            try:
                self.store.insert_subscriber(email, **fields)
                imported += 1
            except sqlite3.IntegrityError:
                skipped += 1

        logger.info(f"Imported {imported} subscribers from Stibee")
        return {
            "total": len(remote),
            "imported": imported,
            "skipped": skipped,
            "errors": errors,
        }
