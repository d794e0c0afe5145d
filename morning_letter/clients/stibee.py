"""Stibee API client for list management and email delivery.

The dispatch engine only relies on four operations: list upsert/delete,
list query, campaign create + send, and the single-recipient auto email.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional, Tuple
from urllib.parse import quote

import aiohttp

from ..core.errors import ExternalApiError

logger = logging.getLogger(__name__)


class StibeeClient:
    """Client for the Stibee v1/v2 REST APIs."""

    base_url = "https://api.stibee.com/v1"
    emails_url = "https://api.stibee.com/v2/emails"

    def __init__(self, settings):
        """Initialize Stibee client.

        Args:
            settings: Settings instance holding keys, list id and timeouts
        """
        self.api_key = settings.stibee_api_key or ""
        self.list_id = settings.stibee_list_id or ""
        self.sender_email = settings.stibee_sender_email or ""
        self.sender_name = settings.stibee_sender_name
        self.auto_email_url = settings.stibee_auto_email_url
        self.timeout = settings.delivery_timeout

    def is_configured(self) -> bool:
        """Whether list-scoped calls can be made."""
        return bool(self.api_key and self.list_id)

    @property
    def headers(self) -> Dict[str, str]:
        return {"AccessToken": self.api_key, "Content-Type": "application/json"}

    async def _request(
        self,
        method: str,
        url: str,
        payload: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Tuple[int, Any]:
        """Perform one call and return ``(status, body)``.

        The body is decoded JSON when possible, else the raw text.
        """
        timeout = aiohttp.ClientTimeout(total=self.timeout)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.request(
                    method,
                    url,
                    json=payload,
                    headers=self.headers if headers is None else headers,
                ) as response:
                    text = await response.text()
                    try:
                        body: Any = await response.json(content_type=None)
                    except ValueError:
                        body = text
                    return response.status, body
        except asyncio.TimeoutError as e:
            raise ExternalApiError("Stibee", f"timeout after {self.timeout}s") from e
        except aiohttp.ClientError as e:
            raise ExternalApiError("Stibee", f"network error: {e}") from e

    @staticmethod
    def _error_message(body: Any) -> str:
        if isinstance(body, dict):
            error = body.get("Error") or {}
            if isinstance(error, dict) and error.get("Message"):
                return str(error["Message"])
        if isinstance(body, str) and body.strip():
            return body.strip()[:200]
        return "Unknown error"

    @staticmethod
    def _ok(status: int, body: Any) -> bool:
        return 200 <= status < 300 and isinstance(body, dict) and bool(body.get("Ok"))

    # Subscriber list

    async def add_subscribers(
        self, subscribers: List[Dict[str, Any]]
    ) -> Dict[str, List[Any]]:
        """Upsert subscribers into the list.

        Returns:
            ``{"success": [...], "update": [...], "fail": [...]}``
        """
        if not self.is_configured():
            logger.warning("[Stibee] API not configured, skipping add_subscribers")
            return {"success": list(subscribers), "update": [], "fail": []}

        status, body = await self._request(
            "POST",
            f"{self.base_url}/lists/{self.list_id}/subscribers",
            {"subscribers": subscribers, "eventOccurredBy": "SUBSCRIBER"},
        )
        if not self._ok(status, body):
            message = self._error_message(body)
            logger.error(f"[Stibee] add_subscribers error {status}: {message}")
            raise ExternalApiError("Stibee", message)

        value = body.get("Value") or {}
        result = {
            "success": value.get("success") or [],
            "update": value.get("update") or [],
            "fail": value.get("fail") or [],
        }
        logger.info(
            f"[Stibee] add_subscribers: {len(result['success'])} added, "
            f"{len(result['update'])} updated, {len(result['fail'])} failed"
        )
        return result

    async def add_subscriber(self, subscriber: Dict[str, Any]) -> bool:
        result = await self.add_subscribers([subscriber])
        return bool(result["success"] or result["update"])

    async def delete_subscriber(self, email: str) -> bool:
        if not self.is_configured():
            logger.warning("[Stibee] API not configured, skipping delete_subscriber")
            return True

        status, _ = await self._request(
            "DELETE",
            f"{self.base_url}/lists/{self.list_id}/subscribers/{quote(email)}",
        )
        if not 200 <= status < 300:
            logger.error(f"[Stibee] delete_subscriber error: {status}")
            return False
        logger.info(f"[Stibee] delete_subscriber success: {email}")
        return True

    async def get_subscribers(
        self, offset: int = 0, limit: int = 100
    ) -> List[Dict[str, Any]]:
        if not self.is_configured():
            return []

        status, body = await self._request(
            "GET",
            f"{self.base_url}/lists/{self.list_id}/subscribers"
            f"?offset={offset}&limit={limit}",
        )
        if not self._ok(status, body):
            logger.error(f"[Stibee] get_subscribers error: {self._error_message(body)}")
            return []
        value = body.get("Value") or []
        if isinstance(value, dict):
            value = value.get("subscribers") or []
        return value

    # Email delivery

    async def create_email(
        self, subject: str, content: str, preview_text: str = ""
    ) -> str:
        """Create a campaign for the whole list and return its id."""
        status, body = await self._request(
            "POST",
            self.emails_url,
            {
                "listId": int(self.list_id) if self.list_id.isdigit() else self.list_id,
                "subject": subject,
                "previewText": preview_text,
                "content": content,
                "senderEmail": self.sender_email,
                "senderName": self.sender_name,
            },
        )
        value = body.get("Value") if isinstance(body, dict) else None
        email_id = value.get("id") if isinstance(value, dict) else None
        if not self._ok(status, body) or not email_id:
            message = self._error_message(body)
            logger.error(f"[Stibee] create_email error {status}: {message}")
            raise ExternalApiError("Stibee", f"create email failed: {message}")
        logger.info(f"[Stibee] Email created: {email_id}")
        return str(email_id)

    async def send_email(self, email_id: str) -> None:
        status, body = await self._request(
            "POST",
            f"{self.emails_url}/{email_id}/send",
            headers={"AccessToken": self.api_key},
        )
        if not self._ok(status, body):
            message = self._error_message(body)
            logger.error(f"[Stibee] send_email error {status}: {message}")
            raise ExternalApiError("Stibee", f"send email failed: {message}")
        logger.info(f"[Stibee] Email sent: {email_id}")

    async def create_and_send_email(
        self, subject: str, content: str, preview_text: str = ""
    ) -> str:
        """Broadcast a campaign; both the create and the send call must succeed."""
        email_id = await self.create_email(subject, content, preview_text)
        await self.send_email(email_id)
        return email_id

    async def send_auto_email(
        self, email: str, variables: Optional[Dict[str, str]] = None
    ) -> bool:
        """Trigger the auto email for one recipient with substitution variables."""
        if not self.auto_email_url:
            logger.error("[Stibee] Auto email URL not configured")
            return False

        try:
            status, body = await self._request(
                "POST",
                self.auto_email_url,
                {"subscriber": email, **(variables or {})},
                headers={"Content-Type": "application/json"},
            )
        except ExternalApiError as e:
            logger.error(f"[Stibee] send_auto_email exception for {email}: {e}")
            return False

        if not 200 <= status < 300:
            logger.error(
                f"[Stibee] send_auto_email error for {email}: {status} "
                f"{self._error_message(body)}"
            )
            return False
        logger.debug(f"[Stibee] send_auto_email success: {email}")
        return True
