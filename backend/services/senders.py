"""
Notification Sender
===================
Outbound delivery for alert notifications: email through the SendGrid v3
HTTP API and JSON posts to chat webhooks.
"""

from typing import Any

import httpx
import structlog

from backend.config import settings

logger = structlog.get_logger()


class NotificationSender:
    """
    Deliver rendered notifications.

    Both methods raise on failure (``httpx.HTTPError`` or
    ``httpx.HTTPStatusError``); callers decide how to isolate them.
    Without a SendGrid API key emails are logged instead of sent.
    """

    def __init__(
        self,
        http_client: httpx.AsyncClient | None = None,
        sendgrid_api_key: str | None = None,
        from_email: str | None = None,
        from_name: str | None = None,
        sendgrid_api_url: str | None = None,
    ):
        self._client = http_client or httpx.AsyncClient(
            timeout=settings.notification_timeout_seconds,
            headers={"User-Agent": "apimetrics-alerts/1.0.0"},
        )
        self.sendgrid_api_key = sendgrid_api_key or settings.sendgrid_api_key
        self.from_email = from_email or settings.alert_from_email
        self.from_name = from_name or settings.alert_from_name
        self.sendgrid_api_url = sendgrid_api_url or settings.sendgrid_api_url

    async def send_email(self, address: str, subject: str, body: str) -> None:
        """Send a plain-text email."""
        if not self.sendgrid_api_key:
            logger.info("Email delivery not configured, skipping", to=address, subject=subject)
            return

        payload = {
            "personalizations": [{"to": [{"email": address}]}],
            "from": {"email": self.from_email, "name": self.from_name},
            "subject": subject,
            "content": [{"type": "text/plain", "value": body}],
        }
        response = await self._client.post(
            self.sendgrid_api_url,
            json=payload,
            headers={"Authorization": f"Bearer {self.sendgrid_api_key}"},
        )
        response.raise_for_status()
        logger.info("Email sent", to=address, subject=subject)

    async def post_webhook(self, url: str, message: dict[str, Any]) -> None:
        """POST a JSON message to a webhook URL."""
        response = await self._client.post(url, json=message)
        response.raise_for_status()
        logger.info("Webhook notified", host=response.request.url.host)

    async def aclose(self) -> None:
        await self._client.aclose()
