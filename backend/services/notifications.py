"""
Notification Dispatcher
=======================
Fan a triggered alert out to its channels, isolating every channel.
"""

import asyncio
from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal
from typing import Any
from uuid import UUID

import structlog
from pydantic import ValidationError

from backend.config import settings
from backend.core import metrics
from backend.schemas.alerts import AlertChannel, AlertType, ChannelType
from backend.services.senders import NotificationSender

logger = structlog.get_logger()


@dataclass
class AlertNotification:
    """Everything a channel needs to describe a triggered alert."""

    alert_id: UUID
    alert_name: str
    alert_type: AlertType
    threshold: Decimal
    actual: Decimal
    time_range: str
    total_calls: int
    errors: int
    total_cost: Decimal


@dataclass
class ChannelResult:
    """Outcome of a single channel attempt."""

    channel: str
    target: str | None
    delivered: bool
    error: str | None = None


def _money(value: Decimal) -> str:
    return f"${value:.2f}"


def _plain(value: Decimal) -> str:
    text = f"{value:f}"
    return text.rstrip("0").rstrip(".") if "." in text else text


def render_email(notification: AlertNotification) -> tuple[str, str]:
    """Return (subject, plain-text body) for an alert email."""
    n = notification
    if n.alert_type == AlertType.DAILY_BUDGET:
        subject = f"Budget Alert: {_money(n.actual)} / {_money(n.threshold)}"
        lines = [
            f"{n.alert_name} has exceeded its {n.time_range} budget limit.",
            "",
            f"Budget threshold: {_money(n.threshold)}",
            f"Current spending: {_money(n.actual)}",
            f"Total calls: {n.total_calls}",
            "",
            "Consider reviewing your usage or adjusting your budget limits.",
        ]
    elif n.alert_type == AlertType.HOURLY_SPIKE:
        subject = f"Cost Spike Alert: {_money(n.actual)} in the last hour"
        lines = [
            f"We detected a spike in API costs for {n.alert_name}.",
            "",
            f"{n.time_range.capitalize()} cost: {_money(n.actual)}",
            f"Threshold: {_money(n.threshold)}",
            f"Total calls: {n.total_calls}",
            "",
            "Check for runaway processes, recent deployments or a leaked API key.",
        ]
    elif n.alert_type == AlertType.ERROR_RATE:
        subject = f"Error Rate Alert: {n.actual:.1f}% (threshold: {_plain(n.threshold)}%)"
        lines = [
            f"{n.alert_name} is experiencing a high error rate.",
            "",
            f"Threshold: {_plain(n.threshold)}%",
            f"Current {n.time_range} error rate: {n.actual:.1f}% ({n.errors}/{n.total_calls} calls)",
            "",
            "Check API keys, rate limits and provider status.",
        ]
    else:
        raise ValueError(f"Unknown alert type: {n.alert_type}")
    return subject, "\n".join(lines)


def render_summary(notification: AlertNotification) -> str:
    """Human-readable summary in Slack mrkdwn."""
    n = notification
    if n.alert_type == AlertType.DAILY_BUDGET:
        return (
            f"Your daily API spending has reached *{_money(n.actual)}*, "
            f"exceeding your threshold of {_money(n.threshold)}.\n\n"
            f"Total calls: {n.total_calls}\n"
            "Consider reviewing your usage or adjusting your budget."
        )
    if n.alert_type == AlertType.HOURLY_SPIKE:
        return (
            f"Unusual spike detected! API costs reached *{_money(n.actual)}* in the last hour, "
            f"exceeding your threshold of {_money(n.threshold)}.\n\n"
            f"Total calls: {n.total_calls}\n"
            "This may indicate an issue or unexpected usage pattern."
        )
    if n.alert_type == AlertType.ERROR_RATE:
        return (
            f"High error rate detected! *{n.actual:.1f}%* of API calls are failing "
            f"({n.errors}/{n.total_calls}), exceeding your threshold of {_plain(n.threshold)}%.\n\n"
            "Please check your API configuration and error logs."
        )
    raise ValueError(f"Unknown alert type: {n.alert_type}")


def build_slack_message(notification: AlertNotification) -> dict[str, Any]:
    """Slack Block Kit payload: header, summary section and context line."""
    return {
        "text": f"APImetrics Alert: {notification.alert_name}",
        "blocks": [
            {
                "type": "header",
                "text": {"type": "plain_text", "text": notification.alert_name},
            },
            {
                "type": "section",
                "text": {"type": "mrkdwn", "text": render_summary(notification)},
            },
            {
                "type": "context",
                "elements": [
                    {
                        "type": "mrkdwn",
                        "text": (
                            f"Alert Type: `{notification.alert_type.value}` | "
                            f"Threshold: {_plain(notification.threshold)}"
                        ),
                    }
                ],
            },
        ],
    }


class NotificationDispatcher:
    """
    Deliver a triggered alert to every configured channel.

    Each channel gets its own deadline and exception guard: one failing or
    hanging channel never blocks the others and nothing is raised upward.
    """

    def __init__(self, sender: NotificationSender, timeout: float | None = None):
        self.sender = sender
        self.timeout = settings.notification_timeout_seconds if timeout is None else timeout

    async def dispatch(
        self,
        notification: AlertNotification,
        channels: Iterable[dict[str, Any] | AlertChannel],
    ) -> list[ChannelResult]:
        results = []
        for raw in channels:
            results.append(await self._deliver(notification, raw))
        return results

    async def _deliver(
        self,
        notification: AlertNotification,
        raw: dict[str, Any] | AlertChannel,
    ) -> ChannelResult:
        try:
            channel = raw if isinstance(raw, AlertChannel) else AlertChannel.model_validate(raw)
        except ValidationError as e:
            kind = raw.get("type", "unknown") if isinstance(raw, dict) else "unknown"
            logger.warning(
                "Skipping misconfigured channel",
                alert_id=str(notification.alert_id),
                channel=kind,
                error=str(e),
            )
            metrics.NOTIFICATIONS_TOTAL.labels(channel=str(kind), outcome="invalid").inc()
            return ChannelResult(channel=str(kind), target=None, delivered=False, error="invalid channel")

        target = channel.value if channel.type == ChannelType.EMAIL else channel.webhook
        try:
            await asyncio.wait_for(self._send(notification, channel), timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.error(
                "Notification timed out",
                alert_id=str(notification.alert_id),
                channel=channel.type.value,
                timeout=self.timeout,
            )
            metrics.NOTIFICATIONS_TOTAL.labels(channel=channel.type.value, outcome="timeout").inc()
            return ChannelResult(channel.type.value, target, delivered=False, error="timeout")
        except Exception as e:
            logger.error(
                "Notification failed",
                alert_id=str(notification.alert_id),
                channel=channel.type.value,
                error=str(e),
            )
            metrics.NOTIFICATIONS_TOTAL.labels(channel=channel.type.value, outcome="error").inc()
            return ChannelResult(channel.type.value, target, delivered=False, error=str(e))

        metrics.NOTIFICATIONS_TOTAL.labels(channel=channel.type.value, outcome="delivered").inc()
        return ChannelResult(channel.type.value, target, delivered=True)

    async def _send(self, notification: AlertNotification, channel: AlertChannel) -> None:
        if channel.type == ChannelType.EMAIL:
            subject, body = render_email(notification)
            await self.sender.send_email(channel.value, subject, body)
        elif channel.type == ChannelType.SLACK:
            await self.sender.post_webhook(channel.webhook, build_slack_message(notification))
