"""Slack incoming-webhook chat sink."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

import httpx
import structlog

from .config import SlackConfig
from .interface import ChatSink
from .logging import component_logger
from .models import Category, Message

NOTIFICATION_FOOTER = "Reachinbox Email Aggregator"
ERROR_FOOTER = "Reachinbox Error Monitor"
STATS_FOOTER = "Reachinbox Daily Report"


def _field(title: str, value: Any, *, short: bool = True) -> dict[str, Any]:
    return {"title": title, "value": value, "short": short}


def build_slack_message(message: Message) -> dict[str, Any]:
    category = message.category.value if message.category else Category.INTERESTED.value
    return {
        "text": "🎯 New Interested Email Received",
        "attachments": [
            {
                "color": "good",
                "fields": [
                    _field("From", message.sender),
                    _field("To", message.recipient),
                    _field("Subject", message.subject, short=False),
                    _field("Date", message.date.strftime("%Y-%m-%d %H:%M:%S %Z").strip()),
                    _field("Account", message.account),
                    _field("Category", category),
                ],
                "footer": NOTIFICATION_FOOTER,
                "ts": int(message.date.timestamp()),
            }
        ],
    }


class SlackChatSink(ChatSink):
    """Posts notifications to a Slack incoming webhook.

    An empty ``webhook_url`` leaves the sink unconfigured: every send
    logs a warning and returns ``False``. Only HTTP 200 counts as success.
    """

    def __init__(
        self,
        config: SlackConfig,
        *,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._config = config
        self._client: httpx.AsyncClient | None = None
        self._log = logger or component_logger("slack")

    @property
    def is_configured(self) -> bool:
        return bool(self._config.webhook_url)

    async def start(self) -> None:
        self._client = httpx.AsyncClient(timeout=httpx.Timeout(self._config.timeout_seconds))

    async def stop(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def send_notification(self, message: Message) -> bool:
        sent = await self._post(build_slack_message(message), event="slack_notification")
        if sent:
            self._log.info("slack_notification_sent", id=message.id, subject=message.subject)
        return sent

    async def send_text(self, text: str, channel: str | None = None) -> bool:
        payload: dict[str, Any] = {"text": text}
        if channel:
            payload["channel"] = channel
        return await self._post(payload, event="slack_text")

    async def send_error(self, error: BaseException | str, context: str = "") -> bool:
        payload = {
            "text": "🚨 Error Alert",
            "attachments": [
                {
                    "color": "danger",
                    "fields": [
                        _field("Error", str(error), short=False),
                        _field("Context", context or "No context provided", short=False),
                        _field("Timestamp", datetime.now(UTC).isoformat()),
                    ],
                    "footer": ERROR_FOOTER,
                }
            ],
        }
        return await self._post(payload, event="slack_error_alert")

    async def send_stats(self, counts: dict[str, int]) -> bool:
        """Post per-category message counts, e.g. from ``ElasticsearchStore.category_counts``."""
        fields = [_field("Total Emails", sum(counts.values()))]
        fields.extend(_field(category.value, counts.get(category.value, 0)) for category in Category)
        payload = {
            "text": "📊 Daily Email Stats",
            "attachments": [
                {
                    "color": "good",
                    "fields": fields,
                    "footer": STATS_FOOTER,
                    "ts": int(datetime.now(UTC).timestamp()),
                }
            ],
        }
        return await self._post(payload, event="slack_stats")

    async def _post(self, payload: dict[str, Any], *, event: str) -> bool:
        if not self.is_configured:
            self._log.warning("slack_not_configured", kind=event)
            return False
        if self._client is None:
            raise AssertionError("Client not started")

        try:
            response = await self._client.post(self._config.webhook_url, json=payload)
        except httpx.HTTPError as exc:
            self._log.error("slack_send_failed", kind=event, error=str(exc))
            return False

        if response.status_code != 200:
            self._log.error("slack_send_rejected", kind=event, status_code=response.status_code)
            return False
        return True
