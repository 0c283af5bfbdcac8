"""Outbound HTTP webhook sink."""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

import httpx
import structlog

from .config import WebhookConfig
from .interface import WebhookSink
from .logging import component_logger
from .models import Message

USER_AGENT = "Reachinbox-Webhook/1.0"

EVENT_INTERESTED = "email.interested"
EVENT_BATCH_INTERESTED = "email.batch.interested"
EVENT_TEST = "test"
EVENT_ERROR = "error"

TEST_TIMEOUT_SECONDS = 5.0
ERROR_TIMEOUT_SECONDS = 5.0
BATCH_BASE_SIZE = 10
BATCH_SECONDS_PER_MESSAGE = 0.5
BATCH_MAX_TIMEOUT_SECONDS = 60.0


def batch_timeout(count: int, base: float) -> float:
    """Base timeout plus 0.5 s per message beyond the tenth, capped at 60 s."""
    extra = max(count - BATCH_BASE_SIZE, 0) * BATCH_SECONDS_PER_MESSAGE
    return min(base + extra, BATCH_MAX_TIMEOUT_SECONDS)


def _now() -> str:
    return datetime.now(UTC).isoformat()


def message_data(message: Message) -> dict[str, Any]:
    """The ``data`` block of an envelope: the full stored document."""
    document = message.to_document()
    document.pop("createdAt", None)
    document.pop("updatedAt", None)
    return document


class HttpWebhookSink(WebhookSink):
    """POSTs JSON envelopes to a configured URL.

    Any 2xx response counts as delivered. Failures are logged and reported
    as ``False``; nothing is retried here.
    """

    def __init__(
        self,
        config: WebhookConfig,
        *,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._config = config
        self._client: httpx.AsyncClient | None = None
        self._log = logger or component_logger("webhook")

    @property
    def is_configured(self) -> bool:
        return bool(self._config.url)

    @property
    def url(self) -> str:
        return self._config.url

    async def start(self) -> None:
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(self._config.timeout_seconds),
            headers={"Content-Type": "application/json", "User-Agent": USER_AGENT},
        )

    async def stop(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _metadata(self, **extra: Any) -> dict[str, Any]:
        return {"source": self._config.source, "version": self._config.version, **extra}

    def build_payload(self, message: Message) -> dict[str, Any]:
        return {
            "event": EVENT_INTERESTED,
            "timestamp": _now(),
            "data": message_data(message),
            "metadata": self._metadata(processedAt=_now()),
        }

    async def trigger(self, message: Message) -> bool:
        if not self._check_configured(EVENT_INTERESTED):
            return False
        sent = await self._post(
            self._config.url,
            self.build_payload(message),
            event=EVENT_INTERESTED,
            timeout=self._config.timeout_seconds,
        )
        if sent:
            self._log.info("webhook_triggered", id=message.id, subject=message.subject)
        return sent

    async def trigger_batch(self, messages: list[Message]) -> bool:
        if not self._check_configured(EVENT_BATCH_INTERESTED):
            return False
        payload = {
            "event": EVENT_BATCH_INTERESTED,
            "timestamp": _now(),
            "count": len(messages),
            "data": [message_data(message) for message in messages],
            "metadata": self._metadata(processedAt=_now()),
        }
        sent = await self._post(
            self._config.url,
            payload,
            event=EVENT_BATCH_INTERESTED,
            timeout=batch_timeout(len(messages), self._config.batch_timeout_seconds),
        )
        if sent:
            self._log.info("batch_webhook_triggered", count=len(messages))
        return sent

    async def send_test(self) -> bool:
        if not self._check_configured(EVENT_TEST):
            return False
        payload = {
            "event": EVENT_TEST,
            "timestamp": _now(),
            "message": "This is a test webhook from Reachinbox Email Aggregator",
            "metadata": self._metadata(),
        }
        return await self._post(
            self._config.url, payload, event=EVENT_TEST, timeout=TEST_TIMEOUT_SECONDS
        )

    async def send_error(self, error: BaseException | str, context: str = "") -> bool:
        if not self._check_configured(EVENT_ERROR):
            return False
        payload = {
            "event": EVENT_ERROR,
            "timestamp": _now(),
            "error": {
                "message": str(error),
                "type": type(error).__name__ if isinstance(error, BaseException) else None,
                "context": context,
            },
            "metadata": self._metadata(severity="error"),
        }
        return await self._post(
            self._config.url, payload, event=EVENT_ERROR, timeout=ERROR_TIMEOUT_SECONDS
        )

    async def trigger_custom(
        self,
        url: str,
        payload: dict[str, Any],
        headers: dict[str, str] | None = None,
    ) -> bool:
        """POST *payload* to an arbitrary *url*; *headers* override the defaults."""
        return await self._post(
            url,
            payload,
            event="custom",
            timeout=self._config.timeout_seconds,
            headers=headers,
        )

    def _check_configured(self, event: str) -> bool:
        if not self.is_configured:
            self._log.warning("webhook_not_configured", webhook_event=event)
            return False
        return True

    async def _post(
        self,
        url: str,
        payload: dict[str, Any],
        *,
        event: str,
        timeout: float,
        headers: dict[str, str] | None = None,
    ) -> bool:
        if self._client is None:
            raise AssertionError("Client not started")

        try:
            response = await self._client.post(url, json=payload, timeout=timeout, headers=headers)
        except httpx.HTTPError as exc:
            self._log.error("webhook_failed", webhook_event=event, url=url, error=str(exc))
            return False

        if not response.is_success:
            self._log.error(
                "webhook_rejected",
                webhook_event=event,
                url=url,
                status_code=response.status_code,
            )
            return False
        return True
