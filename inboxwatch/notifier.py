"""Category-routed notification fan-out."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable

import structlog

from .interface import ChatSink, LiveUpdatePublisher, WebhookSink
from .logging import component_logger
from .models import Category, LiveUpdateEvent, Message, NotificationOutcome


class NotificationFanout:
    """Routes a categorised message to the sinks and the live-update channel.

    ``Interested`` messages go to the chat sink and the webhook sink
    concurrently; each sink succeeds or fails on its own. Every message,
    whatever its category, is then published to the live-update channel.
    Nothing here raises to the caller.
    """

    def __init__(
        self,
        *,
        chat: ChatSink | None,
        webhook: WebhookSink | None,
        live: LiveUpdatePublisher | None,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._chat = chat
        self._webhook = webhook
        self._live = live
        self._log = logger or component_logger("notifier")

    async def dispatch(self, message: Message) -> NotificationOutcome:
        outcome = NotificationOutcome()

        if message.category == Category.INTERESTED:
            outcome.chat_sent, outcome.webhook_sent = await asyncio.gather(
                self._guard("chat", message.id, self._chat.send_notification(message))
                if self._chat is not None
                else _none(),
                self._guard("webhook", message.id, self._webhook.trigger(message))
                if self._webhook is not None
                else _none(),
            )

        outcome.published = await self._publish(message)
        return outcome

    async def dispatch_batch(self, messages: list[Message]) -> bool | None:
        """Send the ``Interested`` subset of *messages* in one webhook call.

        Returns ``None`` when nothing was sent.
        """
        interested = [m for m in messages if m.category == Category.INTERESTED]
        if not interested or self._webhook is None:
            return None
        return await self._guard("webhook_batch", None, self._webhook.trigger_batch(interested))

    async def _guard(self, sink: str, message_id: str | None, call: Awaitable[bool]) -> bool:
        try:
            return bool(await call)
        except Exception as exc:
            self._log.error("sink_failed", sink=sink, id=message_id, error=str(exc))
            return False

    async def _publish(self, message: Message) -> bool:
        if self._live is None:
            return False
        try:
            await self._live.publish(LiveUpdateEvent.from_message(message))
        except Exception as exc:
            self._log.warning("live_update_failed", id=message.id, error=str(exc))
            return False
        return True


async def _none() -> None:
    return None
