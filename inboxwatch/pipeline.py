"""Per-message processing: normalize, store, classify, notify."""

from __future__ import annotations

import structlog

from .classifier import ClassificationGateway
from .interface import EmailStore
from .logging import component_logger
from .models import Message
from .normalizer import MessageNormalizer
from .notifier import NotificationFanout


class MessagePipeline:
    """Runs one raw message through every stage, in order.

    1. normalize the raw bytes into a :class:`Message`
    2. ``store.put`` the uncategorised document
    3. categorise it
    4. ``store.patch_category``
    5. fan out notifications and the live update

    Store errors propagate; the caller isolates per-message failures.
    Classification and notification degrade on their own.
    """

    def __init__(
        self,
        *,
        normalizer: MessageNormalizer,
        store: EmailStore,
        classifier: ClassificationGateway,
        notifier: NotificationFanout,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._normalizer = normalizer
        self._store = store
        self._classifier = classifier
        self._notifier = notifier
        self._log = logger or component_logger("pipeline")

    async def process(
        self,
        raw_bytes: bytes,
        *,
        account: str,
        uid: int,
        flags: list[str] | tuple[str, ...] = (),
        size: int | None = None,
        folder: str = "INBOX",
    ) -> Message:
        message = self._normalizer.normalize(
            raw_bytes,
            account=account,
            uid=uid,
            flags=flags,
            size=size,
            folder=folder,
        )
        await self._store.put(message)

        category = await self._classifier.categorize(message)
        await self._store.patch_category(message.id, category)
        message = message.model_copy(update={"category": category})

        outcome = await self._notifier.dispatch(message)
        self._log.info(
            "message_processed",
            account=account,
            id=message.id,
            category=category.value,
            chat_sent=outcome.chat_sent,
            webhook_sent=outcome.webhook_sent,
        )
        return message
