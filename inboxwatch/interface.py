"""Capability contracts between the ingestion core and its collaborators.

The supervisor composes concrete implementations of these ABCs; tests
substitute fakes. No component reaches into another's internals.
"""

from __future__ import annotations

import abc
from typing import Any

from .models import Category, LiveUpdateEvent, Message, SearchResult, VectorMatch


class EmailStore(abc.ABC):
    """Keyed document store with full-text query capability."""

    @abc.abstractmethod
    async def put(self, message: Message) -> None:
        """Upsert *message* under its identifier (full replace)."""

    @abc.abstractmethod
    async def patch_category(self, message_id: str, category: Category) -> None:
        """Partially update the category and updated-at timestamp."""

    @abc.abstractmethod
    async def query(self, text: str | None, filters: dict[str, Any] | None = None) -> SearchResult:
        """Return ranked messages matching *text* and *filters*."""


class VectorIndex(abc.ABC):
    """Nearest-neighbour lookup service."""

    @property
    def ready(self) -> bool:
        """False until the backing collection is known to exist."""
        return True

    @abc.abstractmethod
    async def upsert(self, point_id: str, vector: list[float], payload: dict[str, Any]) -> None:
        ...

    @abc.abstractmethod
    async def search(
        self,
        vector: list[float],
        k: int,
        *,
        payload_filter: dict[str, Any] | None = None,
    ) -> list[VectorMatch]:
        ...

    @abc.abstractmethod
    async def delete(self, point_id: str) -> None:
        ...

    async def count(self) -> int | None:
        """Number of stored points, or ``None`` if unknown."""
        return None


class Embedder(abc.ABC):
    """Turns text into a fixed-width vector."""

    @abc.abstractmethod
    async def embed(self, text: str) -> list[float]:
        ...


class LanguageModel(abc.ABC):
    """Black-box text completion used for categorisation and replies."""

    @property
    @abc.abstractmethod
    def is_configured(self) -> bool:
        """False when no credentials are available; callers then degrade."""

    @abc.abstractmethod
    async def complete(
        self,
        *,
        system: str,
        prompt: str,
        max_tokens: int,
        temperature: float,
        timeout: float | None = None,
    ) -> str:
        """Return the model's reply text. Raises on any failure."""


class ChatSink(abc.ABC):
    """Chat-notification target."""

    @abc.abstractmethod
    async def send_notification(self, message: Message) -> bool:
        """Announce *message*. Returns success; never raises."""


class WebhookSink(abc.ABC):
    """Outbound webhook target."""

    @abc.abstractmethod
    async def trigger(self, message: Message) -> bool:
        """Deliver one message envelope. Returns success; never raises."""

    @abc.abstractmethod
    async def trigger_batch(self, messages: list[Message]) -> bool:
        """Deliver one envelope holding every message. Returns success; never raises."""


class LiveUpdatePublisher(abc.ABC):
    """Publish-only topic for lightweight message summaries."""

    async def start(self) -> None:
        return None

    async def stop(self) -> None:
        return None

    @abc.abstractmethod
    async def publish(self, event: LiveUpdateEvent) -> None:
        """Best-effort fan-out to whoever is currently subscribed."""
