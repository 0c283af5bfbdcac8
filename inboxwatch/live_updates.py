"""Live-update channel: lightweight message summaries for connected viewers.

Two backends are available. :class:`InMemoryLiveUpdates` fans events out
to in-process subscriber queues; :class:`KafkaLiveUpdates` publishes them
to a Kafka topic.
"""

from __future__ import annotations

import asyncio

import structlog
from aiokafka import AIOKafkaProducer

from .config import LiveUpdatesConfig
from .interface import LiveUpdatePublisher
from .logging import component_logger
from .models import LiveUpdateEvent

DEFAULT_TOPIC = "email-updates"


class InMemoryLiveUpdates(LiveUpdatePublisher):
    """Per-subscriber bounded queues.

    A subscriber whose queue is full misses the event; publishing never
    blocks on a slow consumer.
    """

    def __init__(
        self,
        *,
        topic: str = DEFAULT_TOPIC,
        queue_size: int = 100,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self.topic = topic
        self._queue_size = queue_size
        self._subscribers: set[asyncio.Queue[LiveUpdateEvent]] = set()
        self._log = logger or component_logger("live_updates", topic=topic)

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self) -> asyncio.Queue[LiveUpdateEvent]:
        queue: asyncio.Queue[LiveUpdateEvent] = asyncio.Queue(maxsize=self._queue_size)
        self._subscribers.add(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue[LiveUpdateEvent]) -> None:
        self._subscribers.discard(queue)

    async def publish(self, event: LiveUpdateEvent) -> None:
        for queue in list(self._subscribers):
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                self._log.warning("live_update_dropped", id=event.id)
        self._log.debug("live_update_published", id=event.id, subscribers=len(self._subscribers))


class KafkaLiveUpdates(LiveUpdatePublisher):
    """Publishes each event as JSON to a Kafka topic, keyed by message id."""

    def __init__(
        self,
        config: LiveUpdatesConfig,
        *,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._config = config
        self._producer: AIOKafkaProducer | None = None
        self._log = logger or component_logger("live_updates", topic=config.topic)

    async def start(self) -> None:
        self._producer = AIOKafkaProducer(
            bootstrap_servers=self._config.kafka_bootstrap_servers,
            compression_type=self._config.kafka_compression,
        )
        await self._producer.start()
        self._log.info("kafka_producer_started", servers=self._config.kafka_bootstrap_servers)

    async def stop(self) -> None:
        if self._producer is not None:
            await self._producer.stop()
            self._producer = None
            self._log.info("kafka_producer_stopped")

    async def publish(self, event: LiveUpdateEvent) -> None:
        assert self._producer is not None, "Producer not started"
        await self._producer.send_and_wait(
            self._config.topic,
            value=event.model_dump_json(by_alias=True).encode("utf-8"),
            key=event.id.encode("utf-8"),
        )
        self._log.debug("live_update_published", id=event.id)


def create_live_updates(
    config: LiveUpdatesConfig,
    *,
    logger: structlog.stdlib.BoundLogger | None = None,
) -> LiveUpdatePublisher:
    if config.backend == "kafka":
        return KafkaLiveUpdates(config, logger=logger)
    return InMemoryLiveUpdates(
        topic=config.topic,
        queue_size=config.subscriber_queue_size,
        logger=logger,
    )
