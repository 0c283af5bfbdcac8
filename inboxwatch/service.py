"""InboxWatchService: wires the collaborators together and runs until shutdown."""

from __future__ import annotations

import asyncio

import structlog
import uvicorn

from .classifier import ClassificationGateway
from .config import InboxWatchConfig
from .embeddings import FallbackEmbedder
from .health import create_health_app
from .live_updates import create_live_updates
from .llm import OpenAIClient
from .logging import component_logger, setup_logging
from .normalizer import MessageNormalizer
from .notifier import NotificationFanout
from .pipeline import MessagePipeline
from .shutdown import install_signal_handlers
from .slack import SlackChatSink
from .store import ElasticsearchStore
from .supervisor import IngestionSupervisor
from .training import TrainingLibrary
from .vector_store import QdrantVectorIndex
from .webhook import HttpWebhookSink

logger = structlog.get_logger()


class InboxWatchService:
    """Owns every long-lived client and the ingestion supervisor.

    ``run()`` first starts the store, LLM, vector index, sinks and
    live-update channel, then runs concurrently via
    :class:`asyncio.TaskGroup`:

    * the FastAPI health server (for probes)
    * the supervisor start-up, which returns once every account has
      backfilled
    * a watcher that stops the supervisor as soon as SIGTERM/SIGINT
      arrives, even mid-backfill

    Everything else is then stopped in reverse order.
    """

    def __init__(self, config: InboxWatchConfig) -> None:
        self.config = config
        self.failed = False
        self._shutdown_event = asyncio.Event()

        self.llm = OpenAIClient(config.openai, logger=component_logger("openai"))
        self.vector_index = QdrantVectorIndex(config.qdrant)
        self.embedder = FallbackEmbedder(self.llm, size=config.qdrant.vector_size)
        self.training = TrainingLibrary(self.vector_index, self.embedder)
        self.store = ElasticsearchStore(config.elasticsearch)
        self.slack = SlackChatSink(config.slack)
        self.webhook = HttpWebhookSink(config.webhook)
        self.live_updates = create_live_updates(config.live_updates)

        self.classifier = ClassificationGateway(
            self.llm,
            training=self.training,
            batch_delay=config.batch_delay_seconds,
            reply_timeout=config.openai.reply_timeout_seconds,
        )
        self.notifier = NotificationFanout(
            chat=self.slack,
            webhook=self.webhook,
            live=self.live_updates,
        )
        self.pipeline = MessagePipeline(
            normalizer=MessageNormalizer(),
            store=self.store,
            classifier=self.classifier,
            notifier=self.notifier,
        )
        self.supervisor = IngestionSupervisor(config, self.pipeline)

    def request_shutdown(self) -> None:
        self._shutdown_event.set()

    async def _start_clients(self) -> None:
        await self.store.start()
        await self.llm.start()
        await self.slack.start()
        await self.webhook.start()
        await self.live_updates.start()
        if await self.vector_index.start() and self.config.seed_training_data:
            await self.training.seed_defaults()

    async def _stop_clients(self) -> None:
        await self.live_updates.stop()
        await self.webhook.stop()
        await self.slack.stop()
        await self.vector_index.stop()
        await self.llm.stop()
        await self.store.stop()

    async def _run_health_server(self) -> None:
        """Start the FastAPI health server and shut it down on signal."""
        app = create_health_app(self.supervisor, title=self.config.service_name)
        config = uvicorn.Config(
            app,
            host="0.0.0.0",
            port=self.config.health_port,
            log_level="warning",
        )
        server = uvicorn.Server(config)

        # Run until the shutdown event fires
        serve_task = asyncio.create_task(server.serve())
        try:
            await self._shutdown_event.wait()
        finally:
            server.should_exit = True
            await serve_task

    async def _start_supervisor(self) -> None:
        try:
            await self.supervisor.start()
        except BaseException:
            self._shutdown_event.set()
            raise

    async def _stop_on_shutdown(self) -> None:
        # Interrupts a start-up that is still backfilling.
        await self._shutdown_event.wait()
        await self.supervisor.stop()

    async def run(self) -> None:
        """Start all subsystems and run until shutdown.

        Entry point::

            asyncio.run(InboxWatchService(InboxWatchConfig()).run())
        """
        setup_logging(json=self.config.log_json, level=self.config.log_level)
        install_signal_handlers(self._shutdown_event)
        logger.info("service_starting", service=self.config.service_name)

        try:
            await self._start_clients()
            async with asyncio.TaskGroup() as tg:
                tg.create_task(self._run_health_server())
                tg.create_task(self._start_supervisor())
                tg.create_task(self._stop_on_shutdown())
        except* Exception:
            self.failed = True
            logger.exception("service_task_group_error", service=self.config.service_name)
        finally:
            await self.supervisor.stop()
            await self._stop_clients()
            logger.info("service_stopped", service=self.config.service_name)
