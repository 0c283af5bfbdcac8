"""SIGTERM/SIGINT wiring for the inboxwatch service."""

from __future__ import annotations

import asyncio
import signal
from collections.abc import Iterable

import structlog

logger = structlog.get_logger()

STOP_SIGNALS = (signal.SIGTERM, signal.SIGINT)


def install_signal_handlers(
    shutdown_event: asyncio.Event,
    signals: Iterable[signal.Signals] = STOP_SIGNALS,
) -> None:
    """Set *shutdown_event* on the first stop signal.

    Must be called from inside the running loop. The service watches the
    event and stops the supervisor, interrupting any backfill in progress.
    Later signals are only logged; the first one already started the stop.
    """
    loop = asyncio.get_running_loop()

    def _on_signal(sig: signal.Signals) -> None:
        if shutdown_event.is_set():
            logger.info("shutdown_signal_repeated", signal=sig.name)
            return
        logger.info("shutdown_signal_received", signal=sig.name)
        shutdown_event.set()

    for sig in signals:
        loop.add_signal_handler(sig, _on_signal, sig)
