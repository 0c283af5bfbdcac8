"""Tests for inboxwatch.shutdown."""

from __future__ import annotations

import asyncio
import os
import signal

import pytest

from inboxwatch.shutdown import install_signal_handlers


class TestInstallSignalHandlers:
    @pytest.mark.asyncio
    async def test_sigterm_sets_event(self):
        event = asyncio.Event()
        install_signal_handlers(event)

        assert not event.is_set()
        os.kill(os.getpid(), signal.SIGTERM)
        # The loop needs an I/O poll cycle to see the signal.
        await asyncio.sleep(0.05)
        assert event.is_set()

    @pytest.mark.asyncio
    async def test_repeated_signal_is_harmless(self):
        event = asyncio.Event()
        install_signal_handlers(event)

        os.kill(os.getpid(), signal.SIGTERM)
        await asyncio.sleep(0.05)
        os.kill(os.getpid(), signal.SIGTERM)
        await asyncio.sleep(0.05)
        assert event.is_set()

    @pytest.mark.asyncio
    async def test_handlers_registered_for_both_signals(self):
        event = asyncio.Event()
        install_signal_handlers(event)
        loop = asyncio.get_running_loop()

        assert loop.remove_signal_handler(signal.SIGTERM) is True
        assert loop.remove_signal_handler(signal.SIGINT) is True

    @pytest.mark.asyncio
    async def test_custom_signal_set(self):
        event = asyncio.Event()
        install_signal_handlers(event, signals=[signal.SIGUSR1])
        os.kill(os.getpid(), signal.SIGUSR1)
        await asyncio.sleep(0.05)
        assert event.is_set()
        asyncio.get_running_loop().remove_signal_handler(signal.SIGUSR1)
