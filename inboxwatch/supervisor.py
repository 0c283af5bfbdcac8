"""Ingestion supervisor: one connection manager per configured account."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable, Mapping
from types import MappingProxyType

import structlog

from .config import InboxWatchConfig
from .connection import AccountConnectionManager, DisconnectCallback
from .errors import AccountStartError, ConfigurationError
from .logging import component_logger
from .models import Account, HealthStatus, SupervisorStatus
from .pipeline import MessagePipeline

ManagerFactory = Callable[[Account, DisconnectCallback], AccountConnectionManager]


class IngestionSupervisor:
    """Starts, tracks and stops the per-account connection managers.

    The session registry, keyed by account address, is written only here:
    on start, on stop and when a manager reports its session lost. Outside
    callers get a read-only view through :attr:`sessions`.
    """

    def __init__(
        self,
        config: InboxWatchConfig,
        pipeline: MessagePipeline,
        *,
        manager_factory: ManagerFactory | None = None,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._config = config
        self._pipeline = pipeline
        self._manager_factory = manager_factory or self._default_manager
        self._log = logger or component_logger("supervisor")

        self.status = SupervisorStatus.STOPPED
        self.start_time = time.monotonic()
        self._sessions: dict[str, AccountConnectionManager] = {}
        # Managers still in their initial backfill; stop() must reach them too.
        self._starting: list[AccountConnectionManager] = []
        self._stopping = False
        self._disconnected: list[str] = []

    @property
    def sessions(self) -> Mapping[str, AccountConnectionManager]:
        return MappingProxyType(self._sessions)

    def _default_manager(
        self,
        account: Account,
        on_disconnect: DisconnectCallback,
    ) -> AccountConnectionManager:
        return AccountConnectionManager(
            account,
            self._pipeline,
            imap=self._config.imap,
            retry=self._config.reconnect,
            on_disconnect=on_disconnect,
            logger=component_logger("connection", account=account.address),
        )

    def build_accounts(self) -> list[Account]:
        accounts = self._config.email.build_accounts(self._config.imap)
        addresses = [account.address for account in accounts]
        duplicates = sorted({a for a in addresses if addresses.count(a) > 1})
        if duplicates:
            raise ConfigurationError(f"Duplicate email accounts: {', '.join(duplicates)}")
        return accounts

    async def start(self) -> None:
        """Start every account and wait for all initial backfills.

        Raises :class:`ConfigurationError` before any connection is made if
        the account configuration is invalid. If any account fails to
        start, the ones that did start are stopped and
        :class:`AccountStartError` is raised for the first failure.

        A :meth:`stop` issued while the backfills are running stops every
        manager; ``start()`` then returns without entering ``running``.
        """
        self.status = SupervisorStatus.STARTING
        self.start_time = time.monotonic()
        self._stopping = False
        self._disconnected = []
        try:
            accounts = self.build_accounts()
        except ConfigurationError:
            self.status = SupervisorStatus.STOPPED
            raise

        managers = [self._manager_factory(account, self._handle_disconnect) for account in accounts]
        self._starting = managers
        self._log.info("supervisor_starting", accounts=[m.address for m in managers])

        try:
            results = await asyncio.gather(
                *(manager.start() for manager in managers),
                return_exceptions=True,
            )
        finally:
            self._starting = []

        if self._stopping:
            await asyncio.gather(*(m.stop() for m in managers), return_exceptions=True)
            self._log.info("supervisor_start_aborted")
            return

        started = [m for m, r in zip(managers, results, strict=True) if r is None]
        failures = [
            (m, r) for m, r in zip(managers, results, strict=True) if isinstance(r, BaseException)
        ]
        if failures:
            for manager, exc in failures:
                self._log.error("account_start_failed", account=manager.address, error=str(exc))
            await asyncio.gather(*(m.stop() for m in started), return_exceptions=True)
            self.status = SupervisorStatus.STOPPED
            manager, exc = failures[0]
            raise AccountStartError(manager.address, exc) from exc

        self._sessions = {
            m.address: m for m in managers if m.address not in self._disconnected
        }
        self.status = SupervisorStatus.DEGRADED if self._disconnected else SupervisorStatus.RUNNING
        self._log.info("supervisor_running", accounts=len(self._sessions))

    async def stop(self) -> None:
        """Stop every manager concurrently and wait for all of them.

        Managers still running their initial backfill are stopped as well.
        """
        if self.status == SupervisorStatus.STOPPED and not self._sessions and not self._starting:
            return
        self._stopping = True
        self.status = SupervisorStatus.STOPPING
        managers = list({id(m): m for m in (*self._starting, *self._sessions.values())}.values())
        self._log.info("supervisor_stopping", accounts=len(managers))

        results = await asyncio.gather(*(m.stop() for m in managers), return_exceptions=True)
        for manager, result in zip(managers, results, strict=True):
            if isinstance(result, BaseException):
                self._log.error("account_stop_failed", account=manager.address, error=str(result))

        self._sessions.clear()
        self.status = SupervisorStatus.STOPPED
        self._log.info("supervisor_stopped")

    def wake(self, address: str | None = None) -> None:
        """Trigger an immediate incremental sync for one account or all of them."""
        for manager in self._sessions.values():
            if address is None or manager.address == address:
                manager.wake()

    def _handle_disconnect(self, address: str) -> None:
        if self._sessions.pop(address, None) is None and self.status != SupervisorStatus.STARTING:
            return
        self._disconnected.append(address)
        if self.status == SupervisorStatus.RUNNING:
            self.status = SupervisorStatus.DEGRADED
        self._log.warning("session_removed", account=address, remaining=len(self._sessions))

    def health(self) -> HealthStatus:
        accounts = {address: manager.health() for address, manager in self._sessions.items()}
        for address in self._disconnected:
            accounts.setdefault(address, {"state": "disconnected"})
        return HealthStatus(
            service=self._config.service_name,
            status=self.status,
            uptime_seconds=time.monotonic() - self.start_time,
            accounts=accounts,
        )
