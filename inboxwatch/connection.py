"""Per-account IMAP session: initial backfill, then a watch loop.

State machine::

    Disconnected -> Connecting -> Syncing(initial) -> Watching
    Watching -> Syncing(incremental) -> Watching       (wake or poll tick)
    any -> Disconnected                                (transport error or stop)

Each manager runs on its own task; a slow or failed account never
blocks another.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

import structlog

from .config import ImapConfig, RetryConfig
from .errors import TransportError
from .imap_client import AsyncImapClient
from .logging import component_logger
from .models import Account, SessionState
from .pipeline import MessagePipeline
from .retry import TRANSPORT_EXCEPTIONS, reconnect_enabled, with_retry

Clock = Callable[[], datetime]
ClientFactory = Callable[[Account, str], AsyncImapClient]
DisconnectCallback = Callable[[str], None]


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _default_client_factory(account: Account, mailbox: str) -> AsyncImapClient:
    return AsyncImapClient(account, mailbox=mailbox)


class AccountConnectionManager:
    """Owns one account's IMAP session and feeds new mail to the pipeline.

    :meth:`start` connects and runs the initial backfill over the trailing
    ``backfill_days``; it returns only once every matched message has been
    processed, then launches the watch task. The watch task suspends until
    :meth:`wake` is called or the poll interval elapses and re-searches the
    trailing ``incremental_window_seconds``. UIDs at or below the highest
    one already seen are skipped.

    A failure while processing one message is logged and skipped. A
    transport failure ends the session: the handle is released, the state
    becomes ``disconnected`` and *on_disconnect* is called with the account
    address. When ``retry.max_attempts`` is positive the manager first
    tries to reconnect with exponential backoff.
    """

    def __init__(
        self,
        account: Account,
        pipeline: MessagePipeline,
        *,
        imap: ImapConfig,
        retry: RetryConfig | None = None,
        on_disconnect: DisconnectCallback | None = None,
        client_factory: ClientFactory = _default_client_factory,
        clock: Clock = _utcnow,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self.account = account
        self._pipeline = pipeline
        self._imap_config = imap
        self._retry = retry or RetryConfig()
        self._on_disconnect = on_disconnect
        self._client_factory = client_factory
        self._clock = clock
        self._log = logger or component_logger("connection", account=account.address)

        self._client: AsyncImapClient | None = None
        self._state = SessionState.DISCONNECTED
        self._last_uid = 0
        self._session_lock = asyncio.Lock()
        self._stop_event = asyncio.Event()
        self._wake_event = asyncio.Event()
        self._watch_task: asyncio.Task[None] | None = None

        self._messages_processed = 0
        self._messages_failed = 0
        self._last_sync_at: datetime | None = None
        self._last_error: str | None = None

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def address(self) -> str:
        return self.account.address

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def last_uid(self) -> int:
        return self._last_uid

    @property
    def stopped(self) -> bool:
        return self._stop_event.is_set()

    def health(self) -> dict[str, Any]:
        return {
            "state": self._state.value,
            "mailbox": self._imap_config.mailbox,
            "last_uid": self._last_uid,
            "messages_processed": self._messages_processed,
            "messages_failed": self._messages_failed,
            "last_sync_at": self._last_sync_at.isoformat() if self._last_sync_at else None,
            "last_error": self._last_error,
        }

    def _set_state(self, state: SessionState) -> None:
        if state != self._state:
            self._log.debug("session_state_changed", old=self._state.value, new=state.value)
        self._state = state

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Connect, run the initial backfill and launch the watch task.

        Raises :class:`TransportError` if the connection or the backfill
        search fails. On any failure the handle is released and the session
        is left disconnected. If :meth:`stop` has been called, returns
        without launching the watch task.
        """
        if self._watch_task is not None:
            raise RuntimeError(f"manager for {self.address} already started")

        since = self._clock() - timedelta(days=self._imap_config.backfill_days)
        async with self._session_lock:
            if self._stop_event.is_set():
                return
            try:
                await self._connect()
                await self._sync(since, kind="initial")
            except TRANSPORT_EXCEPTIONS as exc:
                self._release(exc)
                raise TransportError(self.address, str(exc)) from exc
            except BaseException as exc:
                self._release(exc)
                raise

        if self._stop_event.is_set():
            return

        self._set_state(SessionState.WATCHING)
        self._watch_task = asyncio.create_task(
            self._watch(), name=f"inboxwatch-watch-{self.address}"
        )
        self._log.info("account_watching", last_uid=self._last_uid)

    async def stop(self) -> None:
        """Stop watching and log out.

        The message being processed, if any, is allowed to finish. Returns
        once the session is closed. Safe to call more than once.
        """
        if self._stop_event.is_set() and self._state == SessionState.DISCONNECTED:
            return
        self._log.info("account_stopping")
        self._stop_event.set()
        self._wake_event.set()

        if self._watch_task is not None:
            await asyncio.gather(self._watch_task, return_exceptions=True)

        async with self._session_lock:
            if self._client is not None:
                try:
                    await self._client.disconnect()
                except TRANSPORT_EXCEPTIONS as exc:
                    self._log.warning("imap_logout_failed", error=str(exc))
                    self._client.release()
                self._client = None
            self._set_state(SessionState.DISCONNECTED)
        self._log.info("account_stopped")

    def wake(self) -> None:
        """Run the next incremental sync now instead of at the next tick."""
        self._wake_event.set()

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------

    async def _connect(self) -> None:
        self._set_state(SessionState.CONNECTING)
        self._client = self._client_factory(self.account, self._imap_config.mailbox)
        await self._client.connect()

    def _release(self, exc: BaseException) -> None:
        self._last_error = str(exc)
        if self._client is not None:
            self._client.release()
            self._client = None
        self._set_state(SessionState.DISCONNECTED)

    async def _sync(self, since: datetime, *, kind: str) -> None:
        assert self._client is not None
        self._set_state(SessionState.SYNCING)

        uids = await self._client.search_since(since)
        pending = [uid for uid in uids if uid > self._last_uid]
        self._log.info(
            "sync_started",
            kind=kind,
            since=since.isoformat(),
            matched=len(uids),
            new=len(pending),
        )

        processed = 0
        for uid in pending:
            if self._stop_event.is_set():
                self._log.info("sync_interrupted", kind=kind, remaining=len(pending) - processed)
                break
            await self._process_uid(uid)
            processed += 1

        self._last_sync_at = self._clock()
        self._log.info("sync_complete", kind=kind, processed=processed, last_uid=self._last_uid)

    async def _process_uid(self, uid: int) -> None:
        assert self._client is not None
        # Transport errors escape; everything else is isolated to this message.
        try:
            fetched = await self._client.fetch(uid)
        except TRANSPORT_EXCEPTIONS:
            raise
        except Exception:
            self._last_uid = max(self._last_uid, uid)
            self._messages_failed += 1
            self._log.exception("message_fetch_failed", uid=uid)
            return
        self._last_uid = max(self._last_uid, uid)
        if fetched is None:
            self._log.warning("message_vanished", uid=uid)
            return

        try:
            await self._pipeline.process(
                fetched.raw_bytes,
                account=self.address,
                uid=fetched.uid,
                flags=fetched.flags,
                size=fetched.size,
                folder=self._client.mailbox,
            )
        except Exception:
            self._messages_failed += 1
            self._log.exception("message_processing_failed", uid=uid)
            return
        self._messages_processed += 1

    # ------------------------------------------------------------------
    # Watch loop
    # ------------------------------------------------------------------

    async def _wait_for_tick(self) -> None:
        try:
            await asyncio.wait_for(
                self._wake_event.wait(),
                timeout=self._imap_config.poll_interval_seconds,
            )
        except TimeoutError:
            pass
        self._wake_event.clear()

    async def _incremental_sync(self) -> None:
        since = self._clock() - timedelta(seconds=self._imap_config.incremental_window_seconds)
        await self._sync(since, kind="incremental")
        self._set_state(SessionState.WATCHING)

    async def _watch(self) -> None:
        try:
            while not self._stop_event.is_set():
                await self._wait_for_tick()
                if self._stop_event.is_set():
                    break

                async with self._session_lock:
                    if self._stop_event.is_set():
                        break
                    try:
                        await self._incremental_sync()
                    except TRANSPORT_EXCEPTIONS as exc:
                        self._log.error("imap_connection_lost", error=str(exc))
                        self._release(exc)
                        if not await self._try_reconnect():
                            self._notify_disconnect()
                            return
        except Exception:
            self._log.exception("watch_loop_error")
            self._release(RuntimeError("watch loop failed"))
            self._notify_disconnect()
            raise

    async def _try_reconnect(self) -> bool:
        if not reconnect_enabled(self._retry) or self._stop_event.is_set():
            return False

        @with_retry(self._retry, sleep=self._interruptible_sleep)
        async def _reconnect() -> None:
            if self._stop_event.is_set():
                return
            self._log.info("imap_reconnecting")
            try:
                await self._connect()
                await self._incremental_sync()
            except TRANSPORT_EXCEPTIONS as exc:
                self._release(exc)
                raise

        try:
            await _reconnect()
        except TRANSPORT_EXCEPTIONS as exc:
            self._log.error(
                "imap_reconnect_failed",
                attempts=self._retry.max_attempts,
                error=str(exc),
            )
            return False
        return True

    async def _interruptible_sleep(self, seconds: float) -> None:
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=seconds)
        except TimeoutError:
            pass

    def _notify_disconnect(self) -> None:
        self._log.warning("account_disconnected", last_error=self._last_error)
        if self._on_disconnect is not None:
            self._on_disconnect(self.address)
