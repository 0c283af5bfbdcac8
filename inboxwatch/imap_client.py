"""Async IMAP client wrapping stdlib imaplib with asyncio.to_thread."""

from __future__ import annotations

import asyncio
import imaplib
import re
from dataclasses import dataclass, field
from datetime import datetime

import structlog

from .logging import component_logger
from .models import Account

_SIZE_RE = re.compile(rb"RFC822\.SIZE (\d+)")
_FETCH_ITEMS = "(UID FLAGS RFC822.SIZE BODY.PEEK[])"


@dataclass
class FetchedEmail:
    """Raw email data fetched from IMAP."""

    uid: int
    raw_bytes: bytes
    flags: list[str] = field(default_factory=list)
    size: int | None = None


def imap_date(value: datetime) -> str:
    """Format *value* for an IMAP ``SINCE`` criterion (day granularity)."""
    return value.strftime("%d-%b-%Y")


class AsyncImapClient:
    """Async-friendly IMAP client for one account.

    All blocking ``imaplib`` operations are wrapped with
    ``asyncio.to_thread()`` to avoid blocking the event loop. The mailbox
    is opened read-only and bodies are fetched with ``BODY.PEEK[]``, so
    syncing never changes the ``\\Seen`` flag.
    """

    def __init__(
        self,
        account: Account,
        *,
        mailbox: str = "INBOX",
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._account = account
        self._mailbox = mailbox
        self._conn: imaplib.IMAP4_SSL | imaplib.IMAP4 | None = None
        self._log = logger or component_logger("imap", account=account.address)

    @property
    def mailbox(self) -> str:
        return self._mailbox

    @property
    def connected(self) -> bool:
        return self._conn is not None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self) -> None:
        """Connect, login, and select the configured mailbox read-only."""
        await asyncio.to_thread(self._connect_sync)
        self._log.info("imap_connected", host=self._account.host, mailbox=self._mailbox)

    def _connect_sync(self) -> None:
        if self._account.use_ssl:
            conn = imaplib.IMAP4_SSL(self._account.host, self._account.port)
        else:
            conn = imaplib.IMAP4(self._account.host, self._account.port)
        try:
            conn.login(self._account.address, self._account.password.get_secret_value())
            status, data = conn.select(self._mailbox, readonly=True)
            if status != "OK":
                raise imaplib.IMAP4.error(f"cannot select {self._mailbox}: {data!r}")
        except BaseException:
            try:
                conn.shutdown()
            except OSError:
                pass
            raise
        self._conn = conn

    async def disconnect(self) -> None:
        """Close mailbox and logout."""
        if self._conn is not None:
            await asyncio.to_thread(self._disconnect_sync)
            self._conn = None
            self._log.info("imap_disconnected")

    def _disconnect_sync(self) -> None:
        assert self._conn is not None
        try:
            self._conn.close()
        except (imaplib.IMAP4.error, OSError):
            pass
        try:
            self._conn.logout()
        except (imaplib.IMAP4.error, OSError):
            pass

    def release(self) -> None:
        """Drop the handle without talking to the server (it is already gone)."""
        if self._conn is not None:
            try:
                self._conn.shutdown()
            except OSError:
                pass
            self._conn = None

    async def is_connected(self) -> bool:
        """Check connection liveness with a NOOP command."""
        if self._conn is None:
            return False
        try:
            status, _ = await asyncio.to_thread(self._conn.noop)
            return status == "OK"
        except (imaplib.IMAP4.error, OSError):
            return False

    # ------------------------------------------------------------------
    # Message retrieval
    # ------------------------------------------------------------------

    async def search_since(self, since: datetime) -> list[int]:
        """Return UIDs of messages with an internal date on or after *since*'s day."""
        assert self._conn is not None, "Not connected"
        criteria = f"SINCE {imap_date(since)}"
        return await asyncio.to_thread(self._search_sync, criteria)

    async def fetch(self, uid: int) -> FetchedEmail | None:
        """Fetch one message by UID. Returns ``None`` if it has vanished."""
        assert self._conn is not None, "Not connected"
        return await asyncio.to_thread(self._fetch_sync, uid)

    # ------------------------------------------------------------------
    # Synchronous helpers (run in thread)
    # ------------------------------------------------------------------

    def _search_sync(self, criteria: str) -> list[int]:
        assert self._conn is not None
        status, data = self._conn.uid("SEARCH", None, criteria)
        if status != "OK":
            raise imaplib.IMAP4.error(f"search failed: {data!r}")
        if not data or not data[0]:
            return []
        uids = sorted(int(uid) for uid in data[0].split())
        self._log.debug("imap_search_complete", criteria=criteria, matched=len(uids))
        return uids

    def _fetch_sync(self, uid: int) -> FetchedEmail | None:
        assert self._conn is not None
        status, msg_data = self._conn.uid("FETCH", str(uid), _FETCH_ITEMS)
        if status != "OK" or not msg_data:
            return None

        raw_bytes: bytes | None = None
        meta = b""
        for part in msg_data:
            if isinstance(part, tuple):
                meta += part[0]
                raw_bytes = part[1]
            elif isinstance(part, bytes):
                meta += part
        if raw_bytes is None:
            return None

        size_match = _SIZE_RE.search(meta)
        return FetchedEmail(
            uid=uid,
            raw_bytes=raw_bytes,
            flags=[flag.decode(errors="replace") for flag in imaplib.ParseFlags(meta)],
            size=int(size_match.group(1)) if size_match else None,
        )
