"""Shared test fixtures and fakes for the inboxwatch test suite."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime
from email import encoders
from email.mime.base import MIMEBase
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any
from unittest.mock import MagicMock

import pytest
from pydantic import SecretStr

from inboxwatch.config import ImapConfig, RetryConfig
from inboxwatch.imap_client import FetchedEmail
from inboxwatch.interface import ChatSink, EmailStore, LanguageModel, WebhookSink
from inboxwatch.models import Account, Category, Message, SearchResult

# ------------------------------------------------------------------
# Sample EML builders
# ------------------------------------------------------------------


def _build_plain_email(
    *,
    subject: str = "Test Subject",
    from_addr: str = "sender@example.com",
    to_addr: str = "recipient@example.com",
    body: str = "Hello, World!",
    message_id: str = "<test-001@example.com>",
    date: str | None = "Sun, 01 Jun 2025 12:00:00 +0000",
    in_reply_to: str | None = None,
    references: str | None = None,
) -> bytes:
    """Build a simple plain-text email as raw bytes."""
    msg = MIMEText(body, "plain")
    msg["Subject"] = subject
    msg["From"] = from_addr
    msg["To"] = to_addr
    msg["Message-ID"] = message_id
    if date is not None:
        msg["Date"] = date
    if in_reply_to:
        msg["In-Reply-To"] = in_reply_to
    if references:
        msg["References"] = references
    return msg.as_bytes()


def _build_html_email(*, body_html: str = "<p>Hello</p>") -> bytes:
    msg = MIMEText(body_html, "html")
    msg["Subject"] = "HTML Email"
    msg["From"] = "sender@example.com"
    msg["To"] = "recipient@example.com"
    msg["Message-ID"] = "<html-001@example.com>"
    msg["Date"] = "Sun, 01 Jun 2025 12:00:00 +0000"
    return msg.as_bytes()


def _build_multipart_email(
    *,
    body_text: str = "Plain body",
    body_html: str = "<p>HTML body</p>",
    attachments: list[tuple[str, str, bytes]] | None = None,
) -> bytes:
    """Build a multipart email with text, HTML, and optional attachments."""
    msg = MIMEMultipart("mixed")
    msg["Subject"] = "Multipart Email"
    msg["From"] = "sender@example.com"
    msg["To"] = "recipient@example.com"
    msg["Message-ID"] = "<multi-001@example.com>"
    msg["Date"] = "Sun, 01 Jun 2025 12:00:00 +0000"

    alt = MIMEMultipart("alternative")
    alt.attach(MIMEText(body_text, "plain"))
    alt.attach(MIMEText(body_html, "html"))
    msg.attach(alt)

    for filename, content_type, payload in attachments or []:
        maintype, subtype = content_type.split("/", 1)
        part = MIMEBase(maintype, subtype)
        part.set_payload(payload)
        encoders.encode_base64(part)
        part.add_header("Content-Disposition", "attachment", filename=filename)
        msg.attach(part)

    return msg.as_bytes()


def _make_message(
    *,
    account: str = "a@x.com",
    uid: int = 1,
    subject: str = "Hello",
    text: str = "Body text",
    category: Category | None = None,
) -> Message:
    return Message(
        id=Message.make_id(account, uid),
        uid=uid,
        account=account,
        sender="lead@example.com",
        recipient=account,
        subject=subject,
        text=text,
        date=datetime(2025, 6, 1, 12, 0, tzinfo=UTC),
        category=category,
    )


# ------------------------------------------------------------------
# Fakes for the capability contracts
# ------------------------------------------------------------------


class RecordingStore(EmailStore):
    """In-memory store that records every call."""

    def __init__(self, *, fail_for: set[str] | None = None) -> None:
        self.documents: dict[str, dict[str, Any]] = {}
        self.calls: list[tuple[str, str]] = []
        self.fail_for = fail_for or set()

    async def put(self, message: Message) -> None:
        if message.id in self.fail_for:
            raise RuntimeError(f"store rejected {message.id}")
        self.calls.append(("put", message.id))
        self.documents[message.id] = message.to_document()

    async def patch_category(self, message_id: str, category: Category) -> None:
        self.calls.append(("patch_category", message_id))
        self.documents[message_id]["category"] = category.value

    async def query(self, text: str | None, filters: dict[str, Any] | None = None) -> SearchResult:
        hits = [d for d in self.documents.values() if not text or text in d["subject"]]
        return SearchResult(hits=hits, total=len(hits))


class ScriptedLLM(LanguageModel):
    """Returns queued replies in order; an exception in the queue is raised."""

    def __init__(self, *replies: str | BaseException, configured: bool = True) -> None:
        self.replies = list(replies)
        self.configured = configured
        self.calls: list[dict[str, Any]] = []

    @property
    def is_configured(self) -> bool:
        return self.configured

    async def complete(
        self,
        *,
        system: str,
        prompt: str,
        max_tokens: int,
        temperature: float,
        timeout: float | None = None,
    ) -> str:
        self.calls.append(
            {
                "system": system,
                "prompt": prompt,
                "max_tokens": max_tokens,
                "temperature": temperature,
                "timeout": timeout,
            }
        )
        reply = self.replies.pop(0) if self.replies else "Not Interested"
        if isinstance(reply, BaseException):
            raise reply
        return reply


class RecordingChatSink(ChatSink):
    def __init__(self, result: bool | BaseException = True) -> None:
        self.result = result
        self.sent: list[str] = []

    async def send_notification(self, message: Message) -> bool:
        self.sent.append(message.id)
        if isinstance(self.result, BaseException):
            raise self.result
        return self.result


class RecordingWebhookSink(WebhookSink):
    def __init__(self, result: bool | BaseException = True) -> None:
        self.result = result
        self.triggered: list[str] = []
        self.batches: list[list[str]] = []

    async def trigger(self, message: Message) -> bool:
        self.triggered.append(message.id)
        if isinstance(self.result, BaseException):
            raise self.result
        return self.result

    async def trigger_batch(self, messages: list[Message]) -> bool:
        self.batches.append([m.id for m in messages])
        return True if not isinstance(self.result, BaseException) else False


# ------------------------------------------------------------------
# IMAP connection mock and session fakes
# ------------------------------------------------------------------


def _make_mock_imap(
    *,
    search_uids: list[int] | None = None,
    messages: dict[int, bytes] | None = None,
    flags: bytes = b"\\Seen",
) -> MagicMock:
    """Create a mock imaplib.IMAP4_SSL with programmed responses.

    ``search_uids`` may be reassigned on ``mock.search_uids`` between calls.
    """
    mock = MagicMock()
    mock.login.return_value = ("OK", [b"Logged in"])
    mock.select.return_value = ("OK", [b"1"])
    mock.close.return_value = ("OK", [b"Closed"])
    mock.logout.return_value = ("BYE", [b"Bye"])
    mock.noop.return_value = ("OK", [b""])
    mock.search_uids = list(search_uids or [])
    mock.messages = dict(messages or {})

    def handler(command: str, *args):
        if command == "SEARCH":
            return ("OK", [b" ".join(str(uid).encode() for uid in mock.search_uids)])
        if command == "FETCH":
            uid = int(args[0])
            raw = mock.messages.get(uid)
            if raw is None:
                return ("OK", [None])
            meta = b"1 (UID %d FLAGS (%b) RFC822.SIZE %d BODY[] {%d}" % (uid, flags, len(raw), len(raw))
            return ("OK", [(meta, raw), b")"])
        return ("OK", [b""])

    mock.uid.side_effect = handler
    return mock


class FakeImapClient:
    """Stands in for AsyncImapClient; UIDs and failures are set per test."""

    def __init__(self, uids: list[int] | None = None) -> None:
        self.mailbox = "INBOX"
        self.uids = list(uids or [])
        self.search_calls: list[datetime] = []
        self.fetched: list[int] = []
        self.connect_error: BaseException | None = None
        self.search_error: BaseException | None = None
        self.fetch_gate: asyncio.Event | None = None
        self.fetch_errors: dict[int, BaseException] = {}
        self.vanished: set[int] = set()
        self.fetch_started = asyncio.Event()
        self.connected = False
        self.disconnected = False
        self.released = False

    async def connect(self) -> None:
        if self.connect_error is not None:
            raise self.connect_error
        self.connected = True

    async def search_since(self, since: datetime) -> list[int]:
        self.search_calls.append(since)
        if self.search_error is not None:
            raise self.search_error
        return list(self.uids)

    async def fetch(self, uid: int) -> FetchedEmail | None:
        self.fetch_started.set()
        if self.fetch_gate is not None:
            await self.fetch_gate.wait()
        self.fetched.append(uid)
        if uid in self.fetch_errors:
            raise self.fetch_errors[uid]
        if uid in self.vanished:
            return None
        return FetchedEmail(
            uid=uid,
            raw_bytes=_build_plain_email(subject=f"message {uid}"),
            flags=["\\Seen"],
            size=100 + uid,
        )

    async def disconnect(self) -> None:
        self.disconnected = True
        self.connected = False

    def release(self) -> None:
        self.released = True
        self.connected = False


class RecordingPipeline:
    def __init__(self, *, fail_uids: set[int] | None = None) -> None:
        self.processed: list[dict[str, Any]] = []
        self.fail_uids = fail_uids or set()

    async def process(self, raw_bytes: bytes, **kwargs: Any) -> None:
        if kwargs["uid"] in self.fail_uids:
            raise RuntimeError(f"cannot process {kwargs['uid']}")
        self.processed.append(kwargs)

    @property
    def uids(self) -> list[int]:
        return [call["uid"] for call in self.processed]


# ------------------------------------------------------------------
# Fixtures
# ------------------------------------------------------------------


@pytest.fixture
def account() -> Account:
    return Account(
        address="a@x.com",
        password=SecretStr("secret"),
        host="imap.test.com",
        port=993,
        use_ssl=True,
    )


@pytest.fixture
def imap_config() -> ImapConfig:
    return ImapConfig(
        host="imap.test.com",
        port=993,
        secure=True,
        mailbox="INBOX",
        poll_interval_seconds=3600.0,
    )


@pytest.fixture
def retry_config() -> RetryConfig:
    return RetryConfig(max_attempts=0)


@pytest.fixture
def plain_eml_bytes() -> bytes:
    return _build_plain_email()


@pytest.fixture
def html_eml_bytes() -> bytes:
    return _build_html_email()


@pytest.fixture
def multipart_eml_bytes() -> bytes:
    return _build_multipart_email(
        attachments=[
            ("report.pdf", "application/pdf", b"%PDF-1.4 fake pdf content"),
            ("data.csv", "text/csv", b"col1,col2\na,b\n"),
        ],
    )
