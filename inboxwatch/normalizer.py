"""Message normalizer: raw RFC 822 bytes + server attributes -> Message.

Walks the full MIME tree to extract the plain-text and HTML bodies,
attachment descriptors and threading headers. Normalisation is a pure
transform and never raises: a payload that cannot be parsed yields a
Message with empty textual fields, so one bad message cannot stall an
account's sync.
"""

from __future__ import annotations

import email
import email.message
import email.policy
import email.utils
import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import UTC, datetime

import html2text
import structlog

from .logging import component_logger
from .models import AttachmentInfo, Message

_SPACE_RE = re.compile(r"[ \t\r\f\v\xa0]+")


@dataclass
class _ParsedFields:
    sender: str = ""
    recipient: str = ""
    subject: str = ""
    date: datetime | None = None
    text: str = ""
    html: str = ""
    message_id: str = ""
    in_reply_to: str = ""
    references: list[str] = field(default_factory=list)
    attachments: list[AttachmentInfo] = field(default_factory=list)


class MessageNormalizer:
    """Stateless normalizer shared by every account's pipeline."""

    def __init__(self, logger: structlog.stdlib.BoundLogger | None = None) -> None:
        self._log = logger or component_logger("normalizer")

    def normalize(
        self,
        raw_bytes: bytes,
        *,
        account: str,
        uid: int,
        flags: Iterable[str] = (),
        size: int | None = None,
        folder: str = "INBOX",
    ) -> Message:
        """Build a Message with ``category`` unset."""
        now = datetime.now(UTC)
        try:
            fields = self._parse(raw_bytes)
        except Exception as exc:
            self._log.warning(
                "message_unparseable",
                account=account,
                uid=uid,
                error=str(exc),
            )
            fields = _ParsedFields()

        return Message(
            id=Message.make_id(account, uid),
            uid=uid,
            account=account,
            sender=fields.sender,
            recipient=fields.recipient,
            subject=fields.subject,
            text=fields.text,
            html=fields.html,
            date=fields.date or now,
            folder=folder,
            flags=list(flags),
            size=size if size is not None else len(raw_bytes),
            message_id=fields.message_id,
            in_reply_to=fields.in_reply_to,
            references=fields.references,
            attachments=fields.attachments,
            created_at=now,
            updated_at=now,
        )

    # ------------------------------------------------------------------
    # Parsing
    # ------------------------------------------------------------------

    def _parse(self, raw_bytes: bytes) -> _ParsedFields:
        msg = email.message_from_bytes(raw_bytes, policy=email.policy.default)

        body_text, body_html = self._extract_bodies(msg)
        if not body_text and body_html:
            body_text = html_to_text(body_html)

        return _ParsedFields(
            sender=_header(msg, "From"),
            recipient=_header(msg, "To"),
            subject=_header(msg, "Subject"),
            date=_parse_date(_header(msg, "Date")),
            text=body_text,
            html=body_html,
            message_id=_header(msg, "Message-ID"),
            in_reply_to=_header(msg, "In-Reply-To"),
            references=_header(msg, "References").split(),
            attachments=self._extract_attachments(msg),
        )

    def _extract_bodies(self, msg: email.message.Message) -> tuple[str, str]:
        """Return the first (plain_text, html_text) pair found in the tree."""
        body_text: str | None = None
        body_html: str | None = None

        for part in msg.walk():
            if part.get_content_maintype() == "multipart":
                continue
            if _is_attachment(part):
                continue

            content_type = part.get_content_type()
            if content_type == "text/plain" and body_text is None:
                body_text = _decode_text(part)
            elif content_type == "text/html" and body_html is None:
                body_html = _decode_text(part)

        return body_text or "", body_html or ""

    def _extract_attachments(self, msg: email.message.Message) -> list[AttachmentInfo]:
        attachments: list[AttachmentInfo] = []

        for part in msg.walk():
            if part.get_content_maintype() == "multipart":
                continue
            if not _is_attachment(part):
                continue

            payload = part.get_payload(decode=True)
            attachments.append(
                AttachmentInfo(
                    filename=part.get_filename() or "unnamed",
                    content_type=part.get_content_type(),
                    size=len(payload) if isinstance(payload, bytes) else 0,
                )
            )

        return attachments


# ------------------------------------------------------------------
# Helpers
# ------------------------------------------------------------------


def _html_converter() -> html2text.HTML2Text:
    converter = html2text.HTML2Text()
    converter.ignore_links = True
    converter.ignore_images = True
    converter.ignore_emphasis = True
    converter.body_width = 0
    return converter


def html_to_text(markup: str) -> str:
    """Plain-text rendering of an HTML body, used when a message has no text part.

    ``<head>``, ``<script>`` and ``<style>`` content and comments are
    dropped; blank lines are collapsed.
    """
    if not markup:
        return ""
    # HTML2Text keeps parser state between calls, so use a fresh one each time.
    text = _html_converter().handle(markup)
    lines = (_SPACE_RE.sub(" ", line).strip() for line in text.splitlines())
    return "\n".join(line for line in lines if line)


def _is_attachment(part: email.message.Message) -> bool:
    disposition = str(part.get("Content-Disposition", ""))
    if "attachment" in disposition.lower():
        return True
    return bool(part.get_filename()) and part.get_content_maintype() != "text"


def _header(msg: email.message.Message, name: str) -> str:
    # Malformed headers can raise while the header object is built.
    try:
        value = msg.get(name)
    except Exception:
        return ""
    return str(value).strip() if value is not None else ""


def _decode_text(part: email.message.Message) -> str:
    try:
        content = part.get_content()  # type: ignore[attr-defined]
        if isinstance(content, str):
            return content
    except (LookupError, UnicodeError, KeyError, AssertionError):
        pass
    payload = part.get_payload(decode=True)
    if not isinstance(payload, bytes):
        return ""
    try:
        return payload.decode(part.get_content_charset() or "utf-8", errors="replace")
    except LookupError:
        return payload.decode("utf-8", errors="replace")


def _parse_date(value: str) -> datetime | None:
    if not value:
        return None
    try:
        parsed = email.utils.parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed
