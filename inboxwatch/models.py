"""Data models shared by every stage of the ingestion pipeline."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, SecretStr


class Category(str, Enum):
    """Closed set of labels the classifier may assign to a message."""

    INTERESTED = "Interested"
    MEETING_BOOKED = "Meeting Booked"
    NOT_INTERESTED = "Not Interested"
    SPAM = "Spam"
    OUT_OF_OFFICE = "Out of Office"

    @classmethod
    def default(cls) -> Category:
        return cls.NOT_INTERESTED

    @classmethod
    def parse(cls, raw: str | None) -> Category | None:
        """Return the category whose value equals *raw* (whitespace-trimmed).

        Anything else, including case variants, yields ``None``.
        """
        if raw is None:
            return None
        value = raw.strip()
        for category in cls:
            if category.value == value:
                return category
        return None


class SessionState(str, Enum):
    """Lifecycle state of one account's IMAP session."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    SYNCING = "syncing"
    WATCHING = "watching"


class SupervisorStatus(str, Enum):
    """Runtime status of the ingestion process."""

    STARTING = "starting"
    RUNNING = "running"
    DEGRADED = "degraded"
    STOPPING = "stopping"
    STOPPED = "stopped"


class Account(BaseModel):
    """A configured mailbox. Immutable for the lifetime of the process."""

    model_config = {"frozen": True}

    address: str = Field(description="Mailbox address, also the IMAP login user")
    password: SecretStr = Field(description="IMAP login credential")
    host: str = Field(description="IMAP server hostname")
    port: int = Field(default=993, description="IMAP server port")
    use_ssl: bool = Field(default=True, description="Use an implicit TLS connection")


class AttachmentInfo(BaseModel):
    """Descriptor of one attachment. The content itself is not retained."""

    model_config = {"populate_by_name": True}

    filename: str
    content_type: str = Field(alias="contentType")
    size: int = 0


class Message(BaseModel):
    """Canonical record of one mail item.

    The stored document keeps the field names used by the search index
    (``email``, ``from``, ``to``, ``messageId`` ...) through aliases; dump
    with ``by_alias=True`` to get them.
    """

    model_config = {"populate_by_name": True}

    id: str = Field(description="Deterministic identifier: <account>_<uid>")
    uid: int = Field(description="Server-assigned message UID")
    account: str = Field(alias="email", description="Owning account address")
    sender: str = Field(default="", alias="from")
    recipient: str = Field(default="", alias="to")
    subject: str = ""
    text: str = ""
    html: str = ""
    date: datetime = Field(default_factory=lambda: datetime.now(UTC))
    folder: str = "INBOX"
    category: Category | None = None
    flags: list[str] = Field(default_factory=list)
    size: int = 0
    message_id: str = Field(default="", alias="messageId")
    in_reply_to: str = Field(default="", alias="inReplyTo")
    references: list[str] = Field(default_factory=list)
    attachments: list[AttachmentInfo] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC), alias="createdAt")
    updated_at: datetime = Field(default_factory=lambda: datetime.now(UTC), alias="updatedAt")

    @staticmethod
    def make_id(account: str, uid: int | str) -> str:
        """Build the stable identifier for a server message."""
        return f"{account}_{uid}"

    def to_document(self) -> dict[str, Any]:
        """Serialise to the JSON document shape stored in the search index."""
        return self.model_dump(mode="json", by_alias=True)


class CategorizationResult(BaseModel):
    """One entry of a batch categorisation."""

    id: str
    category: Category


class SearchResult(BaseModel):
    """Ranked page of stored messages returned by a store query."""

    hits: list[dict[str, Any]] = Field(default_factory=list)
    total: int = 0
    took_ms: int = 0


class VectorMatch(BaseModel):
    """One nearest-neighbour hit from the vector lookup service."""

    id: str
    score: float
    payload: dict[str, Any] = Field(default_factory=dict)


class TrainingMatch(BaseModel):
    """A reference snippet returned by a similarity lookup."""

    id: str
    content: str
    category: str = "general"
    score: float = 0.0


class LiveUpdateEvent(BaseModel):
    """Lightweight summary published to the live-update channel."""

    model_config = {"populate_by_name": True}

    id: str
    sender: str = Field(alias="from")
    subject: str
    category: Category | None
    date: datetime

    @classmethod
    def from_message(cls, message: Message) -> LiveUpdateEvent:
        return cls(
            id=message.id,
            sender=message.sender,
            subject=message.subject,
            category=message.category,
            date=message.date,
        )


class NotificationOutcome(BaseModel):
    """Result of fanning one message out to the notification sinks.

    ``None`` means the sink was not invoked for this message.
    """

    chat_sent: bool | None = None
    webhook_sent: bool | None = None
    published: bool = False


class HealthStatus(BaseModel):
    """Response model for the /health endpoint."""

    service: str = Field(description="Service name")
    status: SupervisorStatus = Field(description="Current supervisor status")
    uptime_seconds: float = Field(description="Seconds since the supervisor started")
    accounts: dict[str, Any] = Field(
        default_factory=dict,
        description="Per-account session details keyed by address",
    )
