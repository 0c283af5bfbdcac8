"""Exception hierarchy for the ingestion core."""

from __future__ import annotations


class InboxWatchError(Exception):
    """Base class for all inboxwatch errors."""


class ConfigurationError(InboxWatchError):
    """Account configuration is missing or inconsistent.

    Raised by the supervisor before any connection is attempted.
    """


class TransportError(InboxWatchError):
    """The IMAP session for one account failed (handshake or mid-session drop)."""

    def __init__(self, account: str, reason: str) -> None:
        super().__init__(f"{account}: {reason}")
        self.account = account
        self.reason = reason


class AccountStartError(InboxWatchError):
    """An account failed to connect or complete its initial backfill."""

    def __init__(self, account: str, cause: BaseException) -> None:
        super().__init__(f"account {account} failed to start: {cause}")
        self.account = account
        self.cause = cause
