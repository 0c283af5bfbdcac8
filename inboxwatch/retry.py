"""Tenacity retry wrapper for the per-account reconnect policy."""

from __future__ import annotations

import imaplib
from collections.abc import Awaitable, Callable

from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from .config import RetryConfig

# Failures that mean "the session is gone", as opposed to a bug.
TRANSPORT_EXCEPTIONS: tuple[type[BaseException], ...] = (imaplib.IMAP4.error, OSError)


def reconnect_enabled(config: RetryConfig) -> bool:
    return config.max_attempts > 0


def with_retry(
    config: RetryConfig,
    *,
    retryable_exceptions: tuple[type[BaseException], ...] = TRANSPORT_EXCEPTIONS,
    sleep: Callable[[float], Awaitable[None]] | None = None,
) -> Callable:
    """Return a tenacity retry decorator configured from *config*.

    *sleep* replaces the backoff sleep, e.g. with one that returns early
    on shutdown.

    Usage::

        @with_retry(config.reconnect)
        async def reconnect() -> None: ...
    """
    extra = {"sleep": sleep} if sleep is not None else {}
    return retry(
        stop=stop_after_attempt(max(config.max_attempts, 1)),
        wait=wait_exponential(
            multiplier=config.multiplier,
            min=config.initial_wait_seconds,
            max=config.max_wait_seconds,
        ),
        retry=retry_if_exception_type(retryable_exceptions),
        reraise=True,
        **extra,
    )
