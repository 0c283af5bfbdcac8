"""Entry point for the ingestion service.

Usage::

    python -m inboxwatch
"""

from __future__ import annotations

import asyncio
import sys

from .config import InboxWatchConfig
from .service import InboxWatchService


def main() -> None:
    service = InboxWatchService(InboxWatchConfig())
    asyncio.run(service.run())
    if service.failed:
        sys.exit(1)


if __name__ == "__main__":
    main()
