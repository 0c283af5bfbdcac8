"""Process-wide structlog configuration and per-component loggers.

Components never configure logging themselves; they receive a bound
logger at construction (see :func:`component_logger`) so that account and
component context travels with every event.
"""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog

LOGGER_NAME = "inboxwatch"

# Library loggers that log every request at INFO.
_CHATTY_LIBRARIES = ("httpx", "elastic_transport", "aiokafka")

_PRE_CHAIN: list[structlog.types.Processor] = [
    structlog.contextvars.merge_contextvars,
    structlog.stdlib.add_log_level,
    structlog.stdlib.add_logger_name,
    structlog.processors.TimeStamper(fmt="iso"),
    structlog.processors.StackInfoRenderer(),
    structlog.processors.format_exc_info,
]


def _renderer(json: bool) -> structlog.types.Processor:
    if json:
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer()


def setup_logging(*, json: bool = True, level: str = "INFO") -> None:
    """Route structlog events through one stdout handler on the root logger.

    *json* picks JSON lines (the service default) over the console
    renderer used for local runs. *level* is a level name in any case.
    Calling this again replaces the previous handler.
    """
    structlog.configure(
        processors=[*_PRE_CHAIN, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                _renderer(json),
            ],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level.upper())

    for name in _CHATTY_LIBRARIES:
        logging.getLogger(name).setLevel(logging.WARNING)


def component_logger(component: str, **context: Any) -> structlog.stdlib.BoundLogger:
    """Logger for one inboxwatch component, e.g. ``component_logger("connection",
    account="a@x.com")``."""
    return structlog.get_logger(LOGGER_NAME).bind(component=component, **context)
