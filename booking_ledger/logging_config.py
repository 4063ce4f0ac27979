from __future__ import annotations

import logging
import sys
from typing import Any, Callable, MutableMapping, Optional, cast

import structlog

from booking_ledger.config import LOG_LEVEL

# Type alias for structlog processor
Processor = Callable[[Any, str, MutableMapping[str, Any]], Any]

_NOISY_LOGGERS = (
    "urllib3",
    "requests",
    "stripe",
    "sqlalchemy.engine",
    "uvicorn.access",
)


def setup_logging(level: Optional[str] = None) -> None:
    """
    Configure structured logging for the booking ledger.

    JSON lines are emitted at INFO and above so that reservation and sync
    events can be shipped to a log aggregator; DEBUG switches to the
    coloured console renderer for local work. Request ids bound by
    RequestIDMiddleware are merged into every event from contextvars.

    Args:
        level: Log level override. Defaults to the LOG_LEVEL setting.
    """
    log_level = (level or LOG_LEVEL).upper()

    logging.basicConfig(
        format="[%(asctime)s] %(levelname)s in %(name)s:%(lineno)d: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
        level=log_level,
    )

    for noisy_logger in _NOISY_LOGGERS:
        logging.getLogger(noisy_logger).setLevel(logging.WARNING)

    renderer: Processor = cast(
        Processor,
        (
            structlog.dev.ConsoleRenderer(colors=True)
            if log_level == "DEBUG"
            else structlog.processors.JSONRenderer()
        ),
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging.getLevelName(log_level)),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def mask_email(email: Optional[str]) -> str:
    """
    Mask a guest email for log output, keeping the first character and domain.

    Example:
        >>> mask_email("jane.doe@example.com")
        'j***@example.com'
    """
    if not email or "@" not in email:
        return "***"
    local, _, domain = email.partition("@")
    return f"{local[:1]}***@{domain}"
