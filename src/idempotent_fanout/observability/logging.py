"""structlog setup shared by the guard, the fanout workers and the demo.

Every log line is a dotted event name plus keyword fields. The prefixes
in use are:

``idempotency.*``
    Guard outcomes: ``rejected``, ``conflict``, ``replayed``, ``stored``,
    ``store_raced``, ``skipped_too_large``, ``lookup_failed``,
    ``store_failed``, ``failed``. Logged inside
    ``bound_contextvars(idempotency_key=...)``, so the key is attached to
    every line of one request.
``fanout.*``
    Publisher and dispatcher: ``enqueued``, ``enqueue_failed``,
    ``marshal_failed``, ``no_handlers``, ``dispatch``,
    ``dispatch_rejected``, and the handler idempotency wrapper's
    ``duplicate_skipped``, ``idempotency_check_failed`` and
    ``idempotency_release_failed``.
``task.*``
    In-memory queue: ``retry`` and ``archived``.
``cleanup.*``
    Expired-record sweeper lifecycle.

Example::

    configure_logging(level="DEBUG", json_output=False)
    get_logger(__name__).info(
        "fanout.enqueued", event_type="user:created", handler_id="welcome-email"
    )
"""

import logging
import sys
from typing import Any

import structlog

_SHARED_PROCESSORS = (
    structlog.contextvars.merge_contextvars,
    structlog.processors.add_log_level,
    structlog.processors.TimeStamper(fmt="iso", utc=True),
    structlog.processors.StackInfoRenderer(),
)


def _resolve_level(level: str) -> int:
    resolved = logging.getLevelName(level.upper())
    if not isinstance(resolved, int):
        raise ValueError(f"unknown log level: {level!r}")
    return resolved


def configure_logging(level: str = "INFO", json_output: bool = True) -> None:
    """Route structlog output to stdout at the given level.

    Call once at process start, before the first logger is used; loggers
    are cached on first use.

    Args:
        level: Standard level name, case-insensitive.
        json_output: One JSON object per line when True, coloured console
            rendering otherwise.

    Raises:
        ValueError: If ``level`` is not a known level name.
    """
    numeric_level = _resolve_level(level)
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=numeric_level)

    renderers: list[Any]
    if json_output:
        renderers = [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    else:
        renderers = [structlog.dev.ConsoleRenderer(colors=True)]

    structlog.configure(
        processors=[*_SHARED_PROCESSORS, *renderers],
        wrapper_class=structlog.make_filtering_bound_logger(numeric_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> Any:
    """Return a structlog logger named after the calling module."""
    return structlog.get_logger(name)
