"""Observability utilities for idempotency and fanout handling.

This package provides monitoring and debugging capabilities:
- Prometheus metrics for guard, fanout and cleanup behavior
- Structured logging with contextual information
"""

from idempotent_fanout.observability.logging import configure_logging, get_logger
from idempotent_fanout.observability.metrics import (
    record_cache_write,
    record_cleanup,
    record_dispatch,
    record_enqueue,
    record_handler_idempotency,
    record_request,
)

__all__ = [
    "configure_logging",
    "get_logger",
    "record_request",
    "record_cache_write",
    "record_enqueue",
    "record_dispatch",
    "record_handler_idempotency",
    "record_cleanup",
]
