"""
Idempotency guard and fanout event dispatch for Python services.

This package provides:
- An ASGI middleware that makes unsafe requests safely retryable by caching
  the first response per Idempotency-Key and replaying it for retries
- A fanout mechanism that broadcasts one event to many isolated handlers
  through a durable task queue
"""

from idempotent_fanout.config import FanoutConfig, IdempotencyConfig
from idempotent_fanout.core.middleware import IdempotencyGuard
from idempotent_fanout.fanout import (
    FanoutDispatcher,
    FanoutPublisher,
    FanoutRegistry,
    MemoryTaskQueue,
    TaskEnqueuer,
)
from idempotent_fanout.models import FanoutEvent, IdempotencyRecord
from idempotent_fanout.storage import IdempotencyStore, MemoryIdempotencyStore

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "FanoutConfig",
    "FanoutDispatcher",
    "FanoutEvent",
    "FanoutPublisher",
    "FanoutRegistry",
    "IdempotencyConfig",
    "IdempotencyGuard",
    "IdempotencyRecord",
    "IdempotencyStore",
    "MemoryIdempotencyStore",
    "MemoryTaskQueue",
    "TaskEnqueuer",
]
