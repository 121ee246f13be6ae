"""Fanout event dispatch.

One logical event is broadcast to many isolated handlers through a durable
task queue:

- ENQUEUE SIDE: FanoutRegistry + FanoutPublisher turn an event into one
  task per handler
- PROCESS SIDE: FanoutDispatcher routes each task back to its handler
- idempotent_handler guards a handler against redelivered tasks
"""

from idempotent_fanout.fanout.dispatcher import FanoutDispatcher, parse_task_type
from idempotent_fanout.fanout.idempotency import (
    FailMode,
    MemoryTaskIdempotencyStore,
    TaskIdempotencyStore,
    idempotent_handler,
)
from idempotent_fanout.fanout.publisher import TASK_TYPE_PREFIX, FanoutPublisher, build_task_type
from idempotent_fanout.fanout.queue import MemoryTaskQueue, TaskEnqueuer
from idempotent_fanout.fanout.registry import FanoutRegistry

__all__ = [
    "TASK_TYPE_PREFIX",
    "FailMode",
    "FanoutDispatcher",
    "FanoutPublisher",
    "FanoutRegistry",
    "MemoryTaskIdempotencyStore",
    "MemoryTaskQueue",
    "TaskIdempotencyStore",
    "TaskEnqueuer",
    "build_task_type",
    "idempotent_handler",
    "parse_task_type",
]
