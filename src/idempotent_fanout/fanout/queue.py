"""Task queue interface and an in-process queue.

The publisher only needs something that can durably enqueue a task. The
``TaskEnqueuer`` protocol is that seam; a Redis- or broker-backed client
implements it in production.

``MemoryTaskQueue`` keeps tasks in process. It is used by tests and the
demo application and also plays the worker side: ``process()`` hands each
task to a dispatch callable and applies the usual retry rules.

Retry Rules:
    - success: the task is completed
    - SkipRetryError (non-retryable): the task is archived immediately
    - any other exception: the task is re-queued until it has been retried
      ``max_retry`` times, then archived

Examples:
    Enqueueing and processing::

        queue = MemoryTaskQueue()
        publisher = FanoutPublisher(queue, registry)
        dispatcher = FanoutDispatcher(registry)

        await publisher.publish(event)
        await queue.process(dispatcher.handle)
"""

import uuid
from collections import deque
from collections.abc import Awaitable, Callable
from typing import Any, Protocol, runtime_checkable

from idempotent_fanout.config import DEFAULT_QUEUE
from idempotent_fanout.exceptions import is_retryable
from idempotent_fanout.models import Task, TaskInfo
from idempotent_fanout.observability.logging import get_logger

logger = get_logger(__name__)

QUEUE_CRITICAL = "critical"
QUEUE_DEFAULT = DEFAULT_QUEUE
QUEUE_LOW = "low"

# Queues are drained in this order; unknown queues come last
QUEUE_PRIORITY = (QUEUE_CRITICAL, QUEUE_DEFAULT, QUEUE_LOW)

DEFAULT_MAX_RETRY = 25


@runtime_checkable
class TaskEnqueuer(Protocol):
    """Protocol for clients that enqueue tasks on a durable queue."""

    async def enqueue(
        self,
        task_type: str,
        payload: bytes,
        queue: str = QUEUE_DEFAULT,
        **options: Any,
    ) -> TaskInfo:
        """Enqueue one task.

        Args:
            task_type: Task type used by consumers for routing
            payload: Serialized task payload
            queue: Queue name
            **options: Backend-specific options (max_retry, timeout, ...)

        Returns:
            TaskInfo describing the enqueued task
        """
        ...


class ArchivedTask:
    """A task that will not be processed again.

    Attributes:
        task: The task as it was last attempted.
        error: The error of the last attempt.
    """

    def __init__(self, task: Task, error: BaseException) -> None:
        self.task = task
        self.error = error


class MemoryTaskQueue(TaskEnqueuer):
    """In-process task queue with a simple worker loop.

    Attributes:
        completed: Tasks whose dispatch succeeded, in completion order.
        archived: Tasks that were given up on.
    """

    def __init__(self) -> None:
        self._pending: dict[str, deque[Task]] = {}
        self.completed: list[Task] = []
        self.archived: list[ArchivedTask] = []

    async def enqueue(
        self,
        task_type: str,
        payload: bytes,
        queue: str = QUEUE_DEFAULT,
        **options: Any,
    ) -> TaskInfo:
        task_id = str(options.get("task_id") or uuid.uuid4())
        task = Task(
            type=task_type,
            payload=payload,
            id=task_id,
            queue=queue,
            max_retry=options.get("max_retry", DEFAULT_MAX_RETRY),
        )
        self._pending.setdefault(queue, deque()).append(task)
        return TaskInfo(
            id=task_id,
            type=task_type,
            queue=queue,
            payload=payload,
            options=dict(options),
        )

    def pending(self, queue: str | None = None) -> list[Task]:
        """Return the tasks still waiting, optionally for one queue only."""
        if queue is not None:
            return list(self._pending.get(queue, ()))
        return [task for name in self._queue_order() for task in self._pending[name]]

    async def process(self, dispatch: Callable[[Task], Awaitable[None]]) -> int:
        """Dispatch pending tasks until every queue is empty.

        Args:
            dispatch: Async callable invoked with each task

        Returns:
            Number of dispatch attempts made
        """
        attempts = 0
        while (task := self._next_task()) is not None:
            attempts += 1
            try:
                await dispatch(task)
            except Exception as e:
                self._handle_failure(task, e)
            else:
                self.completed.append(task)
        return attempts

    def _handle_failure(self, task: Task, error: Exception) -> None:
        if not is_retryable(error):
            logger.warning(
                "task.archived",
                task_id=task.id,
                task_type=task.type,
                reason="non-retryable",
                error=str(error),
            )
            self.archived.append(ArchivedTask(task, error))
            return

        if task.retried >= task.max_retry:
            logger.warning(
                "task.archived",
                task_id=task.id,
                task_type=task.type,
                reason="retries exhausted",
                retried=task.retried,
                error=str(error),
            )
            self.archived.append(ArchivedTask(task, error))
            return

        logger.info(
            "task.retry",
            task_id=task.id,
            task_type=task.type,
            retried=task.retried + 1,
            error=str(error),
        )
        retry = task.model_copy(update={"retried": task.retried + 1})
        self._pending.setdefault(task.queue, deque()).append(retry)

    def _queue_order(self) -> list[str]:
        known = [name for name in QUEUE_PRIORITY if name in self._pending]
        others = sorted(name for name in self._pending if name not in QUEUE_PRIORITY)
        return known + others

    def _next_task(self) -> Task | None:
        for name in self._queue_order():
            if self._pending[name]:
                return self._pending[name].popleft()
        return None
