"""Fanout dispatch: routing a fanout task to its registered handler.

Failures that can never succeed on redelivery (malformed task type,
unknown handler, malformed payload) are raised as ``SkipRetryError``
subclasses so the queue archives the task instead of retrying it forever.
Errors raised by the handler itself propagate unchanged and follow the
queue's normal retry policy.
"""

from pydantic import ValidationError as PydanticValidationError

from idempotent_fanout.exceptions import (
    HandlerNotFoundError,
    PayloadDecodeError,
    SkipRetryError,
    TaskTypeParseError,
)
from idempotent_fanout.fanout.publisher import TASK_TYPE_PREFIX
from idempotent_fanout.fanout.registry import TASK_TYPE_SEPARATOR, FanoutRegistry
from idempotent_fanout.models import FanoutEvent, Task
from idempotent_fanout.observability.logging import get_logger
from idempotent_fanout.observability.metrics import record_dispatch

logger = get_logger(__name__)


def parse_task_type(task_type: str) -> tuple[str, str]:
    """Split a fanout task type into (event_type, handler_id).

    The split happens at the last separator, since event types may contain
    colons and handler ids may not.

    Raises:
        TaskTypeParseError: If the prefix is missing or either part is empty

    Examples:
        >>> parse_task_type("fanout:user:created:welcome-email")
        ('user:created', 'welcome-email')
        >>> parse_task_type("email:send")
        Traceback (most recent call last):
        ...
        idempotent_fanout.exceptions.TaskTypeParseError: invalid fanout task type: email:send
    """
    if not task_type.startswith(TASK_TYPE_PREFIX):
        raise TaskTypeParseError(task_type)

    remaining = task_type[len(TASK_TYPE_PREFIX):]
    index = remaining.rfind(TASK_TYPE_SEPARATOR)
    if index <= 0 or index == len(remaining) - 1:
        raise TaskTypeParseError(task_type)

    return remaining[:index], remaining[index + 1:]


class FanoutDispatcher:
    """Consumer-side router for fanout tasks.

    Register ``handle`` with the worker for every task type starting with
    ``TASK_TYPE_PREFIX``.

    Attributes:
        registry: Handler registry shared with the publisher
    """

    def __init__(self, registry: FanoutRegistry) -> None:
        self.registry = registry

    async def handle(self, task: Task) -> None:
        """Decode a fanout task and run the matching handler.

        Raises:
            TaskTypeParseError: If the task type is malformed (non-retryable)
            HandlerNotFoundError: If no such handler is registered
                (non-retryable)
            PayloadDecodeError: If the payload is not a FanoutEvent
                (non-retryable)
            Exception: Whatever the handler raises (retryable)
        """
        try:
            event_type, handler_id = parse_task_type(task.type)

            handler = self.registry.get(event_type, handler_id)
            if handler is None:
                raise HandlerNotFoundError(event_type, handler_id)

            try:
                event = FanoutEvent.from_json(task.payload)
            except (PydanticValidationError, ValueError) as e:
                raise PayloadDecodeError(event_type, handler_id, e) from e
        except SkipRetryError as e:
            logger.error(
                "fanout.dispatch_rejected",
                task_type=task.type,
                task_id=task.id,
                error=str(e),
                error_type=type(e).__name__,
            )
            record_dispatch("rejected")
            raise

        logger.debug(
            "fanout.dispatch",
            event_type=event_type,
            handler_id=handler_id,
            task_id=task.id,
        )
        try:
            await handler.handler(event)
        except Exception:
            record_dispatch("failed")
            raise
        record_dispatch("processed")
