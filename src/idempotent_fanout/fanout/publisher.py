"""Fanout publishing: one event, one task per registered handler.

Each handler gets its own task with its own retry and failure domain:
    - user:created -> welcome-email, default-settings, notify-admin
    - order:completed -> send-receipt, update-inventory

Task types have the form ``fanout:{event_type}:{handler_id}``. The event
type may itself contain colons; handler ids may not, which is what lets
the dispatcher split on the last colon.

Examples:
    Publishing an event::

        publisher = FanoutPublisher(queue, registry)
        errors = await publisher.publish(
            FanoutEvent(type="user:created", payload={"user_id": "usr_1"})
        )
        if errors:
            for error in errors:
                logger.warning("handler not reached", handler_id=error.handler_id)
"""

import asyncio

from pydantic_core import PydanticSerializationError

from idempotent_fanout.config import FanoutConfig
from idempotent_fanout.exceptions import FanoutPublishError
from idempotent_fanout.fanout.queue import TaskEnqueuer
from idempotent_fanout.fanout.registry import TASK_TYPE_SEPARATOR, FanoutRegistry
from idempotent_fanout.models import FanoutEvent, FanoutHandler
from idempotent_fanout.observability.logging import get_logger
from idempotent_fanout.observability.metrics import record_enqueue

logger = get_logger(__name__)

TASK_TYPE_PREFIX = "fanout" + TASK_TYPE_SEPARATOR


def build_task_type(event_type: str, handler_id: str) -> str:
    """Build the task type for one handler of an event type.

    Example:
        >>> build_task_type("user:created", "welcome-email")
        'fanout:user:created:welcome-email'
    """
    return f"{TASK_TYPE_PREFIX}{event_type}{TASK_TYPE_SEPARATOR}{handler_id}"


class FanoutPublisher:
    """Broadcasts events to every handler registered for their type.

    Attributes:
        enqueuer: Client of the durable task queue
        registry: Handler registry shared with the dispatcher
        config: Fanout configuration (enqueue timeout)
    """

    def __init__(
        self,
        enqueuer: TaskEnqueuer,
        registry: FanoutRegistry,
        config: FanoutConfig | None = None,
    ) -> None:
        self.enqueuer = enqueuer
        self.registry = registry
        self.config = config or FanoutConfig()

    async def publish(self, event: FanoutEvent) -> list[FanoutPublishError]:
        """Enqueue one task per handler registered for ``event.type``.

        The timestamp is set to the current UTC time if unset. A failure for
        one handler is recorded and the remaining handlers are still
        enqueued. Publishing an event nobody listens to is a logged no-op.

        Returns:
            Per-handler failures: empty on full success, as long as the
            handler list on total failure
        """
        event = event.with_timestamp()

        handlers = self.registry.handlers(event.type)
        if not handlers:
            logger.warning("fanout.no_handlers", event_type=event.type)
            return []

        errors: list[FanoutPublishError] = []
        for handler in handlers:
            error = await self._enqueue(event, handler)
            record_enqueue(event.type, success=error is None)
            if error is not None:
                errors.append(error)

        return errors

    async def _enqueue(
        self, event: FanoutEvent, handler: FanoutHandler
    ) -> FanoutPublishError | None:
        try:
            payload = event.to_json()
        except (PydanticSerializationError, ValueError, TypeError) as e:
            logger.error(
                "fanout.marshal_failed",
                event_type=event.type,
                handler_id=handler.id,
                error=str(e),
            )
            return FanoutPublishError(handler.id, e)

        task_type = build_task_type(event.type, handler.id)
        try:
            info = await asyncio.wait_for(
                self.enqueuer.enqueue(task_type, payload, handler.queue, **handler.options),
                timeout=self.config.enqueue_timeout_seconds,
            )
        except Exception as e:
            logger.error(
                "fanout.enqueue_failed",
                event_type=event.type,
                handler_id=handler.id,
                error=str(e),
                error_type=type(e).__name__,
            )
            return FanoutPublishError(handler.id, e)

        logger.debug(
            "fanout.enqueued",
            task_id=info.id,
            event_type=event.type,
            handler_id=handler.id,
            queue=info.queue,
        )
        return None
