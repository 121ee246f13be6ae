"""Registry of fanout handlers.

The registry maps an event type to the ordered list of handlers that must
each receive their own task when an event of that type is published.
Registration order defines publish order; the resulting tasks still run
independently of each other.

The registry is an explicit object. Construct one at start-up and hand the
same instance to the publisher and the dispatcher.

Examples:
    Registering handlers::

        registry = FanoutRegistry(FanoutConfig.from_env())
        registry.register("user:created", "welcome-email", send_welcome_email)
        registry.register_with_queue(
            "user:created", "default-settings", create_default_settings, "low",
            max_retry=3,
        )
"""

import inspect
import threading
from typing import Any

from idempotent_fanout.config import FanoutConfig
from idempotent_fanout.exceptions import (
    DuplicateHandlerError,
    EmptyEventTypeError,
    EmptyHandlerIDError,
    InvalidHandlerError,
    InvalidHandlerIDError,
    NilHandlerError,
)
from idempotent_fanout.models import FanoutHandler, FanoutHandlerFunc

# Separates event type and handler id in task types
TASK_TYPE_SEPARATOR = ":"


def is_async_handler(fn: object) -> bool:
    """Return True for coroutine functions and objects with an async __call__."""
    if inspect.iscoroutinefunction(fn):
        return True
    return callable(fn) and inspect.iscoroutinefunction(getattr(fn, "__call__", None))


class FanoutRegistry:
    """Thread-safe catalog of event type -> ordered handlers.

    Mutations and lookups hold the same lock, so reads are serialized with
    each other as well as with writes. Each read holds the lock only long
    enough to copy one list. Lookups return copies, so a caller never
    observes the catalog in the middle of a mutation and can never change
    it through a returned value.

    Attributes:
        config: Fanout configuration.
        default_queue: Queue used when no queue is given, taken from
            ``config.default_queue``.
    """

    def __init__(self, config: FanoutConfig | None = None) -> None:
        self.config = config or FanoutConfig()
        self.default_queue = self.config.default_queue
        self._handlers: dict[str, list[FanoutHandler]] = {}
        self._lock = threading.Lock()

    def register(
        self,
        event_type: str,
        handler_id: str,
        fn: FanoutHandlerFunc | None,
        **options: Any,
    ) -> None:
        """Register a handler on the default queue.

        Args:
            event_type: Event type, e.g. "user:created"
            handler_id: Identifier unique within the event type; must not
                contain ":"
            fn: Async handler called with the decoded FanoutEvent
            **options: Extra per-task enqueue options

        Raises:
            EmptyEventTypeError: If event_type is empty
            EmptyHandlerIDError: If handler_id is empty
            NilHandlerError: If fn is None
            InvalidHandlerError: If fn is not an async callable
            InvalidHandlerIDError: If handler_id contains ":"
            DuplicateHandlerError: If handler_id is already registered for
                event_type
        """
        self.register_with_queue(event_type, handler_id, fn, self.default_queue, **options)

    def register_with_queue(
        self,
        event_type: str,
        handler_id: str,
        fn: FanoutHandlerFunc | None,
        queue: str,
        **options: Any,
    ) -> None:
        """Register a handler on a specific queue.

        An empty queue name falls back to the default queue. Raises the
        same errors as ``register``; on error the registry is unchanged.
        """
        if not event_type:
            raise EmptyEventTypeError()
        if not handler_id:
            raise EmptyHandlerIDError()
        if fn is None:
            raise NilHandlerError()
        if not is_async_handler(fn):
            raise InvalidHandlerError(fn)
        if TASK_TYPE_SEPARATOR in handler_id:
            raise InvalidHandlerIDError(handler_id, TASK_TYPE_SEPARATOR)

        handler = FanoutHandler(
            id=handler_id,
            handler=fn,
            queue=queue or self.default_queue,
            options=options,
        )

        with self._lock:
            handlers = self._handlers.setdefault(event_type, [])
            if any(h.id == handler_id for h in handlers):
                raise DuplicateHandlerError(event_type, handler_id)
            handlers.append(handler)

    def handlers(self, event_type: str) -> list[FanoutHandler]:
        """Return a copy of the handlers registered for an event type."""
        with self._lock:
            return list(self._handlers.get(event_type, ()))

    def get(self, event_type: str, handler_id: str) -> FanoutHandler | None:
        """Return one handler, or None if it is not registered."""
        for handler in self.handlers(event_type):
            if handler.id == handler_id:
                return handler
        return None

    def unregister(self, event_type: str, handler_id: str) -> None:
        """Remove a handler; does nothing if it is not registered."""
        with self._lock:
            handlers = self._handlers.get(event_type)
            if not handlers:
                return
            remaining = [h for h in handlers if h.id != handler_id]
            if remaining:
                self._handlers[event_type] = remaining
            else:
                del self._handlers[event_type]

    def event_types(self) -> list[str]:
        """Return the event types that currently have handlers."""
        with self._lock:
            return list(self._handlers)
