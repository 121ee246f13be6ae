"""Handler-level idempotency for fanout tasks.

A task queue delivers at least once: a task is redelivered when a worker
dies mid-handler, and the same event may be published twice by an
upstream retry. ``idempotent_handler`` wraps a fanout handler so a given
idempotency key is processed only once within a TTL window:

- a new key runs the handler
- a key already seen is skipped without error, so the task completes
- a handler failure releases the key, so the queue's retry runs it again
- a store failure either runs the handler anyway (``FailMode.OPEN``) or
  raises so the task is retried later (``FailMode.CLOSED``)

The key comes from the event through a caller-supplied extractor. An
extractor returning an empty key disables the check for that event.

Examples:
    Wrapping a handler::

        store = MemoryTaskIdempotencyStore()
        registry.register(
            "user:created",
            "welcome-email",
            idempotent_handler(
                store,
                lambda event: f"welcome-email:{event.payload['id']}",
                send_welcome_email,
                ttl_seconds=24 * 3600,
            ),
        )
"""

import asyncio
import time
from collections.abc import Callable
from enum import Enum
from typing import Protocol, runtime_checkable

from idempotent_fanout.exceptions import InvalidHandlerError
from idempotent_fanout.fanout.registry import is_async_handler
from idempotent_fanout.models import FanoutEvent, FanoutHandlerFunc
from idempotent_fanout.observability.logging import get_logger
from idempotent_fanout.observability.metrics import record_handler_idempotency

logger = get_logger(__name__)

# Deduplication window (24 hours)
DEFAULT_TTL_SECONDS = 24 * 3600

KeyExtractor = Callable[[FanoutEvent], str | None]


class FailMode(str, Enum):
    """What to do when the idempotency store cannot be reached.

    Attributes:
        OPEN: Process the task anyway; duplicates are possible.
        CLOSED: Raise, so the task is retried once the store is back.
    """

    OPEN = "fail-open"
    CLOSED = "fail-closed"


@runtime_checkable
class TaskIdempotencyStore(Protocol):
    """Protocol for stores tracking which task keys were already processed.

    ``check`` must be atomic: of several concurrent calls for one new key,
    exactly one returns True.
    """

    async def check(self, key: str, ttl_seconds: float) -> bool:
        """Mark a key as seen for ``ttl_seconds``.

        Returns:
            True if the key was new, False if it was already marked.
        """
        ...

    async def release(self, key: str) -> None:
        """Forget a key so the next check treats it as new."""
        ...

    async def store_result(self, key: str, result: bytes, ttl_seconds: float) -> None:
        """Cache a result for a key."""
        ...

    async def get_result(self, key: str) -> bytes | None:
        """Return the cached result for a key, or None if there is none."""
        ...


class MemoryTaskIdempotencyStore(TaskIdempotencyStore):
    """In-process TaskIdempotencyStore for single-worker setups and tests.

    Expiry uses the monotonic clock, so wall-clock jumps do not shorten or
    extend the window.
    """

    def __init__(self) -> None:
        self._seen: dict[str, float] = {}
        self._results: dict[str, tuple[bytes, float]] = {}
        self._lock = asyncio.Lock()

    async def check(self, key: str, ttl_seconds: float) -> bool:
        now = time.monotonic()
        async with self._lock:
            expires_at = self._seen.get(key)
            if expires_at is not None and expires_at > now:
                return False
            self._seen[key] = now + ttl_seconds
            return True

    async def release(self, key: str) -> None:
        async with self._lock:
            self._seen.pop(key, None)

    async def store_result(self, key: str, result: bytes, ttl_seconds: float) -> None:
        async with self._lock:
            self._results[key] = (result, time.monotonic() + ttl_seconds)

    async def get_result(self, key: str) -> bytes | None:
        entry = self._results.get(key)
        if entry is None or entry[1] <= time.monotonic():
            return None
        return entry[0]

    def __len__(self) -> int:
        return len(self._seen)


def idempotent_handler(
    store: TaskIdempotencyStore,
    key_extractor: KeyExtractor,
    handler: FanoutHandlerFunc,
    ttl_seconds: float = DEFAULT_TTL_SECONDS,
    fail_mode: FailMode = FailMode.OPEN,
) -> FanoutHandlerFunc:
    """Wrap a fanout handler so each idempotency key is processed once.

    Args:
        store: Store tracking processed keys
        key_extractor: Returns the key for an event; an empty key skips
            the check
        handler: Async handler to protect
        ttl_seconds: Deduplication window
        fail_mode: Behaviour when ``store.check`` raises

    Returns:
        An async handler suitable for ``FanoutRegistry.register``

    Raises:
        ValueError: If store or key_extractor is None, or ttl_seconds <= 0
        InvalidHandlerError: If handler is not an async callable
    """
    if store is None:
        raise ValueError("store cannot be None")
    if key_extractor is None:
        raise ValueError("key_extractor cannot be None")
    if not is_async_handler(handler):
        raise InvalidHandlerError(handler)
    if ttl_seconds <= 0:
        raise ValueError(f"ttl_seconds must be > 0, got {ttl_seconds}")

    async def run_once(event: FanoutEvent) -> None:
        key = key_extractor(event)
        if not key:
            await handler(event)
            return

        try:
            is_new = await store.check(key, ttl_seconds)
        except Exception as e:
            record_handler_idempotency("check_failed")
            if fail_mode is FailMode.CLOSED:
                logger.error(
                    "fanout.idempotency_check_failed",
                    idempotency_key=key,
                    event_type=event.type,
                    fail_mode=fail_mode.value,
                    error=str(e),
                )
                raise
            logger.warning(
                "fanout.idempotency_check_failed",
                idempotency_key=key,
                event_type=event.type,
                fail_mode=fail_mode.value,
                error=str(e),
            )
            await handler(event)
            return

        if not is_new:
            logger.debug("fanout.duplicate_skipped", idempotency_key=key, event_type=event.type)
            record_handler_idempotency("duplicate")
            return

        try:
            await handler(event)
        except BaseException:
            record_handler_idempotency("failed")
            await _release(store, key)
            raise
        record_handler_idempotency("processed")

    return run_once


async def _release(store: TaskIdempotencyStore, key: str) -> None:
    try:
        await store.release(key)
    except Exception as e:
        # The key stays marked until its TTL runs out
        logger.warning("fanout.idempotency_release_failed", idempotency_key=key, error=str(e))
