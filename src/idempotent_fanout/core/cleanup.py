"""Background removal of expired idempotency records.

Records stop being valid at ``expires_at`` but stay in the store until
something deletes them. The cleanup task:

1. Runs once immediately, then at a fixed interval (default 1 hour)
2. Calls ``store.delete_expired()``
3. Reports metrics and logs for observability
4. Keeps running when a single cleanup fails

Examples:
    Start and stop the task with the application lifespan::

        from contextlib import asynccontextmanager

        from fastapi import FastAPI
        from idempotent_fanout.core.cleanup import start_cleanup_task, stop_cleanup_task

        @asynccontextmanager
        async def lifespan(app: FastAPI):
            task = await start_cleanup_task(store, interval_seconds=3600)
            yield
            await stop_cleanup_task(task)
"""

import asyncio
import time

from idempotent_fanout.observability.logging import get_logger
from idempotent_fanout.observability.metrics import record_cleanup, record_cleanup_error
from idempotent_fanout.storage.base import IdempotencyStore

logger = get_logger(__name__)


async def cleanup_once(store: IdempotencyStore) -> int | None:
    """Run a single cleanup pass.

    Returns:
        Number of records removed, or None if the pass failed
    """
    start = time.monotonic()
    try:
        count = await store.delete_expired()
    except Exception as e:
        record_cleanup_error()
        logger.error(
            "cleanup.failed",
            error=str(e),
            error_type=type(e).__name__,
            duration_ms=int((time.monotonic() - start) * 1000),
        )
        return None

    duration = time.monotonic() - start
    record_cleanup(count, duration)

    # Only log at info when something was removed
    if count > 0:
        logger.info(
            "cleanup.completed",
            records_removed=count,
            duration_ms=int(duration * 1000),
        )
    else:
        logger.debug("cleanup.completed", records_removed=0)
    return count


async def cleanup_loop(
    store: IdempotencyStore,
    interval_seconds: float = 3600,
    stop_event: asyncio.Event | None = None,
) -> None:
    """Periodically remove expired records until ``stop_event`` is set.

    Args:
        store: Store to clean up
        interval_seconds: Time between cleanup runs (default 3600s = 1 hour)
        stop_event: Event to signal the loop to stop (optional)
    """
    if stop_event is None:
        stop_event = asyncio.Event()

    logger.info("cleanup.started", interval_seconds=interval_seconds)

    while not stop_event.is_set():
        await cleanup_once(store)

        try:
            await asyncio.wait_for(stop_event.wait(), timeout=interval_seconds)
        except TimeoutError:
            continue

    logger.info("cleanup.stopped")


async def start_cleanup_task(
    store: IdempotencyStore,
    interval_seconds: float = 3600,
) -> asyncio.Task[None]:
    """Start the cleanup loop as a background task.

    Returns:
        The asyncio Task running the cleanup loop
    """
    stop_event = asyncio.Event()

    task = asyncio.create_task(
        cleanup_loop(
            store=store,
            interval_seconds=interval_seconds,
            stop_event=stop_event,
        )
    )

    # Store the stop_event in the task for later use
    task._stop_event = stop_event  # type: ignore[attr-defined]

    return task


async def stop_cleanup_task(task: asyncio.Task[None], timeout: float = 5.0) -> None:
    """Stop a running cleanup task gracefully, cancelling it after ``timeout``.

    Args:
        task: The cleanup task to stop (returned from start_cleanup_task)
        timeout: Seconds to wait for the current pass to finish
    """
    stop_event: asyncio.Event | None = getattr(task, "_stop_event", None)

    if stop_event:
        stop_event.set()

    try:
        await asyncio.wait_for(task, timeout=timeout)
    except TimeoutError:
        logger.warning("cleanup.stop_timeout", message="Cleanup task did not stop in time")
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            logger.debug("cleanup.cancelled")
