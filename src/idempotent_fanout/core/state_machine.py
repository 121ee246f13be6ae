"""Guard decisions for idempotent request processing.

This module holds the store-facing half of the guard, independent of the
HTTP framework. A request that carries a valid key goes through:

    lookup -> REPLAY | CONFLICT | ERROR | EXECUTE
    EXECUTE -> (handler runs) -> persist -> STORE | SKIP

Every store call is bounded by a timeout and is cancelled together with
the request task that awaits it.

Examples:
    Looking up a key::

        result = await lookup(store, key, request_hash, timeout=5.0)
        if result.state is GuardState.REPLAY:
            await replay_response(result.record, send)
"""

import asyncio
from datetime import UTC, datetime, timedelta
from enum import Enum

from idempotent_fanout.core.capture import CapturedResponse
from idempotent_fanout.exceptions import ConflictError, InternalError, KeyAlreadyExistsError
from idempotent_fanout.models import IdempotencyRecord
from idempotent_fanout.observability.logging import get_logger
from idempotent_fanout.observability.metrics import record_cache_write
from idempotent_fanout.storage.base import IdempotencyStore

logger = get_logger(__name__)


class GuardState(str, Enum):
    """Terminal and intermediate states of the guard.

    Attributes:
        PASSTHROUGH: No key, or a method the guard does not apply to.
        REJECT: The key is not a valid, non-nil UUID.
        CONFLICT: The key was already used with a different body.
        REPLAY: A cached response was written back.
        EXECUTE: No record exists; the handler must run.
        STORE: The executed response was cached.
        SKIP: The executed response was not cached.
        ERROR: The guard could not complete its checks.
    """

    PASSTHROUGH = "passthrough"
    REJECT = "rejected"
    CONFLICT = "conflict"
    REPLAY = "replayed"
    EXECUTE = "executed"
    STORE = "stored"
    SKIP = "skipped"
    ERROR = "error"


class LookupResult:
    """Outcome of looking up an idempotency key.

    Attributes:
        state: Either REPLAY or EXECUTE.
        record: The cached record when state is REPLAY, None otherwise.
    """

    def __init__(self, state: GuardState, record: IdempotencyRecord | None = None) -> None:
        self.state = state
        self.record = record


async def lookup(
    store: IdempotencyStore,
    key: str,
    request_hash: str,
    timeout: float,
) -> LookupResult:
    """Decide between replaying a cached response and executing the handler.

    Args:
        store: Idempotency store
        key: Validated idempotency key
        request_hash: Hash of the current request body
        timeout: Deadline in seconds for the store lookup

    Returns:
        LookupResult with state REPLAY (and the record) or EXECUTE

    Raises:
        InternalError: If the store lookup fails or times out
        ConflictError: If the key was used with a different request body
    """
    try:
        record = await asyncio.wait_for(store.get(key), timeout=timeout)
    except Exception as e:
        logger.error(
            "idempotency.lookup_failed",
            key=key,
            error=str(e),
            error_type=type(e).__name__,
        )
        raise InternalError("Failed to check idempotency record", cause=e) from e

    if record is None:
        return LookupResult(GuardState.EXECUTE)

    if record.request_hash != request_hash:
        raise ConflictError(
            message="Idempotency key already exists with different request body",
            key=key,
            stored_hash=record.request_hash,
            request_hash=request_hash,
        )

    return LookupResult(GuardState.REPLAY, record)


async def persist(
    store: IdempotencyStore,
    key: str,
    request_hash: str,
    captured: CapturedResponse,
    ttl_seconds: int,
    timeout: float,
) -> GuardState:
    """Cache a freshly executed response.

    The client already holds the full response at this point, so failures
    are logged and reported as SKIP instead of being raised.

    Args:
        store: Idempotency store
        key: Idempotency key
        request_hash: Hash of the request body
        captured: Response captured while the handler ran
        ttl_seconds: Lifetime of the new record
        timeout: Deadline in seconds for the store write

    Returns:
        STORE if the record was written, SKIP otherwise
    """
    if not captured.is_valid:
        logger.info("idempotency.skipped_too_large", key=key)
        record_cache_write("skipped")
        return GuardState.SKIP

    now = datetime.now(UTC)
    record = IdempotencyRecord(
        key=key,
        request_hash=request_hash,
        status_code=captured.status_code,
        response_headers=captured.headers,
        response_body=captured.body,
        created_at=now,
        expires_at=now + timedelta(seconds=ttl_seconds),
    )

    try:
        await asyncio.wait_for(store.store(record), timeout=timeout)
    except KeyAlreadyExistsError:
        # A concurrent first request cached its response first
        logger.info("idempotency.store_raced", key=key)
        record_cache_write("failed")
        return GuardState.SKIP
    except Exception as e:
        logger.warning(
            "idempotency.store_failed",
            key=key,
            error=str(e),
            error_type=type(e).__name__,
        )
        record_cache_write("failed")
        return GuardState.SKIP

    logger.debug("idempotency.stored", key=key, status_code=captured.status_code)
    record_cache_write("stored")
    return GuardState.STORE
