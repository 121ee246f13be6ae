"""ASGI idempotency guard.

IdempotencyGuard makes unsafe requests safely retryable. For each request
whose method is enabled (POST by default) and that carries an
``Idempotency-Key`` header it:

1. Validates the key (a non-nil UUID), rejecting it with 400 otherwise
2. Reads the full body, hashes it, and re-delivers it to the application
3. Looks the key up in the store:
   - lookup failure: 500
   - same key, different body: 409
   - same key, same body: replays the cached response
4. Otherwise runs the application, capturing its response
5. Caches the response unless it was too large; cache failures are logged

Requests without a key, and methods the guard does not apply to, pass
through untouched. The guard takes no lock around lookup and execution;
see ``idempotent_fanout.storage.base`` for what that asks of the store.

Examples:
    FastAPI integration::

        from fastapi import FastAPI
        from idempotent_fanout.core.middleware import IdempotencyGuard
        from idempotent_fanout.storage.memory import MemoryIdempotencyStore

        app = FastAPI()
        app.add_middleware(IdempotencyGuard, store=MemoryIdempotencyStore())

    Starlette integration::

        from starlette.applications import Starlette
        from starlette.middleware import Middleware

        app = Starlette(
            middleware=[Middleware(IdempotencyGuard, store=store, config=config)]
        )
"""

import structlog
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from idempotent_fanout.config import IdempotencyConfig
from idempotent_fanout.core.capture import ResponseCapture
from idempotent_fanout.core.replay import problem_response, replay_response
from idempotent_fanout.core.state_machine import GuardState, lookup, persist
from idempotent_fanout.exceptions import (
    ConflictError,
    IdempotencyError,
    InternalError,
    ValidationError,
)
from idempotent_fanout.fingerprint import compute_request_hash, is_valid_idempotency_key
from idempotent_fanout.observability.logging import get_logger
from idempotent_fanout.observability.metrics import record_request
from idempotent_fanout.storage.base import IdempotencyStore
from idempotent_fanout.utils.headers import IDEMPOTENCY_KEY_HEADER, get_header_value

logger = get_logger(__name__)


def extract_key(scope: Scope) -> str | None:
    """Return the stripped Idempotency-Key header, or None if absent or blank."""
    value = get_header_value(scope.get("headers", []), IDEMPOTENCY_KEY_HEADER)
    if value is None:
        return None
    value = value.strip()
    return value or None


def validate_key(key: str) -> None:
    """Raise ValidationError unless the key is a valid, non-nil UUID."""
    if not is_valid_idempotency_key(key):
        raise ValidationError("Idempotency key must be a valid UUID", key=key)


async def read_body(receive: Receive) -> bytes:
    """Read the complete request body from an ASGI receive callable.

    Raises:
        InternalError: If the client disconnects or reading fails
    """
    chunks: list[bytes] = []
    try:
        while True:
            message = await receive()
            if message["type"] == "http.disconnect":
                raise InternalError("Client disconnected while sending the request body")
            chunks.append(message.get("body", b""))
            if not message.get("more_body", False):
                break
    except InternalError:
        raise
    except Exception as e:
        raise InternalError("Failed to read request body", cause=e) from e
    return b"".join(chunks)


def restore_body(body: bytes, receive: Receive) -> Receive:
    """Return a receive callable that yields ``body`` once, then delegates."""
    delivered = False

    async def receive_restored() -> Message:
        nonlocal delivered
        if not delivered:
            delivered = True
            return {"type": "http.request", "body": body, "more_body": False}
        return await receive()

    return receive_restored


class IdempotencyGuard:
    """Pure ASGI middleware providing idempotency for unsafe requests.

    The guard runs inside the request's own task and has no internal
    concurrency; all store calls are bounded by
    ``config.store_timeout_seconds`` and are cancelled with the request.

    Attributes:
        app: The wrapped ASGI application
        store: Idempotency record store
        config: Configuration object
    """

    def __init__(
        self,
        app: ASGIApp,
        store: IdempotencyStore,
        config: IdempotencyConfig | None = None,
    ) -> None:
        """Initialize the guard.

        Args:
            app: The ASGI application
            store: Idempotency record store
            config: Configuration object (uses defaults if not provided)
        """
        self.app = app
        self.store = store
        self.config = config or IdempotencyConfig()

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http" or scope["method"].upper() not in self.config.enabled_methods:
            await self.app(scope, receive, send)
            return

        key = extract_key(scope)
        if key is None:
            record_request(GuardState.PASSTHROUGH.value)
            await self.app(scope, receive, send)
            return

        with structlog.contextvars.bound_contextvars(idempotency_key=key):
            await self._guard(key, scope, receive, send)

    async def _guard(self, key: str, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            validate_key(key)
            body = await read_body(receive)
            request_hash = compute_request_hash(body)
            result = await lookup(
                self.store,
                key,
                request_hash,
                timeout=self.config.store_timeout_seconds,
            )
        except IdempotencyError as e:
            await self._reject(e, scope, receive, send)
            return

        if result.state is GuardState.REPLAY and result.record is not None:
            logger.info("idempotency.replayed", status_code=result.record.status_code)
            record_request(GuardState.REPLAY.value)
            await replay_response(result.record, send)
            return

        capture = ResponseCapture(send, max_bytes=self.config.max_response_bytes)
        await self.app(scope, restore_body(body, receive), capture.send)
        record_request(GuardState.EXECUTE.value)

        await persist(
            self.store,
            key,
            request_hash,
            capture.captured(),
            ttl_seconds=self.config.default_ttl_seconds,
            timeout=self.config.store_timeout_seconds,
        )

    async def _reject(
        self, error: IdempotencyError, scope: Scope, receive: Receive, send: Send
    ) -> None:
        if isinstance(error, ValidationError):
            state = GuardState.REJECT
            logger.info("idempotency.rejected", reason=error.message)
        elif isinstance(error, ConflictError):
            state = GuardState.CONFLICT
            logger.warning("idempotency.conflict")
        else:
            state = GuardState.ERROR
            logger.error("idempotency.failed", reason=error.message)

        record_request(state.value)
        response = problem_response(error, scope)
        await response(scope, receive, send)
