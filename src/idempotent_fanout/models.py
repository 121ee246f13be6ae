"""Core type definitions and models for idempotency and fanout handling.

This module provides the value types shared by the HTTP guard and the
fanout machinery: the cached idempotency record, the fanout event and
handler entries, and the task structures exchanged with a task queue.

Examples:
    Creating an idempotency record::

        from datetime import UTC, datetime, timedelta
        from idempotent_fanout.models import IdempotencyRecord

        now = datetime.now(UTC)
        record = IdempotencyRecord(
            key="7c9e6679-7425-40de-944b-e07fc1f90ae7",
            request_hash="a" * 64,
            status_code=201,
            response_headers={"content-type": ["application/json"]},
            response_body=b'{"id": "usr_1"}',
            created_at=now,
            expires_at=now + timedelta(hours=24),
        )

    Creating a fanout event::

        from idempotent_fanout.models import FanoutEvent

        event = FanoutEvent(type="user:created", payload={"user_id": "usr_1"})
"""

from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator


class IdempotencyRecord(BaseModel):
    """Snapshot of the first successful response for an idempotency key.

    Records are created once by the guard after the wrapped handler ran and
    are never mutated afterwards (the model is frozen). A record stops being
    valid once ``expires_at`` has passed; removing it is the store's job.

    Attributes:
        key: The idempotency key provided by the client.
        request_hash: SHA-256 hex digest of the raw request body.
        status_code: HTTP status code of the cached response.
        response_headers: Response headers, each name mapped to all its values.
        response_body: The cached response body.
        created_at: When the record was created.
        expires_at: When the record stops being valid.
    """

    key: str = Field(
        ...,
        description="Idempotency key provided by the client",
        min_length=1,
        examples=["7c9e6679-7425-40de-944b-e07fc1f90ae7"],
    )
    request_hash: str = Field(
        ...,
        description="SHA-256 hash of the raw request body (64 hex characters)",
        pattern=r"^[a-f0-9]{64}$",
        examples=["a" * 64],
    )
    status_code: int = Field(
        ...,
        description="HTTP status code",
        ge=100,
        le=599,
        examples=[200, 201, 400],
    )
    response_headers: dict[str, list[str]] = Field(
        default_factory=dict,
        description="HTTP response headers; a name may carry several values",
        examples=[{"content-type": ["application/json"], "set-cookie": ["a=1", "b=2"]}],
    )
    response_body: bytes = Field(
        default=b"",
        description="Cached response body",
    )
    created_at: datetime = Field(
        ...,
        description="Timestamp when the record was created",
        examples=["2025-12-31T10:30:00Z"],
    )
    expires_at: datetime = Field(
        ...,
        description="Timestamp after which the record is no longer valid",
        examples=["2026-01-01T10:30:00Z"],
    )

    model_config = {"frozen": True}

    @field_validator("expires_at")
    @classmethod
    def validate_expires_after_created(cls, v: datetime, info: Any) -> datetime:
        """Validate that expires_at is after created_at.

        Raises:
            ValueError: If expires_at is not after created_at.
        """
        if "created_at" in info.data and v <= info.data["created_at"]:
            raise ValueError("expires_at must be after created_at")
        return v

    def is_expired(self, now: datetime | None = None) -> bool:
        """Return True once ``expires_at`` is in the past.

        Examples:
            >>> record.is_expired(now=record.created_at)
            False
        """
        if now is None:
            now = datetime.now(UTC)
        return self.expires_at <= now


class FanoutEvent(BaseModel):
    """An event broadcast to every handler registered for its type.

    The event is serialized once per handler into the task payload. Its JSON
    form is ``{type, payload, metadata?, timestamp}``; ``metadata`` is left
    out when unset.

    Attributes:
        type: Logical event name, e.g. "user:created". May contain colons.
        payload: Opaque JSON-compatible event data.
        metadata: Optional string metadata (source, correlation id, ...).
        timestamp: When the event happened. Publishers fill in the current
            UTC time if it is unset.
    """

    type: str = Field(
        ...,
        description="Event type identifier",
        min_length=1,
        examples=["user:created", "order:completed"],
    )
    payload: Any = Field(
        default=None,
        description="Event data as a JSON-compatible value",
        examples=[{"user_id": "usr_1", "email": "ada@example.com"}],
    )
    metadata: dict[str, str] | None = Field(
        default=None,
        description="Optional event metadata",
        examples=[{"source": "api", "correlation_id": "req-123"}],
    )
    timestamp: datetime | None = Field(
        default=None,
        description="When the event was created",
    )

    model_config = {"frozen": True}

    def with_timestamp(self, now: datetime | None = None) -> "FanoutEvent":
        """Return the event with its timestamp set, defaulting to UTC now."""
        if self.timestamp is not None:
            return self
        return self.model_copy(update={"timestamp": now or datetime.now(UTC)})

    def to_json(self) -> bytes:
        """Serialize the event to its task payload form."""
        exclude = {"metadata"} if self.metadata is None else None
        return self.model_dump_json(exclude=exclude).encode("utf-8")

    @classmethod
    def from_json(cls, data: bytes | str) -> "FanoutEvent":
        """Decode a task payload back into an event.

        Raises:
            pydantic.ValidationError: If the payload is not a valid event.
        """
        return cls.model_validate_json(data)


FanoutHandlerFunc = Callable[[FanoutEvent], Awaitable[None]]


class FanoutHandler(BaseModel):
    """A handler registered for one fanout event type.

    Attributes:
        id: Identifier, unique within its event type.
        handler: Async callable invoked with the decoded event.
        queue: Queue the handler's tasks are enqueued on.
        options: Extra per-task enqueue options (max_retry, timeout, ...).
    """

    id: str = Field(..., min_length=1)
    handler: FanoutHandlerFunc
    queue: str = Field(default="default", min_length=1)
    options: dict[str, Any] = Field(default_factory=dict)

    model_config = {"frozen": True}


class TaskInfo(BaseModel):
    """What a task enqueuer reports back after enqueueing a task.

    Attributes:
        id: Identifier assigned by the queue.
        type: The task type string.
        queue: Queue the task was placed on.
        payload: The serialized payload.
        options: Options the task was enqueued with.
    """

    id: str
    type: str
    queue: str
    payload: bytes = b""
    options: dict[str, Any] = Field(default_factory=dict)


class Task(BaseModel):
    """A task handed to a consumer for processing.

    Attributes:
        type: The task type string, e.g. "fanout:user:created:welcome-email".
        payload: The serialized payload.
        id: Identifier assigned by the queue, if known.
        queue: Queue the task came from.
        retried: How many times the task has already been retried.
        max_retry: Maximum number of retries before the task is archived.
    """

    type: str
    payload: bytes = b""
    id: str | None = None
    queue: str = "default"
    retried: int = Field(default=0, ge=0)
    max_retry: int = Field(default=25, ge=0)
