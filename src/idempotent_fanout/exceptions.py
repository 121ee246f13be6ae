"""Custom exceptions for idempotency and fanout handling.

This module defines two exception families:

- ``IdempotencyError`` and its subclasses, which the HTTP guard turns into
  RFC 7807 problem responses (400, 409, 500).
- ``FanoutError`` and its subclasses, raised by the handler registry, the
  publisher and the dispatcher.

Dispatch-side protocol failures derive from ``SkipRetryError`` so a task
queue can tell them apart from ordinary handler failures and archive the
task instead of redelivering it.

Examples:
    Handling a conflict error::

        from idempotent_fanout.exceptions import ConflictError

        try:
            await lookup(store, key, request_hash)
        except ConflictError as e:
            logger.warning("idempotency.conflict", key=e.key)

    Deciding whether to retry a task::

        from idempotent_fanout.exceptions import is_retryable

        try:
            await dispatcher.handle(task)
        except Exception as e:
            if not is_retryable(e):
                archive(task)
"""


class IdempotencyError(Exception):
    """Base exception for all idempotency-related errors.

    Each subclass carries the HTTP status and error code the guard uses to
    render a problem response.

    Attributes:
        message: Human-readable error description.
        status_code: HTTP status of the problem response.
        code: Machine-readable error code.
        title: Short problem title.
        problem_type: Slug used to build the problem ``type`` URI.
    """

    status_code = 500
    code = "SYSTEM/INTERNAL"
    title = "Internal Server Error"
    problem_type = "internal-error"

    def __init__(self, message: str) -> None:
        """Initialize the exception with a message.

        Args:
            message: Human-readable error description.
        """
        self.message = message
        super().__init__(message)


class ValidationError(IdempotencyError):
    """The Idempotency-Key header is not a valid, non-nil UUID.

    Attributes:
        message: Human-readable error description.
        key: The rejected key as received.
    """

    status_code = 400
    code = "VALIDATION/IDEMPOTENCY_KEY_INVALID"
    title = "Validation Error"
    problem_type = "validation-error"

    def __init__(self, message: str, key: str) -> None:
        super().__init__(message)
        self.key = key


class ConflictError(IdempotencyError):
    """Request conflict detected - same key, different request body.

    The client reused an idempotency key for a logically different request.
    This is a programming error on the client side, not a retry.

    Attributes:
        message: Human-readable error description.
        key: The idempotency key that conflicted.
        stored_hash: The request hash stored with the record.
        request_hash: The hash of the incoming request body.

    Examples:
        Raising a conflict error::

            if record.request_hash != request_hash:
                raise ConflictError(
                    message=f"Request hash mismatch for key {key}",
                    key=key,
                    stored_hash=record.request_hash,
                    request_hash=request_hash,
                )
    """

    status_code = 409
    code = "VALIDATION/IDEMPOTENCY_CONFLICT"
    title = "Conflict"
    problem_type = "conflict"

    def __init__(
        self,
        message: str,
        key: str,
        stored_hash: str,
        request_hash: str,
    ) -> None:
        """Initialize the conflict error with details.

        Args:
            message: Human-readable error description.
            key: The idempotency key that conflicted.
            stored_hash: The request hash stored with the record.
            request_hash: The hash of the incoming request body.
        """
        super().__init__(message)
        self.key = key
        self.stored_hash = stored_hash
        self.request_hash = request_hash


class InternalError(IdempotencyError):
    """The guard could not complete its checks (store lookup, body read).

    The underlying cause is kept for logging but never rendered to the
    client.

    Attributes:
        message: Human-readable error description.
        cause: The underlying exception, if any.
    """

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.cause = cause


class StorageError(IdempotencyError):
    """Storage backend operation failed.

    Raised by store implementations for transient backend failures
    (network, timeouts, unavailable service). The guard converts lookup
    failures into ``InternalError`` and swallows write failures.

    Attributes:
        message: Human-readable error description.
        cause: The underlying exception that caused the storage error.

    Examples:
        Raising a storage error::

            try:
                row = await conn.fetchrow(query, key)
            except OSError as e:
                raise StorageError(
                    message=f"Failed to read idempotency key: {e}",
                    cause=e,
                ) from e
    """

    def __init__(self, message: str, cause: Exception | None = None) -> None:
        """Initialize the storage error with details.

        Args:
            message: Human-readable error description.
            cause: The underlying exception that caused the storage error.
        """
        super().__init__(message)
        self.cause = cause


class KeyAlreadyExistsError(StorageError):
    """A live record already exists for the key being stored.

    Stores raise this from their atomic conditional insert when two first
    requests with the same key race each other.
    """

    def __init__(self, key: str) -> None:
        super().__init__(f"Idempotency key already exists: {key}")
        self.key = key


class FanoutError(Exception):
    """Base exception for fanout registry, publisher and dispatcher errors."""


class RegistrationError(FanoutError):
    """A handler could not be registered."""


class EmptyEventTypeError(RegistrationError):
    """The event type passed to register was empty."""

    def __init__(self) -> None:
        super().__init__("event type cannot be empty")


class EmptyHandlerIDError(RegistrationError):
    """The handler id passed to register was empty."""

    def __init__(self) -> None:
        super().__init__("handler id cannot be empty")


class NilHandlerError(RegistrationError):
    """The handler function passed to register was None."""

    def __init__(self) -> None:
        super().__init__("handler function cannot be None")


class InvalidHandlerError(RegistrationError):
    """The handler is not an async callable.

    The dispatcher awaits every handler, so plain functions and other
    non-awaitable callables are refused at registration time.
    """

    def __init__(self, handler: object) -> None:
        super().__init__(f"handler must be an async callable, got {handler!r}")
        self.handler = handler


class InvalidHandlerIDError(RegistrationError):
    """The handler id contains the task type separator."""

    def __init__(self, handler_id: str, separator: str) -> None:
        super().__init__(f"handler id {handler_id!r} must not contain {separator!r}")
        self.handler_id = handler_id


class DuplicateHandlerError(RegistrationError):
    """A handler with the same id is already registered for the event type."""

    def __init__(self, event_type: str, handler_id: str) -> None:
        super().__init__(
            f"handler {handler_id!r} already registered for event type {event_type!r}"
        )
        self.event_type = event_type
        self.handler_id = handler_id


class FanoutPublishError(FanoutError):
    """Enqueueing the task for one handler failed.

    Publishers collect these per handler instead of raising them, so one
    failing handler never stops its siblings from being reached.

    Attributes:
        handler_id: The handler whose task could not be enqueued.
        cause: The serialization or enqueue failure.
    """

    def __init__(self, handler_id: str, cause: BaseException) -> None:
        super().__init__(f"enqueue handler {handler_id}: {cause}")
        self.handler_id = handler_id
        self.cause = cause


class SkipRetryError(FanoutError):
    """Marker base for failures that can never succeed on redelivery."""


class TaskTypeParseError(SkipRetryError):
    """The task type is not a well-formed fanout task type."""

    def __init__(self, task_type: str) -> None:
        super().__init__(f"invalid fanout task type: {task_type}")
        self.task_type = task_type


class HandlerNotFoundError(SkipRetryError):
    """No handler is registered for the decoded (event type, handler id)."""

    def __init__(self, event_type: str, handler_id: str) -> None:
        super().__init__(f"handler {handler_id} not found for event {event_type}")
        self.event_type = event_type
        self.handler_id = handler_id


class PayloadDecodeError(SkipRetryError):
    """The task payload could not be decoded into a FanoutEvent."""

    def __init__(self, event_type: str, handler_id: str, cause: Exception) -> None:
        super().__init__(f"unmarshal event for handler {handler_id}: {cause}")
        self.event_type = event_type
        self.handler_id = handler_id
        self.cause = cause


def is_retryable(exc: BaseException) -> bool:
    """Return False for errors marked non-retryable, True otherwise.

    Examples:
        >>> is_retryable(TaskTypeParseError("bogus"))
        False
        >>> is_retryable(RuntimeError("smtp timeout"))
        True
    """
    return not isinstance(exc, SkipRetryError)
