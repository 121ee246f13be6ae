"""Storage protocol for idempotency records.

The guard depends on a store only through this narrow interface. The
persistence engine behind it (PostgreSQL, Redis, DynamoDB, memory) is the
implementer's choice.

Examples:
    Implementing a custom store::

        from idempotent_fanout.exceptions import KeyAlreadyExistsError, StorageError
        from idempotent_fanout.models import IdempotencyRecord

        class PostgresIdempotencyStore:
            async def get(self, key: str) -> IdempotencyRecord | None:
                row = await self.pool.fetchrow(
                    "SELECT * FROM idempotency_keys WHERE key = $1 AND expires_at > now()",
                    key,
                )
                return None if row is None else IdempotencyRecord(**row)

            async def store(self, record: IdempotencyRecord) -> None:
                try:
                    await self.pool.execute(INSERT_SQL, *record_values(record))
                except UniqueViolationError as e:
                    raise KeyAlreadyExistsError(record.key) from e

            async def delete_expired(self) -> int:
                ...

Atomicity Requirements:
    The guard performs no locking around its check-then-act sequence. Two
    concurrent first requests bearing the same brand-new key can both miss
    in ``get()`` and both execute the wrapped handler. Implementations MUST
    therefore:

    1. **Insert conditionally**: ``store()`` must atomically refuse a second
       live record for the same key and raise ``KeyAlreadyExistsError``. The
       guard swallows that error, so the first writer's snapshot wins.

    2. **Hide expired records**: ``get()`` must treat records whose
       ``expires_at`` has passed as non-existent.

    If the wrapped operation is not naturally safe to execute twice, the
    store must additionally reserve the key before execution; otherwise the
    guarantee degrades to at-least-once execution for the racing requests.
"""

from typing import Protocol, runtime_checkable

from idempotent_fanout.models import IdempotencyRecord


@runtime_checkable
class IdempotencyStore(Protocol):
    """Protocol defining the interface for idempotency storage backends.

    All methods are async and must be safe to call concurrently from
    multiple asyncio tasks. Backend failures should surface as
    ``StorageError`` rather than backend-specific exceptions.
    """

    async def get(self, key: str) -> IdempotencyRecord | None:
        """Retrieve a live record by key.

        Returns:
            The record if found and not expired, None otherwise.
        """
        ...

    async def store(self, record: IdempotencyRecord) -> None:
        """Insert a new record.

        Raises:
            KeyAlreadyExistsError: If a live record already exists for the key.
            StorageError: If the backend fails.
        """
        ...

    async def delete_expired(self) -> int:
        """Remove expired records.

        Returns:
            The number of records removed.
        """
        ...
