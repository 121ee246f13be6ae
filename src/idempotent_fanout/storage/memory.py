"""In-memory idempotency store with asyncio concurrency control.

The MemoryIdempotencyStore is suitable for:
    - Single-process applications
    - Development and testing

Replay correctness across several instances depends on a store that all
instances share; this one is local to the process.

Examples:
    Basic usage::

        from idempotent_fanout.storage.memory import MemoryIdempotencyStore

        store = MemoryIdempotencyStore()
        await store.store(record)
        cached = await store.get(record.key)
"""

import asyncio
from datetime import UTC, datetime

from idempotent_fanout.exceptions import KeyAlreadyExistsError
from idempotent_fanout.models import IdempotencyRecord
from idempotent_fanout.storage.base import IdempotencyStore


class MemoryIdempotencyStore(IdempotencyStore):
    """In-memory store keyed by idempotency key.

    Attributes:
        _records: Dictionary mapping keys to records.
        _lock: Lock making the conditional insert and cleanup atomic.
    """

    def __init__(self) -> None:
        self._records: dict[str, IdempotencyRecord] = {}
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> IdempotencyRecord | None:
        """Retrieve a live record by key; expired records are ignored."""
        record = self._records.get(key)
        if record is None or record.is_expired():
            return None
        return record

    async def store(self, record: IdempotencyRecord) -> None:
        """Insert a record unless a live one already exists for its key.

        An expired record for the same key is replaced.

        Raises:
            KeyAlreadyExistsError: If a live record already exists for the key.
        """
        async with self._lock:
            existing = self._records.get(record.key)
            if existing is not None and not existing.is_expired():
                raise KeyAlreadyExistsError(record.key)
            self._records[record.key] = record

    async def delete_expired(self) -> int:
        """Remove all records whose expires_at has passed."""
        now = datetime.now(UTC)
        async with self._lock:
            expired_keys = [
                key for key, record in self._records.items() if record.is_expired(now)
            ]
            for key in expired_keys:
                del self._records[key]
        return len(expired_keys)

    def __len__(self) -> int:
        return len(self._records)
