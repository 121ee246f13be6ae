"""Storage backends for idempotency records.

Available Stores:
    - MemoryIdempotencyStore: In-memory storage with asyncio concurrency
"""

from idempotent_fanout.storage.base import IdempotencyStore
from idempotent_fanout.storage.memory import MemoryIdempotencyStore

__all__ = [
    "IdempotencyStore",
    "MemoryIdempotencyStore",
]
