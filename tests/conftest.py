"""
Pytest configuration and shared fixtures for idempotent_fanout tests.
"""

import uuid
from datetime import UTC, datetime, timedelta

import pytest

from idempotent_fanout.fanout.queue import MemoryTaskQueue
from idempotent_fanout.fanout.registry import FanoutRegistry
from idempotent_fanout.fingerprint import compute_request_hash
from idempotent_fanout.models import IdempotencyRecord
from idempotent_fanout.storage.memory import MemoryIdempotencyStore


@pytest.fixture
def idempotency_key() -> str:
    """Provide a fresh, valid idempotency key."""
    return str(uuid.uuid4())


@pytest.fixture
def sample_request_body() -> bytes:
    """Provide a sample request body for tests."""
    return b'{"email": "ada@example.com", "name": "Ada"}'


@pytest.fixture
def store() -> MemoryIdempotencyStore:
    """Create a fresh memory store for each test."""
    return MemoryIdempotencyStore()


@pytest.fixture
def registry() -> FanoutRegistry:
    """Create an independent handler registry for each test."""
    return FanoutRegistry()


@pytest.fixture
def task_queue() -> MemoryTaskQueue:
    """Create an empty in-process task queue."""
    return MemoryTaskQueue()


@pytest.fixture
def make_record(idempotency_key: str, sample_request_body: bytes):
    """Factory for records; defaults describe a cached 201 response."""

    def _make(
        key: str | None = None,
        body: bytes | None = None,
        status_code: int = 201,
        response_body: bytes = b'{"id": "usr_1"}',
        ttl: timedelta = timedelta(hours=24),
        created_at: datetime | None = None,
    ) -> IdempotencyRecord:
        created = created_at or datetime.now(UTC)
        return IdempotencyRecord(
            key=key or idempotency_key,
            request_hash=compute_request_hash(
                sample_request_body if body is None else body
            ),
            status_code=status_code,
            response_headers={"content-type": ["application/json"]},
            response_body=response_body,
            created_at=created,
            expires_at=created + ttl,
        )

    return _make
