"""Unit tests for MemoryIdempotencyStore."""

import asyncio
from datetime import UTC, datetime, timedelta

import pytest

from idempotent_fanout.exceptions import KeyAlreadyExistsError, StorageError
from idempotent_fanout.storage.base import IdempotencyStore
from idempotent_fanout.storage.memory import MemoryIdempotencyStore


def expired_kwargs() -> dict:
    return {
        "created_at": datetime.now(UTC) - timedelta(hours=2),
        "ttl": timedelta(hours=1),
    }


class TestMemoryIdempotencyStore:
    def test_implements_protocol(self, store):
        assert isinstance(store, IdempotencyStore)

    @pytest.mark.asyncio
    async def test_get_missing_key(self, store):
        assert await store.get("missing") is None

    @pytest.mark.asyncio
    async def test_store_and_get(self, store, make_record):
        record = make_record()
        await store.store(record)
        assert await store.get(record.key) == record

    @pytest.mark.asyncio
    async def test_get_ignores_expired_record(self, store, make_record):
        record = make_record(**expired_kwargs())
        await store.store(record)

        assert await store.get(record.key) is None

    @pytest.mark.asyncio
    async def test_second_insert_raises(self, store, make_record):
        first = make_record(response_body=b"first")
        await store.store(first)

        with pytest.raises(KeyAlreadyExistsError) as exc_info:
            await store.store(make_record(response_body=b"second"))

        assert isinstance(exc_info.value, StorageError)
        assert (await store.get(first.key)).response_body == b"first"

    @pytest.mark.asyncio
    async def test_expired_record_can_be_replaced(self, store, make_record):
        await store.store(make_record(**expired_kwargs()))
        fresh = make_record(response_body=b"fresh")

        await store.store(fresh)

        assert await store.get(fresh.key) == fresh

    @pytest.mark.asyncio
    async def test_concurrent_inserts_have_one_winner(self, store, make_record):
        records = [make_record(response_body=f"r{i}".encode()) for i in range(10)]

        results = await asyncio.gather(
            *(store.store(r) for r in records), return_exceptions=True
        )

        assert sum(1 for r in results if r is None) == 1
        assert all(isinstance(r, KeyAlreadyExistsError) for r in results if r is not None)
        assert len(store) == 1

    @pytest.mark.asyncio
    async def test_delete_expired(self, store, make_record):
        await store.store(make_record(key="old", **expired_kwargs()))
        await store.store(make_record(key="new"))

        assert await store.delete_expired() == 1
        assert await store.delete_expired() == 0
        assert len(store) == 1
