"""Unit tests for handler-level idempotency of fanout tasks."""

import asyncio

import pytest

from idempotent_fanout.exceptions import InvalidHandlerError, StorageError, is_retryable
from idempotent_fanout.fanout.dispatcher import FanoutDispatcher
from idempotent_fanout.fanout.idempotency import (
    FailMode,
    MemoryTaskIdempotencyStore,
    TaskIdempotencyStore,
    idempotent_handler,
)
from idempotent_fanout.fanout.publisher import FanoutPublisher
from idempotent_fanout.models import FanoutEvent


def by_user_id(event: FanoutEvent) -> str:
    return f"welcome-email:{event.payload['id']}"


def user_created(user_id: str = "usr_1") -> FanoutEvent:
    return FanoutEvent(type="user:created", payload={"id": user_id})


class BrokenStore(MemoryTaskIdempotencyStore):
    async def check(self, key, ttl_seconds):
        raise StorageError("redis: connection refused")


class Recorder:
    def __init__(self, failures: int = 0) -> None:
        self.events: list[FanoutEvent] = []
        self.failures = failures

    async def __call__(self, event: FanoutEvent) -> None:
        self.events.append(event)
        if self.failures > 0:
            self.failures -= 1
            raise ConnectionError("smtp timeout")


@pytest.fixture
def dedup_store() -> MemoryTaskIdempotencyStore:
    return MemoryTaskIdempotencyStore()


class TestMemoryTaskIdempotencyStore:
    def test_implements_protocol(self, dedup_store):
        assert isinstance(dedup_store, TaskIdempotencyStore)

    @pytest.mark.asyncio
    async def test_check_marks_key(self, dedup_store):
        assert await dedup_store.check("k", 60) is True
        assert await dedup_store.check("k", 60) is False
        assert await dedup_store.check("other", 60) is True

    @pytest.mark.asyncio
    async def test_key_is_new_again_after_ttl(self, dedup_store):
        assert await dedup_store.check("k", 0.01) is True
        await asyncio.sleep(0.05)
        assert await dedup_store.check("k", 60) is True

    @pytest.mark.asyncio
    async def test_release(self, dedup_store):
        await dedup_store.check("k", 60)
        await dedup_store.release("k")
        await dedup_store.release("missing")
        assert await dedup_store.check("k", 60) is True

    @pytest.mark.asyncio
    async def test_concurrent_checks_have_one_winner(self, dedup_store):
        results = await asyncio.gather(*(dedup_store.check("k", 60) for _ in range(10)))
        assert results.count(True) == 1

    @pytest.mark.asyncio
    async def test_results(self, dedup_store):
        assert await dedup_store.get_result("k") is None
        await dedup_store.store_result("k", b'{"sent": true}', 60)
        assert await dedup_store.get_result("k") == b'{"sent": true}'

        await dedup_store.store_result("short", b"x", 0.01)
        await asyncio.sleep(0.05)
        assert await dedup_store.get_result("short") is None


class TestIdempotentHandler:
    @pytest.mark.asyncio
    async def test_duplicate_event_is_skipped(self, dedup_store):
        recorder = Recorder()
        handler = idempotent_handler(dedup_store, by_user_id, recorder)

        await handler(user_created())
        await handler(user_created())
        await handler(user_created("usr_2"))

        assert [e.payload["id"] for e in recorder.events] == ["usr_1", "usr_2"]

    @pytest.mark.asyncio
    async def test_empty_key_skips_the_check(self, dedup_store):
        recorder = Recorder()
        handler = idempotent_handler(dedup_store, lambda event: "", recorder)

        await handler(user_created())
        await handler(user_created())

        assert len(recorder.events) == 2
        assert len(dedup_store) == 0

    @pytest.mark.asyncio
    async def test_failure_releases_key_for_retry(self, dedup_store):
        recorder = Recorder(failures=1)
        handler = idempotent_handler(dedup_store, by_user_id, recorder)

        with pytest.raises(ConnectionError):
            await handler(user_created())
        await handler(user_created())
        await handler(user_created())

        assert len(recorder.events) == 2

    @pytest.mark.asyncio
    async def test_fail_open_processes_anyway(self):
        recorder = Recorder()
        handler = idempotent_handler(BrokenStore(), by_user_id, recorder, fail_mode=FailMode.OPEN)

        await handler(user_created())

        assert len(recorder.events) == 1

    @pytest.mark.asyncio
    async def test_fail_closed_raises_retryable_error(self):
        recorder = Recorder()
        handler = idempotent_handler(
            BrokenStore(), by_user_id, recorder, fail_mode=FailMode.CLOSED
        )

        with pytest.raises(StorageError) as exc_info:
            await handler(user_created())

        assert is_retryable(exc_info.value)
        assert recorder.events == []

    def test_rejects_invalid_arguments(self, dedup_store):
        def sync_handler(event) -> None:
            return None

        with pytest.raises(InvalidHandlerError):
            idempotent_handler(dedup_store, by_user_id, sync_handler)
        with pytest.raises(ValueError):
            idempotent_handler(None, by_user_id, Recorder())
        with pytest.raises(ValueError):
            idempotent_handler(dedup_store, None, Recorder())
        with pytest.raises(ValueError):
            idempotent_handler(dedup_store, by_user_id, Recorder(), ttl_seconds=0)


class TestWithTaskQueue:
    @pytest.mark.asyncio
    async def test_redelivered_task_runs_handler_once(self, registry, task_queue, dedup_store):
        recorder = Recorder()
        registry.register(
            "user:created", "welcome-email", idempotent_handler(dedup_store, by_user_id, recorder)
        )
        publisher = FanoutPublisher(task_queue, registry)

        # The same event published twice, e.g. by an upstream retry
        await publisher.publish(user_created())
        await publisher.publish(user_created())
        await task_queue.process(FanoutDispatcher(registry).handle)

        assert len(recorder.events) == 1
        assert len(task_queue.completed) == 2

    @pytest.mark.asyncio
    async def test_failed_handler_is_retried(self, registry, task_queue, dedup_store):
        recorder = Recorder(failures=2)
        registry.register(
            "user:created", "welcome-email", idempotent_handler(dedup_store, by_user_id, recorder)
        )

        await FanoutPublisher(task_queue, registry).publish(user_created())
        attempts = await task_queue.process(FanoutDispatcher(registry).handle)

        assert attempts == 3
        assert len(recorder.events) == 3
        assert task_queue.completed[0].retried == 2
