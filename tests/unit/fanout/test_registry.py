"""Unit tests for FanoutRegistry."""

import threading

import pytest

from idempotent_fanout.config import FanoutConfig
from idempotent_fanout.exceptions import (
    DuplicateHandlerError,
    EmptyEventTypeError,
    EmptyHandlerIDError,
    InvalidHandlerError,
    InvalidHandlerIDError,
    NilHandlerError,
    RegistrationError,
)
from idempotent_fanout.fanout.dispatcher import FanoutDispatcher
from idempotent_fanout.fanout.publisher import FanoutPublisher
from idempotent_fanout.fanout.registry import FanoutRegistry
from idempotent_fanout.models import FanoutEvent


async def noop(event) -> None:
    return None


def sync_handler(event) -> None:
    return None


class AsyncCallable:
    async def __call__(self, event) -> None:
        return None


class Mailer:
    async def send_welcome(self, event) -> None:
        return None


class TestRegister:
    def test_register_keeps_order(self, registry):
        registry.register("user:created", "welcome-email", noop)
        registry.register("user:created", "default-settings", noop)

        handlers = registry.handlers("user:created")

        assert [h.id for h in handlers] == ["welcome-email", "default-settings"]
        assert all(h.queue == "default" for h in handlers)

    def test_register_with_queue_and_options(self, registry):
        registry.register_with_queue("user:created", "audit", noop, "low", max_retry=3)

        handler = registry.get("user:created", "audit")

        assert handler is not None
        assert handler.queue == "low"
        assert handler.options == {"max_retry": 3}
        assert handler.handler is noop

    def test_empty_queue_falls_back_to_default(self):
        registry = FanoutRegistry(FanoutConfig(default_queue="events"))
        registry.register_with_queue("user:created", "audit", noop, "")
        assert registry.get("user:created", "audit").queue == "events"

    @pytest.mark.parametrize(
        "event_type,handler_id,fn,error",
        [
            ("", "h", noop, EmptyEventTypeError),
            ("user:created", "", noop, EmptyHandlerIDError),
            ("user:created", "h", None, NilHandlerError),
            ("user:created", "bad:id", noop, InvalidHandlerIDError),
            ("user:created", "h", "not-callable", InvalidHandlerError),
            ("user:created", "h", sync_handler, InvalidHandlerError),
            ("user:created", "h", lambda event: None, InvalidHandlerError),
        ],
    )
    def test_invalid_registration(self, registry, event_type, handler_id, fn, error):
        with pytest.raises(error) as exc_info:
            registry.register(event_type, handler_id, fn)
        assert isinstance(exc_info.value, RegistrationError)
        assert registry.event_types() == []

    def test_async_callables_are_accepted(self, registry):
        mailer = Mailer()
        registry.register("user:created", "object", AsyncCallable())
        registry.register("user:created", "method", mailer.send_welcome)
        assert [h.id for h in registry.handlers("user:created")] == ["object", "method"]

    def test_config_default_queue_is_used(self):
        registry = FanoutRegistry(FanoutConfig(default_queue="events"))
        registry.register("user:created", "audit", noop)
        assert registry.default_queue == "events"
        assert registry.get("user:created", "audit").queue == "events"

    @pytest.mark.asyncio
    async def test_sync_handler_side_effect_never_runs(self, registry, task_queue):
        calls: list[FanoutEvent] = []

        def record(event: FanoutEvent) -> None:
            calls.append(event)

        with pytest.raises(InvalidHandlerError):
            registry.register("user:created", "welcome-email", record)

        await FanoutPublisher(task_queue, registry).publish(FanoutEvent(type="user:created"))
        attempts = await task_queue.process(FanoutDispatcher(registry).handle)

        assert attempts == 0
        assert calls == []

    def test_validation_order(self, registry):
        # Empty event type is reported before everything else
        with pytest.raises(EmptyEventTypeError):
            registry.register("", "", None)
        with pytest.raises(EmptyHandlerIDError):
            registry.register("user:created", "", None)

    def test_duplicate_is_rejected_and_registry_unchanged(self, registry):
        registry.register("user:created", "welcome-email", noop)

        async def other(event) -> None:
            return None

        with pytest.raises(DuplicateHandlerError) as exc_info:
            registry.register("user:created", "welcome-email", other)

        assert exc_info.value.event_type == "user:created"
        handlers = registry.handlers("user:created")
        assert len(handlers) == 1
        assert handlers[0].handler is noop

    def test_same_id_under_different_event_types(self, registry):
        registry.register("user:created", "audit", noop)
        registry.register("user:deleted", "audit", noop)
        assert sorted(registry.event_types()) == ["user:created", "user:deleted"]


class TestLookup:
    def test_handlers_for_unknown_type(self, registry):
        assert registry.handlers("order:completed") == []

    def test_handlers_returns_copy(self, registry):
        registry.register("user:created", "welcome-email", noop)

        registry.handlers("user:created").clear()

        assert len(registry.handlers("user:created")) == 1

    def test_get_unknown_handler(self, registry):
        registry.register("user:created", "welcome-email", noop)
        assert registry.get("user:created", "missing") is None
        assert registry.get("user:deleted", "welcome-email") is None

    def test_unregister(self, registry):
        registry.register("user:created", "welcome-email", noop)
        registry.register("user:created", "default-settings", noop)

        registry.unregister("user:created", "welcome-email")
        assert [h.id for h in registry.handlers("user:created")] == ["default-settings"]

        registry.unregister("user:created", "default-settings")
        assert registry.event_types() == []

        # Unknown handlers are ignored
        registry.unregister("user:created", "default-settings")


class TestConcurrency:
    def test_concurrent_registration(self, registry):
        errors: list[Exception] = []

        def register_many(worker: int) -> None:
            for i in range(50):
                try:
                    registry.register("user:created", f"h-{worker}-{i}", noop)
                    registry.handlers("user:created")
                except Exception as e:
                    errors.append(e)

        threads = [threading.Thread(target=register_many, args=(w,)) for w in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        assert len(registry.handlers("user:created")) == 400

    def test_concurrent_duplicates_have_one_winner(self, registry):
        successes: list[int] = []
        barrier = threading.Barrier(8)

        def register(worker: int) -> None:
            barrier.wait()
            try:
                registry.register("user:created", "welcome-email", noop)
            except DuplicateHandlerError:
                return
            successes.append(worker)

        threads = [threading.Thread(target=register, args=(w,)) for w in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(successes) == 1
        assert len(registry.handlers("user:created")) == 1
