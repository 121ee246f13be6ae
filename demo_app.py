"""Demo FastAPI application with the idempotency guard and fanout dispatch.

Creating a user is idempotent per Idempotency-Key and broadcasts a
``user:created`` event to two handlers through an in-process task queue.
Run with: python demo_app.py
"""

import uuid
from contextlib import asynccontextmanager
from datetime import UTC, datetime

import uvicorn
from fastapi import FastAPI
from pydantic import BaseModel

from idempotent_fanout.config import FanoutConfig, IdempotencyConfig
from idempotent_fanout.core.cleanup import start_cleanup_task, stop_cleanup_task
from idempotent_fanout.core.middleware import IdempotencyGuard
from idempotent_fanout.fanout import (
    FanoutDispatcher,
    FanoutPublisher,
    FanoutRegistry,
    MemoryTaskIdempotencyStore,
    idempotent_handler,
)
from idempotent_fanout.fanout.queue import QUEUE_LOW, MemoryTaskQueue
from idempotent_fanout.models import FanoutEvent
from idempotent_fanout.observability.logging import configure_logging, get_logger
from idempotent_fanout.storage.memory import MemoryIdempotencyStore

configure_logging(level="INFO", json_output=False)
logger = get_logger("demo_app")

store = MemoryIdempotencyStore()
config = IdempotencyConfig.from_env()

fanout_config = FanoutConfig.from_env()
registry = FanoutRegistry(fanout_config)
task_queue = MemoryTaskQueue()
publisher = FanoutPublisher(task_queue, registry, fanout_config)
dispatcher = FanoutDispatcher(registry)
email_dedup = MemoryTaskIdempotencyStore()

welcome_emails: list[str] = []
settings_created: list[str] = []


async def send_welcome_email(event: FanoutEvent) -> None:
    welcome_emails.append(event.payload["email"])
    logger.info("demo.welcome_email_sent", email=event.payload["email"])


async def create_default_settings(event: FanoutEvent) -> None:
    settings_created.append(event.payload["id"])
    logger.info("demo.default_settings_created", user_id=event.payload["id"])


# One welcome email per user, even if the event is published twice
registry.register(
    "user:created",
    "welcome-email",
    idempotent_handler(
        email_dedup, lambda event: f"welcome-email:{event.payload['id']}", send_welcome_email
    ),
)
registry.register_with_queue(
    "user:created", "default-settings", create_default_settings, QUEUE_LOW, max_retry=3
)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    task = await start_cleanup_task(store, interval_seconds=config.cleanup_interval_seconds)
    yield
    await stop_cleanup_task(task)


app = FastAPI(
    title="Idempotency and Fanout Demo",
    description="Demo API showing idempotent request handling and fanout events",
    version="0.1.0",
    lifespan=lifespan,
)
app.add_middleware(IdempotencyGuard, store=store, config=config)


class UserRequest(BaseModel):
    email: str
    name: str


class UserResponse(BaseModel):
    id: str
    email: str
    name: str
    created_at: str


@app.get("/")
async def root():
    """Root endpoint - returns API info."""
    return {
        "name": "Idempotency and Fanout Demo",
        "endpoints": {
            "POST /api/users": "Create a user (idempotent, publishes user:created)",
            "POST /api/worker/drain": "Process queued fanout tasks",
            "GET /api/stats": "Side effects observed so far",
        },
        "usage": "Send a UUID in the 'Idempotency-Key' header of POST requests",
    }


@app.post("/api/users", response_model=UserResponse, status_code=201)
async def create_user(user: UserRequest):
    """Create a user and broadcast user:created."""
    created = UserResponse(
        id=f"usr_{uuid.uuid4().hex[:12]}",
        email=user.email,
        name=user.name,
        created_at=datetime.now(UTC).isoformat(),
    )
    errors = await publisher.publish(
        FanoutEvent(
            type="user:created",
            payload=created.model_dump(),
            metadata={"source": "demo_app"},
        )
    )
    for error in errors:
        logger.warning("demo.fanout_partial_failure", handler_id=error.handler_id)
    return created


@app.post("/api/worker/drain")
async def drain_worker():
    """Run the in-process worker until the queue is empty."""
    attempts = await task_queue.process(dispatcher.handle)
    return {
        "attempts": attempts,
        "completed": len(task_queue.completed),
        "archived": len(task_queue.archived),
    }


@app.get("/api/stats")
async def stats():
    return {
        "cached_records": len(store),
        "welcome_emails": welcome_emails,
        "settings_created": settings_created,
        "pending_tasks": [task.type for task in task_queue.pending()],
    }


if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000, log_level="info")
