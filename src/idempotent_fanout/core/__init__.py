"""Core idempotency guard logic.

This package contains:
- Capture: recording a response while it streams to the client
- Replay: writing a cached response back, and problem responses
- State machine: store lookups and cache writes
- Middleware: the ASGI guard tying them together
- Cleanup: periodic removal of expired records
"""

from idempotent_fanout.core.capture import CapturedResponse, ResponseCapture
from idempotent_fanout.core.middleware import IdempotencyGuard
from idempotent_fanout.core.replay import replay_response

__all__ = [
    "CapturedResponse",
    "IdempotencyGuard",
    "ResponseCapture",
    "replay_response",
]
