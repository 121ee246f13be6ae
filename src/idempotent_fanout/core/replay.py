"""Response replay and problem responses for the idempotency guard.

Replay writes a cached record back to the client verbatim: the stored
status, every stored header value and the stored body, plus
``Idempotency-Status: replayed``.

Examples:
    Replaying a record::

        from idempotent_fanout.core.replay import replay_response

        record = await store.get(key)
        if record is not None:
            await replay_response(record, send)
"""

from typing import Any

from starlette.responses import JSONResponse
from starlette.types import Scope, Send

from idempotent_fanout.exceptions import IdempotencyError, InternalError
from idempotent_fanout.models import IdempotencyRecord
from idempotent_fanout.utils.headers import (
    IDEMPOTENCY_STATUS_HEADER,
    IDEMPOTENCY_STATUS_REPLAYED,
    multidict_to_raw,
    set_header,
)

PROBLEM_CONTENT_TYPE = "application/problem+json"
PROBLEM_TYPE_BASE_URL = "/problems/"

# Clients never see the cause of a 5xx
INTERNAL_DETAIL = "An internal error occurred. Please try again later."


async def replay_response(record: IdempotencyRecord, send: Send) -> None:
    """Write a cached response to an ASGI ``send`` callable.

    Args:
        record: The record holding the cached response
        send: ASGI send callable of the current request
    """
    headers = set_header(
        multidict_to_raw(record.response_headers),
        IDEMPOTENCY_STATUS_HEADER,
        IDEMPOTENCY_STATUS_REPLAYED,
    )
    await send(
        {
            "type": "http.response.start",
            "status": record.status_code,
            "headers": headers,
        }
    )
    await send({"type": "http.response.body", "body": record.response_body})


def problem_response(error: IdempotencyError, scope: Scope) -> JSONResponse:
    """Build an RFC 7807 problem response for a guard error.

    Example:
        >>> problem_response(ConflictError("...", key, a, b), scope).status_code
        409
    """
    detail = INTERNAL_DETAIL if isinstance(error, InternalError) else error.message
    content: dict[str, Any] = {
        "type": f"{PROBLEM_TYPE_BASE_URL}{error.problem_type}",
        "title": error.title,
        "status": error.status_code,
        "detail": detail,
        "code": error.code,
    }
    path = scope.get("path")
    if path:
        content["instance"] = path
    return JSONResponse(
        content,
        status_code=error.status_code,
        media_type=PROBLEM_CONTENT_TYPE,
    )
