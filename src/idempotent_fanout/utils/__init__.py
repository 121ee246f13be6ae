"""Utility modules for the idempotency guard."""

from .headers import (
    IDEMPOTENCY_KEY_HEADER,
    IDEMPOTENCY_STATUS_HEADER,
    IDEMPOTENCY_STATUS_REPLAYED,
    IDEMPOTENCY_STATUS_STORED,
    get_header_value,
    multidict_to_raw,
    raw_to_multidict,
    set_header,
)

__all__ = [
    "IDEMPOTENCY_KEY_HEADER",
    "IDEMPOTENCY_STATUS_HEADER",
    "IDEMPOTENCY_STATUS_STORED",
    "IDEMPOTENCY_STATUS_REPLAYED",
    "get_header_value",
    "multidict_to_raw",
    "raw_to_multidict",
    "set_header",
]
