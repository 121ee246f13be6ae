"""Header conversion utilities for the idempotency guard.

ASGI carries headers as a list of ``(name, value)`` byte pairs, where a
name may repeat (``set-cookie``). Records keep them as a mapping from name
to all of its values so they can be serialized by any store and replayed
verbatim.
"""

from collections.abc import Iterable

RawHeaders = list[tuple[bytes, bytes]]

IDEMPOTENCY_KEY_HEADER = "Idempotency-Key"
IDEMPOTENCY_STATUS_HEADER = "Idempotency-Status"

IDEMPOTENCY_STATUS_STORED = "stored"
IDEMPOTENCY_STATUS_REPLAYED = "replayed"


def raw_to_multidict(raw: Iterable[tuple[bytes, bytes]]) -> dict[str, list[str]]:
    """Convert ASGI raw headers into a name -> values mapping.

    Header names are decoded as sent; values keep their order.

    Example:
        >>> raw_to_multidict([(b"set-cookie", b"a=1"), (b"set-cookie", b"b=2")])
        {'set-cookie': ['a=1', 'b=2']}
    """
    headers: dict[str, list[str]] = {}
    for name, value in raw:
        headers.setdefault(name.decode("latin-1"), []).append(value.decode("latin-1"))
    return headers


def multidict_to_raw(headers: dict[str, list[str]]) -> RawHeaders:
    """Convert a name -> values mapping back into ASGI raw headers.

    Example:
        >>> multidict_to_raw({"content-type": ["application/json"]})
        [(b'content-type', b'application/json')]
    """
    return [
        (name.encode("latin-1"), value.encode("latin-1"))
        for name, values in headers.items()
        for value in values
    ]


def set_header(raw: RawHeaders, name: str, value: str) -> RawHeaders:
    """Return a copy of raw headers with every ``name`` entry replaced by one value.

    Header names are compared case-insensitively.

    Example:
        >>> set_header([(b"Idempotency-Status", b"stored")], "idempotency-status", "replayed")
        [(b'idempotency-status', b'replayed')]
    """
    name_lower = name.lower().encode("latin-1")
    result = [(k, v) for k, v in raw if k.lower() != name_lower]
    result.append((name_lower, value.encode("latin-1")))
    return result


def get_header_value(
    raw: Iterable[tuple[bytes, bytes]],
    header_name: str,
    default: str | None = None,
) -> str | None:
    """Get the first header value with case-insensitive lookup.

    Example:
        >>> get_header_value([(b"idempotency-key", b"abc")], "Idempotency-Key")
        'abc'
        >>> get_header_value([], "missing", "default")
        'default'
    """
    name_lower = header_name.lower().encode("latin-1")
    for key, value in raw:
        if key.lower() == name_lower:
            return value.decode("latin-1")
    return default
