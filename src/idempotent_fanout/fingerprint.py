"""Request hashing and idempotency key validation.

The guard identifies a logical request by the SHA-256 digest of its raw
body. Two requests carrying the same key are the same operation only if
their digests match.
"""

import hashlib
import re
from uuid import UUID

_HEX_UUID = r"[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}"

# Hyphenated, braced, urn:uuid: and bare 32-hex-digit forms
UUID_TEXT_FORMS = re.compile(
    rf"{_HEX_UUID}|\{{{_HEX_UUID}\}}|(?i:urn:uuid:){_HEX_UUID}|[0-9a-fA-F]{{32}}"
)


def compute_request_hash(body: bytes) -> str:
    """Compute a deterministic hash of a request body.

    Args:
        body: Raw request body bytes, exactly as received.

    Returns:
        Hexadecimal SHA-256 hash string (64 lowercase characters)

    Examples:
        >>> compute_request_hash(b"")
        'e3b0c44298fc1c149afbf4c8996fb92427ae41e4649b934ca495991b7852b855'
    """
    return hashlib.sha256(body).hexdigest()


def is_valid_idempotency_key(key: str) -> bool:
    """Check that a key is a syntactically valid, non-nil UUID.

    Any UUID version is accepted, in exactly one of the hyphenated, braced,
    ``urn:uuid:`` or bare 32-hex-digit forms. ``uuid.UUID`` alone is more
    lenient and strips stray braces, hyphens and prefixes anywhere.

    Examples:
        >>> is_valid_idempotency_key("7c9e6679-7425-40de-944b-e07fc1f90ae7")
        True
        >>> is_valid_idempotency_key("00000000-0000-0000-0000-000000000000")
        False
        >>> is_valid_idempotency_key("not-a-uuid")
        False
        >>> is_valid_idempotency_key("uuid:7c9e6679-7425-40de-944b-e07fc1f90ae7")
        False
    """
    if not isinstance(key, str) or UUID_TEXT_FORMS.fullmatch(key) is None:
        return False
    try:
        parsed = UUID(key)
    except ValueError:
        return False
    return parsed.int != 0
