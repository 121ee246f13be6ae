"""Configuration for the idempotency guard and the fanout publisher.

Example:
    Basic usage with defaults:

        >>> config = IdempotencyConfig()
        >>> config.enabled_methods
        ['POST']
        >>> config.max_response_bytes
        1048576

    Custom configuration:

        >>> config = IdempotencyConfig(
        ...     enabled_methods=["POST", "PUT"],
        ...     default_ttl_seconds=3600,
        ... )

    Loading from environment:

        >>> import os
        >>> os.environ['IDEMPOTENCY_DEFAULT_TTL_SECONDS'] = '3600'
        >>> config = IdempotencyConfig.from_env()
        >>> config.default_ttl_seconds
        3600
"""

import os
from typing import Any

from pydantic import BaseModel, Field, field_validator

# Valid HTTP methods for idempotency
VALID_HTTP_METHODS = {
    "GET",
    "HEAD",
    "POST",
    "PUT",
    "DELETE",
    "CONNECT",
    "OPTIONS",
    "TRACE",
    "PATCH",
}

# Largest response body kept for replay (1 MiB)
DEFAULT_MAX_RESPONSE_BYTES = 1024 * 1024

DEFAULT_QUEUE = "default"


def _load_env(prefix: str, field_types: dict[str, type]) -> dict[str, Any]:
    config_dict: dict[str, Any] = {}
    for field_name, field_type in field_types.items():
        env_value = os.environ.get(f"{prefix}{field_name.upper()}")
        if env_value is None:
            continue
        if field_type is int:
            config_dict[field_name] = int(env_value)
        elif field_type is float:
            config_dict[field_name] = float(env_value)
        else:
            # Strings and comma-separated lists are handled by validators
            config_dict[field_name] = env_value
    return config_dict


class IdempotencyConfig(BaseModel):
    """Configuration for the idempotency guard.

    Attributes:
        enabled_methods: HTTP methods the guard applies to. Every other
            method passes through untouched. Default is ["POST"].
        default_ttl_seconds: Lifetime of a cached record, between 1 and
            604800 (7 days). Default is 86400 (24 hours).
        max_response_bytes: Capture bound for response bodies. A response
            whose body reaches this size is delivered but not cached.
            Default is 1048576 (1 MiB).
        store_timeout_seconds: Deadline for each store lookup or write.
            Default is 5 seconds.
        cleanup_interval_seconds: Interval of the expired-record cleaner.
            Default is 3600 (1 hour).

    Note:
        This class is immutable (frozen=True). Create a new instance if you
        need different settings.
    """

    enabled_methods: list[str] | str = Field(
        default=["POST"],
        description="HTTP methods that require idempotency checks",
    )
    default_ttl_seconds: int = Field(
        default=86400,
        description="Time-to-live in seconds for idempotency records (1-604800)",
    )
    max_response_bytes: int = Field(
        default=DEFAULT_MAX_RESPONSE_BYTES,
        description="Maximum response body size in bytes that is cached for replay",
    )
    store_timeout_seconds: float = Field(
        default=5.0,
        description="Deadline in seconds for idempotency store calls",
    )
    cleanup_interval_seconds: int = Field(
        default=3600,
        description="Interval in seconds between expired-record cleanups",
    )

    model_config = {"frozen": True}

    @field_validator("enabled_methods", mode="before")
    @classmethod
    def validate_enabled_methods(cls, v: Any) -> list[str]:
        """Validate and normalize enabled HTTP methods.

        Converts methods to uppercase and validates against known HTTP methods.

        Raises:
            ValueError: If any method is not a valid HTTP method.

        Example:
            >>> config = IdempotencyConfig(enabled_methods="post, put")
            >>> config.enabled_methods
            ['POST', 'PUT']
        """
        if isinstance(v, str):
            # Handle comma-separated string (from environment variables)
            v = [method.strip() for method in v.split(",")]

        if not isinstance(v, list):
            raise ValueError("enabled_methods must be a list or comma-separated string")

        methods = [method.upper() for method in v]

        invalid_methods = set(methods) - VALID_HTTP_METHODS
        if invalid_methods:
            raise ValueError(
                f"Invalid HTTP methods: {', '.join(sorted(invalid_methods))}. "
                f"Valid methods are: {', '.join(sorted(VALID_HTTP_METHODS))}"
            )

        return methods

    @field_validator("default_ttl_seconds")
    @classmethod
    def validate_default_ttl_seconds(cls, v: int) -> int:
        if not (1 <= v <= 604800):
            raise ValueError(f"default_ttl_seconds must be between 1 and 604800 (7 days), got {v}")
        return v

    @field_validator("max_response_bytes")
    @classmethod
    def validate_max_response_bytes(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"max_response_bytes must be >= 1, got {v}")
        return v

    @field_validator("store_timeout_seconds")
    @classmethod
    def validate_store_timeout_seconds(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"store_timeout_seconds must be > 0, got {v}")
        return v

    @field_validator("cleanup_interval_seconds")
    @classmethod
    def validate_cleanup_interval_seconds(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"cleanup_interval_seconds must be >= 1, got {v}")
        return v

    @classmethod
    def from_env(cls, prefix: str = "IDEMPOTENCY_") -> "IdempotencyConfig":
        """Create configuration from environment variables.

        Variable names are the uppercase field names with the prefix, e.g.
        ``IDEMPOTENCY_DEFAULT_TTL_SECONDS``. Missing variables keep their
        defaults.

        Example:
            >>> import os
            >>> os.environ['IDEMPOTENCY_ENABLED_METHODS'] = 'POST,PUT'
            >>> IdempotencyConfig.from_env().enabled_methods
            ['POST', 'PUT']
        """
        field_types = {
            "enabled_methods": list,
            "default_ttl_seconds": int,
            "max_response_bytes": int,
            "store_timeout_seconds": float,
            "cleanup_interval_seconds": int,
        }
        return cls(**_load_env(prefix, field_types))

    @classmethod
    def from_dict(cls, config_dict: dict[str, Any]) -> "IdempotencyConfig":
        """Create configuration from a dictionary.

        Raises:
            pydantic.ValidationError: If the dictionary contains invalid values.
        """
        return cls(**config_dict)


class FanoutConfig(BaseModel):
    """Configuration for fanout publishing.

    Attributes:
        default_queue: Queue used for handlers registered without one.
        enqueue_timeout_seconds: Deadline for each enqueue call. A timeout
            counts as a failure for that handler only.
    """

    default_queue: str = Field(
        default=DEFAULT_QUEUE,
        description="Queue for handlers registered without an explicit queue",
        min_length=1,
    )
    enqueue_timeout_seconds: float = Field(
        default=5.0,
        description="Deadline in seconds for each enqueue call",
    )

    model_config = {"frozen": True}

    @field_validator("enqueue_timeout_seconds")
    @classmethod
    def validate_enqueue_timeout_seconds(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"enqueue_timeout_seconds must be > 0, got {v}")
        return v

    @classmethod
    def from_env(cls, prefix: str = "FANOUT_") -> "FanoutConfig":
        """Create configuration from ``FANOUT_*`` environment variables."""
        field_types = {
            "default_queue": str,
            "enqueue_timeout_seconds": float,
        }
        return cls(**_load_env(prefix, field_types))
