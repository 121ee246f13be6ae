"""Prometheus metrics for idempotency and fanout handling.

Metrics include:

- Guard outcomes (passthrough, replayed, conflict, rejected, executed, error)
- Cache writes (stored, skipped, failed)
- Fanout tasks enqueued and enqueue failures per event type
- Dispatch outcomes (processed, failed, rejected)
- Handler-level duplicate detection
- Expired-record cleanup runs

Examples:
    Recording a replayed request::

        from idempotent_fanout.observability.metrics import record_request

        record_request(result="replayed")

    Recording a dispatch outcome::

        from idempotent_fanout.observability.metrics import record_dispatch

        record_dispatch(result="rejected")
"""

from prometheus_client import Counter, Histogram

# Labels: result (passthrough, replayed, conflict, rejected, executed, error)
requests_total = Counter(
    "idempotency_requests_total",
    "Total number of requests processed by the idempotency guard",
    ["result"],
)

# Labels: result (stored, skipped, failed)
cache_writes_total = Counter(
    "idempotency_cache_writes_total",
    "Outcome of caching a freshly executed response",
    ["result"],
)

fanout_tasks_enqueued = Counter(
    "fanout_tasks_enqueued_total",
    "Total number of fanout tasks enqueued",
    ["event_type"],
)

fanout_enqueue_failures = Counter(
    "fanout_enqueue_failures_total",
    "Total number of fanout tasks that could not be enqueued",
    ["event_type"],
)

# Labels: result (processed, failed, rejected)
fanout_dispatch_total = Counter(
    "fanout_dispatch_total",
    "Total number of fanout tasks handled by the dispatcher",
    ["result"],
)

# Labels: result (processed, duplicate, failed, check_failed)
handler_idempotency_total = Counter(
    "fanout_handler_idempotency_total",
    "Outcome of handler-level idempotency checks on fanout tasks",
    ["result"],
)

cleanup_records_deleted = Counter(
    "idempotency_cleanup_records_deleted_total",
    "Total number of expired idempotency records deleted by the cleanup job",
)

cleanup_duration = Histogram(
    "idempotency_cleanup_duration_seconds",
    "Duration of idempotency cleanup job execution",
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)

cleanup_errors = Counter(
    "idempotency_cleanup_errors_total",
    "Total number of errors during idempotency cleanup job execution",
)


def record_request(result: str) -> None:
    """Record the guard outcome of one request.

    Examples:
        >>> record_request("replayed")
        >>> record_request("conflict")
    """
    requests_total.labels(result=result).inc()


def record_cache_write(result: str) -> None:
    """Record the outcome of caching an executed response."""
    cache_writes_total.labels(result=result).inc()


def record_enqueue(event_type: str, success: bool) -> None:
    """Record one per-handler enqueue attempt."""
    if success:
        fanout_tasks_enqueued.labels(event_type=event_type).inc()
    else:
        fanout_enqueue_failures.labels(event_type=event_type).inc()


def record_dispatch(result: str) -> None:
    """Record a dispatcher outcome (processed, failed, rejected)."""
    fanout_dispatch_total.labels(result=result).inc()


def record_handler_idempotency(result: str) -> None:
    """Record a handler-level idempotency outcome."""
    handler_idempotency_total.labels(result=result).inc()


def record_cleanup(records_removed: int, duration_seconds: float) -> None:
    """Record a successful cleanup run.

    Examples:
        >>> record_cleanup(42, 0.003)
    """
    cleanup_records_deleted.inc(records_removed)
    cleanup_duration.observe(duration_seconds)


def record_cleanup_error() -> None:
    """Record a failed cleanup run."""
    cleanup_errors.inc()
