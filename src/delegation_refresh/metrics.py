"""
Prometheus metrics for delegation credential refresh.

Provides instrumentation for:
- Tick outcomes (local distribution, cluster broadcast, empty issuer, failure)
- Error tracking by category
- Per-node broadcast delivery results
- Tick duration histogram and last success timestamp
"""

from prometheus_client import Counter, Gauge, Histogram

# Tick metrics
refresh_ticks_total = Counter(
    "credential_refresh_ticks_total",
    "Total number of credential refresh ticks by outcome",
    ["outcome"],  # distributed_local, distributed_cluster, issuer_empty, failed, terminated
)

refresh_errors_total = Counter(
    "credential_refresh_errors_total",
    "Total number of failed refresh ticks by error category",
    ["error_category"],
)

refresh_tick_duration_seconds = Histogram(
    "credential_refresh_tick_duration_seconds",
    "Time spent in one refresh tick (login, issue, distribute)",
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0, 120.0),
)

last_success_timestamp_seconds = Gauge(
    "credential_refresh_last_success_timestamp_seconds",
    "Unix time of the last tick that distributed credentials",
)

# Distribution metrics
distributions_total = Counter(
    "credential_distributions_total",
    "Total number of credential distributions by mode",
    ["mode"],  # local, broadcast
)

broadcast_deliveries_total = Counter(
    "credential_broadcast_deliveries_total",
    "Total number of per-node broadcast deliveries",
    ["status"],  # success, failure
)


def record_tick(outcome: str, duration_seconds: float) -> None:
    """
    Record a completed tick.

    Args:
        outcome: Tick outcome label
        duration_seconds: Wall time spent in the tick
    """
    refresh_ticks_total.labels(outcome=outcome).inc()
    refresh_tick_duration_seconds.observe(duration_seconds)


def record_refresh_error(error_category: str) -> None:
    """
    Record a failed tick.

    Args:
        error_category: Error category (transient, auth, permanent, unknown)
    """
    refresh_errors_total.labels(error_category=error_category).inc()


def record_distribution(mode: str, succeeded: int = 0, failed: int = 0) -> None:
    """
    Record a credential distribution.

    Args:
        mode: Distribution mode (local, broadcast)
        succeeded: Nodes that applied the credentials (broadcast only)
        failed: Nodes that did not (broadcast only)
    """
    distributions_total.labels(mode=mode).inc()
    if succeeded:
        broadcast_deliveries_total.labels(status="success").inc(succeeded)
    if failed:
        broadcast_deliveries_total.labels(status="failure").inc(failed)


def mark_success(timestamp: float) -> None:
    last_success_timestamp_seconds.set(timestamp)


__all__ = [
    # Metrics
    "refresh_ticks_total",
    "refresh_errors_total",
    "refresh_tick_duration_seconds",
    "last_success_timestamp_seconds",
    "distributions_total",
    "broadcast_deliveries_total",
    # Helpers
    "record_tick",
    "record_refresh_error",
    "record_distribution",
    "mark_success",
]
