"""
Prometheus metrics collection for the order lifecycle engine.

Provides observability into cancellations, suspensions, advancements,
closure rounds and failovers, plus event store health.
"""

import time
from collections.abc import Callable
from functools import wraps
from typing import ParamSpec, TypeVar

from prometheus_client import Counter, Histogram, start_http_server

# ============================================================================
# Event log
# ============================================================================

events_appended_total = Counter(
    "order_lifecycle_events_appended_total",
    "Lifecycle events written to the log",
    ["stream_type", "event_type"],
)

stream_version_conflicts_total = Counter(
    "order_lifecycle_stream_version_conflicts_total",
    "Appends refused because a stream had moved past the expected version",
    ["stream_type"],
)

# ============================================================================
# Engine operations
# ============================================================================

operation_duration_seconds = Histogram(
    "order_lifecycle_operation_duration_seconds",
    "Duration of façade operations in seconds",
    ["operation"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)

operations_total = Counter(
    "order_lifecycle_operations_total",
    "Total number of façade operations",
    ["operation", "status"],  # status: success, failure
)

# ============================================================================
# Cancellation and advancement policy
# ============================================================================

cancellations_total = Counter(
    "order_lifecycle_cancellations_total",
    "Cancellation attempts by actor class and outcome",
    ["actor_class", "outcome"],  # outcome: cancelled, declined
)

suspensions_total = Counter(
    "order_lifecycle_suspensions_total",
    "Account suspensions applied for exceeding the monthly cancellation limit",
    ["actor_class"],
)

advancements_total = Counter(
    "order_lifecycle_advancements_total",
    "Advancement attempts by actor class and outcome",
    ["actor_class", "outcome"],  # outcome: advanced, declined
)

# ============================================================================
# Closure and failover
# ============================================================================

closure_rounds_total = Counter(
    "order_lifecycle_closure_rounds_total",
    "Closure rounds processed by resulting selection status",
    ["selection_status"],
)

closure_pool_size = Histogram(
    "order_lifecycle_closure_pool_size",
    "Number of offers ranked per closure round",
    buckets=(0, 1, 2, 3, 5, 10, 20, 50, 100),
)

failovers_total = Counter(
    "order_lifecycle_failovers_total",
    "Fulfillment failures handled, by outcome",
    ["outcome"],  # outcome: promoted, exhausted
)

# ============================================================================
# Helpers
# ============================================================================

P = ParamSpec("P")
R = TypeVar("R")


def track_operation(operation: str) -> Callable[[Callable[P, R]], Callable[P, R]]:
    """Record duration and success/failure of a façade method under ``operation``"""

    def decorator(func: Callable[P, R]) -> Callable[P, R]:
        @wraps(func)
        def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            start = time.perf_counter()
            status = "success"
            try:
                return func(*args, **kwargs)
            except Exception:
                status = "failure"
                raise
            finally:
                operation_duration_seconds.labels(operation=operation).observe(
                    time.perf_counter() - start
                )
                operations_total.labels(operation=operation, status=status).inc()

        return wrapper

    return decorator


def start_metrics_server(port: int = 9090) -> None:
    """Serve /metrics for scraping; the engine itself never calls this"""
    start_http_server(port)
