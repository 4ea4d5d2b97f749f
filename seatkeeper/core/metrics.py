"""
Prometheus metrics for the reservation engine
"""

import time
from contextlib import asynccontextmanager
from typing import Dict, Iterable

from prometheus_client import Counter, Histogram


REQUEST_COUNT = Counter(
    "seatkeeper_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"]
)
REQUEST_DURATION = Histogram(
    "seatkeeper_request_duration_seconds",
    "HTTP request duration",
    ["method", "endpoint"]
)
OPERATION_DURATION = Histogram(
    "seatkeeper_operation_duration_seconds",
    "Reservation engine operation duration",
    ["operation"]
)
SEAT_OUTCOMES = Counter(
    "seatkeeper_seat_outcomes_total",
    "Per-seat outcomes of engine operations",
    ["operation", "outcome"]
)
STORAGE_FAILURES = Counter(
    "seatkeeper_storage_failures_total",
    "Availability store failures",
    ["operation"]
)
COMPACTED_ROWS = Counter(
    "seatkeeper_compacted_rows_total",
    "Expired holds rewritten to available by compaction"
)


class MetricsCollector:
    """Thin facade over the module-level Prometheus collectors"""

    @asynccontextmanager
    async def track_operation(self, operation: str):
        """Time an engine operation; storage failures are counted separately"""
        start_time = time.perf_counter()
        try:
            yield
        finally:
            OPERATION_DURATION.labels(operation=operation).observe(time.perf_counter() - start_time)

    def record_outcomes(self, operation: str, succeeded: Iterable, reasons: Dict) -> None:
        success_count = len(list(succeeded))
        if success_count:
            SEAT_OUTCOMES.labels(operation=operation, outcome="ok").inc(success_count)
        for reason in reasons.values():
            SEAT_OUTCOMES.labels(operation=operation, outcome=getattr(reason, "value", str(reason))).inc()

    def record_storage_failure(self, operation: str) -> None:
        STORAGE_FAILURES.labels(operation=operation).inc()

    def record_compaction(self, rows: int) -> None:
        if rows:
            COMPACTED_ROWS.inc(rows)


# Global metrics collector instance
metrics_collector = MetricsCollector()
