"""
Prometheus metrics for bookrail.

Service timings come from the ``@measure_operation`` decorator; settlement
and outbox counters are recorded by the services that own those flows.
"""

from threading import Lock
from time import monotonic
from typing import Optional, cast

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
)

# Custom registry so test runs and reloads do not collide with the default one
REGISTRY = CollectorRegistry()

http_request_duration_seconds = Histogram(
    "bookrail_http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint", "status_code"],
    registry=REGISTRY,
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

service_operation_duration_seconds = Histogram(
    "bookrail_service_operation_duration_seconds",
    "Service operation duration in seconds",
    ["service", "operation"],
    registry=REGISTRY,
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 10.0),
)

service_operations_total = Counter(
    "bookrail_service_operations_total",
    "Total number of service operations",
    ["service", "operation", "status"],
    registry=REGISTRY,
)

errors_total = Counter(
    "bookrail_errors_total",
    "Total number of errors",
    ["service", "operation", "error_type"],
    registry=REGISTRY,
)

booking_transitions_total = Counter(
    "bookrail_booking_transitions_total",
    "Booking status transitions by target status",
    ["operation", "status"],
    registry=REGISTRY,
)

settlement_legs_total = Counter(
    "bookrail_settlement_legs_total",
    "Settlement leg outcomes",
    ["leg", "outcome"],  # leg: fee | transfer; outcome: succeeded | rejected | transient | pending
    registry=REGISTRY,
)

rail_call_duration_seconds = Histogram(
    "bookrail_rail_call_duration_seconds",
    "Payment rail call duration in seconds",
    ["rail", "call"],
    registry=REGISTRY,
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)

outbox_events_total = Counter(
    "bookrail_outbox_events_total",
    "Outbox events by delivery outcome",
    ["status", "event_type"],
    registry=REGISTRY,
)

outbox_attempt_total = Counter(
    "bookrail_outbox_attempt_total",
    "Outbox delivery attempts",
    ["event_type"],
    registry=REGISTRY,
)


class PrometheusMetrics:
    """Records metrics and renders the exposition payload."""

    _cache_lock: Lock = Lock()
    _cache_payload: Optional[bytes] = None
    _cache_ts: Optional[float] = None
    _cache_ttl_seconds: float = 1.0

    @staticmethod
    def record_http_request(method: str, endpoint: str, duration: float, status_code: int) -> None:
        labels = {"method": method, "endpoint": endpoint, "status_code": str(status_code)}
        http_request_duration_seconds.labels(**labels).observe(duration)
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def record_service_operation(
        service: str,
        operation: str,
        duration: float,
        status: str = "success",
        error_type: Optional[str] = None,
    ) -> None:
        """
        Record service operation metrics from @measure_operation decorator.

        Args:
            service: Service name (e.g., 'SettlementService')
            operation: Operation name (e.g., 'initiate_settlement')
            duration: Operation duration in seconds
            status: Operation status ('success' or 'error')
            error_type: Exception class name if status is 'error'
        """
        service_operation_duration_seconds.labels(service=service, operation=operation).observe(
            duration
        )
        service_operations_total.labels(service=service, operation=operation, status=status).inc()
        if status == "error" and error_type:
            errors_total.labels(service=service, operation=operation, error_type=error_type).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def record_booking_transition(operation: str, status: str) -> None:
        booking_transitions_total.labels(operation=operation, status=status).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def record_settlement_leg(leg: str, outcome: str) -> None:
        settlement_legs_total.labels(leg=leg, outcome=outcome).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def observe_rail_call(rail: str, call: str, duration: float) -> None:
        rail_call_duration_seconds.labels(rail=rail, call=call).observe(max(duration, 0.0))
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def record_outbox_attempt(event_type: str) -> None:
        outbox_attempt_total.labels(event_type=event_type).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def record_outbox_outcome(event_type: str, status: str) -> None:
        outbox_events_total.labels(status=status, event_type=event_type).inc()
        PrometheusMetrics._invalidate_cache()

    @staticmethod
    def get_metrics() -> bytes:
        """Generate the exposition payload, cached for a short TTL."""
        now = monotonic()
        payload = PrometheusMetrics._cache_payload
        ts = PrometheusMetrics._cache_ts
        if payload is not None and ts is not None and (now - ts) <= PrometheusMetrics._cache_ttl_seconds:
            return payload

        with PrometheusMetrics._cache_lock:
            PrometheusMetrics._cache_payload = cast(bytes, generate_latest(REGISTRY))
            PrometheusMetrics._cache_ts = monotonic()
            return PrometheusMetrics._cache_payload

    @staticmethod
    def get_content_type() -> str:
        return cast(str, CONTENT_TYPE_LATEST)

    @staticmethod
    def _invalidate_cache() -> None:
        with PrometheusMetrics._cache_lock:
            PrometheusMetrics._cache_ts = None
            PrometheusMetrics._cache_payload = None


prometheus_metrics = PrometheusMetrics()
