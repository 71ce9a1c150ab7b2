"""
Prometheus Metrics for narration-ms.

Metrics Exposed:
    narration_requests_total               - Synthesis runs by status and error code
    narration_request_duration_seconds     - Synthesis latency by status
    narration_audio_bytes_total            - Audio bytes returned to callers
    narration_audio_seconds_total          - Estimated audio seconds returned
    narration_characters_total             - Characters requested vs. sent to the provider
    narration_in_flight_requests           - Synthesis runs currently in progress
    narration_provider_attempts_total      - Outbound attempts by outcome
    narration_provider_retries_total       - Backoff sleeps taken before a retry
    narration_analytics_failures_total     - Analytics calls that raised or timed out

Usage:
    from narration_ms.core.metrics import metrics

    metrics.record_request(status="success", duration=0.8, audio_bytes=8000)
    content, content_type = metrics.get_metrics_response()

Every collector lives on a private CollectorRegistry, so separate
NarrationMetrics instances (one per test, say) never collide.
"""
from __future__ import annotations

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)


class NarrationMetrics:
    """
    Metrics collection for the synthesis pipeline and its HTTP client.

    A process-wide instance is exposed as ``metrics``; components accept
    another instance through their constructors.
    """

    def __init__(self) -> None:
        self.registry = CollectorRegistry()

        self._requests_total = Counter(
            "narration_requests_total",
            "Total synthesis runs",
            ["status", "error_code"],
            registry=self.registry,
        )
        self._request_duration = Histogram(
            "narration_request_duration_seconds",
            "Synthesis run duration in seconds",
            ["status"],
            buckets=(0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0),
            registry=self.registry,
        )
        self._audio_bytes_total = Counter(
            "narration_audio_bytes_total",
            "Total audio bytes returned",
            registry=self.registry,
        )
        self._audio_seconds_total = Counter(
            "narration_audio_seconds_total",
            "Total estimated audio seconds returned",
            registry=self.registry,
        )
        self._characters_total = Counter(
            "narration_characters_total",
            "Characters requested by callers and sent to the provider",
            ["kind"],
            registry=self.registry,
        )
        self._in_flight = Gauge(
            "narration_in_flight_requests",
            "Synthesis runs currently in progress",
            registry=self.registry,
        )
        self._provider_attempts = Counter(
            "narration_provider_attempts_total",
            "Outbound provider attempts by outcome",
            ["outcome"],
            registry=self.registry,
        )
        self._provider_retries = Counter(
            "narration_provider_retries_total",
            "Retries scheduled after a transient failure",
            registry=self.registry,
        )
        self._analytics_failures = Counter(
            "narration_analytics_failures_total",
            "Analytics calls that raised or timed out",
            ["operation"],
            registry=self.registry,
        )

    def record_request(
        self,
        status: str,
        duration: float,
        error_code: str = "",
        audio_bytes: int = 0,
        audio_seconds: float = 0.0,
    ) -> None:
        """
        Record a finished synthesis run.

        Args:
            status: "success" or "error"
            duration: Wall-clock seconds from entry to outcome
            error_code: ErrorCode value for failed runs
            audio_bytes: Size of returned audio
            audio_seconds: Estimated duration of returned audio
        """
        self._requests_total.labels(status=status, error_code=error_code).inc()
        self._request_duration.labels(status=status).observe(duration)
        if audio_bytes > 0:
            self._audio_bytes_total.inc(audio_bytes)
        if audio_seconds > 0:
            self._audio_seconds_total.inc(audio_seconds)

    def record_characters(self, requested: int, processed: int) -> None:
        self._characters_total.labels(kind="requested").inc(requested)
        self._characters_total.labels(kind="processed").inc(processed)

    def record_attempt(self, outcome: str) -> None:
        """Count one outbound attempt: success, permanent, retryable or timeout."""
        self._provider_attempts.labels(outcome=outcome).inc()

    def record_retry(self) -> None:
        self._provider_retries.inc()

    def record_analytics_failure(self, operation: str) -> None:
        self._analytics_failures.labels(operation=operation).inc()

    def inc_in_flight(self) -> None:
        self._in_flight.inc()

    def dec_in_flight(self) -> None:
        self._in_flight.dec()

    def get_metrics_response(self) -> tuple[bytes, str]:
        """Return (content_bytes, content_type) for the /metrics endpoint."""
        return (generate_latest(self.registry), CONTENT_TYPE_LATEST)


# Process-wide instance used when no other is injected
metrics = NarrationMetrics()
