"""Tests for Prometheus metrics."""
from __future__ import annotations

import pytest

from narration_ms.core.metrics import NarrationMetrics


@pytest.fixture
def m():
    return NarrationMetrics()


class TestMetricsModule:
    """Test metrics module functionality."""

    def test_metrics_instance_exists(self):
        """Global metrics instance should exist."""
        from narration_ms.core.metrics import metrics

        assert isinstance(metrics, NarrationMetrics)

    def test_instances_do_not_share_registries(self, m):
        other = NarrationMetrics()
        m.record_retry()
        assert m.registry.get_sample_value("narration_provider_retries_total") == 1
        assert other.registry.get_sample_value("narration_provider_retries_total") == 0

    def test_record_request_success(self, m):
        m.record_request(status="success", duration=0.5, audio_bytes=1000, audio_seconds=2.5)

        r = m.registry
        assert r.get_sample_value("narration_requests_total", {"status": "success", "error_code": ""}) == 1
        assert r.get_sample_value("narration_request_duration_seconds_count", {"status": "success"}) == 1
        assert r.get_sample_value("narration_audio_bytes_total") == 1000
        assert r.get_sample_value("narration_audio_seconds_total") == 2.5

    def test_record_request_error(self, m):
        m.record_request(status="error", duration=0.1, error_code="TIMEOUT")
        assert m.registry.get_sample_value(
            "narration_requests_total", {"status": "error", "error_code": "TIMEOUT"}
        ) == 1
        assert m.registry.get_sample_value("narration_audio_bytes_total") == 0

    def test_characters(self, m):
        m.record_characters(requested=6000, processed=4997)
        assert m.registry.get_sample_value("narration_characters_total", {"kind": "requested"}) == 6000
        assert m.registry.get_sample_value("narration_characters_total", {"kind": "processed"}) == 4997

    def test_in_flight(self, m):
        m.inc_in_flight()
        m.inc_in_flight()
        m.dec_in_flight()
        assert m.registry.get_sample_value("narration_in_flight_requests") == 1

    def test_analytics_failures(self, m):
        m.record_analytics_failure("record_error")
        assert m.registry.get_sample_value(
            "narration_analytics_failures_total", {"operation": "record_error"}
        ) == 1


class TestMetricsEndpoint:
    def test_metrics_response_format(self, m):
        m.record_attempt("success")
        content, content_type = m.get_metrics_response()

        assert isinstance(content, bytes)
        assert "text/plain" in content_type
        assert b"narration_provider_attempts_total" in content
