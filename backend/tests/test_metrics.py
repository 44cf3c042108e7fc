"""
Unit tests for Prometheus metrics collection.

Tests verify:
- RED metrics (Rate, Errors, Duration) are recorded correctly
- Advice pipeline, LLM, telemetry and alert counters increment
- Resource metrics (CPU, memory) are updated
- The metrics endpoint returns Prometheus text format
"""
from unittest.mock import patch

from fastapi.testclient import TestClient

from app.core.metrics import (
    get_metrics,
    get_metrics_content_type,
    normalize_endpoint,
    record_advice_path,
    record_alert,
    record_cache_hit,
    record_cache_miss,
    record_http_request,
    record_llm_error,
    record_llm_fallback,
    record_llm_retry,
    record_telemetry_ingested,
    registry,
    system_memory_usage_bytes,
    update_resource_metrics,
)


def sample(name, **labels):
    return registry.get_sample_value(name, labels) or 0.0


class TestREDMetrics:
    """HTTP request metrics."""

    def test_successful_request_counts_without_error(self):
        labels = {"method": "GET", "endpoint": "/api/ai/strategies", "status": "200"}
        before = sample("http_requests_total", **labels)
        errors_before = sample(
            "http_errors_total", method="GET", endpoint="/api/ai/strategies", status_code="200"
        )

        record_http_request("GET", "/api/ai/strategies?hours=6", 200, 0.05)

        assert sample("http_requests_total", **labels) == before + 1
        assert sample(
            "http_errors_total", method="GET", endpoint="/api/ai/strategies", status_code="200"
        ) == errors_before

    def test_error_request_counts_error(self):
        labels = {"method": "POST", "endpoint": "/api/emissions", "status_code": "400"}
        before = sample("http_errors_total", **labels)

        record_http_request("POST", "/api/emissions", 400, 0.01)

        assert sample("http_errors_total", **labels) == before + 1

    def test_normalize_endpoint_strips_query(self):
        assert normalize_endpoint("/api/ai/strategies?hours=6&topN=5") == "/api/ai/strategies"
        assert normalize_endpoint("/health/") == "/health/"


class TestDomainMetrics:
    """Advice, LLM, telemetry and alert counters."""

    def test_cache_hit_and_miss(self):
        hits = sample("cache_hits_total", cache_type="unit")
        misses = sample("cache_misses_total", cache_type="unit")

        record_cache_hit("unit")
        record_cache_miss("unit")
        record_cache_miss("unit")

        assert sample("cache_hits_total", cache_type="unit") == hits + 1
        assert sample("cache_misses_total", cache_type="unit") == misses + 2

    def test_advice_path(self):
        before = sample("ai_strategies_requests_total", path="heuristic")
        record_advice_path("heuristic")
        assert sample("ai_strategies_requests_total", path="heuristic") == before + 1

    def test_llm_counters(self):
        retries = sample("llm_retries_total", model="unit-model")
        errors = sample("llm_errors_total", model="unit-model", error_type="http_503")
        fallbacks = sample("llm_fallback_total")

        record_llm_retry("unit-model")
        record_llm_error("unit-model", "http_503")
        record_llm_fallback()

        assert sample("llm_retries_total", model="unit-model") == retries + 1
        assert sample("llm_errors_total", model="unit-model", error_type="http_503") == errors + 1
        assert sample("llm_fallback_total") == fallbacks + 1

    def test_telemetry_and_alerts(self):
        ingested = sample("telemetry_ingested_total", department="Unit")
        alerts = sample("alerts_total", channel="email", outcome="skipped")

        record_telemetry_ingested("Unit")
        record_alert("email", "skipped")

        assert sample("telemetry_ingested_total", department="Unit") == ingested + 1
        assert sample("alerts_total", channel="email", outcome="skipped") == alerts + 1


class TestResourceMetrics:
    """CPU and memory gauges."""

    def test_update_resource_metrics(self):
        update_resource_metrics()
        assert system_memory_usage_bytes._value.get() > 0

    def test_update_resource_metrics_survives_psutil_failure(self):
        with patch("app.core.metrics.psutil.cpu_percent", side_effect=RuntimeError("no /proc")):
            update_resource_metrics()


class TestMetricsEndpoint:
    """GET /metrics."""

    def test_get_metrics_is_prometheus_text(self):
        output = get_metrics().decode("utf-8")
        assert "http_requests_total" in output
        assert "ai_strategies_requests_total" in output
        assert get_metrics_content_type().startswith("text/plain")

    def test_metrics_route(self):
        from app.main import app

        response = TestClient(app).get("/metrics")

        assert response.status_code == 200
        assert "llm_retries_total" in response.text
