"""
Prometheus metrics collection module.

Metrics Categories:
- RED Metrics: Rate, Errors, Duration of HTTP requests
- Advice pipeline: cache hits/misses, generation path, LLM calls, retries,
  fallback-model switches, exhausted invocations
- Telemetry: ingested readings, high-emission alerts
- Resource Metrics: CPU, memory

All metrics follow Prometheus naming conventions:
- Counters: _total suffix
- Histograms: _seconds suffix for duration
- Gauges: No special suffix
"""
import psutil
from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

from app.core.logging import get_logger

logger = get_logger(__name__)

registry = REGISTRY

# ============================================================================
# RED METRICS - Rate, Errors, Duration
# ============================================================================

http_requests_total = Counter(
    "http_requests_total",
    "Total number of HTTP requests",
    ["method", "endpoint", "status"],
    registry=registry,
)

http_errors_total = Counter(
    "http_errors_total",
    "Total number of HTTP errors",
    ["method", "endpoint", "status_code"],
    registry=registry,
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency in seconds",
    ["method", "endpoint"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
    registry=registry,
)

# ============================================================================
# ADVICE PIPELINE METRICS
# ============================================================================

cache_hits_total = Counter(
    "cache_hits_total",
    "Total number of cache hits",
    ["cache_type"],
    registry=registry,
)

cache_misses_total = Counter(
    "cache_misses_total",
    "Total number of cache misses",
    ["cache_type"],
    registry=registry,
)

ai_strategies_requests_total = Counter(
    "ai_strategies_requests_total",
    "Advice requests by the path that produced the payload",
    ["path"],  # cache_hit, no_data, model, heuristic, safety_net
    registry=registry,
)

llm_requests_total = Counter(
    "llm_requests_total",
    "Total number of LLM provider calls",
    ["model"],
    registry=registry,
)

llm_request_duration_seconds = Histogram(
    "llm_request_duration_seconds",
    "LLM provider call latency in seconds",
    ["model"],
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 20.0, 40.0],
    registry=registry,
)

llm_errors_total = Counter(
    "llm_errors_total",
    "Total number of failed LLM provider calls",
    ["model", "error_type"],
    registry=registry,
)

llm_retries_total = Counter(
    "llm_retries_total",
    "Total number of backoff retries scheduled against the LLM provider",
    ["model"],
    registry=registry,
)

llm_fallback_total = Counter(
    "llm_fallback_total",
    "Total number of switches from the primary to the fallback model",
    registry=registry,
)

llm_exhausted_total = Counter(
    "llm_exhausted_total",
    "Total number of invocations that exhausted every model's retry budget",
    registry=registry,
)

# ============================================================================
# TELEMETRY METRICS
# ============================================================================

telemetry_ingested_total = Counter(
    "telemetry_ingested_total",
    "Total number of telemetry readings stored",
    ["department"],
    registry=registry,
)

alerts_total = Counter(
    "alerts_total",
    "High-emission alert deliveries by channel and outcome",
    ["channel", "outcome"],  # outcome: sent, skipped, failed
    registry=registry,
)

# ============================================================================
# RESOURCE METRICS
# ============================================================================

system_cpu_usage_percent = Gauge(
    "system_cpu_usage_percent",
    "System CPU usage percentage",
    registry=registry,
)

system_memory_usage_bytes = Gauge(
    "system_memory_usage_bytes",
    "System memory usage in bytes",
    registry=registry,
)


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def normalize_endpoint(path: str) -> str:
    """Strip query strings so metric label cardinality stays bounded."""
    if "?" in path:
        path = path.split("?")[0]
    return path


def record_http_request(
    method: str,
    endpoint: str,
    status_code: int,
    duration_seconds: float,
) -> None:
    """
    Record HTTP request metrics (RED metrics).

    Args:
        method: HTTP method (GET, POST, etc.)
        endpoint: Request path
        status_code: HTTP status code
        duration_seconds: Request duration in seconds
    """
    normalized_endpoint = normalize_endpoint(endpoint)

    http_requests_total.labels(
        method=method,
        endpoint=normalized_endpoint,
        status=str(status_code),
    ).inc()

    if status_code >= 400:
        http_errors_total.labels(
            method=method,
            endpoint=normalized_endpoint,
            status_code=str(status_code),
        ).inc()

    http_request_duration_seconds.labels(
        method=method,
        endpoint=normalized_endpoint,
    ).observe(duration_seconds)


def record_cache_hit(cache_type: str) -> None:
    cache_hits_total.labels(cache_type=cache_type).inc()


def record_cache_miss(cache_type: str) -> None:
    cache_misses_total.labels(cache_type=cache_type).inc()


def record_advice_path(path: str) -> None:
    ai_strategies_requests_total.labels(path=path).inc()


def record_llm_request(model: str, duration_seconds: float) -> None:
    llm_requests_total.labels(model=model).inc()
    llm_request_duration_seconds.labels(model=model).observe(duration_seconds)


def record_llm_error(model: str, error_type: str) -> None:
    llm_errors_total.labels(model=model, error_type=error_type).inc()


def record_llm_retry(model: str) -> None:
    llm_retries_total.labels(model=model).inc()


def record_llm_fallback() -> None:
    llm_fallback_total.inc()


def record_llm_exhausted() -> None:
    llm_exhausted_total.inc()


def record_telemetry_ingested(department: str) -> None:
    telemetry_ingested_total.labels(department=department).inc()


def record_alert(channel: str, outcome: str) -> None:
    alerts_total.labels(channel=channel, outcome=outcome).inc()


def update_resource_metrics() -> None:
    """
    Update system resource metrics (CPU, memory).

    Called on-demand when metrics are scraped.
    """
    try:
        system_cpu_usage_percent.set(psutil.cpu_percent(interval=None))
        system_memory_usage_bytes.set(psutil.virtual_memory().used)
    except Exception as e:
        logger.warning(
            "metrics_resource_update_failed",
            error=str(e),
            error_type=type(e).__name__,
        )


def get_metrics() -> bytes:
    """Prometheus metrics in text exposition format."""
    update_resource_metrics()
    return generate_latest(registry)


def get_metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
