"""
Middleware for trace ID propagation and request context management.

- Reads the trace ID from X-Trace-ID / X-Request-ID headers, falls back to the
  OpenTelemetry span context, and otherwise generates one
- Generates a unique request ID per request
- Logs request start/completion and records HTTP RED metrics
- Echoes X-Trace-ID and X-Request-ID on the response
"""
import time
from typing import Callable

from fastapi import HTTPException, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from .logging import (
    generate_request_id,
    generate_trace_id,
    get_logger,
    set_request_id,
    set_trace_id,
)
from .metrics import record_http_request
from .tracing import (
    get_trace_id_from_context,
    record_exception,
    set_span_attribute,
)

logger = get_logger(__name__)


def _uuid_from_hex(hex_id: str) -> str:
    if len(hex_id) != 32:
        return hex_id
    return f"{hex_id[0:8]}-{hex_id[8:12]}-{hex_id[12:16]}-{hex_id[16:20]}-{hex_id[20:32]}"


class TraceIDMiddleware(BaseHTTPMiddleware):
    """Attach trace/request IDs to the logging context for each request."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        trace_id = (
            request.headers.get("X-Trace-ID") or
            request.headers.get("X-Request-ID")
        )
        if not trace_id:
            otel_trace_id = get_trace_id_from_context()
            trace_id = _uuid_from_hex(otel_trace_id) if otel_trace_id else generate_trace_id()

        request_id = generate_request_id()

        set_trace_id(trace_id)
        set_request_id(request_id)

        set_span_attribute("http.route", request.url.path)

        start_time = time.time()
        # Exception handlers read this to compute latency
        request.state.start_time = start_time
        logger.info(
            "request_started",
            method=request.method,
            path=request.url.path,
            query_params=dict(request.query_params),
            client_host=request.client.host if request.client else None,
        )

        try:
            response = await call_next(request)

            process_time = time.time() - start_time
            latency_ms = int(process_time * 1000)
            set_span_attribute("http.response.latency_ms", latency_ms)

            record_http_request(
                method=request.method,
                endpoint=request.url.path,
                status_code=response.status_code,
                duration_seconds=process_time,
            )
            logger.info(
                "request_completed",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                latency_ms=latency_ms,
            )

            response.headers["X-Trace-ID"] = trace_id
            response.headers["X-Request-ID"] = request_id
            return response

        except HTTPException:
            # Metrics for these are recorded by the HTTPException handler
            raise
        except Exception as e:
            process_time = time.time() - start_time
            record_exception(e)
            record_http_request(
                method=request.method,
                endpoint=request.url.path,
                status_code=500,
                duration_seconds=process_time,
            )
            logger.error(
                "request_failed",
                method=request.method,
                path=request.url.path,
                error=str(e),
                error_type=type(e).__name__,
                latency_ms=int(process_time * 1000),
                exc_info=True,
            )
            raise
        finally:
            set_trace_id(None)
            set_request_id(None)
