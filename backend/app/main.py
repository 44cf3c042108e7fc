import os
import time

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse

from .core.config import get_api_base, get_environment
from .core.logging import configure_logging, get_logger, get_trace_id
from .core.metrics import record_http_request
from .core.middleware import TraceIDMiddleware
from .core.tracing import (
    StatusCode,
    configure_tracing,
    get_trace_id_from_context,
    instrument_fastapi,
    record_exception,
    set_span_status,
    shutdown_tracing,
)
from .routes import ai, dev, emissions, health, info, metrics, offsets, reports
from .services.telemetry.store import get_telemetry_store

# Use JSON output in production (containerized), console output in development
log_level = os.getenv("LOG_LEVEL", "INFO")
json_output = os.getenv("LOG_JSON", "true").lower() == "true"
configure_logging(log_level=log_level, json_output=json_output)

logger = get_logger(__name__)

# Spans are exported only when OTEL_EXPORTER_OTLP_ENDPOINT is set
configure_tracing()

API_BASE = get_api_base()
ENVIRONMENT = get_environment()

app = FastAPI(
    title="Carbon Net-Zero API",
    description="Emission telemetry, offsets, reports and AI reduction strategies",
    version="1.0.0"
)

# CORS for local dev; restrict in production
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Must be added after CORS middleware
app.add_middleware(TraceIDMiddleware)

instrument_fastapi(app)


@app.on_event("startup")
async def startup_event():
    """Initialize services on application startup."""
    logger.info("app_startup_started", api_base=API_BASE, environment=ENVIRONMENT)
    # Resolves Supabase vs in-memory once, so the choice is logged at boot
    get_telemetry_store()
    logger.info("app_startup_completed")


@app.on_event("shutdown")
async def shutdown_event():
    """Cleanup resources on application shutdown."""
    logger.info("app_shutdown_started")
    shutdown_tracing()
    logger.info("app_shutdown_completed")


def _error_response(status_code: int, detail, trace_id) -> JSONResponse:
    response = JSONResponse(
        status_code=status_code,
        content={
            "detail": detail,
            "status_code": status_code,
            "trace_id": trace_id,
        }
    )
    if trace_id:
        response.headers["X-Trace-ID"] = trace_id
    return response


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Handle HTTP exceptions."""
    start_time = getattr(request.state, "start_time", time.time())
    duration = time.time() - start_time

    trace_id = get_trace_id() or get_trace_id_from_context()

    set_span_status(StatusCode.ERROR if exc.status_code >= 500 else StatusCode.OK, str(exc.detail))

    record_http_request(
        method=request.method,
        endpoint=request.url.path,
        status_code=exc.status_code,
        duration_seconds=duration,
    )

    logger.warning(
        "http_exception",
        status_code=exc.status_code,
        detail=exc.detail,
        path=request.url.path,
        method=request.method,
    )
    return _error_response(exc.status_code, exc.detail, trace_id)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed bodies and query parameters are client errors (400)."""
    trace_id = get_trace_id() or get_trace_id_from_context()
    logger.warning(
        "request_validation_failed",
        path=request.url.path,
        method=request.method,
        errors=len(exc.errors()),
    )
    return _error_response(400, "Invalid request", trace_id)


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle general exceptions."""
    trace_id = get_trace_id() or get_trace_id_from_context()

    record_exception(exc)
    set_span_status(StatusCode.ERROR, str(exc))

    logger.error(
        "unhandled_exception",
        error=str(exc),
        error_type=type(exc).__name__,
        path=request.url.path,
        method=request.method,
        exc_info=True,
    )
    return _error_response(500, "Internal server error", trace_id)


@app.get("/", response_class=PlainTextResponse)
async def root():
    return "Carbon Net-Zero API"


# Include routers
app.include_router(health.router, prefix="/health", tags=["Health"])
app.include_router(metrics.router, prefix="/metrics", tags=["Metrics"])
app.include_router(info.router, prefix=API_BASE, tags=["Info"])
app.include_router(emissions.router, prefix=f"{API_BASE}/emissions", tags=["Emissions"])
app.include_router(offsets.router, prefix=f"{API_BASE}/offsets", tags=["Offsets"])
app.include_router(reports.router, prefix=f"{API_BASE}/reports", tags=["Reports"])
app.include_router(ai.router, prefix=f"{API_BASE}/ai", tags=["AI"])
if ENVIRONMENT != "production":
    app.include_router(dev.router, prefix=f"{API_BASE}/dev", tags=["Dev"])
