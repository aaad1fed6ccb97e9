"""Prometheus metrics for the HTTP front end and the upstream request layer.

Provides:
- MetricsMiddleware: ASGI middleware for HTTP request metrics
- upstream_* collectors: attempt, retry and latency metrics recorded by the executor
- get_metrics_response(): FastAPI route handler body for /metrics
"""

from __future__ import annotations

import time

from prometheus_client import (
    REGISTRY,
    Counter,
    Histogram,
    generate_latest,
)
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

# ── HTTP Metrics ─────────────────────────────────────────────────────────────

http_requests_total = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code"],
)

http_request_duration_seconds = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "endpoint"],
    buckets=(0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

# ── Upstream CRM Metrics ─────────────────────────────────────────────────────

upstream_attempts_total = Counter(
    "upstream_attempts_total",
    "Upstream CRM call attempts by operation and outcome",
    ["operation", "outcome"],
)

upstream_retries_total = Counter(
    "upstream_retries_total",
    "Upstream CRM retries scheduled after a retryable failure",
    ["operation"],
)

upstream_request_duration_seconds = Histogram(
    "upstream_request_duration_seconds",
    "Duration of a single upstream CRM attempt in seconds",
    ["operation"],
    buckets=(0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)


# ── Metrics Middleware ───────────────────────────────────────────────────────


class MetricsMiddleware(BaseHTTPMiddleware):
    """ASGI middleware that records Prometheus metrics for every HTTP request.

    Skips the /metrics endpoint itself to avoid self-referential counting.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.url.path == "/metrics":
            return await call_next(request)

        start_time = time.perf_counter()
        response = await call_next(request)
        duration = time.perf_counter() - start_time

        # Route template keeps label cardinality bounded (/deals/{item_id})
        route = request.scope.get("route")
        endpoint = getattr(route, "path", request.url.path)

        http_requests_total.labels(
            method=request.method,
            endpoint=endpoint,
            status_code=str(response.status_code),
        ).inc()

        http_request_duration_seconds.labels(
            method=request.method,
            endpoint=endpoint,
        ).observe(duration)

        return response


# ── Metrics Endpoint ─────────────────────────────────────────────────────────


def get_metrics_response() -> Response:
    """Generate Prometheus exposition format response."""
    return Response(
        content=generate_latest(REGISTRY),
        media_type="text/plain; version=0.0.4; charset=utf-8",
    )
