"""
Prometheus metrics middleware for the Lead Lifecycle Engine API.

Exposes /metrics endpoint with request counters, latency histograms,
and lead lifecycle business metrics.
"""

import logging
import time

from fastapi import Request, Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, Histogram, generate_latest
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

# Request metrics
REQUEST_COUNT = Counter(
    "lead_engine_http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status_code"],
)
REQUEST_LATENCY = Histogram(
    "lead_engine_http_request_duration_seconds",
    "HTTP request latency",
    ["method", "endpoint"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)
ACTIVE_REQUESTS = Gauge(
    "lead_engine_http_active_requests",
    "Currently active HTTP requests",
)

# Business metrics
CALL_ENDED_EVENTS = Counter(
    "lead_engine_call_ended_events_total",
    "Call-ended webhook events",
    ["outcome"],
)
LEAD_SCORE_HIST = Histogram(
    "lead_engine_lead_score",
    "Lead score distribution",
    buckets=[10, 20, 30, 40, 50, 60, 70, 80, 90, 100],
)
DISPATCH_ITEMS = Counter(
    "lead_engine_dispatch_items_total",
    "Follow-ups handled by dispatch runs",
    ["outcome"],
)
DISPATCH_RUNS = Counter(
    "lead_engine_dispatch_runs_total",
    "Dispatch runs",
    ["result"],
)


def record_call_ended(outcome: str):
    """Record a call-ended webhook outcome (created, updated, rejected, failed)."""
    CALL_ENDED_EVENTS.labels(outcome=outcome).inc()


def record_lead_score(score: float):
    """Record a lead score."""
    LEAD_SCORE_HIST.observe(score)


def record_dispatch_summary(summary):
    """Record the per-item outcomes of one dispatch run."""
    DISPATCH_RUNS.labels(result="completed").inc()
    for outcome in ("dispatched", "skipped", "failed"):
        count = getattr(summary, outcome)
        if count:
            DISPATCH_ITEMS.labels(outcome=outcome).inc(count)
    if summary.seeded_follow_ups:
        DISPATCH_ITEMS.labels(outcome="seeded").inc(summary.seeded_follow_ups)


def record_dispatch_failure():
    DISPATCH_RUNS.labels(result="failed").inc()


class MetricsMiddleware(BaseHTTPMiddleware):
    """Middleware that records HTTP request metrics."""

    async def dispatch(self, request: Request, call_next):
        ACTIVE_REQUESTS.inc()
        start = time.time()

        try:
            response = await call_next(request)
        except Exception:
            ACTIVE_REQUESTS.dec()
            raise

        duration = time.time() - start
        # Route template keeps label cardinality bounded (no lead ids)
        route = request.scope.get("route")
        endpoint = getattr(route, "path", request.url.path)

        REQUEST_COUNT.labels(
            method=request.method,
            endpoint=endpoint,
            status_code=response.status_code,
        ).inc()
        REQUEST_LATENCY.labels(
            method=request.method,
            endpoint=endpoint,
        ).observe(duration)
        ACTIVE_REQUESTS.dec()

        return response


async def metrics_endpoint(request: Request) -> Response:
    """Prometheus metrics endpoint."""
    return Response(
        content=generate_latest(),
        media_type=CONTENT_TYPE_LATEST,
    )
