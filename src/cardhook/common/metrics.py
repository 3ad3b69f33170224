"""Prometheus metrics for webhook signature handling."""

import os
import time

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Histogram,
    generate_latest,
    multiprocess,
)
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.routing import Match
from starlette.types import ASGIApp

UNMATCHED_ENDPOINT = "unmatched"

# === Counters ===

SIGNATURE_VERIFICATIONS_TOTAL = Counter(
    "cardhook_signature_verifications_total",
    "Inbound signature verifications",
    ["outcome"],  # outcome: accepted, malformed_request, unsupported_algorithm, unknown_key, signature_mismatch
)

RESPONSES_SIGNED_TOTAL = Counter(
    "cardhook_responses_signed_total",
    "Outbound response signing attempts",
    ["outcome"],  # outcome: signed, signing_error
)

HTTP_REQUESTS_TOTAL = Counter(
    "cardhook_http_requests_total",
    "Total HTTP requests",
    ["method", "endpoint", "status"],
)

# === Histograms ===

HTTP_REQUEST_LATENCY = Histogram(
    "cardhook_http_request_latency_seconds",
    "HTTP request latency in seconds",
    ["method", "endpoint"],
    buckets=[0.005, 0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0],
)


# === Helper Functions ===


def record_verification(outcome: str) -> None:
    """Record an inbound verification outcome."""
    SIGNATURE_VERIFICATIONS_TOTAL.labels(outcome=outcome).inc()


def record_signing(outcome: str) -> None:
    """Record an outbound signing outcome."""
    RESPONSES_SIGNED_TOTAL.labels(outcome=outcome).inc()


def record_http_request(
    method: str,
    endpoint: str,
    status: int,
    latency: float,
) -> None:
    """Record an HTTP request."""
    HTTP_REQUESTS_TOTAL.labels(
        method=method,
        endpoint=endpoint,
        status=str(status),
    ).inc()
    HTTP_REQUEST_LATENCY.labels(
        method=method,
        endpoint=endpoint,
    ).observe(latency)


# === HTTP Endpoint ===


class MetricsMiddleware(BaseHTTPMiddleware):
    """HTTP request metrics middleware."""

    def __init__(self, app: ASGIApp, exclude_paths: list[str] | None = None) -> None:
        super().__init__(app)
        self._exclude_paths = set(exclude_paths or [])

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        if request.url.path in self._exclude_paths:
            return await call_next(request)

        endpoint = _route_template(request)
        start = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            duration = time.perf_counter() - start
            record_http_request(
                method=request.method,
                endpoint=endpoint,
                status=500,
                latency=duration,
            )
            raise

        duration = time.perf_counter() - start
        record_http_request(
            method=request.method,
            endpoint=endpoint,
            status=response.status_code,
            latency=duration,
        )
        return response


def _route_template(request: Request) -> str:
    # Label by route template; unmatched paths share one series so arbitrary
    # URLs cannot grow the label set.
    for route in getattr(request.app, "routes", ()):
        match, _ = route.matches(request.scope)
        if match != Match.NONE:
            return getattr(route, "path", UNMATCHED_ENDPOINT)
    return UNMATCHED_ENDPOINT


async def metrics_endpoint(_request: Request) -> Response:
    """
    Prometheus metrics endpoint.

    Returns metrics in Prometheus text format.
    """
    multiproc_dir = os.environ.get("PROMETHEUS_MULTIPROC_DIR")
    if multiproc_dir:
        registry = CollectorRegistry()
        multiprocess.MultiProcessCollector(registry)  # type: ignore[no-untyped-call]
        return Response(
            generate_latest(registry),
            media_type="text/plain; version=0.0.4; charset=utf-8",
        )

    return Response(
        generate_latest(),
        media_type="text/plain; version=0.0.4; charset=utf-8",
    )
