"""Telemetry middleware for request instrumentation."""

from __future__ import annotations

import time

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from scribe.telemetry import observe_request

_UNTRACKED_PATHS = frozenset({"/metrics"})


def _route_template(request: Request) -> str:
    # Populated by the router once the request has been matched.
    route = request.scope.get("route")
    return getattr(route, "path", None) or request.url.path


class TelemetryMiddleware(BaseHTTPMiddleware):
    """Collect request metrics for Prometheus.

    Event streams are counted when their headers are sent. Their duration is
    the lifetime of the subscription, so it is kept out of the latency
    histogram.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        if request.url.path in _UNTRACKED_PATHS:
            return await call_next(request)

        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            observe_request(request.method, _route_template(request), 500, time.perf_counter() - started)
            raise

        is_stream = response.headers.get("content-type", "").startswith("text/event-stream")
        observe_request(
            request.method,
            _route_template(request),
            response.status_code,
            None if is_stream else time.perf_counter() - started,
        )
        return response
