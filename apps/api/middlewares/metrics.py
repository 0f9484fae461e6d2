"""Request duration metrics."""

import time
from collections.abc import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.routing import Match

from core.metrics import api_request_duration

# Scrapes of the metrics endpoint itself are not recorded
_SKIP_PATHS = {"/metrics"}


def _route_template(request: Request) -> str:
    """Path template of the matched route ("/api/v1/matches/{match_id}"), or the raw path."""
    for route in request.app.router.routes:
        match, _ = route.matches(request.scope)
        if match == Match.FULL:
            return getattr(route, "path", request.url.path)
    return request.url.path


class MetricsMiddleware(BaseHTTPMiddleware):
    """Observe request duration per method, route template and status code."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path in _SKIP_PATHS:
            return await call_next(request)

        start_time = time.perf_counter()
        response = await call_next(request)
        duration = time.perf_counter() - start_time

        api_request_duration.labels(
            method=request.method, endpoint=_route_template(request), status=response.status_code
        ).observe(duration)
        return response
