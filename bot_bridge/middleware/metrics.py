import re
import time

from prometheus_client import Counter, Gauge, Histogram
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
from starlette.routing import Mount

REQUEST_COUNT = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)

REQUEST_LATENCY = Histogram(
    "http_request_duration_seconds",
    "HTTP request latency",
    ["method", "path"],
    buckets=[0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0],
)

REQUESTS_IN_PROGRESS = Gauge(
    "http_requests_in_progress",
    "HTTP requests currently being handled",
    ["method"],
)

_WEBHOOK_PATH = re.compile(r"^/webhook/.+$")
_KNOWN_PREFIXES = ("/api/", "/health", "/metrics")


def _raw_label(path: str) -> str:
    if _WEBHOOK_PATH.match(path):
        return "/webhook/{secret}"
    if path in ("/", "/webhook") or path.startswith(_KNOWN_PREFIXES):
        return path
    # Static assets and unknown paths share one series
    return "/{static}"


def path_label(request: Request) -> str:
    """Label for a request: the matched route template, never a raw secret.

    Depending on the FastAPI version the template may or may not carry the
    router prefix, so the literal leading segments of the request path are
    put back in front of it.
    """
    path = request.url.path
    route = request.scope.get("route")
    template = getattr(route, "path", None)
    if template is None or isinstance(route, Mount):
        return _raw_label(path)

    raw_parts = [part for part in path.split("/") if part]
    route_parts = [part for part in template.split("/") if part]
    if len(route_parts) > len(raw_parts):
        return _raw_label(path)
    prefix = raw_parts[: len(raw_parts) - len(route_parts)]
    return "/" + "/".join(prefix + route_parts)


class MetricsMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next) -> Response:
        in_progress = REQUESTS_IN_PROGRESS.labels(method=request.method)
        in_progress.inc()
        start = time.perf_counter()
        try:
            response = await call_next(request)
        finally:
            in_progress.dec()
        elapsed = time.perf_counter() - start

        path = path_label(request)
        REQUEST_COUNT.labels(method=request.method, path=path, status=str(response.status_code)).inc()
        REQUEST_LATENCY.labels(method=request.method, path=path).observe(elapsed)

        return response
