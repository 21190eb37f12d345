import time
from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
from starlette.routing import Match

# Define metrics (names follow Prometheus conventions)
REQ_COUNT = Counter("http_requests_total", "Total HTTP requests", ["path","method","code"])
REQ_LATENCY = Histogram("http_request_duration_seconds", "Request latency", ["path","method"])

def route_path(request: Request) -> str:
    """Matched route template (e.g. /properties) so unknown paths don't explode labels.
    Call after the app has run: routing records the matched route in the scope."""
    path = getattr(request.scope.get("route"), "path", None)
    if path:
        return path
    for route in request.app.routes:
        path = getattr(route, "path", None)
        if path and route.matches(request.scope)[0] == Match.FULL:
            return path
    return "unmatched"

class PromMiddleware(BaseHTTPMiddleware):
    """
    Measures latency and counts requests per route.
    """
    async def dispatch(self, request: Request, call_next):
        start = time.perf_counter()
        response: Response = await call_next(request)
        elapsed = time.perf_counter() - start

        path = route_path(request)
        method = request.method
        code = str(response.status_code)

        REQ_COUNT.labels(path=path, method=method, code=code).inc()
        REQ_LATENCY.labels(path=path, method=method).observe(elapsed)
        return response

async def metrics_endpoint(request: Request):
    """
    GET /metrics — scraped by Prometheus.
    """
    data = generate_latest()
    return Response(content=data, media_type=CONTENT_TYPE_LATEST)
