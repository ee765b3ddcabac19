from prometheus_client import Counter, Histogram, generate_latest, CONTENT_TYPE_LATEST
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response
import time

# Metrics definitions
HTTP_REQUESTS_TOTAL = Counter(
    "http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"]
)

HTTP_REQUEST_DURATION_SECONDS = Histogram(
    "http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
    buckets=[0.01, 0.05, 0.1, 0.5, 1.0, 5.0]
)

CACHE_HITS = Counter("cache_hits_total", "Total cache hits")
CACHE_MISSES = Counter("cache_misses_total", "Total cache misses")
REDIRECT_TOTAL = Counter("redirect_total", "Total successful resolutions")
RESOLUTION_FAILURES = Counter(
    "resolution_failures_total",
    "Failed resolutions by reason",
    ["reason"]
)
CODE_COLLISIONS = Counter("code_collisions_total", "Random short code collisions")
CLICKS_RECORDED = Counter("clicks_recorded_total", "Click events persisted")
CLICK_FAILURES = Counter("click_failures_total", "Click events that failed to persist")
LINKS_EXPIRED = Counter("links_expired_total", "Links deactivated by the expiry sweep")


class PrometheusMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        start_time = time.perf_counter()

        response = await call_next(request)

        process_time = time.perf_counter() - start_time

        status_code = str(response.status_code)
        method = request.method
        path = request.url.path

        # Collapse codes and ids so label cardinality stays bounded
        if path.startswith("/v1/links/"):
             metric_path = "/v1/links/{key}"
        elif path in ("/v1/links", "/metrics", "/health"):
             metric_path = path
        elif len(path) > 1 and "/" not in path[1:]:
             metric_path = "/{code}"
        else:
             metric_path = path

        HTTP_REQUESTS_TOTAL.labels(method=method, path=metric_path, status=status_code).inc()
        HTTP_REQUEST_DURATION_SECONDS.labels(method=method, path=metric_path).observe(process_time)

        return response

def metrics_endpoint(request: Request):
    return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
