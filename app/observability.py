import logging
import uuid
from time import perf_counter

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from app.metrics import REQUEST_COUNT, REQUEST_ERRORS, REQUEST_LATENCY

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


def _route_path(request: Request) -> str:
    route = request.scope.get("route")
    path = getattr(route, "path", None)
    return path or request.url.path


class ObservabilityMiddleware(BaseHTTPMiddleware):
    """Request id propagation plus Prometheus request metrics."""

    async def dispatch(self, request: Request, call_next):
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        request.state.request_id = request_id
        started = perf_counter()
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
        finally:
            duration = perf_counter() - started
            path = _route_path(request)
            labels = {
                "method": request.method,
                "path": path,
                "status": str(status_code),
            }
            REQUEST_COUNT.labels(**labels).inc()
            REQUEST_LATENCY.labels(**labels).observe(duration)
            if status_code >= 500:
                REQUEST_ERRORS.labels(**labels).inc()
            logger.debug(
                "%s %s -> %s (%.1f ms)",
                request.method,
                path,
                status_code,
                duration * 1000,
                extra={"request_id": request_id},
            )
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
