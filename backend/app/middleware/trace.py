import time
import uuid
import logging

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from backend.app.core.logging import correlation_id_ctx, event_id_ctx, user_id_ctx

logger = logging.getLogger(__name__)

# Probe endpoints are logged at DEBUG to keep request logs readable
_QUIET_PATHS = {"/health", "/ready"}


class TracingMiddleware(BaseHTTPMiddleware):
    """
    Correlation and event IDs for every request.

    The correlation ID is taken from X-Correlation-ID (or X-Trace-ID) when the
    frontend sends one, so a sync triggered from a job page can be followed
    through every log line it produces. The user context starts empty and is
    filled in by the auth dependencies.
    """
    async def dispatch(self, request: Request, call_next):
        correlation_id = request.headers.get("X-Correlation-ID") or \
                         request.headers.get("X-Trace-ID") or \
                         str(uuid.uuid4())
        event_id = str(uuid.uuid4())

        correlation_id_ctx.set(correlation_id)
        event_id_ctx.set(event_id)
        user_id_ctx.set(None)

        start_time = time.perf_counter()
        request_data = {
            "method": request.method,
            "path": request.url.path,
            "client_ip": request.client.host if request.client else None,
        }

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                f"Request failed: {request.method} {request.url.path}",
                extra={"extra_data": {
                    **request_data,
                    "status_code": 500,
                    "duration_ms": _elapsed_ms(start_time),
                    "error": str(e),
                }},
                exc_info=True,
            )
            raise

        duration_ms = _elapsed_ms(start_time)
        level = logging.DEBUG if request.url.path in _QUIET_PATHS else logging.INFO
        logger.log(
            level,
            f"{request.method} {request.url.path} -> {response.status_code}",
            extra={"extra_data": {**request_data, "status_code": response.status_code, "duration_ms": duration_ms}},
        )

        response.headers["X-Correlation-ID"] = correlation_id
        response.headers["X-Event-ID"] = event_id
        response.headers["X-Trace-ID"] = correlation_id
        response.headers["X-Response-Time-Ms"] = str(duration_ms)
        return response


def _elapsed_ms(start: float) -> float:
    return round((time.perf_counter() - start) * 1000, 2)
