import time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from promptguess.lib.logger import configure_logger

logger = configure_logger(__name__)


class LoggingMiddleware(BaseHTTPMiddleware):
    """Logs one line per HTTP request with status and latency.

    Server errors are logged at ERROR, rejected requests (4xx) at WARNING.
    """

    async def dispatch(self, request: Request, call_next):
        started = time.perf_counter()
        response: Response = await call_next(request)
        elapsed_ms = round((time.perf_counter() - started) * 1000, 2)

        request_info = {
            "method": request.method,
            "path": request.url.path,
            "client": request.client.host if request.client else "unknown",
        }
        if request.query_params:
            request_info["query_params"] = dict(request.query_params)

        extra = {
            "request": request_info,
            "response": {
                "status_code": response.status_code,
                "process_time_ms": elapsed_ms,
            },
            "event_type": "http_request",
        }
        # Player routes carry the user id in the path
        user_id = request.path_params.get("user_id")
        if user_id:
            extra["user_id"] = user_id

        if response.status_code >= 500:
            log = logger.error
        elif response.status_code >= 400:
            log = logger.warning
        else:
            log = logger.info
        log(f"{request.method} {request.url.path}", extra=extra)

        response.headers["X-Process-Time-Ms"] = str(elapsed_ms)
        return response
