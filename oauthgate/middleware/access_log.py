# oauthgate/middleware/access_log.py
import logging
import time
import uuid

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware

logger = logging.getLogger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


class AccessLogMiddleware(BaseHTTPMiddleware):
    """One log line per request, tagged with a fresh request id."""

    async def dispatch(self, request: Request, call_next):
        request_id = uuid.uuid4().hex
        request.state.request_id = request_id
        start = time.perf_counter()

        response = await call_next(request)

        elapsed_ms = (time.perf_counter() - start) * 1000
        response.headers[REQUEST_ID_HEADER] = request_id
        logger.info(
            "%s %s%s %d %.1fms",
            request.method,
            request.url.hostname,
            request.url.path,
            response.status_code,
            elapsed_ms,
            extra={"request_id": request_id, "status": response.status_code},
        )
        return response
