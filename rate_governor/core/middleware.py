"""HTTP middleware for request correlation and access logging.

Every request/response pair carries a request id (incoming X-Request-ID or a
fresh UUID), stored in contextvars so rate limit and error logs emitted while
handling the request can be correlated.

Usage:
    app.middleware("http")(request_id_middleware)
"""

from __future__ import annotations

import logging
import time
import uuid

from fastapi import Request, Response

from rate_governor.core.config import settings
from rate_governor.core.logging import clear_request_id, set_request_id

logger = logging.getLogger(__name__)


async def request_id_middleware(request: Request, call_next) -> Response:
    """Assign a request id, time the request and log its completion.

    Side Effects:
        - Sets request_id in contextvars for the duration of the request
        - Adds the request id header (LOG_REQUEST_ID_HEADER) to the response
        - Adds X-Request-Duration-ms to the response
        - Logs ``request.completed`` with status, duration and whether the
          request was rejected by rate limiting
    """

    header_name = settings.log.request_id_header
    request_id = request.headers.get(header_name) or str(uuid.uuid4())
    set_request_id(request_id)
    start = time.perf_counter()
    try:
        response: Response = await call_next(request)
        duration_ms = (time.perf_counter() - start) * 1000
        logger.info(
            "request.completed",
            extra={
                "method": request.method,
                "path": request.url.path,
                "status_code": response.status_code,
                "duration_ms": round(duration_ms, 2),
                "rate_limited": response.status_code == 429,
            },
        )
    finally:
        clear_request_id()

    response.headers[header_name] = request_id
    response.headers.setdefault("X-Request-Duration-ms", f"{duration_ms:.2f}")
    return response
