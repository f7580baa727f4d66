"""HTTP middleware for request ID propagation and correlation.

Every request/response pair carries a correlation id. Event pushes usually
arrive without one, so the middleware generates a UUID; gateway calls may
forward their own. The id lives in contextvars for the request's lifetime,
together with the event delivery id bound by the event routes.

Usage:
    app.middleware("http")(request_id_middleware)
"""

from __future__ import annotations

import time
import uuid

from fastapi import Request, Response

from quotaflow.core.config import settings
from quotaflow.core.logging import clear_request_id, set_event_id, set_request_id


async def request_id_middleware(request: Request, call_next) -> Response:
    """Bind a request id to the logging context and echo it back.

    The header name comes from ``LOG_REQUEST_ID_HEADER``. The response also
    carries ``X-Request-Duration-ms``, which for event pushes includes the
    whole ingestion pipeline (transcoding and backoff delays).

    Args:
        request: The incoming HTTP request object.
        call_next: The next middleware/route handler in the stack.

    Returns:
        Response with request id and duration headers added.
    """

    header_name = settings.log.request_id_header
    request_id = request.headers.get(header_name) or str(uuid.uuid4())
    set_request_id(request_id)
    start = time.perf_counter()
    try:
        response: Response = await call_next(request)
    finally:
        clear_request_id()
        set_event_id(None)

    duration_ms = (time.perf_counter() - start) * 1000
    response.headers[header_name] = request_id
    response.headers.setdefault("X-Request-Duration-ms", f"{duration_ms:.2f}")
    return response
