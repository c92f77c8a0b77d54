"""Per-request log context: request id, ledger user and timing."""

from __future__ import annotations

import re
import time
import uuid

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

REQUEST_ID_HEADER = "X-Request-Id"

_USER_PATH = re.compile(r"^/api/v1/users/(\d+)(?:/|$)")


def user_id_from_path(path: str) -> int | None:
    """Ledger user addressed by a ``/api/v1/users/{user_id}/...`` route."""
    match = _USER_PATH.match(path)
    return int(match.group(1)) if match else None


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Bind the request id and ledger user to every log line of a request.

    The id is taken from ``X-Request-Id`` when the caller sends one and is
    echoed back on the response.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        path = request.url.path

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id, method=request.method, path=path)
        user_id = user_id_from_path(path)
        if user_id is not None:
            structlog.contextvars.bind_contextvars(user_id=user_id)

        started = time.perf_counter()
        response = await call_next(request)
        structlog.get_logger(__name__).info(
            "request_completed",
            status_code=response.status_code,
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
        )
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
