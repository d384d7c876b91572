"""
Request correlation and latency budgets.

Every request carries an X-Request-ID (the caller's, or a fresh UUID) through
request.state, the logging context and the response headers. Requests that
exceed their latency budget are logged as slow. Token verification sits on
the hot path of every downstream service, so it gets a tighter budget than
the interactive auth and config routes.
"""

import time
import uuid
from typing import Callable, Mapping, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from identity_bridge.logging_config import get_logger, request_id_var

logger = get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"
DEFAULT_SLOW_REQUEST_MS = 1000.0


class RequestIdMiddleware(BaseHTTPMiddleware):
    """
    Assign a request ID and log requests that run over budget.

    Args:
        slow_request_ms: Budget for any path without its own entry
        path_budgets: Exact path -> budget in milliseconds
    """

    def __init__(
        self,
        app: ASGIApp,
        slow_request_ms: float = DEFAULT_SLOW_REQUEST_MS,
        path_budgets: Optional[Mapping[str, float]] = None,
    ):
        super().__init__(app)
        self.slow_request_ms = slow_request_ms
        self.path_budgets = dict(path_budgets or {})

    def budget_for(self, path: str) -> float:
        return self.path_budgets.get(path.rstrip("/") or "/", self.slow_request_ms)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        request.state.request_id = request_id
        token = request_id_var.set(request_id)

        try:
            start = time.perf_counter()
            response = await call_next(request)
            duration_ms = (time.perf_counter() - start) * 1000

            response.headers[REQUEST_ID_HEADER] = request_id

            budget_ms = self.budget_for(request.url.path)
            if duration_ms > budget_ms:
                logger.warning(
                    "Slow request",
                    extra={
                        "path": request.url.path,
                        "method": request.method,
                        "status_code": response.status_code,
                        "duration_ms": round(duration_ms, 1),
                        "budget_ms": budget_ms,
                    },
                )

            return response
        finally:
            request_id_var.reset(token)
