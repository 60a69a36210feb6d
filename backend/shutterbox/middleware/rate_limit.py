"""
ShutterBox Backend — Per-Client Rate Limiting
===============================================

What:  Sliding-window request allowance per client address. Over-limit
       requests are answered 429 with a Retry-After header before reaching
       any route.
How:   One deque of request timestamps per address; timestamps older than
       the window are dropped from the left on each request. Addresses idle
       for a full window are forgotten periodically.

In-process state: each worker enforces its own allowance.
"""

import logging
import time
from collections import deque
from typing import Deque, Dict, Optional

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response

from shutterbox.config import settings
from shutterbox.exceptions import RateLimitExceededError
from shutterbox.middleware.request_id import request_id_var

logger = logging.getLogger(__name__)

UNLIMITED_PATHS = frozenset({"/health", "/docs", "/redoc", "/openapi.json"})
_SWEEP_EVERY = 1000


class RateLimitMiddleware(BaseHTTPMiddleware):

    def __init__(
        self,
        app,
        max_requests: Optional[int] = None,
        window_seconds: Optional[int] = None,
    ):
        super().__init__(app)
        self.max_requests = max_requests or settings.rate_limit_requests
        self.window_seconds = window_seconds or settings.rate_limit_window
        self._hits: Dict[str, Deque[float]] = {}
        self._since_sweep = 0

    def _over_limit(self, client: str, now: float) -> Optional[int]:
        """Seconds until the client may retry, or None after recording the hit."""
        hits = self._hits.setdefault(client, deque())
        horizon = now - self.window_seconds
        while hits and hits[0] <= horizon:
            hits.popleft()

        if len(hits) >= self.max_requests:
            return int(hits[0] - horizon) + 1

        hits.append(now)
        return None

    def _sweep(self, now: float) -> None:
        horizon = now - self.window_seconds
        idle = [client for client, hits in self._hits.items() if not hits or hits[-1] <= horizon]
        for client in idle:
            del self._hits[client]
        logger.debug("Rate limiter forgot %d idle clients", len(idle))

    async def dispatch(
        self, request: Request, call_next: RequestResponseEndpoint
    ) -> Response:
        if request.url.path in UNLIMITED_PATHS:
            return await call_next(request)

        client = request.client.host if request.client else "unknown"
        now = time.time()
        retry_after = self._over_limit(client, now)

        if retry_after is not None:
            logger.warning(
                "Client %s over limit (%d requests / %ds)",
                client,
                self.max_requests,
                self.window_seconds,
            )
            error = RateLimitExceededError(retry_after=retry_after)
            return JSONResponse(
                status_code=429,
                content={
                    "error": "rate_limit_exceeded",
                    "message": error.message,
                    "details": error.context,
                    "request_id": request_id_var.get("") or None,
                },
                headers={"Retry-After": str(retry_after)},
            )

        self._since_sweep += 1
        if self._since_sweep >= _SWEEP_EVERY:
            self._since_sweep = 0
            self._sweep(now)

        return await call_next(request)
