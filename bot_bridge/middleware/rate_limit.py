"""
Fixed-window rate limiting for the front-end API.

Each client address gets `max_requests` per `window_seconds`. A request is
counted when it arrives and refunded if it ends with a status of 400 or
above or raises. A rejected request answers 429 and degrades the
rate_limiter health component.
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import PlainTextResponse, Response

from bot_bridge.metrics import RATE_LIMITED
from bot_bridge.services.health import Component

logger = logging.getLogger(__name__)


@dataclass
class _Window:
    started_at: float
    count: int = 0


class FixedWindowLimiter:
    def __init__(
        self,
        max_requests: int,
        window_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._lock = threading.Lock()
        self._windows: dict[str, _Window] = {}

    def _current(self, client: str, now: float) -> _Window:
        window = self._windows.get(client)
        if window is None or now - window.started_at >= self.window_seconds:
            window = _Window(started_at=now)
            self._windows[client] = window
        return window

    def _forget_idle(self, now: float) -> None:
        expired = [
            key
            for key, window in self._windows.items()
            if now - window.started_at >= self.window_seconds
        ]
        for key in expired:
            del self._windows[key]

    def acquire(self, client: str) -> bool:
        """Count a hit for `client` if it is under the limit. False means reject."""
        with self._lock:
            now = self._clock()
            self._forget_idle(now)
            window = self._current(client, now)
            if window.count >= self.max_requests:
                return False
            window.count += 1
            return True

    def refund(self, client: str) -> None:
        """Give back a hit taken by acquire() for a request that failed."""
        with self._lock:
            window = self._windows.get(client)
            if window is not None and window.count > 0:
                window.count -= 1

    def retry_after(self, client: str) -> int:
        with self._lock:
            window = self._windows.get(client)
            if window is None:
                return 0
            return max(0, int(window.started_at + self.window_seconds - self._clock()) + 1)


class RateLimitMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, limiter: FixedWindowLimiter, path_prefix: str = "/api/") -> None:
        super().__init__(app)
        self.limiter = limiter
        self.path_prefix = path_prefix

    async def dispatch(self, request: Request, call_next) -> Response:
        if not request.url.path.startswith(self.path_prefix):
            return await call_next(request)

        client = request.client.host if request.client else "unknown"
        if not self.limiter.acquire(client):
            RATE_LIMITED.inc()
            services = getattr(request.app.state, "services", None)
            if services is not None:
                services.health.mark_unhealthy(Component.RATE_LIMITER, f"client {client} throttled")
            logger.warning(
                "Rate limit exceeded",
                extra={"client": client, "path": request.url.path},
            )
            return PlainTextResponse(
                "Too many requests, please try again later.",
                status_code=429,
                headers={"Retry-After": str(self.limiter.retry_after(client))},
            )

        try:
            response = await call_next(request)
        except Exception:
            self.limiter.refund(client)
            raise
        if response.status_code >= 400:
            self.limiter.refund(client)
        return response
