"""
API Middleware

- Request logging, with the Shopify shop and topic bound to every log line
- Per-client rate limiting of the admin API
- Security headers
"""

import asyncio
import time
from collections import defaultdict, deque
from typing import Callable, Deque, Dict, Tuple

from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
import structlog

from ecotrack.config.logging import bind_request_context, clear_request_context
from ecotrack.shopify.webhooks import SHOP_HEADER, TOPIC_HEADER

logger = structlog.get_logger(__name__)

REQUEST_ID_HEADER = "X-Request-ID"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log each request once on arrival and once with its status and timing"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        started = time.perf_counter()
        request_id = request.headers.get(REQUEST_ID_HEADER) or f"{time.time_ns():x}"

        clear_request_context()
        bind_request_context(
            request_id=request_id,
            **{
                key: request.headers[header]
                for key, header in (("shop", SHOP_HEADER), ("topic", TOPIC_HEADER))
                if header in request.headers
            },
        )

        logger.info("Request started", method=request.method, path=request.url.path)
        response = await call_next(request)
        elapsed_ms = round((time.perf_counter() - started) * 1000, 2)

        log = logger.warning if response.status_code >= 500 else logger.info
        log("Request completed", status_code=response.status_code, duration_ms=elapsed_ms)

        response.headers[REQUEST_ID_HEADER] = request_id
        response.headers["X-Response-Time"] = f"{elapsed_ms}ms"
        return response


class RateLimitMiddleware(BaseHTTPMiddleware):
    """
    Sliding window limit per client address on the admin API.

    Only paths under ``protected_prefix`` count; Shopify webhook deliveries
    and Prometheus scrapes never do. Bulk CSV import applies its own
    batching toward Shopify and counts as one request here.
    """

    def __init__(
        self,
        app,
        max_requests: int = 100,
        window_seconds: int = 60,
        protected_prefix: str = "/api/",
    ):
        super().__init__(app)
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self.protected_prefix = protected_prefix
        self._hits: Dict[str, Deque[float]] = defaultdict(deque)
        self._lock = asyncio.Lock()

    def _evict_idle(self, now: float) -> None:
        """Expire old hits; clients with none left are forgotten."""
        for client_id in list(self._hits):
            hits = self._hits[client_id]
            while hits and now - hits[0] >= self.window_seconds:
                hits.popleft()
            if not hits:
                del self._hits[client_id]

    @property
    def tracked_clients(self) -> int:
        return len(self._hits)

    async def _admit(self, client_id: str) -> Tuple[bool, int]:
        now = time.monotonic()
        async with self._lock:
            self._evict_idle(now)
            hits = self._hits[client_id]
            if len(hits) >= self.max_requests:
                return False, 0
            hits.append(now)
            return True, self.max_requests - len(hits)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if not request.url.path.startswith(self.protected_prefix):
            return await call_next(request)

        client_id = request.client.host if request.client else "unknown"
        admitted, remaining = await self._admit(client_id)
        if not admitted:
            logger.warning("Rate limit exceeded", client=client_id, path=request.url.path)
            return JSONResponse(
                {"error": "Rate limit exceeded"},
                status_code=429,
                headers={
                    "Retry-After": str(self.window_seconds),
                    "X-RateLimit-Limit": str(self.max_requests),
                    "X-RateLimit-Remaining": "0",
                },
            )

        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(self.max_requests)
        response.headers["X-RateLimit-Remaining"] = str(remaining)
        return response


SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Strict-Transport-Security": "max-age=31536000; includeSubDomains",
    "Referrer-Policy": "strict-origin-when-cross-origin",
}


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response = await call_next(request)
        response.headers.update(SECURITY_HEADERS)
        # Swagger UI loads its assets from a CDN
        if not request.url.path.startswith(("/docs", "/redoc")):
            response.headers["Content-Security-Policy"] = "default-src 'self'"
        return response
