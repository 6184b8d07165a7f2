"""HTTP middleware wrapping the user service application."""

from __future__ import annotations

import logging
import math
import threading
import time
import uuid
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, Optional, Tuple

from fastapi import HTTPException, Request, status
from fastapi.responses import JSONResponse
from starlette.datastructures import Headers
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response
from starlette.types import ASGIApp, Message, Receive, Scope, Send

access_logger = logging.getLogger("userservice.access")

RATE_LIMIT_MESSAGE = "Too many requests, please try again later."
PAYLOAD_TOO_LARGE_MESSAGE = "Payload Too Large"

SECURITY_HEADERS: Tuple[Tuple[str, str], ...] = (
    ("X-Content-Type-Options", "nosniff"),
    ("X-Frame-Options", "SAMEORIGIN"),
    ("X-DNS-Prefetch-Control", "off"),
    ("Referrer-Policy", "no-referrer"),
    ("Cross-Origin-Resource-Policy", "same-origin"),
    ("Cross-Origin-Opener-Policy", "same-origin"),
)


def client_address(request: Request) -> str:
    if request.client is None:
        return "unknown"
    return request.client.host


@dataclass
class _Window:
    started_at: float
    hits: int = 0


@dataclass(frozen=True)
class RateLimitDecision:
    allowed: bool
    limit: int
    remaining: int
    reset_after: int


class RateLimiter:
    """Fixed-window request counter keyed by client."""

    def __init__(
        self,
        max_requests: int,
        window_seconds: int,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if max_requests < 1:
            raise ValueError("max_requests must be positive")
        if window_seconds < 1:
            raise ValueError("window_seconds must be positive")
        self.max_requests = max_requests
        self.window_seconds = window_seconds
        self._clock = clock
        self._windows: Dict[str, _Window] = {}
        self._lock = threading.Lock()

    def hit(self, key: str) -> RateLimitDecision:
        now = self._clock()
        with self._lock:
            self._expire(now)
            window = self._windows.get(key)
            if window is None:
                window = _Window(started_at=now)
                self._windows[key] = window
            window.hits += 1
            hits = window.hits
            reset_after = window.started_at + self.window_seconds - now

        return RateLimitDecision(
            allowed=hits <= self.max_requests,
            limit=self.max_requests,
            remaining=max(self.max_requests - hits, 0),
            reset_after=max(int(math.ceil(reset_after)), 0),
        )

    def reset(self, key: Optional[str] = None) -> None:
        with self._lock:
            if key is None:
                self._windows.clear()
            else:
                self._windows.pop(key, None)

    def _expire(self, now: float) -> None:
        expired = [
            key
            for key, window in self._windows.items()
            if now - window.started_at >= self.window_seconds
        ]
        for key in expired:
            del self._windows[key]


class RateLimitMiddleware(BaseHTTPMiddleware):
    def __init__(
        self,
        app: ASGIApp,
        limiter: RateLimiter,
        key_func: Callable[[Request], str] = client_address,
    ) -> None:
        super().__init__(app)
        self.limiter = limiter
        self.key_func = key_func

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        decision = self.limiter.hit(self.key_func(request))
        headers = {
            "RateLimit-Limit": str(decision.limit),
            "RateLimit-Remaining": str(decision.remaining),
            "RateLimit-Reset": str(decision.reset_after),
        }
        if not decision.allowed:
            headers["Retry-After"] = str(decision.reset_after)
            return JSONResponse(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                content={"error": RATE_LIMIT_MESSAGE},
                headers=headers,
            )

        response = await call_next(request)
        response.headers.update(headers)
        return response


class BodySizeLimitMiddleware:
    """Reject request bodies larger than ``max_bytes``.

    A declared ``Content-Length`` is checked before the request is dispatched.
    Bodies without one (chunked uploads) are counted as the application reads
    them, and reading past the limit raises a 413 ``HTTPException``.
    """

    def __init__(self, app: ASGIApp, max_bytes: int) -> None:
        self.app = app
        self.max_bytes = max_bytes

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        declared = Headers(scope=scope).get("content-length")
        if declared is not None:
            try:
                length = int(declared)
            except ValueError:
                response = JSONResponse(
                    status_code=status.HTTP_400_BAD_REQUEST,
                    content={"error": "Invalid Content-Length header"},
                )
                await response(scope, receive, send)
                return
            if length > self.max_bytes:
                response = JSONResponse(
                    status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                    content={"error": PAYLOAD_TOO_LARGE_MESSAGE},
                )
                await response(scope, receive, send)
                return

        received = 0

        async def limited_receive() -> Message:
            nonlocal received
            message = await receive()
            if message["type"] == "http.request":
                received += len(message.get("body", b""))
                if received > self.max_bytes:
                    raise HTTPException(
                        status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                        detail=PAYLOAD_TOO_LARGE_MESSAGE,
                    )
            return message

        await self.app(scope, limited_receive, send)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    def __init__(self, app: ASGIApp, headers: Iterable[Tuple[str, str]] = SECURITY_HEADERS) -> None:
        super().__init__(app)
        self.headers = tuple(headers)

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        response = await call_next(request)
        for name, value in self.headers:
            response.headers.setdefault(name, value)
        if "server" in response.headers:
            del response.headers["server"]
        return response


class AccessLogMiddleware(BaseHTTPMiddleware):
    """Emit one log line per request and tag responses with a request id."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex[:8]
        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            access_logger.error(
                "%s %s %s failed after %.2fms [%s]",
                client_address(request),
                request.method,
                request.url.path,
                (time.perf_counter() - started) * 1000,
                request_id,
            )
            raise

        access_logger.info(
            '%s "%s %s" %s %.2fms [%s]',
            client_address(request),
            request.method,
            request.url.path,
            response.status_code,
            (time.perf_counter() - started) * 1000,
            request_id,
        )
        response.headers["X-Request-ID"] = request_id
        return response


__all__ = [
    "AccessLogMiddleware",
    "BodySizeLimitMiddleware",
    "PAYLOAD_TOO_LARGE_MESSAGE",
    "RATE_LIMIT_MESSAGE",
    "RateLimitDecision",
    "RateLimitMiddleware",
    "RateLimiter",
    "SecurityHeadersMiddleware",
    "client_address",
]
