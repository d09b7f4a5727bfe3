"""Custom middleware for the agent relay."""

import secrets
import time
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from agent_relay.core.envelope import error_response
from agent_relay.core.exceptions import RequestTooLargeError
from agent_relay.core.logging import get_logger, request_context

logger = get_logger(__name__)


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Middleware to inject request context for logging."""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """Process request with context."""
        request_id = request.headers.get("X-Request-ID") or secrets.token_hex(8)
        start_time = time.perf_counter()

        ctx = {
            "request_id": request_id,
            "path": request.url.path,
            "method": request.method,
        }
        token = request_context.set(ctx)

        try:
            response = await call_next(request)

            duration_ms = (time.perf_counter() - start_time) * 1000
            logger.info(
                f"{request.method} {request.url.path} -> {response.status_code}",
                data={"duration_ms": round(duration_ms, 2)},
            )

            response.headers["X-Request-ID"] = request_id
            return response

        finally:
            request_context.reset(token)


class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    """Enforce a maximum request body size.

    - Declared Content-Length above ``max_bytes`` is rejected up front.
    - Chunked or unknown-length bodies are counted as they are received.
    """

    def __init__(self, app, max_bytes: int = 262144):
        super().__init__(app)
        self.max_bytes = max_bytes

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """Check request size before processing."""
        content_length = request.headers.get("content-length")
        if content_length:
            try:
                declared = int(content_length)
            except ValueError:
                return error_response(400, "Invalid Content-Length header")

            if declared > self.max_bytes:
                logger.warning(
                    f"Request too large: {declared} bytes",
                    data={"max_bytes": self.max_bytes},
                )
                return error_response(413, "Request body too large")

        received = 0
        original_receive = request._receive  # type: ignore[attr-defined]

        async def limited_receive():
            nonlocal received
            message = await original_receive()
            if message["type"] == "http.request":
                received += len(message.get("body", b"") or b"")
                if received > self.max_bytes:
                    raise RequestTooLargeError(self.max_bytes, received)
            return message

        request._receive = limited_receive  # type: ignore[attr-defined]

        try:
            return await call_next(request)
        except RequestTooLargeError as exc:
            logger.warning(
                "Streamed request body too large",
                data={"max_bytes": exc.max_bytes, "received_bytes": exc.received_bytes},
            )
            return error_response(exc.status_code, exc.message)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses.

    The relay only ever returns JSON, so framing and MIME sniffing are denied
    outright.
    """

    SECURITY_HEADERS = {
        "X-Content-Type-Options": "nosniff",
        "Referrer-Policy": "no-referrer",
        "X-Frame-Options": "DENY",
        "Cache-Control": "no-store",
    }

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """Add security headers to response."""
        response = await call_next(request)

        for header, value in self.SECURITY_HEADERS.items():
            if header not in response.headers:
                response.headers[header] = value

        return response
