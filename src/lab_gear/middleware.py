"""
Logging Middleware for lab_gear

FastAPI middleware for request/response logging with timing and request IDs.
"""

import time
import uuid
from typing import Callable, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from .logging import EventType, clear_request_id, get_logger, get_request_id, set_request_id

REQUEST_ID_HEADER = "X-Request-ID"


class LoggingMiddleware(BaseHTTPMiddleware):
    """Middleware for structured request/response logging."""

    def __init__(
        self,
        app: ASGIApp,
        logger_name: str = "lab_gear.middleware",
        exclude_paths: Optional[list] = None,
    ):
        """
        Initialize logging middleware.

        Args:
            app: ASGI application
            logger_name: Name for the logger instance
            exclude_paths: Exact paths to pass through without logging
        """
        super().__init__(app)
        self.logger = get_logger(logger_name)
        self.exclude_paths = exclude_paths if exclude_paths is not None else ["/healthz"]

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        """Process request and response with logging."""
        if request.url.path in self.exclude_paths:
            return await call_next(request)

        request_id = self._get_or_generate_request_id(request)
        set_request_id(request_id)

        start_time = time.time()
        method = request.method
        path = request.url.path

        try:
            self.logger.log_request_start(
                method=method,
                path=path,
                metadata={
                    "query_params": str(request.query_params) if request.query_params else None,
                    "user_agent": request.headers.get("user-agent"),
                    "client_ip": self._get_client_ip(request),
                },
            )

            response = await call_next(request)

            duration_ms = (time.time() - start_time) * 1000
            self.logger.log_request_end(
                method=method,
                path=path,
                status_code=response.status_code,
                duration_ms=duration_ms,
                metadata={"content_length": response.headers.get("content-length")},
            )

            response.headers[REQUEST_ID_HEADER] = request_id
            return response

        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            self.logger.error(
                f"Request processing error: {method} {path}",
                event_type=EventType.SERVER_ERROR,
                method=method,
                path=path,
                duration_ms=duration_ms,
                metadata={"error": str(e), "error_type": type(e).__name__},
            )
            raise

        finally:
            clear_request_id()

    def _get_or_generate_request_id(self, request: Request) -> str:
        """Get request ID from header or generate new one."""
        request_id = request.headers.get("x-request-id")
        if request_id:
            return request_id

        existing_id = get_request_id()
        if existing_id:
            return existing_id

        return f"req_{uuid.uuid4().hex[:12]}"

    def _get_client_ip(self, request: Request) -> str:
        """Get client IP address from request."""
        forwarded_for = request.headers.get("x-forwarded-for")
        if forwarded_for:
            return forwarded_for.split(",")[0].strip()

        if request.client:
            return request.client.host

        return "unknown"


def add_logging_middleware(app, **kwargs):
    """Add logging middleware to FastAPI app."""
    app.add_middleware(LoggingMiddleware, **kwargs)
    return app
