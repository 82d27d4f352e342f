"""Request correlation and access logging middleware."""

import logging
import time
import uuid
from typing import Callable, Optional, Sequence

import structlog
from fastapi import Request, Response
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from .config import settings
from .observability import metrics_collector

logger = logging.getLogger(__name__)


class RequestIDMiddleware(BaseHTTPMiddleware):
    """
    Attach a request ID to every request and response.

    The ID comes from the ``X-Request-ID`` header when the client sends one.
    It is bound into the structlog context so every log line of the request
    carries it.
    """

    def __init__(self, app: ASGIApp, header_name: str = "X-Request-ID"):
        super().__init__(app)
        self.header_name = header_name

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        request_id = request.headers.get(self.header_name) or str(uuid.uuid4())
        request.state.request_id = request_id

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        response = await call_next(request)
        response.headers[self.header_name] = request_id
        return response


class LoggingMiddleware(BaseHTTPMiddleware):
    """
    Log each request with its outcome and feed the request metrics.

    Metrics are labelled with the route template (``/api/v1/tours/{tour_id}``)
    rather than the raw path so tour IDs do not explode label cardinality.
    """

    def __init__(
        self,
        app: ASGIApp,
        log_query: bool = False,
        skip_paths: Optional[Sequence[str]] = None,
    ):
        super().__init__(app)
        self.log_query = log_query
        self.skip_paths = frozenset(skip_paths or ("/health", "/metrics", "/favicon.ico"))

    @staticmethod
    def _client_ip(request: Request) -> str:
        forwarded_for = request.headers.get("X-Forwarded-For")
        if forwarded_for:
            return forwarded_for.split(",")[0].strip()
        if request.client:
            return request.client.host
        return "unknown"

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path in self.skip_paths:
            return await call_next(request)

        start_time = time.perf_counter()
        request_id = getattr(request.state, "request_id", "unknown")
        log_data = {
            "method": request.method,
            "path": request.url.path,
            "client_ip": self._client_ip(request),
        }
        if self.log_query and request.url.query:
            log_data["query"] = request.url.query

        try:
            response = await call_next(request)
        except Exception:
            logger.error("Unhandled error escaped the application", extra=log_data, exc_info=True)
            response = JSONResponse(
                status_code=500,
                content={
                    "status": "error",
                    "message": "Something went very wrong!",
                    "statusCode": 500,
                    "requestId": request_id,
                },
            )

        duration = time.perf_counter() - start_time
        route = request.scope.get("route")
        metrics_collector.record_request(
            method=request.method,
            endpoint=getattr(route, "path", "unmatched"),
            status_code=response.status_code,
            duration=duration,
        )

        log_data.update({
            "status_code": response.status_code,
            "duration_ms": round(duration * 1000, 2),
        })
        if response.status_code >= 500:
            logger.error("Request failed", extra=log_data)
        elif response.status_code >= 400:
            logger.warning("Request rejected", extra=log_data)
        else:
            logger.info("Request completed", extra=log_data)

        return response


def setup_middleware(app, enable_logging: bool = True) -> None:
    """
    Install the middleware stack on the app.

    Middleware added last runs first, so the request ID is bound before
    the access log line is written.
    """
    if enable_logging:
        app.add_middleware(LoggingMiddleware, log_query=not settings.is_production)
    app.add_middleware(RequestIDMiddleware)
