"""Request middleware: logging context and request timing."""

import time
from collections.abc import Awaitable, Callable

import structlog
from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from learnhub.core.context import (
    clear_context,
    set_correlation_id,
    set_request_id,
    set_trace_id,
)


logger = structlog.get_logger(__name__)


def trace_id_from_traceparent(traceparent: str | None) -> str | None:
    """Trace id of a W3C ``traceparent`` header (``version-trace-parent-flags``)."""
    if not traceparent:
        return None
    parts = traceparent.split("-")
    return parts[1] if len(parts) >= 2 else None


class RequestContextMiddleware(BaseHTTPMiddleware):
    """Fresh logging context for every request.

    Takes the request and correlation ids from the client when given,
    logs start and completion with the duration, echoes both ids back as
    response headers and clears the context once the response is out.
    """

    REQUEST_ID_HEADER = "X-Request-ID"
    CORRELATION_ID_HEADER = "X-Correlation-ID"
    TRACE_ID_HEADER = "X-Trace-ID"
    TRACEPARENT_HEADER = "traceparent"

    def __init__(
        self,
        app: ASGIApp,
        log_requests: bool = True,
        exclude_paths: list[str] | None = None,
    ) -> None:
        super().__init__(app)
        self.log_requests = log_requests
        self.exclude_paths = tuple(exclude_paths or ["/health"])

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        started = time.perf_counter()
        headers = request.headers

        request_id = set_request_id(headers.get(self.REQUEST_ID_HEADER))
        correlation_id = headers.get(self.CORRELATION_ID_HEADER)
        set_correlation_id(correlation_id)
        set_trace_id(
            headers.get(self.TRACE_ID_HEADER)
            or trace_id_from_traceparent(headers.get(self.TRACEPARENT_HEADER))
        )
        request.state.request_id = request_id

        should_log = self.log_requests and not request.url.path.startswith(
            self.exclude_paths
        )
        if should_log:
            logger.info("request_started", method=request.method, path=request.url.path)

        try:
            response = await call_next(request)
        except Exception as e:
            logger.exception(
                "request_failed",
                method=request.method,
                path=request.url.path,
                error_type=type(e).__name__,
                duration_ms=_elapsed_ms(started),
            )
            raise
        else:
            if should_log:
                log = logger.warning if response.status_code >= 400 else logger.info
                log(
                    "request_completed",
                    method=request.method,
                    path=request.url.path,
                    status_code=response.status_code,
                    duration_ms=_elapsed_ms(started),
                )
            response.headers[self.REQUEST_ID_HEADER] = request_id
            if correlation_id:
                response.headers[self.CORRELATION_ID_HEADER] = correlation_id
            return response
        finally:
            clear_context()


def _elapsed_ms(started: float) -> float:
    return round((time.perf_counter() - started) * 1000, 2)
