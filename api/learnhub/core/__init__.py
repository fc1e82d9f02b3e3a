# Request context, logging and middleware. The database layer is imported
# from learnhub.core.database directly since it depends on the domain models.
from learnhub.core.context import (
    clear_context,
    get_context,
    get_request_id,
    set_correlation_id,
    set_request_id,
    set_trace_id,
    set_user_id,
)
from learnhub.core.logging import configure_structlog, get_logger
from learnhub.core.middleware import RequestContextMiddleware


__all__ = [
    "RequestContextMiddleware",
    "clear_context",
    "configure_structlog",
    "get_context",
    "get_logger",
    "get_request_id",
    "set_correlation_id",
    "set_request_id",
    "set_trace_id",
    "set_user_id",
]
