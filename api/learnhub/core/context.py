"""Per-request logging context.

The middleware fills these in when a request arrives and the auth dependency
adds the caller. The ``add_context_processor`` log processor copies every
non-empty value into each event, so a ledger event such as
``enrollment_approved`` can be traced back to its request and actor.
"""

from contextvars import ContextVar
from typing import Any
from uuid import UUID, uuid4


request_id_var: ContextVar[str] = ContextVar("request_id", default="")
user_id_var: ContextVar[str | None] = ContextVar("user_id", default=None)
trace_id_var: ContextVar[str | None] = ContextVar("trace_id", default=None)
correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)

_CONTEXT_VARS: tuple[ContextVar[Any], ...] = (
    request_id_var,
    user_id_var,
    trace_id_var,
    correlation_id_var,
)


def set_request_id(request_id: str | None = None) -> str:
    """Use the incoming X-Request-ID, or generate one. Returns the value set."""
    rid = request_id or str(uuid4())
    request_id_var.set(rid)
    return rid


def get_request_id() -> str:
    return request_id_var.get()


def set_user_id(user_id: str | UUID | None) -> None:
    user_id_var.set(None if user_id is None else str(user_id))


def set_trace_id(trace_id: str | None) -> None:
    trace_id_var.set(trace_id)


def set_correlation_id(correlation_id: str | None) -> None:
    """Id shared by every request of one client-side flow (e.g. a grading session)."""
    correlation_id_var.set(correlation_id)


def get_context() -> dict[str, Any]:
    """Non-empty context values keyed by variable name."""
    return {var.name: value for var in _CONTEXT_VARS if (value := var.get())}


def clear_context() -> None:
    """Reset every context variable at the end of a request."""
    request_id_var.set("")
    for var in _CONTEXT_VARS[1:]:
        var.set(None)
