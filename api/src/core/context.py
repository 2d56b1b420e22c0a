"""Request context management using contextvars.

Each HTTP request, and each background job spawned by one, carries a
request id, the authenticated user id and an optional correlation id.
Log processors read them from here so call sites never pass them around.
"""

from contextvars import ContextVar, Token
from typing import Any
from uuid import UUID, uuid4


request_id_var: ContextVar[str] = ContextVar("request_id", default="")
user_id_var: ContextVar[str | None] = ContextVar("user_id", default=None)
correlation_id_var: ContextVar[str | None] = ContextVar("correlation_id", default=None)

_VARS: dict[str, ContextVar] = {
    "request_id": request_id_var,
    "user_id": user_id_var,
    "correlation_id": correlation_id_var,
}


def generate_request_id() -> str:
    """Generate a new unique request ID."""
    return str(uuid4())


def get_request_id() -> str:
    return request_id_var.get()


def set_request_id(request_id: str | None = None) -> str:
    """Set the request ID for the current context, generating one if missing."""
    rid = request_id or generate_request_id()
    request_id_var.set(rid)
    return rid


def set_user_id(user_id: str | UUID | None) -> None:
    user_id_var.set(str(user_id) if user_id is not None else None)


def set_correlation_id(correlation_id: str | None) -> None:
    correlation_id_var.set(correlation_id)


def get_context() -> dict[str, Any]:
    """Return the non-empty context variables as a dictionary."""
    return {name: var.get() for name, var in _VARS.items() if var.get()}


def clear_context() -> None:
    """Reset all context variables.

    Called at the end of each request to prevent leakage between requests.
    """
    request_id_var.set("")
    user_id_var.set(None)
    correlation_id_var.set(None)


class RequestContext:
    """Context manager binding context variables for a unit of work.

    Background jobs use it to log under their own request id while keeping
    the id of the HTTP request that spawned them as correlation id:

        with RequestContext(user_id=job.user_id, correlation_id=job.origin):
            log.info("auto_chain_processing")
    """

    def __init__(
        self,
        request_id: str | None = None,
        user_id: str | UUID | None = None,
        correlation_id: str | None = None,
    ) -> None:
        self.request_id = request_id
        self.user_id = user_id
        self.correlation_id = correlation_id
        self._tokens: dict[str, Token] = {}

    def __enter__(self) -> "RequestContext":
        self._tokens["request_id"] = request_id_var.set(
            self.request_id or generate_request_id()
        )
        if self.user_id is not None:
            self._tokens["user_id"] = user_id_var.set(str(self.user_id))
        if self.correlation_id is not None:
            self._tokens["correlation_id"] = correlation_id_var.set(self.correlation_id)
        return self

    def __exit__(self, *_: object) -> None:
        for name, token in self._tokens.items():
            _VARS[name].reset(token)
        self._tokens.clear()
