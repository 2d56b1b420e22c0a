# Core infrastructure
from src.core.context import RequestContext, get_request_id, set_request_id
from src.core.exceptions import AppError
from src.core.logging import configure_structlog, get_logger
from src.core.middleware import RequestContextMiddleware


__all__ = [
    "AppError",
    "RequestContext",
    "RequestContextMiddleware",
    "configure_structlog",
    "get_logger",
    "get_request_id",
    "set_request_id",
]
