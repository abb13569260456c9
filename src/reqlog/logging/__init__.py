"""Structured logging utilities with request identifier propagation."""

from .context import (
    RequestContext,
    current_request_context,
    get_request_id,
    new_req_id,
    record_error,
    request_scope,
)
from .setup import (
    LoggerProvider,
    RequestContextFilter,
    default,
    from_ctx,
    get_provider,
    init_logging,
    with_req_id,
)

__all__ = [
    "init_logging",
    "default",
    "from_ctx",
    "with_req_id",
    "new_req_id",
    "get_provider",
    "get_request_id",
    "current_request_context",
    "record_error",
    "request_scope",
    "LoggerProvider",
    "RequestContext",
    "RequestContextFilter",
]
