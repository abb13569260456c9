"""Request-scoped context: identifier generation and the per-request record."""

import contextvars
import time
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Iterator

import structlog


def new_req_id() -> str:
    """Generate a new request ID (UUID v4)"""
    return str(uuid.uuid4())


@dataclass
class RequestContext:
    """
    Everything the logging layer keeps for one request.

    Attributes:
        req_id: Request identifier, propagated or generated
        logger: Logger bound with the request attributes
        start_time: ``time.perf_counter()`` reading taken when the request started
        errors: Errors recorded by handlers, reported on the completion line
    """

    req_id: str
    logger: Any
    start_time: float = field(default_factory=time.perf_counter)
    errors: list[str] = field(default_factory=list)

    def add_error(self, error: object) -> None:
        self.errors.append(str(error))

    def elapsed(self) -> float:
        """Seconds since the request started"""
        return time.perf_counter() - self.start_time


_request_context_var: contextvars.ContextVar[RequestContext | None] = contextvars.ContextVar(
    "reqlog_request_context", default=None
)


def set_request_context(ctx: RequestContext | None) -> contextvars.Token:
    """Set request context and return the token to allow reset"""
    return _request_context_var.set(ctx)


def reset_request_context(token: contextvars.Token) -> None:
    """Restore the request context saved by set_request_context()"""
    _request_context_var.reset(token)


def current_request_context() -> RequestContext | None:
    """Get request context for the current execution context"""
    return _request_context_var.get()


def get_request_id() -> str | None:
    """Get request ID from context"""
    ctx = _request_context_var.get()
    return ctx.req_id if ctx is not None else None


def record_error(error: object, ctx: RequestContext | None = None) -> None:
    """Attach an error to the active request so the completion line reports it"""
    ctx = ctx or _request_context_var.get()
    if ctx is not None:
        ctx.add_error(error)


@contextmanager
def request_scope(logger: Any, req_id: str | None = None) -> Iterator[RequestContext]:
    """
    Bind a request context for work that does not come through HTTP

    Args:
        logger: Parent logger; the scope's logger is derived from it with req_id bound
        req_id: Identifier to use, a new one is generated when omitted

    Yields:
        The active RequestContext
    """
    req_id = req_id or new_req_id()
    ctx = RequestContext(req_id=req_id, logger=logger.bind(req_id=req_id))
    token = set_request_context(ctx)
    try:
        with structlog.contextvars.bound_contextvars(req_id=req_id):
            yield ctx
    finally:
        reset_request_context(token)
