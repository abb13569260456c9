import time

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response
from starlette.types import ASGIApp

from ..config.env import LoggingSettings, get_settings
from ..logging.context import RequestContext, new_req_id, reset_request_context, set_request_context
from ..logging.setup import LoggerProvider, get_provider, with_req_id

COMPLETION_EVENT = "request completed"


def completion_level(status: int) -> str:
    """Pick the log method for a completed request from its status code"""
    if status >= 500:
        return "error"
    if status >= 400:
        return "warning"
    return "info"


def client_ip(request: Request, trust_forwarded: bool = False) -> str:
    """Extract client IP from request, optionally honouring proxy headers"""
    if trust_forwarded:
        forwarded_for = request.headers.get("x-forwarded-for")
        if forwarded_for:
            # First entry is the original client
            return forwarded_for.split(",")[0].strip()

        real_ip = request.headers.get("x-real-ip")
        if real_ip:
            return real_ip.strip()

    if request.client:
        return request.client.host

    return "unknown"


class RequestLoggerMiddleware(BaseHTTPMiddleware):
    """
    Creates the request-scoped logger and request ID, then logs request completion.

    Install it as the outermost middleware so every other layer runs inside
    the request context. The request ID is:
    1. Taken from the X-Request-ID header if present and non-empty
    2. Generated as a new UUID v4 otherwise
    3. Bound on the request logger together with method, path and client IP
    4. Stored on request.state.request_context and in a ContextVar
    5. Bound to structlog contextvars for every logger used during the request
    6. Returned in the response X-Request-ID header

    The completion line lists the messages handed to record_error() under
    ``errors``. Starlette keeps no per-request error list of its own, so this
    key replaces a framework-specific one such as gin's ``gin_errors``.
    """

    def __init__(
        self,
        app: ASGIApp,
        provider: LoggerProvider | None = None,
        settings: LoggingSettings | None = None,
    ) -> None:
        super().__init__(app)
        self.provider = provider
        self.settings = settings or get_settings()

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        start_time = time.perf_counter()
        provider = self.provider or get_provider()

        req_id = request.headers.get(self.settings.request_id_header) or new_req_id()

        logger = with_req_id(provider.default(), req_id).bind(
            method=request.method,
            path=request.url.path,
            ip=client_ip(request, self.settings.trust_forwarded_headers),
        )

        ctx = RequestContext(req_id=req_id, logger=logger, start_time=start_time)
        request.state.request_context = ctx
        token = set_request_context(ctx)

        try:
            with structlog.contextvars.bound_contextvars(req_id=req_id):
                try:
                    response = await call_next(request)
                except Exception:
                    # Nothing inside recovered; the framework answers with a 500
                    self._log_completion(request, ctx, 500)
                    raise
        finally:
            reset_request_context(token)

        if self.settings.echo_request_id:
            response.headers[self.settings.request_id_header] = req_id

        self._log_completion(request, ctx, response.status_code)
        return response

    def _log_completion(self, request: Request, ctx: RequestContext, status: int) -> None:
        fields = {
            "status": status,
            "latency": round(ctx.elapsed(), 6),
            "user_agent": request.headers.get("user-agent", ""),
        }
        if ctx.errors:
            fields["errors"] = list(ctx.errors)

        log = getattr(ctx.logger, completion_level(status))
        log(COMPLETION_EVENT, **fields)
