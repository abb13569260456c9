# Assumptions:
# - Last line of defence for exceptions escaping route handlers
# - Full diagnostics go to the log, never to the client

import traceback

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.types import ASGIApp

from ..config.env import LoggingSettings, get_settings
from ..logging.setup import LoggerProvider, from_ctx, get_provider

INTERNAL_ERROR_BODY = {"message": "internal server error"}


class RecoveryMiddleware(BaseHTTPMiddleware):
    """
    Turn uncaught exceptions into a logged, generic 500 response.

    When it sits outside RequestLoggerMiddleware the 500 is built here, after
    the request middleware has returned, so the request ID header is echoed
    on it from request.state.
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
        try:
            return await call_next(request)

        except Exception as exc:
            provider = self.provider or get_provider()
            logger = from_ctx(request, provider.service_name)
            logger.error(
                "panic recovered",
                panic=str(exc),
                error_type=type(exc).__name__,
                stack=traceback.format_exc(),
                path=request.url.path,
            )

            headers = {}
            ctx = getattr(request.state, "request_context", None)
            if ctx is not None and self.settings.echo_request_id:
                headers[self.settings.request_id_header] = ctx.req_id
            return JSONResponse(status_code=500, content=INTERNAL_ERROR_BODY, headers=headers)
