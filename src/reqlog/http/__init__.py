"""HTTP integration: request logging middlewares and request ID aware client."""

from starlette.applications import Starlette

from ..config.env import LoggingSettings
from ..logging.setup import LoggerProvider
from .client import HttpClient, create_http_client
from .dependencies import get_request_logger
from .middleware import RequestLoggerMiddleware, client_ip, completion_level
from .recovery import INTERNAL_ERROR_BODY, RecoveryMiddleware


def install_request_logging(
    app: Starlette,
    provider: LoggerProvider | None = None,
    settings: LoggingSettings | None = None,
) -> None:
    """Install recovery and request logging; request logging ends up outermost"""
    app.add_middleware(RecoveryMiddleware, provider=provider, settings=settings)
    app.add_middleware(RequestLoggerMiddleware, provider=provider, settings=settings)


__all__ = [
    "install_request_logging",
    "RequestLoggerMiddleware",
    "RecoveryMiddleware",
    "INTERNAL_ERROR_BODY",
    "HttpClient",
    "create_http_client",
    "get_request_logger",
    "client_ip",
    "completion_level",
]
