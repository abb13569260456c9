import logging
import sys
from typing import Any, TextIO

import structlog
from pythonjsonlogger import jsonlogger
from structlog.processors import CallsiteParameter
from structlog.stdlib import LoggerFactory

from ..config.env import get_settings, parse_level
from .context import RequestContext, current_request_context, get_request_id

JSON_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"
JSON_DATE_FORMAT = "%Y-%m-%dT%H:%M:%S%z"
JSON_RENAME_FIELDS = {"asctime": "timestamp", "levelname": "level", "name": "logger"}

_provider: "LoggerProvider | None" = None


def add_service_context(service_name: str):
    """Add service context to all log entries"""

    def processor(logger, method_name, event_dict):
        # A service bound on the logger wins over the process-wide one
        event_dict.setdefault("service", service_name)
        return event_dict

    return processor


def group_source(logger, method_name, event_dict):
    """Collect callsite parameters under a single ``source`` key"""
    event_dict["source"] = {
        "file": event_dict.pop(CallsiteParameter.PATHNAME.value, None),
        "line": event_dict.pop(CallsiteParameter.LINENO.value, None),
        "function": event_dict.pop(CallsiteParameter.FUNC_NAME.value, None),
    }
    return event_dict


class RequestContextFilter(logging.Filter):
    """
    Give plain stdlib records the same service and req_id fields as structlog ones.

    Values already on the record (structlog passes them as ``extra``) are kept.
    With ``add_source`` the record also gets the ``source`` object that
    structlog adds at DEBUG.
    """

    def __init__(self, service_name: str, add_source: bool = False) -> None:
        super().__init__()
        self.service_name = service_name
        self.add_source = add_source

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "service", None) is None:
            record.service = self.service_name
        if getattr(record, "req_id", None) is None:
            req_id = get_request_id()
            if req_id:
                record.req_id = req_id
        if self.add_source and getattr(record, "source", None) is None:
            record.source = {"file": record.pathname, "line": record.lineno, "function": record.funcName}
        return True


class LoggerProvider:
    """
    Owns the process-wide logging configuration for one service.

    Build one at startup, call ``init()`` once before serving traffic and
    pass it to the middlewares. ``init_logging`` does both and registers the
    provider as the package default.
    """

    def __init__(self, service_name: str, level: str | int = "INFO", stream: TextIO | None = None) -> None:
        self.service_name = service_name
        self.level = parse_level(level)
        self.stream = stream

    @classmethod
    def from_settings(cls, settings=None, stream: TextIO | None = None) -> "LoggerProvider":
        settings = settings or get_settings()
        return cls(settings.service_name, settings.log_level, stream=stream)

    @property
    def add_source(self) -> bool:
        return self.level <= logging.DEBUG

    def processors(self) -> list:
        processors = [
            structlog.stdlib.filter_by_level,
            structlog.contextvars.merge_contextvars,
            add_service_context(self.service_name),
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
        ]
        if self.add_source:
            processors.append(
                structlog.processors.CallsiteParameterAdder(
                    {CallsiteParameter.PATHNAME, CallsiteParameter.LINENO, CallsiteParameter.FUNC_NAME}
                )
            )
            processors.append(group_source)
        processors.append(structlog.stdlib.render_to_log_kwargs)
        return processors

    def init(self) -> None:
        """
        Set up JSON logging for the service

        Not safe to call while requests are being served; a later call
        replaces the handler and processors installed by an earlier one.
        """
        handler = logging.StreamHandler(self.stream or sys.stdout)
        handler.setLevel(self.level)
        handler.setFormatter(
            jsonlogger.JsonFormatter(
                fmt=JSON_LOG_FORMAT,
                datefmt=JSON_DATE_FORMAT,
                rename_fields=JSON_RENAME_FIELDS,
            )
        )
        handler.addFilter(RequestContextFilter(self.service_name, add_source=self.add_source))

        root_logger = logging.getLogger()
        root_logger.handlers = [handler]
        root_logger.setLevel(self.level)

        structlog.configure(
            processors=self.processors(),
            wrapper_class=structlog.stdlib.BoundLogger,
            logger_factory=LoggerFactory(),
            context_class=dict,
            # Loggers handed out before a re-init must pick up the new chain
            cache_logger_on_first_use=False,
        )

    def default(self) -> structlog.stdlib.BoundLogger:
        return default(self.service_name)

    def from_ctx(self, ctx: Any = None) -> structlog.stdlib.BoundLogger:
        return from_ctx(ctx, self.service_name)


def init_logging(service_name: str, level: str | int = "INFO", stream: TextIO | None = None) -> LoggerProvider:
    """
    Initialize JSON logging for the process. Call this once at service startup.

    Args:
        service_name: Name of the service for log context
        level: Minimum level (DEBUG, INFO, WARNING, ERROR); DEBUG also adds source location
        stream: Output stream, stdout when omitted

    Returns:
        The provider, also registered as the package default
    """
    global _provider

    provider = LoggerProvider(service_name, level, stream=stream)
    provider.init()
    _provider = provider
    return provider


def get_provider() -> LoggerProvider:
    """Get the package default provider, built from settings if init_logging was never called"""
    global _provider

    if _provider is None:
        _provider = LoggerProvider.from_settings()
    return _provider


def default(service_name: str) -> structlog.stdlib.BoundLogger:
    """
    Get the global structured logger with the service field bound.

    Use this for background jobs, startup, or when no request context is available.
    """
    return structlog.get_logger(service_name).bind(service=service_name)


def with_req_id(parent, req_id: str):
    """Create a child logger with request ID (for non-HTTP use)"""
    return parent.bind(req_id=req_id)


def from_ctx(ctx: Any = None, service_name: str | None = None):
    """
    Get the request-scoped logger.

    Args:
        ctx: A RequestContext, a Starlette request (read from request.state) or
            None for the current execution context
        service_name: Service for the fallback logger, the default provider's when omitted

    Returns:
        The request logger, or the default logger when no request is active
    """
    if ctx is None:
        request_context = current_request_context()
    elif isinstance(ctx, RequestContext):
        request_context = ctx
    else:
        request_context = getattr(getattr(ctx, "state", None), "request_context", None)

    if isinstance(request_context, RequestContext):
        return request_context.logger
    if service_name is None:
        return get_provider().default()
    return default(service_name)
