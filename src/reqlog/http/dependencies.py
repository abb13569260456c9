from starlette.requests import Request

from ..logging.setup import from_ctx


def get_request_logger(request: Request):
    """FastAPI dependency returning the logger bound to the current request"""
    return from_ctx(request)
