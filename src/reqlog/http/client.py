import time
from contextlib import asynccontextmanager
from typing import Dict, Optional

import httpx

from ..logging.context import get_request_id
from ..logging.setup import from_ctx

REQUEST_ID_HEADER = "X-Request-ID"


class HttpClient:
    """HTTP client that forwards the current request ID to downstream services"""

    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: float = 30.0,
        default_headers: Optional[Dict[str, str]] = None,
        request_id_header: str = REQUEST_ID_HEADER,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/") if base_url else None
        self.timeout = timeout
        self.default_headers = default_headers or {}
        self.request_id_header = request_id_header
        self.transport = transport

    def outbound_headers(self) -> Dict[str, str]:
        """Default headers plus the active request ID, if any"""
        headers = dict(self.default_headers)
        req_id = get_request_id()
        if req_id:
            headers[self.request_id_header] = req_id
        return headers

    @asynccontextmanager
    async def _client(self):
        options = {"timeout": self.timeout, "headers": self.outbound_headers()}
        if self.base_url:
            options["base_url"] = self.base_url
        if self.transport is not None:
            options["transport"] = self.transport

        async with httpx.AsyncClient(**options) as client:
            yield client

    async def request(self, method: str, url: str, **kwargs) -> httpx.Response:
        """
        Send one request; headers passed here override the forwarded ones.

        There are no retries. 4xx and 5xx responses are logged and raised as
        httpx.HTTPStatusError.
        """
        logger = from_ctx().bind(method=method, url=url)

        async with self._client() as client:
            logger.debug("Making HTTP request")

            start = time.perf_counter()
            try:
                response = await client.request(method, url, **kwargs)
            except httpx.RequestError as e:
                logger.error("HTTP request failed", error=str(e))
                raise
            elapsed_ms = round((time.perf_counter() - start) * 1000, 3)

            logger.debug("HTTP response received", status_code=response.status_code, response_time_ms=elapsed_ms)

            if response.is_error:
                logger.warning("HTTP error response", status_code=response.status_code)
                response.raise_for_status()

            return response

    async def get(self, url: str, **kwargs) -> httpx.Response:
        return await self.request("GET", url, **kwargs)

    async def post(self, url: str, **kwargs) -> httpx.Response:
        return await self.request("POST", url, **kwargs)

    async def put(self, url: str, **kwargs) -> httpx.Response:
        return await self.request("PUT", url, **kwargs)

    async def patch(self, url: str, **kwargs) -> httpx.Response:
        return await self.request("PATCH", url, **kwargs)

    async def delete(self, url: str, **kwargs) -> httpx.Response:
        return await self.request("DELETE", url, **kwargs)


def create_http_client(base_url: Optional[str] = None, timeout: float = 30.0, **kwargs) -> HttpClient:
    """Factory function to create HTTP client"""
    return HttpClient(base_url=base_url, timeout=timeout, **kwargs)
