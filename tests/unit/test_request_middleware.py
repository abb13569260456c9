# Assumptions:
# - Using pytest for testing framework
# - FastAPI app with RequestLoggerMiddleware exercised through TestClient
# - Log records captured with structlog.testing.capture_logs

import uuid
from typing import Any

import pytest
import structlog.testing
from fastapi import Depends, FastAPI
from fastapi.responses import Response
from fastapi.testclient import TestClient
from starlette.requests import Request

from reqlog.config import LoggingSettings
from reqlog.http import RequestLoggerMiddleware, client_ip, completion_level, get_request_logger
from reqlog.http.middleware import COMPLETION_EVENT
from reqlog.logging import LoggerProvider, get_request_id, record_error


def make_app(settings: LoggingSettings | None = None) -> FastAPI:
    """Build a minimal FastAPI app with RequestLoggerMiddleware for testing"""
    test_app = FastAPI()
    test_app.add_middleware(
        RequestLoggerMiddleware,
        provider=LoggerProvider("test-service"),
        settings=settings or LoggingSettings(),
    )

    @test_app.get("/health")
    async def health() -> dict[str, Any]:
        return {"status": "healthy"}

    @test_app.get("/work")
    async def work(logger=Depends(get_request_logger)) -> dict[str, Any]:
        logger.info("doing work")
        return {"req_id": get_request_id()}

    @test_app.get("/status/{code}")
    async def status(code: int) -> Response:
        return Response(status_code=code)

    @test_app.get("/partial")
    async def partial() -> dict[str, Any]:
        record_error(ValueError("cache miss"))
        record_error("fallback used")
        return {"ok": True}

    @test_app.get("/crash")
    async def crash() -> dict[str, Any]:
        raise RuntimeError("unrecovered")

    return test_app


def _completion_logs(logs: list[dict[str, Any]]) -> list[dict[str, Any]]:
    return [log for log in logs if log["event"] == COMPLETION_EVENT]


class TestRequestLoggerMiddleware:
    """Test cases for request completion logging"""

    def test_health_with_request_id_header(self):
        """Test GET /health with X-Request-ID: abc-123"""
        client = TestClient(make_app())

        with structlog.testing.capture_logs() as logs:
            response = client.get("/health", headers={"X-Request-ID": "abc-123"})

        assert response.status_code == 200
        assert response.headers["X-Request-ID"] == "abc-123"

        completions = _completion_logs(logs)
        assert len(completions) == 1
        log = completions[0]
        assert log["log_level"] == "info"
        assert log["req_id"] == "abc-123"
        assert log["method"] == "GET"
        assert log["path"] == "/health"
        assert log["status"] == 200
        assert log["service"] == "test-service"
        assert log["ip"] == "testclient"
        assert log["user_agent"] == "testclient"
        assert log["latency"] >= 0
        assert "errors" not in log

    @pytest.mark.parametrize("headers", [{}, {"X-Request-ID": ""}])
    def test_generates_request_id_when_missing(self, headers):
        """Test a UUID v4 is generated and used for every record of the request"""
        client = TestClient(make_app())

        with structlog.testing.capture_logs() as logs:
            response = client.get("/work", headers=headers)

        req_id = response.headers["X-Request-ID"]
        assert uuid.UUID(req_id).version == 4
        assert response.json() == {"req_id": req_id}
        assert [log["event"] for log in logs] == ["doing work", COMPLETION_EVENT]
        assert all(log["req_id"] == req_id for log in logs)

    def test_each_request_gets_its_own_id(self):
        client = TestClient(make_app())

        first = client.get("/work").headers["X-Request-ID"]
        second = client.get("/work").headers["X-Request-ID"]

        assert first != second

    @pytest.mark.parametrize(
        "code,level",
        [(200, "info"), (204, "info"), (302, "info"), (400, "warning"), (404, "warning"), (500, "error"), (503, "error")],
    )
    def test_completion_level_follows_status(self, code, level):
        client = TestClient(make_app())

        with structlog.testing.capture_logs() as logs:
            client.get(f"/status/{code}", follow_redirects=False)

        log = _completion_logs(logs)[0]
        assert log["status"] == code
        assert log["log_level"] == level

    def test_unknown_route_logs_warning(self):
        client = TestClient(make_app())

        with structlog.testing.capture_logs() as logs:
            response = client.get("/nope")

        assert response.status_code == 404
        assert _completion_logs(logs)[0]["log_level"] == "warning"

    def test_recorded_errors_are_reported(self):
        """Test errors collected during the request appear on the completion line"""
        client = TestClient(make_app())

        with structlog.testing.capture_logs() as logs:
            client.get("/partial")

        assert _completion_logs(logs)[0]["errors"] == ["cache miss", "fallback used"]

    def test_unrecovered_exception_still_logs_completion(self):
        """Test an exception escaping the chain is logged as a 500 and re-raised"""
        client = TestClient(make_app(), raise_server_exceptions=False)

        with structlog.testing.capture_logs() as logs:
            response = client.get("/crash", headers={"X-Request-ID": "abc-123"})

        assert response.status_code == 500
        completions = _completion_logs(logs)
        assert len(completions) == 1
        assert completions[0]["status"] == 500
        assert completions[0]["log_level"] == "error"
        assert completions[0]["req_id"] == "abc-123"

    def test_echo_can_be_disabled(self):
        client = TestClient(make_app(LoggingSettings(echo_request_id=False)))

        response = client.get("/health", headers={"X-Request-ID": "abc-123"})

        assert "X-Request-ID" not in response.headers

    def test_custom_header_name(self):
        client = TestClient(make_app(LoggingSettings(request_id_header="X-Correlation-ID")))

        with structlog.testing.capture_logs() as logs:
            response = client.get("/health", headers={"X-Correlation-ID": "corr-1"})

        assert response.headers["X-Correlation-ID"] == "corr-1"
        assert _completion_logs(logs)[0]["req_id"] == "corr-1"

    def test_forwarded_headers_ignored_by_default(self):
        client = TestClient(make_app())

        with structlog.testing.capture_logs() as logs:
            client.get("/health", headers={"X-Forwarded-For": "203.0.113.7"})

        assert _completion_logs(logs)[0]["ip"] == "testclient"

    def test_forwarded_headers_when_trusted(self):
        client = TestClient(make_app(LoggingSettings(trust_forwarded_headers=True)))

        with structlog.testing.capture_logs() as logs:
            client.get("/health", headers={"X-Forwarded-For": "203.0.113.7, 10.0.0.1"})

        assert _completion_logs(logs)[0]["ip"] == "203.0.113.7"

    def test_context_is_reset_after_request(self):
        client = TestClient(make_app())

        client.get("/health")

        assert get_request_id() is None


class TestCompletionLevel:
    """Test cases for status to level mapping"""

    @pytest.mark.parametrize(
        "status,level",
        [(100, "info"), (200, "info"), (399, "info"), (400, "warning"), (499, "warning"), (500, "error"), (599, "error")],
    )
    def test_boundaries(self, status, level):
        assert completion_level(status) == level


class TestClientIp:
    """Test cases for client IP resolution"""

    @staticmethod
    def _request(headers=None, client=("10.1.2.3", 5000)) -> Request:
        raw_headers = [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()]
        return Request({"type": "http", "method": "GET", "path": "/", "headers": raw_headers, "client": client})

    def test_direct_client(self):
        assert client_ip(self._request()) == "10.1.2.3"

    def test_real_ip_when_trusted(self):
        assert client_ip(self._request({"X-Real-IP": "198.51.100.4"}), trust_forwarded=True) == "198.51.100.4"

    def test_unknown_without_client(self):
        assert client_ip(self._request(client=None)) == "unknown"
