"""Tests for global exception handlers.

Validates that every error type maps onto its HTTP status and reason code
with the same body shape, and that nothing internal leaks.
"""

import asyncio
import json
from unittest.mock import AsyncMock, patch

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from pydantic import BaseModel

from app.core.errors import (
    AppError,
    AuthenticationAppError,
    MalformedUpstreamResponseError,
    NotFoundAppError,
    PersistenceAppError,
    QuotaUnavailableError,
    RateLimitAppError,
    UpstreamRateLimitedError,
    UpstreamTimeoutError,
    UpstreamUnavailableError,
    ValidationAppError,
)
from app.core.exception_handlers import general_exception_handler, setup_exception_handlers


class _Body(BaseModel):
    prompt: str


@pytest.fixture
def app_with_handlers() -> FastAPI:
    """Create FastAPI app with exception handlers registered."""
    app = FastAPI()
    setup_exception_handlers(app)
    return app


@pytest.fixture
def client(app_with_handlers: FastAPI) -> TestClient:
    return TestClient(app_with_handlers, raise_server_exceptions=False)


def _raise_on(app: FastAPI, path: str, error: Exception) -> None:
    @app.get(path)
    async def endpoint():
        raise error


class TestAppErrorHandler:
    """Test handler for AppError and subclasses."""

    @pytest.mark.parametrize(
        "error, status, reason",
        [
            (ValidationAppError(code="prompt_empty", message="empty"), 400, "INVALID_INPUT"),
            (AuthenticationAppError(code="invalid_api_key", message="bad key"), 403, "AUTH_ERROR"),
            (NotFoundAppError(code="submission_not_found", message="gone"), 404, "NOT_FOUND"),
            (UpstreamRateLimitedError(code="upstream_rate_limited", message="slow"), 502, "API_ERROR"),
            (MalformedUpstreamResponseError(code="upstream_invalid_json", message="junk"), 502, "API_ERROR"),
            (UpstreamUnavailableError(code="upstream_unavailable", message="down"), 503, "UNAVAILABLE"),
            (QuotaUnavailableError(code="quota_store_unavailable", message="db"), 503, "UNAVAILABLE"),
            (UpstreamTimeoutError(code="upstream_timeout", message="slow"), 504, "TIMEOUT"),
            (PersistenceAppError(code="result_not_saved", message="not saved"), 500, "PERSISTENCE_ERROR"),
        ],
    )
    def test_status_and_reason(
        self,
        client: TestClient,
        app_with_handlers: FastAPI,
        error: AppError,
        status: int,
        reason: str,
    ) -> None:
        _raise_on(app_with_handlers, "/boom", error)

        response = client.get("/boom")

        assert response.status_code == status
        body = response.json()["error"]
        assert body["code"] == error.code
        assert body["reason"] == reason
        assert body["message"] == error.message
        assert "request_id" in body
        assert "details" not in body

    def test_details_included_when_provided(self, client: TestClient, app_with_handlers: FastAPI) -> None:
        _raise_on(
            app_with_handlers,
            "/too-long",
            ValidationAppError(
                code="prompt_too_long",
                message="Prompt too long",
                details={"max_chars": 2000, "actual_chars": 2001},
            ),
        )

        data = client.get("/too-long").json()

        assert data["error"]["details"] == {"max_chars": 2000, "actual_chars": 2001}

    def test_rate_limit_sets_retry_after_rounded_up(self, client: TestClient, app_with_handlers: FastAPI) -> None:
        _raise_on(
            app_with_handlers,
            "/throttled",
            RateLimitAppError(code="rate_limited", message="wait", details={"retry_after": 24.2}),
        )

        response = client.get("/throttled")

        assert response.status_code == 429
        assert response.headers["Retry-After"] == "25"
        assert response.json()["error"]["reason"] == "RATE_LIMIT"
        assert response.json()["error"]["details"]["retry_after"] == 24.2

    def test_retry_after_never_below_one_second(self, client: TestClient, app_with_handlers: FastAPI) -> None:
        _raise_on(
            app_with_handlers,
            "/almost",
            RateLimitAppError(code="rate_limited", message="wait", details={"retry_after": 0.01}),
        )

        assert client.get("/almost").headers["Retry-After"] == "1"

    @patch("app.core.exception_handlers.settings")
    def test_retry_after_header_can_be_disabled(
        self, mock_settings, client: TestClient, app_with_handlers: FastAPI
    ) -> None:
        mock_settings.app.rate_limit_include_headers = False
        _raise_on(
            app_with_handlers,
            "/quiet",
            RateLimitAppError(code="rate_limited", message="wait", details={"retry_after": 5}),
        )

        response = client.get("/quiet")

        assert response.status_code == 429
        assert "Retry-After" not in response.headers


class TestRequestValidationHandler:
    def test_body_validation_maps_to_400(self, client: TestClient, app_with_handlers: FastAPI) -> None:
        @app_with_handlers.post("/echo")
        async def echo(body: _Body):
            return body

        response = client.post("/echo", json={"text": "no prompt field"})

        assert response.status_code == 400
        error = response.json()["error"]
        assert error["code"] == "invalid_request"
        assert error["reason"] == "INVALID_INPUT"
        assert error["details"]["context"]["errors"][0]["loc"] == ["body", "prompt"]


class TestGeneralExceptionHandler:
    """Test fallback handler for unexpected exceptions."""

    def test_unexpected_exception_returns_generic_500(
        self, client: TestClient, app_with_handlers: FastAPI
    ) -> None:
        _raise_on(app_with_handlers, "/crash", RuntimeError("database password is hunter2"))

        response = client.get("/crash")

        assert response.status_code == 500
        error = response.json()["error"]
        assert error["code"] == "internal_server_error"
        assert error["reason"] == "INTERNAL_ERROR"
        assert "hunter2" not in response.text

    def test_general_exception_handler_never_leaks_stack_trace(self) -> None:
        request = AsyncMock()
        request.url.path = "/test"
        request.method = "GET"

        response = asyncio.run(general_exception_handler(request, ValueError("Test error with details")))

        response_text = bytes(response.body).decode()
        data = json.loads(response_text)
        assert response.status_code == 500
        assert "request_id" in data["error"]
        assert "Traceback" not in response_text
        assert "ValueError" not in response_text


def test_setup_registers_all_handlers(app_with_handlers: FastAPI) -> None:
    from fastapi.exceptions import RequestValidationError

    assert AppError in app_with_handlers.exception_handlers
    assert RequestValidationError in app_with_handlers.exception_handlers
    assert Exception in app_with_handlers.exception_handlers
