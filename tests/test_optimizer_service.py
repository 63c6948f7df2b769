"""Unit tests for the optimizer service (LLM call, retries, parsing)."""

import asyncio
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from app.adapters.llm.base import AbstractLLMClient
from app.core.errors import (
    MalformedUpstreamResponseError,
    UpstreamAuthError,
    UpstreamRateLimitedError,
    UpstreamTimeoutError,
    UpstreamUnavailableError,
    ValidationAppError,
)
from app.schemas.optimization import OptimizationResult
from app.services.optimizer_service import (
    SYSTEM_PROMPT,
    OptimizerService,
    parse_optimization,
    validate_prompt,
)
from tests.conftest import make_result_payload


def _service(llm: Any, **kwargs: Any) -> tuple[OptimizerService, AsyncMock]:
    sleep = AsyncMock()
    kwargs.setdefault("timeout_seconds", 1.0)
    return OptimizerService(llm, sleep=sleep, **kwargs), sleep


class TestValidatePrompt:
    def test_trims_whitespace(self) -> None:
        assert validate_prompt("  write a poem \n", max_chars=2000) == "write a poem"

    @pytest.mark.parametrize("raw", ["", "   ", "\n\t", None])
    def test_empty_rejected(self, raw: str | None) -> None:
        with pytest.raises(ValidationAppError) as exc_info:
            validate_prompt(raw, max_chars=2000)
        assert exc_info.value.code == "prompt_empty"
        assert exc_info.value.reason == "INVALID_INPUT"

    def test_exact_limit_accepted(self) -> None:
        assert len(validate_prompt("a" * 2000, max_chars=2000)) == 2000

    def test_over_limit_rejected(self) -> None:
        with pytest.raises(ValidationAppError) as exc_info:
            validate_prompt("a" * 2001, max_chars=2000)
        assert exc_info.value.code == "prompt_too_long"
        assert exc_info.value.details == {"max_chars": 2000, "actual_chars": 2001}

    def test_limit_applies_after_trimming(self) -> None:
        assert validate_prompt("  " + "a" * 2000 + "  ", max_chars=2000) == "a" * 2000


class TestParseOptimization:
    def test_valid_payload(self) -> None:
        outcome = parse_optimization(make_result_payload())
        assert outcome.ok is True
        assert isinstance(outcome.value, OptimizationResult)
        assert len(outcome.value.improvements) == 3
        assert outcome.reason is None

    def test_non_object_payload(self) -> None:
        outcome = parse_optimization(["not", "an", "object"])
        assert outcome.ok is False
        assert outcome.value is None
        assert "list" in outcome.reason

    def test_missing_field_names_location(self) -> None:
        payload = make_result_payload()
        del payload["structure"]
        outcome = parse_optimization(payload)
        assert outcome.ok is False
        assert outcome.reason.startswith("structure")

    @pytest.mark.parametrize("count", [2, 4])
    def test_wrong_improvement_count(self, count: int) -> None:
        item = {"title": "t", "content": "c", "category": "clarity"}
        outcome = parse_optimization(make_result_payload(improvements=[item] * count))
        assert outcome.ok is False
        assert outcome.reason.startswith("improvements")


@pytest.mark.asyncio
async def test_optimize_returns_result_and_sends_fixed_instruction(mock_llm: MagicMock) -> None:
    service, sleep = _service(mock_llm, temperature=0.2)

    result = await service.optimize("  write a poem  ")

    assert isinstance(result, OptimizationResult)
    mock_llm.generate_json.assert_awaited_once()
    args, kwargs = mock_llm.generate_json.call_args
    assert args[0] == "write a poem"
    assert kwargs["system_prompt"] == SYSTEM_PROMPT
    assert kwargs["temperature"] == 0.2
    assert kwargs["schema"] is not None
    sleep.assert_not_called()


@pytest.mark.asyncio
async def test_invalid_prompt_never_reaches_provider(mock_llm: MagicMock) -> None:
    service, _ = _service(mock_llm, max_prompt_chars=10)

    with pytest.raises(ValidationAppError):
        await service.optimize("x" * 11)

    mock_llm.generate_json.assert_not_called()


@pytest.mark.asyncio
async def test_timeout_retried_up_to_max_attempts() -> None:
    async def never_answers(*args: Any, **kwargs: Any) -> dict[str, Any]:
        await asyncio.sleep(10)
        return {}

    llm = MagicMock(spec=AbstractLLMClient)
    llm.generate_json = AsyncMock(side_effect=never_answers)
    service, sleep = _service(llm, timeout_seconds=0.01, max_attempts=3, retry_backoff_seconds=0.5)

    with pytest.raises(UpstreamTimeoutError) as exc_info:
        await service.optimize("write a poem")

    assert llm.generate_json.await_count == 3
    assert exc_info.value.reason == "TIMEOUT"
    assert exc_info.value.details["attempts"] == 3
    # Backoff grows linearly and is skipped after the last attempt
    assert [c.args[0] for c in sleep.await_args_list] == [0.5, 1.0]


@pytest.mark.asyncio
async def test_transient_failure_then_success(result_payload: dict[str, Any]) -> None:
    llm = MagicMock(spec=AbstractLLMClient)
    llm.generate_json = AsyncMock(
        side_effect=[
            UpstreamUnavailableError(code="upstream_unavailable", message="connection reset"),
            result_payload,
        ]
    )
    service, sleep = _service(llm)

    result = await service.optimize("write a poem")

    assert result.purpose == result_payload["purpose"]
    assert llm.generate_json.await_count == 2
    sleep.assert_awaited_once()


@pytest.mark.asyncio
async def test_unavailable_exhausts_attempts() -> None:
    llm = MagicMock(spec=AbstractLLMClient)
    llm.generate_json = AsyncMock(
        side_effect=UpstreamUnavailableError(code="upstream_unavailable", message="down")
    )
    service, _ = _service(llm, max_attempts=2)

    with pytest.raises(UpstreamUnavailableError) as exc_info:
        await service.optimize("write a poem")

    assert llm.generate_json.await_count == 2
    assert exc_info.value.reason == "UNAVAILABLE"


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "error",
    [
        UpstreamRateLimitedError(code="upstream_rate_limited", message="slow down"),
        UpstreamAuthError(code="upstream_auth_failed", message="bad key"),
    ],
)
async def test_non_retryable_errors_fail_immediately(error: Exception) -> None:
    llm = MagicMock(spec=AbstractLLMClient)
    llm.generate_json = AsyncMock(side_effect=error)
    service, sleep = _service(llm)

    with pytest.raises(type(error)) as exc_info:
        await service.optimize("write a poem")

    assert exc_info.value.reason == "API_ERROR"
    llm.generate_json.assert_awaited_once()
    sleep.assert_not_called()


@pytest.mark.asyncio
async def test_malformed_payload_not_retried() -> None:
    llm = MagicMock(spec=AbstractLLMClient)
    llm.generate_json = AsyncMock(return_value={"purpose": "only a purpose"})
    service, _ = _service(llm)

    with pytest.raises(MalformedUpstreamResponseError) as exc_info:
        await service.optimize("write a poem")

    assert exc_info.value.code == "upstream_malformed_response"
    assert exc_info.value.reason == "API_ERROR"
    assert "parse_error" in exc_info.value.details
    llm.generate_json.assert_awaited_once()


@pytest.mark.parametrize(
    "kwargs",
    [{"max_attempts": 0}, {"timeout_seconds": 0}],
)
def test_invalid_configuration(mock_llm: MagicMock, kwargs: dict[str, Any]) -> None:
    with pytest.raises(ValueError):
        OptimizerService(mock_llm, **kwargs)
