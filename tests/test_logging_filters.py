"""Tests for sensitive data filtering and request correlation in logs."""

from __future__ import annotations

import json
import logging
from io import StringIO

import pytest

from app.core.logging import (
    JsonFormatter,
    RequestIdFilter,
    SensitiveDataFilter,
    clear_request_id,
    hash_for_logs,
    set_request_id,
)


@pytest.fixture
def capture():
    """Logger wired to an in-memory stream through the production filters."""

    logger = logging.getLogger("test_redaction")
    logger.setLevel(logging.INFO)
    logger.handlers.clear()
    logger.propagate = False

    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.addFilter(RequestIdFilter())
    handler.addFilter(SensitiveDataFilter())
    handler.setFormatter(JsonFormatter())
    logger.addHandler(handler)

    yield logger, stream

    logger.handlers.clear()
    clear_request_id()


def _last_line(stream: StringIO) -> dict:
    return json.loads(stream.getvalue().strip().splitlines()[-1])


def test_sensitive_filter_redacts_api_keys(capture):
    logger, stream = capture

    logger.info(
        "test_event",
        extra={
            "api_key": "sk-secret-123",
            "x-api-key": "another-secret",
            "safe_field": "visible",
        },
    )

    output = stream.getvalue()
    assert "sk-secret-123" not in output
    assert "another-secret" not in output
    assert "[REDACTED]" in output
    assert "visible" in output


def test_sensitive_filter_redacts_prompt_and_result(capture):
    """User prompts and optimization output never reach the logs."""

    logger, stream = capture

    logger.info(
        "optimize_event",
        extra={
            "prompt": "Write a cover letter for Jane Roe, jane@example.com",
            "result": {"purpose": "cover letter for Jane Roe"},
            "identity": "alice",
            "prompt_chars": 51,
        },
    )

    output = stream.getvalue()
    assert "Jane Roe" not in output
    assert "jane@example.com" not in output
    assert "alice" not in output
    data = _last_line(stream)
    assert data["prompt"] == "[REDACTED]"
    assert data["prompt_chars"] == 51


def test_sensitive_filter_allows_safe_fields(capture):
    logger, stream = capture

    logger.info(
        "safe_event",
        extra={
            "request_id": "req-123",
            "path": "/v1/optimize",
            "status": 201,
            "duration_ms": 150.5,
        },
    )

    output = stream.getvalue()
    assert "req-123" in output
    assert "/v1/optimize" in output
    assert "201" in output
    assert "[REDACTED]" not in output


def test_sensitive_filter_redacts_nested_dicts(capture):
    logger, stream = capture

    logger.info(
        "nested_event",
        extra={
            "headers": {
                "x-api-key": "secret-key",
                "user-agent": "pytest",
            },
            "items": [{"token": "abc-token", "count": 5}],
        },
    )

    output = stream.getvalue()
    assert "secret-key" not in output
    assert "abc-token" not in output
    assert "pytest" in output
    assert _last_line(stream)["items"][0]["count"] == 5


def test_request_id_from_context_is_attached(capture):
    logger, stream = capture

    set_request_id("ctx-req-42")
    logger.info("with_context")

    assert _last_line(stream)["request_id"] == "ctx-req-42"

    clear_request_id()
    logger.info("without_context")

    assert "request_id" not in _last_line(stream)


def test_hash_for_logs_is_stable_and_opaque():
    assert hash_for_logs("alice") == hash_for_logs("alice")
    assert hash_for_logs("alice") != hash_for_logs("bob")
    assert len(hash_for_logs("alice")) == 16
    assert "alice" not in hash_for_logs("alice")
