"""Pytest configuration and fixtures shared across all test modules.

Environment defaults are set before anything imports ``app.core.config``
so the global settings are built from them.
"""

import os

# CRITICAL: Set these before any imports that might load settings
os.environ["APP_ENV"] = "testing"
os.environ.setdefault("LLM_PROVIDER", "openai")
os.environ.setdefault("LLM_MODEL", "gpt-4o-mini")
os.environ.setdefault("LLM_API_KEY", "test-key-123")
os.environ.setdefault("APP_API_KEY_REQUIRED", "true")
os.environ.setdefault("APP_API_KEYS", "test-api-key-123:alice,test-api-key-456:bob")
os.environ.setdefault("STORAGE_BACKEND", "memory")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from datetime import datetime, timedelta, timezone
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from app.adapters.llm.base import AbstractLLMClient


class FakeClock:
    """Deterministic UTC clock for cooldown tests."""

    def __init__(self, start: datetime | None = None) -> None:
        self.current = start or datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)

    def now(self) -> datetime:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += timedelta(seconds=seconds)


def make_result_payload(**overrides: Any) -> dict[str, Any]:
    """A well-formed optimization payload as the LLM would return it."""
    payload: dict[str, Any] = {
        "purpose": "Get a short poem about the sea.",
        "structure": {
            "system": "You are a poet.",
            "user": "Write a four-line poem about the sea.",
            "format": "Four lines of plain text.",
        },
        "improvements": [
            {"title": "Clearer", "content": "Write a four-line poem about calm seas.", "category": "clarity"},
            {"title": "Specific", "content": "Write an ABAB poem about the Atlantic.", "category": "specificity"},
            {"title": "Structured", "content": "Role: poet. Task: sea poem. Format: 4 lines.", "category": "structure"},
        ],
    }
    payload.update(overrides)
    return payload


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def result_payload() -> dict[str, Any]:
    return make_result_payload()


@pytest.fixture
def mock_llm(result_payload: dict[str, Any]) -> MagicMock:
    """LLM client whose ``generate_json`` returns a valid payload."""
    llm = MagicMock(spec=AbstractLLMClient)
    llm.generate_json = AsyncMock(return_value=result_payload)
    return llm
