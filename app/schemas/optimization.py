"""Pydantic schemas for prompt optimization results and API payloads."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

IMPROVEMENT_COUNT = 3


class PromptStructure(BaseModel):
    """The prompt split into its system, user and output-format parts."""

    model_config = ConfigDict(frozen=True)

    system: str = Field(
        ...,
        min_length=1,
        description="Role and standing instructions for the model.",
    )
    user: str = Field(
        ...,
        min_length=1,
        description="The concrete request addressed to the model.",
    )
    format: str = Field(
        ...,
        min_length=1,
        description="Expected shape of the model's answer.",
    )


class Improvement(BaseModel):
    """One rewritten variant of the prompt."""

    model_config = ConfigDict(frozen=True)

    title: str = Field(..., min_length=1, description="Short label for the variant.")
    content: str = Field(..., min_length=1, description="Full text of the improved prompt.")
    category: str = Field(
        ...,
        min_length=1,
        description="Tag describing the kind of improvement (e.g. 'clarity', 'specificity').",
    )

    @field_validator("category")
    @classmethod
    def _normalize_category(cls, value: str) -> str:
        return value.strip().lower()


class OptimizationResult(BaseModel):
    """Structured optimization of a single prompt."""

    model_config = ConfigDict(frozen=True)

    purpose: str = Field(
        ...,
        min_length=1,
        description="One-sentence statement of what the prompt is trying to achieve.",
    )
    structure: PromptStructure
    improvements: list[Improvement] = Field(
        ...,
        min_length=IMPROVEMENT_COUNT,
        max_length=IMPROVEMENT_COUNT,
        description="Exactly three improved variants, in the order the model returned them.",
    )


class SubmissionRecord(BaseModel):
    """A stored prompt and its optimization, owned by one identity.

    Records are immutable: they are only ever created and deleted.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    identity: str
    prompt: str
    result: OptimizationResult
    created_at: datetime


class OptimizeRequest(BaseModel):
    """Body of ``POST /v1/optimize``.

    Length checks happen in the service so that empty and over-long prompts
    get the same ``INVALID_INPUT`` error shape as every other rejection.
    """

    prompt: str = Field(..., description="The raw prompt to optimize.")


class OptimizeResponse(BaseModel):
    """A completed optimization as returned to the caller."""

    id: str
    prompt: str
    result: OptimizationResult
    created_at: datetime

    @classmethod
    def from_record(cls, record: SubmissionRecord) -> "OptimizeResponse":
        return cls(
            id=record.id,
            prompt=record.prompt,
            result=record.result,
            created_at=record.created_at,
        )


class HistoryResponse(BaseModel):
    """A page of the caller's submissions, newest first."""

    items: list[OptimizeResponse] = Field(default_factory=list)
    total: int = Field(..., ge=0, description="Total submissions stored for the caller.")
    limit: int
    offset: int


class HealthResponse(BaseModel):
    status: Literal["ok"] = "ok"
    storage: str
