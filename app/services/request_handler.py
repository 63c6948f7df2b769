"""End-to-end orchestration of one optimization request.

Each request moves through

    RECEIVED -> VALIDATED -> QUOTA_CHECKED -> INVOKING -> PERSISTING -> COMPLETED

and may leave early as REJECTED (before the provider call) or FAILED (during
or after it). The handler never raises for expected failures: it returns a
``RequestOutcome`` whose ``error`` carries the machine-readable reason, so the
HTTP layer renders every failure through the same error handler.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable

from app.adapters.storage.base import AbstractSubmissionStore
from app.core.errors import (
    AppError,
    AuthenticationAppError,
    LLMAppError,
    PersistenceAppError,
    QuotaUnavailableError,
    RateLimitAppError,
    StorageAppError,
    ValidationAppError,
)
from app.core.logging import hash_for_logs
from app.schemas.optimization import OptimizationResult, SubmissionRecord
from app.services.optimizer_service import OptimizerService
from app.services.rate_gate import RateGate, utc_now

logger = logging.getLogger(__name__)


class RequestState(str, Enum):
    RECEIVED = "received"
    VALIDATED = "validated"
    QUOTA_CHECKED = "quota_checked"
    INVOKING = "invoking"
    PERSISTING = "persisting"
    COMPLETED = "completed"
    REJECTED = "rejected"
    FAILED = "failed"


@dataclass(frozen=True)
class RequestOutcome:
    """Terminal state of one request.

    Attributes:
        state: COMPLETED, REJECTED or FAILED.
        record: The stored submission (COMPLETED only).
        result: The computed optimization; also set on a persistence failure
            so the caller can see what was computed but not saved.
        error: The rejection/failure cause (REJECTED and FAILED only).
    """

    state: RequestState
    record: SubmissionRecord | None = None
    result: OptimizationResult | None = None
    error: AppError | None = None

    @property
    def reason(self) -> str | None:
        return self.error.reason if self.error else None

    @property
    def retry_after(self) -> float | None:
        if isinstance(self.error, RateLimitAppError):
            return self.error.retry_after
        return None

    @property
    def completed(self) -> bool:
        return self.state is RequestState.COMPLETED

    @classmethod
    def rejected(cls, error: AppError) -> "RequestOutcome":
        return cls(state=RequestState.REJECTED, error=error)

    @classmethod
    def failed(cls, error: AppError, result: OptimizationResult | None = None) -> "RequestOutcome":
        return cls(state=RequestState.FAILED, error=error, result=result)


class OptimizationRequestHandler:
    """Validate, gate, optimize and persist one submission.

    All collaborators are injected; the handler holds no mutable state of its
    own, so one instance safely serves concurrent requests.
    """

    def __init__(
        self,
        *,
        store: AbstractSubmissionStore,
        gate: RateGate,
        optimizer: OptimizerService,
        retention_cap: int = 50,
        clock: Callable[[], datetime] = utc_now,
        id_factory: Callable[[], str] = lambda: str(uuid.uuid4()),
    ) -> None:
        if retention_cap < 1:
            raise ValueError("retention_cap must be >= 1")

        self.store = store
        self.gate = gate
        self.optimizer = optimizer
        self.retention_cap = retention_cap
        self._clock = clock
        self._id_factory = id_factory

    def _transition(self, identity_hash: str, state: RequestState) -> None:
        logger.debug("request.transition", extra={"identity_hash": identity_hash, "state": state.value})

    async def handle(self, identity: str | None, raw_prompt: str | None) -> RequestOutcome:
        """Run one request to a terminal state.

        Args:
            identity: Authenticated caller identity, or None if unrecognized.
            raw_prompt: Prompt as submitted.

        Returns:
            RequestOutcome in COMPLETED, REJECTED or FAILED state.
        """
        if not identity:
            logger.warning("request.rejected", extra={"reason": "AUTH_ERROR"})
            return RequestOutcome.rejected(
                AuthenticationAppError(
                    code="unauthenticated",
                    message="Caller identity could not be established",
                )
            )

        identity_hash = hash_for_logs(identity)
        self._transition(identity_hash, RequestState.RECEIVED)

        try:
            prompt = self.optimizer.validate(raw_prompt)
        except ValidationAppError as exc:
            logger.info(
                "request.rejected",
                extra={"identity_hash": identity_hash, "reason": exc.reason, "error_code": exc.code},
            )
            return RequestOutcome.rejected(exc)
        self._transition(identity_hash, RequestState.VALIDATED)

        now = self._clock()
        try:
            decision = await self.gate.admit(identity, now)
        except QuotaUnavailableError as exc:
            return RequestOutcome.failed(exc)

        if not decision.allowed:
            retry_after = decision.retry_after_seconds or 0.0
            return RequestOutcome.rejected(
                RateLimitAppError(
                    code="rate_limited",
                    message=(
                        f"Please wait {retry_after:.0f} seconds before submitting another prompt."
                    ),
                    details={"retry_after": retry_after},
                )
            )
        self._transition(identity_hash, RequestState.QUOTA_CHECKED)

        self._transition(identity_hash, RequestState.INVOKING)
        try:
            result = await self.optimizer.optimize(prompt)
        except LLMAppError as exc:
            logger.warning(
                "request.failed",
                extra={"identity_hash": identity_hash, "reason": exc.reason, "error_code": exc.code},
            )
            return RequestOutcome.failed(exc)

        self._transition(identity_hash, RequestState.PERSISTING)
        record = SubmissionRecord(
            id=self._id_factory(),
            identity=identity,
            prompt=prompt,
            result=result,
            created_at=now,
        )
        try:
            await self.store.add(record)
        except StorageAppError as exc:
            logger.error(
                "request.persistence_failed",
                extra={"identity_hash": identity_hash, "error_code": exc.code},
            )
            return RequestOutcome.failed(
                PersistenceAppError(
                    code="result_not_saved",
                    message="The prompt was optimized but the result could not be saved.",
                    details={"result": result.model_dump(mode="json")},
                ),
                result=result,
            )

        logger.info(
            "request.completed",
            extra={"identity_hash": identity_hash, "submission_id": record.id},
        )
        return RequestOutcome(state=RequestState.COMPLETED, record=record, result=result)

    async def enforce_retention(self, identity: str) -> int:
        """Evict the identity's oldest submissions beyond the retention cap.

        Meant to run out-of-band (e.g. as a background task after the
        response is sent). Storage errors are logged, not raised: the
        submission itself has already been saved and reported.

        Returns:
            Number of submissions evicted.
        """
        try:
            removed = await self.store.prune(identity, keep=self.retention_cap)
        except StorageAppError as exc:
            logger.error(
                "retention.prune_failed",
                extra={"identity_hash": hash_for_logs(identity), "error_code": exc.code},
            )
            return 0

        if removed:
            logger.info(
                "retention.pruned",
                extra={
                    "identity_hash": hash_for_logs(identity),
                    "removed": removed,
                    "retention_cap": self.retention_cap,
                },
            )
        return removed
