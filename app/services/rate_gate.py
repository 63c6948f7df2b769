"""Per-identity cooldown gate in front of the optimization call.

The gate reads each identity's last accepted submission time from the
submission store. The store keeps that marker apart from the records, so
deleting or pruning history never reopens a cooldown.

Admission is advisory: the check and the later write are not atomic, so two
concurrent requests from the same identity may both be admitted. The cost of
that race is one extra upstream call, which is accepted.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

from app.adapters.storage.base import AbstractSubmissionStore
from app.core.errors import QuotaUnavailableError, StorageAppError
from app.core.logging import hash_for_logs

logger = logging.getLogger(__name__)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class RateDecision:
    """Outcome of an admission check.

    Attributes:
        allowed: Whether the request may proceed.
        retry_after_seconds: Seconds until the identity is admitted again
            (None when allowed).
        last_accepted_at: Creation time of the identity's newest submission.
    """

    allowed: bool
    retry_after_seconds: float | None = None
    last_accepted_at: datetime | None = None


class RateGate:
    """Admit at most one submission per identity per cooldown window."""

    def __init__(
        self,
        store: AbstractSubmissionStore,
        *,
        cooldown_seconds: float,
        enabled: bool = True,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        if cooldown_seconds <= 0:
            raise ValueError("cooldown_seconds must be > 0")

        self._store = store
        self._cooldown_seconds = cooldown_seconds
        self._enabled = enabled
        self._clock = clock

    @property
    def cooldown_seconds(self) -> float:
        return self._cooldown_seconds

    async def admit(self, identity: str, now: datetime | None = None) -> RateDecision:
        """Decide whether ``identity`` may submit at ``now``.

        Args:
            identity: Caller identity.
            now: Decision time; defaults to the gate's clock.

        Returns:
            RateDecision with ``retry_after_seconds`` set when rejected.

        Raises:
            QuotaUnavailableError: The store could not be consulted. The gate
                fails closed rather than admitting blindly.
        """
        if not self._enabled:
            return RateDecision(allowed=True)

        now = now or self._clock()

        try:
            last_accepted_at = await self._store.last_accepted_at(identity)
        except StorageAppError as exc:
            logger.error(
                "rate_gate.store_unavailable",
                extra={"identity_hash": hash_for_logs(identity), "error_code": exc.code},
            )
            raise QuotaUnavailableError(
                code="quota_store_unavailable",
                message="Unable to verify request quota. Please retry shortly.",
            ) from exc

        if last_accepted_at is None:
            return RateDecision(allowed=True)

        # A timestamp in the future (clock skew) counts as "just now"
        elapsed = max(0.0, (now - last_accepted_at).total_seconds())
        if elapsed >= self._cooldown_seconds:
            return RateDecision(allowed=True, last_accepted_at=last_accepted_at)

        retry_after = self._cooldown_seconds - elapsed
        logger.info(
            "rate_gate.rejected",
            extra={
                "identity_hash": hash_for_logs(identity),
                "cooldown_s": self._cooldown_seconds,
                "retry_after_s": round(retry_after, 3),
            },
        )
        return RateDecision(
            allowed=False,
            retry_after_seconds=retry_after,
            last_accepted_at=last_accepted_at,
        )
