"""Read and delete access to a caller's own submissions."""

from __future__ import annotations

import logging

from app.adapters.storage.base import AbstractSubmissionStore
from app.core.errors import NotFoundAppError
from app.core.logging import hash_for_logs
from app.schemas.optimization import SubmissionRecord

logger = logging.getLogger(__name__)


def _not_found(submission_id: str) -> NotFoundAppError:
    # Same error for "missing" and "owned by someone else" so ids can't be probed
    return NotFoundAppError(
        code="submission_not_found",
        message="Submission not found",
        details={"submission_id": submission_id},
    )


class HistoryService:
    """Identity-scoped history queries over the submission store."""

    def __init__(self, store: AbstractSubmissionStore) -> None:
        self.store = store

    async def list_history(
        self,
        identity: str,
        *,
        limit: int,
        offset: int = 0,
    ) -> tuple[list[SubmissionRecord], int]:
        """Return one page of the identity's submissions and the total count."""
        records = await self.store.list_for_identity(identity, limit=limit, offset=offset)
        total = await self.store.count_for_identity(identity)
        return records, total

    async def get_submission(self, identity: str, submission_id: str) -> SubmissionRecord:
        record = await self.store.get(identity, submission_id)
        if record is None:
            raise _not_found(submission_id)
        return record

    async def delete_submission(self, identity: str, submission_id: str) -> None:
        if not await self.store.delete(identity, submission_id):
            raise _not_found(submission_id)

        logger.info(
            "history.deleted",
            extra={"identity_hash": hash_for_logs(identity), "submission_id": submission_id},
        )
