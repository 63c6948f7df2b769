"""Submission store interface.

Every read and delete is scoped by identity: a caller can never observe or
remove another identity's records through this interface.

Besides the records, each store keeps one "last accepted" timestamp per
identity for the rate gate. It only moves forward.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime

from app.schemas.optimization import SubmissionRecord


class AbstractSubmissionStore(ABC):
    """Interface for persistent submission storage.

    Implementations raise ``StorageAppError`` when the backend cannot serve a
    request (connection lost, database locked, ...).
    """

    #: Short backend name reported by the health endpoint.
    name: str = "abstract"

    @abstractmethod
    async def add(self, record: SubmissionRecord) -> None:
        """Append one record."""
        raise NotImplementedError

    @abstractmethod
    async def last_accepted_at(self, identity: str) -> datetime | None:
        """Return the creation time of the newest record ever added for ``identity``.

        The marker is written by ``add`` and survives ``delete`` and ``prune``,
        so removing records never shortens a cooldown.
        """
        raise NotImplementedError

    @abstractmethod
    async def list_for_identity(
        self,
        identity: str,
        *,
        limit: int,
        offset: int = 0,
    ) -> list[SubmissionRecord]:
        """Return the identity's records, newest first."""
        raise NotImplementedError

    @abstractmethod
    async def count_for_identity(self, identity: str) -> int:
        raise NotImplementedError

    @abstractmethod
    async def get(self, identity: str, submission_id: str) -> SubmissionRecord | None:
        """Return the record only if it exists and belongs to ``identity``."""
        raise NotImplementedError

    @abstractmethod
    async def delete(self, identity: str, submission_id: str) -> bool:
        """Delete an owned record.

        Returns:
            True if a record was deleted, False if none matched.
        """
        raise NotImplementedError

    @abstractmethod
    async def prune(self, identity: str, *, keep: int) -> int:
        """Delete the identity's oldest records beyond the newest ``keep``.

        Returns:
            Number of records deleted.
        """
        raise NotImplementedError

    async def close(self) -> None:
        """Release backend resources. No-op by default."""
        return None
