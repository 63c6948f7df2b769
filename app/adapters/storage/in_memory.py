"""In-memory submission store.

Notes:
- Per-process only: records vanish on restart and are not shared between
  workers. Use the SQL backend for anything beyond development and tests.
- Thread-safe: uses a lock around shared state.
"""

from __future__ import annotations

import threading
from datetime import datetime

from app.adapters.storage.base import AbstractSubmissionStore
from app.schemas.optimization import SubmissionRecord


class InMemorySubmissionStore(AbstractSubmissionStore):
    """Submission store keeping per-identity lists in a dict.

    Each list is kept in insertion order, which is also creation order for
    records produced by the request handler.
    """

    name = "memory"

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._records_by_identity: dict[str, list[SubmissionRecord]] = {}
        self._last_accepted: dict[str, datetime] = {}

    def _newest_first(self, identity: str) -> list[SubmissionRecord]:
        records = self._records_by_identity.get(identity, [])
        # sorted() is stable, so equal timestamps keep insertion order (reversed)
        return sorted(reversed(records), key=lambda r: r.created_at, reverse=True)

    async def add(self, record: SubmissionRecord) -> None:
        with self._lock:
            self._records_by_identity.setdefault(record.identity, []).append(record)
            previous = self._last_accepted.get(record.identity)
            if previous is None or record.created_at > previous:
                self._last_accepted[record.identity] = record.created_at

    async def last_accepted_at(self, identity: str) -> datetime | None:
        with self._lock:
            return self._last_accepted.get(identity)

    async def list_for_identity(
        self,
        identity: str,
        *,
        limit: int,
        offset: int = 0,
    ) -> list[SubmissionRecord]:
        with self._lock:
            return self._newest_first(identity)[offset : offset + limit]

    async def count_for_identity(self, identity: str) -> int:
        with self._lock:
            return len(self._records_by_identity.get(identity, []))

    async def get(self, identity: str, submission_id: str) -> SubmissionRecord | None:
        with self._lock:
            for record in self._records_by_identity.get(identity, []):
                if record.id == submission_id:
                    return record
            return None

    async def delete(self, identity: str, submission_id: str) -> bool:
        with self._lock:
            records = self._records_by_identity.get(identity, [])
            for index, record in enumerate(records):
                if record.id == submission_id:
                    del records[index]
                    return True
            return False

    async def prune(self, identity: str, *, keep: int) -> int:
        if keep < 0:
            raise ValueError("keep must be >= 0")

        with self._lock:
            records = self._records_by_identity.get(identity)
            if not records or len(records) <= keep:
                return 0

            kept = self._newest_first(identity)[:keep]
            kept_ids = {r.id for r in kept}
            removed = len(records) - len(kept)
            self._records_by_identity[identity] = [r for r in records if r.id in kept_ids]
            return removed
