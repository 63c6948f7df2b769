"""SQLAlchemy-backed submission store.

SQLAlchemy sessions are synchronous, so each operation runs in the default
thread pool executor to keep the event loop free, the same way blocking
extraction work is offloaded elsewhere in the app.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Callable, TypeVar

from sqlalchemy import JSON, DateTime, Index, String, Text, create_engine, delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, Session, mapped_column, sessionmaker
from sqlalchemy.pool import StaticPool

from app.adapters.storage.base import AbstractSubmissionStore
from app.core.errors import StorageAppError
from app.schemas.optimization import OptimizationResult, SubmissionRecord

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Base(DeclarativeBase):
    pass


class SubmissionRow(Base):
    """One stored optimization, owned by ``identity``."""

    __tablename__ = "submissions"
    __table_args__ = (
        Index("idx_submissions_identity_created_at", "identity", "created_at"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    identity: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    prompt: Mapped[str] = mapped_column(Text, nullable=False)
    result: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class LastAcceptedRow(Base):
    """Newest accepted submission time per identity; untouched by deletes."""

    __tablename__ = "last_accepted"

    identity: Mapped[str] = mapped_column(String(255), primary_key=True)
    accepted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


def _as_utc(value: datetime) -> datetime:
    # SQLite drops tzinfo on the way back
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _to_record(row: SubmissionRow) -> SubmissionRecord:
    return SubmissionRecord(
        id=row.id,
        identity=row.identity,
        prompt=row.prompt,
        result=OptimizationResult.model_validate(row.result),
        created_at=_as_utc(row.created_at),
    )


def _engine_kwargs(database_url: str) -> dict[str, Any]:
    if not database_url.startswith("sqlite"):
        return {"pool_pre_ping": True}

    kwargs: dict[str, Any] = {"connect_args": {"check_same_thread": False}}
    if database_url in ("sqlite://", "sqlite:///:memory:"):
        # Share the single in-memory database across executor threads
        kwargs["poolclass"] = StaticPool
    return kwargs


class SQLSubmissionStore(AbstractSubmissionStore):
    """Submission store on any SQLAlchemy-supported database (SQLite by default)."""

    name = "sql"

    def __init__(self, database_url: str, *, echo: bool = False) -> None:
        self._engine = create_engine(database_url, echo=echo, **_engine_kwargs(database_url))
        self._session_factory = sessionmaker(bind=self._engine, expire_on_commit=False)
        Base.metadata.create_all(self._engine)

    async def _run(self, operation: str, fn: Callable[[Session], T]) -> T:
        """Run ``fn`` inside a session on the executor, mapping DB errors."""

        def _call() -> T:
            with self._session_factory.begin() as session:
                return fn(session)

        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, _call)
        except SQLAlchemyError as exc:
            logger.error(
                "storage.operation_failed",
                extra={"operation": operation, "error_type": type(exc).__name__},
            )
            raise StorageAppError(
                code="storage_unavailable",
                message="Submission storage is unavailable",
                details={"context": {"operation": operation}},
            ) from exc

    async def add(self, record: SubmissionRecord) -> None:
        row = SubmissionRow(
            id=record.id,
            identity=record.identity,
            prompt=record.prompt,
            result=record.result.model_dump(mode="json"),
            created_at=record.created_at,
        )

        def _insert(session: Session) -> None:
            session.add(row)
            marker = session.get(LastAcceptedRow, record.identity)
            if marker is None:
                session.add(LastAcceptedRow(identity=record.identity, accepted_at=record.created_at))
            elif _as_utc(marker.accepted_at) < record.created_at:
                marker.accepted_at = record.created_at

        await self._run("add", _insert)

    async def last_accepted_at(self, identity: str) -> datetime | None:
        def _query(session: Session) -> datetime | None:
            marker = session.get(LastAcceptedRow, identity)
            return _as_utc(marker.accepted_at) if marker is not None else None

        return await self._run("last_accepted_at", _query)

    async def list_for_identity(
        self,
        identity: str,
        *,
        limit: int,
        offset: int = 0,
    ) -> list[SubmissionRecord]:
        def _query(session: Session) -> list[SubmissionRecord]:
            stmt = (
                select(SubmissionRow)
                .where(SubmissionRow.identity == identity)
                .order_by(SubmissionRow.created_at.desc(), SubmissionRow.id.desc())
                .limit(limit)
                .offset(offset)
            )
            return [_to_record(row) for row in session.scalars(stmt)]

        return await self._run("list_for_identity", _query)

    async def count_for_identity(self, identity: str) -> int:
        def _query(session: Session) -> int:
            stmt = select(func.count()).select_from(SubmissionRow).where(
                SubmissionRow.identity == identity
            )
            return int(session.execute(stmt).scalar_one())

        return await self._run("count_for_identity", _query)

    async def get(self, identity: str, submission_id: str) -> SubmissionRecord | None:
        def _query(session: Session) -> SubmissionRecord | None:
            stmt = select(SubmissionRow).where(
                SubmissionRow.id == submission_id,
                SubmissionRow.identity == identity,
            )
            row = session.scalars(stmt).first()
            return _to_record(row) if row is not None else None

        return await self._run("get", _query)

    async def delete(self, identity: str, submission_id: str) -> bool:
        def _query(session: Session) -> bool:
            stmt = delete(SubmissionRow).where(
                SubmissionRow.id == submission_id,
                SubmissionRow.identity == identity,
            )
            return session.execute(stmt).rowcount > 0

        return await self._run("delete", _query)

    async def prune(self, identity: str, *, keep: int) -> int:
        if keep < 0:
            raise ValueError("keep must be >= 0")

        def _query(session: Session) -> int:
            stale_ids = select(SubmissionRow.id).where(
                SubmissionRow.identity == identity
            ).order_by(
                SubmissionRow.created_at.desc(), SubmissionRow.id.desc()
            ).offset(keep)
            ids = list(session.scalars(stale_ids))
            if not ids:
                return 0
            session.execute(delete(SubmissionRow).where(SubmissionRow.id.in_(ids)))
            return len(ids)

        return await self._run("prune", _query)

    async def close(self) -> None:
        await asyncio.get_running_loop().run_in_executor(None, self._engine.dispose)
