from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Response, status

from app.core.auth import require_identity
from app.core.config import Settings
from app.core.dependencies import get_app_settings, get_history_service
from app.schemas.optimization import HistoryResponse, OptimizeResponse
from app.services.history_service import HistoryService

router = APIRouter(prefix="/optimizations", tags=["History"])

Identity = Annotated[str, Depends(require_identity)]
History = Annotated[HistoryService, Depends(get_history_service)]


@router.get("", response_model=HistoryResponse)
async def list_optimizations(
    identity: Identity,
    history: History,
    cfg: Annotated[Settings, Depends(get_app_settings)],
    limit: Annotated[int | None, Query(ge=1, le=100)] = None,
    offset: Annotated[int, Query(ge=0)] = 0,
) -> HistoryResponse:
    """List the caller's stored optimizations, newest first."""
    page_size = limit or cfg.app.history_page_size
    records, total = await history.list_history(identity, limit=page_size, offset=offset)
    return HistoryResponse(
        items=[OptimizeResponse.from_record(r) for r in records],
        total=total,
        limit=page_size,
        offset=offset,
    )


@router.get("/{submission_id}", response_model=OptimizeResponse)
async def get_optimization(
    submission_id: str,
    identity: Identity,
    history: History,
) -> OptimizeResponse:
    """Fetch one of the caller's optimizations (404 if missing or not owned)."""
    record = await history.get_submission(identity, submission_id)
    return OptimizeResponse.from_record(record)


@router.delete("/{submission_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_optimization(
    submission_id: str,
    identity: Identity,
    history: History,
) -> Response:
    """Delete one of the caller's optimizations."""
    await history.delete_submission(identity, submission_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
