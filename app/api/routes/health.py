from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends

from app.adapters.storage.base import AbstractSubmissionStore
from app.core.dependencies import get_submission_store
from app.schemas.optimization import HealthResponse

router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthResponse)
def health_check(
    store: Annotated[AbstractSubmissionStore, Depends(get_submission_store)],
) -> HealthResponse:
    """Liveness check reporting the configured storage backend.

    Used by load balancers and monitoring systems to determine service health.
    """

    return HealthResponse(status="ok", storage=store.name)
