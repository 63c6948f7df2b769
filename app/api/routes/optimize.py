from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, BackgroundTasks, Depends, status

from app.core.auth import get_optional_identity
from app.core.dependencies import get_request_handler
from app.core.errors import PersistenceAppError
from app.schemas.optimization import OptimizeRequest, OptimizeResponse
from app.services.request_handler import OptimizationRequestHandler

router = APIRouter(tags=["Optimization"])


@router.post(
    "/optimize",
    response_model=OptimizeResponse,
    status_code=status.HTTP_201_CREATED,
)
async def optimize_prompt(
    body: OptimizeRequest,
    background_tasks: BackgroundTasks,
    identity: Annotated[str | None, Depends(get_optional_identity)],
    handler: Annotated[OptimizationRequestHandler, Depends(get_request_handler)],
) -> OptimizeResponse:
    """Optimize a prompt and store the result in the caller's history.

    Returns the stored submission on success. Every other outcome is
    rendered by the global error handler with its reason code:
    INVALID_INPUT (400), AUTH_ERROR (403), RATE_LIMIT (429, with
    Retry-After), API_ERROR (502), UNAVAILABLE (503), TIMEOUT (504) or
    PERSISTENCE_ERROR (500, computed result included in the details).
    """
    outcome = await handler.handle(identity, body.prompt)

    if outcome.error is not None:
        raise outcome.error

    record = outcome.record
    if record is None:
        raise PersistenceAppError(
            code="result_not_saved",
            message="The prompt was optimized but no stored submission was returned.",
        )

    # Eviction of old submissions runs after the response is sent
    background_tasks.add_task(handler.enforce_retention, record.identity)

    return OptimizeResponse.from_record(record)
