"""Application factory for FastAPI app.

Centralizes app construction (metadata, middleware, handlers, routers) and
owns the lifecycle of the shared collaborators: the submission store, the LLM
client, the rate gate and the services built on them are created in the
lifespan and released on shutdown.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from datetime import datetime
from typing import AsyncIterator, Callable

from fastapi import FastAPI

from app.adapters.llm.base import AbstractLLMClient
from app.adapters.llm.factory import create_llm_client
from app.adapters.storage.base import AbstractSubmissionStore
from app.adapters.storage.factory import create_submission_store
from app.api.routes import health_router, history_router, optimize_router
from app.core.config import Settings, settings as default_settings
from app.core.exception_handlers import setup_exception_handlers
from app.core.logging import configure_logging
from app.core.middleware import request_id_middleware
from app.core.openapi import apply_openapi_customizations
from app.services.history_service import HistoryService
from app.services.optimizer_service import OptimizerService
from app.services.rate_gate import RateGate, utc_now
from app.services.request_handler import OptimizationRequestHandler

logger = logging.getLogger(__name__)


def build_services(
    app: FastAPI,
    *,
    cfg: Settings,
    store: AbstractSubmissionStore,
    llm_client: AbstractLLMClient,
    clock: Callable[[], datetime] = utc_now,
) -> None:
    """Wire the service graph onto ``app.state``."""
    gate = RateGate(
        store,
        cooldown_seconds=cfg.app.rate_limit_cooldown_seconds,
        enabled=cfg.app.rate_limit_enabled,
        clock=clock,
    )
    optimizer = OptimizerService(
        llm_client,
        max_prompt_chars=cfg.app.max_prompt_chars,
        timeout_seconds=cfg.llm.timeout_seconds,
        max_attempts=cfg.llm.max_attempts,
        retry_backoff_seconds=cfg.llm.retry_backoff_seconds,
        temperature=cfg.llm.temperature,
    )

    app.state.settings = cfg
    app.state.store = store
    app.state.request_handler = OptimizationRequestHandler(
        store=store,
        gate=gate,
        optimizer=optimizer,
        retention_cap=cfg.app.retention_cap,
        clock=clock,
    )
    app.state.history_service = HistoryService(store)


def create_app(
    *,
    store: AbstractSubmissionStore | None = None,
    llm_client: AbstractLLMClient | None = None,
    clock: Callable[[], datetime] = utc_now,
    cfg: Settings | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        store: Submission store to use; built from configuration when omitted.
        llm_client: LLM client to use; built from configuration when omitted.
        clock: Time source for the rate gate and record timestamps.
        cfg: Settings override; defaults to the global settings.

    Returns:
        Configured FastAPI app with middleware, handlers, routers and docs.
    """
    cfg = cfg or default_settings

    # Logging first so subsequent init logs are formatted as desired
    configure_logging(cfg.log)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        active_store = store or create_submission_store(cfg.storage)
        active_llm = llm_client or create_llm_client(cfg.llm)
        build_services(app, cfg=cfg, store=active_store, llm_client=active_llm, clock=clock)
        logger.info(
            "app.startup",
            extra={
                "app_env": cfg.app_env,
                "storage_backend": active_store.name,
                "llm_provider": cfg.llm.provider,
                "llm_model": cfg.llm.model,
            },
        )
        try:
            yield
        finally:
            await active_store.close()
            logger.info("app.shutdown")

    app = FastAPI(
        title="Prompt Optimizer API",
        description=(
            "Optimizes user prompts with an LLM: returns the prompt's purpose, a "
            "system/user/format breakdown and three improved variants, stores each "
            "result per user and exposes the user's history. Requires X-API-Key; "
            "each user may submit once per cooldown window."
        ),
        version="0.1.0",
        license_info={
            "name": "MIT License",
            "url": "https://opensource.org/licenses/MIT",
        },
        lifespan=lifespan,
    )

    app.middleware("http")(request_id_middleware)

    setup_exception_handlers(app)

    app.include_router(optimize_router, prefix="/v1")
    app.include_router(history_router, prefix="/v1")
    app.include_router(health_router)

    # OpenAPI customizations (security scheme, tags, exemptions)
    apply_openapi_customizations(app)

    return app
