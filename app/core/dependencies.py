"""FastAPI dependencies exposing the app-scoped services.

Services are built once in the application lifespan (see
``app.core.app_factory``) and stored on ``app.state``; routes reach them
through these accessors instead of module-level globals, so tests can build
an app around their own store, clock or LLM client.
"""

from __future__ import annotations

from fastapi import Request

from app.adapters.storage.base import AbstractSubmissionStore
from app.core.config import Settings
from app.services.history_service import HistoryService
from app.services.request_handler import OptimizationRequestHandler


def get_request_handler(request: Request) -> OptimizationRequestHandler:
    return request.app.state.request_handler


def get_history_service(request: Request) -> HistoryService:
    return request.app.state.history_service


def get_submission_store(request: Request) -> AbstractSubmissionStore:
    return request.app.state.store


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings
