from __future__ import annotations

from app.api.routes.health import router as health_router
from app.api.routes.history import router as history_router
from app.api.routes.optimize import router as optimize_router

__all__ = ["health_router", "history_router", "optimize_router"]
