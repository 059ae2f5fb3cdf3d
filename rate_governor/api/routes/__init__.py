from __future__ import annotations

from rate_governor.api.routes.health import router as health_router
from rate_governor.api.routes.operations import router as operations_router

__all__ = ["health_router", "operations_router"]
