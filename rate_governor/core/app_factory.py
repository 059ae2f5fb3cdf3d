"""Application factory for the FastAPI app.

Centralizes app construction (metadata, middleware, handlers, routers) to
improve testability and separation of concerns compared to a monolithic main.
"""

from __future__ import annotations

from fastapi import FastAPI

from rate_governor.api.routes import health_router, operations_router
from rate_governor.core.config import settings
from rate_governor.core.exception_handlers import setup_exception_handlers
from rate_governor.core.logging import configure_logging
from rate_governor.core.middleware import request_id_middleware
from rate_governor.core.openapi import apply_openapi_customizations


def create_app() -> FastAPI:
    """Create and configure the FastAPI application instance.

    Returns:
        Configured FastAPI app with middleware, handlers, routers and docs.
    """
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    app = FastAPI(
        title="Rate Governor",
        description=(
            "Request-rate governor protecting service endpoints with per-client, "
            "per-endpoint-class fixed-window limits. Every limited response "
            "carries X-RateLimit-Limit, X-RateLimit-Remaining and "
            "X-RateLimit-Reset; rejected requests receive 429 with Retry-After."
        ),
        version="0.1.0",
    )

    app.middleware("http")(request_id_middleware)

    setup_exception_handlers(app)

    app.include_router(operations_router, prefix="/v1")
    app.include_router(health_router)

    apply_openapi_customizations(app)

    return app
