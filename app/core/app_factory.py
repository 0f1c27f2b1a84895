from __future__ import annotations

"""Application factory for FastAPI app.

Centralizes app construction (metadata, middleware, handlers, routers,
background tasks) to improve testability compared to a monolithic main.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from app.api.routes import auth_router, health_router, rate_limit_router, users_router
from app.core.config import settings
from app.core.exception_handlers import setup_exception_handlers
from app.core.logging import configure_logging
from app.core.middleware import request_id_middleware
from app.core.openapi import apply_openapi_customizations
from app.core.rate_limit import get_window_store, rate_limit_compensation_middleware
from app.services.retention import RetentionSweeper


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Run the retention sweeper for the lifetime of the app."""

    sweeper = RetentionSweeper(
        get_window_store(),
        interval_seconds=settings.app.rate_limit_sweep_interval_seconds,
    )
    sweeper.start()
    app.state.retention_sweeper = sweeper
    try:
        yield
    finally:
        await sweeper.stop()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application instance.

    Returns:
        Configured FastAPI app with middleware, handlers, routers and docs.
    """
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    app = FastAPI(
        title="Admission Control API",
        description=(
            "CRUD backend protected by hybrid per-caller rate limiting: "
            "anonymous callers are billed per client address, authenticated "
            "callers per user. Exposes usage introspection endpoints."
        ),
        version="0.1.0",
        lifespan=lifespan,
        license_info={
            "name": "MIT License",
            "url": "https://opensource.org/licenses/MIT",
        },
    )

    # Middleware (last registered runs first)
    app.middleware("http")(rate_limit_compensation_middleware)
    app.middleware("http")(request_id_middleware)

    # Exception handlers
    setup_exception_handlers(app)

    # Routers
    app.include_router(auth_router, prefix="/v1")
    app.include_router(users_router, prefix="/v1")
    app.include_router(rate_limit_router, prefix="/v1")
    app.include_router(health_router)

    # OpenAPI customizations (security scheme, tags, exemptions)
    apply_openapi_customizations(app)

    return app
