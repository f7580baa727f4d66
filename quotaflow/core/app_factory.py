"""Application factory for the FastAPI app.

Centralizes app construction (metadata, middleware, handlers, routers) so
tests can build isolated instances.
"""

from __future__ import annotations

from fastapi import FastAPI

from quotaflow.api.routes import events_router, health_router, videos_router
from quotaflow.core.config import settings
from quotaflow.core.exception_handlers import setup_exception_handlers
from quotaflow.core.logging import configure_logging
from quotaflow.core.middleware import request_id_middleware
from quotaflow.core.openapi import apply_openapi_customizations


def create_app() -> FastAPI:
    """Create and configure the FastAPI application instance.

    Returns:
        Configured FastAPI app with middleware, handlers, routers and docs.
    """
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    app = FastAPI(
        title="quotaflow",
        description=(
            "Quota enforcement and video ingestion for a short-video platform: "
            "per-user rate limits over a transactional store, compensating "
            "rollback of optimistically written likes, comments and follows, "
            "and the raw upload to HLS processing pipeline."
        ),
        version="0.1.0",
        debug=settings.app.debug,
    )

    app.middleware("http")(request_id_middleware)

    setup_exception_handlers(app)

    app.include_router(events_router, prefix="/v1")
    app.include_router(videos_router, prefix="/v1")
    app.include_router(health_router)

    apply_openapi_customizations(app)

    return app
