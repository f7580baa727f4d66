from __future__ import annotations

from quotaflow.api.routes.events import router as events_router
from quotaflow.api.routes.health import router as health_router
from quotaflow.api.routes.videos import router as videos_router

__all__ = ["events_router", "health_router", "videos_router"]
