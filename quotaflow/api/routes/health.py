from __future__ import annotations

from fastapi import APIRouter

from quotaflow.core.config import settings

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check() -> dict:
    """Liveness check used by the load balancer and uptime checks.

    Returns:
        dict: ``status`` set to "ok" and the active storage backend.
    """

    return {"status": "ok", "storage_backend": settings.storage.backend}
