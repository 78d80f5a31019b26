from __future__ import annotations

from fastapi import APIRouter

from quota_proxy.core.config import settings

router = APIRouter(tags=["Health"])


@router.get(settings.proxy.health_path)
def health_check() -> dict:
    """Health check endpoint.

    Served locally and never rate limited. Used by load balancers and
    monitoring systems to determine service health.

    Returns:
        dict: A dictionary with a single "status" key set to "ok".
    """

    return {"status": "ok"}
