"""Health check endpoints."""

from datetime import UTC, datetime
from typing import Any

from fastapi import APIRouter, Depends

from provisioner import __version__
from provisioner.config import ProvisionerSettings
from provisioner_api.dependencies import get_provisioner_settings

router = APIRouter(tags=["health"])


@router.get("/health")
async def health(
    settings: ProvisionerSettings = Depends(get_provisioner_settings),
) -> dict[str, Any]:
    """Detailed liveness check at /api/health."""
    return {
        "status": "ok",
        "service": "provisioner-api",
        "version": __version__,
        "environment": settings.environment,
        "timestamp": datetime.now(UTC).isoformat(),
    }
