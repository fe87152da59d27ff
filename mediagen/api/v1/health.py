"""Health check endpoint."""

import platform
import sys

from fastapi import APIRouter, Depends

from mediagen.api.v1.deps import Services, get_services

router = APIRouter()


@router.get("/health")
async def health_check(services: Services = Depends(get_services)):
    """Service health and wiring summary."""
    return {
        "status": "healthy",
        "models": len(services.registry.model_ids()),
        "job_store": services.settings.job_store,
        "sweep_loop": services.settings.run_sweep_loop,
        "python_version": sys.version,
        "platform": platform.platform(),
    }
