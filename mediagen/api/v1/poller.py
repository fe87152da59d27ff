"""Poller API — run one sweep on demand (external timer entry point)."""

from fastapi import APIRouter, Depends

from mediagen.api.v1.deps import Services, get_services

router = APIRouter()


@router.post("/poller/sweep")
async def run_sweep(services: Services = Depends(get_services)):
    report = await services.scheduler.sweep()
    return report.to_dict()
