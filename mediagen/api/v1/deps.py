"""Service wiring shared by the v1 endpoints."""

from dataclasses import dataclass

from fastapi import HTTPException, Request

from mediagen.config import Settings
from mediagen.jobs.orchestrator import JobOrchestrator
from mediagen.jobs.scheduler import PollScheduler
from mediagen.jobs.store import JobStore
from mediagen.models.registry import ModelRegistry


@dataclass
class Services:
    settings: Settings
    store: JobStore
    registry: ModelRegistry
    orchestrator: JobOrchestrator
    scheduler: PollScheduler


def get_services(request: Request) -> Services:
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(status_code=503, detail="Services not initialized")
    return services
