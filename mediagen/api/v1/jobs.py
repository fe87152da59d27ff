"""Job API — submit jobs, read snapshots, cancel."""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, model_validator

from mediagen.api.v1.deps import Services, get_services
from mediagen.jobs.models import JobRecord

router = APIRouter()


class JobSubmitRequest(BaseModel):
    model: Optional[str] = None
    request: Optional[Dict[str, Any]] = None
    prompt: Optional[str] = None

    @model_validator(mode="after")
    def _request_or_prompt(self) -> "JobSubmitRequest":
        if self.request is None and not (self.prompt or "").strip():
            raise ValueError("Either 'request' or a non-empty 'prompt' is required")
        if self.request is not None and self.prompt:
            raise ValueError("'request' and 'prompt' are mutually exclusive")
        return self


def job_snapshot(job: JobRecord) -> Dict[str, Any]:
    return job.model_dump(mode="json")


@router.post("/jobs")
async def submit_job(body: JobSubmitRequest, services: Services = Depends(get_services)):
    """Create a job and run intake.

    Model and validation errors end up on the job record (status ``failed``),
    not as HTTP errors.
    """
    request = body.request
    if request is not None and body.model and "model" not in request:
        request = {**request, "model": body.model}
    job = await services.orchestrator.submit(request=request, prompt=body.prompt, model=body.model)
    return job_snapshot(job)


@router.get("/jobs/{job_id}")
async def get_job(job_id: str, services: Services = Depends(get_services)):
    """Current state of a job."""
    job = await services.store.get(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return job_snapshot(job)


@router.post("/jobs/{job_id}/cancel")
async def cancel_job(job_id: str, services: Services = Depends(get_services)):
    job = await services.orchestrator.cancel(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Job not found")
    return job_snapshot(job)
