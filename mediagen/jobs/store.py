"""Job store interface and in-process implementation."""

import asyncio
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

from mediagen.jobs.models import JobRecord, JobStatus, utcnow


class JobStore(ABC):
    """Abstract persistence for job records (in-process or Supabase)."""

    @abstractmethod
    async def create(self, job: JobRecord) -> JobRecord:
        """Persist a new job. Returns the stored record."""
        ...

    @abstractmethod
    async def get(self, job_id: str) -> Optional[JobRecord]:
        """Get a job by id, or None."""
        ...

    @abstractmethod
    async def update(
        self,
        job_id: str,
        fields: Dict[str, Any],
        only_if_status: Optional[Iterable[JobStatus]] = None,
    ) -> Optional[JobRecord]:
        """Apply a partial update and bump ``updated_at``.

        When ``only_if_status`` is given the update is applied only if the
        job's current status is one of them; otherwise None is returned.
        """
        ...

    @abstractmethod
    async def list_due(self, now: datetime) -> List[JobRecord]:
        """Running jobs whose ``next_poll_at`` is at or before ``now``."""
        ...


def apply_fields(job: JobRecord, fields: Dict[str, Any]) -> JobRecord:
    """Merge ``fields`` into ``job`` with validation, stamping ``updated_at``."""
    data = job.model_dump()
    data.update(fields)
    data["updated_at"] = fields.get("updated_at") or utcnow()
    return JobRecord.model_validate(data)


class InMemoryJobStore(JobStore):
    """Process-local job store. Suitable for a single worker and for tests."""

    def __init__(self):
        self._jobs: Dict[str, JobRecord] = {}
        self._lock = asyncio.Lock()

    async def create(self, job: JobRecord) -> JobRecord:
        async with self._lock:
            self._jobs[job.id] = job
        return job

    async def get(self, job_id: str) -> Optional[JobRecord]:
        return self._jobs.get(job_id)

    async def update(
        self,
        job_id: str,
        fields: Dict[str, Any],
        only_if_status: Optional[Iterable[JobStatus]] = None,
    ) -> Optional[JobRecord]:
        async with self._lock:
            job = self._jobs.get(job_id)
            if job is None:
                return None
            if only_if_status is not None and job.status not in set(only_if_status):
                return None
            updated = apply_fields(job, fields)
            self._jobs[job_id] = updated
            return updated

    async def list_due(self, now: datetime) -> List[JobRecord]:
        return [
            job
            for job in self._jobs.values()
            if job.status == JobStatus.RUNNING
            and job.next_poll_at is not None
            and job.next_poll_at <= now
        ]
