"""Job store backed by a Supabase table.

One row per job; request/response/files/error/reasons are JSON columns and
timestamps are ISO-8601 strings. The supabase client is synchronous, so
each call runs in a thread executor to keep the event loop free.
"""

import asyncio
import logging
from datetime import datetime
from functools import partial
from typing import Any, Dict, Iterable, List, Optional

from supabase import Client

from mediagen.jobs.models import JobRecord, JobStatus, utcnow
from mediagen.jobs.store import JobStore

logger = logging.getLogger(__name__)


def _serialize(fields: Dict[str, Any]) -> Dict[str, Any]:
    out: Dict[str, Any] = {}
    for key, value in fields.items():
        if isinstance(value, datetime):
            out[key] = value.isoformat()
        elif isinstance(value, JobStatus):
            out[key] = value.value
        elif hasattr(value, "model_dump"):
            out[key] = value.model_dump(mode="json")
        elif isinstance(value, dict):
            out[key] = {
                k: v.model_dump(mode="json") if hasattr(v, "model_dump") else v
                for k, v in value.items()
            }
        else:
            out[key] = value
    return out


class SupabaseJobStore(JobStore):

    def __init__(self, client: Client, table: str = "generation_jobs"):
        self._client = client
        self._table = table

    async def _run(self, fn, *args):
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, partial(fn, *args))

    def _insert(self, row: Dict[str, Any]):
        return self._client.table(self._table).insert(row).execute()

    def _select_one(self, job_id: str):
        return (
            self._client.table(self._table)
            .select("*")
            .eq("id", job_id)
            .limit(1)
            .execute()
        )

    def _update(self, job_id: str, row: Dict[str, Any], statuses: Optional[List[str]]):
        query = self._client.table(self._table).update(row).eq("id", job_id)
        if statuses is not None:
            query = query.in_("status", statuses)
        return query.execute()

    def _select_due(self, now_iso: str):
        return (
            self._client.table(self._table)
            .select("*")
            .eq("status", JobStatus.RUNNING.value)
            .lte("next_poll_at", now_iso)
            .execute()
        )

    async def create(self, job: JobRecord) -> JobRecord:
        await self._run(self._insert, job.model_dump(mode="json"))
        return job

    async def get(self, job_id: str) -> Optional[JobRecord]:
        response = await self._run(self._select_one, job_id)
        rows = response.data or []
        if not rows:
            return None
        return JobRecord.model_validate(rows[0])

    async def update(
        self,
        job_id: str,
        fields: Dict[str, Any],
        only_if_status: Optional[Iterable[JobStatus]] = None,
    ) -> Optional[JobRecord]:
        row = _serialize({**fields, "updated_at": fields.get("updated_at") or utcnow()})
        statuses = [s.value for s in only_if_status] if only_if_status is not None else None
        response = await self._run(self._update, job_id, row, statuses)
        rows = response.data or []
        if not rows:
            if statuses is not None:
                logger.info("Skipped update for job %s: status not in %s", job_id, statuses)
            return None
        return JobRecord.model_validate(rows[0])

    async def list_due(self, now: datetime) -> List[JobRecord]:
        response = await self._run(self._select_due, now.isoformat())
        return [JobRecord.model_validate(row) for row in (response.data or [])]
