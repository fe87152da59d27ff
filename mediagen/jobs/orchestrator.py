"""Job intake: turn a new job into a started operation or a terminal result.

This path mutates a job once, moving it from ``requested`` to ``running``
(async models) or to a terminal state. Everything after ``running`` belongs
to the poll scheduler.
"""

import logging
from datetime import timedelta
from typing import Any, Callable, Dict, Optional

from mediagen.analyzer.pipeline import RequestAnalyzer
from mediagen.config import Settings
from mediagen.errors import BackendError, GenerationError
from mediagen.jobs.models import JobRecord, JobStatus, TERMINAL_STATUSES, utcnow
from mediagen.jobs.outputs import build_job_output
from mediagen.jobs.store import JobStore
from mediagen.models.registry import ModelRegistry
from mediagen.storage.object_store import ObjectStorage

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = [s for s in JobStatus if s not in TERMINAL_STATUSES]


class JobOrchestrator:

    def __init__(
        self,
        store: JobStore,
        registry: ModelRegistry,
        analyzer: RequestAnalyzer,
        storage: ObjectStorage,
        settings: Settings,
        clock: Callable = utcnow,
    ):
        self.store = store
        self.registry = registry
        self.analyzer = analyzer
        self.storage = storage
        self.settings = settings
        self.clock = clock

    async def submit(
        self,
        request: Optional[Dict[str, Any]] = None,
        prompt: Optional[str] = None,
        model: Optional[str] = None,
    ) -> JobRecord:
        """Create a job record and handle it immediately."""
        if request is None and not prompt:
            raise ValueError("Either request or prompt is required")
        if model is None and request is not None:
            model = request.get("model")
        job = JobRecord(
            model=model,
            request=request,
            prompt=prompt,
            ai_assisted=request is None,
            created_at=self.clock(),
            updated_at=self.clock(),
        )
        await self.store.create(job)
        logger.info("Job %s created (model=%s, assisted=%s)", job.id, model, job.ai_assisted)
        return await self.handle_new_job(job.id)

    async def handle_new_job(self, job_id: str) -> JobRecord:
        """Resolve, validate and start a ``requested`` job."""
        job = await self.store.get(job_id)
        if job is None:
            raise KeyError(job_id)
        if job.status != JobStatus.REQUESTED:
            logger.info("Job %s is %s, not requested; skipping intake", job_id, job.status.value)
            return job

        try:
            return await self._start(job)
        except GenerationError as e:
            logger.error("Job %s failed at intake: %s (%s)", job_id, e.message, e.code)
            return await self._fail(job_id, e.to_record())
        except Exception as e:
            logger.exception("Job %s failed at intake", job_id)
            return await self._fail(
                job_id,
                {"code": "START_FAILED", "message": str(e) or type(e).__name__, "details": {"type": type(e).__name__}},
            )

    async def _start(self, job: JobRecord) -> JobRecord:
        # 1. A named model must exist before any analysis or schema lookup
        adapter = self.registry.get(job.model) if job.model else None

        # 2. Assisted jobs: prompt → structured request
        request = job.request
        if request is None:
            result = await self.analyzer.analyze(
                job.prompt or "", job.id, model=adapter.model_id.value if adapter else None
            )
            request = result.request
            analyzed = await self.store.update(
                job.id,
                {
                    "model": result.model,
                    "request": request,
                    "reasons": result.reasons,
                    "analyzed_at": self.clock(),
                },
                only_if_status=[JobStatus.REQUESTED],
            )
            if analyzed is None:
                return await self._left_intake(job.id)
            job = analyzed
            adapter = self.registry.get(result.model)
        elif adapter is None:
            adapter = self.registry.get(request.get("model"))

        # 3. Validation gate: nothing is started for an invalid request
        validated = adapter.schema.validate(request)
        starting = await self.store.update(
            job.id,
            {"status": JobStatus.STARTING, "model": adapter.model_id.value, "request": validated},
            only_if_status=[JobStatus.REQUESTED],
        )
        if starting is None:
            return await self._left_intake(job.id)

        # 4. Start
        started = await adapter.start(validated, job.id)
        now = self.clock()

        if adapter.is_async and started.operation_handle:
            updated = await self.store.update(
                job.id,
                {
                    "status": JobStatus.RUNNING,
                    "operation_handle": started.operation_handle,
                    "attempt": 0,
                    "next_poll_at": now,
                    "ttl_at": now + timedelta(seconds=self.settings.job_ttl_seconds),
                },
                only_if_status=[JobStatus.STARTING],
            )
            logger.info("Job %s started (async): %s", job.id, started.operation_handle)
            return updated or await self.store.get(job.id)

        if not adapter.is_async and started.output is not None:
            response, files = await build_job_output(
                started.output,
                adapter.kind.value,
                self.storage,
                self.settings.signed_url_ttl_seconds,
            )
            updated = await self.store.update(
                job.id,
                {"status": JobStatus.SUCCEEDED, "response": response, "files": files},
                only_if_status=[JobStatus.STARTING],
            )
            logger.info("Job %s completed (sync): %s", job.id, started.output.uri)
            return updated or await self.store.get(job.id)

        raise BackendError(
            f"{adapter.model_id.value} returned neither an operation handle nor an output",
            code="START_FAILED",
        )

    async def _left_intake(self, job_id: str) -> JobRecord:
        # Canceled (or otherwise moved on) while intake was in progress: never start it
        job = await self.store.get(job_id)
        logger.info("Job %s left requested during intake (now %s); not starting", job_id, job.status.value)
        return job

    async def _fail(self, job_id: str, error: Dict[str, Any]) -> JobRecord:
        updated = await self.store.update(
            job_id,
            {"status": JobStatus.FAILED, "error": error, "operation_handle": None},
            only_if_status=ACTIVE_STATUSES,
        )
        return updated or await self.store.get(job_id)

    async def cancel(self, job_id: str) -> Optional[JobRecord]:
        """Externally triggered cancellation. Terminal jobs are left unchanged."""
        updated = await self.store.update(
            job_id,
            {"status": JobStatus.CANCELED, "operation_handle": None},
            only_if_status=ACTIVE_STATUSES,
        )
        if updated is not None:
            logger.info("Job %s canceled", job_id)
            return updated
        return await self.store.get(job_id)
