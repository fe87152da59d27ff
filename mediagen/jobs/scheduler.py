"""Poll scheduler: drives running jobs to a terminal state.

Each sweep is stateless. It lists running jobs that are due, expires the
ones past their TTL without polling them, and polls at most
``poll_concurrency`` of the rest concurrently. Jobs left over stay
``running`` and are picked up by a later sweep.

Every write made here is conditional on the job still being ``running``,
so a job canceled while its poll was in flight keeps its ``canceled``
status.
"""

import asyncio
import logging
from dataclasses import asdict, dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

from mediagen.config import Settings
from mediagen.errors import BackendError, ExpiredError, GenerationError, PollTimeoutError
from mediagen.jobs.models import JobRecord, JobStatus, utcnow
from mediagen.jobs.outputs import build_job_output
from mediagen.jobs.store import JobStore
from mediagen.models.base import OperationState
from mediagen.models.registry import ModelRegistry
from mediagen.storage.object_store import ObjectStorage

logger = logging.getLogger(__name__)

RUNNING_ONLY = [JobStatus.RUNNING]


@dataclass
class SweepReport:
    eligible: int = 0
    expired: int = 0
    selected: int = 0
    deferred: int = 0
    succeeded: int = 0
    failed: int = 0
    pending: int = 0
    transient: int = 0
    skipped: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


class PollScheduler:

    def __init__(
        self,
        store: JobStore,
        registry: ModelRegistry,
        storage: ObjectStorage,
        settings: Settings,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.store = store
        self.registry = registry
        self.storage = storage
        self.settings = settings
        self.clock = clock
        self._task: Optional[asyncio.Task] = None
        self._running = False

    async def sweep(self) -> SweepReport:
        """Run one eligibility, selection and poll cycle."""
        now = self.clock()
        due = await self.store.list_due(now)
        report = SweepReport(eligible=len(due))

        live = []
        for job in due:
            if job.ttl_at is not None and job.ttl_at <= now:
                try:
                    if await self._expire(job):
                        report.expired += 1
                except Exception:
                    logger.exception("Job %s: expiry write failed; retrying next sweep", job.id)
                    report.transient += 1
            else:
                live.append(job)

        selected = live[: self.settings.poll_concurrency]
        report.selected = len(selected)
        report.deferred = len(live) - len(selected)

        outcomes = await asyncio.gather(*(self._poll_job(job, now) for job in selected))
        for outcome in outcomes:
            setattr(report, outcome, getattr(report, outcome) + 1)

        if report.eligible:
            logger.info("Sweep: %s", report.to_dict())
        return report

    async def _expire(self, job: JobRecord) -> bool:
        error = ExpiredError(
            f"Job exceeded its TTL after {job.attempt} poll attempt(s)",
            details={"ttl_at": job.ttl_at.isoformat(), "attempt": job.attempt},
        )
        updated = await self.store.update(
            job.id,
            {"status": JobStatus.EXPIRED, "error": error.to_record(), "operation_handle": None},
            only_if_status=RUNNING_ONLY,
        )
        if updated is not None:
            logger.info("Job %s expired", job.id)
        return updated is not None

    async def _poll_job(self, job: JobRecord, now: datetime) -> str:
        """Poll one job and apply the outcome. Returns a ``SweepReport`` field name.

        A failure while applying the outcome (store or storage errors) is
        logged and counted as transient so the rest of the sweep completes.
        The job stays ``running`` and is picked up again next sweep.
        """
        try:
            return await self._poll_and_apply(job, now)
        except Exception:
            logger.exception("Job %s: failed to apply poll outcome; retrying next sweep", job.id)
            return "transient"

    async def _poll_and_apply(self, job: JobRecord, now: datetime) -> str:
        try:
            adapter = self.registry.get(job.model)
        except GenerationError as e:
            return await self._fail(job, e.to_record())
        if adapter.poll is None or not job.operation_handle:
            return await self._fail(
                job,
                BackendError(f"Job has no pollable operation for {job.model}").to_record(),
            )

        try:
            result = await asyncio.wait_for(
                adapter.poll(job.operation_handle),
                timeout=self.settings.poll_timeout_seconds,
            )
        except asyncio.TimeoutError:
            error = PollTimeoutError(
                f"Poll did not respond within {self.settings.poll_timeout_seconds}s"
            )
            logger.warning("Job %s: %s (attempt %s)", job.id, error.message, job.attempt + 1)
            return await self._reschedule(job, now, failed_at=now, outcome="transient")
        except Exception as e:
            logger.warning(
                "Job %s: poll raised %s: %s (attempt %s)",
                job.id, type(e).__name__, e, job.attempt + 1,
            )
            return await self._reschedule(job, now, failed_at=now, outcome="transient")

        if result.state == OperationState.PENDING:
            return await self._reschedule(job, now, outcome="pending")

        if result.state == OperationState.ERRORED:
            details: Dict[str, Any] = dict(result.error or {})
            error = BackendError(
                str(details.get("message") or "Backend operation failed"),
                details=details,
            )
            logger.error("Job %s: backend error: %s", job.id, error.message)
            return await self._fail(job, error.to_record())

        try:
            output = await adapter.extract_output(result, job.id)
        except GenerationError as e:
            logger.error("Job %s: output extraction failed: %s", job.id, e.message)
            return await self._fail(job, e.to_record())
        except Exception as e:
            logger.exception("Job %s: output extraction failed", job.id)
            return await self._fail(
                job,
                {
                    "code": "OUTPUT_EXTRACTION_FAILED",
                    "message": str(e) or type(e).__name__,
                    "details": {"type": type(e).__name__},
                },
            )

        response, files = await build_job_output(
            output, adapter.kind.value, self.storage, self.settings.signed_url_ttl_seconds
        )
        updated = await self.store.update(
            job.id,
            {
                "status": JobStatus.SUCCEEDED,
                "response": response,
                "files": files,
                "operation_handle": None,
                "attempt": job.attempt + 1,
            },
            only_if_status=RUNNING_ONLY,
        )
        if updated is None:
            logger.info("Job %s left its running state during poll; result discarded", job.id)
            return "skipped"
        logger.info("Job %s succeeded: %s", job.id, output.uri or "inline output")
        return "succeeded"

    async def _reschedule(
        self,
        job: JobRecord,
        now: datetime,
        failed_at: Optional[datetime] = None,
        outcome: str = "pending",
    ) -> str:
        fields: Dict[str, Any] = {
            "attempt": job.attempt + 1,
            "next_poll_at": now + timedelta(seconds=self.settings.poll_interval_seconds),
        }
        if failed_at is not None:
            fields["last_error_at"] = failed_at
        updated = await self.store.update(job.id, fields, only_if_status=RUNNING_ONLY)
        return outcome if updated is not None else "skipped"

    async def _fail(self, job: JobRecord, error: Dict[str, Any]) -> str:
        updated = await self.store.update(
            job.id,
            {"status": JobStatus.FAILED, "error": error, "operation_handle": None},
            only_if_status=RUNNING_ONLY,
        )
        if updated is None:
            return "skipped"
        logger.info("Job %s failed: %s", job.id, error.get("code"))
        return "failed"

    # In-process timer

    async def start(self) -> None:
        self._running = True
        self._task = asyncio.create_task(self._sweep_loop())

    async def stop(self) -> None:
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    async def _sweep_loop(self) -> None:
        while self._running:
            try:
                await self.sweep()
            except asyncio.CancelledError:
                break
            except Exception:
                logger.exception("Sweep failed")
            await asyncio.sleep(self.settings.sweep_interval_seconds)
