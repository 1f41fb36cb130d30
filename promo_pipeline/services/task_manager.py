"""Background job execution with observable, cancellable handles.

Each generation run is an asyncio.Task owned by BackgroundTaskManager and
described by a JobHandle. The HTTP layer starts runs and returns at once;
progress is read back through the handle (stage, error) and the persisted
job, and a run can be cancelled by job id.

Single-flight:
    start() refuses to launch a second run for a job whose current run has
    not finished. The check and the registration happen without an await in
    between, so two concurrent requests in the same event loop cannot both
    pass it.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID

from promo_pipeline.exceptions import JobAlreadyRunningError
from promo_pipeline.models import utcnow
from promo_pipeline.utils.logging import get_logger

log = get_logger(__name__)


@dataclass
class JobHandle:
    """Live view of one background generation run.

    Attributes:
        stage: Last stage reported by the runner (queued, submitting,
            generating_scenes, compositing, completed, failed, cancelled)
        error: Message of an exception that escaped the runner
        cancel_requested: Set when cancellation came from a caller rather
            than from shutdown
        finished_at: When the run ended, however it ended
    """

    job_id: UUID
    started_at: datetime = field(default_factory=utcnow)
    stage: str = "queued"
    error: str | None = None
    cancel_requested: bool = False
    finished_at: datetime | None = None
    task: asyncio.Task | None = None

    @property
    def done(self) -> bool:
        return self.task is not None and self.task.done()

    @property
    def cancelled(self) -> bool:
        return self.task is not None and self.task.cancelled()

    @property
    def running(self) -> bool:
        return self.task is not None and not self.task.done()


JobFactory = Callable[[JobHandle], Awaitable[None]]


class BackgroundTaskManager:
    """Registry of background generation runs keyed by job id.

    Finished handles stay readable for finished_retention_seconds so clients
    can see how a run ended, then are pruned.
    """

    def __init__(self, finished_retention_seconds: float = 3600.0) -> None:
        self._handles: dict[UUID, JobHandle] = {}
        self.finished_retention_seconds = finished_retention_seconds

    def start(self, job_id: UUID, factory: JobFactory) -> JobHandle:
        """Launch factory(handle) as a background task for job_id.

        Raises:
            JobAlreadyRunningError: If a run for this job is still in progress.
        """
        self.prune_finished()
        existing = self._handles.get(job_id)
        if existing is not None and existing.running:
            raise JobAlreadyRunningError(job_id)

        handle = JobHandle(job_id=job_id)
        handle.task = asyncio.create_task(
            self._run(handle, factory), name=f"promo-job-{job_id}"
        )
        self._handles[job_id] = handle
        log.info("background_job_started", job_id=str(job_id))
        return handle

    async def _run(self, handle: JobHandle, factory: JobFactory) -> None:
        try:
            await factory(handle)
        except asyncio.CancelledError:
            handle.stage = "cancelled"
            log.info("background_job_cancelled", job_id=str(handle.job_id))
            raise
        except Exception as e:
            handle.stage = "failed"
            handle.error = str(e)
            log.exception(
                "background_job_crashed",
                job_id=str(handle.job_id),
                error=str(e),
                error_type=type(e).__name__,
            )
        finally:
            handle.finished_at = utcnow()

    def prune_finished(self, max_age_seconds: float | None = None) -> int:
        """Drop handles of runs that finished more than max_age_seconds ago.

        Returns:
            Number of handles removed.
        """
        if max_age_seconds is None:
            max_age_seconds = self.finished_retention_seconds
        now = utcnow()
        expired = [
            job_id
            for job_id, handle in self._handles.items()
            if handle.done
            and (
                handle.finished_at is None
                or (now - handle.finished_at).total_seconds() >= max_age_seconds
            )
        ]
        for job_id in expired:
            del self._handles[job_id]
        if expired:
            log.info("background_jobs_pruned", count=len(expired))
        return len(expired)

    def get(self, job_id: UUID) -> JobHandle | None:
        return self._handles.get(job_id)

    def is_running(self, job_id: UUID) -> bool:
        handle = self._handles.get(job_id)
        return handle is not None and handle.running

    def active_job_ids(self) -> list[UUID]:
        return [job_id for job_id, handle in self._handles.items() if handle.running]

    def cancel(self, job_id: UUID) -> bool:
        """Request cancellation of a running job.

        Returns:
            True if a running task was asked to cancel.
        """
        handle = self._handles.get(job_id)
        if handle is None or not handle.running:
            return False
        handle.cancel_requested = True
        handle.task.cancel()  # type: ignore[union-attr]
        log.info("background_job_cancel_requested", job_id=str(job_id))
        return True

    async def wait(self, job_id: UUID) -> None:
        """Wait for a job's current run to finish (cancellation included)."""
        handle = self._handles.get(job_id)
        if handle is None or handle.task is None:
            return
        await asyncio.gather(handle.task, return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel all running jobs and wait for them to unwind."""
        tasks = [handle.task for handle in self._handles.values() if handle.running]
        for task in tasks:
            task.cancel()  # type: ignore[union-attr]
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        log.info("background_jobs_shutdown", cancelled=len(tasks))
