"""Background reconciliation and retention loop.

Runs for the lifetime of the app (started in the FastAPI lifespan):

- Adoption: jobs persisted as ``generating`` with no live background run in
  this process (for example after a restart) are resumed with
  PipelineRunner.run(resume=True). Polling continues within the remaining
  video budget, then compositing proceeds as usual.
- Retention: once per retention period check, jobs older than RETENTION_DAYS
  are purged together with their scenes.

Read endpoints never call the provider; they return whatever this loop and
the running pipelines last persisted.
"""

import asyncio
from datetime import timedelta
from uuid import UUID

from promo_pipeline.exceptions import JobAlreadyRunningError
from promo_pipeline.models import JobStatus, utcnow
from promo_pipeline.services.job_repository import JobRepository
from promo_pipeline.services.pipeline import PipelineRunner
from promo_pipeline.services.task_manager import BackgroundTaskManager
from promo_pipeline.utils.logging import get_logger

log = get_logger(__name__)

RETENTION_CHECK_SECONDS = 24 * 60 * 60


class ReconciliationLoop:
    """Adopts orphaned generating jobs and purges expired ones."""

    def __init__(
        self,
        repository: JobRepository,
        task_manager: BackgroundTaskManager,
        runner: PipelineRunner,
        interval_seconds: float = 15.0,
        retention_days: int = 60,
    ) -> None:
        self.repository = repository
        self.task_manager = task_manager
        self.runner = runner
        self.interval_seconds = interval_seconds
        self.retention_days = retention_days
        self._last_retention_check: float | None = None

    async def reconcile_once(self) -> list[UUID]:
        """Forget stale finished runs, then resume every generating job that has no live run.

        Returns:
            Ids of the adopted jobs.
        """
        self.task_manager.prune_finished()
        adopted: list[UUID] = []
        for job in await self.repository.list_jobs_by_status(JobStatus.GENERATING):
            if self.task_manager.is_running(job.id):
                continue
            try:
                self.task_manager.start(
                    job.id,
                    lambda handle, job_id=job.id: self.runner.run(job_id, handle, resume=True),
                )
            except JobAlreadyRunningError:
                continue
            adopted.append(job.id)
            log.info("job_adopted", job_id=str(job.id))
        return adopted

    async def purge_expired(self) -> int:
        cutoff = utcnow() - timedelta(days=self.retention_days)
        return await self.repository.delete_jobs_older_than(cutoff)

    async def run_forever(self) -> None:
        """Main loop; runs until cancelled. Errors are logged and the loop continues."""
        loop = asyncio.get_running_loop()
        log.info(
            "reconciliation_loop_started",
            interval_seconds=self.interval_seconds,
            retention_days=self.retention_days,
        )
        while True:
            try:
                await self.reconcile_once()

                now = loop.time()
                if (
                    self._last_retention_check is None
                    or now - self._last_retention_check >= RETENTION_CHECK_SECONDS
                ):
                    self._last_retention_check = now
                    await self.purge_expired()

                await asyncio.sleep(self.interval_seconds)

            except asyncio.CancelledError:
                log.info("reconciliation_loop_cancelled")
                break
            except Exception as e:
                log.error(
                    "reconciliation_loop_error",
                    error=str(e),
                    error_type=type(e).__name__,
                )
                await asyncio.sleep(self.interval_seconds)
