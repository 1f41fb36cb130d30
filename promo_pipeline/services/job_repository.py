"""Job and scene persistence.

JobRepository is the only component that writes Job, Scene, ProjectVisual
and ApiUsage rows. It is constructed with a session factory and every public
method runs in its own short transaction, so callers never hold a database
connection across provider calls or ffmpeg runs.

Field updates are last-writer-wins. Scene updates are idempotent: applying a
terminal status the scene already has changes nothing and records no cost.
"""

from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from promo_pipeline.database import session_scope
from promo_pipeline.exceptions import JobNotFoundError
from promo_pipeline.models import (
    Job,
    JobKind,
    JobStatus,
    ProjectVisual,
    Scene,
    SceneStatus,
    utcnow,
)
from promo_pipeline.schemas.job import JobCreate
from promo_pipeline.services.cost_tracker import get_job_cost_cents, track_api_cost
from promo_pipeline.utils.logging import get_logger

log = get_logger(__name__)


@dataclass
class AggregateStatus:
    """Scene counts per status for one job (derived, never stored)."""

    total: int
    pending: int
    generating: int
    success: int
    failed: int

    @property
    def all_complete(self) -> bool:
        return self.success + self.failed == self.total

    @property
    def all_success(self) -> bool:
        return self.total > 0 and self.success == self.total

    @classmethod
    def from_scenes(cls, scenes: list[Scene]) -> "AggregateStatus":
        counts = {status: 0 for status in SceneStatus}
        for scene in scenes:
            counts[scene.status] += 1
        return cls(
            total=len(scenes),
            pending=counts[SceneStatus.PENDING],
            generating=counts[SceneStatus.GENERATING],
            success=counts[SceneStatus.SUCCESS],
            failed=counts[SceneStatus.FAILED],
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            **asdict(self),
            "all_complete": self.all_complete,
            "all_success": self.all_success,
        }


@dataclass
class SceneUsage:
    """Billing details recorded alongside a terminal scene update."""

    provider: str
    endpoint: str
    model: str | None


class JobRepository:
    """Persistence / notification layer for promo jobs.

    Attributes:
        session_factory: Async session factory (injected by bootstrap or tests)
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self.session_factory = session_factory

    async def _load_job(self, db: AsyncSession, job_id: UUID) -> Job:
        job = await db.get(Job, job_id)
        if job is None:
            raise JobNotFoundError(job_id)
        return job

    async def _load_scene(self, db: AsyncSession, scene_id: UUID) -> Scene:
        scene = await db.get(Scene, scene_id)
        if scene is None:
            raise LookupError(f"Scene not found: {scene_id}")
        return scene

    async def create_job(self, payload: JobCreate, kind: JobKind = JobKind.PROMO) -> Job:
        """Create a draft job with its scenes (indices contiguous from 0)."""
        async with session_scope(self.session_factory) as db:
            job = Job(
                project_id=payload.project_id,
                user_id=payload.user_id,
                kind=kind,
                status=JobStatus.DRAFT,
                config=payload.config.model_dump(),
                custom_voiceover_url=payload.custom_voiceover_url,
            )
            job.scenes = [
                Scene(
                    scene_index=index,
                    description=scene.description,
                    image_url=scene.image_url,
                    image_ref=scene.image_ref,
                    status=SceneStatus.PENDING,
                )
                for index, scene in payload.ordered_scenes()
            ]
            db.add(job)
        log.info(
            "job_created",
            job_id=str(job.id),
            kind=kind.value,
            scene_count=len(job.scenes),
        )
        return job

    async def get_job(self, job_id: UUID) -> Job:
        """Load a job with its scenes ordered by index.

        Raises:
            JobNotFoundError: If no such job exists.
        """
        async with session_scope(self.session_factory) as db:
            return await self._load_job(db, job_id)

    async def list_jobs_by_status(self, status: JobStatus) -> list[Job]:
        async with session_scope(self.session_factory) as db:
            result = await db.execute(
                select(Job).where(Job.status == status).order_by(Job.created_at)
            )
            return list(result.scalars().all())

    async def update_job(
        self,
        job_id: UUID,
        status: JobStatus,
        artifact_url: str | None = None,
        error: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> Job:
        """Update job status and, optionally, its artifact URL, error and metadata.

        Metadata is merged into existing generation_metadata.

        Raises:
            JobNotFoundError: If no such job exists.
            InvalidStateTransitionError: If the status change is not allowed.
        """
        async with session_scope(self.session_factory) as db:
            job = await self._load_job(db, job_id)
            job.status = status
            if artifact_url is not None:
                job.video_url = artifact_url
            if error is not None:
                job.error_message = error
            if metadata:
                job.generation_metadata = {**(job.generation_metadata or {}), **metadata}
            if status in (JobStatus.COMPLETED, JobStatus.FAILED):
                job.completed_at = utcnow()
        log.info("job_updated", job_id=str(job_id), status=status.value, error=error)
        return job

    async def begin_generation(self, job_id: UUID) -> Job:
        """Reset a job and its scenes for a fresh generation run.

        Terminal scenes go back to pending with provider fields cleared; the
        previous artifact and error are dropped. The job itself stays in its
        current status until the orchestrator has submitted the scenes.
        """
        async with session_scope(self.session_factory) as db:
            job = await self._load_job(db, job_id)
            for scene in job.scenes:
                if scene.status.is_terminal:
                    scene.status = SceneStatus.PENDING
                scene.provider_task_id = None
                scene.video_url = None
                scene.cost_cents = None
                scene.error_message = None
            job.video_url = None
            job.error_message = None
            job.completed_at = None
            job.generation_metadata = None
        return job

    async def begin_scene_regeneration(self, job_id: UUID, scene_index: int) -> tuple[Job, Scene]:
        """Reset one scene for a new submission and drop the job's previous result.

        Sibling scenes keep their clips and status.

        Raises:
            JobNotFoundError: If no such job exists.
            LookupError: If the job has no scene with that index.
        """
        async with session_scope(self.session_factory) as db:
            job = await self._load_job(db, job_id)
            scene = next((s for s in job.scenes if s.scene_index == scene_index), None)
            if scene is None:
                raise LookupError(f"Scene {scene_index} not found in job {job_id}")
            if scene.status.is_terminal:
                scene.status = SceneStatus.PENDING
            scene.provider_task_id = None
            scene.video_url = None
            scene.cost_cents = None
            scene.error_message = None
            job.video_url = None
            job.error_message = None
            job.completed_at = None
            job.generation_metadata = None
        log.info("scene_regeneration_start", job_id=str(job_id), scene_index=scene_index)
        return job, scene

    async def mark_generating(self, job_id: UUID) -> Job:
        """Transition the job to generating and stamp generation_started_at."""
        async with session_scope(self.session_factory) as db:
            job = await self._load_job(db, job_id)
            job.status = JobStatus.GENERATING
            job.generation_started_at = utcnow()
        log.info("job_generating", job_id=str(job_id))
        return job

    async def update_scene(
        self,
        scene_id: UUID,
        status: SceneStatus,
        result_url: str | None = None,
        cost_cents: int | None = None,
        provider_task_id: str | None = None,
        error: str | None = None,
        usage: SceneUsage | None = None,
    ) -> tuple[Scene, bool]:
        """Apply a status update to one scene.

        When the scene already holds the same terminal status the call is a
        no-op: url, cost and billing are left untouched. When ``usage`` is
        given and the scene becomes terminal with a known cost, an ApiUsage
        row is written in the same transaction.

        Returns:
            Tuple of (scene, changed).
        """
        async with session_scope(self.session_factory) as db:
            scene = await self._load_scene(db, scene_id)
            if scene.status.is_terminal and scene.status == status:
                return scene, False

            scene.status = status
            if provider_task_id is not None:
                scene.provider_task_id = provider_task_id
            if result_url is not None:
                scene.video_url = result_url
            if cost_cents is not None:
                scene.cost_cents = cost_cents
            if error is not None:
                scene.error_message = error

            if (
                usage is not None
                and status.is_terminal
                and cost_cents is not None
                and scene.provider_task_id
            ):
                await track_api_cost(
                    db,
                    job_id=scene.job_id,
                    provider=usage.provider,
                    endpoint=usage.endpoint,
                    model=usage.model,
                    provider_task_id=scene.provider_task_id,
                    cost_cents=cost_cents,
                    metadata={"scene_index": scene.scene_index, "status": status.value},
                )
        log.info(
            "scene_updated",
            scene_id=str(scene_id),
            scene_index=scene.scene_index,
            status=status.value,
            error=error,
        )
        return scene, True

    async def fail_unfinished_scenes(self, job_id: UUID, error: str) -> int:
        """Force every non-terminal scene of a job to failed.

        Returns:
            Number of scenes that were failed.
        """
        failed = 0
        async with session_scope(self.session_factory) as db:
            job = await self._load_job(db, job_id)
            for scene in job.scenes:
                if scene.status.is_terminal:
                    continue
                scene.status = SceneStatus.FAILED
                scene.error_message = error
                failed += 1
        if failed:
            log.warning("scenes_force_failed", job_id=str(job_id), count=failed, reason=error)
        return failed

    async def get_aggregate_status(self, job_id: UUID) -> AggregateStatus:
        async with session_scope(self.session_factory) as db:
            job = await self._load_job(db, job_id)
            return AggregateStatus.from_scenes(job.scenes)

    async def record_usage(
        self,
        job_id: UUID | None,
        provider_task_id: str,
        cost_cents: int,
        usage: SceneUsage,
        metadata: dict[str, Any] | None = None,
    ) -> bool:
        """Record a non-scene provider cost (background music)."""
        async with session_scope(self.session_factory) as db:
            return await track_api_cost(
                db,
                job_id=job_id,
                provider=usage.provider,
                endpoint=usage.endpoint,
                model=usage.model,
                provider_task_id=provider_task_id,
                cost_cents=cost_cents,
                metadata=metadata,
            )

    async def get_job_cost_cents(self, job_id: UUID) -> int:
        async with session_scope(self.session_factory) as db:
            return await get_job_cost_cents(db, job_id)

    async def register_visual(self, project_id: str, url: str) -> ProjectVisual:
        async with session_scope(self.session_factory) as db:
            visual = ProjectVisual(project_id=project_id, url=url)
            db.add(visual)
        return visual

    async def get_visual_url(self, project_id: str, image_ref: str) -> str | None:
        """Resolve a scene image_ref to the URL of a visual in the same project."""
        try:
            visual_id = UUID(image_ref)
        except ValueError:
            return None
        async with session_scope(self.session_factory) as db:
            visual = await db.get(ProjectVisual, visual_id)
            if visual is None or visual.project_id != project_id:
                return None
            return visual.url

    async def delete_jobs_older_than(self, cutoff: datetime) -> int:
        """Delete jobs (and their scenes) created before cutoff.

        Jobs still generating are kept.

        Returns:
            Number of jobs deleted.
        """
        async with session_scope(self.session_factory) as db:
            result = await db.execute(
                select(Job.id).where(
                    Job.created_at < cutoff, Job.status != JobStatus.GENERATING
                )
            )
            job_ids = list(result.scalars().all())
            if not job_ids:
                return 0
            await db.execute(delete(Scene).where(Scene.job_id.in_(job_ids)))
            await db.execute(delete(Job).where(Job.id.in_(job_ids)))
        log.info("jobs_purged", count=len(job_ids), cutoff=cutoff.isoformat())
        return len(job_ids)
