"""Pipeline Runner: drives one job from scene submission to published video.

Flow:
    1. submitting         SceneOrchestrator.start_all (skipped when resuming)
    2. generating_scenes  poll every submitted scene until terminal or the
                          video budget elapses; unfinished scenes are failed
                          with a timeout message
    3. decision           any failed scene fails the job
                          ("{n} scene(s) failed to generate")
    4. compositing        MediaCompositor.compose, or QuickClipFinisher.finish
                          for quickclip jobs
    5. completed          artifact URL and generation metadata persisted

regenerate_scene runs the same steps after resubmitting a single scene.

Every exit path leaves the job terminal: unexpected errors and caller
cancellation mark it failed with the captured message. A run interrupted by
shutdown is left generating for the reconciliation loop to resume.

Cost accounting:
    Provider-reported cost is recorded for every scene that reaches a
    terminal state, failed scenes included, and the job's total cost is the
    sum of all recorded usage (scenes plus music).
"""

import asyncio
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable
from uuid import UUID

from promo_pipeline.clients.runware import ProviderTaskStatus, TaskStatusResult
from promo_pipeline.constants import (
    API_PROVIDER_LABEL,
    DEFAULT_RESOLUTION_KEY,
    SCENE_TIMEOUT_MESSAGE,
    VIDEO_MODEL,
)
from promo_pipeline.exceptions import (
    CompositionError,
    InvalidStateTransitionError,
    JobNotFoundError,
    JobValidationError,
)
from promo_pipeline.models import Job, JobKind, JobStatus, SceneStatus, utcnow
from promo_pipeline.services.job_repository import AggregateStatus, JobRepository, SceneUsage
from promo_pipeline.services.media_compositor import (
    CompositionRequest,
    CompositionResult,
    MediaCompositor,
    SceneClip,
)
from promo_pipeline.services.quickclip import QuickClipFinisher
from promo_pipeline.services.scene_orchestrator import SceneOrchestrator, resolve_resolution
from promo_pipeline.services.status_poller import StatusPoller
from promo_pipeline.services.task_manager import JobHandle
from promo_pipeline.utils.logging import get_logger

log = get_logger(__name__)

VIDEO_USAGE = SceneUsage(provider="runware", endpoint="videoInference", model=VIDEO_MODEL)
CANCELLED_MESSAGE = "Generation cancelled"


def format_budget(seconds: float) -> str:
    """Render a polling budget for user-facing messages ("10 minutes", "90 seconds")."""
    if seconds >= 60 and seconds % 60 == 0:
        minutes = int(seconds // 60)
        return f"{minutes} minute" if minutes == 1 else f"{minutes} minutes"
    return f"{seconds:g} seconds"


def _as_aware(value: datetime) -> datetime:
    # SQLite hands back naive datetimes
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class PipelineRunner:
    """Runs the full generation pipeline for one job at a time.

    Attributes:
        video_budget_seconds: Wall-clock budget for all scene clips of a run
    """

    def __init__(
        self,
        repository: JobRepository,
        orchestrator: SceneOrchestrator,
        poller: StatusPoller,
        compositor: MediaCompositor,
        video_budget_seconds: float = 600.0,
        quickclip_finisher: QuickClipFinisher | None = None,
    ) -> None:
        self.repository = repository
        self.orchestrator = orchestrator
        self.poller = poller
        self.compositor = compositor
        self.video_budget_seconds = video_budget_seconds
        self.quickclip_finisher = quickclip_finisher

    async def run(
        self, job_id: UUID, handle: JobHandle | None = None, resume: bool = False
    ) -> None:
        """Execute (or resume) the pipeline for a job.

        Args:
            job_id: Job to generate
            handle: Background handle whose stage is updated as the run advances
            resume: Skip submission and continue polling already submitted scenes
        """
        submit = None if resume else lambda: self.orchestrator.start_all(job_id)
        await self._execute(job_id, handle, submit)

    async def regenerate_scene(
        self,
        job_id: UUID,
        scene_index: int,
        handle: JobHandle | None = None,
        prompt: str | None = None,
    ) -> None:
        """Submit one scene again, then finish the job as a normal run would.

        Sibling scenes keep their clips; the job is composed again once the
        regenerated scene succeeds.
        """
        await self._execute(
            job_id,
            handle,
            lambda: self.orchestrator.restart_scene(job_id, scene_index, prompt=prompt),
        )

    async def _execute(
        self,
        job_id: UUID,
        handle: JobHandle | None,
        submit: Callable[[], Awaitable[AggregateStatus]] | None,
    ) -> None:
        job_log = log.bind(job_id=str(job_id))

        def set_stage(stage: str) -> None:
            if handle is not None:
                handle.stage = stage
            job_log.info("pipeline_stage", stage=stage)

        try:
            if submit is not None:
                set_stage("submitting")
                await submit()

            set_stage("generating_scenes")
            aggregate = await self.wait_for_scenes(job_id)

            if not aggregate.all_success:
                message = f"{aggregate.failed} scene(s) failed to generate"
                await self._fail(job_id, message)
                set_stage("failed")
                return

            set_stage("compositing")
            job = await self.repository.get_job(job_id)
            result = await self._finish(job)

            total_cost = await self.repository.get_job_cost_cents(job_id)
            width, height = resolve_resolution(job.config or {})
            metadata: dict[str, Any] = {
                "duration": result.duration_seconds,
                "resolution": f"{width}x{height}",
                "resolution_key": (job.config or {}).get(
                    "resolution_key", DEFAULT_RESOLUTION_KEY
                ),
                "total_cost_cents": total_cost,
                "api_provider": API_PROVIDER_LABEL,
                "scene_count": len(job.scenes),
                "has_narration": result.has_narration,
                "has_music": result.has_music,
            }
            if job.kind is JobKind.QUICKCLIP:
                metadata["variant_urls"] = result.variant_urls
            await self.repository.update_job(
                job_id,
                JobStatus.COMPLETED,
                artifact_url=result.video_url,
                metadata=metadata,
            )
            set_stage("completed")
            job_log.info(
                "job_completed",
                video_url=result.video_url,
                duration=result.duration_seconds,
                total_cost_cents=total_cost,
            )

        except asyncio.CancelledError:
            # Shutdown leaves the job generating so the next process adopts it
            if handle is None or handle.cancel_requested:
                await self._fail(job_id, CANCELLED_MESSAGE)
            raise
        except (JobValidationError, CompositionError) as e:
            job_log.error("pipeline_failed", error=str(e), error_type=type(e).__name__)
            await self._fail(job_id, str(e))
            set_stage("failed")
        except JobNotFoundError:
            job_log.warning("pipeline_job_missing")
            set_stage("failed")
        except Exception as e:
            job_log.exception("pipeline_unexpected_error", error=str(e))
            await self._fail(job_id, f"Unexpected error: {e}")
            set_stage("failed")

    async def wait_for_scenes(self, job_id: UUID) -> AggregateStatus:
        """Poll all generating scenes of a job until terminal or out of budget.

        On resume the budget is whatever remains since generation_started_at.
        """
        job = await self.repository.get_job(job_id)
        budget = self.video_budget_seconds
        if job.generation_started_at is not None:
            elapsed = (utcnow() - _as_aware(job.generation_started_at)).total_seconds()
            budget = max(self.video_budget_seconds - elapsed, 0.0)
        timeout_message = SCENE_TIMEOUT_MESSAGE.format(
            budget=format_budget(self.video_budget_seconds)
        )

        tracked = {
            scene.provider_task_id: scene
            for scene in job.scenes
            if scene.status is SceneStatus.GENERATING and scene.provider_task_id
        }

        async def on_result(result: TaskStatusResult) -> None:
            scene = tracked[result.task_id]
            succeeded = result.status is ProviderTaskStatus.SUCCESS
            await self.repository.update_scene(
                scene.id,
                SceneStatus.SUCCESS if succeeded else SceneStatus.FAILED,
                result_url=result.result_url if succeeded else None,
                cost_cents=result.cost_cents,
                error=None if succeeded else result.error,
                usage=VIDEO_USAGE,
            )

        if tracked:
            await self.poller.poll_until_terminal(
                list(tracked), budget, on_result=on_result, timeout_message=timeout_message
            )

        await self.repository.fail_unfinished_scenes(job_id, timeout_message)
        return await self.repository.get_aggregate_status(job_id)

    async def _finish(self, job: Job) -> CompositionResult:
        if job.kind is JobKind.QUICKCLIP:
            if self.quickclip_finisher is None:
                raise CompositionError("publish", "quickclip jobs are not supported")
            return await self.quickclip_finisher.finish(job)
        return await self.compositor.compose(self._composition_request(job))

    def _composition_request(self, job: Job) -> CompositionRequest:
        config: dict[str, Any] = job.config or {}
        scenes = sorted(job.scenes, key=lambda scene: scene.scene_index)
        return CompositionRequest(
            job_id=job.id,
            clips=[
                SceneClip(scene_index=scene.scene_index, video_url=scene.video_url or "")
                for scene in scenes
            ],
            descriptions=[scene.description for scene in scenes],
            language=config.get("language", "en"),
            voice_type=config.get("voice_type", "female"),
            narration_enabled=config.get("narration_enabled", True),
            music_enabled=config.get("music_enabled", True),
            music_style=config.get("music_style"),
            custom_voiceover_url=job.custom_voiceover_url,
        )

    async def _fail(self, job_id: UUID, message: str) -> None:
        """Mark the job and its unfinished scenes failed, recording sunk provider cost."""
        try:
            await self.repository.fail_unfinished_scenes(job_id, message)
            total_cost = await self.repository.get_job_cost_cents(job_id)
            await self.repository.update_job(
                job_id,
                JobStatus.FAILED,
                error=message,
                metadata={"total_cost_cents": total_cost, "api_provider": API_PROVIDER_LABEL},
            )
        except (InvalidStateTransitionError, JobNotFoundError) as e:
            log.warning("job_fail_not_recorded", job_id=str(job_id), error=str(e))
