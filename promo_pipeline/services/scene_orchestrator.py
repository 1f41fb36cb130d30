"""Scene Orchestrator: submits one video generation task per scene.

For every scene of a job the orchestrator resolves the seed image, builds
the motion prompt and submits an image-to-video task. Submissions run
concurrently (the provider client bounds how many are in flight). A scene
that cannot be submitted is marked failed on its own; its siblings carry on.

Image resolution order:
    1. image_url that is already absolute (http/https) is used as-is
    2. a relative image_url is prefixed with PUBLIC_BASE_URL
    3. image_ref is looked up as a ProjectVisual of the same project
"""

import asyncio
from uuid import UUID

from promo_pipeline.clients.runware import RunwareClient
from promo_pipeline.constants import (
    DEFAULT_MOTION_PROMPT,
    DEFAULT_RESOLUTION_KEY,
    DEFAULT_SCENE_DURATION,
    MIN_PROMPT_LENGTH,
    RESOLUTION_KEYS,
)
from promo_pipeline.exceptions import JobValidationError, ProviderError
from promo_pipeline.models import Job, Scene, SceneStatus
from promo_pipeline.services.job_repository import AggregateStatus, JobRepository
from promo_pipeline.utils.logging import get_logger

log = get_logger(__name__)

NO_IMAGE_ERROR = "No resolvable image for scene"


def resolve_resolution(config: dict) -> tuple[int, int]:
    """Return (width, height) for the job's resolution key.

    Raises:
        JobValidationError: If the key is unknown.
    """
    key = config.get("resolution_key") or DEFAULT_RESOLUTION_KEY
    if key not in RESOLUTION_KEYS:
        raise JobValidationError(f"Unknown resolution key: {key}")
    return RESOLUTION_KEYS[key]


def build_motion_prompt(description: str) -> str:
    """Use the scene description as prompt, padded when below provider minimum."""
    prompt = description.strip()
    if len(prompt) < MIN_PROMPT_LENGTH:
        prompt = f"{prompt} {DEFAULT_MOTION_PROMPT}".strip()
    return prompt


class SceneOrchestrator:
    """Fans out per-scene video submissions for a job.

    Attributes:
        client: Provider client
        repository: Job persistence
        public_base_url: Base for relative image URLs
    """

    def __init__(
        self, client: RunwareClient, repository: JobRepository, public_base_url: str
    ) -> None:
        self.client = client
        self.repository = repository
        self.public_base_url = public_base_url.rstrip("/")

    async def resolve_image_url(self, job: Job, scene: Scene) -> str | None:
        if scene.image_url:
            url = scene.image_url.strip()
            if url.startswith(("http://", "https://")):
                return url
            if url:
                return f"{self.public_base_url}/{url.lstrip('/')}"
        if scene.image_ref:
            return await self.repository.get_visual_url(job.project_id, scene.image_ref)
        return None

    async def start_all(self, job_id: UUID) -> AggregateStatus:
        """Submit every scene of the job and move the job to generating.

        Raises:
            JobNotFoundError: Unknown job.
            JobValidationError: Job has no scenes or an unknown resolution.
        """
        job = await self.repository.get_job(job_id)
        if not job.scenes:
            raise JobValidationError("Job has no scenes")
        width, height = resolve_resolution(job.config or {})
        duration = float((job.config or {}).get("scene_duration") or DEFAULT_SCENE_DURATION)

        job = await self.repository.begin_generation(job_id)
        log.info(
            "scene_submission_start",
            job_id=str(job_id),
            scene_count=len(job.scenes),
            resolution=f"{width}x{height}",
        )

        results = await asyncio.gather(
            *(self._submit_scene(job, scene, duration, width, height) for scene in job.scenes),
            return_exceptions=True,
        )
        for scene, result in zip(job.scenes, results):
            if isinstance(result, Exception):
                await self._fail_scene(job, scene, result)
            elif isinstance(result, BaseException):
                raise result

        await self.repository.mark_generating(job_id)
        aggregate = await self.repository.get_aggregate_status(job_id)
        log.info("scene_submission_complete", job_id=str(job_id), **aggregate.to_dict())
        return aggregate
    async def restart_scene(
        self, job_id: UUID, scene_index: int, prompt: str | None = None
    ) -> AggregateStatus:
        """Submit one scene again and move the job back to generating.

        Args:
            job_id: Job owning the scene
            scene_index: Zero-based index of the scene to regenerate
            prompt: Replaces the scene description for this submission only

        Raises:
            JobNotFoundError: Unknown job.
            JobValidationError: Unknown scene index or resolution.
        """
        job = await self.repository.get_job(job_id)
        width, height = resolve_resolution(job.config or {})
        duration = float((job.config or {}).get("scene_duration") or DEFAULT_SCENE_DURATION)
        try:
            job, scene = await self.repository.begin_scene_regeneration(job_id, scene_index)
        except LookupError as e:
            raise JobValidationError(str(e)) from e

        try:
            await self._submit_scene(job, scene, duration, width, height, prompt=prompt)
        except Exception as e:
            await self._fail_scene(job, scene, e)

        await self.repository.mark_generating(job_id)
        return await self.repository.get_aggregate_status(job_id)

    async def _submit_scene(
        self,
        job: Job,
        scene: Scene,
        duration: float,
        width: int,
        height: int,
        prompt: str | None = None,
    ) -> None:
        image_url = await self.resolve_image_url(job, scene)
        if not image_url:
            log.warning(
                "scene_image_unresolved",
                job_id=str(job.id),
                scene_index=scene.scene_index,
                image_ref=scene.image_ref,
            )
            await self.repository.update_scene(
                scene.id, SceneStatus.FAILED, error=NO_IMAGE_ERROR
            )
            return

        try:
            task_id = await self.client.submit_video_task(
                image_url, duration, build_motion_prompt(prompt or scene.description), width, height
            )
        except ProviderError as e:
            log.error(
                "scene_submit_failed",
                job_id=str(job.id),
                scene_index=scene.scene_index,
                error=str(e),
                error_type=type(e).__name__,
            )
            await self.repository.update_scene(scene.id, SceneStatus.FAILED, error=str(e))
            return

        await self.repository.update_scene(
            scene.id, SceneStatus.GENERATING, provider_task_id=task_id
        )

    async def _fail_scene(self, job: Job, scene: Scene, error: Exception) -> None:
        # Unexpected submission errors fail only the scene they came from
        log.error(
            "scene_submit_error",
            job_id=str(job.id),
            scene_index=scene.scene_index,
            error=str(error),
            error_type=type(error).__name__,
        )
        await self.repository.update_scene(
            scene.id, SceneStatus.FAILED, error=f"Submission error: {error}"
        )
