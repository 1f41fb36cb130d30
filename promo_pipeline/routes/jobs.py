"""Promo job routes.

- POST /jobs                      create a draft job with its scenes
- POST /jobs/{id}/generate        start generation in the background (202)
- GET  /jobs/{id}                 job record plus live background stage
- GET  /jobs/{id}/scenes/status   last persisted scene states and aggregate
- POST /jobs/{id}/cancel          cancel a running generation
- POST /jobs/{id}/scenes/{index}/generate
                                  resubmit one scene, then recompose (202)

Pattern:
- Validate and persist (fast)
- Hand long work to the BackgroundTaskManager
- Return immediately; progress is read back from the database
"""

from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, HTTPException, Request, status

from promo_pipeline.bootstrap import PipelineServices
from promo_pipeline.exceptions import JobAlreadyRunningError, JobNotFoundError
from promo_pipeline.models import Job, JobStatus
from promo_pipeline.schemas import (
    AggregateStatusResponse,
    GenerateResponse,
    JobCreate,
    JobResponse,
    SceneGenerateResponse,
    SceneRegenerateRequest,
    SceneResponse,
    SceneStatusResponse,
)

log = structlog.get_logger()
router = APIRouter(prefix="/jobs", tags=["jobs"])


def get_services(request: Request) -> PipelineServices:
    """Return the service container built in the app lifespan."""
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Pipeline is not configured",
        )
    return services


async def _load_job(services: PipelineServices, job_id: UUID) -> Job:
    try:
        return await services.repository.get_job(job_id)
    except JobNotFoundError as e:
        raise HTTPException(status_code=404, detail="Job not found") from e


def _job_response(services: PipelineServices, job: Job) -> JobResponse:
    response = JobResponse.model_validate(job)
    handle = services.task_manager.get(job.id)
    if handle is not None:
        response.active = handle.running
        response.stage = handle.stage
    return response


@router.post("", status_code=status.HTTP_201_CREATED, response_model=JobResponse)
async def create_job(
    payload: JobCreate, services: PipelineServices = Depends(get_services)
) -> JobResponse:
    """Create a draft job. Scene indices are assigned 0..n-1 when omitted."""
    job = await services.repository.create_job(payload)
    log.info("job_create_accepted", job_id=str(job.id), project_id=job.project_id)
    return _job_response(services, job)


@router.post(
    "/{job_id}/generate",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=GenerateResponse,
)
async def generate_job(
    job_id: UUID, services: PipelineServices = Depends(get_services)
) -> GenerateResponse:
    """Start generation for a job and return at once.

    Returns:
        202 Accepted: Generation started in the background
        404 Not Found: Unknown job
        409 Conflict: A generation for this job is already in progress
        422 Unprocessable Entity: Job has no scenes
    """
    job = await _load_job(services, job_id)
    if job.status is JobStatus.GENERATING or services.task_manager.is_running(job_id):
        raise HTTPException(status_code=409, detail="Job is already generating")
    if not job.scenes:
        raise HTTPException(status_code=422, detail="Job has no scenes")

    runner = services.runner
    try:
        services.task_manager.start(job_id, lambda handle: runner.run(job_id, handle))
    except JobAlreadyRunningError as e:
        raise HTTPException(status_code=409, detail="Job is already generating") from e

    log.info("generation_accepted", job_id=str(job_id), scene_count=len(job.scenes))
    return GenerateResponse(job_id=job_id)


@router.get("/{job_id}", response_model=JobResponse)
async def get_job(
    job_id: UUID, services: PipelineServices = Depends(get_services)
) -> JobResponse:
    job = await _load_job(services, job_id)
    return _job_response(services, job)


@router.get("/{job_id}/scenes/status", response_model=SceneStatusResponse)
async def get_scene_status(
    job_id: UUID, services: PipelineServices = Depends(get_services)
) -> SceneStatusResponse:
    """Return the last persisted scene states.

    Never contacts the provider: polling and persistence happen in the
    background run and the reconciliation loop.
    """
    job = await _load_job(services, job_id)
    aggregate = await services.repository.get_aggregate_status(job_id)
    return SceneStatusResponse(
        job_id=job.id,
        job_status=job.status,
        scenes=[SceneResponse.model_validate(scene) for scene in job.scenes],
        aggregate=AggregateStatusResponse(**aggregate.to_dict()),
    )


@router.post("/{job_id}/cancel", status_code=status.HTTP_202_ACCEPTED)
async def cancel_job(
    job_id: UUID, services: PipelineServices = Depends(get_services)
) -> dict[str, str]:
    """Cancel a running generation; the job ends failed with a cancellation message."""
    await _load_job(services, job_id)
    if not services.task_manager.cancel(job_id):
        raise HTTPException(status_code=409, detail="Job is not generating")
    log.info("generation_cancel_accepted", job_id=str(job_id))
    return {"status": "cancelling", "job_id": str(job_id)}


@router.post(
    "/{job_id}/scenes/{scene_index}/generate",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=SceneGenerateResponse,
)
async def regenerate_scene(
    job_id: UUID,
    scene_index: int,
    payload: SceneRegenerateRequest | None = None,
    services: PipelineServices = Depends(get_services),
) -> SceneGenerateResponse:
    """Regenerate one scene of a generated job, optionally with a new prompt.

    Sibling scenes keep their clips. Once the scene succeeds the final video
    is composed again.

    Returns:
        202 Accepted: Scene resubmission started in the background
        404 Not Found: Unknown job or scene index
        409 Conflict: Job is generating or was never generated
    """
    job = await _load_job(services, job_id)
    if not any(scene.scene_index == scene_index for scene in job.scenes):
        raise HTTPException(status_code=404, detail="Scene not found")
    if job.status is JobStatus.DRAFT:
        raise HTTPException(status_code=409, detail="Job has not been generated yet")
    if job.status is JobStatus.GENERATING or services.task_manager.is_running(job_id):
        raise HTTPException(status_code=409, detail="Job is already generating")

    prompt = payload.animation_prompt if payload is not None else None
    runner = services.runner
    try:
        services.task_manager.start(
            job_id,
            lambda handle: runner.regenerate_scene(job_id, scene_index, handle, prompt=prompt),
        )
    except JobAlreadyRunningError as e:
        raise HTTPException(status_code=409, detail="Job is already generating") from e

    log.info(
        "scene_regeneration_accepted",
        job_id=str(job_id),
        scene_index=scene_index,
        prompt_override=prompt is not None,
    )
    return SceneGenerateResponse(job_id=job_id, scene_index=scene_index)
