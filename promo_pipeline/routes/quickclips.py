"""QuickClip creation.

A QuickClip animates one image into 1-4 clip variants, each optionally
muxed with the same background music track. The job is created and its
generation started in one call; progress is read through GET /jobs/{id}.
"""

import structlog
from fastapi import APIRouter, Depends, HTTPException, status

from promo_pipeline.bootstrap import PipelineServices
from promo_pipeline.exceptions import JobAlreadyRunningError
from promo_pipeline.models import JobKind
from promo_pipeline.routes.jobs import _job_response, get_services
from promo_pipeline.schemas import JobResponse, QuickClipCreate

log = structlog.get_logger()
router = APIRouter(prefix="/quickclips", tags=["quickclips"])


@router.post("", status_code=status.HTTP_202_ACCEPTED, response_model=JobResponse)
async def create_quickclip(
    payload: QuickClipCreate, services: PipelineServices = Depends(get_services)
) -> JobResponse:
    """Create a quickclip job and start generating its variants."""
    job = await services.repository.create_job(payload.to_job_create(), kind=JobKind.QUICKCLIP)

    runner = services.runner
    try:
        services.task_manager.start(job.id, lambda handle: runner.run(job.id, handle))
    except JobAlreadyRunningError as e:
        raise HTTPException(status_code=409, detail="Job is already generating") from e

    log.info(
        "quickclip_accepted",
        job_id=str(job.id),
        project_id=job.project_id,
        video_count=payload.video_count,
        music_enabled=payload.music_enabled,
    )
    return _job_response(services, job)
