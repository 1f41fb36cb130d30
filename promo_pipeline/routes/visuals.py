"""Project visual registration.

Scenes may reference a registered visual by id (image_ref) instead of
carrying an image URL. References resolve only within the same project.
"""

import structlog
from fastapi import APIRouter, Depends, status

from promo_pipeline.bootstrap import PipelineServices
from promo_pipeline.routes.jobs import get_services
from promo_pipeline.schemas import VisualCreate, VisualResponse

log = structlog.get_logger()
router = APIRouter(prefix="/projects", tags=["visuals"])


@router.post(
    "/{project_id}/visuals",
    status_code=status.HTTP_201_CREATED,
    response_model=VisualResponse,
)
async def register_visual(
    project_id: str,
    payload: VisualCreate,
    services: PipelineServices = Depends(get_services),
) -> VisualResponse:
    visual = await services.repository.register_visual(project_id, payload.url)
    log.info("visual_registered", project_id=project_id, visual_id=str(visual.id))
    return VisualResponse.model_validate(visual)
