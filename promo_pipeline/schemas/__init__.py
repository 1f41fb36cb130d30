"""Pydantic schemas for validation and serialization."""

from promo_pipeline.schemas.job import (
    AggregateStatusResponse,
    GenerateResponse,
    JobConfig,
    JobCreate,
    JobResponse,
    QuickClipCreate,
    SceneCreate,
    SceneGenerateResponse,
    SceneRegenerateRequest,
    SceneResponse,
    SceneStatusResponse,
    VisualCreate,
    VisualResponse,
)

__all__ = [
    "AggregateStatusResponse",
    "GenerateResponse",
    "JobConfig",
    "JobCreate",
    "JobResponse",
    "QuickClipCreate",
    "SceneCreate",
    "SceneGenerateResponse",
    "SceneRegenerateRequest",
    "SceneResponse",
    "SceneStatusResponse",
    "VisualCreate",
    "VisualResponse",
]
