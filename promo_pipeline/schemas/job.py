"""Pydantic schemas for promo jobs, scenes and visuals.

Schema Naming Convention:
    - *Create: request bodies for POST endpoints
    - *Response: API responses (serialized from ORM models via from_attributes)

All schemas use Pydantic v2 syntax with model_config instead of class Config.
"""

from datetime import datetime
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from promo_pipeline.constants import (
    DEFAULT_MOTION_PROMPT,
    DEFAULT_QUICKCLIP_DURATION,
    DEFAULT_RESOLUTION_KEY,
    DEFAULT_SCENE_DURATION,
    MAX_QUICKCLIP_VARIANTS,
    MAX_VIDEO_DURATION,
    MIN_QUICKCLIP_VARIANTS,
    MIN_VIDEO_DURATION,
    MUSIC_STYLE_PROMPTS,
    RESOLUTION_KEYS,
)
from promo_pipeline.models import JobKind, JobStatus, SceneStatus

MAX_SCENES_PER_JOB = 8


class JobConfig(BaseModel):
    """Generation settings stored on Job.config.

    Defaults:
        - language "en", voice_type "female"
        - music_style None: mood is detected from scene descriptions
        - resolution_key "3x4_720", scene_duration 3.0 seconds
    """

    language: Literal["en", "zh"] = "en"
    voice_type: Literal["male", "female"] = "female"
    narration_enabled: bool = True
    music_enabled: bool = True
    music_style: str | None = Field(
        default=None,
        description=f"One of {sorted(MUSIC_STYLE_PROMPTS)}; omitted means auto-detect",
    )
    resolution_key: str = Field(default=DEFAULT_RESOLUTION_KEY, examples=["16x9_1080"])
    scene_duration: float = Field(
        default=DEFAULT_SCENE_DURATION,
        ge=MIN_VIDEO_DURATION,
        le=MAX_VIDEO_DURATION,
    )

    @field_validator("music_style")
    @classmethod
    def validate_music_style(cls, value: str | None) -> str | None:
        if value is not None and value not in MUSIC_STYLE_PROMPTS:
            raise ValueError(f"music_style must be one of {sorted(MUSIC_STYLE_PROMPTS)}")
        return value

    @field_validator("resolution_key")
    @classmethod
    def validate_resolution_key(cls, value: str) -> str:
        if value not in RESOLUTION_KEYS:
            raise ValueError(f"resolution_key must be one of {sorted(RESOLUTION_KEYS)}")
        return value


class SceneCreate(BaseModel):
    """One scene in a POST /jobs body.

    image_url may be absolute or relative to PUBLIC_BASE_URL; image_ref is the
    id of a registered ProjectVisual. A scene with neither is accepted here and
    fails individually at generation time.
    """

    scene_index: int | None = Field(default=None, ge=0)
    description: str = Field(..., min_length=1, max_length=2500)
    image_url: str | None = Field(default=None, max_length=1000)
    image_ref: str | None = Field(default=None, max_length=100)


class JobCreate(BaseModel):
    """Body of POST /jobs."""

    project_id: str = Field(..., min_length=1, max_length=100)
    user_id: str | None = Field(default=None, max_length=100)
    scenes: list[SceneCreate] = Field(..., min_length=1, max_length=MAX_SCENES_PER_JOB)
    config: JobConfig = Field(default_factory=JobConfig)
    custom_voiceover_url: str | None = Field(default=None, max_length=1000)

    @model_validator(mode="after")
    def validate_scene_indices(self) -> "JobCreate":
        """Scene indices are either all omitted or unique and contiguous from 0."""
        indices = [scene.scene_index for scene in self.scenes]
        if all(index is None for index in indices):
            return self
        if any(index is None for index in indices):
            raise ValueError("scene_index must be given for every scene or for none")
        if len(set(indices)) != len(indices):
            raise ValueError("duplicate scene_index within job")
        if sorted(indices) != list(range(len(indices))):
            raise ValueError("scene_index values must be contiguous from 0")
        return self

    def ordered_scenes(self) -> list[tuple[int, SceneCreate]]:
        """Return (index, scene) pairs in index order."""
        if self.scenes[0].scene_index is None:
            return list(enumerate(self.scenes))
        return sorted(
            ((scene.scene_index, scene) for scene in self.scenes),  # type: ignore[misc]
            key=lambda pair: pair[0],
        )


class QuickClipCreate(BaseModel):
    """Body of POST /quickclips.

    One image is animated video_count times with the same prompt; each
    variant becomes one scene of a quickclip job. Narration is never added.
    """

    project_id: str = Field(..., min_length=1, max_length=100)
    user_id: str | None = Field(default=None, max_length=100)
    image_url: str = Field(..., min_length=1, max_length=1000)
    animation_prompt: str | None = Field(default=None, max_length=2500)
    duration: float = Field(
        default=DEFAULT_QUICKCLIP_DURATION,
        ge=MIN_VIDEO_DURATION,
        le=MAX_VIDEO_DURATION,
    )
    video_count: int = Field(
        default=MIN_QUICKCLIP_VARIANTS,
        ge=MIN_QUICKCLIP_VARIANTS,
        le=MAX_QUICKCLIP_VARIANTS,
    )
    music_enabled: bool = False
    music_style: str | None = None
    resolution_key: str = DEFAULT_RESOLUTION_KEY

    @field_validator("music_style")
    @classmethod
    def validate_music_style(cls, value: str | None) -> str | None:
        if value is not None and value not in MUSIC_STYLE_PROMPTS:
            raise ValueError(f"music_style must be one of {sorted(MUSIC_STYLE_PROMPTS)}")
        return value

    @field_validator("resolution_key")
    @classmethod
    def validate_resolution_key(cls, value: str) -> str:
        if value not in RESOLUTION_KEYS:
            raise ValueError(f"resolution_key must be one of {sorted(RESOLUTION_KEYS)}")
        return value

    def to_job_create(self) -> JobCreate:
        """Expand the request into one scene per variant."""
        description = self.animation_prompt or DEFAULT_MOTION_PROMPT
        return JobCreate(
            project_id=self.project_id,
            user_id=self.user_id,
            scenes=[
                SceneCreate(scene_index=index, description=description, image_url=self.image_url)
                for index in range(self.video_count)
            ],
            config=JobConfig(
                narration_enabled=False,
                music_enabled=self.music_enabled,
                music_style=self.music_style,
                resolution_key=self.resolution_key,
                scene_duration=self.duration,
            ),
        )


class SceneRegenerateRequest(BaseModel):
    """Body of POST /jobs/{id}/scenes/{scene_index}/generate.

    animation_prompt replaces the scene description for this submission only.
    """

    animation_prompt: str | None = Field(default=None, min_length=1, max_length=2500)


class SceneResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    scene_index: int
    description: str
    image_url: str | None = None
    image_ref: str | None = None
    provider_task_id: str | None = None
    status: SceneStatus
    video_url: str | None = None
    cost_cents: int | None = None
    error_message: str | None = None


class JobResponse(BaseModel):
    """Job as returned by POST /jobs and GET /jobs/{id}.

    stage and active come from the in-process task manager, not the database.
    """

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    project_id: str
    user_id: str | None = None
    kind: JobKind = JobKind.PROMO
    status: JobStatus
    config: dict[str, Any]
    custom_voiceover_url: str | None = None
    video_url: str | None = None
    error_message: str | None = None
    generation_metadata: dict[str, Any] | None = None
    generation_started_at: datetime | None = None
    completed_at: datetime | None = None
    created_at: datetime
    updated_at: datetime
    scenes: list[SceneResponse] = Field(default_factory=list)
    active: bool = False
    stage: str | None = None


class AggregateStatusResponse(BaseModel):
    total: int
    pending: int
    generating: int
    success: int
    failed: int
    all_complete: bool
    all_success: bool


class SceneStatusResponse(BaseModel):
    """Body of GET /jobs/{id}/scenes/status (last persisted state)."""

    job_id: UUID
    job_status: JobStatus
    scenes: list[SceneResponse]
    aggregate: AggregateStatusResponse


class GenerateResponse(BaseModel):
    status: Literal["generating"] = "generating"
    job_id: UUID


class SceneGenerateResponse(BaseModel):
    status: Literal["generating"] = "generating"
    job_id: UUID
    scene_index: int


class VisualCreate(BaseModel):
    url: str = Field(..., min_length=1, max_length=1000)


class VisualResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    project_id: str
    url: str
    created_at: datetime
