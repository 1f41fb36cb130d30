"""SQLAlchemy 2.0 ORM models.

This module contains all SQLAlchemy models for the promo video pipeline.
All models use the Mapped[type] annotation pattern required by SQLAlchemy 2.0.

Models:
    Job: one promo video or QuickClip request composed of ordered Scenes
    Scene: one image + description unit animated into a short clip
    ProjectVisual: previously generated visual a Scene may reference by id
    ApiUsage: provider billing record, one per provider task

Both Job and Scene carry a status state machine enforced at assignment time
through @validates("status"); illegal transitions raise
InvalidStateTransitionError before anything reaches the database.
"""

import enum
import uuid
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import (
    JSON,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship, validates

from promo_pipeline.exceptions import InvalidStateTransitionError


def utcnow() -> datetime:
    """Get current UTC datetime (timezone-aware)."""
    return datetime.now(timezone.utc)


class JobStatus(enum.Enum):
    """Lifecycle of a promo video job.

    Flow:
        draft → generating → completed
                           ↘ failed
    completed and failed jobs may be generated again (→ generating).
    """

    DRAFT = "draft"
    GENERATING = "generating"
    COMPLETED = "completed"
    FAILED = "failed"


class JobKind(enum.Enum):
    """What a job produces.

    promo: one video stitched from every scene with crossfades and audio
    quickclip: 1-4 independent clip variants of a single image, each
        optionally muxed with background music
    """

    PROMO = "promo"
    QUICKCLIP = "quickclip"


class SceneStatus(enum.Enum):
    """Lifecycle of a single scene clip.

    success and failed are terminal for one generation run; both can be
    reset to pending when the owning job is generated again.
    """

    PENDING = "pending"
    GENERATING = "generating"
    SUCCESS = "success"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (SceneStatus.SUCCESS, SceneStatus.FAILED)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


def _check_transition(
    transitions: dict[Any, list[Any]], current: Any, new: Any
) -> None:
    """Raise InvalidStateTransitionError if current → new is not allowed.

    Assigning the current status again is always permitted (no-op update).
    """
    if current is None or current == new:
        return
    if new not in transitions.get(current, []):
        raise InvalidStateTransitionError(
            f"Invalid transition: {current.value} → {new.value}",
            from_status=current,
            to_status=new,
        )


class Job(Base):
    """Promo video or QuickClip job (table: promo_jobs).

    Attributes:
        kind: promo (scenes stitched into one video) or quickclip (each
            scene is an independent variant of the same image)
        config: Generation settings; keys: language ("en"|"zh"), voice_type
            ("male"|"female"), music_style, music_enabled, resolution_key,
            scene_duration.
        video_url: Public URL of the final artifact once completed (the
            first variant for quickclip jobs).
        generation_metadata: duration, resolution, total_cost_cents,
            api_provider, scene_count, has_narration, has_music; quickclip
            jobs add variant_urls.
    """

    __tablename__ = "promo_jobs"

    VALID_TRANSITIONS: dict[JobStatus, list[JobStatus]] = {
        JobStatus.DRAFT: [JobStatus.GENERATING, JobStatus.FAILED],
        JobStatus.GENERATING: [JobStatus.COMPLETED, JobStatus.FAILED],
        JobStatus.COMPLETED: [JobStatus.GENERATING],
        JobStatus.FAILED: [JobStatus.GENERATING],
    }

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    project_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    user_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    kind: Mapped[JobKind] = mapped_column(
        Enum(
            JobKind,
            native_enum=True,
            name="promojobkind",
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
        default=JobKind.PROMO,
        server_default=JobKind.PROMO.value,
    )

    # values_callable stores enum.value (lowercase) instead of enum.name
    status: Mapped[JobStatus] = mapped_column(
        Enum(
            JobStatus,
            native_enum=True,
            name="promojobstatus",
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
        default=JobStatus.DRAFT,
        index=True,
    )

    config: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False, default=dict)
    custom_voiceover_url: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    video_url: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    generation_metadata: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)

    generation_started_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        index=True,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )

    scenes: Mapped[list["Scene"]] = relationship(
        "Scene",
        back_populates="job",
        cascade="all, delete-orphan",
        order_by="Scene.scene_index",
        lazy="selectin",
    )

    @validates("status")
    def validate_status_change(self, key: str, value: JobStatus) -> JobStatus:
        """Enforce VALID_TRANSITIONS on every status assignment.

        Validation is skipped on initial creation (status is None).

        Raises:
            InvalidStateTransitionError: If the transition is not allowed.
        """
        _check_transition(self.VALID_TRANSITIONS, self.status, value)
        return value

    def __repr__(self) -> str:
        return f"<Job(id={self.id!s:.8}, project_id={self.project_id!r}, status={self.status.value!r})>"


class Scene(Base):
    """One scene of a Job (table: promo_job_scenes).

    scene_index is zero-based, unique per job and contiguous; concatenation
    order follows it regardless of provider completion order.
    """

    __tablename__ = "promo_job_scenes"

    VALID_TRANSITIONS: dict[SceneStatus, list[SceneStatus]] = {
        SceneStatus.PENDING: [SceneStatus.GENERATING, SceneStatus.FAILED],
        SceneStatus.GENERATING: [SceneStatus.SUCCESS, SceneStatus.FAILED],
        SceneStatus.SUCCESS: [SceneStatus.PENDING],
        SceneStatus.FAILED: [SceneStatus.PENDING],
    }

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    job_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("promo_jobs.id", ondelete="CASCADE"),
        nullable=False,
    )
    scene_index: Mapped[int] = mapped_column(Integer, nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    image_url: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    image_ref: Mapped[str | None] = mapped_column(String(100), nullable=True)

    provider_task_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    status: Mapped[SceneStatus] = mapped_column(
        Enum(
            SceneStatus,
            native_enum=True,
            name="promoscenestatus",
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
        default=SceneStatus.PENDING,
    )
    video_url: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    cost_cents: Mapped[int | None] = mapped_column(Integer, nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        onupdate=utcnow,
    )

    job: Mapped["Job"] = relationship("Job", back_populates="scenes")

    __table_args__ = (
        UniqueConstraint("job_id", "scene_index", name="uq_promo_job_scenes_job_index"),
        Index("ix_promo_job_scenes_job_id_status", "job_id", "status"),
    )

    @validates("status")
    def validate_status_change(self, key: str, value: SceneStatus) -> SceneStatus:
        _check_transition(self.VALID_TRANSITIONS, self.status, value)
        return value

    def __repr__(self) -> str:
        return (
            f"<Scene(job_id={self.job_id!s:.8}, index={self.scene_index}, "
            f"status={self.status.value!r})>"
        )


class ProjectVisual(Base):
    """A previously generated visual that scenes can reference via image_ref."""

    __tablename__ = "project_visuals"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    project_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    url: Mapped[str] = mapped_column(String(1000), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )


class ApiUsage(Base):
    """Billing record for one provider task.

    provider_task_id is unique so that repeated status polls of a finished
    task can never record its cost twice.
    """

    __tablename__ = "api_usage"

    id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        default=uuid.uuid4,
    )
    job_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("promo_jobs.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    provider: Mapped[str] = mapped_column(String(50), nullable=False)
    endpoint: Mapped[str] = mapped_column(String(100), nullable=False)
    model: Mapped[str | None] = mapped_column(String(100), nullable=True)
    provider_task_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    cost_cents: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    usage_metadata: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=utcnow,
    )

    def __repr__(self) -> str:
        return (
            f"<ApiUsage(provider={self.provider!r}, endpoint={self.endpoint!r}, "
            f"cost_cents={self.cost_cents})>"
        )
