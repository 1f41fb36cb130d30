"""001 initial promo schema

Revision ID: 001_initial_promo_schema
Revises:
Create Date: 2026-10-19

Creates promo_jobs, promo_job_scenes, project_visuals and api_usage.
Status columns are native Postgres enums storing the lowercase values.
"""

from typing import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "001_initial_promo_schema"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

JOB_STATUS = postgresql.ENUM(
    "draft", "generating", "completed", "failed", name="promojobstatus", create_type=False
)
SCENE_STATUS = postgresql.ENUM(
    "pending", "generating", "success", "failed", name="promoscenestatus", create_type=False
)


def upgrade() -> None:
    """Create promo pipeline tables."""
    bind = op.get_bind()
    JOB_STATUS.create(bind, checkfirst=True)
    SCENE_STATUS.create(bind, checkfirst=True)

    op.create_table(
        "promo_jobs",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("project_id", sa.String(100), nullable=False, index=True),
        sa.Column("user_id", sa.String(100), nullable=True),
        sa.Column("status", JOB_STATUS, nullable=False, index=True),
        sa.Column("config", sa.JSON(), nullable=False),
        sa.Column("custom_voiceover_url", sa.String(1000), nullable=True),
        sa.Column("video_url", sa.String(1000), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("generation_metadata", sa.JSON(), nullable=True),
        sa.Column("generation_started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, index=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "promo_job_scenes",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("job_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("scene_index", sa.Integer(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("image_url", sa.String(1000), nullable=True),
        sa.Column("image_ref", sa.String(100), nullable=True),
        sa.Column("provider_task_id", sa.String(64), nullable=True, index=True),
        sa.Column("status", SCENE_STATUS, nullable=False),
        sa.Column("video_url", sa.String(1000), nullable=True),
        sa.Column("cost_cents", sa.Integer(), nullable=True),
        sa.Column("error_message", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["job_id"], ["promo_jobs.id"], ondelete="CASCADE"),
        sa.UniqueConstraint("job_id", "scene_index", name="uq_promo_job_scenes_job_index"),
    )
    op.create_index(
        "ix_promo_job_scenes_job_id_status", "promo_job_scenes", ["job_id", "status"]
    )

    op.create_table(
        "project_visuals",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("project_id", sa.String(100), nullable=False, index=True),
        sa.Column("url", sa.String(1000), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )

    op.create_table(
        "api_usage",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("job_id", postgresql.UUID(as_uuid=True), nullable=True, index=True),
        sa.Column("provider", sa.String(50), nullable=False),
        sa.Column("endpoint", sa.String(100), nullable=False),
        sa.Column("model", sa.String(100), nullable=True),
        sa.Column("provider_task_id", sa.String(64), nullable=False),
        sa.Column("cost_cents", sa.Integer(), nullable=False),
        sa.Column("usage_metadata", sa.JSON(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["job_id"], ["promo_jobs.id"], ondelete="SET NULL"),
        sa.UniqueConstraint("provider_task_id", name="uq_api_usage_provider_task_id"),
    )


def downgrade() -> None:
    """Drop promo pipeline tables and enum types."""
    op.drop_table("api_usage")
    op.drop_table("project_visuals")
    op.drop_index("ix_promo_job_scenes_job_id_status", table_name="promo_job_scenes")
    op.drop_table("promo_job_scenes")
    op.drop_table("promo_jobs")
    bind = op.get_bind()
    SCENE_STATUS.drop(bind, checkfirst=True)
    JOB_STATUS.drop(bind, checkfirst=True)
