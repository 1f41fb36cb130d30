"""002 add job kind

Revision ID: 002_add_job_kind
Revises: 001_initial_promo_schema
Create Date: 2026-10-19

Adds promo_jobs.kind (promo | quickclip). Existing rows become promo jobs.
"""

from typing import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "002_add_job_kind"
down_revision: str | None = "001_initial_promo_schema"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

JOB_KIND = postgresql.ENUM("promo", "quickclip", name="promojobkind", create_type=False)


def upgrade() -> None:
    """Add the kind column with a promo default."""
    JOB_KIND.create(op.get_bind(), checkfirst=True)
    op.add_column(
        "promo_jobs",
        sa.Column("kind", JOB_KIND, nullable=False, server_default="promo"),
    )


def downgrade() -> None:
    """Drop the kind column and its enum type."""
    op.drop_column("promo_jobs", "kind")
    JOB_KIND.drop(op.get_bind(), checkfirst=True)
