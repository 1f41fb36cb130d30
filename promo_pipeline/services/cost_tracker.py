"""Cost Tracking Service.

Persists one ApiUsage row per provider task. The provider task id is unique,
so recording the same task twice (for example when a finished scene is polled
again after a restart) is a no-op instead of a double charge.

Costs are integer cents, converted from the provider's dollar figures by the
client (round(cost * 100)).

Usage:
    async with session_scope(factory) as db:
        await track_api_cost(
            db,
            job_id=job.id,
            provider="runware",
            endpoint="videoInference",
            model="bytedance:2@2",
            provider_task_id=scene.provider_task_id,
            cost_cents=42,
        )
"""

from typing import Any
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from promo_pipeline.models import ApiUsage
from promo_pipeline.utils.logging import get_logger

log = get_logger(__name__)


async def track_api_cost(
    db: AsyncSession,
    *,
    job_id: UUID | None,
    provider: str,
    endpoint: str,
    model: str | None,
    provider_task_id: str,
    cost_cents: int,
    metadata: dict[str, Any] | None = None,
) -> bool:
    """Record the cost of one provider task.

    Must be called inside an open transaction; the caller commits.

    Returns:
        True if a new record was added, False if the task was already billed.
    """
    existing = await db.execute(
        select(ApiUsage.id).where(ApiUsage.provider_task_id == provider_task_id)
    )
    if existing.scalar_one_or_none() is not None:
        log.debug("cost_already_tracked", provider_task_id=provider_task_id)
        return False

    db.add(
        ApiUsage(
            job_id=job_id,
            provider=provider,
            endpoint=endpoint,
            model=model,
            provider_task_id=provider_task_id,
            cost_cents=cost_cents,
            usage_metadata=metadata,
        )
    )
    log.info(
        "cost_tracked",
        job_id=str(job_id) if job_id else None,
        provider=provider,
        endpoint=endpoint,
        provider_task_id=provider_task_id,
        cost_cents=cost_cents,
    )
    return True


async def get_job_cost_cents(db: AsyncSession, job_id: UUID) -> int:
    """Sum all recorded provider costs for a job (failed scenes included)."""
    result = await db.execute(
        select(func.coalesce(func.sum(ApiUsage.cost_cents), 0)).where(ApiUsage.job_id == job_id)
    )
    return int(result.scalar_one())
