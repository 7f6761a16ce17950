from typing import Any
from uuid import UUID

from arq import create_pool
from arq.connections import ArqRedis, RedisSettings
from arq.jobs import Job

from intranet.core.config import settings

# Redis connection settings
redis_settings = RedisSettings.from_dsn(settings.WORKER_REDIS_URL)


async def get_redis_pool() -> ArqRedis:
    """Get or create Redis pool for arq"""
    return await create_pool(redis_settings)


async def enqueue_task(task_name: str, *args: Any, **kwargs: Any) -> Job:
    """
    Enqueue a task to the arq worker.

    Args:
        task_name: Name of the task function
        *args: Positional arguments for the task
        **kwargs: Keyword arguments for the task

    Returns:
        Job object from arq
    """
    pool = await get_redis_pool()
    try:
        job = await pool.enqueue_job(task_name, *args, **kwargs)
        return job  # type: ignore[return-value]
    finally:
        await pool.close()


async def enqueue_fan_out_notifications(
    *,
    hospital_id: UUID,
    type: str,
    title: str,
    message: str,
    user_ids: list[UUID] | None = None,
    actor_id: UUID | None = None,
    related_id: str | None = None,
) -> Job:
    """Enqueue a bulk notification insert for an announcement-style event."""
    return await enqueue_task(
        "fan_out_notifications_task",
        hospital_id=str(hospital_id),
        type=type,
        title=title,
        message=message,
        user_ids=[str(u) for u in user_ids] if user_ids is not None else None,
        actor_id=str(actor_id) if actor_id else None,
        related_id=related_id,
    )
