"""Tests for background tasks."""

from unittest.mock import AsyncMock, MagicMock, patch
from uuid import uuid4

import pytest

from intranet.tasks import (
    enqueue_fan_out_notifications,
    enqueue_task,
    get_redis_pool,
)


class TestTasks:
    @pytest.mark.asyncio
    async def test_get_redis_pool(self):
        """Test get_redis_pool creates a pool."""
        mock_pool = MagicMock()

        with patch("intranet.tasks.create_pool", new_callable=AsyncMock) as mock_create:
            mock_create.return_value = mock_pool

            result = await get_redis_pool()

            assert result == mock_pool
            mock_create.assert_called_once()

    @pytest.mark.asyncio
    async def test_enqueue_task(self):
        """Test enqueue_task enqueues a job and closes the pool."""
        mock_job = MagicMock()
        mock_pool = MagicMock()
        mock_pool.enqueue_job = AsyncMock(return_value=mock_job)
        mock_pool.close = AsyncMock()

        with patch("intranet.tasks.get_redis_pool", new_callable=AsyncMock) as mock_get_pool:
            mock_get_pool.return_value = mock_pool

            result = await enqueue_task("my_task", "arg1", kwarg1="value1")

            assert result == mock_job
            mock_pool.enqueue_job.assert_called_once_with("my_task", "arg1", kwarg1="value1")
            mock_pool.close.assert_called_once()

    @pytest.mark.asyncio
    async def test_enqueue_task_closes_pool_on_error(self):
        """Test enqueue_task closes pool even when job enqueue fails."""
        mock_pool = MagicMock()
        mock_pool.enqueue_job = AsyncMock(side_effect=Exception("Redis error"))
        mock_pool.close = AsyncMock()

        with patch("intranet.tasks.get_redis_pool", new_callable=AsyncMock) as mock_get_pool:
            mock_get_pool.return_value = mock_pool

            with pytest.raises(Exception, match="Redis error"):
                await enqueue_task("failing_task")

            mock_pool.close.assert_called_once()

    @pytest.mark.asyncio
    async def test_enqueue_fan_out_serializes_ids(self):
        hospital_id, actor_id, user_id = uuid4(), uuid4(), uuid4()

        with patch("intranet.tasks.enqueue_task", new_callable=AsyncMock) as mock_enqueue:
            await enqueue_fan_out_notifications(
                hospital_id=hospital_id,
                type="announcement",
                title="Fire drill",
                message="At noon.",
                user_ids=[user_id],
                actor_id=actor_id,
            )

            mock_enqueue.assert_called_once_with(
                "fan_out_notifications_task",
                hospital_id=str(hospital_id),
                type="announcement",
                title="Fire drill",
                message="At noon.",
                user_ids=[str(user_id)],
                actor_id=str(actor_id),
                related_id=None,
            )

    @pytest.mark.asyncio
    async def test_enqueue_fan_out_whole_hospital(self):
        with patch("intranet.tasks.enqueue_task", new_callable=AsyncMock) as mock_enqueue:
            await enqueue_fan_out_notifications(
                hospital_id=uuid4(), type="system", title="t", message="m"
            )

            assert mock_enqueue.call_args.kwargs["user_ids"] is None
            assert mock_enqueue.call_args.kwargs["actor_id"] is None
