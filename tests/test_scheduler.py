"""
Tests for the background job scheduler
"""

from unittest.mock import AsyncMock, Mock

import pytest

from src.tasks.scheduler import YieldScheduler


@pytest.fixture
def scheduler(monkeypatch):
    monkeypatch.setattr("src.tasks.scheduler.get_session_maker", lambda: "session-maker")
    agent, analyzer = Mock(), Mock()
    agent.scan_and_generate_recommendations = AsyncMock(return_value=3)
    analyzer.refresh_tvl_job = AsyncMock(return_value=5)
    return YieldScheduler(agent=agent, analyzer=analyzer)


@pytest.mark.asyncio
async def test_jobs_registered(scheduler):
    scheduler.start()
    try:
        assert {job.id for job in scheduler.scheduler.get_jobs()} == {"ai_yield_scan", "tvl_refresh"}

        # Second start is a no-op
        first = scheduler.scheduler
        scheduler.start()
        assert scheduler.scheduler is first
    finally:
        scheduler.stop()


@pytest.mark.asyncio
async def test_jobs_use_shared_session_maker(scheduler):
    assert await scheduler._job_ai_scan() == 3
    assert await scheduler._job_tvl_refresh() == 5
    scheduler.agent.scan_and_generate_recommendations.assert_awaited_once_with("session-maker")
    scheduler.analyzer.refresh_tvl_job.assert_awaited_once_with("session-maker")


@pytest.mark.asyncio
async def test_failed_job_is_contained(scheduler):
    scheduler.agent.scan_and_generate_recommendations.side_effect = RuntimeError("openai down")

    assert await scheduler._job_ai_scan() == 0
