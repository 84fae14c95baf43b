"""
Background jobs (APScheduler)

- ai_yield_scan: recommendations for every user with preferences
  (every AI_SCAN_INTERVAL_MINUTES, first run at startup)
- tvl_refresh: protocol TVL from DefiLlama (every TVL_REFRESH_INTERVAL_MINUTES)
"""
from datetime import datetime, UTC
from typing import Optional

from loguru import logger
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from config.config import AI_SCAN_INTERVAL_MINUTES, TVL_REFRESH_INTERVAL_MINUTES
from src.database.engine import get_session_maker
from src.services.ai_yield_agent import AIYieldAgent, get_ai_yield_agent
from src.services.yield_service import YieldAnalyzer


class YieldScheduler:
    """
    Jobs:
    - ai_yield_scan
    - tvl_refresh
    """

    def __init__(
        self,
        agent: Optional[AIYieldAgent] = None,
        analyzer: Optional[YieldAnalyzer] = None,
    ):
        self.scheduler: Optional[AsyncIOScheduler] = None
        self._running = False
        self.agent = agent or get_ai_yield_agent()
        self.analyzer = analyzer or YieldAnalyzer()

    def start(self):
        if self._running:
            logger.warning("Yield scheduler already running")
            return

        self.scheduler = AsyncIOScheduler()

        self.scheduler.add_job(
            self._job_ai_scan,
            IntervalTrigger(minutes=AI_SCAN_INTERVAL_MINUTES),
            id="ai_yield_scan",
            name="AI Yield Scan",
            next_run_time=datetime.now(UTC),
            replace_existing=True,
        )

        self.scheduler.add_job(
            self._job_tvl_refresh,
            IntervalTrigger(minutes=TVL_REFRESH_INTERVAL_MINUTES),
            id="tvl_refresh",
            name="Protocol TVL Refresh",
            replace_existing=True,
        )

        self.scheduler.start()
        self._running = True

        logger.info(
            f"Yield scheduler started: AI scan every {AI_SCAN_INTERVAL_MINUTES}m, "
            f"TVL refresh every {TVL_REFRESH_INTERVAL_MINUTES}m"
        )

    def stop(self):
        if self.scheduler:
            self.scheduler.shutdown(wait=False)
            self._running = False
            logger.info("Yield scheduler stopped")

    async def _job_ai_scan(self) -> int:
        try:
            return await self.agent.scan_and_generate_recommendations(get_session_maker())
        except Exception as e:
            logger.exception(f"AI yield scan job failed: {e}")
            return 0

    async def _job_tvl_refresh(self) -> int:
        try:
            return await self.analyzer.refresh_tvl_job(get_session_maker())
        except Exception as e:
            logger.exception(f"TVL refresh job failed: {e}")
            return 0
