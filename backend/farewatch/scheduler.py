"""
APScheduler driver for price check cycles.

One interval job fires the cycle every check_interval_minutes, with the first
run shortly after startup. Ticks are serialized: if a cycle is still draining
when the next tick fires, that tick is skipped rather than run alongside it.
"""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from apscheduler.jobstores.memory import MemoryJobStore

from farewatch.services.price_checker import CycleSummary

logger = logging.getLogger(__name__)

JOB_ID = "price_check_cycle"


class PriceCheckScheduler:
    def __init__(
        self,
        run_cycle: Callable[[], Awaitable[CycleSummary]],
        interval_minutes: int = 60,
        startup_delay_seconds: int = 10,
    ):
        self.run_cycle = run_cycle
        self.interval_minutes = interval_minutes
        self.startup_delay_seconds = startup_delay_seconds

        self._scheduler: Optional[AsyncIOScheduler] = None
        self._lock = asyncio.Lock()

        self.cycles_run = 0
        self.cycles_failed = 0
        self.cycles_skipped = 0
        self.last_started_at: Optional[datetime] = None
        self.last_summary: Optional[CycleSummary] = None
        self.last_error: Optional[str] = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    @property
    def cycle_in_progress(self) -> bool:
        return self._lock.locked()

    def start(self):
        """Start the interval job. Must be called from a running event loop."""
        if self.running:
            logger.warning("Scheduler already running")
            return

        self._scheduler = AsyncIOScheduler(
            jobstores={"default": MemoryJobStore()},
            timezone="UTC",
        )
        first_run = datetime.now(timezone.utc) + timedelta(seconds=self.startup_delay_seconds)
        self._scheduler.add_job(
            self.tick,
            trigger=IntervalTrigger(minutes=self.interval_minutes),
            id=JOB_ID,
            name=f"Price check (every {self.interval_minutes} min)",
            next_run_time=first_run,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self._scheduler.start()
        logger.info(
            f"APScheduler started: price checks every {self.interval_minutes} min, "
            f"first run at {first_run.isoformat()}"
        )

    def stop(self):
        if self._scheduler is not None and self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("APScheduler stopped")
        self._scheduler = None

    async def tick(self) -> Optional[CycleSummary]:
        """
        Run one cycle unless one is already in progress.

        Never raises: a failing cycle is logged and recorded so the next tick
        still fires.
        """
        if self._lock.locked():
            self.cycles_skipped += 1
            logger.warning("Previous price check cycle still running, skipping this tick")
            return None

        async with self._lock:
            self.last_started_at = datetime.now(timezone.utc)
            try:
                summary = await self.run_cycle()
            except Exception as e:
                self.cycles_failed += 1
                self.last_error = f"{type(e).__name__}: {e}"
                logger.exception("Price check cycle failed")
                return None

            self.cycles_run += 1
            self.last_summary = summary
            self.last_error = None
            return summary

    async def run_now(self) -> Optional[CycleSummary]:
        logger.info("Manual price check cycle requested")
        return await self.tick()

    def next_run_time(self) -> Optional[datetime]:
        if not self.running:
            return None
        job = self._scheduler.get_job(JOB_ID)
        return job.next_run_time if job else None

    def status(self) -> dict:
        next_run = self.next_run_time()
        return {
            "running": self.running,
            "interval_minutes": self.interval_minutes,
            "cycle_in_progress": self.cycle_in_progress,
            "next_run": next_run.isoformat() if next_run else None,
            "last_started_at": self.last_started_at.isoformat() if self.last_started_at else None,
            "last_summary": self.last_summary.to_dict() if self.last_summary else None,
            "last_error": self.last_error,
            "cycles_run": self.cycles_run,
            "cycles_failed": self.cycles_failed,
            "cycles_skipped": self.cycles_skipped,
        }
