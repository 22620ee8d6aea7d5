import logging
from datetime import datetime
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from iptv_catalog.services.refresh_orchestrator import RefreshOrchestrator


logger = logging.getLogger(__name__)

JOB_ID = "catalog_revalidate"


class RevalidationScheduler:
    """Scheduler for periodic background catalog revalidation"""

    def __init__(self, orchestrator: RefreshOrchestrator, cron: str, misfire_grace_sec: int = 3600):
        self.orchestrator = orchestrator
        self.cron = cron
        self.misfire_grace_sec = misfire_grace_sec
        self.scheduler: AsyncIOScheduler | None = None

    async def _revalidate_job(self) -> None:
        """Background job that refreshes every target"""
        logger.info("Scheduled catalog revalidation triggered")
        try:
            await self.orchestrator.refresh(background=True)
        except Exception as e:
            logger.error(f"Exception in scheduled revalidation: {e}", exc_info=True)

    def start(self) -> None:
        """Start the scheduler with the revalidation job"""
        if self.scheduler and self.scheduler.running:
            logger.warning("Scheduler already running")
            return

        try:
            trigger = CronTrigger.from_crontab(self.cron)
        except (ValueError, KeyError) as exc:
            logger.error("Invalid cron expression '%s': %s", self.cron, exc)
            raise

        self.scheduler = AsyncIOScheduler(timezone='UTC')
        self.scheduler.add_job(
            self._revalidate_job,
            trigger=trigger,
            id=JOB_ID,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=self.misfire_grace_sec
        )

        self.scheduler.start()
        next_time = self.get_next_run_time()
        logger.info(
            "Scheduler started. Next revalidation: %s",
            next_time.isoformat() if next_time else "unknown"
        )

    def shutdown(self) -> None:
        """Shutdown the scheduler"""
        if self.scheduler and self.scheduler.running:
            self.scheduler.shutdown()
            logger.info("Scheduler stopped")
            self.scheduler = None

    @property
    def running(self) -> bool:
        return bool(self.scheduler and self.scheduler.running)

    def get_next_run_time(self) -> datetime | None:
        """Get next scheduled revalidation time"""
        if not self.scheduler:
            return None
        job = self.scheduler.get_job(JOB_ID)
        return job.next_run_time if job else None
