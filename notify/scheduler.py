"""Cron trigger for the daily digest."""

from __future__ import annotations

from datetime import datetime

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger
from loguru import logger

from .service import DigestService

JOB_ID = "daily_digest"


class DigestScheduler:
    """Runs `DigestService.run_scheduled` on a crontab expression."""

    def __init__(
        self,
        service: DigestService,
        cron: str,
        *,
        timezone: str | None = None,
        misfire_grace_time: int = 300,
    ) -> None:
        self.service = service
        self.cron = cron
        self.timezone = timezone
        self.misfire_grace_time = misfire_grace_time
        self.scheduler: BackgroundScheduler | None = None

    def _job(self) -> None:
        try:
            self.service.run_scheduled()
        except Exception:
            logger.exception("Error in daily update")

    def start(self) -> None:
        if self.scheduler and self.scheduler.running:
            logger.warning("Scheduler already running")
            return

        trigger = CronTrigger.from_crontab(self.cron, timezone=self.timezone)
        if self.timezone:
            self.scheduler = BackgroundScheduler(timezone=self.timezone)
        else:
            self.scheduler = BackgroundScheduler()
        self.scheduler.add_job(
            self._job,
            trigger=trigger,
            id=JOB_ID,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=self.misfire_grace_time,
        )
        self.scheduler.start()
        next_time = self.get_next_run_time()
        logger.info(
            "Scheduling daily updates with cron pattern '{}'. Next run: {}",
            self.cron,
            next_time.isoformat() if next_time else "unknown",
        )

    def shutdown(self) -> None:
        if self.scheduler and self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")
        self.scheduler = None

    def get_next_run_time(self) -> datetime | None:
        if not self.scheduler:
            return None
        job = self.scheduler.get_job(JOB_ID)
        return job.next_run_time if job else None
