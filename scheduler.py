import logging
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from config import get_settings
from database import session_scope
from ratelimit import purge_expired_windows


logger = logging.getLogger(__name__)

PURGE_JOB_ID = "rate_limit_purge"


class SchedulerManager:
    """Runs the housekeeping jobs that keep shared tables small."""

    def __init__(self, interval_minutes: Optional[int] = None) -> None:
        settings = get_settings()
        self.interval_minutes = interval_minutes or settings.purge_interval_minutes
        self.scheduler = BackgroundScheduler(timezone=settings.timezone)

    def purge_rate_limits(self, source: str = "manual") -> int:
        with session_scope() as session:
            removed = purge_expired_windows(session)
        logger.info(f"rate_limit_purge: source={source} windows_removed={removed}")
        return removed

    def start(self) -> None:
        if self.scheduler.running:
            return
        self.purge_rate_limits("startup")
        self.scheduler.add_job(
            self.purge_rate_limits,
            IntervalTrigger(minutes=self.interval_minutes),
            args=["interval"],
            id=PURGE_JOB_ID,
            replace_existing=True,
            coalesce=True,
            max_instances=1,
            misfire_grace_time=300,
        )
        self.scheduler.start()
        logger.info(f"scheduler_started: purge_every_minutes={self.interval_minutes}")

    def stop(self) -> None:
        if not self.scheduler.running:
            return
        self.scheduler.shutdown(wait=False)
        logger.info("scheduler_stopped")
