import logging
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from config import get_settings
from database import session_scope
from recurrence import Notifier, ReminderEngine


logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class SchedulerManager:
    def __init__(self, notifier: Optional[Notifier] = None) -> None:
        settings = get_settings()
        self.poll_minutes = settings.reminder_poll_minutes
        self.notifier = notifier
        self.scheduler = BackgroundScheduler(timezone=settings.timezone)

    def _run_job(self, source: str = "manual") -> None:
        logger.info(f"reminder_poll: source={source}")
        with session_scope() as session:
            sent = ReminderEngine(session).dispatch_due(notifier=self.notifier)
            logger.info(f"reminder_poll: source={source} reminders_sent={sent}")

    def start(self) -> None:
        self._run_job("startup")

        trigger = IntervalTrigger(minutes=self.poll_minutes)
        self.scheduler.add_job(
            self._run_job,
            trigger,
            args=["interval"],
            id="reminder_poll",
            replace_existing=True,
            misfire_grace_time=300,
        )

        self.scheduler.start()
        logger.info(f"Scheduler started with reminder poll every {self.poll_minutes}m")

    def stop(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")
