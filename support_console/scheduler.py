# support_console/scheduler.py
import logging
from typing import List
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from support_console import config
from support_console.booking import BookingService
from support_console.dashboard import DashboardService
from support_console.errors import StoreError

logger = logging.getLogger(__name__)

class ConsoleScheduler:
    """
    Scheduler for housekeeping tasks:
    - Remove expired slots between screen loads
    - Log a daily activity summary
    """

    def __init__(self, bookings: BookingService, dashboard: DashboardService):
        self.scheduler = AsyncIOScheduler()
        self.bookings = bookings
        self.dashboard = dashboard
        self.is_running = False

    def start(self):
        """Start the scheduler"""
        if self.is_running:
            logger.warning("Scheduler is already running")
            return

        self._schedule_tasks()

        self.scheduler.start()
        self.is_running = True
        logger.info("Scheduler started successfully")

    def shutdown(self):
        """Shutdown the scheduler"""
        if not self.is_running:
            return

        self.scheduler.shutdown()
        self.is_running = False
        logger.info("Scheduler shut down")

    def _schedule_tasks(self):
        """Schedule all periodic tasks"""

        self.scheduler.add_job(
            self.sweep_expired_slots,
            trigger=IntervalTrigger(minutes=config.SLOT_SWEEP_MINUTES),
            id='sweep_expired_slots',
            name='Sweep Expired Slots',
            replace_existing=True
        )

        # Daily summary at 2 AM
        self.scheduler.add_job(
            self.daily_summary,
            trigger=CronTrigger(hour=2, minute=0),
            id='daily_summary',
            name='Daily Summary',
            replace_existing=True
        )

        logger.info("Scheduled tasks configured")

    async def sweep_expired_slots(self):
        logger.info("Running: Sweep expired slots")
        try:
            deleted = self.bookings.sweep_expired_slots()
            logger.info(f"Swept {deleted} expired slots")
        except StoreError as e:
            logger.error(f"Error in sweep_expired_slots: {e}")

    async def daily_summary(self):
        logger.info("Running: Daily summary")
        try:
            logger.info(f"Daily Report:\n{self.dashboard.report()}")
        except StoreError as e:
            logger.error(f"Error in daily_summary: {e}")

    def get_scheduled_jobs(self) -> List[dict]:
        """Get list of scheduled jobs"""
        jobs = []
        for job in self.scheduler.get_jobs():
            jobs.append({
                'id': job.id,
                'name': job.name,
                'next_run': job.next_run_time.isoformat() if getattr(job, 'next_run_time', None) else None,
                'trigger': str(job.trigger)
            })
        return jobs
