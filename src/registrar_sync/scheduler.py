"""
Periodic registrar sync using APScheduler.

Two cron jobs invoke the bulk sync:
- hourly quick sync (REGISTRAR_SYNC_HOURLY, default '0 * * * *')
- daily deep sync at 02:00 (REGISTRAR_SYNC_DAILY, default '0 2 * * *')

Both run DomainSyncEngine.sync_all_accounts(); overlapping triggers are
dropped by the engine's single-flight lock.
"""
import logging
from typing import Any, Dict, List, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger

from .config_defaults import get_default

logger = logging.getLogger(__name__)

HOURLY_JOB_ID = 'registrar-hourly-sync'
DAILY_JOB_ID = 'registrar-daily-sync'


class RegistrarSyncScheduler:
    """Owns the cron jobs that drive bulk registrar sync."""

    def __init__(self, app, sync_engine, hourly: Optional[str] = None,
                 daily: Optional[str] = None, timezone: Optional[str] = None,
                 blocking: bool = False):
        """
        Args:
            app: Flask app (jobs run inside its application context)
            sync_engine: DomainSyncEngine
            hourly: Crontab for the quick sync
            daily: Crontab for the deep sync
            timezone: Scheduler timezone name
            blocking: Use a BlockingScheduler (foreground CLI runs)
        """
        self.app = app
        self.sync_engine = sync_engine
        self.hourly = hourly or get_default('REGISTRAR_SYNC_HOURLY', '0 * * * *')
        self.daily = daily or get_default('REGISTRAR_SYNC_DAILY', '0 2 * * *')
        self.timezone = timezone or get_default('TIMEZONE', 'UTC')
        self.blocking = blocking
        self._scheduler = None

    @property
    def is_running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def _run_bulk_sync(self, label: str) -> Optional[List[Dict[str, Any]]]:
        logger.info(f"Running {label} registrar sync")
        with self.app.app_context():
            try:
                results = self.sync_engine.sync_all_accounts()
            except Exception:
                logger.exception(f"{label.capitalize()} registrar sync failed")
                return None
        if results is None:
            logger.info(f"{label.capitalize()} registrar sync skipped (already running)")
        return results

    def _build_scheduler(self):
        scheduler_class = BlockingScheduler if self.blocking else BackgroundScheduler
        scheduler = scheduler_class(timezone=self.timezone)
        scheduler.add_job(
            self._run_bulk_sync,
            trigger=CronTrigger.from_crontab(self.hourly, timezone=self.timezone),
            id=HOURLY_JOB_ID,
            name='Hourly registrar sync',
            args=['hourly'],
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        scheduler.add_job(
            self._run_bulk_sync,
            trigger=CronTrigger.from_crontab(self.daily, timezone=self.timezone),
            id=DAILY_JOB_ID,
            name='Daily registrar sync',
            args=['daily'],
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        return scheduler

    def start(self) -> bool:
        """Start the cron jobs. Returns False if already running."""
        if self.is_running:
            logger.warning("Registrar sync scheduler already running")
            return False

        self._scheduler = self._build_scheduler()
        logger.info(f"Starting registrar sync scheduler (hourly '{self.hourly}', "
                    f"daily '{self.daily}', tz {self.timezone})")
        self._scheduler.start()
        return True

    def stop(self):
        if not self.is_running:
            return
        self._scheduler.shutdown(wait=False)
        self._scheduler = None
        logger.info("Registrar sync scheduler stopped")

    def get_status(self) -> Dict[str, Any]:
        jobs = []
        if self.is_running:
            for job in self._scheduler.get_jobs():
                jobs.append({
                    'id': job.id,
                    'name': job.name,
                    'next_run_time': job.next_run_time.isoformat() if job.next_run_time else None,
                })
        return {
            'is_running': self.is_running,
            'sync_in_progress': self.sync_engine.is_running,
            'timezone': self.timezone,
            'schedules': {'hourly': self.hourly, 'daily': self.daily},
            'jobs': jobs,
        }

    def trigger_manual_sync(self) -> Optional[List[Dict[str, Any]]]:
        """Run a bulk sync now, on the caller's thread."""
        return self._run_bulk_sync('manual')
