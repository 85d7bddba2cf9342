"""
Scheduler service for periodic version checks.

This module provides:
- Cron scheduling with APScheduler
- Evaluation of every configured country for the tracked app
- Job event logging and status reporting
"""

import asyncio
import signal
from datetime import datetime
from typing import Any, Dict, List

import structlog
from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED, EVENT_JOB_MAX_INSTANCES
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from scheduler.tracker import VersionTracker
from utilities.config import TrackerConfig

logger = structlog.get_logger(__name__)

JOB_ID = "version_check"


class SchedulerService:
    """Runs version checks for all configured countries on a cron schedule."""

    def __init__(self, config: TrackerConfig, tracker: VersionTracker):
        """
        Initialize scheduler service.

        Args:
            config: Tracker configuration (cron expression, timezone, targets)
            tracker: Version tracker that runs each cycle
        """
        self.config = config
        self.tracker = tracker
        self.scheduler = AsyncIOScheduler(timezone=config.timezone)
        self.logger = logger.bind(component="scheduler_service")
        self._stop_event = asyncio.Event()

        self._setup_scheduler_listeners()

    def _setup_signal_handlers(self) -> None:
        """Setup signal handlers for graceful shutdown."""
        loop = asyncio.get_running_loop()
        for signum in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(signum, self._request_stop, signum)
            except NotImplementedError:
                # Windows event loops do not support signal handlers
                pass

    def _request_stop(self, signum=None) -> None:
        self.logger.info("Received shutdown signal", signal=signum)
        self._stop_event.set()

    def _setup_scheduler_listeners(self) -> None:
        """Setup scheduler event listeners."""
        def job_executed_listener(event):
            outcomes = event.retval or []
            self.logger.info(
                "Job executed successfully",
                job_id=event.job_id,
                targets=len(outcomes),
                transitions=sum(1 for o in outcomes if o.get("transitioned")),
                failures=sum(1 for o in outcomes if o.get("error"))
            )

        def job_error_listener(event):
            self.logger.error(
                "Job execution failed",
                job_id=event.job_id,
                error=str(event.exception)
            )

        def job_skipped_listener(event):
            self.logger.warning(
                "Previous run still in progress, skipped scheduled run",
                job_id=event.job_id
            )

        self.scheduler.add_listener(job_executed_listener, EVENT_JOB_EXECUTED)
        self.scheduler.add_listener(job_error_listener, EVENT_JOB_ERROR)
        self.scheduler.add_listener(job_skipped_listener, EVENT_JOB_MAX_INSTANCES)

    def add_jobs(self) -> bool:
        """
        Register the version check job.

        Returns:
            False if cron is disabled by configuration
        """
        if not self.config.enable_cron:
            self.logger.info("Cron disabled via ENABLE_CRON=false")
            return False

        self.scheduler.add_job(
            func=self.run_all_targets,
            trigger=CronTrigger.from_crontab(self.config.cron_schedule, timezone=self.config.timezone),
            id=JOB_ID,
            name="App Store Version Check",
            max_instances=1,
            coalesce=True,
            replace_existing=True
        )
        self.logger.info(
            "Added version check job",
            cron=self.config.cron_schedule,
            timezone=self.config.timezone,
            app_id=self.config.app_id,
            countries=self.config.get_countries()
        )
        return True

    async def start(self, run_once: bool = False) -> None:
        """
        Start the scheduler service.

        Args:
            run_once: Evaluate all targets a single time and return
        """
        store = self.tracker.history_store.store
        await store.connect()
        try:
            if run_once:
                self.logger.info("Starting scheduler service in RUN ONCE MODE")
                await self.run_all_targets()
                return

            if not self.add_jobs():
                return

            self._setup_signal_handlers()
            self.scheduler.start()
            self.logger.info("Scheduler service started", jobs=len(self.scheduler.get_jobs()))

            await self._stop_event.wait()
        finally:
            self.stop()
            await store.disconnect()

    def stop(self) -> None:
        """Stop the scheduler service."""
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            self.logger.info("Scheduler service stopped")
        self._stop_event.set()

    async def _run_target(self, app_id: str, country: str) -> Dict[str, Any]:
        try:
            result = await self.tracker.run_cycle(app_id, country, self.config.language_for(country))
            return result.model_dump(mode="json")
        except Exception as e:
            # One failing storefront must not stop the others
            self.logger.error("Version check failed", app_id=app_id, country=country, error=str(e))
            return {"app_id": app_id, "country": country, "error": str(e)}

    async def run_all_targets(self) -> List[Dict[str, Any]]:
        """Check every configured country for the tracked app concurrently."""
        start_time = datetime.utcnow()
        countries = self.config.get_countries()
        self.logger.info("Starting version check run", app_id=self.config.app_id, countries=countries)

        outcomes = await asyncio.gather(
            *(self._run_target(self.config.app_id, country) for country in countries)
        )

        self.logger.info(
            "Version check run completed",
            duration=(datetime.utcnow() - start_time).total_seconds(),
            transitions=[o["country"] for o in outcomes if o.get("transitioned")]
        )
        return list(outcomes)

    def get_scheduler_status(self) -> Dict[str, Any]:
        """Get current scheduler status."""
        jobs = []
        for job in self.scheduler.get_jobs():
            next_run_time = getattr(job, "next_run_time", None)
            jobs.append({
                'id': job.id,
                'name': job.name,
                'next_run_time': next_run_time.isoformat() if next_run_time else None,
                'trigger': str(job.trigger)
            })

        return {
            'running': self.scheduler.running,
            'timezone': self.config.timezone,
            'cron': self.config.cron_schedule,
            'jobs': jobs,
            'job_count': len(jobs)
        }
