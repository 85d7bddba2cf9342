"""
Main entry point for the scheduled version tracker.

Starts the cron scheduler that checks every configured storefront.
Usage: python scheduler_main.py [--once]
"""

import asyncio
import sys
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

import structlog
from crawler.database import create_store
from scheduler.history_store import HistoryStore
from scheduler.scheduler_service import SchedulerService
from scheduler.tracker import VersionTracker
from utilities.config import load_config
from utilities.logger import setup_logging


async def main():
    """Main function to start the scheduler service."""
    config = load_config()
    setup_logging(
        log_level=config.log_level,
        log_format=config.log_format,
        log_file=config.get_log_file_path(),
        debug=config.debug
    )

    logger = structlog.get_logger(__name__)

    run_once = False
    if len(sys.argv) > 1:
        if sys.argv[1] == '--once':
            run_once = True
        else:
            print(f"Unknown argument: {sys.argv[1]}")
            print("Usage: python scheduler_main.py [--once]")
            sys.exit(1)

    tracker = VersionTracker(config, HistoryStore(create_store(config)))
    scheduler_service = SchedulerService(config, tracker)

    logger.info(
        "Scheduler service configured",
        mode="once" if run_once else "daemon",
        app_id=config.app_id,
        countries=config.get_countries(),
        cron=config.cron_schedule,
        timezone=config.timezone,
        cron_enabled=config.enable_cron,
        notifications_enabled=tracker.notifier.enabled
    )

    try:
        await scheduler_service.start(run_once=run_once)
    except Exception as e:
        logger.error("Failed to start scheduler service", error=str(e))
        sys.exit(1)


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("Received keyboard interrupt, shutting down...")
