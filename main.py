"""
Main entry point for a one-shot App Store version check.
Runs a single cycle for each requested storefront and reports the verdicts.
"""

import argparse
import asyncio
import sys
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

from crawler.database import create_store
from scheduler.history_store import HistoryStore
from scheduler.tracker import VersionTracker
from utilities.config import load_config
from utilities.logger import setup_logging, get_logger


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Check an App Store listing for a new version.")
    parser.add_argument("--app-id", help="App Store numeric id (default: APP_ID)")
    parser.add_argument(
        "--country",
        action="append",
        dest="countries",
        help="Storefront to check, repeatable (default: COUNTRIES)"
    )
    parser.add_argument("--lang", help="Listing page language (default: per-country setting)")
    return parser.parse_args(argv)


async def main(argv=None) -> int:
    """Run one version check per requested country."""
    args = parse_args(argv)
    config = load_config()

    setup_logging(
        log_level=config.log_level,
        log_format=config.log_format,
        log_file=config.get_log_file_path(),
        debug=config.debug
    )

    logger = get_logger(__name__)
    app_id = args.app_id or config.app_id
    countries = args.countries or config.get_countries()
    logger.info("Starting one-shot version check", app_id=app_id, countries=countries)

    store = create_store(config)
    failures = 0
    try:
        await store.connect()
        tracker = VersionTracker(config, HistoryStore(store))

        for country in countries:
            try:
                result = await tracker.run_cycle(app_id, country, args.lang)
            except Exception as e:
                failures += 1
                logger.error("Version check failed", app_id=app_id, country=country, error=str(e))
                continue

            logger.info("Version check result", **result.model_dump(mode="json"))

    except Exception as e:
        logger.error("Fatal error occurred", error=str(e))
        return 1

    finally:
        await store.disconnect()

    return 1 if failures else 0


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
