"""
Version check cycle for one (app, country) pair.

A cycle fetches lookup metadata and the listing page, loads the prior
history, reconciles, writes the updated record and, only once that write
succeeded, sends an alert for a detected transition.
"""

import time
from typing import Any, Dict, Optional, Set, Tuple

import structlog

from crawler.app_store_client import AppStoreClient, listing_url, validate_target
from crawler.history_extractor import extract_history
from crawler.models import ExtractionResult, MetadataRecord, ObservedState
from scheduler.alerting import DiscordNotifier, build_update_alert
from scheduler.history_store import HistoryStore
from scheduler.models import CycleResult, PersistedHistory
from scheduler.reconciler import reconcile
from utilities.config import TrackerConfig
from utilities.logger import CycleLogger

logger = structlog.get_logger(__name__)


class VersionTracker:
    """Runs version check cycles and serves the on-demand read path."""

    def __init__(
        self,
        config: TrackerConfig,
        history_store: HistoryStore,
        client: Optional[AppStoreClient] = None,
        notifier: Optional[DiscordNotifier] = None
    ):
        """
        Initialize tracker.

        Args:
            config: Tracker configuration
            history_store: Persistence adapter for history records
            client: App Store client, built from config if omitted
            notifier: Alert transport, built from config if omitted
        """
        self.config = config
        self.history_store = history_store
        self.client = client or AppStoreClient(config)
        self.notifier = notifier or DiscordNotifier(config)
        self.logger = logger.bind(component="version_tracker")
        self._in_flight: Set[Tuple[str, str]] = set()

    def is_busy(self, app_id: str, country: str) -> bool:
        return validate_target(app_id, country) in self._in_flight

    async def observe(self, app_id: str, country: str, lang: str, cycle_logger: CycleLogger) -> ObservedState:
        """Query both sources; either one may come back empty."""
        lookup = await self.client.fetch_lookup(app_id, country)
        if not lookup.ok:
            cycle_logger.log_source_unavailable("lookup", lookup.error)

        page = await self.client.fetch_listing(app_id, country, lang)
        source_url = listing_url(app_id, country, lang)
        if page.ok:
            extraction = extract_history(page.value, locale=lang, source_url=source_url)
        else:
            cycle_logger.log_source_unavailable("listing", page.error)
            extraction = ExtractionResult(source_url=source_url, entries=[], locale=lang)

        return ObservedState(
            app_id=app_id,
            country=country,
            metadata=lookup.value if lookup.ok else None,
            extraction=extraction
        )

    async def run_cycle(
        self,
        app_id: str,
        country: str,
        lang: Optional[str] = None,
        notify: bool = True
    ) -> CycleResult:
        """
        Run one version check for a pair.

        Args:
            app_id: Numeric App Store id
            country: Two-letter storefront code
            lang: Page language, defaults to the configured language for country
            notify: Send an alert for a detected transition; False saves only

        Returns:
            CycleResult describing the verdict

        Raises:
            ValueError: for a malformed app id or country
            StoreUnavailableError: if history could not be loaded or saved
        """
        app_id, country = validate_target(app_id, country)
        lang = lang or self.config.language_for(country)
        key = (app_id, country)

        cycle_logger = CycleLogger("tracker").bind_context(app_id=app_id, country=country, lang=lang)

        if key in self._in_flight:
            cycle_logger.log_cycle_skipped()
            return CycleResult(app_id=app_id, country=country, lang=lang, skipped=True)

        self._in_flight.add(key)
        start = time.monotonic()
        stage = "observe"
        try:
            cycle_logger.log_cycle_start()
            observed = await self.observe(app_id, country, lang, cycle_logger)

            stage = "load"
            prior = await self.history_store.load(app_id, country)
            verdict = reconcile(prior, observed)

            stage = "save"
            await self.history_store.save(app_id, country, verdict.updated_record)

            notified = False
            if verdict.transitioned and notify:
                stage = "notify"
                alert = build_update_alert(observed, verdict.latest_version)
                notified = await self.notifier.send_alert(alert)

            duration = time.monotonic() - start
            cycle_logger.log_cycle_complete(
                verdict.transitioned,
                verdict.latest_version,
                verdict.previous_version,
                duration
            )

            return CycleResult(
                app_id=app_id,
                country=country,
                lang=lang,
                transitioned=verdict.transitioned,
                latest_version=verdict.latest_version,
                previous_version=verdict.previous_version,
                notified=notified,
                metadata_available=observed.metadata is not None,
                entries_found=len(observed.extraction.entries),
                strategy=observed.extraction.strategy,
                duration_seconds=duration
            )

        except Exception as e:
            cycle_logger.log_error(str(e), stage=stage)
            raise

        finally:
            self._in_flight.discard(key)

    async def load_history(self, app_id: str, country: str) -> Optional[PersistedHistory]:
        app_id, country = validate_target(app_id, country)
        return await self.history_store.load(app_id, country)

    async def get_snapshot(self, app_id: str, country: str) -> Dict[str, Any]:
        """
        Read path: saved history plus a fresh lookup, without writing anything.

        Returns:
            {"saved_history": PersistedHistory or None,
             "fresh_metadata": MetadataRecord or None}
        """
        app_id, country = validate_target(app_id, country)
        saved = await self.history_store.load(app_id, country)
        lookup = await self.client.fetch_lookup(app_id, country)
        fresh: Optional[MetadataRecord] = lookup.value if lookup.ok else None
        return {"saved_history": saved, "fresh_metadata": fresh}
