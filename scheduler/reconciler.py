"""
Reconciliation of a fresh observation against persisted version history.

Decides whether the latest version changed since the previous cycle and
builds the record to write back. The lookup version is preferred over the
scraped one because it is less brittle; the page is the fallback signal.
"""

from datetime import datetime
from typing import Optional

import structlog

from crawler.models import ObservedState
from scheduler.models import PersistedHistory, ReconcileResult

logger = structlog.get_logger(__name__)


def observed_version(observed: ObservedState) -> Optional[str]:
    """Latest version seen this cycle: lookup first, then the newest scraped entry."""
    if observed.metadata is not None and observed.metadata.version:
        return observed.metadata.version
    latest = observed.extraction.latest
    return latest.version if latest is not None else None


def reconcile(
    prior: Optional[PersistedHistory],
    observed: ObservedState,
    now: Optional[datetime] = None,
) -> ReconcileResult:
    """
    Compare an observation with the prior record and build the updated record.

    Args:
        prior: Previously persisted history, None on the first cycle
        observed: Metadata and extraction from this cycle
        now: Timestamp for updated_at, defaults to utcnow

    Returns:
        ReconcileResult; prior is left untouched
    """
    previous_version = prior.known_version if prior is not None else None
    latest_version = observed_version(observed)
    transitioned = latest_version is not None and latest_version != previous_version

    if prior is not None:
        record = prior.model_copy(deep=True)
    else:
        record = PersistedHistory(app_id=observed.app_id, country=observed.country)

    record.last_metadata = (
        observed.metadata.model_copy(deep=True) if observed.metadata is not None else None
    )
    record.updated_at = now or datetime.utcnow()

    # Only the newest scraped entry is a candidate; older ones are not backfilled.
    inserted = None
    candidate = observed.extraction.latest
    if candidate is not None and candidate.version is not None and not record.has_version(candidate.version):
        inserted = candidate.model_copy(deep=True)
        record.entries.insert(0, inserted)

    logger.debug(
        "Reconciled observation",
        app_id=observed.app_id,
        country=observed.country,
        transitioned=transitioned,
        latest_version=latest_version,
        previous_version=previous_version,
        inserted_version=inserted.version if inserted else None,
        history_size=len(record.entries)
    )

    return ReconcileResult(
        transitioned=transitioned,
        latest_version=latest_version,
        previous_version=previous_version,
        inserted_entry=inserted,
        updated_record=record
    )
