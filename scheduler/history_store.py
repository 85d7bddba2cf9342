"""
Persistence adapter for version history records.

Maps (app id, country) to the key 'history_<app_id>_<country>' in the
configured key-value store. Any backend failure is fatal for the cycle and
surfaces as StoreUnavailableError.
"""

from typing import Optional

import structlog
from pydantic import ValidationError

from crawler.database import KeyValueStore
from scheduler.models import PersistedHistory

logger = structlog.get_logger(__name__)


class StoreUnavailableError(RuntimeError):
    """The history store could not be read or written."""


def history_key(app_id: str, country: str) -> str:
    return f"history_{app_id}_{country}"


class HistoryStore:
    """Loads and saves PersistedHistory records."""

    def __init__(self, store: KeyValueStore):
        """
        Initialize history store.

        Args:
            store: Key-value backend
        """
        self.store = store
        self.logger = logger.bind(component="history_store")

    async def load(self, app_id: str, country: str) -> Optional[PersistedHistory]:
        """
        Load the history record for a pair.

        Returns:
            PersistedHistory if one was saved, None otherwise

        Raises:
            StoreUnavailableError: if the backend fails or holds an unreadable record
        """
        key = history_key(app_id, country)
        self.logger.debug("Loading history", key=key)
        try:
            data = await self.store.get(key)
        except Exception as e:
            self.logger.error("Failed to load history", key=key, error=str(e))
            raise StoreUnavailableError(f"failed to load {key}: {e}") from e

        if data is None:
            return None

        try:
            return PersistedHistory.model_validate(data)
        except ValidationError as e:
            self.logger.error("Stored history is invalid", key=key, error=str(e))
            raise StoreUnavailableError(f"stored value under {key} is invalid: {e}") from e

    async def save(self, app_id: str, country: str, record: PersistedHistory) -> None:
        """
        Write the history record for a pair, replacing any previous one.

        Raises:
            StoreUnavailableError: if the backend fails
        """
        key = history_key(app_id, country)
        try:
            await self.store.set(key, record.model_dump(mode="json"))
        except Exception as e:
            self.logger.error("Failed to save history", key=key, error=str(e))
            raise StoreUnavailableError(f"failed to save {key}: {e}") from e

        self.logger.info("Saved history", key=key, entries=len(record.entries))
