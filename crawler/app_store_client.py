"""
Async HTTP client for the two App Store sources.

The iTunes lookup endpoint gives the authoritative latest version; the
rendered listing page gives release notes and history. Both calls are
single-shot with a bounded timeout and report failure as an absent
FetchResult instead of raising.
"""

import re
from typing import Any, Dict, Optional, Tuple

import httpx
import structlog
from asyncio_throttle import Throttler
from pydantic import ValidationError

from .models import FetchResult, MetadataRecord
from utilities.config import TrackerConfig

logger = structlog.get_logger(__name__)

LOOKUP_URL = "https://itunes.apple.com/lookup"
LISTING_URL = "https://apps.apple.com/{country}/app/id{app_id}"

_COUNTRY_PATTERN = re.compile(r"^[A-Za-z]{2}$")


def validate_target(app_id: str, country: str) -> Tuple[str, str]:
    """
    Normalize and check an (app id, country) pair.

    Raises:
        ValueError: if the app id is not numeric or the country is not a
            two-letter code
    """
    app_id = (app_id or "").strip()
    if app_id.lower().startswith("id"):
        app_id = app_id[2:]
    if not app_id.isdigit():
        raise ValueError(f"app_id must be a numeric App Store id, got {app_id!r}")
    country = (country or "").strip()
    if not _COUNTRY_PATTERN.match(country):
        raise ValueError(f"country must be a two-letter code, got {country!r}")
    return app_id, country.lower()


def listing_url(app_id: str, country: str, lang: Optional[str] = None) -> str:
    """Public listing page URL, optionally pinned to a display language."""
    url = LISTING_URL.format(country=country, app_id=app_id)
    return f"{url}?l={lang}" if lang else url


class AppStoreClient:
    """
    Fetches lookup metadata and listing history for one app at a time.
    """

    def __init__(self, config: TrackerConfig, throttler: Optional[Throttler] = None):
        """
        Initialize the client.

        Args:
            config: Tracker configuration (timeouts, headers, rate limit)
            throttler: Shared request throttler, created from config if omitted
        """
        self.config = config
        self.throttler = throttler or Throttler(rate_limit=config.rate_limit_per_second)
        self.logger = logger.bind(component="app_store_client")

    async def fetch_lookup(self, app_id: str, country: str) -> FetchResult[MetadataRecord]:
        """
        Fetch the latest-version record from the iTunes lookup API.

        Args:
            app_id: Numeric App Store id
            country: Two-letter storefront code

        Returns:
            FetchResult holding the first lookup result, or absent on any
            failure or empty result set
        """
        app_id, country = validate_target(app_id, country)
        params = {"id": app_id, "country": country}

        try:
            async with self.throttler:
                async with httpx.AsyncClient(timeout=self.config.lookup_timeout) as client:
                    response = await client.get(LOOKUP_URL, params=params)
                    response.raise_for_status()
                    payload: Dict[str, Any] = response.json()
        except (httpx.HTTPError, ValueError) as e:
            self.logger.warning("Lookup request failed", app_id=app_id, country=country, error=str(e))
            return FetchResult[MetadataRecord].absent(f"lookup failed: {e}")

        results = payload.get("results") if isinstance(payload, dict) else None
        if not results or not isinstance(results[0], dict):
            self.logger.info("Lookup returned no results", app_id=app_id, country=country)
            return FetchResult[MetadataRecord].absent("lookup returned no results")

        try:
            record = MetadataRecord.model_validate(results[0])
        except ValidationError as e:
            self.logger.warning("Lookup result is malformed", app_id=app_id, country=country, error=str(e))
            return FetchResult[MetadataRecord].absent(f"lookup result is malformed: {e}")

        self.logger.debug(
            "Lookup succeeded",
            app_id=app_id,
            country=country,
            version=record.version,
            track_name=record.track_name
        )
        return FetchResult[MetadataRecord].success(record)

    async def fetch_listing(self, app_id: str, country: str, lang: str) -> FetchResult[str]:
        """
        Fetch the raw listing page markup.

        Args:
            app_id: Numeric App Store id
            country: Two-letter storefront code
            lang: Language code used for the page and Accept-Language

        Returns:
            FetchResult holding the response body, or absent on failure
        """
        app_id, country = validate_target(app_id, country)
        url = listing_url(app_id, country, lang)

        try:
            async with self.throttler:
                async with httpx.AsyncClient(
                    timeout=self.config.page_timeout,
                    headers=self.config.get_headers(lang),
                    follow_redirects=True,
                ) as client:
                    response = await client.get(url)
                    response.raise_for_status()
        except httpx.HTTPError as e:
            self.logger.warning("Listing request failed", url=url, error=str(e))
            return FetchResult[str].absent(f"listing fetch failed: {e}")

        self.logger.debug("Fetched listing page", url=url, size_bytes=len(response.text))
        return FetchResult[str].success(response.text)

