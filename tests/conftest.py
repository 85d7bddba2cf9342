"""
Pytest configuration and shared fixtures.
"""

import pytest
from unittest.mock import AsyncMock

from crawler.app_store_client import AppStoreClient
from crawler.database import MemoryKeyValueStore
from crawler.models import ExtractionResult, FetchResult, MetadataRecord, ObservedState, VersionEntry
from scheduler.alerting import DiscordNotifier
from scheduler.history_store import HistoryStore
from scheduler.models import PersistedHistory
from utilities.config import TrackerConfig


@pytest.fixture
def tracker_config():
    """Configuration that never touches real services."""
    return TrackerConfig(
        _env_file=None,
        app_id="1190307500",
        default_country="vn",
        countries="vn,us",
        country_languages="vn:vi",
        store_backend="memory",
        discord_webhook=None,
        log_file=None
    )


@pytest.fixture
def webhook_config(tracker_config):
    return tracker_config.model_copy(update={"discord_webhook": "https://discord.test/api/webhooks/1/abc"})


@pytest.fixture
def memory_store():
    return MemoryKeyValueStore()


@pytest.fixture
def history_store(memory_store):
    return HistoryStore(memory_store)


@pytest.fixture
def sample_metadata():
    return MetadataRecord(
        track_name="Dynamons World",
        version="1.9.4",
        release_notes="Bug fixes and new monsters."
    )


@pytest.fixture
def sample_lookup_payload():
    """Trimmed iTunes lookup response."""
    return {
        "resultCount": 1,
        "results": [
            {
                "trackId": 1190307500,
                "trackName": "Dynamons World",
                "bundleId": "com.azerion.dynamonsworld",
                "version": "1.9.4",
                "releaseNotes": "Bug fixes and new monsters.",
                "currentVersionReleaseDate": "2025-05-02T07:00:00Z",
                "trackViewUrl": "https://apps.apple.com/vn/app/dynamons-world/id1190307500?uo=4"
            }
        ]
    }


@pytest.fixture
def whats_new_html():
    """Current listing layout with a single 'What's New' section."""
    return """
    <html>
        <head>
            <meta name="description" content="Catch and train Dynamons.">
        </head>
        <body>
            <section class="whats-new">
                <h2>What's New</h2>
                <p class="whats-new__latest__version">Version 1.9.4</p>
                <time datetime="2025-05-02T00:00:00.000Z">2 May 2025</time>
                <div class="we-truncate" dir="">
                    <p>New monsters<br>Bug fixes<br/>Faster battles</p>
                </div>
            </section>
        </body>
    </html>
    """


@pytest.fixture
def version_history_html():
    """Older listing layout with a version history list."""
    return """
    <html>
        <body>
            <ul>
                <li class="version-history__item">
                    <h4 class="version-history__item__version-number">1.9.4</h4>
                    <time datetime="2025-05-02T00:00:00.000Z">2 May 2025</time>
                    <div class="version-history__item__release-notes">New monsters</div>
                </li>
                <li class="version-history__item">
                    <h4 class="version-history__item__version-number">1.9.3</h4>
                    <time datetime="2025-03-10T00:00:00.000Z">10 Mar 2025</time>
                    <div class="version-history__item__release-notes">Stability</div>
                </li>
            </ul>
        </body>
    </html>
    """


@pytest.fixture
def description_only_html():
    return """
    <html>
        <head>
            <meta name="description" content="Catch and train Dynamons in this RPG.">
        </head>
        <body><h1>Dynamons World</h1></body>
    </html>
    """


@pytest.fixture
def prior_history():
    return PersistedHistory(
        app_id="1190307500",
        country="vn",
        entries=[VersionEntry(version="2.0", date="2025-01-01", notes="Launch")],
        last_metadata=MetadataRecord(version="2.0", track_name="Dynamons World")
    )


def make_observed(metadata=None, entries=None, app_id="1190307500", country="vn"):
    """Build an ObservedState for reconciliation tests."""
    return ObservedState(
        app_id=app_id,
        country=country,
        metadata=metadata,
        extraction=ExtractionResult(
            source_url=f"https://apps.apple.com/{country}/app/id{app_id}?l=en",
            entries=entries or [],
            strategy="whats_new" if entries else None
        )
    )


@pytest.fixture
def mock_client(sample_metadata, whats_new_html):
    """App Store client returning canned data."""
    client = AsyncMock(spec=AppStoreClient)
    client.fetch_lookup.return_value = FetchResult[MetadataRecord].success(sample_metadata)
    client.fetch_listing.return_value = FetchResult[str].success(whats_new_html)
    return client


@pytest.fixture
def mock_notifier():
    notifier = AsyncMock(spec=DiscordNotifier)
    notifier.send_alert.return_value = True
    notifier.enabled = True
    return notifier


@pytest.fixture
def observed_factory():
    return make_observed
