"""
Unit tests for update alerts and Discord delivery.
"""

import httpx
import pytest
from pydantic import ValidationError
from unittest.mock import AsyncMock, MagicMock, patch

from crawler.models import MetadataRecord, VersionEntry
from scheduler.alerting import DiscordNotifier, UpdateAlert, build_update_alert, truncate


class TestBuildUpdateAlert:
    """Test cases for alert formatting."""

    def test_uses_lookup_metadata(self, observed_factory, sample_metadata):
        observed = observed_factory(metadata=sample_metadata, entries=[VersionEntry(version="1.9.4", notes="scraped")])

        alert = build_update_alert(observed, "1.9.4")

        assert alert.title == "Update detected: Dynamons World - v1.9.4"
        assert alert.body == "Bug fixes and new monsters."
        assert alert.url == "https://apps.apple.com/vn/app/id1190307500"

    def test_falls_back_to_scraped_notes_and_app_id(self, observed_factory):
        observed = observed_factory(entries=[VersionEntry(version="2.0", notes="scraped notes")])

        alert = build_update_alert(observed, "2.0")

        assert alert.title == "Update detected: 1190307500 - v2.0"
        assert alert.body == "scraped notes"

    def test_no_notes(self, observed_factory):
        observed = observed_factory(metadata=MetadataRecord(version="2.0"))

        assert build_update_alert(observed, "2.0").body == "No notes"

    def test_alert_is_validated(self):
        with pytest.raises(ValidationError):
            UpdateAlert(title="Update detected: App - v2.0", url="https://example.com")

        alert = UpdateAlert(title="t", body="b", url="u")
        assert alert.model_dump() == {"title": "t", "body": "b", "url": "u"}

    def test_truncate(self):
        assert truncate("abc", 5) == "abc"
        assert truncate("abcdef", 3) == "abc"


class TestDiscordNotifier:
    """Test cases for webhook delivery."""

    def test_disabled_without_webhook(self, tracker_config):
        assert DiscordNotifier(tracker_config).enabled is False

    @pytest.mark.asyncio
    async def test_disabled_is_noop(self, tracker_config):
        notifier = DiscordNotifier(tracker_config)

        with patch('httpx.AsyncClient') as mock_client:
            sent = await notifier.notify("title", "body", "https://example.com")

            assert sent is False
            mock_client.assert_not_called()

    def test_payload_truncation(self, webhook_config):
        notifier = DiscordNotifier(webhook_config)
        body = "x" * 3000

        payload = notifier.build_payload("Update detected: App - v2.0", body, "https://apps.apple.com/vn/app/id1")

        content = payload["content"]
        assert content.startswith("**Update detected: App - v2.0**\n")
        assert content.endswith("\n\nhttps://apps.apple.com/vn/app/id1")
        assert content.count("x") == 800
        embed = payload["embeds"][0]
        assert len(embed["description"]) == 2000
        assert embed["title"] == "Update detected: App - v2.0"
        assert embed["url"] == "https://apps.apple.com/vn/app/id1"
        assert embed["timestamp"].endswith("Z")

    @pytest.mark.asyncio
    async def test_notify_posts_payload(self, webhook_config):
        notifier = DiscordNotifier(webhook_config)

        with patch('httpx.AsyncClient') as mock_client:
            mock_client_instance = AsyncMock()
            mock_client_instance.post.return_value = MagicMock()
            mock_client.return_value.__aenter__.return_value = mock_client_instance

            sent = await notifier.send_alert(UpdateAlert(title="t", body="b", url="https://example.com"))

            assert sent is True
            args, kwargs = mock_client_instance.post.call_args
            assert args[0] == "https://discord.test/api/webhooks/1/abc"
            assert kwargs["json"]["content"] == "**t**\nb\n\nhttps://example.com"

    @pytest.mark.asyncio
    async def test_delivery_error_is_swallowed(self, webhook_config):
        notifier = DiscordNotifier(webhook_config)

        with patch('httpx.AsyncClient') as mock_client:
            mock_client_instance = AsyncMock()
            mock_client_instance.post.side_effect = httpx.ConnectError("Connection failed")
            mock_client.return_value.__aenter__.return_value = mock_client_instance

            sent = await notifier.notify("t", "b", "https://example.com")

            assert sent is False

    @pytest.mark.asyncio
    async def test_rejected_webhook(self, webhook_config):
        notifier = DiscordNotifier(webhook_config)
        response = MagicMock()
        response.raise_for_status.side_effect = httpx.HTTPStatusError(
            "Not found", request=MagicMock(), response=MagicMock()
        )

        with patch('httpx.AsyncClient') as mock_client:
            mock_client_instance = AsyncMock()
            mock_client_instance.post.return_value = response
            mock_client.return_value.__aenter__.return_value = mock_client_instance

            assert await notifier.notify("t", "b", "https://example.com") is False
