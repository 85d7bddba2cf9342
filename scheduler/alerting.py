"""
Alerting for detected version transitions.

This module provides:
- Formatting of the update alert (title, body, listing URL)
- Discord webhook delivery, fire-and-forget
"""

from datetime import datetime
from typing import Optional

import httpx
import structlog
from pydantic import BaseModel, Field

from crawler.app_store_client import listing_url
from crawler.models import ObservedState
from utilities.config import TrackerConfig

logger = structlog.get_logger(__name__)


class UpdateAlert(BaseModel):
    """Human-readable description of one version transition."""
    title: str = Field(..., description="Alert headline with app name and version")
    body: str = Field(..., description="Release notes, untruncated")
    url: str = Field(..., description="Public listing page")


def truncate(text: str, limit: int) -> str:
    return text if len(text) <= limit else text[:limit]


def build_update_alert(observed: ObservedState, latest_version: str) -> UpdateAlert:
    """
    Build the alert for a detected transition.

    Title uses the lookup track name when known, notes come from the lookup
    release notes, then the newest scraped entry.
    """
    metadata = observed.metadata
    track_name = metadata.track_name if metadata is not None and metadata.track_name else observed.app_id
    title = f"Update detected: {track_name} - v{latest_version}"

    notes = metadata.release_notes if metadata is not None else None
    if not notes and observed.extraction.latest is not None:
        notes = observed.extraction.latest.notes
    return UpdateAlert(
        title=title,
        body=notes or "No notes",
        url=listing_url(observed.app_id, observed.country)
    )


class DiscordNotifier:
    """Sends alerts to a Discord webhook."""

    def __init__(self, config: TrackerConfig):
        """
        Initialize notifier.

        Args:
            config: Tracker configuration (webhook URL, limits, timeout)
        """
        self.webhook_url: Optional[str] = config.discord_webhook
        self.timeout = config.notify_timeout
        self.content_limit = config.notify_content_limit
        self.embed_limit = config.notify_embed_limit
        self.logger = logger.bind(component="discord_notifier")

    @property
    def enabled(self) -> bool:
        return bool(self.webhook_url)

    def build_payload(self, title: str, body_text: str, url: str) -> dict:
        return {
            "content": f"**{title}**\n{truncate(body_text, self.content_limit)}\n\n{url}",
            "embeds": [
                {
                    "title": title,
                    "url": url,
                    "description": truncate(body_text, self.embed_limit),
                    "timestamp": datetime.utcnow().isoformat() + "Z",
                }
            ],
        }

    async def notify(self, title: str, body_text: str, url: str) -> bool:
        """
        Post an alert to the webhook.

        Delivery problems are logged and never raised.

        Returns:
            True if the webhook accepted the message
        """
        if not self.enabled:
            self.logger.info("Skipped notification, no webhook configured", title=title)
            return False

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(self.webhook_url, json=self.build_payload(title, body_text, url))
                response.raise_for_status()
        except httpx.HTTPError as e:
            self.logger.error("Failed to send notification", title=title, error=str(e))
            return False

        self.logger.info("Notification sent", title=title, url=url)
        return True

    async def send_alert(self, alert: UpdateAlert) -> bool:
        return await self.notify(alert.title, alert.body, alert.url)
