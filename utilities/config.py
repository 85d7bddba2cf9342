"""
Configuration management using environment variables.
Handles all tracker settings with proper validation and defaults.
"""

import re
from pathlib import Path
from typing import Dict, List, Optional

from apscheduler.triggers.cron import CronTrigger
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

COUNTRY_CODE_PATTERN = re.compile(r"^[a-z]{2}$")


class TrackerConfig(BaseSettings):
    """
    Configuration class for the version tracker.
    Uses pydantic BaseSettings for environment variable management.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",  # Ignore extra fields from .env
    )

    # Tracked application
    app_id: str = Field(default="1190307500", description="App Store numeric application id")
    default_country: str = Field(default="vn", description="Country used when a request names none")
    countries: str = Field(default="vn,us", description="Comma-separated countries checked on schedule")
    country_languages: str = Field(default="vn:vi", description="Comma-separated country:lang pairs")
    default_language: str = Field(default="en")

    # Scheduling
    cron_schedule: str = Field(default="*/10 * * * *")
    timezone: str = Field(default="Asia/Bangkok")
    enable_cron: bool = Field(default=True)

    # Outbound requests
    lookup_timeout: float = Field(default=15.0)
    page_timeout: float = Field(default=20.0)
    notify_timeout: float = Field(default=10.0)
    rate_limit_per_second: float = Field(default=2.0)

    # Notifications
    discord_webhook: Optional[str] = Field(default=None)
    notify_content_limit: int = Field(default=800)
    notify_embed_limit: int = Field(default=2000)

    # Storage
    store_backend: str = Field(default="mongodb")
    mongodb_url: str = Field(default="mongodb://localhost:27017")
    mongodb_database: str = Field(default="app_tracker")
    mongodb_collection: str = Field(default="kv_store")

    # Logging Configuration
    log_level: str = Field(default="INFO")
    log_format: str = Field(default="json")
    log_file: Optional[str] = Field(default="logs/tracker.log")
    debug: bool = Field(default=False)

    # API server
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=3000)

    @field_validator("app_id")
    @classmethod
    def validate_app_id(cls, v):
        """Accept '1190307500' or 'id1190307500'."""
        v = v.strip()
        if v.lower().startswith("id"):
            v = v[2:]
        if not v.isdigit():
            raise ValueError("app_id must be a numeric App Store id")
        return v

    @field_validator("default_country")
    @classmethod
    def validate_default_country(cls, v):
        v = v.strip().lower()
        if not COUNTRY_CODE_PATTERN.match(v):
            raise ValueError("default_country must be a two-letter country code")
        return v

    @field_validator("countries")
    @classmethod
    def validate_countries(cls, v):
        """Ensure every configured country is a two-letter code."""
        codes = [c.strip().lower() for c in v.split(",") if c.strip()]
        if not codes:
            raise ValueError("countries must name at least one country")
        for code in codes:
            if not COUNTRY_CODE_PATTERN.match(code):
                raise ValueError(f"invalid country code in countries: {code!r}")
        return ",".join(codes)

    @field_validator("country_languages")
    @classmethod
    def validate_country_languages(cls, v):
        for pair in filter(None, (p.strip() for p in v.split(","))):
            if ":" not in pair:
                raise ValueError(f"country_languages entries must look like 'vn:vi', got {pair!r}")
        return v

    @field_validator("cron_schedule")
    @classmethod
    def validate_cron_schedule(cls, v):
        """Ensure the schedule is a valid five-field crontab expression."""
        try:
            CronTrigger.from_crontab(v)
        except ValueError as e:
            raise ValueError(f"invalid cron_schedule {v!r}: {e}")
        return v

    @field_validator("lookup_timeout", "page_timeout", "notify_timeout")
    @classmethod
    def validate_timeout(cls, v):
        """Ensure timeout is reasonable."""
        if v < 1 or v > 60:
            raise ValueError("timeouts must be between 1 and 60 seconds")
        return v

    @field_validator("rate_limit_per_second")
    @classmethod
    def validate_rate_limit(cls, v):
        """Ensure rate limit is reasonable."""
        if v < 0.1 or v > 10:
            raise ValueError("rate_limit_per_second must be between 0.1 and 10")
        return v

    @field_validator("store_backend")
    @classmethod
    def validate_store_backend(cls, v):
        valid_backends = ["mongodb", "memory"]
        if v.lower() not in valid_backends:
            raise ValueError(f"store_backend must be one of: {valid_backends}")
        return v.lower()

    @field_validator("discord_webhook")
    @classmethod
    def validate_discord_webhook(cls, v):
        # An empty DISCORD_WEBHOOK= line in .env means "not configured".
        if v is not None and not v.strip():
            return None
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v):
        """Ensure log level is valid."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of: {valid_levels}")
        return v.upper()

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v):
        """Ensure log format is valid."""
        valid_formats = ["json", "console"]
        if v.lower() not in valid_formats:
            raise ValueError(f"log_format must be one of: {valid_formats}")
        return v.lower()

    def get_countries(self) -> List[str]:
        """Countries evaluated by the scheduled job, in configured order."""
        return self.countries.split(",")

    def get_country_languages(self) -> Dict[str, str]:
        mapping = {}
        for pair in filter(None, (p.strip() for p in self.country_languages.split(","))):
            country, lang = pair.split(":", 1)
            mapping[country.strip().lower()] = lang.strip()
        return mapping

    def language_for(self, country: str) -> str:
        """Page language used when rendering the listing for a country."""
        return self.get_country_languages().get(country.lower(), self.default_language)

    def get_log_file_path(self) -> Optional[Path]:
        """Get log file path as Path object."""
        if self.log_file:
            return Path(self.log_file)
        return None

    def get_user_agent(self) -> str:
        """Desktop browser user agent; the listing page serves a reduced layout to bots."""
        return (
            "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
            "(KHTML, like Gecko) Chrome/108.0.0.0 Safari/537.36"
        )

    def get_headers(self, lang: str) -> dict:
        """Get headers for listing page requests, biased toward the given language."""
        return {
            "User-Agent": self.get_user_agent(),
            "Accept-Language": f"{lang},en-US;q=0.9,en;q=0.8",
            "Accept": (
                "text/html,application/xhtml+xml,application/xml;q=0.9,"
                "image/avif,image/webp,image/apng,*/*;q=0.8"
            ),
        }


def load_config(**overrides) -> TrackerConfig:
    """Build the tracker configuration from the environment plus explicit overrides."""
    return TrackerConfig(**overrides)
