"""
Models for version history tracking.

This module defines Pydantic models for:
- Persisted version history per (app, country)
- Reconciliation verdicts
- Per-cycle results reported to the scheduler and API
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from crawler.models import MetadataRecord, VersionEntry


class PersistedHistory(BaseModel):
    """Durable version history for one app in one storefront."""
    app_id: str = Field(..., description="App Store numeric id")
    country: str = Field(..., description="Two-letter storefront code")
    entries: List[VersionEntry] = Field(
        default_factory=list,
        description="Observed versions, most recent first, unique by version"
    )
    last_metadata: Optional[MetadataRecord] = Field(
        default=None,
        description="Lookup record from the latest cycle"
    )
    updated_at: datetime = Field(default_factory=datetime.utcnow)

    def has_version(self, version: str) -> bool:
        return any(entry.version == version for entry in self.entries)

    @property
    def known_version(self) -> Optional[str]:
        """Latest version this record vouches for: lookup first, then history."""
        if self.last_metadata is not None and self.last_metadata.version:
            return self.last_metadata.version
        if self.entries:
            return self.entries[0].version
        return None


class ReconcileResult(BaseModel):
    """Verdict of comparing one observation with the persisted history."""
    transitioned: bool = Field(..., description="Whether a new version was detected")
    latest_version: Optional[str] = Field(default=None)
    previous_version: Optional[str] = Field(default=None)
    inserted_entry: Optional[VersionEntry] = Field(
        default=None,
        description="Entry prepended to history this cycle, if any"
    )
    updated_record: PersistedHistory


class CycleResult(BaseModel):
    """Outcome of one run_cycle call."""
    app_id: str
    country: str
    lang: str
    transitioned: bool = Field(default=False)
    latest_version: Optional[str] = Field(default=None)
    previous_version: Optional[str] = Field(default=None)
    notified: bool = Field(default=False)
    skipped: bool = Field(default=False, description="Another cycle for this pair was still running")
    metadata_available: bool = Field(default=False)
    entries_found: int = Field(default=0)
    strategy: Optional[str] = Field(default=None)
    duration_seconds: float = Field(default=0.0)
    checked_at: datetime = Field(default_factory=datetime.utcnow)
