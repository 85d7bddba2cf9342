"""
Pydantic models for listing data observed on each poll.
Covers version entries scraped from the listing page, the lookup metadata
record and the result type returned by optional external calls.
"""

from datetime import datetime
from typing import Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

T = TypeVar("T")


class VersionEntry(BaseModel):
    """
    One observed release point: version label, release date and notes.
    """
    version: Optional[str] = Field(None, description="Dotted version token, or the raw label if none was found")
    date: Optional[str] = Field(None, description="ISO-8601 timestamp or the raw displayed date")
    notes: Optional[str] = Field(None, description="Release notes, line breaks preserved as newlines")

    @field_validator("version", "date", "notes")
    @classmethod
    def blank_to_none(cls, v):
        """Blank extracted text counts as missing."""
        if v is None:
            return None
        v = v.strip()
        return v or None

    @model_validator(mode="after")
    def require_version_or_notes(self):
        """An entry needs at least a version or some notes to be worth keeping."""
        if self.version is None and self.notes is None:
            raise ValueError("version entry needs a version or notes")
        return self


class ExtractionResult(BaseModel):
    """
    Output of one extraction pass over the listing page.
    """
    source_url: str = Field("", description="Exact URL that was fetched")
    entries: List[VersionEntry] = Field(default_factory=list, description="Most recent first")
    strategy: Optional[str] = Field(None, description="Strategy that produced the entries")
    locale: Optional[str] = Field(None, description="Language the page was requested in")

    @property
    def latest(self) -> Optional[VersionEntry]:
        return self.entries[0] if self.entries else None


class MetadataRecord(BaseModel):
    """
    Latest-version record returned by the iTunes lookup endpoint.
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    track_name: Optional[str] = Field(None, alias="trackName")
    version: Optional[str] = Field(None)
    release_notes: Optional[str] = Field(None, alias="releaseNotes")
    bundle_id: Optional[str] = Field(None, alias="bundleId")
    track_view_url: Optional[str] = Field(None, alias="trackViewUrl")
    current_version_release_date: Optional[str] = Field(None, alias="currentVersionReleaseDate")


class FetchResult(BaseModel, Generic[T]):
    """
    Outcome of an optional external call: a value, or an explicit absence.

    Fetchers return this instead of raising so that every caller has to deal
    with the absent case.
    """
    value: Optional[T] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.value is not None

    @classmethod
    def success(cls, value: T) -> "FetchResult[T]":
        return cls(value=value)

    @classmethod
    def absent(cls, reason: str) -> "FetchResult[T]":
        return cls(error=reason)


class ObservedState(BaseModel):
    """
    Everything learned about one (app, country) pair in a single poll.
    """
    app_id: str
    country: str
    metadata: Optional[MetadataRecord] = None
    extraction: ExtractionResult = Field(default_factory=ExtractionResult)
    observed_at: datetime = Field(default_factory=datetime.utcnow)
