"""
API models and schemas for the FastAPI application.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from crawler.models import MetadataRecord
from scheduler.models import PersistedHistory


class RefreshRequest(BaseModel):
    """Body of a forced version check; omitted fields fall back to configuration."""
    app_id: Optional[str] = Field(None, description="App Store numeric id")
    country: Optional[str] = Field(None, description="Two-letter storefront code")
    lang: Optional[str] = Field(None, description="Listing page language")


class HistoryResponse(BaseModel):
    """Saved history next to a fresh lookup, for a single (app, country)."""
    app_id: str
    country: str
    saved_history: Optional[PersistedHistory] = Field(None, description="Persisted record, if any")
    fresh_metadata: Optional[MetadataRecord] = Field(None, description="Lookup result fetched now")


class ChangelogResponse(BaseModel):
    """Version history served from the store, or from a check run on demand."""
    source: str = Field(..., description="'saved' or 'live'")
    data: PersistedHistory


class ErrorResponse(BaseModel):
    """Error response model."""
    error: str = Field(..., description="Error message")
    detail: Optional[str] = Field(None, description="Additional error details")
    status_code: int = Field(..., description="HTTP status code")


class HealthResponse(BaseModel):
    """Health check response model."""
    status: str = Field(..., description="Service status")
    timestamp: datetime = Field(..., description="Current timestamp")
    version: str = Field(..., description="API version")
    store_status: str = Field(..., description="History store status")
