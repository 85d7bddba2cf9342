"""
FastAPI main application for the App Store Version Tracker API.
"""

from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

import structlog
from fastapi import FastAPI, HTTPException, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api.config import config as api_config
from api.models import (
    ChangelogResponse, ErrorResponse, HealthResponse, HistoryResponse, RefreshRequest
)
from crawler.database import create_store
from scheduler.history_store import HistoryStore, StoreUnavailableError
from scheduler.models import CycleResult
from scheduler.tracker import VersionTracker
from utilities.config import load_config
from utilities.logger import setup_logging

logger = structlog.get_logger(__name__)

# Set by the lifespan handler
tracker: VersionTracker = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    global tracker

    tracker_config = load_config()
    setup_logging(
        log_level=tracker_config.log_level,
        log_format=tracker_config.log_format,
        log_file=tracker_config.get_log_file_path(),
        debug=tracker_config.debug
    )
    logger.info("Starting App Store Version Tracker API")

    store = create_store(tracker_config)
    try:
        await store.connect()
    except Exception as e:
        logger.error("Failed to connect to history store", error=str(e))
        raise
    tracker = VersionTracker(tracker_config, HistoryStore(store))

    yield

    logger.info("Shutting down App Store Version Tracker API")
    await store.disconnect()


app = FastAPI(
    title=api_config.api_title,
    description=api_config.api_description,
    version=api_config.api_version,
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=api_config.cors_origins,
    allow_credentials=api_config.cors_allow_credentials,
    allow_methods=api_config.cors_allow_methods,
    allow_headers=api_config.cors_allow_headers,
)


@app.exception_handler(HTTPException)
async def http_exception_handler(request, exc: HTTPException):
    """Handle HTTP exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=exc.detail,
            status_code=exc.status_code
        ).model_dump(),
        headers=exc.headers
    )


@app.exception_handler(Exception)
async def general_exception_handler(request, exc: Exception):
    """Handle general exceptions."""
    logger.error("Unhandled exception", error=str(exc), path=request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=ErrorResponse(
            error="Internal server error",
            detail=str(exc) if api_config.debug else None,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR
        ).model_dump()
    )


def _require_tracker() -> VersionTracker:
    if tracker is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Tracker not initialised"
        )
    return tracker


def _resolve_target(app_id: Optional[str], country: Optional[str]):
    """Fill in configured defaults for a request's app id and country."""
    current = _require_tracker()
    return app_id or current.config.app_id, country or current.config.default_country


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check():
    """Health check endpoint."""
    store_status = "unavailable"
    if tracker is not None:
        try:
            health_info = await tracker.history_store.store.health_check()
            store_status = health_info.get("status", "unknown")
        except Exception as e:
            logger.error("Health check failed", error=str(e))
            store_status = "unhealthy"

    return HealthResponse(
        status="healthy" if store_status == "healthy" else "degraded",
        timestamp=datetime.utcnow(),
        version=api_config.api_version,
        store_status=store_status
    )


@app.get("/api/history", response_model=HistoryResponse, tags=["History"])
async def get_history(app_id: Optional[str] = None, country: Optional[str] = None):
    """
    Saved history and a fresh lookup for one app and storefront.

    - **app_id**: App Store numeric id (defaults to the tracked app)
    - **country**: Two-letter storefront code (defaults to the configured country)
    """
    app_id, country = _resolve_target(app_id, country)
    try:
        snapshot = await tracker.get_snapshot(app_id, country)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except StoreUnavailableError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))

    return HistoryResponse(app_id=app_id, country=country, **snapshot)


@app.get("/api/changelog", response_model=ChangelogResponse, tags=["History"])
async def get_changelog(app_id: Optional[str] = None, country: Optional[str] = None):
    """
    Version history from the store; runs a check first if none is saved yet.

    The check only saves its result, it never sends an update alert.
    """
    app_id, country = _resolve_target(app_id, country)
    try:
        saved = await tracker.load_history(app_id, country)
        if saved is not None:
            return ChangelogResponse(source="saved", data=saved)

        result = await tracker.run_cycle(app_id, country, notify=False)
        live = None if result.skipped else await tracker.load_history(app_id, country)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except StoreUnavailableError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))

    if live is None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="A version check for this app is already running"
        )
    return ChangelogResponse(source="live", data=live)


@app.post("/api/refresh", response_model=CycleResult, tags=["History"])
async def refresh(request: Optional[RefreshRequest] = None):
    """
    Force one version check and return its verdict.
    """
    request = request or RefreshRequest()
    app_id, country = _resolve_target(request.app_id, request.country)
    try:
        return await tracker.run_cycle(app_id, country, request.lang)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except StoreUnavailableError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "api.main:app",
        host="0.0.0.0",
        port=3000,
        reload=True,
        log_level="info"
    )
