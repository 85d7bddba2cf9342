"""
FastAPI application for the App Store Version Tracker.

This module provides on-demand endpoints for:
- Reading saved version history alongside a fresh lookup
- Serving the changelog, checking first when nothing is saved
- Forcing a version check
"""
