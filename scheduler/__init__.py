"""
Scheduler package for App Store version tracking.

This package contains:
- Cron scheduler for periodic checks
- Version check cycle orchestration
- History reconciliation
- History persistence adapter
- Update alerting
"""

__version__ = "1.0.0"
