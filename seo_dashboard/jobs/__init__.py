"""
Background jobs

Importing this package registers every job function on the event bus.

Usage:
    from seo_dashboard.jobs import bus, AUDIT_REQUESTED

    background_tasks.add_task(bus.run, AUDIT_REQUESTED, {"auditId": audit.id})
"""

from .bus import (
    AI_SEO_ANALYSIS_START,
    AUDIT_REQUESTED,
    GBP_REFRESH_REQUESTED,
    KEYWORD_TRACKING_REQUESTED,
    LOCAL_SCAN_REQUESTED,
    EventBus,
    bus,
)
from . import ai_seo, audit, keyword_tracking, local_seo  # noqa: F401  (registers handlers)
from .scheduler import Scheduler, scheduler

__all__ = [
    "AI_SEO_ANALYSIS_START",
    "AUDIT_REQUESTED",
    "GBP_REFRESH_REQUESTED",
    "KEYWORD_TRACKING_REQUESTED",
    "LOCAL_SCAN_REQUESTED",
    "EventBus",
    "Scheduler",
    "bus",
    "scheduler",
]
