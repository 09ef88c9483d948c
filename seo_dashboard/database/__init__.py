"""
SEO Dashboard Database Layer

Usage:
    from seo_dashboard.database import init_db, get_db, get_db_context
    from seo_dashboard.database.operations import audits as audit_ops

    init_db()

    with get_db_context() as db:
        audit = audit_ops.create_audit(db, user_id, "example.com")
"""

from .models import (
    Base,
    Domain,
    Audit,
    TrackedKeyword,
    KeywordOptimizationAudit,
    KeywordTrackingRun,
    KeywordTrackingResult,
    KeywordTrackingSchedule,
    LocalCampaign,
    GridScan,
    GridPointResult,
    CompetitorStat,
    GBPSnapshot,
    GBPCompetitorProfile,
    GBPDetailedProfile,
    AiSeoRun,
    AiSeoResult,
    AiSeoPlatformScore,
    ArchivedAudit,
    ArchivedLocalCampaign,
    DomainStatus,
    AuditStatus,
    KeywordAuditStatus,
    RunStatus,
    ScheduleFrequency,
    CampaignStatus,
    ScanFrequency,
    ScanStatus,
)
from .session import (
    get_database_url,
    create_db_engine,
    get_engine,
    get_session_factory,
    get_db,
    get_db_context,
    init_db,
    check_db_connection,
)

__all__ = [
    "Base",
    "Domain",
    "Audit",
    "TrackedKeyword",
    "KeywordOptimizationAudit",
    "KeywordTrackingRun",
    "KeywordTrackingResult",
    "KeywordTrackingSchedule",
    "LocalCampaign",
    "GridScan",
    "GridPointResult",
    "CompetitorStat",
    "GBPSnapshot",
    "GBPCompetitorProfile",
    "GBPDetailedProfile",
    "AiSeoRun",
    "AiSeoResult",
    "AiSeoPlatformScore",
    "ArchivedAudit",
    "ArchivedLocalCampaign",
    "DomainStatus",
    "AuditStatus",
    "KeywordAuditStatus",
    "RunStatus",
    "ScheduleFrequency",
    "CampaignStatus",
    "ScanFrequency",
    "ScanStatus",
    "get_database_url",
    "create_db_engine",
    "get_engine",
    "get_session_factory",
    "get_db",
    "get_db_context",
    "init_db",
    "check_db_connection",
]
