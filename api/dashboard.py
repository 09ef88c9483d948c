"""
Dashboard API

Summary counts for the dashboard home page.
"""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from seo_dashboard.auth.dependencies import get_current_user
from seo_dashboard.auth.models import User
from seo_dashboard.database.models import Domain, DomainStatus, LocalCampaign, TrackedKeyword
from seo_dashboard.database.operations import audits as audit_ops
from seo_dashboard.database.session import get_db

from .errors import ok

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/dashboard",
    tags=["Dashboard"],
    dependencies=[Depends(get_current_user)],
)


@router.get("/stats")
async def get_stats(
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Domain, audit, keyword and campaign counts plus the latest audits."""
    stats = audit_ops.get_dashboard_stats(db, current_user.id)

    stats["totalDomains"] = db.query(Domain).filter(
        Domain.user_id == current_user.id,
        Domain.status == DomainStatus.ACTIVE,
    ).count()
    stats["trackedKeywords"] = db.query(TrackedKeyword).filter(
        TrackedKeyword.user_id == current_user.id,
        TrackedKeyword.is_active.is_(True),
    ).count()
    stats["localCampaigns"] = db.query(LocalCampaign).filter(
        LocalCampaign.user_id == current_user.id,
    ).count()

    return ok(stats)
