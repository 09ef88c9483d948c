"""
Archive operations

Records with no domain (domain_id NULL) are "unassigned". They can be
assigned to a domain or archived. Archiving copies the row into an
archive table and deletes the original together with its children.
Archived copies can then be deleted permanently.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..models import ArchivedAudit, ArchivedLocalCampaign, Audit, LocalCampaign

logger = logging.getLogger(__name__)

ARCHIVE_TYPES = ("audits", "localCampaigns")


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def get_unassigned_data(db: Session, user_id: str) -> Dict[str, Any]:
    audits = (
        db.query(Audit)
        .filter(Audit.user_id == user_id, Audit.domain_id.is_(None))
        .order_by(Audit.created_at.desc())
        .all()
    )
    campaigns = (
        db.query(LocalCampaign)
        .filter(LocalCampaign.user_id == user_id, LocalCampaign.domain_id.is_(None))
        .order_by(LocalCampaign.created_at.desc())
        .all()
    )
    return {
        "audits": [
            {"id": a.id, "domain": a.domain, "status": a.status.value, "createdAt": _iso(a.created_at)}
            for a in audits
        ],
        "localCampaigns": [
            {
                "id": c.id,
                "businessName": c.business_name,
                "keywords": c.keywords or [],
                "status": c.status.value,
                "createdAt": _iso(c.created_at),
            }
            for c in campaigns
        ],
        "totalCount": len(audits) + len(campaigns),
    }


def get_archived_data(db: Session, user_id: str) -> Dict[str, Any]:
    audits = (
        db.query(ArchivedAudit)
        .filter(ArchivedAudit.user_id == user_id)
        .order_by(ArchivedAudit.archived_at.desc())
        .all()
    )
    campaigns = (
        db.query(ArchivedLocalCampaign)
        .filter(ArchivedLocalCampaign.user_id == user_id)
        .order_by(ArchivedLocalCampaign.archived_at.desc())
        .all()
    )
    return {
        "audits": [
            {
                "id": a.id,
                "domain": a.domain,
                "status": a.status,
                "createdAt": _iso(a.created_at),
                "archivedAt": _iso(a.archived_at),
            }
            for a in audits
        ],
        "localCampaigns": [
            {
                "id": c.id,
                "businessName": c.business_name,
                "createdAt": _iso(c.created_at),
                "archivedAt": _iso(c.archived_at),
            }
            for c in campaigns
        ],
        "totalCount": len(audits) + len(campaigns),
    }


# =============================================================================
# ASSIGN
# =============================================================================

def assign_audits_to_domain(db: Session, user_id: str, audit_ids: List[str], domain_id: str) -> int:
    count = (
        db.query(Audit)
        .filter(Audit.id.in_(audit_ids), Audit.user_id == user_id, Audit.domain_id.is_(None))
        .update({Audit.domain_id: domain_id}, synchronize_session=False)
    )
    db.commit()
    return count


def assign_local_campaigns_to_domain(db: Session, user_id: str, campaign_ids: List[str], domain_id: str) -> int:
    count = (
        db.query(LocalCampaign)
        .filter(
            LocalCampaign.id.in_(campaign_ids),
            LocalCampaign.user_id == user_id,
            LocalCampaign.domain_id.is_(None),
        )
        .update({LocalCampaign.domain_id: domain_id}, synchronize_session=False)
    )
    db.commit()
    return count


# =============================================================================
# ARCHIVE
# =============================================================================

def archive_audits(db: Session, user_id: str, audit_ids: List[str]) -> int:
    audits = db.query(Audit).filter(Audit.id.in_(audit_ids), Audit.user_id == user_id).all()
    for audit in audits:
        db.add(ArchivedAudit(
            id=audit.id,
            user_id=audit.user_id,
            domain=audit.domain,
            status=audit.status.value,
            data={
                "stepResults": audit.step_results,
                "scores": {
                    "overall": audit.overall_score,
                    "technical": audit.technical_score,
                    "content": audit.content_score,
                    "local": audit.local_score,
                    "backlinks": audit.backlinks_score,
                },
            },
            created_at=audit.created_at,
        ))
        db.delete(audit)
    db.commit()
    logger.info(f"Archived {len(audits)} audits for user {user_id}")
    return len(audits)


def archive_local_campaigns(db: Session, user_id: str, campaign_ids: List[str]) -> int:
    campaigns = (
        db.query(LocalCampaign)
        .filter(LocalCampaign.id.in_(campaign_ids), LocalCampaign.user_id == user_id)
        .all()
    )
    for campaign in campaigns:
        db.add(ArchivedLocalCampaign(
            id=campaign.id,
            user_id=campaign.user_id,
            business_name=campaign.business_name,
            data={
                "keywords": campaign.keywords,
                "centerLat": campaign.center_lat,
                "centerLng": campaign.center_lng,
                "gridSize": campaign.grid_size,
                "gridRadiusMiles": campaign.grid_radius_miles,
            },
            created_at=campaign.created_at,
        ))
        db.delete(campaign)
    db.commit()
    logger.info(f"Archived {len(campaigns)} local campaigns for user {user_id}")
    return len(campaigns)


# =============================================================================
# DELETE
# =============================================================================

def delete_archived_audits(db: Session, user_id: str, audit_ids: List[str]) -> int:
    count = (
        db.query(ArchivedAudit)
        .filter(ArchivedAudit.id.in_(audit_ids), ArchivedAudit.user_id == user_id)
        .delete(synchronize_session=False)
    )
    db.commit()
    return count


def delete_archived_local_campaigns(db: Session, user_id: str, campaign_ids: List[str]) -> int:
    count = (
        db.query(ArchivedLocalCampaign)
        .filter(ArchivedLocalCampaign.id.in_(campaign_ids), ArchivedLocalCampaign.user_id == user_id)
        .delete(synchronize_session=False)
    )
    db.commit()
    return count
