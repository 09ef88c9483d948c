"""
Domain operations

Create, read, update and archive a user's registered domains.
Archived domains are hidden; re-adding one reactivates it.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..models import (
    AiSeoRun, Audit, Domain, DomainStatus, KeywordOptimizationAudit,
    KeywordTrackingRun, LocalCampaign, TrackedKeyword,
)

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ("name", "business_name", "city", "state", "status", "is_pinned")


class DomainExistsError(Exception):
    """An active domain with the same name is already registered."""
    pass


def create_domain(
    db: Session,
    user_id: str,
    name: str,
    domain: str,
    business_name: Optional[str] = None,
    city: Optional[str] = None,
    state: Optional[str] = None,
) -> Domain:
    """
    Register a normalized domain for a user.

    Raises:
        DomainExistsError: If the user already has it active
    """
    existing = (
        db.query(Domain)
        .filter(Domain.user_id == user_id, Domain.domain == domain)
        .first()
    )

    if existing and existing.status == DomainStatus.ACTIVE:
        raise DomainExistsError("A domain with this name already exists")

    if existing:
        existing.name = name
        existing.business_name = business_name
        existing.city = city
        existing.state = state
        existing.status = DomainStatus.ACTIVE
        db.commit()
        logger.info(f"Reactivated archived domain {domain} for user {user_id}")
        return existing

    record = Domain(
        user_id=user_id,
        name=name,
        domain=domain,
        business_name=business_name,
        city=city,
        state=state,
    )
    db.add(record)
    db.commit()
    logger.info(f"Created domain {domain} for user {user_id}")
    return record


def get_user_domains(db: Session, user_id: str) -> List[Domain]:
    """Active domains, newest first."""
    return (
        db.query(Domain)
        .filter(Domain.user_id == user_id, Domain.status == DomainStatus.ACTIVE)
        .order_by(Domain.created_at.desc())
        .all()
    )


def get_domain(db: Session, domain_id: str, user_id: str) -> Optional[Domain]:
    return (
        db.query(Domain)
        .filter(Domain.id == domain_id, Domain.user_id == user_id)
        .first()
    )


def update_domain(db: Session, domain_id: str, user_id: str, **fields) -> Optional[Domain]:
    """Apply the given fields; unknown keys and None values are ignored."""
    record = get_domain(db, domain_id, user_id)
    if record is None:
        return None

    for key, value in fields.items():
        if key in UPDATABLE_FIELDS and value is not None:
            setattr(record, key, value)

    db.commit()
    return record


def archive_domain(db: Session, domain_id: str, user_id: str) -> bool:
    record = get_domain(db, domain_id, user_id)
    if record is None:
        return False

    record.status = DomainStatus.ARCHIVED
    db.commit()
    logger.info(f"Archived domain {record.domain}")
    return True


def get_domain_tool_counts(db: Session, domain_id: str, user_id: str) -> Dict[str, int]:
    """Record counts per tool, for sidebar badges."""
    return {
        "audits": db.query(Audit).filter(Audit.domain_id == domain_id, Audit.user_id == user_id).count(),
        "localCampaigns": db.query(LocalCampaign).filter(
            LocalCampaign.domain_id == domain_id, LocalCampaign.user_id == user_id
        ).count(),
        "trackedKeywords": db.query(TrackedKeyword).filter(
            TrackedKeyword.domain_id == domain_id,
            TrackedKeyword.user_id == user_id,
            TrackedKeyword.is_active.is_(True),
        ).count(),
        "keywordAudits": db.query(KeywordOptimizationAudit).filter(
            KeywordOptimizationAudit.domain_id == domain_id,
            KeywordOptimizationAudit.user_id == user_id,
        ).count(),
        "keywordTrackingRuns": db.query(KeywordTrackingRun).filter(
            KeywordTrackingRun.domain_id == domain_id, KeywordTrackingRun.user_id == user_id
        ).count(),
        "aiSeoRuns": db.query(AiSeoRun).filter(
            AiSeoRun.domain_id == domain_id, AiSeoRun.user_id == user_id
        ).count(),
    }


def domain_to_dict(record: Domain) -> Dict[str, Any]:
    return {
        "id": record.id,
        "userId": record.user_id,
        "name": record.name,
        "domain": record.domain,
        "businessName": record.business_name,
        "city": record.city,
        "state": record.state,
        "status": record.status.value,
        "isPinned": record.is_pinned,
        "createdAt": record.created_at.isoformat() if record.created_at else None,
        "updatedAt": record.updated_at.isoformat() if record.updated_at else None,
    }
