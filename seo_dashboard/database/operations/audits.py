"""
Audit operations

Status management for full site audits. The route handler creates the
audit, the audit job moves it through CRAWLING -> ANALYZING -> COMPLETED
(or FAILED) and stores each step's payload under step_results.
"""

import logging
import math
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy import and_, or_
from sqlalchemy.orm import Session

from ...utils.domains import normalize_domain
from ..models import Audit, AuditStatus, Domain

logger = logging.getLogger(__name__)

STEP_KEYS = ("onPage", "serp", "backlinks", "competitors", "business")

IN_PROGRESS_STATUSES = (AuditStatus.PENDING, AuditStatus.CRAWLING, AuditStatus.ANALYZING)


def create_audit(
    db: Session,
    user_id: str,
    domain: str,
    domain_id: Optional[str] = None,
    business_name: Optional[str] = None,
    location: Optional[str] = None,
    city: Optional[str] = None,
    state: Optional[str] = None,
    gmb_place_id: Optional[str] = None,
    target_keywords: Optional[List[str]] = None,
    competitor_domains: Optional[List[str]] = None,
) -> Audit:
    """Create a PENDING audit, linking it to the user's domain record when one exists."""
    cleaned = normalize_domain(domain)

    if not domain_id:
        record = (
            db.query(Domain)
            .filter(Domain.user_id == user_id, Domain.domain == cleaned)
            .first()
        )
        if record:
            domain_id = record.id

    audit = Audit(
        user_id=user_id,
        domain=cleaned,
        domain_id=domain_id,
        status=AuditStatus.PENDING,
        progress=0,
        business_name=business_name,
        location=location,
        city=city,
        state=state,
        gmb_place_id=gmb_place_id,
        target_keywords=target_keywords or [],
        competitor_domains=competitor_domains or [],
        step_results={},
    )
    db.add(audit)
    db.commit()
    logger.info(f"Created audit {audit.id} for {cleaned}")
    return audit


def get_audit(db: Session, audit_id: str) -> Optional[Audit]:
    return db.query(Audit).filter(Audit.id == audit_id).first()


def start_audit(db: Session, audit_id: str) -> None:
    audit = get_audit(db, audit_id)
    if audit is None:
        return
    audit.status = AuditStatus.CRAWLING
    audit.progress = 5
    audit.started_at = datetime.utcnow()
    audit.error_message = None
    db.commit()


def update_audit_progress(
    db: Session,
    audit_id: str,
    progress: int,
    current_step: Optional[str] = None,
    status: Optional[AuditStatus] = None,
) -> None:
    audit = get_audit(db, audit_id)
    if audit is None:
        return
    audit.progress = max(0, min(100, progress))
    if current_step is not None:
        audit.current_step = current_step
    if status is not None:
        audit.status = status
    db.commit()


def save_step_result(db: Session, audit_id: str, step: str, result: Any) -> None:
    """Merge one step's payload into step_results."""
    audit = get_audit(db, audit_id)
    if audit is None:
        return
    # Reassign so the JSON column is flagged dirty
    audit.step_results = {**(audit.step_results or {}), step: result}
    db.commit()


def save_scores(db: Session, audit_id: str, scores: Dict[str, Optional[int]]) -> None:
    audit = get_audit(db, audit_id)
    if audit is None:
        return
    audit.overall_score = scores.get("overall")
    audit.technical_score = scores.get("technical")
    audit.content_score = scores.get("content")
    audit.local_score = scores.get("local")
    audit.backlinks_score = scores.get("backlinks")
    db.commit()


def complete_audit(db: Session, audit_id: str, warnings: Optional[Dict[str, Any]] = None) -> None:
    """Mark COMPLETED; step failures are kept under step_results['warnings']."""
    audit = get_audit(db, audit_id)
    if audit is None:
        return
    audit.status = AuditStatus.COMPLETED
    audit.progress = 100
    audit.current_step = None
    audit.completed_at = datetime.utcnow()
    if warnings:
        audit.step_results = {**(audit.step_results or {}), "warnings": warnings}
    db.commit()


def fail_audit(
    db: Session,
    audit_id: str,
    error: str,
    step: Optional[str] = None,
    error_category: Optional[str] = None,
) -> None:
    audit = get_audit(db, audit_id)
    if audit is None:
        return
    audit.status = AuditStatus.FAILED
    audit.error_message = error
    audit.current_step = step
    audit.completed_at = datetime.utcnow()
    if error_category:
        audit.step_results = {
            **(audit.step_results or {}),
            "_failureInfo": {"category": error_category, "timestamp": datetime.utcnow().isoformat()},
        }
    db.commit()
    logger.error(f"Audit {audit_id} failed: {error}")


def reset_audit(db: Session, audit: Audit) -> None:
    """Clear progress and results so a failed audit can run again."""
    audit.status = AuditStatus.PENDING
    audit.progress = 0
    audit.current_step = None
    audit.error_message = None
    audit.started_at = None
    audit.completed_at = None
    audit.step_results = {}
    db.commit()


def delete_audit(db: Session, audit: Audit) -> None:
    db.delete(audit)
    db.commit()


def get_user_audits(
    db: Session,
    user_id: str,
    page: int = 1,
    limit: int = 10,
    status: Optional[AuditStatus] = None,
    domain_id: Optional[str] = None,
) -> Dict[str, Any]:
    """
    Paginated audits, newest first.

    With a domain_id, audits that predate domain linking are matched by
    their domain string too.
    """
    query = db.query(Audit).filter(Audit.user_id == user_id)
    if status is not None:
        query = query.filter(Audit.status == status)

    if domain_id:
        record = db.query(Domain).filter(Domain.id == domain_id).first()
        if record:
            query = query.filter(or_(
                Audit.domain_id == domain_id,
                and_(Audit.domain_id.is_(None), Audit.domain == record.domain),
            ))
        else:
            query = query.filter(Audit.domain_id == domain_id)

    total = query.count()
    audits = (
        query.order_by(Audit.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )

    return {
        "audits": audits,
        "total": total,
        "page": page,
        "limit": limit,
        "totalPages": math.ceil(total / limit) if limit else 0,
    }


def was_recently_audited(db: Session, user_id: str, domain: str, within_hours: float = 1) -> bool:
    """True if the user has a running or completed audit of the domain in the window."""
    cutoff = datetime.utcnow() - timedelta(hours=within_hours)
    recent = (
        db.query(Audit.id)
        .filter(
            Audit.user_id == user_id,
            Audit.domain == normalize_domain(domain),
            Audit.created_at >= cutoff,
            Audit.status.in_([AuditStatus.COMPLETED, AuditStatus.CRAWLING, AuditStatus.ANALYZING]),
        )
        .first()
    )
    return recent is not None


def get_dashboard_stats(db: Session, user_id: str) -> Dict[str, Any]:
    now = datetime.utcnow()
    start_of_month = datetime(now.year, now.month, 1)

    base = db.query(Audit).filter(Audit.user_id == user_id)
    recent = base.order_by(Audit.created_at.desc()).limit(5).all()

    return {
        "totalAudits": base.count(),
        "completedAudits": base.filter(Audit.status == AuditStatus.COMPLETED).count(),
        "thisMonthAudits": base.filter(
            Audit.status == AuditStatus.COMPLETED,
            Audit.completed_at >= start_of_month,
        ).count(),
        "scheduledAudits": 0,
        "recentAudits": [audit_summary(a) for a in recent],
    }


# =============================================================================
# SERIALIZATION
# =============================================================================

def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def audit_summary(audit: Audit) -> Dict[str, Any]:
    return {
        "id": audit.id,
        "domain": audit.domain,
        "domainId": audit.domain_id,
        "status": audit.status.value,
        "progress": audit.progress,
        "overallScore": audit.overall_score,
        "createdAt": _iso(audit.created_at),
        "completedAt": _iso(audit.completed_at),
    }


def get_full_audit_result(audit: Audit) -> Dict[str, Any]:
    step_results = audit.step_results or {}
    return {
        "id": audit.id,
        "userId": audit.user_id,
        "domainId": audit.domain_id,
        "domain": audit.domain,
        "status": audit.status.value,
        "progress": audit.progress,
        "currentStep": audit.current_step,
        "businessName": audit.business_name,
        "city": audit.city,
        "state": audit.state,
        "stepResults": {key: step_results.get(key) for key in STEP_KEYS},
        "warnings": step_results.get("warnings"),
        "scores": {
            "overall": audit.overall_score,
            "technical": audit.technical_score,
            "content": audit.content_score,
            "local": audit.local_score,
            "backlinks": audit.backlinks_score,
        },
        "error": audit.error_message,
        "startedAt": _iso(audit.started_at),
        "completedAt": _iso(audit.completed_at),
        "createdAt": _iso(audit.created_at),
    }
