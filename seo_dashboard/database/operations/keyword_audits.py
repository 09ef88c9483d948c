"""
Keyword optimization audit operations
"""

import logging
import math
from datetime import datetime
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from ...seo.keyword_optimization import KeywordOptimizationData
from ..models import KeywordAuditStatus, KeywordOptimizationAudit

logger = logging.getLogger(__name__)


def create_keyword_audit(
    db: Session,
    user_id: str,
    url: str,
    target_keyword: str,
    location_name: Optional[str] = None,
    language_code: str = "en",
    domain_id: Optional[str] = None,
) -> KeywordOptimizationAudit:
    audit = KeywordOptimizationAudit(
        user_id=user_id,
        domain_id=domain_id,
        url=url,
        target_keyword=target_keyword,
        location_name=location_name,
        language_code=language_code,
        status=KeywordAuditStatus.PENDING,
    )
    db.add(audit)
    db.commit()
    return audit


def get_keyword_audit(db: Session, audit_id: str, user_id: str) -> Optional[KeywordOptimizationAudit]:
    return (
        db.query(KeywordOptimizationAudit)
        .filter(KeywordOptimizationAudit.id == audit_id, KeywordOptimizationAudit.user_id == user_id)
        .first()
    )


def update_keyword_audit_status(
    db: Session,
    audit_id: str,
    status: KeywordAuditStatus,
    error_message: Optional[str] = None,
) -> None:
    audit = db.query(KeywordOptimizationAudit).filter(KeywordOptimizationAudit.id == audit_id).first()
    if audit is None:
        return
    audit.status = status
    if status == KeywordAuditStatus.ANALYZING:
        audit.started_at = datetime.utcnow()
    if status in (KeywordAuditStatus.COMPLETED, KeywordAuditStatus.FAILED):
        audit.completed_at = datetime.utcnow()
    if error_message:
        audit.error_message = error_message
    db.commit()


def save_keyword_audit_data(db: Session, audit_id: str, data: KeywordOptimizationData) -> None:
    """Store the gathered data and its headline metrics."""
    audit = db.query(KeywordOptimizationAudit).filter(KeywordOptimizationAudit.id == audit_id).first()
    if audit is None:
        return
    audit.ranked_keywords_data = data.ranked_keywords
    audit.serp_data = {"features": data.serp_features, "topCompetitors": data.top_competitors}
    audit.backlinks_data = {
        "referringDomains": data.referring_domains,
        "backlinks": data.backlinks,
        "spamScore": data.spam_score,
    }
    audit.keyword_suggestions = data.keyword_opportunities
    audit.current_position = data.current_position
    audit.search_volume = data.search_volume
    audit.keyword_difficulty = data.keyword_difficulty
    audit.domain_rank = data.domain_rank
    audit.referring_domains = data.referring_domains
    audit.api_cost = data.api_cost
    db.commit()


def save_keyword_audit_report(db: Session, audit_id: str, report: Dict[str, Any]) -> None:
    """Store the generated report and mark the audit COMPLETED."""
    audit = db.query(KeywordOptimizationAudit).filter(KeywordOptimizationAudit.id == audit_id).first()
    if audit is None:
        return
    scores = report.get("scores") or {}
    audit.overall_score = scores.get("overall")
    audit.title_score = scores.get("title")
    audit.meta_score = scores.get("meta")
    audit.heading_score = scores.get("headings")
    audit.content_score = scores.get("content")
    audit.internal_links_score = scores.get("internalLinks")
    audit.report_markdown = report.get("markdownReport")
    audit.report_data = {k: v for k, v in report.items() if k != "markdownReport"}
    audit.status = KeywordAuditStatus.COMPLETED
    audit.completed_at = datetime.utcnow()
    db.commit()
    logger.info(f"Keyword audit {audit_id} completed with score {audit.overall_score}")


def list_keyword_audits(
    db: Session,
    user_id: str,
    page: int = 1,
    limit: int = 10,
    status: Optional[KeywordAuditStatus] = None,
) -> Dict[str, Any]:
    query = db.query(KeywordOptimizationAudit).filter(KeywordOptimizationAudit.user_id == user_id)
    if status is not None:
        query = query.filter(KeywordOptimizationAudit.status == status)

    total = query.count()
    audits = (
        query.order_by(KeywordOptimizationAudit.created_at.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return {
        "audits": [keyword_audit_summary(a) for a in audits],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "totalPages": math.ceil(total / limit) if limit else 0,
        },
    }


def delete_keyword_audit(db: Session, audit: KeywordOptimizationAudit) -> None:
    db.delete(audit)
    db.commit()


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def keyword_audit_summary(audit: KeywordOptimizationAudit) -> Dict[str, Any]:
    return {
        "id": audit.id,
        "url": audit.url,
        "targetKeyword": audit.target_keyword,
        "status": audit.status.value,
        "overallScore": audit.overall_score,
        "currentPosition": audit.current_position,
        "createdAt": _iso(audit.created_at),
        "completedAt": _iso(audit.completed_at),
    }


def keyword_audit_to_dict(audit: KeywordOptimizationAudit) -> Dict[str, Any]:
    return {
        **keyword_audit_summary(audit),
        "domainId": audit.domain_id,
        "locationName": audit.location_name,
        "languageCode": audit.language_code,
        "metrics": {
            "searchVolume": audit.search_volume,
            "keywordDifficulty": audit.keyword_difficulty,
            "domainRank": audit.domain_rank,
            "referringDomains": audit.referring_domains,
        },
        "scores": {
            "overall": audit.overall_score,
            "title": audit.title_score,
            "meta": audit.meta_score,
            "headings": audit.heading_score,
            "content": audit.content_score,
            "internalLinks": audit.internal_links_score,
        },
        "rankedKeywords": audit.ranked_keywords_data or [],
        "serpData": audit.serp_data,
        "backlinksData": audit.backlinks_data,
        "keywordSuggestions": audit.keyword_suggestions or [],
        "report": audit.report_data,
        "reportMarkdown": audit.report_markdown,
        "apiCost": audit.api_cost,
        "errorMessage": audit.error_message,
        "startedAt": _iso(audit.started_at),
    }
