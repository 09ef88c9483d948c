"""
AI-SEO run operations
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..models import AiSeoPlatformScore, AiSeoResult, AiSeoRun, RunStatus

logger = logging.getLogger(__name__)

RESULT_FIELDS = (
    "mention_rate", "citation_rate", "visibility_score", "sentiment_score",
    "impressions", "mentions_count", "mention_context", "raw_response",
)


def create_ai_seo_run(
    db: Session,
    domain_id: str,
    user_id: str,
    business_name: str,
    keywords: List[str],
    llm_platforms: List[str],
    location_code: int = 2840,
) -> AiSeoRun:
    run = AiSeoRun(
        domain_id=domain_id,
        user_id=user_id,
        business_name=business_name,
        keywords=list(keywords),
        llm_platforms=list(llm_platforms),
        location_code=location_code,
        status=RunStatus.PENDING,
    )
    db.add(run)
    db.commit()
    logger.info(f"Created AI-SEO run {run.id} for {business_name}")
    return run


def get_ai_seo_run(db: Session, run_id: str) -> Optional[AiSeoRun]:
    return db.query(AiSeoRun).filter(AiSeoRun.id == run_id).first()


def get_ai_seo_run_for_user(db: Session, run_id: str, user_id: str) -> Optional[AiSeoRun]:
    return db.query(AiSeoRun).filter(AiSeoRun.id == run_id, AiSeoRun.user_id == user_id).first()


def list_domain_ai_seo_runs(db: Session, domain_id: str, limit: int = 10) -> List[AiSeoRun]:
    return (
        db.query(AiSeoRun)
        .filter(AiSeoRun.domain_id == domain_id)
        .order_by(AiSeoRun.created_at.desc())
        .limit(limit)
        .all()
    )


def start_ai_seo_run(db: Session, run_id: str) -> None:
    run = get_ai_seo_run(db, run_id)
    if run is None:
        return
    run.status = RunStatus.RUNNING
    run.started_at = datetime.utcnow()
    db.commit()


def complete_ai_seo_run(
    db: Session,
    run_id: str,
    visibility_score: int,
    total_mentions: int,
    total_citations: int,
    recommendations: Optional[List[Dict[str, str]]] = None,
) -> None:
    run = get_ai_seo_run(db, run_id)
    if run is None:
        return
    run.status = RunStatus.COMPLETED
    run.completed_at = datetime.utcnow()
    run.visibility_score = visibility_score
    run.total_mentions = total_mentions
    run.total_citations = total_citations
    run.recommendations = recommendations or []
    db.commit()
    logger.info(f"AI-SEO run {run_id} completed with visibility {visibility_score}")


def fail_ai_seo_run(db: Session, run_id: str, error_message: str) -> None:
    run = get_ai_seo_run(db, run_id)
    if run is None:
        return
    run.status = RunStatus.FAILED
    run.completed_at = datetime.utcnow()
    run.error_message = error_message
    db.commit()
    logger.error(f"AI-SEO run {run_id} failed: {error_message}")


def save_ai_seo_result(
    db: Session,
    run_id: str,
    llm_platform: str,
    keyword: Optional[str],
    **fields,
) -> AiSeoResult:
    """
    Store one visibility row.

    Platform-level rows (keyword=None) also upsert the run's platform score.
    """
    values = {k: v for k, v in fields.items() if k in RESULT_FIELDS}
    result = AiSeoResult(
        run_id=run_id,
        llm_platform=llm_platform,
        keyword=keyword,
        is_mentioned=(values.get("mentions_count") or 0) > 0,
        is_cited=(values.get("citation_rate") or 0) > 0,
        **values,
    )
    db.add(result)

    if keyword is None:
        score = (
            db.query(AiSeoPlatformScore)
            .filter(AiSeoPlatformScore.run_id == run_id, AiSeoPlatformScore.llm_platform == llm_platform)
            .first()
        )
        if score is None:
            score = AiSeoPlatformScore(run_id=run_id, llm_platform=llm_platform)
            db.add(score)
        score.mention_rate = values.get("mention_rate") or 0.0
        score.citation_rate = values.get("citation_rate") or 0.0
        score.sentiment_score = values.get("sentiment_score")
        score.visibility_score = values.get("visibility_score") or 0

    db.commit()
    return result


def get_ai_seo_results(db: Session, run_id: str) -> List[AiSeoResult]:
    return (
        db.query(AiSeoResult)
        .filter(AiSeoResult.run_id == run_id)
        .order_by(AiSeoResult.keyword.asc(), AiSeoResult.llm_platform.asc())
        .all()
    )


def get_platform_scores(db: Session, run_id: str) -> List[AiSeoPlatformScore]:
    return (
        db.query(AiSeoPlatformScore)
        .filter(AiSeoPlatformScore.run_id == run_id)
        .order_by(AiSeoPlatformScore.llm_platform.asc())
        .all()
    )


def get_latest_completed_run(db: Session, domain_id: str) -> Optional[AiSeoRun]:
    return (
        db.query(AiSeoRun)
        .filter(AiSeoRun.domain_id == domain_id, AiSeoRun.status == RunStatus.COMPLETED)
        .order_by(AiSeoRun.completed_at.desc())
        .first()
    )


def get_visibility_trend(db: Session, domain_id: str, limit: int = 10) -> List[Dict[str, Any]]:
    """Visibility scores of completed runs, oldest first."""
    runs = (
        db.query(AiSeoRun)
        .filter(AiSeoRun.domain_id == domain_id, AiSeoRun.status == RunStatus.COMPLETED)
        .order_by(AiSeoRun.completed_at.desc())
        .limit(limit)
        .all()
    )
    return [
        {"runId": r.id, "visibilityScore": r.visibility_score, "completedAt": _iso(r.completed_at)}
        for r in reversed(runs)
    ]


# =============================================================================
# SERIALIZATION
# =============================================================================

def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def ai_seo_run_to_dict(run: AiSeoRun) -> Dict[str, Any]:
    return {
        "id": run.id,
        "domainId": run.domain_id,
        "status": run.status.value,
        "businessName": run.business_name,
        "keywords": run.keywords or [],
        "llmPlatforms": run.llm_platforms or [],
        "locationCode": run.location_code,
        "visibilityScore": run.visibility_score,
        "totalMentions": run.total_mentions or 0,
        "totalCitations": run.total_citations or 0,
        "recommendations": run.recommendations or [],
        "errorMessage": run.error_message,
        "startedAt": _iso(run.started_at),
        "completedAt": _iso(run.completed_at),
        "createdAt": _iso(run.created_at),
    }


def ai_seo_result_to_dict(result: AiSeoResult) -> Dict[str, Any]:
    return {
        "id": result.id,
        "keyword": result.keyword,
        "llmPlatform": result.llm_platform,
        "mentionRate": result.mention_rate,
        "citationRate": result.citation_rate,
        "visibilityScore": result.visibility_score,
        "sentimentScore": result.sentiment_score,
        "impressions": result.impressions,
        "mentionsCount": result.mentions_count,
        "isMentioned": result.is_mentioned,
        "isCited": result.is_cited,
        "mentionContext": result.mention_context,
        "rawResponse": result.raw_response,
    }


def platform_score_to_dict(score: AiSeoPlatformScore) -> Dict[str, Any]:
    return {
        "llmPlatform": score.llm_platform,
        "mentionRate": score.mention_rate,
        "averagePosition": score.average_position,
        "sentimentScore": score.sentiment_score,
        "citationRate": score.citation_rate,
        "visibilityScore": score.visibility_score,
    }
