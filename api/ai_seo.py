"""
API Endpoints for AI-SEO Visibility

Checks how often LLM platforms mention and cite a business for its
keywords. Runs are analyzed by the `ai-seo/analysis.start` job.
"""

import logging
from typing import List

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from seo_dashboard.auth.dependencies import get_current_user
from seo_dashboard.auth.models import User
from seo_dashboard.database.operations import ai_seo as ai_seo_ops
from seo_dashboard.database.session import get_db
from seo_dashboard.dataforseo.modules.ai_optimization import normalize_platform
from seo_dashboard.jobs import AI_SEO_ANALYSIS_START, bus

from .domains import get_owned_domain
from .errors import NotFoundError, ValidationError, ok

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/ai-seo",
    tags=["AI-SEO"],
    dependencies=[Depends(get_current_user)],
)

UNSUPPORTED_PLATFORMS_MESSAGE = "At least one supported LLM platform is required (google or chatgpt)"
SUPPORTED_PLATFORMS = ("chat_gpt", "google")


class StartAnalysisRequest(BaseModel):
    domainId: str
    businessName: str = Field(..., min_length=1, max_length=255)
    keywords: List[str] = Field(..., min_length=1, max_length=50)
    llmPlatforms: List[str] = Field(..., min_length=1)
    locationCode: int = 2840


@router.post("", status_code=201)
async def start_analysis(
    request: StartAnalysisRequest,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    get_owned_domain(db, request.domainId, current_user)

    platforms = []
    for name in request.llmPlatforms:
        platform = normalize_platform(name)
        if platform in SUPPORTED_PLATFORMS and platform not in platforms:
            platforms.append(platform)
    if not platforms:
        raise ValidationError(UNSUPPORTED_PLATFORMS_MESSAGE)

    keywords = [k.strip() for k in request.keywords if k.strip()]
    if not keywords:
        raise ValidationError("At least one keyword is required")

    run = ai_seo_ops.create_ai_seo_run(
        db,
        domain_id=request.domainId,
        user_id=current_user.id,
        business_name=request.businessName.strip(),
        keywords=keywords,
        llm_platforms=platforms,
        location_code=request.locationCode,
    )
    background_tasks.add_task(bus.run, AI_SEO_ANALYSIS_START, {"runId": run.id})

    return ok({"id": run.id, "message": "AI-SEO analysis has been queued"})


@router.get("")
async def list_analyses(
    domain_id: str = Query(..., alias="domainId"),
    limit: int = Query(10, ge=1, le=50),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Runs for a domain plus the platform scores of the latest completed one."""
    get_owned_domain(db, domain_id, current_user)
    runs = ai_seo_ops.list_domain_ai_seo_runs(db, domain_id, limit=limit)
    latest = ai_seo_ops.get_latest_completed_run(db, domain_id)
    scores = ai_seo_ops.get_platform_scores(db, latest.id) if latest else []

    return ok({
        "runs": [ai_seo_ops.ai_seo_run_to_dict(r) for r in runs],
        "latestPlatformScores": [ai_seo_ops.platform_score_to_dict(s) for s in scores],
        "latestVisibilityScore": latest.visibility_score if latest else None,
        "trend": ai_seo_ops.get_visibility_trend(db, domain_id),
    })


@router.get("/{run_id}")
async def get_analysis(
    run_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    run = ai_seo_ops.get_ai_seo_run_for_user(db, run_id, current_user.id)
    if run is None:
        raise NotFoundError("AI-SEO run not found")

    data = ai_seo_ops.ai_seo_run_to_dict(run)
    data["results"] = [ai_seo_ops.ai_seo_result_to_dict(r) for r in ai_seo_ops.get_ai_seo_results(db, run.id)]
    data["platformScores"] = [ai_seo_ops.platform_score_to_dict(s) for s in ai_seo_ops.get_platform_scores(db, run.id)]
    return ok(data)
