"""
API Endpoints for Keyword Optimization Audits

A page + target keyword analysis that runs inside the request:
gather DataForSEO data, store it, generate the report, store the report.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from seo_dashboard.auth.dependencies import get_current_user
from seo_dashboard.auth.models import User
from seo_dashboard.database.models import KeywordAuditStatus
from seo_dashboard.database.operations import keyword_audits as keyword_audit_ops
from seo_dashboard.database.session import get_db
from seo_dashboard.dataforseo.service import create_dataforseo
from seo_dashboard.seo.keyword_optimization import gather_keyword_optimization_data
from seo_dashboard.seo.report_generator import generate_seo_report

from .domains import get_owned_domain
from .errors import NotFoundError, ok

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/seo-audit",
    tags=["Keyword Optimization"],
    dependencies=[Depends(get_current_user)],
)


class AnalyzeRequest(BaseModel):
    url: str = Field(..., min_length=1, max_length=2000)
    targetKeyword: str = Field(..., min_length=1, max_length=255)
    locationName: Optional[str] = Field(default=None, max_length=255)
    languageCode: str = Field(default="en", min_length=2, max_length=10)
    domainId: Optional[str] = None


def normalize_url(url: str) -> str:
    url = url.strip()
    if not url.startswith(("http://", "https://")):
        url = f"https://{url}"
    return url


@router.post("/analyze", status_code=201)
async def analyze(
    request: AnalyzeRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if request.domainId:
        get_owned_domain(db, request.domainId, current_user)

    url = normalize_url(request.url)
    audit = keyword_audit_ops.create_keyword_audit(
        db,
        user_id=current_user.id,
        url=url,
        target_keyword=request.targetKeyword.strip(),
        location_name=request.locationName,
        language_code=request.languageCode,
        domain_id=request.domainId,
    )
    audit_id = audit.id

    try:
        keyword_audit_ops.update_keyword_audit_status(db, audit_id, KeywordAuditStatus.ANALYZING)

        async with create_dataforseo() as dfs:
            data = await gather_keyword_optimization_data(
                dfs,
                url,
                audit.target_keyword,
                location_name=request.locationName,
                language_code=request.languageCode,
            )
        keyword_audit_ops.save_keyword_audit_data(db, audit_id, data)

        report = await generate_seo_report(url, data)
        keyword_audit_ops.save_keyword_audit_report(db, audit_id, report)

    except Exception as e:
        logger.exception(f"Keyword audit {audit_id} failed: {e}")
        db.rollback()
        keyword_audit_ops.update_keyword_audit_status(
            db, audit_id, KeywordAuditStatus.FAILED, error_message=str(e)
        )
        return JSONResponse(
            status_code=500,
            content={
                "success": False,
                "error": "Analysis failed",
                "auditId": audit_id,
                "details": str(e),
            },
        )

    return ok({
        "auditId": audit_id,
        "status": KeywordAuditStatus.COMPLETED.value,
        "scores": report.get("scores"),
        "executiveSummary": report.get("executiveSummary"),
        "generatedBy": report.get("generatedBy"),
        "apiCost": data.api_cost,
        "failedSteps": data.failed_steps,
    })


@router.get("/analyze")
async def list_analyses(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[KeywordAuditStatus] = Query(None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return ok(keyword_audit_ops.list_keyword_audits(db, current_user.id, page=page, limit=limit, status=status))


@router.get("/analyze/{audit_id}")
async def get_analysis(
    audit_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    audit = keyword_audit_ops.get_keyword_audit(db, audit_id, current_user.id)
    if audit is None:
        raise NotFoundError("Keyword audit not found")
    return ok(keyword_audit_ops.keyword_audit_to_dict(audit))


@router.delete("/analyze/{audit_id}")
async def delete_analysis(
    audit_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    audit = keyword_audit_ops.get_keyword_audit(db, audit_id, current_user.id)
    if audit is None:
        raise NotFoundError("Keyword audit not found")
    keyword_audit_ops.delete_keyword_audit(db, audit)
    return ok({"id": audit_id, "deleted": True})
