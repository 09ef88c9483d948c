"""
API Endpoints for Site Audits

Handles:
1. Create an audit and queue the audit job
2. List audits with pagination
3. Full audit result, lightweight status for polling
4. Retry a failed audit
5. Delete an audit
"""

import logging
import math
from datetime import datetime
from typing import List, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from pydantic import BaseModel, Field
from sqlalchemy.orm import Session

from seo_dashboard.auth.dependencies import get_current_user
from seo_dashboard.auth.models import User
from seo_dashboard.database.models import Audit, AuditStatus
from seo_dashboard.database.operations import audits as audit_ops
from seo_dashboard.database.operations import keywords as keyword_ops
from seo_dashboard.database.session import get_db
from seo_dashboard.jobs import AUDIT_REQUESTED, bus
from seo_dashboard.seo.preset_keywords import generate_preset_keywords
from seo_dashboard.utils.config import get_settings
from seo_dashboard.utils.domains import is_valid_domain, normalize_domain

from .domains import get_owned_domain
from .errors import APIError, ForbiddenError, NotFoundError, ValidationError, ok

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/audits",
    tags=["Audits"],
    dependencies=[Depends(get_current_user)],
)

STEP_DESCRIPTIONS = {
    "onpage_crawl": "Analyzing technical SEO and page performance",
    "serp_analysis": "Checking keyword rankings and search presence",
    "backlinks_analysis": "Evaluating backlink profile and authority",
    "competitor_analysis": "Comparing against competing domains",
    "business_data": "Gathering business listing and review data",
    "scoring": "Calculating final scores and recommendations",
}


# =============================================================================
# REQUEST MODELS
# =============================================================================

class AuditOptions(BaseModel):
    skipCache: bool = False
    includeBacklinks: bool = True
    includeBusinessData: bool = True


class CreateAuditRequest(BaseModel):
    """Request to start a site audit."""
    domain: str = Field(..., min_length=1, max_length=255)
    domainId: Optional[str] = None
    businessName: Optional[str] = Field(default=None, max_length=200)
    location: Optional[str] = Field(default=None, max_length=200)
    city: Optional[str] = Field(default=None, max_length=100)
    state: Optional[str] = Field(default=None, max_length=2)
    gmbPlaceId: Optional[str] = Field(default=None, max_length=100)
    targetKeywords: List[str] = Field(default_factory=list, max_length=20)
    competitorDomains: List[str] = Field(default_factory=list, max_length=5)
    skipCache: bool = False
    options: Optional[AuditOptions] = None


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def get_owned_audit(db: Session, audit_id: str, user: User) -> Audit:
    """404 when missing, 403 when another user owns it."""
    audit = audit_ops.get_audit(db, audit_id)
    if audit is None:
        raise NotFoundError("Audit not found")
    if audit.user_id != user.id and not user.is_admin:
        raise ForbiddenError("Access denied to this audit")
    return audit


def estimate_seconds_remaining(audit: Audit, now: Optional[datetime] = None) -> Optional[int]:
    """Linear extrapolation from elapsed time and progress."""
    if not audit.started_at or not 0 < (audit.progress or 0) < 100:
        return None
    now = now or datetime.utcnow()
    elapsed = (now - audit.started_at).total_seconds()
    total = elapsed / audit.progress * 100
    return round(total - elapsed)


# =============================================================================
# ENDPOINTS
# =============================================================================

@router.post("", status_code=201)
async def create_audit(
    request: CreateAuditRequest,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    domain = normalize_domain(request.domain)
    if not is_valid_domain(domain):
        raise ValidationError("Invalid domain format")

    if request.domainId:
        get_owned_domain(db, request.domainId, current_user)

    cooldown = get_settings().AUDIT_COOLDOWN_HOURS
    if audit_ops.was_recently_audited(db, current_user.id, domain, within_hours=cooldown):
        raise APIError(
            429,
            "This domain was audited recently. Please wait before requesting another audit.",
            code="RATE_LIMITED",
        )

    audit = audit_ops.create_audit(
        db,
        user_id=current_user.id,
        domain=domain,
        domain_id=request.domainId,
        business_name=request.businessName,
        location=request.location,
        city=request.city,
        state=request.state,
        gmb_place_id=request.gmbPlaceId,
        target_keywords=request.targetKeywords,
        competitor_domains=[normalize_domain(d) for d in request.competitorDomains],
    )

    # Seed the keyword library once the audit is linked to a domain
    if request.city and request.state and audit.domain_id:
        preset = generate_preset_keywords(request.city, request.state)
        added = keyword_ops.add_keywords(db, current_user.id, audit.domain_id, preset, category="preset")
        logger.info(f"Seeded {added['added']} preset keywords for {domain}")

    options = request.options or AuditOptions()
    options.skipCache = options.skipCache or request.skipCache
    background_tasks.add_task(
        bus.run,
        AUDIT_REQUESTED,
        {"auditId": audit.id, "options": options.model_dump()},
    )

    return ok({
        "auditId": audit.id,
        "domain": audit.domain,
        "status": audit.status.value,
        "message": "Audit has been queued and will start shortly",
    })


@router.get("")
async def list_audits(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    status: Optional[AuditStatus] = Query(None),
    domain_id: Optional[str] = Query(None, alias="domainId"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    result = audit_ops.get_user_audits(
        db, current_user.id, page=page, limit=limit, status=status, domain_id=domain_id
    )
    return {
        "success": True,
        "data": [audit_ops.audit_summary(a) for a in result["audits"]],
        "pagination": {
            "page": result["page"],
            "limit": result["limit"],
            "total": result["total"],
            "totalPages": math.ceil(result["total"] / limit),
        },
    }


@router.get("/{audit_id}")
async def get_audit(
    audit_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    audit = get_owned_audit(db, audit_id, current_user)
    return ok(audit_ops.get_full_audit_result(audit))


@router.get("/{audit_id}/status")
async def get_audit_status(
    audit_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Lightweight polling endpoint, no step payloads."""
    audit = get_owned_audit(db, audit_id, current_user)
    step = audit.current_step
    return ok({
        "id": audit.id,
        "status": audit.status.value,
        "progress": audit.progress,
        "currentStep": step,
        "currentStepDescription": STEP_DESCRIPTIONS.get(step, step) if step else None,
        "errorMessage": audit.error_message,
        "startedAt": audit.started_at.isoformat() if audit.started_at else None,
        "completedAt": audit.completed_at.isoformat() if audit.completed_at else None,
        "estimatedSecondsRemaining": estimate_seconds_remaining(audit),
        "isComplete": audit.status == AuditStatus.COMPLETED,
        "isFailed": audit.status == AuditStatus.FAILED,
        "isInProgress": audit.status in audit_ops.IN_PROGRESS_STATUSES,
    })


@router.post("/{audit_id}/retry")
async def retry_audit(
    audit_id: str,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    audit = get_owned_audit(db, audit_id, current_user)
    if audit.status != AuditStatus.FAILED:
        raise APIError(400, "Only failed audits can be retried", code="INVALID_STATUS")

    audit_ops.reset_audit(db, audit)
    background_tasks.add_task(
        bus.run,
        AUDIT_REQUESTED,
        {"auditId": audit.id, "options": AuditOptions(skipCache=True).model_dump()},
    )
    logger.info(f"Retrying audit {audit.id} for {audit.domain}")
    return ok({"auditId": audit.id, "status": audit.status.value, "message": "Audit has been re-queued"})


@router.delete("/{audit_id}")
async def delete_audit(
    audit_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    audit = get_owned_audit(db, audit_id, current_user)
    audit_ops.delete_audit(db, audit)
    return ok({"id": audit_id, "deleted": True})
