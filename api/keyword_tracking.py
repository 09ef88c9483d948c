"""
API Endpoints for Keyword Rank Tracking

Handles:
1. Start a tracking run for a domain's keyword library
2. List runs, run details, lightweight run status
3. Filtered and sorted run results with 7/30/90 day changes
4. The domain's recurring tracking schedule
"""

import logging
import re
from typing import Literal, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.orm import Session

from seo_dashboard.auth.dependencies import get_current_user
from seo_dashboard.auth.models import User
from seo_dashboard.database.models import KeywordTrackingRun, RunStatus, ScheduleFrequency
from seo_dashboard.database.operations import keyword_tracking as tracking_ops
from seo_dashboard.database.operations import keywords as keyword_ops
from seo_dashboard.database.session import get_db
from seo_dashboard.jobs import KEYWORD_TRACKING_REQUESTED, bus

from .domains import get_owned_domain
from .errors import NotFoundError, ValidationError, ok

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/keyword-tracking",
    tags=["Keyword Tracking"],
    dependencies=[Depends(get_current_user)],
)

TIME_OF_DAY = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


# =============================================================================
# REQUEST MODELS
# =============================================================================

class StartRunRequest(BaseModel):
    domainId: str
    locationName: str = Field(default="United States", max_length=255)
    languageCode: str = Field(default="en", min_length=2, max_length=10)


class ScheduleRequest(BaseModel):
    """Create or update the domain's schedule. Times are UTC."""
    frequency: ScheduleFrequency = ScheduleFrequency.WEEKLY
    dayOfWeek: Optional[int] = Field(default=None, ge=0, le=6)
    dayOfMonth: Optional[int] = Field(default=None, ge=1, le=31)
    timeOfDay: str = "06:00"
    locationName: str = Field(default="United States", max_length=255)
    languageCode: str = Field(default="en", min_length=2, max_length=10)
    isEnabled: bool = True

    @field_validator("timeOfDay")
    @classmethod
    def check_time_of_day(cls, value: str) -> str:
        if not TIME_OF_DAY.match(value):
            raise ValueError("timeOfDay must be HH:MM (24h)")
        return value


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def get_owned_run(db: Session, run_id: str, user: User) -> KeywordTrackingRun:
    run = tracking_ops.get_run_for_user(db, run_id, user.id)
    if run is None:
        raise NotFoundError("Tracking run not found")
    return run


# =============================================================================
# RUNS
# =============================================================================

@router.post("", status_code=201)
async def start_tracking_run(
    request: StartRunRequest,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    get_owned_domain(db, request.domainId, current_user)

    if not keyword_ops.get_domain_keywords(db, request.domainId):
        raise ValidationError("No keywords to track. Add keywords to the keyword library first.")

    run = tracking_ops.create_run(
        db,
        domain_id=request.domainId,
        user_id=current_user.id,
        location_name=request.locationName,
        language_code=request.languageCode,
        triggered_by="manual",
    )
    background_tasks.add_task(
        bus.run,
        KEYWORD_TRACKING_REQUESTED,
        {"runId": run.id, "domainId": request.domainId},
    )

    return ok({
        "runId": run.id,
        "status": run.status.value,
        "message": "Keyword tracking run has been queued",
    })


@router.get("")
async def list_tracking_runs(
    domain_id: str = Query(..., alias="domainId"),
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    get_owned_domain(db, domain_id, current_user)
    result = tracking_ops.list_domain_runs(db, domain_id, limit=limit, offset=offset)
    return ok({
        "runs": [tracking_ops.run_to_dict(r) for r in result["runs"]],
        "pagination": {
            "total": result["total"],
            "limit": limit,
            "offset": offset,
            "hasMore": offset + len(result["runs"]) < result["total"],
        },
    })


@router.get("/runs/{run_id}")
async def get_tracking_run(
    run_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    run = get_owned_run(db, run_id, current_user)
    return ok(tracking_ops.run_to_dict(run))


@router.get("/runs/{run_id}/status")
async def get_tracking_run_status(
    run_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    run = get_owned_run(db, run_id, current_user)
    return ok({
        "id": run.id,
        "status": run.status.value,
        "progress": run.progress,
        "keywordsTracked": run.keywords_tracked,
        "errorMessage": run.error_message,
        "isComplete": run.status == RunStatus.COMPLETED,
        "isFailed": run.status == RunStatus.FAILED,
        "isInProgress": run.status in (RunStatus.PENDING, RunStatus.RUNNING),
    })


@router.get("/runs/{run_id}/results")
async def get_tracking_run_results(
    run_id: str,
    limit: int = Query(50, ge=1, le=500),
    offset: int = Query(0, ge=0),
    sort_by: Literal["position", "positionChange", "keyword", "searchVolume"] = Query("position", alias="sortBy"),
    sort_order: Literal["asc", "desc"] = Query("asc", alias="sortOrder"),
    position_filter: Literal["all", "top3", "top10", "top100", "notRanking"] = Query("all", alias="positionFilter"),
    change_filter: Literal["all", "improved", "declined", "unchanged", "new", "lost"] = Query(
        "all", alias="changeFilter"
    ),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    run = get_owned_run(db, run_id, current_user)
    result = tracking_ops.get_run_results(
        db,
        run.id,
        limit=limit,
        offset=offset,
        sort_by=sort_by,
        sort_order=sort_order,
        position_filter=position_filter,
        change_filter=change_filter,
    )
    return ok({
        "run": tracking_ops.run_to_dict(run),
        "results": result["results"],
        "pagination": {
            "total": result["total"],
            "limit": limit,
            "offset": offset,
            "hasMore": offset + len(result["results"]) < result["total"],
        },
    })


@router.delete("/runs/{run_id}")
async def delete_tracking_run(
    run_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    run = get_owned_run(db, run_id, current_user)
    tracking_ops.delete_run(db, run)
    return ok({"id": run_id, "deleted": True})


# =============================================================================
# SCHEDULE
# =============================================================================

@router.get("/schedule")
async def get_schedule(
    domain_id: str = Query(..., alias="domainId"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    get_owned_domain(db, domain_id, current_user)
    schedule = tracking_ops.get_schedule_for_domain(db, domain_id)
    return ok(tracking_ops.schedule_to_dict(schedule) if schedule else None)


@router.put("/schedule")
async def upsert_schedule(
    request: ScheduleRequest,
    domain_id: str = Query(..., alias="domainId"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    get_owned_domain(db, domain_id, current_user)
    schedule = tracking_ops.get_schedule_for_domain(db, domain_id)

    if schedule is None:
        schedule = tracking_ops.create_schedule(
            db,
            domain_id=domain_id,
            user_id=current_user.id,
            frequency=request.frequency,
            day_of_week=request.dayOfWeek,
            day_of_month=request.dayOfMonth,
            time_of_day=request.timeOfDay,
            location_name=request.locationName,
            language_code=request.languageCode,
            is_enabled=request.isEnabled,
        )
    else:
        schedule = tracking_ops.update_schedule(
            db,
            schedule,
            frequency=request.frequency,
            day_of_week=request.dayOfWeek,
            day_of_month=request.dayOfMonth,
            time_of_day=request.timeOfDay,
            location_name=request.locationName,
            language_code=request.languageCode,
            is_enabled=request.isEnabled,
        )

    return ok(tracking_ops.schedule_to_dict(schedule))


@router.delete("/schedule")
async def delete_schedule(
    domain_id: str = Query(..., alias="domainId"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    get_owned_domain(db, domain_id, current_user)
    schedule = tracking_ops.get_schedule_for_domain(db, domain_id)
    if schedule is None:
        raise NotFoundError("No schedule for this domain")
    tracking_ops.delete_schedule(db, schedule)
    return ok({"domainId": domain_id, "deleted": True})
