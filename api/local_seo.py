"""
API Endpoints for Local SEO Campaigns

Handles:
1. Campaign CRUD
2. Triggering geo-grid scans and reading their results
3. Competitor stats from the latest completed scan
4. Business Profile snapshots and the competitor comparison
"""

import logging
from typing import List, Literal, Optional

from fastapi import APIRouter, BackgroundTasks, Depends, Query
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.orm import Session

from seo_dashboard.auth.dependencies import get_current_user
from seo_dashboard.auth.models import User
from seo_dashboard.database.models import CampaignStatus, CompetitorStat, LocalCampaign, ScanFrequency
from seo_dashboard.database.operations import local_campaigns as campaign_ops
from seo_dashboard.database.session import get_db
from seo_dashboard.dataforseo.service import create_dataforseo
from seo_dashboard.jobs import LOCAL_SCAN_REQUESTED, bus
from seo_dashboard.jobs.local_seo import (
    DEFAULT_COMPARISON_COMPETITORS,
    MAX_COMPARISON_COMPETITORS,
    build_gbp_comparison,
    fetch_detailed_gbp_data,
)
from seo_dashboard.local_seo.competitor_aggregator import (
    CompetitorStats,
    calculate_market_share,
    generate_competitive_summary,
    group_by_performance_tier,
    is_target_match,
)
from seo_dashboard.local_seo.grid_calculator import estimate_scan_cost, get_grid_point_count

from .domains import get_owned_domain
from .errors import NotFoundError, ValidationError, ok

logger = logging.getLogger(__name__)

router = APIRouter(
    prefix="/api/local-seo/campaigns",
    tags=["Local SEO"],
    dependencies=[Depends(get_current_user)],
)

DetailType = Literal["posts", "qa", "reviews"]


# =============================================================================
# REQUEST MODELS
# =============================================================================

def _check_keywords(value: Optional[List[str]]) -> Optional[List[str]]:
    if value is None:
        return value
    cleaned = [k.strip() for k in value]
    if any(not 1 <= len(k) <= 100 for k in cleaned):
        raise ValueError("Keywords must be 1-100 characters")
    return cleaned


class CreateCampaignRequest(BaseModel):
    """Campaign settings. Grid size is the points per side."""
    businessName: str = Field(..., min_length=1, max_length=200)
    domainId: Optional[str] = None
    gmbPlaceId: Optional[str] = Field(default=None, max_length=100)
    gmbCid: Optional[str] = Field(default=None, max_length=50)
    centerLat: float = Field(..., ge=-90, le=90)
    centerLng: float = Field(..., ge=-180, le=180)
    gridSize: int = Field(default=7, ge=3, le=11)
    gridRadiusMiles: float = Field(default=5, ge=1, le=25)
    keywords: List[str] = Field(..., min_length=1, max_length=10)
    scanFrequency: ScanFrequency = ScanFrequency.WEEKLY
    triggerInitialScan: bool = True

    @field_validator("keywords")
    @classmethod
    def check_keywords(cls, value: Optional[List[str]]) -> Optional[List[str]]:
        return _check_keywords(value)


class UpdateCampaignRequest(BaseModel):
    businessName: Optional[str] = Field(default=None, min_length=1, max_length=200)
    domainId: Optional[str] = None
    gmbPlaceId: Optional[str] = Field(default=None, max_length=100)
    gmbCid: Optional[str] = Field(default=None, max_length=50)
    centerLat: Optional[float] = Field(default=None, ge=-90, le=90)
    centerLng: Optional[float] = Field(default=None, ge=-180, le=180)
    gridSize: Optional[int] = Field(default=None, ge=3, le=11)
    gridRadiusMiles: Optional[float] = Field(default=None, ge=1, le=25)
    keywords: Optional[List[str]] = Field(default=None, min_length=1, max_length=10)
    scanFrequency: Optional[ScanFrequency] = None
    status: Optional[CampaignStatus] = None

    @field_validator("keywords")
    @classmethod
    def check_keywords(cls, value: Optional[List[str]]) -> Optional[List[str]]:
        return _check_keywords(value)


class FetchDetailedRequest(BaseModel):
    dataTypes: List[DetailType] = Field(default_factory=lambda: ["posts", "qa", "reviews"], min_length=1)
    includeTarget: bool = True
    includeCompetitors: bool = True
    competitorCount: int = Field(default=DEFAULT_COMPARISON_COMPETITORS, ge=1, le=MAX_COMPARISON_COMPETITORS)
    forceRefresh: bool = False


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def get_owned_campaign(db: Session, campaign_id: str, user: User) -> LocalCampaign:
    campaign = campaign_ops.get_campaign_for_user(db, campaign_id, user.id)
    if campaign is None:
        raise NotFoundError("Campaign not found")
    return campaign


def _stats_from_row(row: CompetitorStat) -> CompetitorStats:
    return CompetitorStats(
        business_name=row.business_name,
        avg_rank=row.avg_rank or 0.0,
        times_in_top_3=row.times_in_top_3 or 0,
        times_in_top_10=row.times_in_top_10 or 0,
        times_in_top_20=row.times_in_top_20 or 0,
        share_of_voice=row.share_of_voice or 0.0,
        gmb_cid=row.gmb_cid,
        rating=row.rating,
        review_count=row.review_count,
        prev_avg_rank=row.prev_avg_rank,
        rank_change=row.rank_change,
    )


def _campaign_with_cost(campaign: LocalCampaign) -> dict:
    data = campaign_ops.campaign_to_dict(campaign)
    cost = estimate_scan_cost(campaign.grid_size, len(campaign.keywords or []))
    data["gridPointCount"] = get_grid_point_count(campaign.grid_size)
    data["estimatedCostPerScan"] = cost["estimatedCost"]
    return data


def _dispatch_scan(background_tasks: BackgroundTasks, campaign: LocalCampaign, user: User) -> None:
    background_tasks.add_task(
        bus.run,
        LOCAL_SCAN_REQUESTED,
        {"campaignId": campaign.id, "userId": user.id},
    )


# =============================================================================
# CAMPAIGNS
# =============================================================================

@router.get("")
async def list_campaigns(
    domain_id: Optional[str] = Query(None, alias="domainId"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return ok(campaign_ops.list_user_campaigns(db, current_user.id, domain_id=domain_id))


@router.post("", status_code=201)
async def create_campaign(
    request: CreateCampaignRequest,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    if request.domainId:
        get_owned_domain(db, request.domainId, current_user)

    campaign = campaign_ops.create_campaign(
        db,
        user_id=current_user.id,
        business_name=request.businessName.strip(),
        center_lat=request.centerLat,
        center_lng=request.centerLng,
        keywords=request.keywords,
        domain_id=request.domainId,
        gmb_place_id=request.gmbPlaceId,
        gmb_cid=request.gmbCid,
        grid_size=request.gridSize,
        grid_radius_miles=request.gridRadiusMiles,
        scan_frequency=request.scanFrequency,
    )

    if request.triggerInitialScan:
        _dispatch_scan(background_tasks, campaign, current_user)

    data = _campaign_with_cost(campaign)
    data["initialScanTriggered"] = request.triggerInitialScan
    return ok(data)


@router.get("/{campaign_id}")
async def get_campaign(
    campaign_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    campaign = get_owned_campaign(db, campaign_id, current_user)
    data = _campaign_with_cost(campaign)
    latest = campaign_ops.get_latest_completed_scan(db, campaign.id)
    data["latestScan"] = campaign_ops.scan_to_dict(latest) if latest else None
    return ok(data)


@router.patch("/{campaign_id}")
async def update_campaign(
    campaign_id: str,
    request: UpdateCampaignRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    campaign = get_owned_campaign(db, campaign_id, current_user)
    if request.domainId:
        get_owned_domain(db, request.domainId, current_user)

    campaign = campaign_ops.update_campaign(
        db,
        campaign,
        business_name=request.businessName,
        domain_id=request.domainId,
        gmb_place_id=request.gmbPlaceId,
        gmb_cid=request.gmbCid,
        center_lat=request.centerLat,
        center_lng=request.centerLng,
        grid_size=request.gridSize,
        grid_radius_miles=request.gridRadiusMiles,
        keywords=request.keywords,
        scan_frequency=request.scanFrequency,
        status=request.status,
    )
    return ok(_campaign_with_cost(campaign))


@router.delete("/{campaign_id}")
async def delete_campaign(
    campaign_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    campaign = get_owned_campaign(db, campaign_id, current_user)
    campaign_ops.delete_campaign(db, campaign)
    return ok({"id": campaign_id, "deleted": True})


# =============================================================================
# SCANS
# =============================================================================

@router.post("/{campaign_id}/scan", status_code=202)
async def trigger_scan(
    campaign_id: str,
    background_tasks: BackgroundTasks,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    campaign = get_owned_campaign(db, campaign_id, current_user)
    if campaign.status != CampaignStatus.ACTIVE:
        raise ValidationError("Campaign is not active")
    if not campaign.keywords:
        raise ValidationError("No keywords to scan")

    _dispatch_scan(background_tasks, campaign, current_user)
    cost = estimate_scan_cost(campaign.grid_size, len(campaign.keywords))
    return ok({
        "campaignId": campaign.id,
        "message": "Scan has been queued",
        "estimatedCost": cost["estimatedCost"],
        "totalCalls": cost["totalCalls"],
    })


@router.get("/{campaign_id}/scans")
async def list_scans(
    campaign_id: str,
    limit: int = Query(20, ge=1, le=100),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    campaign = get_owned_campaign(db, campaign_id, current_user)
    scans = campaign_ops.list_campaign_scans(db, campaign.id, limit=limit)
    return ok([campaign_ops.scan_to_dict(s) for s in scans])


@router.get("/{campaign_id}/scans/{scan_id}")
async def get_scan(
    campaign_id: str,
    scan_id: str,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    campaign = get_owned_campaign(db, campaign_id, current_user)
    scan = campaign_ops.get_scan(db, scan_id, campaign_id=campaign.id)
    if scan is None:
        raise NotFoundError("Scan not found")
    return ok(campaign_ops.scan_to_dict(scan))


@router.get("/{campaign_id}/scans/{scan_id}/grid")
async def get_scan_grid(
    campaign_id: str,
    scan_id: str,
    keyword: Optional[str] = Query(None),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Per-point ranks, optionally for one keyword."""
    campaign = get_owned_campaign(db, campaign_id, current_user)
    scan = campaign_ops.get_scan(db, scan_id, campaign_id=campaign.id)
    if scan is None:
        raise NotFoundError("Scan not found")

    points = campaign_ops.get_point_results(db, scan.id, keyword=keyword)
    return ok({
        "scan": campaign_ops.scan_to_dict(scan),
        "gridSize": campaign.grid_size,
        "keywords": sorted({p.keyword for p in points}),
        "points": [campaign_ops.point_to_dict(p) for p in points],
    })


# =============================================================================
# COMPETITORS
# =============================================================================

@router.get("/{campaign_id}/competitors")
async def get_competitors(
    campaign_id: str,
    limit: int = Query(50, ge=1, le=200),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    campaign = get_owned_campaign(db, campaign_id, current_user)
    scan = campaign_ops.get_latest_completed_scan(db, campaign.id)
    if scan is None:
        return ok({
            "scanId": None,
            "targetBusiness": None,
            "competitors": [],
            "hasCompletedScan": False,
        })

    rows = campaign_ops.get_competitor_stats(db, scan.id)
    target_row = next((r for r in rows if is_target_match(r.business_name, campaign.business_name)), None)
    competitor_rows = [r for r in rows if r is not target_row]

    target = _stats_from_row(target_row) if target_row else CompetitorStats(business_name=campaign.business_name)
    competitors = [_stats_from_row(r) for r in competitor_rows]
    tiers = group_by_performance_tier(competitors)

    return ok({
        "scanId": scan.id,
        "scanDate": scan.completed_at.isoformat() if scan.completed_at else None,
        "hasCompletedScan": True,
        "targetBusiness": campaign_ops.competitor_stat_to_dict(target_row) if target_row else None,
        "competitors": [
            {"rank": index, **campaign_ops.competitor_stat_to_dict(row)}
            for index, row in enumerate(competitor_rows[:limit], start=1)
        ],
        "tiers": {name: [s.business_name for s in members] for name, members in tiers.items()},
        "marketShare": calculate_market_share(competitors, target),
        "summary": generate_competitive_summary(target, competitors),
    })


# =============================================================================
# BUSINESS PROFILE
# =============================================================================

@router.get("/{campaign_id}/gbp")
async def get_gbp(
    campaign_id: str,
    include_history: bool = Query(True, alias="includeHistory"),
    history_limit: int = Query(10, ge=1, le=50, alias="historyLimit"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    campaign = get_owned_campaign(db, campaign_id, current_user)
    latest = campaign_ops.get_latest_gbp_snapshot(db, campaign.id)
    history = campaign_ops.get_gbp_history(db, campaign.id, limit=history_limit) if include_history else []
    return ok({
        "current": campaign_ops.snapshot_to_dict(latest) if latest else None,
        "history": [
            {
                "date": s.created_at.isoformat() if s.created_at else None,
                "rating": s.rating,
                "reviewCount": s.review_count,
                "completenessScore": s.completeness_score,
            }
            for s in history
        ],
    })


@router.get("/{campaign_id}/gbp-comparison")
async def get_gbp_comparison(
    campaign_id: str,
    competitor_count: int = Query(
        DEFAULT_COMPARISON_COMPETITORS, ge=1, le=MAX_COMPARISON_COMPETITORS, alias="competitorCount"
    ),
    force_refresh: bool = Query(False, alias="forceRefresh"),
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    campaign = get_owned_campaign(db, campaign_id, current_user)
    async with create_dataforseo() as dfs:
        comparison = await build_gbp_comparison(
            db, dfs, campaign, competitor_count=competitor_count, force_refresh=force_refresh
        )
    return ok(comparison)


@router.post("/{campaign_id}/gbp-comparison/fetch-detailed")
async def fetch_detailed(
    campaign_id: str,
    request: FetchDetailedRequest,
    current_user: User = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    """Posts, Q&A and reviews for the target and its top competitors."""
    campaign = get_owned_campaign(db, campaign_id, current_user)
    try:
        async with create_dataforseo() as dfs:
            result = await fetch_detailed_gbp_data(
                db,
                dfs,
                campaign,
                data_types=list(dict.fromkeys(request.dataTypes)),
                include_target=request.includeTarget,
                include_competitors=request.includeCompetitors,
                competitor_count=request.competitorCount,
                force_refresh=request.forceRefresh,
            )
    except ValueError as e:
        raise ValidationError(str(e))
    return ok(result)
