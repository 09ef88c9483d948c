"""
Local SEO campaign operations

Campaigns own their geo-grid scans, the per-point results of each scan,
the competitor stats aggregated from them and the GBP snapshots taken
after each scan.
"""

import calendar
import logging
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ...local_seo.competitor_aggregator import is_target_match, normalize_competitor_key
from ..models import (
    CampaignStatus, CompetitorStat, GBPSnapshot, GridPointResult, GridScan,
    LocalCampaign, ScanFrequency, ScanStatus,
)

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = (
    "business_name", "gmb_place_id", "gmb_cid", "center_lat", "center_lng",
    "grid_size", "grid_radius_miles", "keywords", "status", "scan_frequency", "domain_id",
)

COMPETITOR_STAT_FIELDS = (
    "business_name", "gmb_cid", "rating", "review_count", "avg_rank",
    "times_in_top_3", "times_in_top_10", "times_in_top_20", "share_of_voice",
    "prev_avg_rank", "rank_change",
)


# =============================================================================
# CAMPAIGNS
# =============================================================================

def create_campaign(
    db: Session,
    user_id: str,
    business_name: str,
    center_lat: float,
    center_lng: float,
    keywords: List[str],
    domain_id: Optional[str] = None,
    gmb_place_id: Optional[str] = None,
    gmb_cid: Optional[str] = None,
    grid_size: int = 7,
    grid_radius_miles: float = 5.0,
    scan_frequency: ScanFrequency = ScanFrequency.WEEKLY,
) -> LocalCampaign:
    """Create an ACTIVE campaign that is due for its first scan immediately."""
    campaign = LocalCampaign(
        user_id=user_id,
        domain_id=domain_id,
        business_name=business_name,
        gmb_place_id=gmb_place_id,
        gmb_cid=gmb_cid,
        center_lat=center_lat,
        center_lng=center_lng,
        grid_size=grid_size,
        grid_radius_miles=grid_radius_miles,
        keywords=list(keywords),
        status=CampaignStatus.ACTIVE,
        scan_frequency=scan_frequency,
        next_scan_at=datetime.utcnow(),
    )
    db.add(campaign)
    db.commit()
    logger.info(f"Created local campaign {campaign.id} for {business_name}")
    return campaign


def get_campaign(db: Session, campaign_id: str) -> Optional[LocalCampaign]:
    return db.query(LocalCampaign).filter(LocalCampaign.id == campaign_id).first()


def get_campaign_for_user(db: Session, campaign_id: str, user_id: str) -> Optional[LocalCampaign]:
    return (
        db.query(LocalCampaign)
        .filter(LocalCampaign.id == campaign_id, LocalCampaign.user_id == user_id)
        .first()
    )


def list_user_campaigns(db: Session, user_id: str, domain_id: Optional[str] = None) -> List[Dict[str, Any]]:
    """Campaigns newest first, each with its latest scan summary."""
    query = db.query(LocalCampaign).filter(LocalCampaign.user_id == user_id)
    if domain_id:
        query = query.filter(LocalCampaign.domain_id == domain_id)

    campaigns = []
    for campaign in query.order_by(LocalCampaign.created_at.desc()).all():
        latest = (
            db.query(GridScan)
            .filter(GridScan.campaign_id == campaign.id)
            .order_by(GridScan.created_at.desc())
            .first()
        )
        data = campaign_to_dict(campaign)
        data["latestScan"] = scan_to_dict(latest) if latest else None
        campaigns.append(data)
    return campaigns


def update_campaign(db: Session, campaign: LocalCampaign, **fields) -> LocalCampaign:
    for key, value in fields.items():
        if key in UPDATABLE_FIELDS and value is not None:
            setattr(campaign, key, list(value) if key == "keywords" else value)
    db.commit()
    return campaign


def delete_campaign(db: Session, campaign: LocalCampaign) -> None:
    db.delete(campaign)
    db.commit()
    logger.info(f"Deleted local campaign {campaign.id}")


def _add_month(value: datetime) -> datetime:
    year = value.year + value.month // 12
    month = value.month % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def calculate_next_scan_at(frequency: ScanFrequency, from_time: datetime) -> datetime:
    if frequency == ScanFrequency.DAILY:
        return from_time + timedelta(days=1)
    if frequency == ScanFrequency.MONTHLY:
        return _add_month(from_time)
    return from_time + timedelta(days=7)


def update_campaign_schedule(db: Session, campaign_id: str, scanned_at: Optional[datetime] = None) -> None:
    """Record the scan time and push next_scan_at forward by the campaign's frequency."""
    campaign = get_campaign(db, campaign_id)
    if campaign is None:
        return
    scanned_at = scanned_at or datetime.utcnow()
    campaign.last_scan_at = scanned_at
    campaign.next_scan_at = calculate_next_scan_at(campaign.scan_frequency, scanned_at)
    db.commit()


def get_campaigns_due_for_scan(db: Session, limit: int = 20) -> List[LocalCampaign]:
    """ACTIVE campaigns whose next scan is due, oldest due first."""
    return (
        db.query(LocalCampaign)
        .filter(
            LocalCampaign.status == CampaignStatus.ACTIVE,
            LocalCampaign.next_scan_at.isnot(None),
            LocalCampaign.next_scan_at <= datetime.utcnow(),
        )
        .order_by(LocalCampaign.next_scan_at.asc())
        .limit(limit)
        .all()
    )


# =============================================================================
# SCANS
# =============================================================================

def create_scan(db: Session, campaign_id: str) -> GridScan:
    scan = GridScan(campaign_id=campaign_id, status=ScanStatus.PENDING, progress=0)
    db.add(scan)
    db.commit()
    return scan


def get_scan(db: Session, scan_id: str, campaign_id: Optional[str] = None) -> Optional[GridScan]:
    query = db.query(GridScan).filter(GridScan.id == scan_id)
    if campaign_id:
        query = query.filter(GridScan.campaign_id == campaign_id)
    return query.first()


def start_scan(db: Session, scan_id: str) -> None:
    scan = get_scan(db, scan_id)
    if scan is None:
        return
    scan.status = ScanStatus.SCANNING
    scan.started_at = datetime.utcnow()
    db.commit()


def update_scan_progress(db: Session, scan_id: str, progress: int) -> None:
    scan = get_scan(db, scan_id)
    if scan is None:
        return
    scan.progress = max(0, min(100, progress))
    db.commit()


def complete_scan(db: Session, scan_id: str, metrics: Dict[str, Any]) -> None:
    """
    Mark COMPLETED with the scan's summary.

    metrics keys: avg_rank, share_of_voice, top_competitor, api_calls_used,
    estimated_cost, failed_points.
    """
    scan = get_scan(db, scan_id)
    if scan is None:
        return
    scan.status = ScanStatus.COMPLETED
    scan.progress = 100
    scan.completed_at = datetime.utcnow()
    for key in ("avg_rank", "share_of_voice", "top_competitor", "api_calls_used", "estimated_cost", "failed_points"):
        if key in metrics:
            setattr(scan, key, metrics[key])
    db.commit()
    logger.info(f"Scan {scan_id} completed: avg rank {scan.avg_rank}, SoV {scan.share_of_voice}%")


def fail_scan(db: Session, scan_id: str, error_message: str) -> None:
    scan = get_scan(db, scan_id)
    if scan is None:
        return
    scan.status = ScanStatus.FAILED
    scan.error_message = error_message
    scan.completed_at = datetime.utcnow()
    db.commit()
    logger.error(f"Scan {scan_id} failed: {error_message}")


def list_campaign_scans(db: Session, campaign_id: str, limit: int = 20) -> List[GridScan]:
    return (
        db.query(GridScan)
        .filter(GridScan.campaign_id == campaign_id)
        .order_by(GridScan.created_at.desc())
        .limit(limit)
        .all()
    )


def get_latest_completed_scan(db: Session, campaign_id: str) -> Optional[GridScan]:
    return (
        db.query(GridScan)
        .filter(GridScan.campaign_id == campaign_id, GridScan.status == ScanStatus.COMPLETED)
        .order_by(GridScan.completed_at.desc())
        .first()
    )


def save_point_results(db: Session, scan_id: str, rows: List[Dict[str, Any]]) -> int:
    """Bulk insert grid point rows (grid_row, grid_col, lat, lng, keyword, rank, top_rankings, total_results)."""
    db.add_all(GridPointResult(scan_id=scan_id, **row) for row in rows)
    db.commit()
    return len(rows)


def get_point_results(db: Session, scan_id: str, keyword: Optional[str] = None) -> List[GridPointResult]:
    query = db.query(GridPointResult).filter(GridPointResult.scan_id == scan_id)
    if keyword:
        query = query.filter(GridPointResult.keyword == keyword)
    return query.order_by(GridPointResult.keyword, GridPointResult.grid_row, GridPointResult.grid_col).all()


def save_competitor_stats(db: Session, scan_id: str, stats: List[Dict[str, Any]]) -> int:
    """Insert aggregated stats; keys outside the stored columns are dropped."""
    db.add_all(
        CompetitorStat(scan_id=scan_id, **{k: v for k, v in row.items() if k in COMPETITOR_STAT_FIELDS})
        for row in stats
    )
    db.commit()
    return len(stats)


def get_competitor_stats(db: Session, scan_id: str) -> List[CompetitorStat]:
    return (
        db.query(CompetitorStat)
        .filter(CompetitorStat.scan_id == scan_id)
        .order_by(CompetitorStat.avg_rank.asc())
        .all()
    )


def get_previous_competitor_stats(db: Session, campaign_id: str, exclude_scan_id: str) -> Dict[str, float]:
    """Normalized business name -> avg rank from the last completed scan before this one."""
    previous = (
        db.query(GridScan)
        .filter(
            GridScan.campaign_id == campaign_id,
            GridScan.status == ScanStatus.COMPLETED,
            GridScan.id != exclude_scan_id,
        )
        .order_by(GridScan.completed_at.desc())
        .first()
    )
    if previous is None:
        return {}

    return {
        normalize_competitor_key(s.business_name): s.avg_rank
        for s in get_competitor_stats(db, previous.id)
        if s.avg_rank is not None
    }


def get_top_competitors_by_sov(db: Session, campaign: LocalCampaign, limit: int = 3) -> List[CompetitorStat]:
    """Highest Share of Voice competitors from the latest completed scan, target excluded."""
    scan = get_latest_completed_scan(db, campaign.id)
    if scan is None:
        return []

    stats = (
        db.query(CompetitorStat)
        .filter(CompetitorStat.scan_id == scan.id)
        .order_by(CompetitorStat.share_of_voice.desc())
        .all()
    )
    return [s for s in stats if not is_target_match(s.business_name, campaign.business_name)][:limit]


# =============================================================================
# GBP SNAPSHOTS
# =============================================================================

def save_gbp_snapshot(db: Session, campaign_id: str, data: Dict[str, Any]) -> GBPSnapshot:
    snapshot = GBPSnapshot(campaign_id=campaign_id, **data)
    db.add(snapshot)
    db.commit()
    return snapshot


def get_latest_gbp_snapshot(db: Session, campaign_id: str) -> Optional[GBPSnapshot]:
    return (
        db.query(GBPSnapshot)
        .filter(GBPSnapshot.campaign_id == campaign_id)
        .order_by(GBPSnapshot.created_at.desc())
        .first()
    )


def get_gbp_history(db: Session, campaign_id: str, limit: int = 10) -> List[GBPSnapshot]:
    return (
        db.query(GBPSnapshot)
        .filter(GBPSnapshot.campaign_id == campaign_id)
        .order_by(GBPSnapshot.created_at.desc())
        .limit(limit)
        .all()
    )


# =============================================================================
# SERIALIZATION
# =============================================================================

def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def campaign_to_dict(campaign: LocalCampaign) -> Dict[str, Any]:
    return {
        "id": campaign.id,
        "domainId": campaign.domain_id,
        "businessName": campaign.business_name,
        "gmbPlaceId": campaign.gmb_place_id,
        "gmbCid": campaign.gmb_cid,
        "centerLat": campaign.center_lat,
        "centerLng": campaign.center_lng,
        "gridSize": campaign.grid_size,
        "gridRadiusMiles": campaign.grid_radius_miles,
        "keywords": campaign.keywords or [],
        "status": campaign.status.value,
        "scanFrequency": campaign.scan_frequency.value,
        "lastScanAt": _iso(campaign.last_scan_at),
        "nextScanAt": _iso(campaign.next_scan_at),
        "createdAt": _iso(campaign.created_at),
    }


def scan_to_dict(scan: GridScan) -> Dict[str, Any]:
    return {
        "id": scan.id,
        "campaignId": scan.campaign_id,
        "status": scan.status.value,
        "progress": scan.progress,
        "avgRank": scan.avg_rank,
        "shareOfVoice": scan.share_of_voice,
        "topCompetitor": scan.top_competitor,
        "apiCallsUsed": scan.api_calls_used,
        "estimatedCost": scan.estimated_cost,
        "failedPoints": scan.failed_points,
        "errorMessage": scan.error_message,
        "startedAt": _iso(scan.started_at),
        "completedAt": _iso(scan.completed_at),
        "createdAt": _iso(scan.created_at),
    }


def point_to_dict(point: GridPointResult) -> Dict[str, Any]:
    return {
        "row": point.grid_row,
        "col": point.grid_col,
        "lat": point.lat,
        "lng": point.lng,
        "keyword": point.keyword,
        "rank": point.rank,
        "topRankings": point.top_rankings or [],
        "totalResults": point.total_results,
    }


def competitor_stat_to_dict(stat: CompetitorStat) -> Dict[str, Any]:
    return {
        "businessName": stat.business_name,
        "gmbCid": stat.gmb_cid,
        "rating": stat.rating,
        "reviewCount": stat.review_count,
        "avgRank": stat.avg_rank,
        "timesInTop3": stat.times_in_top_3,
        "timesInTop10": stat.times_in_top_10,
        "timesInTop20": stat.times_in_top_20,
        "shareOfVoice": stat.share_of_voice,
        "prevAvgRank": stat.prev_avg_rank,
        "rankChange": stat.rank_change,
    }


def snapshot_to_dict(snapshot: GBPSnapshot) -> Dict[str, Any]:
    return {
        "id": snapshot.id,
        "businessName": snapshot.business_name,
        "gmbPlaceId": snapshot.gmb_place_id,
        "gmbCid": snapshot.gmb_cid,
        "rating": snapshot.rating,
        "reviewCount": snapshot.review_count,
        "ratingDistribution": snapshot.rating_distribution,
        "completenessScore": snapshot.completeness_score,
        "address": snapshot.address,
        "phone": snapshot.phone,
        "website": snapshot.website,
        "categories": snapshot.categories or [],
        "attributes": snapshot.attributes,
        "workHours": snapshot.work_hours,
        "createdAt": _iso(snapshot.created_at),
    }
