"""
Local SEO jobs

- `local-seo/scan.requested`: geo-grid scan of a campaign's keywords
- `local-seo/gbp.refresh`: snapshot of the campaign's own Business Profile
- `trigger_scheduled_scans`: daily, dispatches scans for due campaigns

Also holds the GBP comparison and detailed-data fetches used by the
campaign routes, since they share the business info lookups.
"""

import logging
import re
from dataclasses import asdict
from datetime import datetime
from typing import Any, Dict, List, Optional

from sqlalchemy.orm import Session

from ..database.models import LocalCampaign
from ..database.operations import gbp as gbp_ops
from ..database.operations import local_campaigns as campaign_ops
from ..database.session import get_db_context
from ..dataforseo.modules import BusinessModule
from ..dataforseo.service import DataForSEO, create_dataforseo
from ..local_seo.competitor_aggregator import aggregate_competitor_stats, calculate_rank_changes
from ..local_seo.gbp_comparison import compare_profiles
from ..local_seo.grid_calculator import estimate_scan_cost, generate_grid_points
from ..local_seo.grid_scanner import TargetBusiness, scan_grid_for_all_keywords
from ..utils.config import get_settings
from .bus import GBP_REFRESH_REQUESTED, LOCAL_SCAN_REQUESTED, bus

logger = logging.getLogger(__name__)

SCAN_DEPTH = 20
DEFAULT_COMPARISON_COMPETITORS = 3
MAX_COMPARISON_COMPETITORS = 5

DETAIL_DEPTHS = {"posts": 10, "qa": 20, "reviews": 20}


def extract_city(address: Optional[str]) -> str:
    """'123 Main St, Springfield, IL 62701' -> 'Springfield'."""
    if not address:
        return ""
    parts = address.split(",")
    if len(parts) < 2:
        return ""
    return re.sub(r"\d+", "", parts[-2]).strip()


# =============================================================================
# GRID SCAN
# =============================================================================

@bus.function(LOCAL_SCAN_REQUESTED)
async def run_grid_scan(data: Dict[str, Any]) -> Dict[str, Any]:
    """Event data: {campaignId, userId, keywords?}."""
    campaign_id = data["campaignId"]
    scan_id = None
    dfs = None

    try:
        with get_db_context() as db:
            campaign = campaign_ops.get_campaign(db, campaign_id)
            if campaign is None:
                raise ValueError(f"Campaign not found: {campaign_id}")
            if data.get("userId") and campaign.user_id != data["userId"]:
                raise PermissionError("Unauthorized")

            business_name = campaign.business_name
            target = TargetBusiness(name=business_name, cid=campaign.gmb_cid, place_id=campaign.gmb_place_id)
            grid_size = campaign.grid_size
            points = generate_grid_points(
                campaign.center_lat, campaign.center_lng, grid_size, campaign.grid_radius_miles
            )
            keywords = list(data.get("keywords") or campaign.keywords or [])

            scan_id = campaign_ops.create_scan(db, campaign_id).id
            campaign_ops.start_scan(db, scan_id)

        if not keywords:
            raise ValueError("No keywords to scan")

        cost = estimate_scan_cost(grid_size, len(keywords))
        last_reported = {"progress": 0}

        def report_progress(completed: int, total: int) -> None:
            progress = round(completed / total * 100) if total else 100
            # Only write on each 10% step
            if progress // 10 > last_reported["progress"] // 10:
                last_reported["progress"] = progress
                with get_db_context() as db:
                    campaign_ops.update_scan_progress(db, scan_id, progress)

        dfs = create_dataforseo(use_cache=False)
        results = await scan_grid_for_all_keywords(
            dfs.serp,
            points,
            keywords,
            target,
            depth=SCAN_DEPTH,
            skip_cache=True,
            on_progress=report_progress,
        )

        point_rows = [
            {
                "grid_row": p.point.row,
                "grid_col": p.point.col,
                "lat": p.point.lat,
                "lng": p.point.lng,
                "keyword": result.keyword,
                "rank": p.target_rank,
                "top_rankings": [asdict(r) for r in p.top_rankings],
                "total_results": p.total_results,
            }
            for result in results
            for p in result.points
            if p.success
        ]

        aggregation = aggregate_competitor_stats(results, business_name)
        successful = sum(r.successful_scans for r in results)
        failed = sum(r.failed_scans for r in results)

        with get_db_context() as db:
            campaign_ops.save_point_results(db, scan_id, point_rows)

            previous = campaign_ops.get_previous_competitor_stats(db, campaign_id, scan_id)
            competitors = calculate_rank_changes(aggregation["competitorStats"], previous)
            target_stats = calculate_rank_changes([aggregation["targetStats"]], previous)[0]
            campaign_ops.save_competitor_stats(db, scan_id, [s.to_dict() for s in [target_stats] + competitors])

            overall = aggregation["overallMetrics"]
            campaign_ops.complete_scan(db, scan_id, {
                "avg_rank": overall["avgRank"] or None,
                "share_of_voice": overall["shareOfVoice"],
                "top_competitor": overall["topCompetitor"],
                "api_calls_used": successful,
                "estimated_cost": cost["estimatedCost"],
                "failed_points": failed,
            })
            campaign_ops.update_campaign_schedule(db, campaign_id, datetime.utcnow())

        bus.send(GBP_REFRESH_REQUESTED, {"campaignId": campaign_id})

        logger.info(
            f"Grid scan {scan_id} completed: {successful} points, {failed} failed, "
            f"SoV {aggregation['overallMetrics']['shareOfVoice']}%"
        )
        return {
            "scanId": scan_id,
            "avgRank": aggregation["overallMetrics"]["avgRank"],
            "shareOfVoice": aggregation["overallMetrics"]["shareOfVoice"],
            "apiCallsUsed": successful,
        }

    except Exception as e:
        if scan_id:
            with get_db_context() as db:
                campaign_ops.fail_scan(db, scan_id, str(e))
        raise
    finally:
        if dfs is not None:
            await dfs.close()


# =============================================================================
# GBP REFRESH
# =============================================================================

def snapshot_from_business_info(info: Dict[str, Any], campaign: LocalCampaign) -> Dict[str, Any]:
    """GBPSnapshot columns from a my_business_info item."""
    rating = info.get("rating") or {}
    categories = [info["category"]] if info.get("category") else []
    categories += info.get("additional_categories") or []
    return {
        "business_name": info.get("title") or campaign.business_name,
        "gmb_place_id": info.get("place_id") or campaign.gmb_place_id,
        "gmb_cid": info.get("cid") or campaign.gmb_cid,
        "rating": rating.get("value"),
        "review_count": rating.get("votes_count"),
        "rating_distribution": info.get("rating_distribution"),
        "completeness_score": BusinessModule.calculate_profile_completeness(info)["score"],
        "address": info.get("address"),
        "phone": info.get("phone"),
        "website": info.get("url") or info.get("domain"),
        "categories": categories,
        "attributes": info.get("attributes"),
        "work_hours": info.get("work_hours") or info.get("work_time"),
        "photos": {"total": info.get("total_photos") or 0, "mainImage": info.get("main_image")},
        "raw_data": info,
    }


@bus.function(GBP_REFRESH_REQUESTED)
async def refresh_gbp_data(data: Dict[str, Any]) -> Dict[str, Any]:
    """Event data: {campaignId}. Saves a snapshot when a listing is found."""
    campaign_id = data["campaignId"]

    with get_db_context() as db:
        campaign = campaign_ops.get_campaign(db, campaign_id)
        if campaign is None:
            raise ValueError(f"Campaign not found: {campaign_id}")
        latest = campaign_ops.get_latest_gbp_snapshot(db, campaign_id)
        keyword = f"{campaign.business_name} {latest.address if latest and latest.address else ''}".strip()

    async with create_dataforseo() as dfs:
        items = await dfs.business.business_info(keyword)

    if not items:
        logger.info(f"No Business Profile found for campaign {campaign_id} ({keyword})")
        return {"campaignId": campaign_id, "hasData": False}

    with get_db_context() as db:
        campaign = campaign_ops.get_campaign(db, campaign_id)
        campaign_ops.save_gbp_snapshot(db, campaign_id, snapshot_from_business_info(items[0], campaign))

    return {"campaignId": campaign_id, "hasData": True}


# =============================================================================
# SCHEDULED SCANS
# =============================================================================

async def trigger_scheduled_scans() -> Dict[str, Any]:
    """Dispatch scans for active campaigns whose next_scan_at has passed."""
    limit = get_settings().LOCAL_SCAN_BATCH_LIMIT

    with get_db_context() as db:
        due = [
            {"campaignId": c.id, "userId": c.user_id}
            for c in campaign_ops.get_campaigns_due_for_scan(db, limit=limit)
        ]

    for item in due:
        bus.send(LOCAL_SCAN_REQUESTED, item)

    if due:
        logger.info(f"Triggered {len(due)} scheduled grid scans")
    return {"triggered": len(due)}


# =============================================================================
# GBP COMPARISON
# =============================================================================

async def _find_business(dfs: DataForSEO, keyword: str) -> Optional[Dict[str, Any]]:
    items = await dfs.business.business_info(keyword)
    return items[0] if items else None


async def build_gbp_comparison(
    db: Session,
    dfs: DataForSEO,
    campaign: LocalCampaign,
    competitor_count: int = DEFAULT_COMPARISON_COMPETITORS,
    force_refresh: bool = False,
) -> Dict[str, Any]:
    """
    Compare the campaign's profile with its top Share of Voice competitors.

    Competitor profiles are cached per campaign and refetched after four hours.
    """
    competitor_count = max(1, min(competitor_count, MAX_COMPARISON_COMPETITORS))
    snapshot = campaign_ops.get_latest_gbp_snapshot(db, campaign.id)
    city = extract_city(snapshot.address if snapshot else None)
    keywords = campaign.keywords or []

    target_info = snapshot.raw_data if snapshot and snapshot.raw_data else None
    if target_info is None:
        try:
            target_info = await _find_business(dfs, f"{campaign.business_name} {city}".strip())
        except Exception as e:
            logger.error(f"Target Business Profile lookup failed for campaign {campaign.id}: {e}")
    if target_info is None:
        target_info = {"title": campaign.business_name, "cid": campaign.gmb_cid}

    top = campaign_ops.get_top_competitors_by_sov(db, campaign, limit=competitor_count)
    if not top:
        comparison = compare_profiles(target_info, [], keywords, city)
        comparison["recommendations"] = [
            "Run a geo-grid scan first to discover local competitors",
            "Once the scan completes, return here for the competitor comparison",
        ]
        comparison["hasCompetitorData"] = False
        comparison["cacheAge"] = 0
        return comparison

    cids = [c.gmb_cid for c in top if c.gmb_cid]
    stale = cids if force_refresh else gbp_ops.check_profiles_need_refresh(db, campaign.id, cids)

    for competitor in top:
        if competitor.gmb_cid not in stale:
            continue
        try:
            info = await _find_business(dfs, f"{competitor.business_name} {city}".strip())
        except Exception as e:
            logger.error(f"Competitor Business Profile lookup failed for {competitor.business_name}: {e}")
            continue
        if info:
            gbp_ops.save_competitor_gbp_profile(db, campaign.id, info, keywords, city, gmb_cid=competitor.gmb_cid)

    profiles = {p.gmb_cid: p for p in gbp_ops.get_competitor_gbp_profiles(db, campaign.id)}
    competitor_infos = []
    for competitor in top:
        profile = profiles.get(competitor.gmb_cid)
        if profile is not None and profile.raw_data:
            competitor_infos.append(profile.raw_data)
        else:
            # Fall back to what the grid scan saw
            competitor_infos.append({
                "title": competitor.business_name,
                "cid": competitor.gmb_cid,
                "rating": {"value": competitor.rating, "votes_count": competitor.review_count},
            })

    comparison = compare_profiles(target_info, competitor_infos, keywords, city)

    fetched = [p.fetched_at for p in profiles.values() if p.fetched_at]
    comparison["cacheAge"] = round((datetime.utcnow() - min(fetched)).total_seconds()) if fetched else 0
    comparison["hasCompetitorData"] = True

    detailed = {d.gmb_cid: d for d in gbp_ops.get_campaign_detailed_profiles(db, campaign.id)}
    target_cid = target_info.get("cid") or campaign.gmb_cid
    comparison["detailedData"] = {
        "target": gbp_ops.detailed_profile_to_dict(detailed[target_cid]) if target_cid in detailed else None,
        "competitors": [
            gbp_ops.detailed_profile_to_dict(detailed[c.gmb_cid]) for c in top if c.gmb_cid in detailed
        ],
    }
    return comparison


async def fetch_detailed_gbp_data(
    db: Session,
    dfs: DataForSEO,
    campaign: LocalCampaign,
    data_types: List[str],
    include_target: bool = True,
    include_competitors: bool = True,
    competitor_count: int = DEFAULT_COMPARISON_COMPETITORS,
    force_refresh: bool = False,
) -> Dict[str, Any]:
    """
    Fetch posts, Q&A and reviews through the task endpoints.

    Data types fetched within the last four hours are skipped unless
    force_refresh is set.

    Raises:
        ValueError: no businesses to fetch
    """
    businesses = []
    if include_target:
        snapshot = campaign_ops.get_latest_gbp_snapshot(db, campaign.id)
        cid = campaign.gmb_cid or (snapshot.gmb_cid if snapshot else None)
        businesses.append({
            "businessName": campaign.business_name,
            "gmbCid": cid or campaign.business_name,
            "keyword": f"cid:{cid}" if cid else campaign.business_name,
        })
    if include_competitors:
        limit = max(1, min(competitor_count, MAX_COMPARISON_COMPETITORS))
        for competitor in campaign_ops.get_top_competitors_by_sov(db, campaign, limit=limit):
            if competitor.gmb_cid:
                businesses.append({
                    "businessName": competitor.business_name,
                    "gmbCid": competitor.gmb_cid,
                    "keyword": f"cid:{competitor.gmb_cid}",
                })

    if not businesses:
        raise ValueError("No businesses found to fetch data for")

    updaters = {
        "posts": gbp_ops.update_detailed_posts,
        "qa": gbp_ops.update_detailed_qa,
        "reviews": gbp_ops.update_detailed_reviews,
    }

    results = []
    for business in businesses:
        record = gbp_ops.upsert_detailed_profile(db, campaign.id, business["gmbCid"], business["businessName"])
        outcome: Dict[str, Any] = {"businessName": business["businessName"], "gmbCid": business["gmbCid"]}

        for data_type in gbp_ops.DETAIL_TYPES:
            if data_type not in data_types:
                continue
            if not force_refresh and gbp_ops.is_detail_fresh(record, data_type):
                outcome[data_type] = {"success": True, "cached": True}
                continue
            try:
                kwargs = {"depth": DETAIL_DEPTHS[data_type]}
                if data_type == "reviews":
                    kwargs["sort_by"] = "newest"
                result = await dfs.business.fetch_task(data_type, business["keyword"], **kwargs)
                if result is None:
                    outcome[data_type] = {"success": False, "error": f"No {data_type} data returned"}
                else:
                    count = updaters[data_type](db, record, result)
                    outcome[data_type] = {"success": True, "count": count}
            except Exception as e:
                logger.error(f"Fetching {data_type} for {business['businessName']} failed: {e}")
                outcome[data_type] = {"success": False, "error": str(e)}

        results.append(outcome)

    summary = {"totalBusinesses": len(results)}
    for data_type in gbp_ops.DETAIL_TYPES:
        summary[f"{data_type}Success"] = sum(1 for r in results if (r.get(data_type) or {}).get("success"))

    return {
        "results": results,
        "summary": summary,
        "message": f"Fetched detailed data for {len(results)} businesses",
    }

