"""
Keyword tracking jobs

- `keyword-tracking/run.requested`: live SERP positions for every active
  keyword in a domain's library, compared with the previous completed run.
- `trigger_scheduled_keyword_tracking`: hourly, creates runs for due schedules.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from ..database.models import Domain, RunStatus
from ..database.operations import keyword_tracking as tracking_ops
from ..database.operations import keywords as keyword_ops
from ..database.session import get_db_context
from ..dataforseo.keyword_enrichment import enrich_keywords_with_historical_data, is_blocked_keyword_pattern
from ..dataforseo.modules.base import BaseModule
from ..dataforseo.service import DataForSEO, create_dataforseo
from ..utils.config import get_settings
from ..utils.domains import domains_match
from .bus import KEYWORD_TRACKING_REQUESTED, bus

logger = logging.getLogger(__name__)

SERP_BATCH_SIZE = 5
HISTORICAL_BATCH_SIZE = 100
BATCH_DELAY_SECONDS = 0.2
COST_PER_KEYWORD = 0.002

NO_KEYWORDS_MESSAGE = (
    "No tracked keywords found for this domain. Add keywords in the keyword library first."
)


def parse_serp_rankings(items: List[Dict[str, Any]], domain: str) -> Dict[str, Any]:
    """Position, ranking URL, top domains, features and local pack entry for `domain`."""
    organic = [i for i in items if i.get("type") == "organic"]

    match = next((i for i in organic if domains_match(i.get("domain") or "", domain)), None)

    local_pack = None
    local_items = [i for i in items if i.get("type") == "local_pack"]
    for index, item in enumerate(local_items, start=1):
        if domains_match(item.get("domain") or "", domain):
            rating = item.get("rating") or {}
            local_pack = {
                "position": item.get("rank_group") or index,
                "rating": rating.get("value"),
                "reviews": rating.get("votes_count"),
                "cid": item.get("cid"),
            }
            break

    features = []
    for item in items:
        kind = item.get("type")
        if kind and kind != "organic" and kind not in features:
            features.append(kind)

    return {
        "position": match.get("rank_group") if match else None,
        "ranking_url": match.get("url") if match else None,
        "top_domain": organic[0].get("domain") if organic else None,
        "top_3_domains": [
            {"domain": i.get("domain"), "position": i.get("rank_group"), "url": i.get("url")}
            for i in organic[:3]
        ],
        "serp_features": features,
        "local_pack": local_pack,
    }


def calculate_run_metrics(results: List[Dict[str, Any]]) -> Dict[str, Any]:
    positions = [r["position"] for r in results if r.get("position") is not None]
    changes = [r.get("position_change") for r in results]
    return {
        "keywords_tracked": len(results),
        "avg_position": round(sum(positions) / len(positions), 2) if positions else None,
        "keywords_in_top_3": sum(1 for p in positions if p <= 3),
        "keywords_in_top_10": sum(1 for p in positions if p <= 10),
        "keywords_in_top_100": sum(1 for p in positions if p <= 100),
        "keywords_not_ranking": len(results) - len(positions),
        "keywords_improved": sum(1 for c in changes if c is not None and c > 0),
        "keywords_declined": sum(1 for c in changes if c is not None and c < 0),
        "keywords_unchanged": sum(1 for c in changes if c == 0),
        "new_rankings": sum(
            1 for r in results if r.get("position") is not None and r.get("previous_position") is None
        ),
        "lost_rankings": sum(
            1 for r in results if r.get("position") is None and r.get("previous_position") is not None
        ),
        "api_calls_used": len(results),
        "estimated_cost": round(len(results) * COST_PER_KEYWORD, 4),
    }


async def _track_keyword(
    dfs: DataForSEO,
    keyword: Dict[str, Any],
    domain: str,
    location_name: str,
    language_code: str,
    previous: Dict[str, Optional[int]],
) -> Dict[str, Any]:
    previous_position = previous.get(keyword["id"])
    row = {
        "tracked_keyword_id": keyword["id"],
        "keyword": keyword["keyword"],
        "search_volume": keyword.get("search_volume"),
        "volume_date": keyword.get("historical_data_date"),
        "cpc": keyword.get("cpc"),
        "keyword_difficulty": keyword.get("keyword_difficulty"),
        "position": None,
        "previous_position": previous_position,
        "position_change": None,
        "serp_features": [],
        "top_3_domains": [],
    }

    try:
        response = await dfs.serp.google_organic_raw(
            keyword["keyword"],
            location_name=location_name,
            language_code=language_code,
            depth=100,
            skip_cache=True,
        )
    except Exception as e:
        logger.warning(f"SERP lookup failed for '{keyword['keyword']}': {e}")
        return row

    parsed = parse_serp_rankings(BaseModule.extract_items(response), domain)
    local_pack = parsed["local_pack"] or {}
    row.update({
        "position": parsed["position"],
        "position_change": tracking_ops.calculate_position_change(parsed["position"], previous_position),
        "ranking_url": parsed["ranking_url"],
        "top_domain": parsed["top_domain"],
        "top_3_domains": parsed["top_3_domains"],
        "serp_features": parsed["serp_features"],
        "local_pack_position": local_pack.get("position"),
        "local_pack_rating": local_pack.get("rating"),
        "local_pack_reviews": local_pack.get("reviews"),
        "local_pack_cid": local_pack.get("cid"),
    })
    return row


@bus.function(KEYWORD_TRACKING_REQUESTED)
async def run_keyword_tracking(data: Dict[str, Any]) -> Dict[str, Any]:
    """Event data: {runId, domainId}. Location and language come from the run."""
    run_id = data["runId"]
    domain_id = data["domainId"]
    dfs = None

    try:
        with get_db_context() as db:
            tracking_ops.update_run_status(db, run_id, RunStatus.RUNNING)
            run = tracking_ops.get_run(db, run_id)
            location_name = run.location_name or "United States"
            language_code = run.language_code or "en"

            record = db.query(Domain).filter(Domain.id == domain_id).first()
            if record is None:
                raise ValueError("Domain not found")
            domain = record.domain

            keywords = [
                {
                    "id": k.id,
                    "keyword": k.keyword,
                    "search_volume": k.search_volume,
                    "cpc": k.cpc,
                    "keyword_difficulty": k.keyword_difficulty,
                }
                for k in sorted(keyword_ops.get_domain_keywords(db, domain_id), key=lambda k: k.keyword)
            ]
            if not keywords:
                raise ValueError(NO_KEYWORDS_MESSAGE)

            previous_run = tracking_ops.get_previous_run(db, domain_id, run_id)
            previous = tracking_ops.get_previous_results(db, previous_run.id) if previous_run else {}

        dfs = create_dataforseo()

        # Google Ads withholds volume for these, fall back to historical data
        blocked = [k for k in keywords if k["search_volume"] is None and is_blocked_keyword_pattern(k["keyword"])]
        if blocked:
            try:
                await enrich_keywords_with_historical_data(
                    dfs.labs, blocked, location_name=location_name, batch_size=HISTORICAL_BATCH_SIZE
                )
                updates = {
                    k["id"]: {
                        "search_volume": k["search_volume"],
                        "cpc": k.get("cpc"),
                        "volume_source": "historical",
                        "volume_date": k.get("historical_data_date"),
                    }
                    for k in blocked
                    if k.get("volume_source") == "historical"
                }
                with get_db_context() as db:
                    keyword_ops.update_keyword_metrics(db, updates)
            except Exception as e:
                logger.warning(f"Historical volume lookup failed for run {run_id}: {e}")

        results: List[Dict[str, Any]] = []
        for start in range(0, len(keywords), SERP_BATCH_SIZE):
            batch = keywords[start:start + SERP_BATCH_SIZE]
            results.extend(await asyncio.gather(*[
                _track_keyword(dfs, kw, domain, location_name, language_code, previous) for kw in batch
            ]))

            with get_db_context() as db:
                tracking_ops.update_run_progress(db, run_id, round(len(results) / len(keywords) * 90))

            if start + SERP_BATCH_SIZE < len(keywords):
                await asyncio.sleep(BATCH_DELAY_SECONDS)

        metrics = calculate_run_metrics(results)
        with get_db_context() as db:
            tracking_ops.save_keyword_results(db, run_id, results)
            tracking_ops.complete_run(db, run_id, metrics)

        logger.info(
            f"Keyword tracking run {run_id} completed: {metrics['keywords_tracked']} keywords, "
            f"avg position {metrics['avg_position']}"
        )
        return {"runId": run_id, "keywordsTracked": metrics["keywords_tracked"], "avgPosition": metrics["avg_position"]}

    except Exception as e:
        with get_db_context() as db:
            tracking_ops.fail_run(db, run_id, str(e))
        raise
    finally:
        if dfs is not None:
            await dfs.close()


async def trigger_scheduled_keyword_tracking() -> Dict[str, Any]:
    """Create and dispatch runs for every due schedule."""
    limit = get_settings().KEYWORD_TRACKING_BATCH_LIMIT
    triggered = []

    with get_db_context() as db:
        for schedule in tracking_ops.get_schedules_due(db, limit=limit):
            try:
                run = tracking_ops.create_run(
                    db,
                    domain_id=schedule.domain_id,
                    user_id=schedule.user_id,
                    location_name=schedule.location_name or "United States",
                    language_code=schedule.language_code or "en",
                    triggered_by="scheduled",
                )
                tracking_ops.update_schedule_after_run(db, schedule, run.id)
                triggered.append({"runId": run.id, "domainId": schedule.domain_id})
            except Exception as e:
                db.rollback()
                logger.error(f"Could not create scheduled run for domain {schedule.domain_id}: {e}")

    for item in triggered:
        bus.send(KEYWORD_TRACKING_REQUESTED, item)

    if triggered:
        logger.info(f"Triggered {len(triggered)} scheduled keyword tracking runs")
    return {"triggered": len(triggered), "runs": triggered}
