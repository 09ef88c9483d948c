"""
Audit orchestrator

Handles `audit/requested`. Runs the five data steps in order, each one
guarded on its own: a failed step is recorded under the audit's
warnings and the audit continues with that step's result left empty.

Progress checkpoints:
    start 5 -> on-page 10..25 -> SERP 30..50 -> backlinks 55..70
    -> competitors 72..75 -> business 78..88 -> scoring -> 100
"""

import asyncio
import logging
import time
from typing import Any, Dict, List, Optional

import httpx

from ..database.models import AuditStatus
from ..database.operations import audits as audit_ops
from ..database.session import get_db_context
from ..dataforseo.errors import create_step_error
from ..dataforseo.keyword_enrichment import enrich_keywords_with_historical_data
from ..dataforseo.modules import BacklinksModule, BusinessModule, OnPageModule
from ..dataforseo.service import DataForSEO, create_dataforseo
from ..utils.domains import domain_from_url, domains_match
from .bus import AUDIT_REQUESTED, bus

logger = logging.getLogger(__name__)

DEFAULT_LOCATION_NAME = "United States"
MAX_DISCOVERED_COMPETITORS = 5

SERP_FEATURE_KEYS = {
    "local_pack": "localPack",
    "featured_snippet": "featuredSnippet",
    "people_also_ask": "peopleAlsoAsk",
    "images": "images",
    "video": "video",
    "reviews": "reviews",
    "sitelinks": "sitelinks",
    "knowledge_graph": "knowledgePanel",
    "shopping": "shopping",
    "ai_overview": "aiOverview",
}


# =============================================================================
# STEP: ON-PAGE
# =============================================================================

async def verify_https(domain: str) -> bool:
    """HEAD request over HTTPS; False on any transport error."""
    try:
        async with httpx.AsyncClient(timeout=10.0, follow_redirects=True) as client:
            response = await client.head(f"https://{domain}")
            return response.status_code < 500
    except httpx.HTTPError:
        return False


def count_issues(page: Optional[Dict[str, Any]]) -> int:
    if not page:
        return 0
    issues = page.get("broken_links") or 0
    issues += 1 if page.get("duplicate_content") else 0
    meta = page.get("meta") or {}
    issues += meta.get("images_without_alt") or 0
    checks = page.get("checks") or {}
    for check in ("has_meta_title", "has_meta_description", "is_https", "is_responsive"):
        if checks and not checks.get(check):
            issues += 1
    return issues


def _category_score(lighthouse: Optional[Dict[str, Any]], category: str) -> Optional[int]:
    score = (((lighthouse or {}).get("categories") or {}).get(category) or {}).get("score")
    return round(score * 100) if score else None


async def run_onpage_step(dfs: DataForSEO, domain: str, skip_cache: bool = False) -> Dict[str, Any]:
    url = f"https://{domain}"
    https_check = asyncio.ensure_future(verify_https(domain))

    try:
        page = await dfs.onpage.instant_page_audit(url, skip_cache=skip_cache)
        lighthouse = await dfs.onpage.lighthouse_audit(
            url, device="mobile", categories=["performance", "seo", "accessibility"], skip_cache=skip_cache
        )
        https_verified = await https_check
    finally:
        if not https_check.done():
            https_check.cancel()

    meta = (page or {}).get("meta") or {}
    checks = (page or {}).get("checks") or {}
    timing = (page or {}).get("page_timing") or {}

    if bool(checks.get("is_https")) != https_verified:
        logger.warning(
            f"HTTPS mismatch for {domain}: crawler says {bool(checks.get('is_https'))}, "
            f"direct check says {https_verified}"
        )

    return {
        "url": url,
        "statusCode": (page or {}).get("status_code"),
        "onpageScore": (page or {}).get("onpage_score"),
        "technicalScore": OnPageModule.calculate_technical_score(page),
        "metaTitle": meta.get("title"),
        "metaDescription": meta.get("description"),
        "h1": ((meta.get("htags") or {}).get("h1") or []),
        "wordCount": (meta.get("content") or {}).get("plain_text_word_count"),
        "isHttps": https_verified,
        "isResponsive": bool(checks.get("is_responsive")),
        "issuesCount": count_issues(page),
        "pageTiming": {
            "largestContentfulPaint": timing.get("largest_contentful_paint"),
            "timeToInteractive": timing.get("time_to_interactive"),
            "domComplete": timing.get("dom_complete"),
        },
        "lighthouse": {
            "performance": _category_score(lighthouse, "performance"),
            "seo": _category_score(lighthouse, "seo"),
            "accessibility": _category_score(lighthouse, "accessibility"),
        },
    }


# =============================================================================
# STEP: SERP
# =============================================================================

def _ranked_keyword_row(item: Dict[str, Any]) -> Dict[str, Any]:
    keyword_data = item.get("keyword_data") or {}
    info = keyword_data.get("keyword_info") or {}
    element = item.get("ranked_serp_element") or {}
    serp_item = element.get("serp_item") or {}
    return {
        "keyword": keyword_data.get("keyword"),
        "position": serp_item.get("rank_group"),
        "url": serp_item.get("url"),
        "type": serp_item.get("type"),
        "search_volume": info.get("search_volume"),
        "cpc": info.get("cpc"),
        "keyword_difficulty": (keyword_data.get("keyword_properties") or {}).get("keyword_difficulty"),
        "search_intent": (keyword_data.get("search_intent_info") or {}).get("main_intent"),
        "etv": serp_item.get("etv") or 0,
        "serp_features": element.get("serp_item_types") or [],
    }


def _camel_keyword(row: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "keyword": row.get("keyword"),
        "position": row.get("position"),
        "url": row.get("url"),
        "searchVolume": row.get("search_volume"),
        "cpc": row.get("cpc"),
        "keywordDifficulty": row.get("keyword_difficulty"),
        "searchIntent": row.get("search_intent"),
        "etv": row.get("etv"),
        "serpFeatures": row.get("serp_features") or [],
        "volumeSource": row.get("volume_source", "current"),
        "historicalDataDate": row.get("historical_data_date"),
    }


async def run_serp_step(
    dfs: DataForSEO,
    domain: str,
    target_keywords: Optional[List[str]] = None,
    location: Optional[str] = None,
    skip_cache: bool = False,
) -> Dict[str, Any]:
    location_name = location or DEFAULT_LOCATION_NAME
    feature_counts = {key: 0 for key in SERP_FEATURE_KEYS.values()}

    items = await dfs.labs.ranked_keywords(
        domain,
        location_name=location_name,
        limit=100,
        item_types=["organic", "local_pack", "featured_snippet"],
        skip_cache=skip_cache,
    )
    discovery = [_ranked_keyword_row(item) for item in items]

    for row in discovery:
        for feature in row["serp_features"]:
            key = SERP_FEATURE_KEYS.get(feature)
            if key:
                feature_counts[key] += 1

    tracked: List[Dict[str, Any]] = []
    for keyword in target_keywords or []:
        try:
            match = await dfs.serp.find_domain_ranking(keyword, domain, location_name=location_name)
        except Exception as e:
            logger.warning(f"Tracked keyword lookup failed for '{keyword}': {e}")
            match = None
        tracked.append({
            "keyword": keyword,
            "position": (match or {}).get("rank_group"),
            "url": (match or {}).get("url"),
            "search_volume": None,
        })

    # Historical data only works with country-level locations
    for rows in (discovery, tracked):
        if rows:
            await enrich_keywords_with_historical_data(dfs.labs, rows, location_name=DEFAULT_LOCATION_NAME)

    try:
        country = location_name.split(",")[-1].strip() or DEFAULT_LOCATION_NAME
        trend = await dfs.labs.historical_rank_overview(domain, location_name=country)
    except Exception as e:
        logger.warning(f"Historical rank overview failed for {domain}: {e}")
        trend = []

    return {
        "keywords": [_camel_keyword(r) for r in discovery + tracked],
        "discoveryKeywords": [_camel_keyword(r) for r in discovery],
        "trackedKeywords": [_camel_keyword(r) for r in tracked],
        "localPackPresence": any(r["type"] == "local_pack" for r in discovery),
        "featuredSnippets": sum(1 for r in discovery if r["type"] == "featured_snippet"),
        "serpFeaturesSummary": feature_counts,
        "totalEtv": round(sum(r["etv"] for r in discovery), 2),
        "keywordTrend": trend or None,
    }


# =============================================================================
# STEP: BACKLINKS
# =============================================================================

async def run_backlinks_step(dfs: DataForSEO, domain: str, skip_cache: bool = False) -> Dict[str, Any]:
    summary = await dfs.backlinks.summary(domain, skip_cache=skip_cache)
    if not summary:
        return {
            "totalBacklinks": 0,
            "referringDomains": 0,
            "domainRank": 0,
            "spamScore": 0,
            "dofollowRatio": 0,
            "authorityScore": 0,
        }

    total_domains = summary.get("referring_domains") or 0
    nofollow = summary.get("referring_domains_nofollow") or 0
    ratio = (total_domains - nofollow) / total_domains if total_domains else 0

    top_domains = []
    try:
        top_domains = [
            {"domain": rd.get("domain"), "backlinks": rd.get("backlinks") or 0, "domainRank": rd.get("rank") or 0}
            for rd in await dfs.backlinks.referring_domains(domain, limit=10)
        ]
    except Exception as e:
        logger.warning(f"Top referring domains failed for {domain}: {e}")

    anchors = []
    try:
        raw = await dfs.backlinks.anchors(domain, limit=10)
        total = sum(a.get("backlinks") or 0 for a in raw)
        anchors = [
            {
                "anchor": a.get("anchor") or "",
                "count": a.get("backlinks") or 0,
                "percentage": round((a.get("backlinks") or 0) / total * 100, 2) if total else 0,
            }
            for a in raw
        ]
    except Exception as e:
        logger.warning(f"Anchor distribution failed for {domain}: {e}")

    return {
        "totalBacklinks": summary.get("backlinks") or 0,
        "referringDomains": total_domains,
        "domainRank": summary.get("rank") or 0,
        "spamScore": summary.get("backlinks_spam_score") or 0,
        "dofollowRatio": round(ratio, 2),
        "authorityScore": BacklinksModule.calculate_authority_score(summary),
        "topReferringDomains": top_domains or None,
        "anchorDistribution": anchors or None,
    }


# =============================================================================
# STEP: COMPETITORS
# =============================================================================

async def _domain_metrics(dfs: DataForSEO, domain: str) -> Dict[str, Any]:
    overview = await dfs.labs.domain_rank_overview(domain, location_name=DEFAULT_LOCATION_NAME)
    summary = await dfs.backlinks.summary(domain)

    items = (overview or {}).get("items") or []
    organic = ((items[0] if items else {}).get("metrics") or {}).get("organic") or {}
    return {
        "domain": domain,
        "organicKeywords": organic.get("count") or 0,
        "top10Keywords": (organic.get("pos_1") or 0) + (organic.get("pos_2_3") or 0) + (organic.get("pos_4_10") or 0),
        "etv": organic.get("etv") or 0,
        "domainRank": (summary or {}).get("rank") or 0,
        "backlinks": (summary or {}).get("backlinks") or 0,
        "referringDomains": (summary or {}).get("referring_domains") or 0,
    }


async def run_competitor_step(
    dfs: DataForSEO,
    domain: str,
    competitor_domains: Optional[List[str]] = None,
) -> Dict[str, Any]:
    target_metrics = await _domain_metrics(dfs, domain)

    competitors = []
    for competitor in competitor_domains or []:
        try:
            competitors.append(await _domain_metrics(dfs, competitor))
        except Exception as e:
            logger.warning(f"Competitor metrics failed for {competitor}: {e}")

    discovered = []
    if not competitor_domains:
        try:
            items = await dfs.labs.competitors_domain(
                domain, location_name=DEFAULT_LOCATION_NAME, limit=MAX_DISCOVERED_COMPETITORS
            )
            discovered = [
                {
                    "domain": item.get("domain"),
                    "intersections": item.get("intersections") or 0,
                    "avgPosition": item.get("avg_position"),
                    "etv": ((item.get("metrics") or {}).get("organic") or {}).get("etv") or 0,
                }
                for item in items
                if item.get("domain") and not domains_match(item.get("domain"), domain)
            ]
        except Exception as e:
            logger.warning(f"Competitor discovery failed for {domain}: {e}")

    return {
        "targetMetrics": target_metrics,
        "competitors": competitors,
        "discoveredCompetitors": discovered or None,
    }


# =============================================================================
# STEP: BUSINESS
# =============================================================================

async def run_business_step(
    dfs: DataForSEO,
    domain: str,
    search_name: str,
    location: Optional[str] = None,
) -> Dict[str, Any]:
    keyword = f"{search_name} {location or ''}".strip()
    items = await dfs.business.business_info(keyword)
    if not items:
        return {"found": False, "searchedFor": keyword}

    # Prefer the listing whose website is this domain
    info = next(
        (i for i in items if i.get("url") and domains_match(domain_from_url(i["url"]), domain)),
        items[0],
    )
    rating = info.get("rating") or {}
    website = info.get("url")

    return {
        "found": True,
        "businessName": info.get("title"),
        "placeId": info.get("place_id"),
        "cid": info.get("cid"),
        "rating": rating.get("value"),
        "reviewCount": rating.get("votes_count"),
        "ratingDistribution": info.get("rating_distribution"),
        "category": info.get("category"),
        "additionalCategories": info.get("additional_categories") or [],
        "address": info.get("address"),
        "phone": info.get("phone"),
        "website": website,
        "isClaimed": info.get("is_claimed"),
        "napConsistent": bool(website) and domains_match(domain_from_url(website), domain),
        "completeness": BusinessModule.calculate_profile_completeness(info),
    }


# =============================================================================
# SCORING
# =============================================================================

def calculate_scores(step_results: Dict[str, Any]) -> Dict[str, Optional[int]]:
    """Per-area scores from whichever steps produced data; overall is their mean."""
    on_page = step_results.get("onPage")
    serp = step_results.get("serp")
    backlinks = step_results.get("backlinks")
    business = step_results.get("business")

    technical = on_page.get("technicalScore") if on_page else None

    content = None
    if serp:
        ranked = [k for k in serp.get("discoveryKeywords") or [] if k.get("position")]
        if ranked:
            content = round(sum(1 for k in ranked if k["position"] <= 10) / len(ranked) * 100)
        else:
            content = 0

    local = None
    if business and business.get("found"):
        local = (business.get("completeness") or {}).get("score")

    authority = backlinks.get("authorityScore") if backlinks else None

    available = [s for s in (technical, content, local, authority) if s is not None]
    return {
        "overall": round(sum(available) / len(available)) if available else None,
        "technical": technical,
        "content": content,
        "local": local,
        "backlinks": authority,
    }


# =============================================================================
# ORCHESTRATOR
# =============================================================================

async def _run_step(
    audit_id: str,
    key: str,
    step_name: str,
    start: int,
    end: int,
    coro_factory,
    warnings: Dict[str, Any],
    status: Optional[AuditStatus] = None,
) -> Optional[Dict[str, Any]]:
    with get_db_context() as db:
        audit_ops.update_audit_progress(db, audit_id, start, current_step=step_name, status=status)

    result = None
    try:
        result = await coro_factory()
        with get_db_context() as db:
            audit_ops.save_step_result(db, audit_id, key, result)
    except Exception as e:
        warnings[key] = create_step_error(e)
        logger.error(f"Audit {audit_id} step {step_name} failed: {e}")

    with get_db_context() as db:
        audit_ops.update_audit_progress(db, audit_id, end)
    return result


@bus.function(AUDIT_REQUESTED)
async def run_audit(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Run a full audit.

    Event data: {auditId, options?: {skipCache, includeBacklinks, includeBusinessData}}.
    Everything else is read from the audit record.
    """
    audit_id = data["auditId"]
    options = data.get("options") or {}
    skip_cache = bool(options.get("skipCache"))
    started = time.monotonic()

    with get_db_context() as db:
        audit = audit_ops.get_audit(db, audit_id)
        if audit is None:
            raise ValueError(f"Audit {audit_id} not found")
        domain = audit.domain
        business_name = audit.business_name
        location = audit.location or ", ".join(p for p in (audit.city, audit.state) if p) or None
        target_keywords = list(audit.target_keywords or [])
        competitor_domains = list(audit.competitor_domains or [])
        audit_ops.start_audit(db, audit_id)

    warnings: Dict[str, Any] = {}
    results: Dict[str, Any] = {}

    try:
        dfs = create_dataforseo(use_cache=not skip_cache)
    except Exception as e:
        with get_db_context() as db:
            audit_ops.fail_audit(db, audit_id, str(e), error_category=create_step_error(e)["category"])
        raise

    try:
        results["onPage"] = await _run_step(
            audit_id, "onPage", "onpage_crawl", 10, 25,
            lambda: run_onpage_step(dfs, domain, skip_cache),
            warnings, status=AuditStatus.CRAWLING,
        )
        results["serp"] = await _run_step(
            audit_id, "serp", "serp_analysis", 30, 50,
            lambda: run_serp_step(dfs, domain, target_keywords, location, skip_cache),
            warnings, status=AuditStatus.ANALYZING,
        )
        if options.get("includeBacklinks", True):
            results["backlinks"] = await _run_step(
                audit_id, "backlinks", "backlinks_analysis", 55, 70,
                lambda: run_backlinks_step(dfs, domain, skip_cache),
                warnings,
            )
        if competitor_domains or options.get("includeBacklinks", True):
            results["competitors"] = await _run_step(
                audit_id, "competitors", "competitor_analysis", 72, 75,
                lambda: run_competitor_step(dfs, domain, competitor_domains),
                warnings,
            )
        if options.get("includeBusinessData", True):
            results["business"] = await _run_step(
                audit_id, "business", "business_data", 78, 88,
                lambda: run_business_step(dfs, domain, business_name or domain, location),
                warnings,
            )

        with get_db_context() as db:
            audit_ops.update_audit_progress(db, audit_id, 92, current_step="scoring")
            audit_ops.save_scores(db, audit_id, calculate_scores(results))
            audit_ops.complete_audit(db, audit_id, warnings=warnings or None)
    except Exception as e:
        with get_db_context() as db:
            audit_ops.fail_audit(db, audit_id, str(e), step="scoring", error_category=create_step_error(e)["category"])
        raise
    finally:
        await dfs.close()

    duration = round(time.monotonic() - started, 1)
    logger.info(f"Audit {audit_id} for {domain} completed in {duration}s ({len(warnings)} step warnings)")
    return {"auditId": audit_id, "domain": domain, "duration": duration, "warnings": list(warnings)}
