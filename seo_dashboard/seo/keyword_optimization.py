"""
Keyword Optimization Data

Gathers everything the keyword optimization report needs for one
page and target keyword. Each API call is guarded on its own: a
failure is logged and the matching fields stay empty, so a partial
result is always returned.
"""

import logging
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional

from ..dataforseo.keyword_enrichment import get_most_recent_volume, is_blocked_keyword_pattern
from ..dataforseo.service import DataForSEO
from ..utils.domains import domain_from_url

logger = logging.getLogger(__name__)

DEFAULT_LOCATION_NAME = "United States"

# Rough per-call prices (USD)
COST_ESTIMATES = {
    "ranked_keywords": 0.02,
    "serp_organic": 0.003,
    "keyword_difficulty": 0.01,
    "search_intent": 0.01,
    "search_volume": 0.05,
    "historical_keyword": 0.01,
    "backlinks_summary": 0.002,
    "domain_rank": 0.01,
    "keyword_suggestions": 0.02,
}

SERP_FEATURE_TYPES = {
    "local_pack": "hasLocalPack",
    "featured_snippet": "hasFeaturedSnippet",
    "people_also_ask": "hasPeopleAlsoAsk",
}


@dataclass
class KeywordOptimizationData:
    target_keyword: str
    domain: str

    # Domain metrics
    domain_rank: Optional[int] = None
    organic_keywords_count: int = 0
    estimated_traffic_value: float = 0.0
    referring_domains: int = 0
    backlinks: int = 0
    spam_score: Optional[float] = None

    # Target keyword metrics
    search_volume: Optional[int] = None
    cpc: Optional[float] = None
    keyword_difficulty: Optional[int] = None
    current_position: Optional[int] = None
    search_intent: Optional[str] = None
    volume_source: str = "current"
    historical_date: Optional[str] = None

    serp_features: Dict[str, Any] = field(default_factory=lambda: {
        "hasLocalPack": False,
        "hasFeaturedSnippet": False,
        "hasPeopleAlsoAsk": False,
        "organicResultsCount": 0,
    })
    top_competitors: List[Dict[str, Any]] = field(default_factory=list)
    ranked_keywords: List[Dict[str, Any]] = field(default_factory=list)
    keyword_opportunities: List[Dict[str, Any]] = field(default_factory=list)

    api_cost: float = 0.0
    failed_steps: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _bare(domain: Optional[str]) -> str:
    value = (domain or "").lower()
    return value[4:] if value.startswith("www.") else value


async def gather_keyword_optimization_data(
    dfs: DataForSEO,
    url: str,
    target_keyword: str,
    location_name: Optional[str] = None,
    language_code: str = "en",
) -> KeywordOptimizationData:
    """
    Run the seven data-gathering steps for a page and keyword.

    1. ranked keywords for the domain
    2. live SERP for the target keyword
    3. keyword difficulty and search intent
    4. search volume, with a historical fallback for blocked keyword shapes
    5. backlinks summary
    6. domain rank overview
    7. keyword suggestions
    """
    location_name = location_name or DEFAULT_LOCATION_NAME
    domain = domain_from_url(url)
    data = KeywordOptimizationData(target_keyword=target_keyword, domain=domain)
    cost = 0.0

    # 1. Ranked keywords
    try:
        items = await dfs.labs.ranked_keywords(
            domain, location_name=location_name, language_code=language_code, limit=50
        )
        cost += COST_ESTIMATES["ranked_keywords"]
        for item in items:
            keyword_data = item.get("keyword_data") or {}
            info = keyword_data.get("keyword_info") or {}
            serp_item = (item.get("ranked_serp_element") or {}).get("serp_item") or {}
            data.ranked_keywords.append({
                "keyword": keyword_data.get("keyword"),
                "position": serp_item.get("rank_group") or 0,
                "searchVolume": info.get("search_volume"),
                "cpc": info.get("cpc"),
                "url": serp_item.get("url") or "",
            })
    except Exception as e:
        logger.exception(f"Error fetching ranked keywords for {domain}: {e}")
        data.failed_steps.append("ranked_keywords")

    # 2. Live SERP
    try:
        response = await dfs.serp.google_organic_raw(
            target_keyword, location_name=location_name, language_code=language_code, depth=20
        )
        cost += COST_ESTIMATES["serp_organic"]
        serp_items = dfs.serp.extract_items(response)
        organic = [i for i in serp_items if i.get("type") == "organic"]

        for item in serp_items:
            flag = SERP_FEATURE_TYPES.get(item.get("type"))
            if flag:
                data.serp_features[flag] = True
        data.serp_features["organicResultsCount"] = len(organic)

        for item in organic:
            result_domain = _bare(item.get("domain"))
            if result_domain and (result_domain == domain or domain in result_domain):
                data.current_position = item.get("rank_group") or item.get("rank_absolute")
                break

        data.top_competitors = [
            {
                "domain": item.get("domain") or "",
                "position": item.get("rank_group") or item.get("rank_absolute") or 0,
                "title": item.get("title") or "",
            }
            for item in organic[:10]
        ]
    except Exception as e:
        logger.exception(f"Error fetching SERP for '{target_keyword}': {e}")
        data.failed_steps.append("serp")

    # 3. Difficulty and intent
    try:
        difficulty = await dfs.labs.bulk_keyword_difficulty(
            [target_keyword], location_name=location_name, language_code=language_code
        )
        cost += COST_ESTIMATES["keyword_difficulty"]
        if difficulty:
            data.keyword_difficulty = difficulty[0].get("keyword_difficulty")

        intent = await dfs.labs.search_intent([target_keyword], language_code=language_code)
        cost += COST_ESTIMATES["search_intent"]
        if intent:
            data.search_intent = (intent[0].get("keyword_intent") or {}).get("label")
    except Exception as e:
        logger.exception(f"Error fetching keyword metrics for '{target_keyword}': {e}")
        data.failed_steps.append("keyword_metrics")

    # 4. Search volume
    ranked_match = next(
        (k for k in data.ranked_keywords if (k["keyword"] or "").lower() == target_keyword.lower()),
        None,
    )
    if ranked_match and ranked_match["searchVolume"]:
        data.search_volume = ranked_match["searchVolume"]
        data.cpc = ranked_match["cpc"]
    else:
        try:
            volumes = await dfs.keywords.search_volume(
                [target_keyword], location_name=location_name, language_code=language_code
            )
            cost += COST_ESTIMATES["search_volume"]
            if volumes:
                data.search_volume = volumes[0].get("search_volume")
                data.cpc = volumes[0].get("cpc")
        except Exception as e:
            logger.exception(f"Error fetching search volume for '{target_keyword}': {e}")
            data.failed_steps.append("search_volume")

    if not data.search_volume and is_blocked_keyword_pattern(target_keyword):
        try:
            history = await dfs.labs.historical_keyword_data(
                [target_keyword], location_name=location_name, language_code=language_code
            )
            cost += COST_ESTIMATES["historical_keyword"]
            latest = get_most_recent_volume(history[0].get("history")) if history else None
            if latest:
                data.search_volume = latest["volume"]
                data.cpc = latest["cpc"] if latest["cpc"] is not None else data.cpc
                data.volume_source = "historical"
                data.historical_date = latest["date"]
        except Exception as e:
            logger.exception(f"Error fetching historical data for '{target_keyword}': {e}")
            data.failed_steps.append("historical_volume")

    # 5. Backlinks
    try:
        summary = await dfs.backlinks.summary(domain)
        cost += COST_ESTIMATES["backlinks_summary"]
        if summary:
            data.referring_domains = summary.get("referring_domains") or 0
            data.backlinks = summary.get("backlinks") or 0
            data.spam_score = summary.get("backlinks_spam_score")
    except Exception as e:
        logger.exception(f"Error fetching backlinks for {domain}: {e}")
        data.failed_steps.append("backlinks")

    # 6. Domain rank overview
    try:
        overview = await dfs.labs.domain_rank_overview(
            domain, location_name=location_name, language_code=language_code
        )
        cost += COST_ESTIMATES["domain_rank"]
        items = (overview or {}).get("items") or []
        organic_metrics = ((items[0] if items else {}).get("metrics") or {}).get("organic") or {}
        if organic_metrics.get("count"):
            data.domain_rank = round(
                (organic_metrics.get("pos_1") or 0) * 10
                + (organic_metrics.get("pos_2_3") or 0) * 5
                + (organic_metrics.get("pos_4_10") or 0) * 2
            )
        data.organic_keywords_count = organic_metrics.get("count") or 0
        data.estimated_traffic_value = organic_metrics.get("etv") or 0
    except Exception as e:
        logger.exception(f"Error fetching domain rank for {domain}: {e}")
        data.failed_steps.append("domain_rank")

    # 7. Keyword suggestions
    try:
        suggestions = await dfs.labs.keyword_suggestions(
            target_keyword, location_name=location_name, language_code=language_code, limit=20
        )
        cost += COST_ESTIMATES["keyword_suggestions"]
        data.keyword_opportunities = [
            {
                "keyword": s.get("keyword"),
                "searchVolume": (s.get("keyword_info") or {}).get("search_volume"),
                "cpc": (s.get("keyword_info") or {}).get("cpc"),
                "difficulty": (s.get("keyword_properties") or {}).get("keyword_difficulty"),
                "intent": ((s.get("search_intent_info") or {}).get("main_intent")),
            }
            for s in suggestions
        ]
    except Exception as e:
        logger.exception(f"Error fetching keyword suggestions for '{target_keyword}': {e}")
        data.failed_steps.append("keyword_suggestions")

    blocked = [
        o for o in data.keyword_opportunities
        if o["searchVolume"] is None and o["keyword"] and is_blocked_keyword_pattern(o["keyword"])
    ][:10]
    if blocked:
        try:
            history = await dfs.labs.historical_keyword_data(
                [o["keyword"] for o in blocked], location_name=location_name, language_code=language_code
            )
            cost += COST_ESTIMATES["historical_keyword"]
            by_keyword = {o["keyword"].lower(): o for o in blocked}
            for item in history:
                opportunity = by_keyword.get((item.get("keyword") or "").lower())
                latest = get_most_recent_volume(item.get("history")) if opportunity else None
                if latest:
                    opportunity["searchVolume"] = latest["volume"]
                    if latest["cpc"] is not None:
                        opportunity["cpc"] = latest["cpc"]
        except Exception as e:
            logger.exception(f"Error fetching historical data for suggestions: {e}")

    data.api_cost = round(cost, 3)
    return data
