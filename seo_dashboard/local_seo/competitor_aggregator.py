"""
Competitor aggregation

Turns per-point scan results into one stats row per business seen
in the Maps results, with the target business split out.
"""

import re
from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Optional

from .grid_scanner import KeywordScanResult


@dataclass
class CompetitorStats:
    business_name: str
    avg_rank: float = 0.0
    appearances: int = 0
    times_in_top_3: int = 0
    times_in_top_10: int = 0
    times_in_top_20: int = 0
    share_of_voice: float = 0.0
    gmb_cid: Optional[str] = None
    rating: Optional[float] = None
    review_count: Optional[int] = None
    prev_avg_rank: Optional[float] = None
    rank_change: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def normalize_competitor_key(name: str) -> str:
    value = (name or "").lower()
    value = value.replace("’", "'").replace("‘", "'")
    value = value.replace("–", "-").replace("—", "-")
    value = re.sub(r"\s+", " ", value)
    return re.sub(r"[.,]", "", value).strip()


def is_target_match(business_name: str, target_name: str) -> bool:
    """Equal names, or one containing the other covering at least half the shorter one."""
    business = normalize_competitor_key(business_name)
    target = normalize_competitor_key(target_name)
    if not business or not target:
        return False
    if business == target:
        return True

    overlap = 0
    if target in business:
        overlap = len(target)
    if business in target:
        overlap = max(overlap, len(business))
    return overlap > 0 and overlap >= min(len(business), len(target)) * 0.5


def aggregate_competitor_stats(results: List[KeywordScanResult], target_name: str) -> Dict[str, Any]:
    """
    Per-business stats over all successful grid points.

    Returns {targetStats, competitorStats (sorted by avg rank), overallMetrics}.
    """
    accumulators: Dict[str, Dict[str, Any]] = {}

    for keyword_result in results:
        for point in keyword_result.points:
            if not point.success:
                continue
            for ranking in point.top_rankings:
                key = normalize_competitor_key(ranking.name)
                acc = accumulators.setdefault(key, {
                    "name": ranking.name,
                    "cid": ranking.cid,
                    "rating": ranking.rating,
                    "review_count": ranking.review_count,
                    "total_rank": 0,
                    "count": 0,
                    "top_3": 0,
                    "top_10": 0,
                    "top_20": 0,
                })
                acc["total_rank"] += ranking.rank
                acc["count"] += 1
                if ranking.rank <= 3:
                    acc["top_3"] += 1
                if ranking.rank <= 10:
                    acc["top_10"] += 1
                if ranking.rank <= 20:
                    acc["top_20"] += 1

                # Keep the rating from the listing with the most reviews
                if ranking.rating and (not acc["rating"] or (ranking.review_count or 0) > (acc["review_count"] or 0)):
                    acc["rating"] = ranking.rating
                    acc["review_count"] = ranking.review_count
                if ranking.cid and not acc["cid"]:
                    acc["cid"] = ranking.cid

    total_successful = sum(r.successful_scans for r in results)

    target_stats: Optional[CompetitorStats] = None
    competitors: List[CompetitorStats] = []

    for acc in accumulators.values():
        stats = CompetitorStats(
            business_name=acc["name"],
            avg_rank=round(acc["total_rank"] / acc["count"], 2) if acc["count"] else 0.0,
            appearances=acc["count"],
            times_in_top_3=acc["top_3"],
            times_in_top_10=acc["top_10"],
            times_in_top_20=acc["top_20"],
            share_of_voice=round(acc["top_3"] / total_successful * 100, 2) if total_successful else 0.0,
            gmb_cid=acc["cid"],
            rating=acc["rating"],
            review_count=acc["review_count"],
        )
        if target_stats is None and is_target_match(acc["name"], target_name):
            target_stats = stats
        else:
            competitors.append(stats)

    competitors.sort(key=lambda s: s.avg_rank)

    if target_stats is None:
        target_stats = CompetitorStats(business_name=target_name)

    return {
        "targetStats": target_stats,
        "competitorStats": competitors,
        "overallMetrics": {
            "avgRank": target_stats.avg_rank,
            "shareOfVoice": target_stats.share_of_voice,
            "topCompetitor": competitors[0].business_name if competitors else None,
            "totalCompetitorsFound": len(competitors),
        },
    }


def calculate_rank_changes(
    stats: List[CompetitorStats],
    previous: Optional[Dict[str, float]],
) -> List[CompetitorStats]:
    """
    Attach prev_avg_rank and rank_change from a previous scan.

    `previous` maps normalized business names to their previous avg rank.
    A positive rank_change means the business moved up.
    """
    if not previous:
        return stats

    for s in stats:
        prev = previous.get(normalize_competitor_key(s.business_name))
        if prev is not None:
            s.prev_avg_rank = prev
            s.rank_change = round(prev - s.avg_rank, 2)
    return stats


def group_by_performance_tier(stats: List[CompetitorStats]) -> Dict[str, List[CompetitorStats]]:
    tiers: Dict[str, List[CompetitorStats]] = {"dominant": [], "strong": [], "moderate": [], "weak": []}
    for s in stats:
        if s.avg_rank <= 3:
            tiers["dominant"].append(s)
        elif s.avg_rank <= 10:
            tiers["strong"].append(s)
        elif s.avg_rank <= 20:
            tiers["moderate"].append(s)
        else:
            tiers["weak"].append(s)
    return tiers


_SORT_KEYS = {
    "avg_rank": lambda s: s.avg_rank,
    "share_of_voice": lambda s: -s.share_of_voice,
    "times_in_top_3": lambda s: -s.times_in_top_3,
    "review_count": lambda s: -(s.review_count or 0),
}


def get_top_competitors(stats: List[CompetitorStats], n: int, sort_by: str = "avg_rank") -> List[CompetitorStats]:
    if sort_by not in _SORT_KEYS:
        raise ValueError(f"Unknown sort key: {sort_by}")
    return sorted(stats, key=_SORT_KEYS[sort_by])[:n]


def calculate_market_share(stats: List[CompetitorStats], target: CompetitorStats) -> List[Dict[str, Any]]:
    """Top 9 competitors by Share of Voice plus the target, highest first."""
    share = [
        {"name": s.business_name, "shareOfVoice": s.share_of_voice, "isTarget": False}
        for s in get_top_competitors(stats, 9, "share_of_voice")
    ]
    share.append({"name": target.business_name, "shareOfVoice": target.share_of_voice, "isTarget": True})
    share.sort(key=lambda s: s["shareOfVoice"], reverse=True)
    return share


POSITION_RECOMMENDATIONS = {
    "dominant": "Maintain strong position. Focus on review acquisition and content updates.",
    "strong": "Good visibility. Optimize GBP profile and increase review velocity to reach dominant position.",
    "moderate": "Improve local signals. Focus on proximity optimization, review generation, and category relevance.",
    "weak": "Significant improvement needed. Audit GBP completeness, build citations, and implement local content strategy.",
    "not_ranking": "Not appearing in local results. Verify GBP listing is claimed, categories are correct, and NAP is consistent.",
}


def generate_competitive_summary(target: CompetitorStats, competitors: List[CompetitorStats]) -> Dict[str, Any]:
    if target.avg_rank == 0 or target.times_in_top_20 == 0:
        position = "not_ranking"
    elif target.avg_rank <= 3:
        position = "dominant"
    elif target.avg_rank <= 10:
        position = "strong"
    elif target.avg_rank <= 20:
        position = "moderate"
    else:
        position = "weak"

    return {
        "targetPosition": position,
        "competitorsAhead": sum(1 for c in competitors if 0 < c.avg_rank < target.avg_rank),
        "mainThreats": [c.business_name for c in competitors if c.share_of_voice > target.share_of_voice][:3],
        "recommendation": POSITION_RECOMMENDATIONS[position],
    }
