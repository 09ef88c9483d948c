"""
Geo-grid scanner

Runs a Google Maps SERP at every grid point for every keyword and
records where the target business ranks.
"""

import asyncio
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Tuple

from ..dataforseo.errors import DataForSEOError
from ..dataforseo.modules.serp import SerpModule
from .grid_calculator import GridPoint, format_coordinates

logger = logging.getLogger(__name__)

DEFAULT_DEPTH = 20
DEFAULT_CONCURRENCY = 5

_CREDENTIALS = re.compile(r"\b(dds|dmd|llc|inc|pc)\b")


def normalize_business_name(name: str) -> str:
    """Lowercase, unify quotes/dashes/whitespace, drop credentials and legal suffixes."""
    value = (name or "").lower()
    value = value.replace("’", "'").replace("‘", "'")
    value = value.replace("–", "-").replace("—", "-")
    value = re.sub(r"\s+", " ", value)
    value = re.sub(r"\bdentistry\b", "dental", value)
    value = _CREDENTIALS.sub("", value)
    value = re.sub(r"[.,]", "", value)
    return re.sub(r"\s+", " ", value).strip()


@dataclass
class TargetBusiness:
    name: str
    cid: Optional[str] = None
    place_id: Optional[str] = None


def is_target_business(item: Dict[str, Any], target: TargetBusiness) -> bool:
    """Match a Maps result to the target by CID, place id or normalized name."""
    if target.cid and item.get("cid") and str(item["cid"]) == str(target.cid):
        return True
    if target.place_id and item.get("place_id") == target.place_id:
        return True

    result = normalize_business_name(item.get("title") or "")
    wanted = normalize_business_name(target.name)
    if not result or not wanted:
        return False
    if result == wanted or wanted in result:
        return True
    # Short result titles contained in the target name are too ambiguous
    return result in wanted and len(result) > 5


@dataclass
class CompetitorRanking:
    name: str
    rank: int
    cid: Optional[str] = None
    rating: Optional[float] = None
    review_count: Optional[int] = None
    address: Optional[str] = None
    category: Optional[str] = None


@dataclass
class GridPointScanResult:
    point: GridPoint
    keyword: str
    target_rank: Optional[int]
    top_rankings: List[CompetitorRanking] = field(default_factory=list)
    total_results: int = 0
    success: bool = True
    error: Optional[str] = None
    scanned_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass
class KeywordScanResult:
    keyword: str
    points: List[GridPointScanResult] = field(default_factory=list)

    @property
    def successful_scans(self) -> int:
        return sum(1 for p in self.points if p.success)

    @property
    def failed_scans(self) -> int:
        return sum(1 for p in self.points if not p.success)

    @property
    def ranked_points(self) -> List[int]:
        return [p.target_rank for p in self.points if p.success and p.target_rank is not None]

    @property
    def avg_rank(self) -> Optional[float]:
        ranks = self.ranked_points
        return sum(ranks) / len(ranks) if ranks else None

    @property
    def times_in_top_3(self) -> int:
        return sum(1 for r in self.ranked_points if r <= 3)

    @property
    def times_in_top_10(self) -> int:
        return sum(1 for r in self.ranked_points if r <= 10)


def _rank_target(items: List[Dict[str, Any]], target: TargetBusiness) -> Tuple[Optional[int], List[CompetitorRanking]]:
    target_rank = None
    rankings = []
    for item in items:
        rank = item.get("rank_absolute") or item.get("rank_group")
        if rank is None:
            continue
        rating = item.get("rating") or {}
        rankings.append(CompetitorRanking(
            name=item.get("title") or "",
            rank=rank,
            cid=item.get("cid"),
            rating=rating.get("value"),
            review_count=rating.get("votes_count"),
            address=item.get("address"),
            category=item.get("category"),
        ))
        if target_rank is None and is_target_business(item, target):
            target_rank = rank
    return target_rank, rankings


async def scan_grid_point(
    serp: SerpModule,
    point: GridPoint,
    keyword: str,
    target: TargetBusiness,
    depth: int = DEFAULT_DEPTH,
    skip_cache: bool = True,
) -> GridPointScanResult:
    """One Maps SERP at a grid point. Any failure comes back as success=False."""
    try:
        items = await serp.google_maps(
            keyword,
            coordinates=format_coordinates(point.lat, point.lng),
            depth=depth,
            skip_cache=skip_cache,
        )
        target_rank, rankings = _rank_target(items, target)
    except DataForSEOError as e:
        logger.warning(f"Grid point ({point.row},{point.col}) failed for '{keyword}': {e}")
        return GridPointScanResult(point=point, keyword=keyword, target_rank=None, success=False, error=str(e))
    except Exception as e:
        logger.exception(f"Unexpected error at grid point ({point.row},{point.col}) for '{keyword}': {e}")
        return GridPointScanResult(point=point, keyword=keyword, target_rank=None, success=False, error=str(e))

    return GridPointScanResult(
        point=point,
        keyword=keyword,
        target_rank=target_rank,
        top_rankings=rankings,
        total_results=len(items),
    )


async def scan_grid_for_all_keywords(
    serp: SerpModule,
    points: List[GridPoint],
    keywords: List[str],
    target: TargetBusiness,
    depth: int = DEFAULT_DEPTH,
    concurrency: int = DEFAULT_CONCURRENCY,
    skip_cache: bool = True,
    on_progress: Optional[Callable[[int, int], Any]] = None,
) -> List[KeywordScanResult]:
    """
    Scan every (keyword, point) pair with bounded concurrency.

    `on_progress(completed, total)` is called after each point; it may
    be a coroutine function.
    """
    total = len(points) * len(keywords)
    completed = 0
    semaphore = asyncio.Semaphore(max(1, concurrency))
    results = {keyword: KeywordScanResult(keyword=keyword) for keyword in keywords}

    async def scan_one(keyword: str, point: GridPoint) -> GridPointScanResult:
        nonlocal completed
        async with semaphore:
            result = await scan_grid_point(serp, point, keyword, target, depth, skip_cache)
        completed += 1
        if on_progress is not None:
            progress = on_progress(completed, total)
            if asyncio.iscoroutine(progress):
                await progress
        return result

    for keyword in keywords:
        point_results = await asyncio.gather(*(scan_one(keyword, p) for p in points))
        results[keyword].points.extend(point_results)

    return [results[k] for k in keywords]


def calculate_scan_stats(results: List[KeywordScanResult]) -> Dict[str, Any]:
    """
    Totals across keywords.

    Share of Voice is the percentage of successful points where the
    target ranks in the top 3.
    """
    successful = sum(r.successful_scans for r in results)
    top_3 = sum(r.times_in_top_3 for r in results)
    averages = [r.avg_rank for r in results if r.avg_rank is not None]

    return {
        "totalScans": sum(len(r.points) for r in results),
        "successfulScans": successful,
        "failedScans": sum(r.failed_scans for r in results),
        "avgRank": round(sum(averages) / len(averages), 2) if averages else None,
        "timesInTop3": top_3,
        "timesInTop10": sum(r.times_in_top_10 for r in results),
        "shareOfVoice": calculate_share_of_voice(results),
    }


def calculate_share_of_voice(results: List[KeywordScanResult]) -> float:
    successful = sum(r.successful_scans for r in results)
    if successful == 0:
        return 0.0
    top_3 = sum(r.times_in_top_3 for r in results)
    return round(top_3 / successful * 100, 2)
