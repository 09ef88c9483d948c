"""
Keyword Enrichment

Google Ads returns no volume for some keyword shapes, notably
"dentist + city". The Labs historical keyword data endpoint still
holds the last collected numbers, so missing volumes are filled
in from there.
"""

import logging
import re
from typing import Any, Dict, List, Optional

from .errors import DataForSEOError
from .modules.labs import HISTORICAL_BATCH_SIZE, LabsModule

logger = logging.getLogger(__name__)

DENTAL_TERMS = [
    "dentist",
    "dental",
    "dentistry",
    "orthodontist",
    "periodontist",
    "endodontist",
    "oral surgeon",
]

_STATE_ABBREVIATIONS = (
    "il|tx|ca|ny|fl|pa|oh|ga|nc|mi|nj|va|wa|az|ma|tn|in|mo|md|wi|co|mn|sc|al|la|ky|or|ok|"
    "ct|ut|ia|nv|ar|ms|ks|nm|ne|wv|id|hi|nh|me|mt|ri|de|sd|nd|ak|vt|wy|dc"
)

LOCATION_PATTERNS = [
    re.compile(r"\b(in|near|around)\s+\w+", re.IGNORECASE),
    re.compile(rf"\b[a-z]+\s+({_STATE_ABBREVIATIONS})\b", re.IGNORECASE),
    re.compile(
        r"\b\w+,?\s*(illinois|texas|california|new york|florida|pennsylvania|ohio|georgia|north carolina|michigan)",
        re.IGNORECASE,
    ),
    re.compile(r"\bnear\s+me\b", re.IGNORECASE),
]


def is_blocked_keyword_pattern(keyword: str) -> bool:
    """
    True for dental keywords combined with a location indicator.

    A short (2-4 word) keyword with a dental term counts as well,
    since "dentist <city>" is the common shape.
    """
    normalized = (keyword or "").lower().strip()
    if not any(term in normalized for term in DENTAL_TERMS):
        return False

    if any(pattern.search(normalized) for pattern in LOCATION_PATTERNS):
        return True

    return 2 <= len(normalized.split()) <= 4


def get_most_recent_volume(history: Optional[List[Dict[str, Any]]]) -> Optional[Dict[str, Any]]:
    """
    Latest month with a positive search volume.

    Returns {volume, cpc, competition, competition_level, monthly_searches,
    date "YYYY-MM"} or None.
    """
    if not history:
        return None

    ordered = sorted(
        history,
        key=lambda h: (h.get("year") or 0, h.get("month") or 0),
        reverse=True,
    )

    for month in ordered:
        info = month.get("keyword_info") or {}
        volume = info.get("search_volume")
        if volume is not None and volume > 0:
            return {
                "volume": volume,
                "cpc": info.get("cpc"),
                "competition": info.get("competition"),
                "competition_level": info.get("competition_level"),
                "monthly_searches": info.get("monthly_searches"),
                "date": f"{month.get('year')}-{int(month.get('month') or 0):02d}",
            }

    return None


def needs_volume(keyword: Dict[str, Any]) -> bool:
    # SERP/Ads data returns 0 rather than null for blocked keywords
    return not keyword.get("search_volume")


async def enrich_keywords_with_historical_data(
    labs: LabsModule,
    keywords: List[Dict[str, Any]],
    location_code: Optional[int] = None,
    location_name: Optional[str] = None,
    language_code: str = "en",
    batch_size: int = HISTORICAL_BATCH_SIZE,
) -> Dict[str, Any]:
    """
    Fill missing `search_volume` values from historical keyword data.

    Keyword dicts are updated in place; enriched ones get
    `volume_source = "historical"` and `historical_data_date`.
    A failing batch is logged and skipped.
    """
    missing = [kw for kw in keywords if needs_volume(kw)]
    already_had_data = len(keywords) - len(missing)

    if not missing:
        return {
            "keywords": keywords,
            "enrichedCount": 0,
            "alreadyHadDataCount": already_had_data,
            "noDataAvailableCount": 0,
        }

    by_keyword = {kw["keyword"].lower(): kw for kw in missing}
    names = [kw["keyword"] for kw in missing]
    enriched = 0

    logger.info(f"[Enrichment] Fetching historical data for {len(names)} keywords")

    for start in range(0, len(names), batch_size):
        batch = names[start:start + batch_size]
        try:
            items = await labs.historical_keyword_data(
                batch,
                location_code=location_code,
                location_name=location_name,
                language_code=language_code,
            )
        except DataForSEOError as e:
            logger.warning(f"[Enrichment] Historical batch of {len(batch)} failed: {e}")
            continue

        for item in items:
            keyword = by_keyword.get((item.get("keyword") or "").lower())
            if keyword is None or not needs_volume(keyword):
                continue

            latest = get_most_recent_volume(item.get("history"))
            if latest is None:
                continue

            keyword["search_volume"] = latest["volume"]
            if latest["cpc"] is not None:
                keyword["cpc"] = latest["cpc"]
            if latest["competition"] is not None:
                keyword["competition"] = latest["competition"]
            if latest["competition_level"] is not None:
                keyword["competition_level"] = latest["competition_level"]
            if latest["monthly_searches"] is not None:
                keyword["monthly_searches"] = latest["monthly_searches"]
            keyword["historical_data_date"] = latest["date"]
            keyword["volume_source"] = "historical"
            enriched += 1

    logger.info(f"[Enrichment] enriched={enriched}, already_had_data={already_had_data}")

    return {
        "keywords": keywords,
        "enrichedCount": enriched,
        "alreadyHadDataCount": already_had_data,
        "noDataAvailableCount": len(missing) - enriched,
    }
