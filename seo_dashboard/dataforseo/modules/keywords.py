"""
Keywords Data Module

Google Ads search volume (on the strict googleAds limiter),
intent inference and keyword opportunity scoring.
"""

import logging
import math
from typing import Any, Dict, List, Optional

from ..cache import CacheTTL, cache_key
from .base import BaseModule, DEFAULT_LANGUAGE_CODE, location_params

logger = logging.getLogger(__name__)

MAX_KEYWORDS_PER_REQUEST = 1000

TRANSACTIONAL_PATTERNS = [
    "near me", "appointment", "book", "cost", "price", "emergency",
    "open now", "same day", "walk in", "affordable", "cheap", "best",
]
COMMERCIAL_PATTERNS = ["review", "compare", "vs", "alternative", "top", "recommended"]
NAVIGATIONAL_PATTERNS = ["login", "website", "phone number", "address"]
INFORMATIONAL_PATTERNS = ["how to", "what is", "why", "when", "can i", "should i", "tips", "guide"]

DENTAL_SEED_KEYWORDS = {
    "general": [
        "dentist near me", "dental cleaning", "family dentist", "dental checkup",
        "tooth extraction", "root canal", "dental filling", "emergency dentist",
    ],
    "cosmetic": [
        "teeth whitening", "dental veneers", "cosmetic dentist", "smile makeover",
        "dental bonding", "porcelain veneers", "teeth bleaching",
    ],
    "pediatric": [
        "pediatric dentist", "kids dentist", "child dentist", "children dental care",
        "baby's first dentist", "dental sealants kids",
    ],
    "orthodontic": [
        "orthodontist near me", "braces", "invisalign", "teeth straightening",
        "clear aligners", "adult braces",
    ],
    "oral-surgery": [
        "oral surgeon", "wisdom tooth extraction", "dental implants", "jaw surgery",
        "tooth removal surgery",
    ],
}


def infer_intent(keyword: str) -> str:
    """Rough search intent from keyword patterns. Defaults to commercial."""
    lower = keyword.lower()
    if any(p in lower for p in TRANSACTIONAL_PATTERNS):
        return "transactional"
    if any(p in lower for p in COMMERCIAL_PATTERNS):
        return "commercial"
    if any(p in lower for p in NAVIGATIONAL_PATTERNS):
        return "navigational"
    if any(p in lower for p in INFORMATIONAL_PATTERNS):
        return "informational"
    return "commercial"


def _recommendation(volume: int, competition: float, intent: str, score: int) -> str:
    if score >= 70:
        if intent == "transactional":
            return "High priority - local intent keyword with strong conversion potential"
        return "High opportunity - good balance of volume and competition"
    if score >= 50:
        if competition > 0.7:
            return "Moderate opportunity - high competition, consider long-tail variants"
        return "Moderate opportunity - worth targeting with quality content"
    if score >= 30:
        if volume < 100:
            return "Low volume - consider as supporting content for topic clusters"
        return "Low-moderate opportunity - competitive landscape makes ranking difficult"
    return "Low priority - limited opportunity based on current metrics"


class KeywordsModule(BaseModule):
    """Keywords Data (Google Ads) endpoints."""

    default_limiter = "googleAds"

    async def search_volume(
        self,
        keywords: List[str],
        location_code: Optional[int] = None,
        location_name: Optional[str] = None,
        language_code: str = DEFAULT_LANGUAGE_CODE,
        skip_cache: bool = False,
    ) -> List[Dict[str, Any]]:
        """
        Google Ads search volume.

        Returns result items of {keyword, search_volume, cpc, competition,
        competition_index, monthly_searches}. Google Ads returns null
        volume for some restricted keyword categories.
        """
        if not keywords:
            return []

        keywords = keywords[:MAX_KEYWORDS_PER_REQUEST]
        location = location_params(location_code, location_name)
        response = await self.execute_with_cache(
            cache_key("keywords", "volume", keywords, next(iter(location.values()))),
            "keywords_data/google_ads/search_volume/live",
            [{
                "keywords": keywords,
                "language_code": language_code,
                "search_partners": False,
                "include_adult_keywords": False,
                **location,
            }],
            CacheTTL.KEYWORDS,
            skip_cache,
        )
        return self.extract_results(response)

    async def keywords_for_site(
        self,
        target: str,
        location_code: Optional[int] = None,
        language_code: str = DEFAULT_LANGUAGE_CODE,
        skip_cache: bool = False,
    ) -> List[Dict[str, Any]]:
        location = location_params(location_code)
        response = await self.execute_with_cache(
            cache_key("keywords", "site", target, next(iter(location.values()))),
            "keywords_data/google_ads/keywords_for_site/live",
            [{"target": target, "language_code": language_code, "include_adult_keywords": False, **location}],
            CacheTTL.KEYWORDS,
            skip_cache,
        )
        return self.extract_results(response)

    async def analyze_opportunity(self, keyword: str, location_code: Optional[int] = None) -> Dict[str, Any]:
        """
        Opportunity score for one keyword.

        volume (log scale) 40, low competition 30, CPC 20, intent bonus up to 10.
        """
        volume_data = await self.search_volume([keyword], location_code=location_code)
        data = volume_data[0] if volume_data else None

        if not data:
            return {
                "keyword": keyword,
                "searchVolume": 0,
                "competition": 0,
                "cpc": 0,
                "opportunityScore": 0,
                "intent": "informational",
                "recommendation": "No data available for this keyword",
            }

        intent = infer_intent(keyword)
        volume = data.get("search_volume") or 0
        competition = data.get("competition_index")
        competition = competition / 100 if competition is not None else 0
        cpc = data.get("cpc") or 0

        score = min(math.log10(max(volume, 1)) / 5 * 40, 40)
        score += (1 - competition) * 30
        score += min(cpc / 10 * 20, 20)
        score += {"transactional": 10, "commercial": 7, "navigational": 3}.get(intent, 0)
        score = round(score)

        return {
            "keyword": keyword,
            "searchVolume": volume,
            "competition": competition,
            "cpc": cpc,
            "opportunityScore": score,
            "intent": intent,
            "recommendation": _recommendation(volume, competition, intent, score),
        }

    async def dental_keyword_suggestions(
        self, practice: str = "general", location_code: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """Search volume for the seed keywords of a dental practice type."""
        keywords = DENTAL_SEED_KEYWORDS.get(practice, DENTAL_SEED_KEYWORDS["general"])
        return await self.search_volume(keywords, location_code=location_code)
