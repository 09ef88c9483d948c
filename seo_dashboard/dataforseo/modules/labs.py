"""
Labs Module

DataForSEO Labs endpoints: domain overview, ranked keywords,
competitors, keyword difficulty, search intent, suggestions
and historical data.
"""

import logging
from typing import Any, Dict, List, Optional

from ..cache import CacheTTL, cache_key
from .base import BaseModule, DEFAULT_LANGUAGE_CODE, location_params

logger = logging.getLogger(__name__)

LABS_PREFIX = "dataforseo_labs/google"
MAX_KEYWORDS_PER_REQUEST = 1000
HISTORICAL_BATCH_SIZE = 700


def _location_suffix(location: Dict[str, Any]) -> Any:
    return next(iter(location.values()))


class LabsModule(BaseModule):
    """DataForSEO Labs (Google) endpoints."""

    async def domain_rank_overview(
        self,
        target: str,
        location_code: Optional[int] = None,
        location_name: Optional[str] = None,
        language_code: str = DEFAULT_LANGUAGE_CODE,
        skip_cache: bool = False,
    ) -> Optional[Dict[str, Any]]:
        """First result of the domain rank overview (items[0].metrics.organic holds the numbers)."""
        location = location_params(location_code, location_name)
        response = await self.execute_with_cache(
            cache_key("labs", "rank", target, _location_suffix(location)),
            f"{LABS_PREFIX}/domain_rank_overview/live",
            [{"target": target, "language_code": language_code, **location}],
            CacheTTL.KEYWORDS,
            skip_cache,
        )
        return self.extract_first_result(response)

    async def ranked_keywords(
        self,
        target: str,
        location_code: Optional[int] = None,
        location_name: Optional[str] = None,
        language_code: str = DEFAULT_LANGUAGE_CODE,
        limit: int = 100,
        offset: int = 0,
        include_subdomains: bool = True,
        item_types: Optional[List[str]] = None,
        skip_cache: bool = False,
    ) -> List[Dict[str, Any]]:
        location = location_params(location_code, location_name)
        payload = {
            "target": target,
            "language_code": language_code,
            "include_subdomains": include_subdomains,
            "item_types": item_types or ["organic"],
            "limit": limit,
            "offset": offset,
            **location,
        }
        response = await self.execute_with_cache(
            cache_key("labs", "ranked", f"{target}|{limit}|{offset}", _location_suffix(location)),
            f"{LABS_PREFIX}/ranked_keywords/live",
            [payload],
            CacheTTL.KEYWORDS,
            skip_cache,
        )
        return self.extract_items(response)

    async def competitors_domain(
        self,
        target: str,
        location_code: Optional[int] = None,
        location_name: Optional[str] = None,
        language_code: str = DEFAULT_LANGUAGE_CODE,
        limit: int = 10,
        exclude_top_domains: bool = True,
        skip_cache: bool = False,
    ) -> List[Dict[str, Any]]:
        location = location_params(location_code, location_name)
        payload = {
            "target": target,
            "language_code": language_code,
            "exclude_top_domains": exclude_top_domains,
            "limit": limit,
            **location,
        }
        response = await self.execute_with_cache(
            cache_key("labs", "competitors", f"{target}|{limit}", _location_suffix(location)),
            f"{LABS_PREFIX}/competitors_domain/live",
            [payload],
            CacheTTL.KEYWORDS,
            skip_cache,
        )
        return self.extract_items(response)

    async def bulk_keyword_difficulty(
        self,
        keywords: List[str],
        location_code: Optional[int] = None,
        location_name: Optional[str] = None,
        language_code: str = DEFAULT_LANGUAGE_CODE,
        skip_cache: bool = False,
    ) -> List[Dict[str, Any]]:
        """Items of {keyword, keyword_difficulty}."""
        if not keywords:
            return []

        keywords = keywords[:MAX_KEYWORDS_PER_REQUEST]
        location = location_params(location_code, location_name)
        response = await self.execute_with_cache(
            cache_key("labs", "kd", keywords, _location_suffix(location)),
            f"{LABS_PREFIX}/bulk_keyword_difficulty/live",
            [{"keywords": keywords, "language_code": language_code, **location}],
            CacheTTL.KEYWORD_DIFFICULTY,
            skip_cache,
        )

        # Some responses put the items directly in result
        first = self.extract_first_result(response)
        if first and "items" in first:
            return [item for item in (first.get("items") or []) if item]
        return self.extract_results(response)

    async def search_intent(
        self,
        keywords: List[str],
        language_code: str = DEFAULT_LANGUAGE_CODE,
        skip_cache: bool = False,
    ) -> List[Dict[str, Any]]:
        if not keywords:
            return []

        keywords = keywords[:MAX_KEYWORDS_PER_REQUEST]
        response = await self.execute_with_cache(
            cache_key("labs", "intent", keywords, language_code),
            f"{LABS_PREFIX}/search_intent/live",
            [{"keywords": keywords, "language_code": language_code}],
            CacheTTL.KEYWORDS,
            skip_cache,
        )
        return self.extract_items(response)

    async def keyword_suggestions(
        self,
        keyword: str,
        location_code: Optional[int] = None,
        location_name: Optional[str] = None,
        language_code: str = DEFAULT_LANGUAGE_CODE,
        limit: int = 50,
        include_seed_keyword: bool = True,
        skip_cache: bool = False,
    ) -> List[Dict[str, Any]]:
        location = location_params(location_code, location_name)
        payload = {
            "keyword": keyword,
            "language_code": language_code,
            "include_seed_keyword": include_seed_keyword,
            "limit": limit,
            **location,
        }
        response = await self.execute_with_cache(
            cache_key("labs", "suggestions", f"{keyword}|{limit}", _location_suffix(location)),
            f"{LABS_PREFIX}/keyword_suggestions/live",
            [payload],
            CacheTTL.KEYWORDS,
            skip_cache,
        )
        return self.extract_items(response)

    async def historical_keyword_data(
        self,
        keywords: List[str],
        location_code: Optional[int] = None,
        location_name: Optional[str] = None,
        language_code: str = DEFAULT_LANGUAGE_CODE,
        skip_cache: bool = False,
    ) -> List[Dict[str, Any]]:
        """
        Monthly search history per keyword.

        Each item has `keyword` and `history`, a list of
        {year, month, keyword_info: {search_volume, cpc, competition, monthly_searches}}.
        """
        if not keywords:
            return []

        location = location_params(location_code, location_name)
        items: List[Dict[str, Any]] = []

        for start in range(0, len(keywords), HISTORICAL_BATCH_SIZE):
            batch = keywords[start:start + HISTORICAL_BATCH_SIZE]
            response = await self.execute_with_cache(
                cache_key("labs", "historical", batch, _location_suffix(location)),
                f"{LABS_PREFIX}/historical_keyword_data/live",
                [{"keywords": batch, "language_code": language_code, **location}],
                CacheTTL.REFERENCE,
                skip_cache,
            )
            items.extend(self.extract_items(response))

        return items

    async def historical_rank_overview(
        self,
        target: str,
        location_code: Optional[int] = None,
        location_name: Optional[str] = None,
        language_code: str = DEFAULT_LANGUAGE_CODE,
        skip_cache: bool = False,
    ) -> List[Dict[str, Any]]:
        location = location_params(location_code, location_name)
        response = await self.execute_with_cache(
            cache_key("labs", "histrank", target, _location_suffix(location)),
            f"{LABS_PREFIX}/historical_rank_overview/live",
            [{"target": target, "language_code": language_code, **location}],
            CacheTTL.REFERENCE,
            skip_cache,
        )
        return self.extract_items(response)
